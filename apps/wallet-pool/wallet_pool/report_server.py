"""
Report API
==========

HTTP surface of the pool, served by uvicorn on a daemon thread.

  POST /api/report   {"address"}                      ← rented machines, every few minutes
  POST /api/assign   {"address", "order_id", ...}     ← operator / provisioning tooling
  GET  /api/wallets                                   ← current registry snapshot
  GET  /api/health

Handlers are plain sync functions, so FastAPI runs them in its thread pool and
they go through the same registry lock as the reconciliation loop.
"""

from __future__ import annotations
import logging
import threading
from typing import Optional

import uvicorn
from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel

from .assigner import OrderAssigner
from .errors import BindingConflict, WalletNotFound
from .models import BindingPayload
from .registry import WalletRegistry

log = logging.getLogger(__name__)


class ReportRequest(BaseModel):
    address: str


class AssignRequest(BaseModel):
    address:            str
    order_id:           int
    server_id:          int
    connection_address: Optional[str] = None
    connection_port:    Optional[int] = None


def create_app(registry: WalletRegistry, assigner: OrderAssigner) -> FastAPI:
    router = APIRouter(prefix="/api", tags=["Wallets"])

    @router.post("/report")
    def report(body: ReportRequest) -> dict:
        ok = assigner.record_report(body.address.strip())
        return {"ok": ok}

    @router.post("/assign")
    def assign(body: AssignRequest) -> dict:
        payload = BindingPayload(
            order_id           = body.order_id,
            server_id          = body.server_id,
            connection_address = body.connection_address,
            connection_port    = body.connection_port,
        )
        try:
            wallet = assigner.assign(body.address.strip(), payload)
        except WalletNotFound as e:
            raise HTTPException(status_code=404, detail=str(e))
        except BindingConflict as e:
            raise HTTPException(status_code=409, detail=str(e))
        return wallet.to_dict()

    @router.get("/wallets")
    def wallets() -> list[dict]:
        return registry.snapshot()

    @router.get("/health")
    def health() -> dict:
        return {"ok": True, "wallets": len(registry)}

    app = FastAPI(title="Wallet Pool")
    app.include_router(router)
    return app


def serve_in_background(app: FastAPI, host: str, port: int) -> threading.Thread:
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level="warning"))
    t = threading.Thread(target=server.run, name="report-api", daemon=True)
    t.start()
    log.info(f"[api] Listening on {host}:{port}")
    return t
