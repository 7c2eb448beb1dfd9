"""
Marketplace Client
==================

Thin client for the GPU rental marketplace (Clore-style REST API).

  GET  /v1/my_orders       → {"code": 0, "orders": [...]}
  POST /v1/cancel_order    {"id": <order_id>} → {"code": 0}

Every failure (transport, HTTP status, non-zero API code) is raised as
MarketplaceError so callers can decide whether it is fatal for them.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

import requests

from .errors import MarketplaceError
from .models import BindingPayload

log = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.clore.ai"
SSH_PORT        = 22


# ─── Order ────────────────────────────────────────────────────────────────────

@dataclass
class Order:
    order_id:           int
    server_id:          int
    connection_address: Optional[str] = None
    connection_port:    Optional[int] = None
    expired:            bool = False

    @classmethod
    def from_api(cls, raw: dict) -> "Order":
        cluster = raw.get("pub_cluster") or []
        return cls(
            order_id           = int(raw["id"]),
            server_id          = int(raw.get("si") or raw.get("server_id") or 0),
            connection_address = cluster[0] if cluster else None,
            connection_port    = _ssh_port(raw.get("tcp_ports") or []),
            expired            = bool(raw.get("expired", False)),
        )

    def to_payload(self) -> BindingPayload:
        return BindingPayload(
            order_id           = self.order_id,
            server_id          = self.server_id,
            connection_address = self.connection_address,
            connection_port    = self.connection_port,
        )


def _ssh_port(tcp_ports: list) -> Optional[int]:
    """Find the public port forwarded to 22 in entries like "22:10001"."""
    for entry in tcp_ports:
        inner, _, outer = str(entry).partition(":")
        if inner.strip() == str(SSH_PORT) and outer.strip().isdigit():
            return int(outer)
    return None


# ─── Client ───────────────────────────────────────────────────────────────────

class MarketplaceClient:
    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        token:   str = "",
        timeout: Optional[float] = 30,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.token   = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        return {
            "auth":         self.token,
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = f"{self.api_url}{path}"
        try:
            resp = self.session.request(
                method,
                url,
                headers = self._headers(),
                timeout = self.timeout,
                **kwargs,
            )
        except requests.RequestException as e:
            raise MarketplaceError(f"{method} {path} failed: {e}") from e

        if not resp.ok:
            raise MarketplaceError(f"{method} {path} returned {resp.status_code}: {resp.text[:200]}")

        try:
            data = resp.json()
        except ValueError as e:
            raise MarketplaceError(f"{method} {path} returned non-JSON body: {resp.text[:200]}") from e

        code = data.get("code", 0)
        if code != 0:
            raise MarketplaceError(f"{method} {path} returned API code {code}: {data.get('error', '')}")
        return data

    def list_orders(self) -> list[Order]:
        """Return the caller's live (non-expired) orders."""
        data   = self._request("GET", "/v1/my_orders")
        orders = []
        for raw in data.get("orders", []):
            try:
                order = Order.from_api(raw)
            except (KeyError, TypeError, ValueError) as e:
                log.warning(f"[marketplace] Skipping malformed order {raw!r}: {e}")
                continue
            if not order.expired:
                orders.append(order)
        log.info(f"[marketplace] {len(orders)} active order(s)")
        return orders

    def cancel_order(self, order_id: int) -> None:
        self._request("POST", "/v1/cancel_order", json={"id": order_id})
        log.info(f"[marketplace] Order {order_id} cancelled")
