"""
Order Assigner
==============

Keeps wallet bindings in line with the marketplace and hands out SUB wallets
that are free to be deployed.

filter():
  1. Status refresh: list our orders, ask each rented machine which address
     it runs, overwrite the matching wallet bindings and release wallets whose
     order is gone. A failing status query aborts the refresh and the cycle
     yields no candidates.
  2. Candidate selection: every SUB wallet that is still UNBOUND.

assign() and record_report() are the two entry points used outside the
reconciliation cycle (operator assignment and machine liveness reports).
"""

from __future__ import annotations
import enum
import logging
from datetime import datetime
from typing import Callable

from .errors import BindingConflict, MarketplaceError, WalletNotFound
from .models import (
    Active,
    Binding,
    BindingPayload,
    BindingState,
    Pending,
    Role,
    Unbound,
    Wallet,
    utcnow,
)
from .registry import WalletRegistry

log = logging.getLogger(__name__)


class RefreshOutcome(str, enum.Enum):
    MERGED  = "MERGED"    # Bindings merged, vanished orders released
    SKIPPED = "SKIPPED"   # Order listing failed, registry left untouched
    ABORTED = "ABORTED"   # Status query reported errors, registry left untouched


class OrderAssigner:
    def __init__(
        self,
        registry:     WalletRegistry,
        marketplace,
        status_query,
        clock:        Callable[[], datetime] = utcnow,
    ):
        self.registry     = registry
        self.marketplace  = marketplace
        self.status_query = status_query
        self.clock        = clock

    # ─── Status Refresh ───────────────────────────────────────────────────────

    def refresh(self) -> RefreshOutcome:
        """
        Pull the authoritative order/address bindings and merge them in.

        MERGED:  every reported binding was applied, and wallets bound to an
                 order the marketplace no longer lists went back to UNBOUND
        SKIPPED: orders could not be listed; nothing changed, candidate
                 selection may still run on the current registry
        ABORTED: the status query reported errors; nothing changed and the
                 cycle should hand out no candidates
        """
        try:
            orders = self.marketplace.list_orders()
        except MarketplaceError as e:
            log.warning(f"[assigner] Could not list orders, skipping refresh: {e}")
            return RefreshOutcome.SKIPPED

        pairs, errors = self.status_query.query(orders)
        if errors:
            log.warning(f"[assigner] Status query failed on {len(errors)} machine(s), refresh aborted")
            for err in errors:
                log.debug(f"[assigner]   {err}")
            return RefreshOutcome.ABORTED

        live_orders = {order.order_id for order in orders}
        with self.registry.transaction():
            for address, binding in pairs:
                wallet = self.registry.get(address)
                if wallet is None:
                    log.debug(f"[assigner] {address} runs on order {binding.payload.order_id} but is not tracked")
                    continue
                self._merge_binding(wallet, binding)
            self._release_vanished(live_orders)
        return RefreshOutcome.MERGED

    def _merge_binding(self, wallet: Wallet, binding: Binding) -> None:
        current = wallet.binding
        same_order = (
            current.payload is not None
            and binding.payload is not None
            and current.payload.order_id == binding.payload.order_id
        )
        if same_order and isinstance(current, Active) and isinstance(binding, Pending):
            # The machine already reported in; the remote view cannot tell us more
            return
        if current == binding:
            return

        if binding.payload is not None and not same_order:
            # New deployment: its deadlines start now
            wallet.start_time       = self.clock()
            wallet.last_report_time = None
        wallet.binding = binding
        log.info(f"[assigner] {wallet.address}: {current.state.value} → {binding.state.value} (from status refresh)")

    def _release_vanished(self, live_orders: set[int]) -> None:
        """Unbind every wallet whose order is gone from the marketplace. Caller holds the lock."""
        for snapshot in self.registry.iterate():
            payload = snapshot.binding.payload
            if payload is None or payload.order_id in live_orders:
                continue
            wallet = self.registry.get(snapshot.address)
            wallet.binding          = Unbound()
            wallet.start_time       = None
            wallet.last_report_time = None
            log.info(f"[assigner] {wallet.address} released, order {payload.order_id} is no longer listed")

    # ─── Candidate Selection ──────────────────────────────────────────────────

    def candidates(self) -> list[Wallet]:
        return [
            w for w in self.registry.iterate()
            if w.role == Role.SUB and w.state == BindingState.UNBOUND
        ]

    def filter(self) -> list[Wallet]:
        if self.refresh() == RefreshOutcome.ABORTED:
            return []
        wallets = self.candidates()
        log.info(f"[assigner] {len(wallets)} SUB wallet(s) waiting for a machine")
        return wallets

    # ─── Assignment / Liveness ────────────────────────────────────────────────

    def assign(self, address: str, payload: BindingPayload) -> Wallet:
        with self.registry.transaction():
            wallet = self.registry.get(address)
            if wallet is None:
                raise WalletNotFound(address)
            if not isinstance(wallet.binding, Unbound):
                raise BindingConflict(address, wallet.state.value)

            wallet.binding    = Pending(payload)
            wallet.start_time = self.clock()
            snapshot = wallet.copy()

        log.info(
            f"[assigner] {address} assigned to order {payload.order_id} "
            f"(server {payload.server_id})"
        )
        return snapshot

    def record_report(self, address: str) -> bool:
        """Note a liveness report. Returns False only when the address is unknown."""
        with self.registry.transaction():
            wallet = self.registry.get(address)
            if wallet is None:
                log.warning(f"[assigner] Report from untracked address {address}")
                return False

            if isinstance(wallet.binding, Pending):
                wallet.last_report_time = self.clock()
                wallet.binding          = Active(wallet.binding.payload)
                log.info(f"[assigner] {address} is live on order {wallet.binding.payload.order_id}")
        return True
