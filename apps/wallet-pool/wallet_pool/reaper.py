"""
Timeout Reaper
==============

Cancels orders whose machines went quiet.

  PENDING: no first report within 15 min of start_time    → cancel order
  ACTIVE:  no report within 10 min of last_report_time    → cancel order
  UNBOUND: never touched

The scan happens under the registry lock; cancellations go out afterwards,
one at a time, with the lock released. A failed cancellation is logged and
comes up again on the next scan.

Local bindings are left alone after a cancellation unless reset_on_cancel is
set; otherwise the next status refresh brings them back in line.
"""

from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Callable

from .errors import MarketplaceError
from .models import Active, Pending, Unbound, utcnow
from .registry import WalletRegistry

log = logging.getLogger(__name__)

PENDING_TIMEOUT = timedelta(minutes=15)
ACTIVE_TIMEOUT  = timedelta(minutes=10)


class TimeoutReaper:
    def __init__(
        self,
        registry:        WalletRegistry,
        marketplace,
        clock:           Callable[[], datetime] = utcnow,
        pending_timeout: timedelta = PENDING_TIMEOUT,
        active_timeout:  timedelta = ACTIVE_TIMEOUT,
        reset_on_cancel: bool = False,
    ):
        self.registry        = registry
        self.marketplace     = marketplace
        self.clock           = clock
        self.pending_timeout = pending_timeout
        self.active_timeout  = active_timeout
        self.reset_on_cancel = reset_on_cancel

    def expired_orders(self) -> list[int]:
        now = self.clock()
        order_ids: list[int] = []

        with self.registry.transaction():
            for wallet in self.registry.iterate():
                binding = wallet.binding
                if isinstance(binding, Pending):
                    if wallet.start_time is None:
                        continue
                    if now - wallet.start_time > self.pending_timeout:
                        log.info(f"[reaper] {wallet.address}: no report since start on order {binding.payload.order_id}")
                        order_ids.append(binding.payload.order_id)
                elif isinstance(binding, Active):
                    if wallet.last_report_time is None:
                        continue
                    if now - wallet.last_report_time > self.active_timeout:
                        log.info(f"[reaper] {wallet.address}: report overdue on order {binding.payload.order_id}")
                        order_ids.append(binding.payload.order_id)

        return list(dict.fromkeys(order_ids))

    def run(self) -> list[int]:
        """Scan once and cancel every expired order. Returns the orders cancelled."""
        cancelled: list[int] = []
        for order_id in self.expired_orders():
            try:
                self.marketplace.cancel_order(order_id)
            except MarketplaceError as e:
                log.error(f"[reaper] Order {order_id} cancellation failed: {e}")
                continue
            log.warning(f"[reaper] Order {order_id} cancelled")
            cancelled.append(order_id)

        if cancelled and self.reset_on_cancel:
            self._release(set(cancelled))
        return cancelled

    def _release(self, order_ids: set[int]) -> None:
        with self.registry.transaction():
            for snapshot in self.registry.iterate():
                payload = snapshot.binding.payload
                if payload is None or payload.order_id not in order_ids:
                    continue
                wallet = self.registry.get(snapshot.address)
                wallet.binding          = Unbound()
                wallet.start_time       = None
                wallet.last_report_time = None
                log.info(f"[reaper] {wallet.address} released from order {payload.order_id}")
