"""
Remote Status Query
===================

Asks every rented machine which wallet address it is running.

For each order with a public SSH endpoint:
  ssh -p <port> <user>@<host> <status_command>

Every non-empty line of stdout is an address bound to that order. Machines
are queried one after another; failures are collected as strings and
returned next to the results so the caller can decide to abort.
"""

from __future__ import annotations
import logging
import subprocess
from typing import Optional

from .errors import StatusQueryError
from .marketplace import Order
from .models import Binding, Pending

log = logging.getLogger(__name__)

DEFAULT_STATUS_COMMAND = "cat /root/wallet_address"


class SshStatusQuery:
    def __init__(
        self,
        user:           str = "root",
        status_command: str = DEFAULT_STATUS_COMMAND,
        identity_file:  Optional[str] = None,
        timeout:        float = 20,
    ):
        self.user           = user
        self.status_command = status_command
        self.identity_file  = identity_file
        self.timeout        = timeout

    def _build_cmd(self, host: str, port: int) -> list[str]:
        cmd = [
            "ssh",
            "-p", str(port),
            "-o", "BatchMode=yes",                 # Never prompt for a password
            "-o", "StrictHostKeyChecking=no",      # Rented hosts are new every time
            "-o", f"ConnectTimeout={int(self.timeout)}",
        ]
        if self.identity_file:
            cmd += ["-i", self.identity_file]
        cmd += [f"{self.user}@{host}", self.status_command]
        return cmd

    def _query_order(self, order: Order) -> list[str]:
        cmd = self._build_cmd(order.connection_address, order.connection_port)
        log.debug(f"[ssh] cmd: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output = True,
                text           = True,
                timeout        = self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise StatusQueryError(f"order {order.order_id}: ssh timed out after {self.timeout}s") from e
        except OSError as e:
            raise StatusQueryError(f"order {order.order_id}: ssh could not start: {e}") from e

        if result.returncode != 0:
            raise StatusQueryError(
                f"order {order.order_id}: ssh exit {result.returncode}: {result.stderr.strip()[:200]}"
            )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def query(self, orders: list[Order]) -> tuple[list[tuple[str, Binding]], list[str]]:
        """
        Returns ([(address, binding), ...], [error, ...]).
        Orders without an SSH endpoint are skipped silently.
        """
        pairs:  list[tuple[str, Binding]] = []
        errors: list[str] = []

        for order in orders:
            if not order.connection_address or not order.connection_port:
                log.debug(f"[ssh] Order {order.order_id} has no SSH endpoint yet, skipping")
                continue
            try:
                addresses = self._query_order(order)
            except StatusQueryError as e:
                log.warning(f"[ssh] {e}")
                errors.append(str(e))
                continue
            for address in addresses:
                pairs.append((address, Pending(order.to_payload())))

        log.info(f"[ssh] {len(pairs)} bound address(es), {len(errors)} error(s)")
        return pairs, errors
