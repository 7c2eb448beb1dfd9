"""
Address Classifier
==================

Decides whether a raw address is a MASTER wallet, a SUB wallet, or neither.

Two remote checks run side by side for every address:
  - master check: POST {address} → success unless the body contains "Error"
  - sub check:    POST {address} → success if the body contains
                  "Task registered successfully"

MASTER beats SUB. A transport failure on either check makes the address
UNCLASSIFIED for this cycle. It is logged, never raised, and the address is
retried next cycle because it was not stored.
"""

from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import requests

from .models import Role, Wallet
from .registry import WalletRegistry

log = logging.getLogger(__name__)

DEFAULT_MASTER_URL     = "https://mainnet.nimble.technology/check_balance"
DEFAULT_SUB_URL        = "https://mainnet.nimble.technology/register_particle"
DEFAULT_ERROR_MARKER   = "Error"
DEFAULT_SUCCESS_MARKER = "Task registered successfully"


class AddressClassifier:
    def __init__(
        self,
        master_url:     str = DEFAULT_MASTER_URL,
        sub_url:        str = DEFAULT_SUB_URL,
        error_marker:   str = DEFAULT_ERROR_MARKER,
        success_marker: str = DEFAULT_SUCCESS_MARKER,
        timeout:        Optional[float] = 30,
        session:        Optional[requests.Session] = None,
    ):
        self.master_url     = master_url
        self.sub_url        = sub_url
        self.error_marker   = error_marker
        self.success_marker = success_marker
        self.timeout        = timeout
        self.session        = session or requests.Session()

    # ─── Remote Checks ────────────────────────────────────────────────────────

    def _post(self, url: str, address: str) -> Optional[str]:
        """POST the address and return the response body, or None on transport failure."""
        log.info(f"[classifier] POST {url} address={address}")
        try:
            resp = self.session.post(url, json={"address": address}, timeout=self.timeout)
        except requests.RequestException as e:
            log.warning(f"[classifier] Request to {url} failed: {e}")
            return None

        if not resp.ok:
            log.warning(f"[classifier] {url} returned {resp.status_code}: {resp.text[:200]}")
            return None

        log.info(f"[classifier] {url} → {resp.status_code} {resp.text[:200]}")
        return resp.text

    def _master_check(self, address: str) -> Optional[bool]:
        body = self._post(self.master_url, address)
        if body is None:
            return None
        return self.error_marker not in body

    def _sub_check(self, address: str) -> Optional[bool]:
        body = self._post(self.sub_url, address)
        if body is None:
            return None
        return self.success_marker in body

    # ─── Classification ───────────────────────────────────────────────────────

    def classify(self, address: str) -> Role:
        """Run both checks concurrently and wait for both before deciding."""
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="classify") as pool:
            master_future = pool.submit(self._master_check, address)
            sub_future    = pool.submit(self._sub_check, address)
            is_master = master_future.result()
            is_sub    = sub_future.result()

        if is_master is None or is_sub is None:
            role = Role.UNCLASSIFIED
        elif is_master:
            role = Role.MASTER
        elif is_sub:
            role = Role.SUB
        else:
            role = Role.UNCLASSIFIED

        log.info(f"[classifier] {address}: master={is_master} sub={is_sub} → {role.value}")
        return role

    def check(self, registry: WalletRegistry, addresses: Iterable[str]) -> list[Wallet]:
        """
        Classify every address the registry does not know yet and store the
        ones that came back MASTER or SUB.
        Returns the wallets inserted by this pass.
        """
        added: list[Wallet] = []
        seen: set[str] = set()

        for raw in addresses:
            address = (raw or "").strip()
            if not address or address in seen:
                continue
            seen.add(address)

            known = registry.get(address)
            if known is not None:
                log.debug(f"[classifier] {address} already classified as {known.role.value}")
                continue

            role = self.classify(address)
            if role == Role.UNCLASSIFIED:
                continue

            with registry.transaction():
                if registry.contains(address):
                    continue
                wallet = registry.upsert(Wallet(address=address, role=role))
            added.append(wallet.copy())

        if added:
            log.info(f"[classifier] {len(added)} new wallet(s) registered")
        return added
