"""
Wallet Registry
===============

The in-memory mapping from address to Wallet. One instance per process,
constructed by the entry point and handed to every component.

Locking:
  - Every accessor takes the registry lock for the duration of the call only
  - transaction() holds the lock across a check-then-mutate sequence
    (assignment re-checks UNBOUND inside one)
  - Nothing holds the lock across a network call
"""

from __future__ import annotations
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

from .models import Role, Wallet


class WalletRegistry:
    def __init__(self):
        self._wallets: dict[str, Wallet] = {}
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self) -> Iterator["WalletRegistry"]:
        with self._lock:
            yield self

    def get(self, address: str) -> Optional[Wallet]:
        """Return the live wallet object. Mutate it only inside transaction()."""
        with self._lock:
            return self._wallets.get(address)

    def contains(self, address: str) -> bool:
        with self._lock:
            return address in self._wallets

    def upsert(self, wallet: Wallet) -> Wallet:
        if wallet.role == Role.UNCLASSIFIED:
            raise ValueError(f"Refusing to store unclassified wallet {wallet.address!r}")
        with self._lock:
            self._wallets[wallet.address] = wallet
        return wallet

    def iterate(self) -> list[Wallet]:
        """Snapshot copies of every wallet, safe to read without the lock."""
        with self._lock:
            return [w.copy() for w in self._wallets.values()]

    def snapshot(self) -> list[dict]:
        return [w.to_dict() for w in self.iterate()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._wallets)

    def __contains__(self, address: str) -> bool:
        return self.contains(address)
