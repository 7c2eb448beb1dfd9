"""
Errors
======

Exceptions raised by the wallet pool.

Transport failures inside a reconciliation cycle are logged and contained by
the component that hit them. The classes below are the ones that cross a
component boundary and reach a caller.
"""

from __future__ import annotations


class WalletPoolError(RuntimeError):
    """Base class for every error raised by the pool."""


class WalletNotFound(WalletPoolError):
    def __init__(self, address: str):
        super().__init__(f"Wallet address {address!r} is not tracked")
        self.address = address


class BindingConflict(WalletPoolError):
    def __init__(self, address: str, state: str):
        super().__init__(
            f"Wallet {address!r} is {state}, only UNBOUND wallets can be assigned"
        )
        self.address = address
        self.state   = state


class MarketplaceError(WalletPoolError):
    """Order listing or cancellation failed (transport, HTTP or API error code)."""


class StatusQueryError(WalletPoolError):
    """A rented machine could not be queried for its bound address."""


class ConfigError(WalletPoolError):
    """Configuration file is unreadable or a required value is missing."""
