"""Shared fixtures for wallet pool tests."""

import sys
from pathlib import Path

APP_ROOT = Path(__file__).resolve().parents[1]
if str(APP_ROOT) not in sys.path:
    sys.path.insert(0, str(APP_ROOT))

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from wallet_pool.models import BindingPayload, Role, Wallet
from wallet_pool.registry import WalletRegistry

T0 = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    return WalletRegistry()


@pytest.fixture
def seeded_registry(registry):
    """One MASTER and two SUB wallets, all unbound."""
    registry.upsert(Wallet(address="M1", role=Role.MASTER))
    registry.upsert(Wallet(address="S1", role=Role.SUB))
    registry.upsert(Wallet(address="S2", role=Role.SUB))
    return registry


@pytest.fixture
def marketplace():
    mock = MagicMock()
    mock.list_orders.return_value = []
    return mock


@pytest.fixture
def status_query():
    mock = MagicMock()
    mock.query.return_value = ([], [])
    return mock


@pytest.fixture
def payload():
    return BindingPayload(order_id=7, server_id=3, connection_address="n1.c1.example.net", connection_port=10022)
