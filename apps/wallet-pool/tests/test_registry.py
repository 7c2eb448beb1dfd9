import threading

import pytest

from wallet_pool.models import Active, BindingPayload, BindingState, Pending, Role, Unbound, Wallet
from wallet_pool.registry import WalletRegistry


def test_upsert_and_get_roundtrip(registry):
    registry.upsert(Wallet(address="A1", role=Role.SUB))

    wallet = registry.get("A1")
    assert wallet.address == "A1"
    assert wallet.role == Role.SUB
    assert wallet.state == BindingState.UNBOUND
    assert "A1" in registry
    assert len(registry) == 1


def test_upsert_same_address_keeps_single_entry(registry):
    registry.upsert(Wallet(address="A1", role=Role.SUB))
    registry.upsert(Wallet(address="A1", role=Role.MASTER))

    assert len(registry) == 1
    assert registry.get("A1").role == Role.MASTER


def test_upsert_rejects_unclassified_wallet(registry):
    with pytest.raises(ValueError):
        registry.upsert(Wallet(address="A1", role=Role.UNCLASSIFIED))
    assert len(registry) == 0


def test_get_unknown_address_returns_none(registry):
    assert registry.get("nope") is None
    assert not registry.contains("nope")


def test_iterate_returns_detached_snapshots(seeded_registry):
    snapshots = seeded_registry.iterate()
    snapshots[0].binding = Pending(BindingPayload(order_id=1, server_id=1))

    assert all(w.state == BindingState.UNBOUND for w in seeded_registry.iterate())


def test_snapshot_renders_binding_payload(registry):
    payload = BindingPayload(order_id=7, server_id=3, connection_address="host", connection_port=2200)
    registry.upsert(Wallet(address="A1", role=Role.SUB, binding=Active(payload)))

    [row] = registry.snapshot()
    assert row["state"] == "ACTIVE"
    assert row["role"] == "SUB"
    assert row["binding"] == {
        "order_id": 7,
        "server_id": 3,
        "connection_address": "host",
        "connection_port": 2200,
    }
    assert row["start_time"] is None


def test_bindings_compare_by_variant_and_payload():
    payload = BindingPayload(order_id=7, server_id=3)
    assert Unbound() == Unbound()
    assert Pending(payload) == Pending(payload)
    assert Pending(payload) != Active(payload)
    assert Unbound().payload is None


def test_transaction_blocks_other_threads_until_released(registry):
    registry.upsert(Wallet(address="A1", role=Role.SUB))
    entered = threading.Event()
    seen = []

    def reader():
        entered.set()
        seen.append(registry.get("A1").role)

    with registry.transaction():
        registry.get("A1").role = Role.MASTER
        t = threading.Thread(target=reader)
        t.start()
        entered.wait(timeout=1)
        t.join(timeout=0.1)
        assert t.is_alive()

    t.join(timeout=1)
    assert seen == [Role.MASTER]


def test_fresh_registries_are_independent():
    a, b = WalletRegistry(), WalletRegistry()
    a.upsert(Wallet(address="A1", role=Role.SUB))
    assert len(b) == 0
