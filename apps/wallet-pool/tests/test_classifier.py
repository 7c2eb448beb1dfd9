import threading
from unittest.mock import MagicMock

import pytest
import requests

from wallet_pool.classifier import AddressClassifier
from wallet_pool.models import BindingPayload, BindingState, Pending, Role, Wallet

MASTER_URL = "https://nimble.test/check_balance"
SUB_URL = "https://nimble.test/register_particle"


def _response(text: str, status: int = 200):
    resp = MagicMock()
    resp.text = text
    resp.status_code = status
    resp.ok = 200 <= status < 400
    return resp


def _classifier(master, sub):
    """master/sub: response body text, or an exception instance to raise."""
    session = MagicMock()

    def post(url, json=None, timeout=None):
        outcome = master if url == MASTER_URL else sub
        if isinstance(outcome, Exception):
            raise outcome
        return outcome if not isinstance(outcome, str) else _response(outcome)

    session.post.side_effect = post
    return AddressClassifier(master_url=MASTER_URL, sub_url=SUB_URL, session=session), session


def test_master_when_balance_check_has_no_error():
    clf, _ = _classifier('{"balance": 12}', "Task registered successfully")
    assert clf.classify("A1") == Role.MASTER


def test_sub_when_only_particle_registration_succeeds():
    clf, _ = _classifier("Error: address not found", "Task registered successfully")
    assert clf.classify("A1") == Role.SUB


def test_unclassified_when_neither_check_succeeds():
    clf, _ = _classifier("Error: address not found", "Task rejected")
    assert clf.classify("A1") == Role.UNCLASSIFIED


def test_transport_failure_on_either_check_is_unclassified():
    clf, _ = _classifier(requests.ConnectionError("down"), "Task registered successfully")
    assert clf.classify("A1") == Role.UNCLASSIFIED


def test_http_error_status_is_treated_as_transport_failure():
    clf, _ = _classifier(_response("oops", status=502), "Task registered successfully")
    assert clf.classify("A1") == Role.UNCLASSIFIED


def test_both_checks_post_the_address_as_json():
    clf, session = _classifier("ok", "nope")
    clf.classify("A1")

    urls = sorted(call.args[0] for call in session.post.call_args_list)
    assert urls == sorted([MASTER_URL, SUB_URL])
    for call in session.post.call_args_list:
        assert call.kwargs["json"] == {"address": "A1"}


def test_checks_run_concurrently():
    barrier = threading.Barrier(2, timeout=2)
    session = MagicMock()

    def post(url, json=None, timeout=None):
        # Both requests must be in flight at the same time to pass the barrier
        barrier.wait()
        return _response("Error" if url == MASTER_URL else "Task registered successfully")

    session.post.side_effect = post
    clf = AddressClassifier(master_url=MASTER_URL, sub_url=SUB_URL, session=session)

    assert clf.classify("A1") == Role.SUB


def test_check_inserts_classified_and_drops_unclassified(registry):
    session = MagicMock()

    def post(url, json=None, timeout=None):
        address = json["address"]
        if url == MASTER_URL:
            return _response("ok" if address == "M1" else "Error")
        return _response("Task registered successfully" if address == "S1" else "nope")

    session.post.side_effect = post
    clf = AddressClassifier(master_url=MASTER_URL, sub_url=SUB_URL, session=session)

    added = clf.check(registry, ["M1", "S1", "X1"])

    assert sorted(w.address for w in added) == ["M1", "S1"]
    assert registry.get("M1").role == Role.MASTER
    assert registry.get("S1").role == Role.SUB
    assert registry.get("S1").state == BindingState.UNBOUND
    assert registry.get("X1") is None


def test_check_skips_known_addresses_without_network(registry):
    payload = BindingPayload(order_id=7, server_id=3)
    registry.upsert(Wallet(address="A1", role=Role.SUB, binding=Pending(payload)))
    clf, session = _classifier("ok", "Task registered successfully")

    added = clf.check(registry, ["A1", "A1"])

    assert added == []
    session.post.assert_not_called()
    wallet = registry.get("A1")
    assert wallet.role == Role.SUB
    assert wallet.binding == Pending(payload)


def test_check_ignores_blank_and_duplicate_entries(registry):
    clf, session = _classifier("Error", "Task registered successfully")

    clf.check(registry, ["", "  ", "A1", " A1 "])

    assert len(registry) == 1
    assert session.post.call_count == 2


def test_check_swallows_transport_failures(registry):
    clf, _ = _classifier(requests.Timeout("slow"), requests.ConnectionError("down"))

    added = clf.check(registry, ["A1"])

    assert added == []
    assert len(registry) == 0


@pytest.mark.parametrize("runs", [2, 3])
def test_rerunning_check_is_idempotent(registry, runs):
    clf, session = _classifier("Error", "Task registered successfully")
    for _ in range(runs):
        clf.check(registry, ["A1"])

    assert registry.get("A1").role == Role.SUB
    assert session.post.call_count == 2
