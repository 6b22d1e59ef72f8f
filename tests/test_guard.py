"""
Reentrancy and atomicity tests.
"""
import pytest

from limit_settlement.errors import ExternalCallError, ReentrancyError, StateError
from limit_settlement.guard import NonReentrantLock

from .conftest import EXECUTION_FEE, FEES, signed_request


@pytest.fixture
def sell_order(direct_setup, maker, token_a, token_b):
    request = signed_request(direct_setup, maker, token_in=token_a.address, token_out=token_b.address)
    return direct_setup.place_order(maker.public_key, request, value=FEES)


def test_lock_rejects_nesting_and_releases_on_error():
    lock = NonReentrantLock()

    with pytest.raises(ReentrancyError):
        with lock:
            with lock:
                pass
    assert not lock.locked

    with pytest.raises(RuntimeError):
        with lock:
            raise RuntimeError("boom")
    assert not lock.locked


def test_reentrant_token_callback_aborts_call(direct_setup, sell_order, maker, taker, token_a, token_b):
    def reenter(sender, to, amount):
        direct_setup.cancel_order(maker.public_key, sell_order.order_id)

    token_a.on_transfer = reenter

    with pytest.raises(ReentrancyError):
        direct_setup.execute_order(taker.public_key, sell_order.order_id)

    assert direct_setup.get_order(sell_order.order_id) == sell_order
    assert token_a.balance_of(taker.public_key) == 10_000
    assert token_a.balance_of(direct_setup.contract_id) == 1000
    assert not direct_setup.guard.locked

    token_a.on_transfer = None
    order = direct_setup.execute_order(taker.public_key, sell_order.order_id)
    assert not order.active


def test_reentrant_value_receipt_aborts_call(direct_setup, sell_order, taker, ledger, token_b):
    def reenter(sender, amount):
        direct_setup.execute_order(taker.public_key, sell_order.order_id)

    ledger.on_value_received(taker.public_key, reenter)

    with pytest.raises(ReentrancyError):
        direct_setup.execute_order(taker.public_key, sell_order.order_id)

    assert direct_setup.get_order(sell_order.order_id).active
    assert token_b.balance_of(taker.public_key) == 10_000


def test_failing_refund_recipient_aborts_call(direct_setup, sell_order, taker, ledger, token_a):
    def reject(sender, amount):
        raise RuntimeError("recipient rejects value")

    ledger.on_value_received(taker.public_key, reject)

    with pytest.raises(ExternalCallError, match="Execution fee refund failed"):
        direct_setup.execute_order(taker.public_key, sell_order.order_id)

    assert direct_setup.get_order(sell_order.order_id).active
    assert direct_setup.held_execution_fees == EXECUTION_FEE
    assert ledger.balance(taker.public_key) == 1000
    assert token_a.balance_of(taker.public_key) == 10_000


def test_sequential_calls_are_not_blocked(direct_setup, sell_order, maker, taker):
    direct_setup.cancel_order(maker.public_key, sell_order.order_id)

    # The lock is free again; the stale order is rejected by its active flag
    with pytest.raises(StateError, match="not active"):
        direct_setup.execute_order(taker.public_key, sell_order.order_id)
