"""
Pytest configuration and fixtures for settlement engine tests.
"""
import pytest
from stellar_sdk import Keypair

from limit_settlement.config import Settings
from limit_settlement.engine import SettlementEngine
from limit_settlement.ledger import InMemoryLedger, contract_address
from limit_settlement.types import OrderIdScheme, OrderSide, PlaceOrderRequest, SettlementMode

T0 = 1_700_000_000
HOUR = 3600
PLATFORM_FEE = 3
EXECUTION_FEE = 10
FEES = PLATFORM_FEE + EXECUTION_FEE
UNLIMITED = 2**255


class ConstantRateRouter:
    """AMM router double: pays amount_in * rate out of its own reserves and misreports the result."""

    def __init__(self, ledger, address, rate_num=1, rate_den=1):
        self.ledger = ledger
        self.address = address
        self.rate_num = rate_num
        self.rate_den = rate_den
        self.calls = []

    def swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens(
        self, caller, amount_in, amount_out_min, path, to, deadline
    ):
        if self.ledger.now() > deadline:
            raise RuntimeError("EXPIRED")
        token_in = self.ledger.contract(path[0])
        token_out = self.ledger.contract(path[-1])
        if not token_in.transfer_from(self.address, caller, self.address, amount_in):
            raise RuntimeError("TRANSFER_FROM_FAILED")

        before = token_out.balance_of(to)
        if not token_out.transfer(self.address, to, amount_in * self.rate_num // self.rate_den):
            raise RuntimeError("TRANSFER_FAILED")
        if token_out.balance_of(to) - before < amount_out_min:
            raise RuntimeError("INSUFFICIENT_OUTPUT_AMOUNT")

        self.calls.append(
            {"caller": caller, "amount_in": amount_in, "amount_out_min": amount_out_min,
             "path": path, "to": to, "deadline": deadline}
        )
        return [amount_in, 10**30]


def make_settings(controller: str, **overrides) -> Settings:
    values = dict(
        controller_address=controller,
        platform_fee=PLATFORM_FEE,
        execution_fee=EXECUTION_FEE,
        settlement_mode=SettlementMode.Direct,
        order_id_scheme=OrderIdScheme.Nonce,
    )
    values.update(overrides)
    return Settings(**values)


def signed_request(engine, keypair, **fields) -> PlaceOrderRequest:
    """Build an order request for ``keypair`` and sign it for ``engine``."""
    values = dict(
        maker=keypair.public_key,
        amount_in=1000,
        amount_out=500,
        side=OrderSide.Sell,
        expiry=T0 + HOUR,
    )
    values.update(fields)
    request = PlaceOrderRequest(**values)
    return request.model_copy(update={"signature": engine.signatures.sign(keypair, request)})


@pytest.fixture
def ledger():
    """Fresh in-memory host at a fixed time."""
    return InMemoryLedger(timestamp=T0, block=100)


@pytest.fixture
def controller():
    return Keypair.random()


@pytest.fixture
def maker():
    return Keypair.random()


@pytest.fixture
def taker():
    return Keypair.random()


@pytest.fixture
def token_a(ledger):
    return ledger.create_token("TKA")


@pytest.fixture
def token_b(ledger):
    return ledger.create_token("TKB")


@pytest.fixture
def direct_engine(ledger, controller):
    """Engine settling signed orders peer to peer."""
    return SettlementEngine(ledger, make_settings(controller.public_key))


@pytest.fixture
def router(ledger, token_b):
    router = ConstantRateRouter(ledger, contract_address("router"), rate_num=1, rate_den=2)
    ledger.deploy(router.address, router)
    token_b.mint(router.address, 1_000_000)
    return router


@pytest.fixture
def router_engine(ledger, controller, router):
    """Engine settling allowance-backed orders through the AMM router."""
    return SettlementEngine(
        ledger, make_settings(controller.public_key, settlement_mode=SettlementMode.Router)
    )


@pytest.fixture
def fund(ledger, token_a, token_b):
    """Give accounts native value, both tokens and unlimited allowances for ``spender``."""
    def _fund(spender, *keypairs, native=1_000, tokens=10_000):
        for kp in keypairs:
            ledger.mint_native(kp.public_key, native)
            for token in (token_a, token_b):
                token.mint(kp.public_key, tokens)
                token.approve(kp.public_key, spender, UNLIMITED)
    return _fund


@pytest.fixture
def direct_setup(direct_engine, fund, maker, taker):
    fund(direct_engine.contract_id, maker, taker)
    return direct_engine


@pytest.fixture
def router_setup(router_engine, fund, maker, taker):
    fund(router_engine.contract_id, maker, taker)
    return router_engine
