"""
The two ways an order can be authorized and settled.

``DirectSettlement`` takes signed orders and settles them peer to peer with
proportional partial fills. ``RouterSettlement`` takes orders backed by a token
allowance and settles each one in a single swap through an AMM router.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Tuple

from . import external
from .amounts import checked_add, checked_mul_div, checked_sub
from .errors import AuthorizationError, ExternalCallError, StateError, ValidationError
from .ledger import AmmRouter, Ledger, Token
from .types import Order, OrderSide, OrderStatus, PlaceOrderRequest, SettlementMode
from .validator import OrderValidator

logger = logging.getLogger(__name__)

TOKEN_METHODS = ("balance_of", "allowance", "transfer", "transfer_from", "approve")


@dataclass
class Fill:
    amount_in: int
    amount_out: int


class SettlementStrategy(ABC):
    mode: SettlementMode

    def __init__(self, ledger: Ledger, validator: OrderValidator, contract_id: str):
        self.ledger = ledger
        self.validator = validator
        self.contract_id = contract_id

    @abstractmethod
    def authorize(self, caller: str, request: PlaceOrderRequest) -> Tuple[str, str, Optional[int]]:
        """Validate a new order; return (order_id, maker, nonce)."""

    def on_place(self, order: Order):
        pass

    @abstractmethod
    def fill(self, order: Order, fill_amount_in: Optional[int]) -> Fill:
        """Apply a fill to ``order`` in place, without touching any token."""

    @abstractmethod
    def transfer(self, taker: str, order: Order, fill: Fill) -> int:
        """Move the tokens for ``fill``; return the amount of token_out delivered."""

    def on_cancel(self, order: Order):
        pass

    def contract_at(self, address: str) -> Any:
        try:
            return self.ledger.contract(address)
        except KeyError as e:
            raise ExternalCallError(str(e))

    def token_at(self, address: str) -> Token:
        contract = self.contract_at(address)
        if not all(callable(getattr(contract, name, None)) for name in TOKEN_METHODS):
            raise ExternalCallError(f"Contract at {address} is not a token")
        return contract

    def _close(self, order: Order):
        order.active = False
        order.status = OrderStatus.Filled


class DirectSettlement(SettlementStrategy):
    mode = SettlementMode.Direct

    def authorize(self, caller: str, request: PlaceOrderRequest) -> Tuple[str, str, Optional[int]]:
        self.validator.check_fields(request, self.ledger.now())
        order_id = self.validator.check_signature(request)
        return order_id, request.maker, None

    def on_place(self, order: Order):
        # Sell orders escrow the full amount_in until filled or cancelled
        if order.side == OrderSide.Sell:
            token_in = self.token_at(order.token_in)
            external.call(
                token_in.transfer_from, self.contract_id, order.maker, self.contract_id, order.amount_in
            ).expect(f"Escrow of {order.amount_in} {order.token_in} from maker failed")

    def fill(self, order: Order, fill_amount_in: Optional[int]) -> Fill:
        if fill_amount_in is None:
            fill_amount_in = order.remaining_amount_in
        if fill_amount_in <= 0:
            raise ValidationError(f"Fill amount must be positive, got {fill_amount_in}")
        if fill_amount_in > order.remaining_amount_in:
            raise StateError(
                f"Fill of {fill_amount_in} exceeds remaining {order.remaining_amount_in} on {order.order_id}"
            )

        fill_amount_out = checked_mul_div(
            fill_amount_in, order.remaining_amount_out, order.remaining_amount_in
        )
        order.remaining_amount_in = checked_sub(order.remaining_amount_in, fill_amount_in)
        order.remaining_amount_out = checked_sub(order.remaining_amount_out, fill_amount_out)
        order.amount_out_actual = checked_add(order.amount_out_actual or 0, fill_amount_out)

        if order.remaining_amount_in == 0:
            self._close(order)
        else:
            order.status = OrderStatus.PartiallyFilled
        return Fill(amount_in=fill_amount_in, amount_out=fill_amount_out)

    def transfer(self, taker: str, order: Order, fill: Fill) -> int:
        token_in: Token = self.token_at(order.token_in)
        token_out: Token = self.token_at(order.token_out)

        if order.side == OrderSide.Buy:
            external.call(
                token_in.transfer_from, self.contract_id, taker, order.maker, fill.amount_in
            ).expect(f"Pull of {fill.amount_in} {order.token_in} from taker failed")
            external.call(
                token_out.transfer_from, self.contract_id, order.maker, taker, fill.amount_out
            ).expect(f"Pull of {fill.amount_out} {order.token_out} from maker failed")
        else:
            external.call(
                token_in.transfer, self.contract_id, taker, fill.amount_in
            ).expect(f"Release of {fill.amount_in} {order.token_in} from escrow failed")
            external.call(
                token_out.transfer_from, self.contract_id, taker, order.maker, fill.amount_out
            ).expect(f"Pull of {fill.amount_out} {order.token_out} from taker failed")
        return fill.amount_out

    def on_cancel(self, order: Order):
        if order.side == OrderSide.Sell and order.remaining_amount_in > 0:
            token_in = self.token_at(order.token_in)
            external.call(
                token_in.transfer, self.contract_id, order.maker, order.remaining_amount_in
            ).expect(f"Return of escrowed {order.token_in} to maker failed")


class RouterSettlement(SettlementStrategy):
    mode = SettlementMode.Router

    def authorize(self, caller: str, request: PlaceOrderRequest) -> Tuple[str, str, Optional[int]]:
        if request.maker is not None and request.maker != caller:
            raise AuthorizationError(f"Caller {caller} cannot place orders for {request.maker}")
        if request.side != OrderSide.Sell:
            raise ValidationError("Router orders always sell token_in")

        self.validator.check_fields(request, self.ledger.now(), require_router=True)
        self.validator.check_allowance(self.token_at(request.token_in), caller, request.amount_in)
        order_id, nonce = self.validator.assign_id(
            caller, self.ledger.block_height(), self.ledger.now()
        )
        return order_id, caller, nonce

    def fill(self, order: Order, fill_amount_in: Optional[int]) -> Fill:
        if fill_amount_in is not None and fill_amount_in != order.remaining_amount_in:
            raise ValidationError("Router orders settle in full; partial fills are not supported")

        fill = Fill(amount_in=order.remaining_amount_in, amount_out=0)
        order.remaining_amount_in = 0
        order.remaining_amount_out = 0
        self._close(order)
        return fill

    def transfer(self, taker: str, order: Order, fill: Fill) -> int:
        token_in: Token = self.token_at(order.token_in)
        token_out: Token = self.token_at(order.token_out)
        router: AmmRouter = self.contract_at(order.router)

        # Fee-on-transfer input tokens deliver less than was pulled; swap what arrived
        held_before = external.call(token_in.balance_of, self.contract_id).expect("Balance query failed")
        external.call(
            token_in.transfer_from, self.contract_id, taker, self.contract_id, fill.amount_in
        ).expect(f"Pull of {fill.amount_in} {order.token_in} from taker failed")
        held_after = external.call(token_in.balance_of, self.contract_id).expect("Balance query failed")
        swap_amount = checked_sub(held_after, held_before)

        external.call(
            token_in.approve, self.contract_id, order.router, swap_amount
        ).expect(f"Approval of router {order.router} failed")

        # The router's return value is not trusted; fee-on-transfer tokens misreport
        before = external.call(token_out.balance_of, order.maker).expect("Balance query failed")
        external.call(
            router.swap_exact_tokens_for_tokens_supporting_fee_on_transfer_tokens,
            self.contract_id,
            swap_amount,
            order.amount_out,
            [order.token_in, order.token_out],
            order.maker,
            self.ledger.now(),
        ).expect(f"Swap through router {order.router} failed")
        external.call(token_in.approve, self.contract_id, order.router, 0).expect(
            f"Revoking router {order.router} allowance failed"
        )
        after = external.call(token_out.balance_of, order.maker).expect("Balance query failed")

        received = checked_sub(after, before)
        if received < order.amount_out:
            raise ExternalCallError(
                f"Router delivered {received} {order.token_out}, below minimum {order.amount_out}"
            )
        return received


def build_strategy(mode: SettlementMode, ledger: Ledger, validator: OrderValidator, contract_id: str) -> SettlementStrategy:
    strategies = {
        SettlementMode.Direct: DirectSettlement,
        SettlementMode.Router: RouterSettlement,
    }
    return strategies[SettlementMode(mode)](ledger, validator, contract_id)
