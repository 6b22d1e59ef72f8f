import functools
import logging
from typing import Any, List, Optional

from . import external
from .access import AccessControl
from .amounts import is_amount
from .config import Settings, settings as default_settings
from .errors import AuthorizationError, SettlementError, StateError, ValidationError
from .escrow import FeeEscrow
from .guard import NonReentrantLock
from .ledger import Ledger, Token
from .signing import SignatureAuthority
from .store import OrderStore
from .strategies import build_strategy
from .types import (
    ControlTransferred, Event, FeeSchedule, FeesUpdated, FeesWithdrawn, Order, OrderCancelled,
    OrderExecuted, OrderPlaced, OrderStatus, PlaceOrderRequest, SettlementMode, TokenSwept,
)
from .validator import OrderValidator, require_address

logger = logging.getLogger(__name__)


def entrypoint(method):
    """Run a state-mutating call under the reentrancy lock as one atomic unit."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.guard:
            try:
                with self.ledger.atomic():
                    return method(self, *args, **kwargs)
            except SettlementError as e:
                logger.warning(f"{method.__name__} rejected: {type(e).__name__}: {e}")
                raise
    return wrapper


class SettlementEngine:
    def __init__(self, ledger: Ledger, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.ledger = ledger
        self.contract_id = self.settings.settlement_contract_id

        self.store = OrderStore()
        self.escrow = FeeEscrow(FeeSchedule(
            platform_fee=self.settings.platform_fee,
            execution_fee=self.settings.execution_fee,
        ))
        self.access = AccessControl(self.settings.controller_address)
        self.signatures = SignatureAuthority(self.settings)
        self.validator = OrderValidator(self.settings, self.signatures, self.store)
        self.strategy = build_strategy(
            self.settings.settlement_mode, ledger, self.validator, self.contract_id
        )
        self.guard = NonReentrantLock()
        self.events: List[Event] = []

        for component in (self.store, self.escrow, self.access, self.validator, self):
            ledger.register(component)

        logger.info(
            f"Settlement engine {self.contract_id} started in {self.mode.value} mode "
            f"(controller {self.access.controller})"
        )

    @property
    def mode(self) -> SettlementMode:
        return self.strategy.mode

    # =========================================================================
    # Order lifecycle
    # =========================================================================

    @entrypoint
    def place_order(self, caller: str, request: PlaceOrderRequest, value: int = 0) -> Order:
        order_id, maker, nonce = self.strategy.authorize(caller, request)
        schedule = self.escrow.require_payment(value)
        external.call(self.ledger.send_value, caller, self.contract_id, value).expect(
            "Fee payment failed"
        )

        order = Order(
            order_id=order_id,
            maker=maker,
            router=request.router,
            token_in=request.token_in,
            token_out=request.token_out,
            side=request.side,
            amount_in=request.amount_in,
            amount_out=request.amount_out,
            remaining_amount_in=request.amount_in,
            remaining_amount_out=request.amount_out,
            expiry=request.expiry,
            platform_fee=schedule.platform_fee,
            execution_fee=schedule.execution_fee,
            created_at=self.ledger.now(),
            created_block=self.ledger.block_height(),
            nonce=nonce,
        )
        self.store.insert(order)
        self.escrow.hold(order)
        self.strategy.on_place(order)

        self._emit(OrderPlaced(
            order_id=order.order_id,
            maker=order.maker,
            token_in=order.token_in,
            token_out=order.token_out,
            side=order.side,
            amount_in=order.amount_in,
            amount_out=order.amount_out,
            expiry=order.expiry,
            **self._stamp(),
        ))
        logger.info(f"Order {order_id} placed by {maker}: {order.amount_in} {order.token_in} -> {order.amount_out} {order.token_out}")
        return self.store.get(order_id)

    @entrypoint
    def cancel_order(self, caller: str, order_id: str) -> Order:
        order = self.store.require_active(order_id)
        if caller != order.maker:
            raise AuthorizationError(f"Only the maker can cancel order {order_id}")

        order.active = False
        order.status = OrderStatus.Cancelled
        refund = self.escrow.settle_cancellation(order)
        self.store.update(order)

        self.strategy.on_cancel(order)
        self._send_value(order.maker, refund, "Cancellation refund")

        self._emit(OrderCancelled(order_id=order_id, maker=order.maker, refund=refund, **self._stamp()))
        logger.info(f"Order {order_id} cancelled, refunded {refund} of {order.execution_fee}")
        return self.store.get(order_id)

    @entrypoint
    def execute_order(self, caller: str, order_id: str, fill_amount_in: Optional[int] = None) -> Order:
        order = self.store.require_active(order_id)
        if order.is_expired(self.ledger.now()):
            raise StateError(f"Order {order_id} expired at {order.expiry}")

        fill = self.strategy.fill(order, fill_amount_in)
        refund = 0
        if not order.active:
            refund = self.escrow.settle_execution(order)
        self.store.update(order)

        fill.amount_out = self.strategy.transfer(caller, order, fill)
        if self.mode == SettlementMode.Router:
            self.store.record_actual_output(order_id, fill.amount_out)
        self._send_value(caller, refund, "Execution fee refund")

        self._emit(OrderExecuted(
            order_id=order_id,
            taker=caller,
            amount_in=fill.amount_in,
            amount_out=fill.amount_out,
            remaining_amount_in=order.remaining_amount_in,
            fee_refund=refund,
            **self._stamp(),
        ))
        logger.info(f"Order {order_id} executed by {caller}: {fill.amount_in} in, {fill.amount_out} out")
        return self.store.get(order_id)

    # =========================================================================
    # Controller operations
    # =========================================================================

    @entrypoint
    def set_fees(self, caller: str, platform_fee: int, execution_fee: int) -> FeeSchedule:
        self.access.require_controller(caller)
        if not (is_amount(platform_fee) and is_amount(execution_fee)):
            raise ValidationError(f"Invalid fee rates: {platform_fee}, {execution_fee}")

        self.escrow.schedule = FeeSchedule(platform_fee=platform_fee, execution_fee=execution_fee)
        self._emit(FeesUpdated(platform_fee=platform_fee, execution_fee=execution_fee, **self._stamp()))
        logger.info(f"Fees updated: platform {platform_fee}, execution {execution_fee}")
        return self.escrow.schedule

    @entrypoint
    def withdraw_fees(self, caller: str, amount: Optional[int] = None, to: Optional[str] = None) -> int:
        self.access.require_controller(caller)
        to = require_address(to or caller, "recipient")
        balance = self.ledger.balance(self.contract_id)
        if amount is None:
            amount = self.escrow.withdrawable(balance)
        if not is_amount(amount):
            raise ValidationError(f"Invalid withdrawal amount: {amount}")
        if amount == 0:
            raise ValidationError("Nothing to withdraw")
        self.escrow.require_withdrawable(balance, amount)

        self._send_value(to, amount, "Fee withdrawal")
        self._emit(FeesWithdrawn(to=to, amount=amount, **self._stamp()))
        logger.info(f"Withdrew {amount} in platform fees to {to}")
        return amount

    @entrypoint
    def sweep_token(self, caller: str, token_address: str, to: Optional[str] = None) -> int:
        self.access.require_controller(caller)
        to = require_address(to or caller, "recipient")
        token: Token = self.strategy.token_at(token_address)

        amount = external.call(token.balance_of, self.contract_id).expect("Balance query failed")
        external.call(token.transfer, self.contract_id, to, amount).expect(
            f"Sweep of {token_address} failed"
        )
        self._emit(TokenSwept(token=token_address, to=to, amount=amount, **self._stamp()))
        logger.warning(f"Swept {amount} of {token_address} to {to}")
        return amount

    @entrypoint
    def transfer_control(self, caller: str, new_controller: str):
        self.access.propose(caller, new_controller)
        logger.info(f"Controller transfer to {new_controller} proposed")

    @entrypoint
    def accept_control(self, caller: str):
        previous = self.access.accept(caller)
        self._emit(ControlTransferred(previous=previous, controller=caller, **self._stamp()))
        logger.info(f"Controller changed from {previous} to {caller}")

    # =========================================================================
    # Queries
    # =========================================================================

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.store.find(order_id)

    def list_orders(self, maker: Optional[str] = None, active: Optional[bool] = None) -> List[Order]:
        return self.store.list_orders(maker=maker, active=active)

    def expired_orders(self) -> List[Order]:
        return self.store.expired_active(self.ledger.now())

    @property
    def fee_schedule(self) -> FeeSchedule:
        return self.escrow.schedule

    @property
    def held_execution_fees(self) -> int:
        return self.escrow.held_total

    def withdrawable_fees(self) -> int:
        return self.escrow.withdrawable(self.ledger.balance(self.contract_id))

    # =========================================================================
    # Internals
    # =========================================================================

    def _send_value(self, to: str, amount: int, reason: str):
        if amount == 0:
            return
        external.call(self.ledger.send_value, self.contract_id, to, amount).expect(f"{reason} failed")

    def _stamp(self) -> dict:
        return {"block": self.ledger.block_height(), "timestamp": self.ledger.now()}

    def _emit(self, event: Event):
        self.events.append(event)

    def snapshot(self) -> Any:
        return list(self.events)

    def restore(self, state: Any) -> None:
        self.events = list(state)
