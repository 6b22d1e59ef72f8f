import logging
from typing import Any

from .amounts import checked_add, checked_sub
from .errors import StateError, ValidationError
from .types import FeeSchedule, Order

logger = logging.getLogger(__name__)


class FeeEscrow:
    """
    Accounting for native-value fees held by the engine.

    ``held_total`` is the sum of execution fees of orders that have not been
    settled yet. Everything the engine holds above it is platform revenue.
    """

    def __init__(self, schedule: FeeSchedule):
        self.schedule = schedule
        self.held_total = 0

    def require_payment(self, value: int) -> FeeSchedule:
        """Check the attached value and return the fee snapshot for a new order."""
        schedule = self.schedule
        if value != schedule.total:
            raise ValidationError(
                f"Attached value {value} must equal platform_fee + execution_fee = {schedule.total}"
            )
        return schedule

    def hold(self, order: Order):
        self.held_total = checked_add(self.held_total, order.execution_fee)

    def settle_execution(self, order: Order) -> int:
        """Release the whole execution fee; it goes to whoever executed the order."""
        self._release(order)
        return order.execution_fee

    def settle_cancellation(self, order: Order) -> int:
        """
        Release the whole execution fee but refund only half of it.

        The other half stays with the platform as cancellation cost.
        """
        self._release(order)
        return order.execution_fee // 2

    def _release(self, order: Order):
        if order.fee_settled:
            raise StateError(f"Execution fee of {order.order_id} was already settled")
        self.held_total = checked_sub(self.held_total, order.execution_fee)
        order.fee_settled = True

    def withdrawable(self, balance: int) -> int:
        return checked_sub(balance, self.held_total)

    def require_withdrawable(self, balance: int, amount: int):
        available = self.withdrawable(balance)
        if amount > available:
            raise StateError(f"Withdrawal of {amount} exceeds withdrawable fees {available}")

    def snapshot(self) -> Any:
        return self.schedule, self.held_total

    def restore(self, state: Any) -> None:
        self.schedule, self.held_total = state
