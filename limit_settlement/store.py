import logging
from typing import Any, Dict, List, Optional

from sortedcontainers import SortedList

from .errors import StateError
from .types import Order

logger = logging.getLogger(__name__)

class OrderStore:
    """
    Persistent record of every order ever admitted.

    Orders are never removed; cancelled and filled orders stay as history.
    Reads hand out copies so only the engine mutates stored state.
    """

    def __init__(self):
        self.orders: Dict[str, Order] = {}
        # (expiry, order_id), only orders that are still active
        self.by_expiry: SortedList = SortedList()
        self.by_maker: Dict[str, List[str]] = {}

    def __contains__(self, order_id: str) -> bool:
        return order_id in self.orders

    def __len__(self) -> int:
        return len(self.orders)

    def insert(self, order: Order):
        if order.order_id in self.orders:
            raise StateError(f"Order {order.order_id} already exists")

        self.orders[order.order_id] = order.model_copy(deep=True)
        self.by_expiry.add((order.expiry, order.order_id))
        self.by_maker.setdefault(order.maker, []).append(order.order_id)

    def get(self, order_id: str) -> Order:
        return self._load(order_id).model_copy(deep=True)

    def find(self, order_id: str) -> Optional[Order]:
        order = self.orders.get(order_id)
        return order.model_copy(deep=True) if order else None

    def require_active(self, order_id: str) -> Order:
        order = self.get(order_id)
        if not order.active:
            raise StateError(f"Order {order_id} is not active ({order.status.value})")
        return order

    def update(self, order: Order):
        stored = self._load(order.order_id)
        if not stored.active:
            raise StateError(f"Order {order.order_id} is already closed")
        if order.remaining_amount_in > stored.remaining_amount_in:
            raise StateError(f"Remaining amount of {order.order_id} cannot grow")
        if order.remaining_amount_in == 0 and order.active:
            raise StateError(f"Order {order.order_id} has nothing left but is still active")

        self.orders[order.order_id] = order.model_copy(deep=True)
        if not order.active:
            self.by_expiry.discard((stored.expiry, order.order_id))

    def record_actual_output(self, order_id: str, amount: int):
        """Record the measured output of a closed order, once."""
        stored = self._load(order_id)
        if stored.amount_out_actual is not None:
            raise StateError(f"Output of {order_id} was already recorded")
        stored.amount_out_actual = amount

    def list_orders(self, maker: Optional[str] = None, active: Optional[bool] = None) -> List[Order]:
        if maker is not None:
            ids = self.by_maker.get(maker, [])
        else:
            ids = list(self.orders)

        orders = [self.orders[i] for i in ids]
        if active is not None:
            orders = [o for o in orders if o.active == active]
        return [o.model_copy(deep=True) for o in orders]

    def expired_active(self, now: int) -> List[Order]:
        """Active orders whose expiry has passed; only cancellation can close them."""
        expired = []
        for expiry, order_id in self.by_expiry:
            if expiry >= now:
                break
            expired.append(self.orders[order_id].model_copy(deep=True))
        return expired

    def _load(self, order_id: str) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise StateError(f"Order {order_id} not found")
        return order

    def snapshot(self) -> Any:
        return dict(self.orders), list(self.by_expiry), {k: list(v) for k, v in self.by_maker.items()}

    def restore(self, state: Any) -> None:
        orders, by_expiry, by_maker = state
        self.orders = dict(orders)
        self.by_expiry = SortedList(by_expiry)
        self.by_maker = {k: list(v) for k, v in by_maker.items()}
