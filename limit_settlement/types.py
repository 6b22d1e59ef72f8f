from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class OrderSide(str, Enum):
    Buy = "Buy"
    Sell = "Sell"


class OrderStatus(str, Enum):
    Active = "Active"
    PartiallyFilled = "PartiallyFilled"
    Filled = "Filled"
    Cancelled = "Cancelled"


class SettlementMode(str, Enum):
    Direct = "direct"  # signature auth, peer-to-peer partial fills
    Router = "router"  # allowance auth, full fill through an AMM router


class OrderIdScheme(str, Enum):
    BlockTime = "block_time"
    Nonce = "nonce"


class FeeSchedule(BaseModel):
    platform_fee: int
    execution_fee: int

    model_config = ConfigDict(frozen=True)

    @property
    def total(self) -> int:
        return self.platform_fee + self.execution_fee


class PlaceOrderRequest(BaseModel):
    token_in: str
    token_out: str
    amount_in: int
    # amountOutMin for router orders
    amount_out: int
    expiry: int
    side: OrderSide = OrderSide.Sell
    maker: Optional[str] = None
    router: Optional[str] = None
    signature: Optional[str] = None


class Order(BaseModel):
    order_id: str
    maker: str
    router: Optional[str] = None
    token_in: str
    token_out: str
    side: OrderSide = OrderSide.Sell
    amount_in: int
    amount_out: int
    remaining_amount_in: int
    remaining_amount_out: int
    amount_out_actual: Optional[int] = None
    expiry: int
    active: bool = True
    status: OrderStatus = OrderStatus.Active
    platform_fee: int
    execution_fee: int
    fee_settled: bool = False
    created_at: int
    created_block: int
    nonce: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        return now > self.expiry


class Event(BaseModel):
    block: int
    timestamp: int

    model_config = ConfigDict(frozen=True)


class OrderPlaced(Event):
    event: Literal["OrderPlaced"] = "OrderPlaced"
    order_id: str
    maker: str
    token_in: str
    token_out: str
    side: OrderSide
    amount_in: int
    amount_out: int
    expiry: int


class OrderCancelled(Event):
    event: Literal["OrderCancelled"] = "OrderCancelled"
    order_id: str
    maker: str
    refund: int


class OrderExecuted(Event):
    event: Literal["OrderExecuted"] = "OrderExecuted"
    order_id: str
    taker: str
    amount_in: int
    amount_out: int
    remaining_amount_in: int
    fee_refund: int


class FeesUpdated(Event):
    event: Literal["FeesUpdated"] = "FeesUpdated"
    platform_fee: int
    execution_fee: int


class FeesWithdrawn(Event):
    event: Literal["FeesWithdrawn"] = "FeesWithdrawn"
    to: str
    amount: int


class TokenSwept(Event):
    event: Literal["TokenSwept"] = "TokenSwept"
    token: str
    to: str
    amount: int


class ControlTransferred(Event):
    event: Literal["ControlTransferred"] = "ControlTransferred"
    previous: str
    controller: str
