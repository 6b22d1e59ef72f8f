from fastapi import FastAPI, HTTPException, Depends
from fastapi.middleware.cors import CORSMiddleware
from typing import List, Optional
import time
import logging

from stellar_sdk import Keypair

from .types import Order, OrderSide, PlaceOrderRequest, FeeSchedule, SettlementMode
from .engine import SettlementEngine
from .errors import (
    SettlementError, AuthorizationError, StateError, ExternalCallError
)
from .ledger import InMemoryLedger
from .config import settings

# Setup logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("api")

app = FastAPI(title="Limit Order Settlement Node")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request Models
from pydantic import BaseModel

class SubmitOrderRequest(BaseModel):
    maker: str
    token_in: str
    token_out: str
    amount_in: int
    amount_out: int
    side: OrderSide = OrderSide.Sell
    expiry: int
    signature: str

class SubmitOrderResponse(BaseModel):
    order_id: str
    status: str
    order: Order

class FeeStatus(BaseModel):
    schedule: FeeSchedule
    held_execution_fees: int
    withdrawable: int

_engine: Optional[SettlementEngine] = None

# Dependency
def get_engine() -> SettlementEngine:
    global _engine
    if _engine is None:
        node_settings = settings
        if not node_settings.controller_address:
            controller = Keypair.random().public_key
            logger.warning(f"CONTROLLER_ADDRESS not set, using ephemeral controller {controller}")
            node_settings = settings.model_copy(update={"controller_address": controller})
        _engine = SettlementEngine(InMemoryLedger(), node_settings)
    return _engine

def _http_error(e: SettlementError) -> HTTPException:
    if isinstance(e, AuthorizationError):
        return HTTPException(status_code=401, detail=str(e))
    if isinstance(e, StateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, ExternalCallError):
        return HTTPException(status_code=502, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))

@app.post("/api/v1/orders", response_model=SubmitOrderResponse)
async def submit_order(req: SubmitOrderRequest, eng: SettlementEngine = Depends(get_engine)):
    if eng.mode != SettlementMode.Direct:
        raise HTTPException(status_code=400, detail="This node only accepts signed orders in direct mode")

    request = PlaceOrderRequest(**req.model_dump())

    # The verified maker is the caller and pays the fees
    try:
        order = eng.place_order(req.maker, request, value=eng.fee_schedule.total)
    except SettlementError as e:
        raise _http_error(e)

    return SubmitOrderResponse(order_id=order.order_id, status="placed", order=order)

@app.get("/api/v1/orders", response_model=List[Order])
async def list_orders(maker: Optional[str] = None, active: Optional[bool] = None, eng: SettlementEngine = Depends(get_engine)):
    return eng.list_orders(maker=maker, active=active)

@app.get("/api/v1/orders/expired", response_model=List[Order])
async def list_expired_orders(eng: SettlementEngine = Depends(get_engine)):
    return eng.expired_orders()

@app.get("/api/v1/orders/{order_id}", response_model=Order)
async def get_order(order_id: str, eng: SettlementEngine = Depends(get_engine)):
    order = eng.get_order(order_id)
    if not order:
        raise HTTPException(status_code=404, detail="Order not found")
    return order

@app.get("/api/v1/fees", response_model=FeeStatus)
async def get_fees(eng: SettlementEngine = Depends(get_engine)):
    return FeeStatus(
        schedule=eng.fee_schedule,
        held_execution_fees=eng.held_execution_fees,
        withdrawable=eng.withdrawable_fees(),
    )

@app.get("/api/v1/events")
async def list_events(order_id: Optional[str] = None, eng: SettlementEngine = Depends(get_engine)):
    events = eng.events
    if order_id:
        events = [e for e in events if getattr(e, "order_id", None) == order_id]
    return [e.model_dump(mode="json") for e in events]

@app.get("/health")
async def health_check():
    return {"status": "healthy", "timestamp": int(time.time())}
