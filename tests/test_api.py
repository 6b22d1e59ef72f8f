"""
Integration tests for the node gateway endpoints.
"""
import pytest
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from limit_settlement.api import app, get_engine
from limit_settlement.errors import ExternalCallError
from limit_settlement.types import SettlementMode

from .conftest import EXECUTION_FEE, FEES, HOUR, PLATFORM_FEE, T0, signed_request


@pytest.fixture
def client(direct_setup):
    """Create test client bound to the fixture engine."""
    app.dependency_overrides[get_engine] = lambda: direct_setup
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def order_body(direct_setup, maker, token_a, token_b):
    request = signed_request(direct_setup, maker, token_in=token_a.address, token_out=token_b.address)
    return request.model_dump(mode="json", exclude={"router"})


def test_health_check(client):
    """Test health check endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data


def test_submit_signed_order(client, order_body, direct_setup, maker, ledger):
    response = client.post("/api/v1/orders", json=order_body)

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "placed"
    assert data["order"]["active"] is True
    assert data["order"]["maker"] == maker.public_key
    assert direct_setup.get_order(data["order_id"]) is not None
    assert ledger.balance(maker.public_key) == 1000 - FEES


def test_submit_tampered_order(client, order_body):
    order_body["amount_out"] += 1

    response = client.post("/api/v1/orders", json=order_body)

    assert response.status_code == 401


def test_submit_replayed_order(client, order_body):
    assert client.post("/api/v1/orders", json=order_body).status_code == 200

    response = client.post("/api/v1/orders", json=order_body)

    assert response.status_code == 401
    assert "already used" in response.json()["detail"]


def test_submit_expired_order(client, direct_setup, maker, token_a, token_b):
    request = signed_request(
        direct_setup, maker, token_in=token_a.address, token_out=token_b.address, expiry=T0 - 1
    )

    response = client.post("/api/v1/orders", json=request.model_dump(mode="json"))

    assert response.status_code == 400


def test_submit_rejected_in_router_mode(client, order_body, direct_setup, monkeypatch):
    monkeypatch.setattr(type(direct_setup), "mode", property(lambda self: SettlementMode.Router))

    response = client.post("/api/v1/orders", json=order_body)

    assert response.status_code == 400


def test_external_failure_maps_to_502(order_body):
    engine = MagicMock()
    engine.mode = SettlementMode.Direct
    engine.fee_schedule.total = FEES
    engine.place_order.side_effect = ExternalCallError("token reverted")
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        response = TestClient(app).post("/api/v1/orders", json=order_body)
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 502


def test_get_order(client, order_body):
    order_id = client.post("/api/v1/orders", json=order_body).json()["order_id"]

    response = client.get(f"/api/v1/orders/{order_id}")

    assert response.status_code == 200
    assert response.json()["order_id"] == order_id


def test_get_order_not_found(client):
    response = client.get("/api/v1/orders/missing")

    assert response.status_code == 404


def test_list_orders_and_expired(client, order_body, maker, ledger):
    client.post("/api/v1/orders", json=order_body)

    listed = client.get("/api/v1/orders", params={"maker": maker.public_key, "active": True}).json()
    assert len(listed) == 1
    assert client.get("/api/v1/orders/expired").json() == []

    ledger.advance(seconds=HOUR + 1)
    expired = client.get("/api/v1/orders/expired").json()
    assert [o["order_id"] for o in expired] == [listed[0]["order_id"]]


def test_fees_and_events(client, order_body):
    order_id = client.post("/api/v1/orders", json=order_body).json()["order_id"]

    fees = client.get("/api/v1/fees").json()
    assert fees["schedule"] == {"platform_fee": PLATFORM_FEE, "execution_fee": EXECUTION_FEE}
    assert fees["held_execution_fees"] == EXECUTION_FEE
    assert fees["withdrawable"] == PLATFORM_FEE

    events = client.get("/api/v1/events", params={"order_id": order_id}).json()
    assert [e["event"] for e in events] == ["OrderPlaced"]
    assert events[0]["side"] == "Sell"
