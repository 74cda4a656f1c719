# tests/test_routes/test_broker_routes.py
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from app.core.enums import ProviderKey, SagaState, ServiceLevel
from app.core.exceptions import (
    BusinessNotFoundError,
    InsufficientBalance,
    OrderNotFoundError,
    PersistenceFailed,
    ProviderAPIError,
    ProviderRejected,
)
from app.main import app
from app.schemas.order import OrderResult
from app.schemas.quote import ProviderQuote
from app.services.rate_limiter import ProviderRateLimiter, RateLimitConfig
from app.services.stores import OrderRecord
from tests.mocks import MockData

# Lifespan does not run without the context manager; services are injected per test
client = TestClient(app)


@pytest.fixture
def services():
    services = MagicMock()
    services.aggregator.get_quotes = AsyncMock(return_value=[])
    services.balance_store.get_balance = AsyncMock(return_value=Decimal("2000.00"))
    services.orchestrator.create_order = AsyncMock()
    services.order_store.get = AsyncMock(return_value=None)
    services.order_status.sync_order = AsyncMock()
    services.rate_limiter = ProviderRateLimiter({"fez": RateLimitConfig(max_requests=2, window=60.0)})
    app.state.services = services
    yield services
    del app.state.services


def make_order(status="pending"):
    return OrderRecord(
        id=12,
        business_id=1,
        provider_key="fez",
        partner_id=3,
        customer_facing_order_id="ORD-0123456789AB",
        external_order_id="FEZ123",
        tracking_ref="FEZ123",
        status=status,
        delivery_cost={"total_cost": "4500.00", "platform_fee": "500.00", "provider_cost": "4000.00"},
        created_at=datetime(2026, 10, 19, tzinfo=timezone.utc),
    )


def order_payload(**overrides):
    payload = {
        "provider": "fez",
        "businessId": 1,
        "request": MockData.quote_request_payload(),
    }
    payload.update(overrides)
    return payload


"""
1. Quotes
"""

def test_quotes_returns_normalized_quotes(services):
    services.aggregator.get_quotes.return_value = [
        ProviderQuote(
            provider_key=ProviderKey.FEZ,
            provider_id=3,
            price_final=Decimal("4500.00"),
            estimated_delivery_time="1 - 2 days",
            service_level=ServiceLevel.STANDARD,
        )
    ]

    response = client.post("/quotes", json=MockData.quote_request_payload())

    assert response.status_code == 200
    body = response.json()
    assert len(body) == 1
    assert body[0]["provider_key"] == "fez"
    assert Decimal(body[0]["price_final"]) == Decimal("4500.00")
    assert services.aggregator.get_quotes.call_args.kwargs["wallet_balance"] is None


def test_quotes_with_business_filters_by_wallet(services):
    response = client.post("/quotes?business_id=1", json=MockData.quote_request_payload())

    assert response.status_code == 200
    services.balance_store.get_balance.assert_awaited_once_with(1)
    assert services.aggregator.get_quotes.call_args.kwargs["wallet_balance"] == Decimal("2000.00")


def test_quotes_unknown_business(services):
    services.balance_store.get_balance.side_effect = BusinessNotFoundError("Business 9 not found")

    response = client.post("/quotes?business_id=9", json=MockData.quote_request_payload())

    assert response.status_code == 404
    services.aggregator.get_quotes.assert_not_called()


def test_quotes_accepts_camel_case(services):
    payload = MockData.quote_request_payload()
    payload["delivery"]["customerName"] = payload["delivery"].pop("customer_name")

    assert client.post("/quotes", json=payload).status_code == 200


def test_quotes_rejects_invalid_weight(services):
    payload = MockData.quote_request_payload(item={"weight": 0})

    assert client.post("/quotes", json=payload).status_code == 422


"""
2. Orders
"""

def test_create_order(services):
    services.orchestrator.create_order.return_value = OrderResult(
        provider_key=ProviderKey.FEZ,
        external_order_id="FEZ123",
        tracking_ref="FEZ123",
        status="Success",
        order_id=12,
        customer_facing_order_id="SHOP-1",
    )

    response = client.post("/orders", json=order_payload(orderReference="SHOP-1"))

    assert response.status_code == 201
    assert response.json()["order_id"] == 12
    args, kwargs = services.orchestrator.create_order.call_args
    assert args[0] == ProviderKey.FEZ
    assert args[2] == 1
    assert kwargs["order_reference"] == "SHOP-1"


def test_create_order_insufficient_balance(services):
    services.orchestrator.create_order.side_effect = InsufficientBalance(Decimal("4500.00"), Decimal("1000.00"))

    response = client.post("/orders", json=order_payload())

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_WALLET_BALANCE"
    assert detail["required"] == "4500.00"
    assert detail["available"] == "1000.00"


@pytest.mark.parametrize("error, status_code", [
    (ProviderRejected("Fez refused"), 502),
    (PersistenceFailed("db down", state=SagaState.PERSIST_FAILED_AFTER_EXTERNAL), 500),
    (BusinessNotFoundError("Business 1 not found"), 404),
])
def test_create_order_error_mapping(services, error, status_code):
    services.orchestrator.create_order.side_effect = error

    assert client.post("/orders", json=order_payload()).status_code == status_code


def test_create_order_unknown_provider_is_rejected(services):
    response = client.post("/orders", json=order_payload(provider="ups"))

    assert response.status_code == 422
    services.orchestrator.create_order.assert_not_called()


def test_get_order_refreshes_status(services):
    services.order_store.get.return_value = make_order()
    services.order_status.sync_order.return_value = make_order(status="Delivered")

    response = client.get("/orders/12")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Delivered"
    assert body["display_status"] == "Delivered"
    assert Decimal(body["total_cost"]) == Decimal("4500.00")
    assert "platform_fee" not in body


def test_get_order_survives_sync_failure(services):
    services.order_store.get.return_value = make_order(status="In Transit")
    services.order_status.sync_order.side_effect = ProviderAPIError("Fez is down", status_code=503)

    response = client.get("/orders/12")

    assert response.status_code == 200
    assert response.json()["status"] == "In Transit"
    assert response.json()["display_status"] == "In-Transit"


def test_get_order_not_found(services):
    assert client.get("/orders/404").status_code == 404
    services.order_status.sync_order.assert_not_called()


def test_tracking_webhook(services):
    services.order_status.sync_order.return_value = make_order(status="Delivered")

    response = client.post("/tracking/webhook", json={"orderId": 12})

    assert response.status_code == 200
    assert response.json() == {"status": "received", "order_id": 12, "order_status": "Delivered"}


@pytest.mark.parametrize("error, status_code", [
    (OrderNotFoundError("Order 12 not found"), 404),
    (ProviderAPIError("timeout"), 502),
])
def test_tracking_webhook_errors(services, error, status_code):
    services.order_status.sync_order.side_effect = error

    assert client.post("/tracking/webhook", json={"order_id": 12}).status_code == status_code


"""
3. Rate limiter utilities
"""

def test_rate_limiter_status(services):
    body = client.get("/utils/rate-limiter/status").json()

    assert body["fez"]["remaining_requests"] == 2


def test_rate_limiter_provider_status(services):
    services.rate_limiter.allow("fez")

    body = client.get("/utils/rate-limiter/FEZ/status").json()

    assert body["provider"] == "fez"
    assert body["remaining_requests"] == 1


def test_rate_limiter_unknown_provider(services):
    assert client.get("/utils/rate-limiter/ups/status").status_code == 400


def test_rate_limiter_update_config(services):
    response = client.patch("/utils/rate-limiter/fez/config", json={"maxRequests": 10, "windowMs": 1000})

    assert response.status_code == 200
    body = response.json()
    assert body["max_requests"] == 10
    assert body["window_ms"] == 1000
    assert body["remaining_requests"] == 10


def test_rate_limiter_update_config_validation(services):
    response = client.patch("/utils/rate-limiter/fez/config", json={"maxRequests": 0, "windowMs": 1000})
    assert response.status_code == 422


"""
4. Health
"""

def test_health():
    response = client.get("/health")
    assert response.json() == {"status": "healthy", "service": "Parcel Broker"}
