"""Order routes: create through the orchestrator, read with a live status refresh."""
import logging
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException

from app.core.exceptions import (
    BrokerError,
    BusinessNotFoundError,
    InsufficientBalance,
    InvalidProvider,
    OrderNotFoundError,
    PersistenceFailed,
    ProviderAPIError,
    ProviderRejected,
)
from app.dependencies import get_services
from app.schemas.order import CreateOrderRequest, OrderRead, OrderResult, TrackingWebhook
from app.services.container import BrokerServices
from app.services.pricing import display_status
from app.services.stores import OrderRecord

logger = logging.getLogger(__name__)
router = APIRouter(tags=["orders"])


def _order_read(order: OrderRecord) -> OrderRead:
    return OrderRead(
        id=order.id,
        customer_facing_order_id=order.customer_facing_order_id,
        provider_key=order.provider_key,
        status=order.status,
        display_status=display_status(order.status),
        external_order_id=order.external_order_id,
        tracking_ref=order.tracking_ref,
        total_cost=Decimal(str(order.delivery_cost.get("total_cost", "0"))),
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


@router.post("/orders", response_model=OrderResult, status_code=201)
async def create_order(
    payload: CreateOrderRequest,
    services: BrokerServices = Depends(get_services),
):
    """Book a shipment with the chosen carrier and debit the business wallet"""
    try:
        return await services.orchestrator.create_order(
            payload.provider,
            payload.request,
            payload.business_id,
            provider_id=payload.provider_id,
            order_reference=payload.order_reference,
        )
    except InvalidProvider as e:
        raise HTTPException(status_code=400, detail=str(e))
    except InsufficientBalance as e:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "INSUFFICIENT_WALLET_BALANCE",
                "message": str(e),
                "required": str(e.required),
                "available": str(e.available),
            },
        )
    except BusinessNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderRejected as e:
        raise HTTPException(status_code=502, detail=str(e))
    except PersistenceFailed as e:
        logger.error(f"Order creation failed after carrier confirmation: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/orders/{order_id}", response_model=OrderRead)
async def get_order(order_id: int, services: BrokerServices = Depends(get_services)):
    """Order details with the status refreshed from the carrier when possible"""
    order = await services.order_store.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} not found")

    try:
        order = await services.order_status.sync_order(order_id)
    except BrokerError as e:
        logger.warning(f"Status sync for order {order_id} failed, returning stored status: {e}")
    return _order_read(order)


@router.post("/tracking/webhook")
async def tracking_webhook(payload: TrackingWebhook, services: BrokerServices = Depends(get_services)):
    """Carrier or scheduler nudge to re-sync one order"""
    try:
        order = await services.order_status.sync_order(payload.order_id)
    except OrderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (ProviderAPIError, InvalidProvider) as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"status": "received", "order_id": order.id, "order_status": order.status}
