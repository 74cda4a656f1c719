# app/schemas/order.py
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import Field

from app.core.enums import DisplayStatus, ProviderKey
from app.schemas.base import BaseSchema, RequestSchema
from app.schemas.quote import UnifiedQuoteRequest


class ProviderOrderResponse(BaseSchema):
    """Carrier confirmation of a created order"""
    external_order_id: Optional[str] = None
    tracking_ref: Optional[str] = None
    status: str = "pending"
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def cancel_ref(self) -> Optional[str]:
        return self.external_order_id or self.tracking_ref


class TrackingStatus(BaseSchema):
    status: str
    updated_at: Optional[str] = None
    meta: Dict[str, Any] = Field(default_factory=dict)


class DeliveryCost(BaseSchema):
    total_cost: Decimal
    platform_fee: Decimal
    provider_cost: Decimal


class OrderResult(BaseSchema):
    provider_key: ProviderKey
    external_order_id: Optional[str] = None
    tracking_ref: Optional[str] = None
    status: str
    order_id: int
    customer_facing_order_id: str


class CreateOrderRequest(RequestSchema):
    provider: ProviderKey
    provider_id: Optional[int] = None
    business_id: int
    order_reference: Optional[str] = None
    request: UnifiedQuoteRequest


class OrderRead(BaseSchema):
    """Order as shown to callers; internal cost split is never exposed"""
    id: int
    customer_facing_order_id: str
    provider_key: str
    status: str
    display_status: DisplayStatus
    external_order_id: Optional[str] = None
    tracking_ref: Optional[str] = None
    total_cost: Decimal
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TrackingWebhook(RequestSchema):
    order_id: int


class RateLimitConfigUpdate(RequestSchema):
    max_requests: int = Field(gt=0)
    window_ms: int = Field(gt=0)
