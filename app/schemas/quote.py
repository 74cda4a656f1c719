# app/schemas/quote.py
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from pydantic import Field

from app.core.enums import ProviderKey, ServiceLevel
from app.schemas.base import BaseSchema, RequestSchema

# [latitude, longitude]
Coordinates = Tuple[float, float]


class QuoteItem(RequestSchema):
    description: str
    weight: float = Field(gt=0, description="Weight in kg")
    value: Optional[float] = None
    is_document: bool = False
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None


class PickupDetails(RequestSchema):
    address: str
    city: str
    state: str
    country_code: str = "NG"
    country_name: str = "Nigeria"
    postal_code: Optional[str] = None
    contact_name: Optional[str] = None
    contact_phone: str
    coordinates: Optional[Coordinates] = None


class DeliveryDetails(RequestSchema):
    address: str
    city: str
    state: str
    country_code: str = "NG"
    country_name: str = "Nigeria"
    postal_code: Optional[str] = None
    customer_name: str
    customer_phone: str
    coordinates: Optional[Coordinates] = None
    formatted_address: Optional[str] = None


class UnifiedQuoteRequest(RequestSchema):
    """Carrier-agnostic description of a shipment"""
    item: QuoteItem
    pickup: PickupDetails
    delivery: DeliveryDetails
    meta: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_international(self) -> bool:
        pickup_country = (self.pickup.country_name or "").strip().lower()
        delivery_country = (self.delivery.country_name or "").strip().lower()
        return bool(pickup_country and delivery_country and pickup_country != delivery_country)


class RawQuote(BaseSchema):
    """What a carrier adapter returns before normalization"""
    provider_key: ProviderKey
    price: Decimal
    eta: str = "N/A"
    service_type: str = "standard"
    meta: Dict[str, Any] = Field(default_factory=dict)


class ProviderQuote(BaseSchema):
    """Normalized quote returned to callers; price_final already includes markup"""
    provider_key: ProviderKey
    provider_id: Optional[int] = None
    price_final: Decimal
    currency: str = "NGN"
    estimated_delivery_time: str
    service_level: ServiceLevel
    essential_meta: Dict[str, Any] = Field(default_factory=dict)
