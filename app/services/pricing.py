"""
Quote normalization.

Carriers price, estimate and label their services differently. Everything in
this module is a pure function of its inputs so that the same raw quote always
normalizes to the same result:

- markup: flat platform fee, or a percentage of the price for DHL
- ETA: collapsed to "N day(s)", "N hour(s)" or "N minutes"
- service level: one of economy / standard / express / sameday
- metadata: reduced to the fields callers need to place an order
"""

import re
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

from app.core.enums import DisplayStatus, ProviderKey, ServiceLevel
from app.schemas.quote import ProviderQuote, RawQuote

_DAYS = re.compile(r"(\d+)\s*day")
_HOURS = re.compile(r"(\d+)\s*hour")
_MINUTES = re.compile(r"(\d+)\s*min")

CENT = Decimal("0.01")
WHOLE = Decimal("1")


@dataclass(frozen=True)
class MarkupPolicy:
    """Flat fee per quote, with percentage overrides for specific carriers"""
    flat_fee: Decimal = Decimal("500")
    percent_by_provider: Dict[str, Decimal] = field(default_factory=lambda: {"dhl": Decimal("15")})

    @classmethod
    def from_settings(cls, settings) -> "MarkupPolicy":
        return cls(
            flat_fee=Decimal(str(settings.MARKUP_FEE)),
            percent_by_provider={ProviderKey.DHL.value: Decimal(str(settings.DHL_MARKUP_PERCENT))},
        )


def calculate_markup(provider: ProviderKey, price: Decimal, policy: MarkupPolicy) -> Decimal:
    """
    Platform fee for a carrier price.

    Percentage markups are rounded half-up to whole currency units.

    Examples:
        fez 4000 (flat 500)  -> 500
        dhl 10000 (15%)      -> 1500
        dhl 10003 (15%)      -> 1500  (1500.45)
    """
    key = getattr(provider, "value", provider)
    percent = policy.percent_by_provider.get(key)
    if percent is None:
        return policy.flat_fee
    return (Decimal(price) * percent / Decimal("100")).quantize(WHOLE, rounding=ROUND_HALF_UP)


def standardize_eta(eta: Optional[str]) -> str:
    """
    Collapse carrier ETA strings into a common shape.

    Examples:
        "3-5 Days"   -> "5 days"
        "1 day"      -> "1 day"
        "2 hours"    -> "2 hours"
        "45 Mins"    -> "45 minutes"
        "Same day"   -> "Same day"
    """
    if not eta or eta == "N/A":
        return "N/A"

    lowered = eta.lower()
    if "day" in lowered:
        match = _DAYS.search(lowered)
        if match:
            n = int(match.group(1))
            return f"{n} day{'s' if n > 1 else ''}"
        return eta
    if "hour" in lowered:
        match = _HOURS.search(lowered)
        if match:
            n = int(match.group(1))
            return f"{n} hour{'s' if n > 1 else ''}"
        return eta
    if "min" in lowered:
        match = _MINUTES.search(lowered)
        return f"{int(match.group(1))} minutes" if match else eta
    return eta


def map_service_level(service_type: Optional[str]) -> ServiceLevel:
    if not service_type:
        return ServiceLevel.STANDARD
    lowered = service_type.lower()
    if "express" in lowered or "premium" in lowered:
        return ServiceLevel.EXPRESS
    if "economy" in lowered or "saver" in lowered:
        return ServiceLevel.ECONOMY
    if "same" in lowered or "urgent" in lowered:
        return ServiceLevel.SAMEDAY
    return ServiceLevel.STANDARD


def _dig(data: Any, *path, default=None):
    for key in path:
        if isinstance(data, dict):
            data = data.get(key)
        elif isinstance(data, list) and isinstance(key, int):
            data = data[key] if len(data) > key else None
        else:
            return default
        if data is None:
            return default
    return data


def extract_essential_meta(provider: ProviderKey, meta: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only what callers need to display or book a quote."""
    if not meta:
        return {}

    key = ProviderKey(getattr(provider, "value", provider))
    if key == ProviderKey.GLOVO:
        return {
            "quoteId": meta.get("quoteId"),
            "expiresAt": meta.get("expiresAt"),
            "distanceInMeters": meta.get("distanceInMeters"),
            "currencyCode": meta.get("currencyCode"),
        }
    if key == ProviderKey.FARAMOVE:
        return {
            "weight_range": meta.get("weight_range"),
            "distance_in_km": _dig(meta, "raw", "distance_in_km"),
            "vehicle_type": meta.get("vehicle_type"),
        }
    if key == ProviderKey.FEZ:
        return {
            "state": _dig(meta, "fezCost", "Cost", "state"),
            "cost": _dig(meta, "fezCost", "Cost", "cost"),
        }
    if key == ProviderKey.GIG:
        return {
            "CurrencyCode": meta.get("CurrencyCode"),
            "isWithinProcessingTime": meta.get("isWithinProcessingTime"),
        }
    if key == ProviderKey.DHL:
        return {
            "productCode": meta.get("productCode"),
            "productName": meta.get("productName"),
            "weight": meta.get("weight"),
            "pickupCapabilities": {
                "cutoffTime": _dig(meta, "pickupCapabilities", "localCutoffDateAndTime"),
                "pickupEarliest": _dig(meta, "pickupCapabilities", "pickupEarliest"),
                "pickupLatest": _dig(meta, "pickupCapabilities", "pickupLatest"),
            },
            "deliveryCapabilities": {
                "estimatedDelivery": _dig(meta, "deliveryCapabilities", "estimatedDeliveryDateAndTime"),
                "transitDays": _dig(meta, "deliveryCapabilities", "totalTransitDays"),
            },
        }
    return dict(meta)


def normalize_quote(
    raw: RawQuote,
    policy: MarkupPolicy,
    provider_id: Optional[int] = None,
    currency: str = "NGN",
) -> ProviderQuote:
    """Apply markup and normalize ETA, service level and metadata."""
    price = Decimal(raw.price).quantize(CENT, rounding=ROUND_HALF_UP)
    markup = calculate_markup(raw.provider_key, price, policy)
    return ProviderQuote(
        provider_key=raw.provider_key,
        provider_id=provider_id,
        price_final=(price + markup).quantize(CENT),
        currency=currency,
        estimated_delivery_time=standardize_eta(raw.eta),
        service_level=map_service_level(raw.service_type),
        essential_meta=extract_essential_meta(raw.provider_key, raw.meta),
    )


# ----------------------------------------------------------------------
# Presentation
# ----------------------------------------------------------------------
_PENDING = {"pending", "pending pick-up", "pending pickup", "awaiting pickup", "created", "new"}
_IN_TRANSIT = {
    "on transit", "in transit", "in-transit", "transit", "picked up", "picked",
    "dispatched", "out for delivery", "with rider", "delivering",
}
_DELIVERED = {"delivered", "completed", "delivery completed"}
_CANCELLED = {"cancelled", "canceled", "cancel"}
_FAILED = {"failed", "returned", "rejected", "delivery failed"}


def display_status(raw_status: Optional[str]) -> DisplayStatus:
    """Bucket a raw carrier status for display; unknown statuses read as Pending."""
    if not raw_status:
        return DisplayStatus.PENDING
    s = raw_status.strip().lower()
    if s in _PENDING:
        return DisplayStatus.PENDING
    if s in _DELIVERED:
        return DisplayStatus.DELIVERED
    if s in _IN_TRANSIT:
        return DisplayStatus.IN_TRANSIT
    if s in _CANCELLED:
        return DisplayStatus.CANCELLED
    if s in _FAILED:
        return DisplayStatus.FAILED
    return DisplayStatus.PENDING
