"""
Faramove carrier implementation.

Faramove identifies states, cities and weight bands by opaque ids, so the
carrier keeps a lazily loaded copy of that reference data and translates the
request before quoting or booking.
"""

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import ProviderAPIError
from app.schemas.order import ProviderOrderResponse, TrackingStatus
from app.schemas.quote import RawQuote, UnifiedQuoteRequest
from app.services.shipping.base import BaseCarrier

logger = logging.getLogger(__name__)

SERVICE_TYPE = "INTRA-CITY & INTER-STATE SHIPMENTS"


def _point(coords) -> Dict[str, Any]:
    # GeoJSON wants [lng, lat]
    return {"type": "Point", "coordinates": [coords[1], coords[0]]}


class FaramoveCarrier(BaseCarrier):
    """Faramove haulage and parcel marketplace"""

    carrier_name = "Faramove"
    carrier_code = ProviderKey.FARAMOVE

    needs_coordinates = True

    def __init__(self, rate_limiter, settings, timeout: float = 30.0):
        super().__init__(rate_limiter, timeout)
        self.api_key = settings.FARAMOVE_API_KEY
        self.base_url = settings.FARAMOVE_BASE_URL.rstrip("/")
        self.business_id = settings.FARAMOVE_BUSINESS_ID
        self._states: Optional[Dict[str, str]] = None
        self._weight_ranges: Optional[List[Dict[str, Any]]] = None
        self._cities: Dict[str, List[Dict[str, str]]] = {}
        self._reference_lock = asyncio.Lock()

    async def _get(self, path: str) -> Any:
        return await self._make_request("GET", f"{self.base_url}{path}", headers={"api-key": self.api_key})

    async def _post(self, path: str, body: Dict[str, Any]) -> Any:
        return await self._make_request(
            "POST", f"{self.base_url}{path}", headers={"api-key": self.api_key}, data=body
        )

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------
    async def _load_reference_data(self) -> None:
        async with self._reference_lock:
            if self._states is not None and self._weight_ranges is not None:
                return
            states = await self._get("/api/v2/states")
            self._states = {
                s["name"].strip().lower(): s["_id"] for s in (states.get("data") or [])
            }
            ranges = await self._get("/api/v2/weight-range")
            self._weight_ranges = [
                {
                    "id": r["_id"],
                    "min": r.get("minimum_range", 0),
                    "max": r.get("maximum_range", 0),
                    "vehicle_type": ((r.get("vehicle_type") or [{}])[0]).get("name", "Unknown"),
                }
                for r in (ranges.get("data") or [])
            ]
            logger.info(
                f"Loaded Faramove reference data: {len(self._states)} states, "
                f"{len(self._weight_ranges)} weight ranges"
            )

    async def state_id(self, state_name: str) -> str:
        await self._load_reference_data()
        name = state_name.strip().lower()
        if name in self._states:
            return self._states[name]
        # Loose match on the first three letters ("FCT" vs "fct abuja")
        for known, state_id in self._states.items():
            if known[:3] == name[:3]:
                return state_id
        raise ProviderAPIError(f"Faramove state not found: {state_name}")

    async def weight_range(self, weight: float) -> Dict[str, Any]:
        await self._load_reference_data()
        for band in self._weight_ranges:
            if band["min"] <= weight <= band["max"]:
                return band
        raise ProviderAPIError(f"No Faramove weight range covers {weight}kg")

    async def city_id(self, state_id: str, city_name: str) -> Optional[str]:
        if state_id not in self._cities:
            data = await self._get(f"/api/v2/states/get-cities-per-state/{state_id}")
            self._cities[state_id] = [
                {"id": c["_id"], "name": c["name"].strip().lower()} for c in (data.get("data") or [])
            ]
        cities = self._cities[state_id]
        name = (city_name or "").strip().lower()
        match = next((c for c in cities if c["name"] == name), None)
        match = match or next((c for c in cities if c["name"] == "other"), None)
        return match["id"] if match else None

    # ------------------------------------------------------------------
    # Carrier API
    # ------------------------------------------------------------------
    async def get_quote(self, request: UnifiedQuoteRequest) -> RawQuote:
        pickup_state = await self.state_id(request.pickup.state)
        delivery_state = await self.state_id(request.delivery.state)
        band = await self.weight_range(request.item.weight)
        intracity = pickup_state == delivery_state

        if intracity:
            if not request.pickup.coordinates or not request.delivery.coordinates:
                raise ProviderAPIError("Faramove intra-city quotes need pickup and delivery coordinates")
            payload = {
                "business": self.business_id,
                "service_type": SERVICE_TYPE,
                "quote_type": "INTRA_CITY",
                "addresses": [_point(request.pickup.coordinates), _point(request.delivery.coordinates)],
                "pickup_state": pickup_state,
                "packages": [
                    {
                        "weight_range": band["id"],
                        "itemValue": request.item.value or 0,
                        "drop_off_city": await self.city_id(delivery_state, request.delivery.city),
                        "drop_off_position": 1,
                    }
                ],
                "additional_services": request.meta.get("additional_services", []),
            }
        else:
            payload = {
                "service_type": SERVICE_TYPE,
                "quote_type": "INTER_STATE",
                "packages": [
                    {
                        "weight_range": band["id"],
                        "itemValue": str(request.item.value) if request.item.value is not None else "",
                    }
                ],
                "pickup_state": pickup_state,
                "pick_up_type": "HOME_PICK_UP",
                "delivery_type": "HOME_DELIVERY",
                "dropoff_state": delivery_state,
                "additional_services": request.meta.get("additional_services", []),
            }

        response = await self._post("/api/v2/quote/request-quote", payload)
        data = response.get("data") or {}
        quotes = data.get("quotes") or []
        if quotes:
            first = quotes[0]
            price = first.get("total_quote_with_insurance") or first.get("total_quote") or first.get("quote") or 0
        else:
            first = {}
            price = data.get("total_quote") or 0

        return RawQuote(
            provider_key=self.carrier_code,
            price=Decimal(str(price)),
            eta="N/A",
            service_type="standard",
            meta={
                "weight_range": band["id"],
                "vehicle_type": band["vehicle_type"],
                "insurance": first.get("insurance"),
                "discount": first.get("discount"),
                "vat": first.get("vat_percentage"),
                "raw": data,
            },
        )

    async def create_order(self, reference: str, request: UnifiedQuoteRequest) -> ProviderOrderResponse:
        pickup_state = await self.state_id(request.pickup.state)
        delivery_state = await self.state_id(request.delivery.state)
        band = await self.weight_range(request.item.weight)
        if not request.pickup.coordinates or not request.delivery.coordinates:
            raise ProviderAPIError("Faramove bookings need pickup and delivery coordinates")

        payload = {
            "service": "SHIP WITHIN NIGERIA",
            "service_type": SERVICE_TYPE,
            "pickup": {
                "date": datetime.now(timezone.utc).isoformat(),
                "contact_name": request.pickup.contact_name or request.pickup.city,
                "phone_number": request.pickup.contact_phone,
                "address": request.pickup.address,
                "location": _point(request.pickup.coordinates),
                "city": await self.city_id(pickup_state, request.pickup.city),
                "state": pickup_state,
                "pick_up_type": "HOME_PICK_UP",
            },
            "destination": [
                {
                    "contact_name": request.delivery.customer_name,
                    "phone_number": request.delivery.customer_phone,
                    "address": request.delivery.formatted_address or request.delivery.address,
                    "location": _point(request.delivery.coordinates),
                    "city": await self.city_id(delivery_state, request.delivery.city),
                    "state": delivery_state,
                    "delivery_type": "HOME_DELIVERY",
                    "description": request.item.description,
                    "packages": [
                        {"weight": band["id"], "weight_type": "KG", "item_value": request.item.value or 0}
                    ],
                }
            ],
            "description": request.item.description,
            "delivery_method_type": "Express",
            "additional_services": [],
            "booking_type": "INTRACITY" if pickup_state == delivery_state else "INTERSTATE",
            "reference": reference,
            "quote": request.meta.get("quote"),
        }
        response = await self._post("/api/v2/booking/partner", payload)
        data = response.get("data") or {}
        return ProviderOrderResponse(
            external_order_id=data.get("id") or data.get("_id"),
            tracking_ref=data.get("tracking_number") or None,
            status=data.get("status") or "CREATED",
            raw=response,
        )

    async def track_order(self, external_order_id: str) -> TrackingStatus:
        response = await self._get(f"/api/v2/shipment/shipment-status/{external_order_id}")
        data = response.get("data") or {}

        def last_event(group):
            events = data.get(group)
            return events[-1] if isinstance(events, list) and events else None

        latest = last_event("COMPLETED") or last_event("CANCELED") or last_event("CURRENT")
        if latest is None:
            events = [e for group in data.values() if isinstance(group, list) for e in group]
            events.sort(key=lambda e: e.get("updatedAt") or e.get("createdAt") or "", reverse=True)
            latest = events[0] if events else {}

        return TrackingStatus(
            status=latest.get("name") or "Unknown",
            updated_at=latest.get("updatedAt") or latest.get("createdAt"),
            meta=data,
        )

    async def cancel_order(self, external_order_id: str) -> None:
        raise ProviderAPIError("Faramove cancellation is not supported by the API")
