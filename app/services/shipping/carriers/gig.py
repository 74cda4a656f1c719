"""
GIG Logistics carrier implementation (Agility third-party API).
"""

import logging
from decimal import Decimal, ROUND_CEILING
from typing import Any, Dict, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import ProviderAPIError
from app.schemas.order import ProviderOrderResponse, TrackingStatus
from app.schemas.quote import RawQuote, UnifiedQuoteRequest
from app.services.shipping.base import BaseCarrier

logger = logging.getLogger(__name__)


def _location(coords) -> Dict[str, str]:
    if not coords:
        return {"Latitude": "0", "Longitude": "0"}
    return {"Latitude": str(coords[0]), "Longitude": str(coords[1])}


class GIGCarrier(BaseCarrier):
    """GIG Logistics"""

    carrier_name = "GIG Logistics"
    carrier_code = ProviderKey.GIG

    needs_coordinates = True

    def __init__(self, rate_limiter, settings, timeout: float = 30.0):
        super().__init__(rate_limiter, timeout)
        self.email = settings.GIG_EMAIL
        self.password = settings.GIG_PASSWORD
        self.customer_code = settings.GIG_CUSTOMER_CODE
        self.customer_type = settings.GIG_CUSTOMER_TYPE
        self.base_url = settings.GIG_PRODUCTION_URL if settings.is_production else settings.GIG_BASE_URL
        self._access_token: Optional[str] = None

    async def _authenticate(self) -> str:
        if self._access_token:
            return self._access_token
        data = await self._make_request(
            "POST", f"{self.base_url}/login", data={"email": self.email, "password": self.password}
        )
        token = (data.get("data") or {}).get("access-token")
        if not token:
            raise ProviderAPIError("No access-token returned from GIG login")
        self._access_token = token
        return token

    async def _request(self, method: str, path: str, data=None, params=None) -> Any:
        token = await self._authenticate()
        try:
            return await self._make_request(
                method, f"{self.base_url}{path}", headers={"access-token": token}, data=data, params=params
            )
        except ProviderAPIError as e:
            if e.status_code != 401 and "Invalid Token" not in str(e):
                raise
            logger.info("GIG token rejected, re-authenticating")
            self._access_token = None
            token = await self._authenticate()
            return await self._make_request(
                method, f"{self.base_url}{path}", headers={"access-token": token}, data=data, params=params
            )

    @staticmethod
    def _round_price(value) -> Decimal:
        # GIG returns fractional kobo; round up to whole kobo
        return Decimal(str(value or 0)).quantize(Decimal("0.01"), rounding=ROUND_CEILING)

    async def get_quote(self, request: UnifiedQuoteRequest) -> RawQuote:
        body = {
            "SenderStationId": request.meta.get("sender_station_id", 1),
            "ReceiverStationId": request.meta.get("receiver_station_id", 1),
            "VehicleType": request.meta.get("vehicle_type", 1),
            "ReceiverLocation": _location(request.delivery.coordinates),
            "SenderLocation": _location(request.pickup.coordinates),
            "IsFromAgility": False,
            "CustomerCode": self.customer_code,
            "CustomerType": self.customer_type,
            "DeliveryOptionIds": [2],
            "Value": request.item.value or 0,
            "PickUpOptions": 1,
            "ShipmentItems": [
                {
                    "ItemName": request.item.description,
                    "Description": request.item.description,
                    "SpecialPackageId": 0,
                    "Quantity": 1,
                    "Weight": request.item.weight,
                    "IsVolumetric": False,
                    "Length": 0,
                    "Width": 0,
                    "Height": 0,
                    "ShipmentType": 1,
                    "Value": request.item.value or 0,
                }
            ],
        }
        response = await self._request("POST", "/price", data=body)
        data = response.get("data") or {}
        return RawQuote(
            provider_key=self.carrier_code,
            price=self._round_price(data.get("GrandTotal")),
            eta="Same day" if data.get("isWithinProcessingTime") else "N/A",
            service_type="standard",
            meta=data,
        )

    async def create_order(self, reference: str, request: UnifiedQuoteRequest) -> ProviderOrderResponse:
        body = {
            "SenderDetails": {
                "SenderLocation": _location(request.pickup.coordinates),
                "SenderName": request.pickup.contact_name or "Sender",
                "SenderPhoneNumber": request.pickup.contact_phone,
                "SenderStationId": request.meta.get("sender_station_id", 1),
                "SenderAddress": request.pickup.address,
                "InputtedSenderAddress": request.pickup.address,
                "SenderLocality": request.pickup.city or request.pickup.state,
            },
            "ReceiverDetails": {
                "ReceiverLocation": {
                    **_location(request.delivery.coordinates),
                    "FormattedAddress": request.delivery.formatted_address or request.delivery.address,
                },
                "ReceiverStationId": request.meta.get("receiver_station_id", 1),
                "ReceiverName": request.delivery.customer_name,
                "ReceiverPhoneNumber": request.delivery.customer_phone,
                "ReceiverAddress": request.delivery.formatted_address or request.delivery.address,
                "InputtedReceiverAddress": request.delivery.address,
            },
            "ShipmentDetails": {
                "VehicleType": request.meta.get("vehicle_type", 1),
                "IsFromAgility": 0,
                "IsBatchPickUp": 0,
            },
            "ShipmentItems": [
                {
                    "ItemName": request.item.description or "Item",
                    "SpecialPackageId": 0,
                    "Quantity": 1,
                    "Weight": request.item.weight,
                    "IsVolumetric": False,
                    "Value": request.item.value or 0,
                    "ShipmentType": 1,
                }
            ],
        }
        response = await self._request("POST", "/capture/preshipment", data=body)
        data = response.get("data") or {}
        waybill = data.get("Waybill")
        if not waybill:
            raise ProviderAPIError(f"GIG did not return a waybill: {response.get('message')}")
        return ProviderOrderResponse(
            external_order_id=waybill,
            tracking_ref=waybill,
            status="Created",
            raw=response,
        )

    async def track_order(self, external_order_id: str) -> TrackingStatus:
        response = await self._request("GET", "/track/mobileShipment", params={"Waybill": external_order_id})
        data = response.get("data")
        if isinstance(data, list):
            data = data[0] if data else {}
        data = data or {}
        trackings = data.get("MobileShipmentTrackings") or [{}]
        return TrackingStatus(
            status=trackings[0].get("Status") or "Unknown",
            updated_at=trackings[0].get("DateTime"),
            meta=data,
        )

    async def cancel_order(self, external_order_id: str) -> None:
        raise ProviderAPIError("Cancel order is not supported for GIG")
