"""
Glovo carrier implementation.

Glovo only serves same-city deliveries inside its service regions and prices
from an address-book entry for the pickup point, so the aggregator resolves
`meta["address_book_id"]` before asking for a quote.
"""

import logging
import re
import time
from decimal import Decimal
from typing import Any, Dict, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import AddressConflictError, ProviderAPIError
from app.schemas.order import ProviderOrderResponse, TrackingStatus
from app.schemas.quote import RawQuote, UnifiedQuoteRequest
from app.services.shipping.base import BaseCarrier

logger = logging.getLogger(__name__)

_ISO_MINUTES = re.compile(r"PT(\d+)M")


def _coordinates(coords) -> Optional[Dict[str, float]]:
    if not coords:
        return None
    return {"latitude": coords[0], "longitude": coords[1]}


class GlovoCarrier(BaseCarrier):
    """Glovo on-demand courier (LaaS API)"""

    carrier_name = "Glovo"
    carrier_code = ProviderKey.GLOVO

    uses_address_book = True
    needs_coordinates = True

    def __init__(self, rate_limiter, settings, timeout: float = 30.0):
        super().__init__(rate_limiter, timeout)
        self.client_id = settings.GLOVO_CLIENT_ID
        self.client_secret = settings.GLOVO_CLIENT_SECRET
        self.base_url = settings.GLOVO_PRODUCTION_URL if settings.is_production else settings.GLOVO_BASE_URL
        self.service_regions = settings.glovo_service_states
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _get_token(self) -> str:
        # Reuse while valid for at least another minute
        if self._token and self._token_expires_at - time.time() > 60:
            return self._token
        data = await self._make_request(
            "POST",
            f"{self.base_url}/oauth/token",
            data={
                "grantType": "client_credentials",
                "clientId": int(self.client_id) if str(self.client_id).isdigit() else self.client_id,
                "clientSecret": self.client_secret,
            },
        )
        self._token = data.get("accessToken")
        self._token_expires_at = time.time() + (data.get("expiresIn") or 3600)
        return self._token

    async def _headers(self, **extra) -> Dict[str, str]:
        token = await self._get_token()
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json", **extra}

    @staticmethod
    def _eta_from_quote(quote: Dict[str, Any]) -> str:
        upper = (quote.get("estimatedTimeOfDelivery") or {}).get("upperBound")
        if upper:
            match = _ISO_MINUTES.search(upper)
            if match:
                minutes = int(match.group(1))
                return "1 day" if minutes >= 1440 else f"{minutes} minutes"
        return "1 day"

    async def get_quote(self, request: UnifiedQuoteRequest) -> RawQuote:
        address_book_id = request.meta.get("address_book_id")
        if not address_book_id:
            raise ProviderAPIError("Glovo quote requires a pickup address-book id")

        body = {
            "pickupDetails": {"addressBook": {"id": address_book_id}},
            "deliveryAddress": {
                "rawAddress": request.delivery.formatted_address or request.delivery.address,
                "coordinates": _coordinates(request.delivery.coordinates),
                "details": "",
            },
        }
        quote = await self._make_request(
            "POST", f"{self.base_url}/v2/laas/quotes", headers=await self._headers(), data=body
        )
        return RawQuote(
            provider_key=self.carrier_code,
            price=Decimal(str(quote.get("quotePrice") or quote.get("price") or 0)),
            eta=self._eta_from_quote(quote),
            service_type="standard",
            meta={**quote, "quoteId": quote.get("quoteId") or quote.get("id")},
        )

    async def create_order(self, reference: str, request: UnifiedQuoteRequest) -> ProviderOrderResponse:
        address_book_id = request.meta.get("address_book_id")
        if address_book_id:
            pickup = {"addressBook": {"id": address_book_id}}
        else:
            pickup = {
                "rawAddress": request.pickup.address,
                "coordinates": _coordinates(request.pickup.coordinates),
            }

        package = {
            "contentType": "GENERIC_PARCEL",
            "description": request.item.description,
            "parcelValue": request.item.value or 0,
            "weight": request.item.weight,
        }
        if request.item.length and request.item.width and request.item.height:
            package["dimensions"] = {
                "length": request.item.length,
                "width": request.item.width,
                "height": request.item.height,
            }

        body = {
            "pickupDetails": pickup,
            "deliveryAddress": {
                "rawAddress": request.delivery.formatted_address or request.delivery.address,
                "coordinates": _coordinates(request.delivery.coordinates),
                "details": "",
            },
            "contact": {
                "name": request.delivery.customer_name,
                "phone": request.delivery.customer_phone,
            },
            "packageDetails": package,
            "externalReference": reference,
        }
        headers = await self._headers(**{"Idempotency-Key": f"glovo-{reference}"})
        data = await self._make_request("POST", f"{self.base_url}/v2/laas/parcels", headers=headers, data=body)

        tracking = str(data["trackingNumber"]) if data.get("trackingNumber") is not None else None
        status = (data.get("status") or {}).get("state") or data.get("state") or "pending"
        return ProviderOrderResponse(
            external_order_id=tracking or data.get("orderCode"),
            tracking_ref=tracking,
            status=status,
            raw=data,
        )

    async def track_order(self, external_order_id: str) -> TrackingStatus:
        data = await self._make_request(
            "GET",
            f"{self.base_url}/v2/laas/parcels/{external_order_id}/status",
            headers=await self._headers(),
        )
        return TrackingStatus(
            status=data.get("state") or "Unknown",
            updated_at=data.get("updateTime"),
            meta=data,
        )

    async def cancel_order(self, external_order_id: str) -> None:
        await self._make_request(
            "POST",
            f"{self.base_url}/v2/laas/parcels/{external_order_id}/cancel",
            headers=await self._headers(),
            data={},
        )

    async def register_address(self, formatted_address: str, coordinates, phone_number: str) -> str:
        """
        Create a pickup address-book entry and return its id.

        Raises:
            AddressConflictError: the address belongs to another Glovo account
        """
        body = {
            "address": formatted_address,
            "addressDetails": "",
            "phoneNumber": phone_number,
            "coordinates": _coordinates(coordinates),
        }
        try:
            data = await self._make_request(
                "POST", f"{self.base_url}/v2/laas/addresses", headers=await self._headers(), data=body
            )
        except ProviderAPIError as e:
            if e.status_code == 409:
                logger.warning(f"Glovo returned 409 for address '{formatted_address}'")
                if isinstance(e.payload, dict) and e.payload.get("id"):
                    return str(e.payload["id"])
                raise AddressConflictError(
                    "Address already registered under another Glovo account",
                    status_code=409,
                    payload=e.payload,
                ) from e
            raise
        return str(data["id"])
