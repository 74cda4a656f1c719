"""
Fez Delivery carrier implementation.

Fez authenticates with a user id/password pair and returns a bearer token plus
an organisation secret key, both of which are sent on every request.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import ProviderAPIError
from app.schemas.order import ProviderOrderResponse, TrackingStatus
from app.schemas.quote import RawQuote, UnifiedQuoteRequest
from app.services.shipping.base import BaseCarrier

logger = logging.getLogger(__name__)


class FezCarrier(BaseCarrier):
    """Fez Delivery nationwide courier"""

    carrier_name = "Fez Delivery"
    carrier_code = ProviderKey.FEZ

    def __init__(self, rate_limiter, settings, timeout: float = 30.0):
        super().__init__(rate_limiter, timeout)
        self.user_id = settings.FEZ_USER_ID
        self.password = settings.FEZ_PASSWORD
        self.base_url = settings.FEZ_BASE_URL.rstrip("/")
        self._auth: Optional[Dict[str, str]] = None
        self._auth_expires_at: Optional[datetime] = None

    def _auth_valid(self) -> bool:
        if not self._auth or not self._auth_expires_at:
            return False
        # Refresh when fewer than five minutes remain
        return (self._auth_expires_at - datetime.now(timezone.utc)).total_seconds() > 300

    async def _authenticate(self) -> Dict[str, str]:
        if self._auth_valid():
            return self._auth

        data = await self._make_request(
            "POST",
            f"{self.base_url}/user/authenticate",
            data={"user_id": self.user_id, "password": self.password},
        )
        auth_details = data.get("authDetails") or {}
        org_details = data.get("orgDetails") or {}
        if not auth_details.get("authToken"):
            raise ProviderAPIError("Fez authentication returned no token")

        self._auth = {
            "Authorization": f"Bearer {auth_details['authToken']}",
            "secret-key": org_details.get("secret-key", ""),
        }
        self._auth_expires_at = self._parse_expiry(auth_details.get("expireToken"))
        return self._auth

    @staticmethod
    def _parse_expiry(value: Optional[str]) -> datetime:
        if value:
            try:
                parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
            except ValueError:
                logger.warning(f"Unparseable Fez token expiry: {value}")
        return datetime.now(timezone.utc)

    async def _request(self, method: str, path: str, data=None):
        """Authenticated request; re-authenticates once when the token is rejected"""
        headers = await self._authenticate()
        try:
            return await self._make_request(method, f"{self.base_url}{path}", headers=headers, data=data)
        except ProviderAPIError as e:
            if e.status_code not in (401, 403):
                raise
            self._auth = None
            headers = await self._authenticate()
            return await self._make_request(method, f"{self.base_url}{path}", headers=headers, data=data)

    async def get_quote(self, request: UnifiedQuoteRequest) -> RawQuote:
        cost = await self._request(
            "POST",
            "/order/cost",
            data={
                "state": request.delivery.state,
                "pickUpState": request.pickup.state,
                "weight": request.item.weight,
            },
        )
        estimate = await self._request(
            "POST",
            "/delivery-time-estimate",
            data={
                "delivery_type": "local",
                "pick_up_state": request.pickup.state,
                "drop_off_state": request.delivery.state,
            },
        )
        price = (cost.get("Cost") or {}).get("cost") or 0
        return RawQuote(
            provider_key=self.carrier_code,
            price=Decimal(str(price)),
            eta=(estimate.get("data") or {}).get("eta") or "N/A",
            service_type="standard",
            meta={"fezCost": cost, "fezTime": estimate},
        )

    async def create_order(self, reference: str, request: UnifiedQuoteRequest) -> ProviderOrderResponse:
        body = [{
            "recipientAddress": request.delivery.address,
            "recipientState": request.delivery.state,
            "recipientName": request.delivery.customer_name,
            "recipientPhone": request.delivery.customer_phone,
            "uniqueID": reference,
            "BatchID": f"batch_{reference}",
            "itemDescription": request.item.description,
            "valueOfItem": str(request.item.value) if request.item.value is not None else "",
            "weight": request.item.weight,
            "pickUpState": request.pickup.state,
            "pickUpAddress": request.pickup.address,
        }]
        data = await self._request("POST", "/order", data=body)

        # {"orderNos": {<uniqueID>: <fez order number>}, ...}
        order_nos = data.get("orderNos") or {}
        order_no = str(order_nos.get(reference) or next(iter(order_nos.values()), "")) or None
        if not order_no:
            raise ProviderAPIError(f"Fez did not return an order number: {data.get('description')}")
        return ProviderOrderResponse(
            external_order_id=order_no,
            tracking_ref=order_no,
            status=data.get("status") or "pending",
            raw=data,
        )

    async def track_order(self, external_order_id: str) -> TrackingStatus:
        data = await self._request("GET", f"/order/track/{external_order_id}")
        order = data.get("order") or (data.get("meta") or {}).get("order") or {}
        return TrackingStatus(
            status=order.get("orderStatus") or data.get("status") or "Unknown",
            updated_at=data.get("updatedAt"),
            meta=data,
        )

    async def cancel_order(self, external_order_id: str) -> None:
        await self._request("DELETE", "/order", data=[{"orderNo": external_order_id}])
