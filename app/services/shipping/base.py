"""
Base Carrier Interface

This module defines the abstract base class that all carrier integrations
implement. The rest of the broker only talks to carriers through it:

- get_quote: price a shipment
- create_order: book it
- track_order: read the carrier's current status
- cancel_order: undo a booking (used as compensation)

Every HTTP call goes through `_make_request`, which first waits for a slot in
the carrier's rate-limit budget.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

import httpx

from app.core.enums import ProviderKey
from app.core.exceptions import ProviderAPIError
from app.schemas.order import ProviderOrderResponse, TrackingStatus
from app.schemas.quote import RawQuote, UnifiedQuoteRequest
from app.services.rate_limiter import ProviderRateLimiter

logger = logging.getLogger(__name__)


class BaseCarrier(ABC):
    """Base class for all delivery carriers"""

    carrier_name = "Generic Carrier"
    carrier_code: ProviderKey = None

    # Request-shape eligibility
    domestic = True
    international = False
    service_regions: Optional[Iterable[str]] = None

    # Pre-resolution the aggregator performs before calling get_quote
    uses_address_book = False
    needs_coordinates = False

    def __init__(self, rate_limiter: ProviderRateLimiter, timeout: float = 30.0):
        """Initialize the carrier

        Args:
            rate_limiter: Shared limiter gating every outbound call
            timeout: Per-request timeout in seconds
        """
        self.rate_limiter = rate_limiter
        self.timeout = timeout

    def serves(self, request: UnifiedQuoteRequest) -> bool:
        """Whether this carrier can take the shipment at all, ignoring availability"""
        if request.is_international:
            return self.international
        if not self.domestic:
            return False
        if self.service_regions is not None:
            regions = {r.lower() for r in self.service_regions}
            pickup_state = (request.pickup.state or "").strip().lower()
            delivery_state = (request.delivery.state or "").strip().lower()
            return pickup_state in regions and delivery_state in regions
        return True

    async def _make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        data: Any = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Make a rate-limited request to the carrier API

        Returns:
            Parsed JSON body, or {} for empty responses

        Raises:
            ProviderAPIError: network failure, timeout or non-2xx response
        """
        await self.rate_limiter.await_slot(self.carrier_code)

        logger.debug(f"{self.carrier_code.value}: {method} {url}")
        if data is not None:
            logger.debug(f"Data: {json.dumps(data, default=str)[:500]}...")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=data,
                    params=params
                )
        except httpx.TimeoutException as e:
            logger.error(f"{self.carrier_name} timeout: {str(e)}")
            raise ProviderAPIError(f"{self.carrier_name} request timed out: {str(e)}") from e
        except httpx.RequestError as e:
            logger.error(f"{self.carrier_name} network error: {str(e)}")
            raise ProviderAPIError(f"{self.carrier_name} network error: {str(e)}") from e

        if response.status_code not in (200, 201, 202, 204):
            payload = self._safe_json(response)
            logger.error(f"{self.carrier_name} API error {response.status_code}: {response.text[:500]}")
            raise ProviderAPIError(
                f"{self.carrier_name} request failed ({response.status_code}): {self._error_message(payload, response)}",
                status_code=response.status_code,
                payload=payload,
            )

        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    @staticmethod
    def _safe_json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(payload: Any, response: httpx.Response) -> str:
        if isinstance(payload, dict):
            for key in ("message", "detail", "error"):
                if payload.get(key):
                    return str(payload[key])
        return response.text[:200]

    @abstractmethod
    async def get_quote(self, request: UnifiedQuoteRequest) -> RawQuote:
        """Price a shipment

        Args:
            request: Shipment description, possibly augmented with
                pre-resolved address data in `meta`

        Returns:
            Un-normalized carrier quote
        """
        pass

    @abstractmethod
    async def create_order(self, reference: str, request: UnifiedQuoteRequest) -> ProviderOrderResponse:
        """Book a shipment

        Args:
            reference: Our customer-facing order id, passed through where the
                carrier accepts a client reference
            request: Shipment description

        Returns:
            Carrier order id, tracking reference and initial status
        """
        pass

    @abstractmethod
    async def track_order(self, external_order_id: str) -> TrackingStatus:
        """Fetch the carrier's current status for an order"""
        pass

    @abstractmethod
    async def cancel_order(self, external_order_id: str) -> None:
        """Cancel an order at the carrier

        Raises:
            ProviderAPIError: if the carrier refuses or does not support it
        """
        pass
