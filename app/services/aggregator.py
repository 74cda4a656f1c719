# app/services/aggregator.py
"""
Quote aggregation.

A single quote request is fanned out to every eligible carrier at once. A
carrier that fails or times out is logged and left out; callers get whatever
succeeded, possibly nothing.
"""

import asyncio
import logging
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set

from app.core.enums import ProviderKey
from app.schemas.quote import ProviderQuote, RawQuote, UnifiedQuoteRequest
from app.services.address_cache import AddressResolutionCache
from app.services.geocoding import GoogleGeocoder
from app.services.pricing import MarkupPolicy, normalize_quote
from app.services.shipping.base import BaseCarrier
from app.services.stores import PartnerStore

logger = logging.getLogger(__name__)


def eligible_carriers(
    request: UnifiedQuoteRequest,
    registry: Dict[ProviderKey, BaseCarrier],
    active_keys: Iterable[str],
) -> List[BaseCarrier]:
    """Carriers that are switched on and can serve this shipment's route."""
    active = {str(k).lower() for k in active_keys}
    return [
        carrier
        for key, carrier in registry.items()
        if key.value in active and carrier.serves(request)
    ]


def filter_affordable(quotes: List[ProviderQuote], wallet_balance: Decimal) -> List[ProviderQuote]:
    balance = Decimal(wallet_balance)
    return [q for q in quotes if q.price_final <= balance]


class QuoteAggregator:
    def __init__(
        self,
        registry: Dict[ProviderKey, BaseCarrier],
        partner_store: PartnerStore,
        address_cache: AddressResolutionCache,
        geocoder: GoogleGeocoder,
        markup_policy: MarkupPolicy,
        quote_timeout: float = 45.0,
        currency: str = "NGN",
    ):
        self.registry = registry
        self.partner_store = partner_store
        self.address_cache = address_cache
        self.geocoder = geocoder
        self.markup_policy = markup_policy
        self.quote_timeout = quote_timeout
        self.currency = currency

    async def prepare_request(
        self,
        request: UnifiedQuoteRequest,
        carriers: Iterable[BaseCarrier],
        register_addresses: bool = True,
    ) -> UnifiedQuoteRequest:
        """
        Resolve, once, the address data some carriers need.

        Returns an augmented copy; the caller's request is never modified.
        Resolution failures are logged and the affected fields left empty.
        With `register_addresses` off, address-book ids come from the cache
        only and nothing new is registered at the provider.
        """
        carriers = list(carriers)
        meta = dict(request.meta)
        pickup_update: Dict = {}
        delivery_update: Dict = {}

        if any(c.uses_address_book for c in carriers) and not meta.get("address_book_id"):
            address_book_id = await self.resolve_address_book(
                request.pickup.address, register=register_addresses
            )
            if address_book_id:
                meta["address_book_id"] = address_book_id

        if any(c.needs_coordinates for c in carriers):
            if request.delivery.coordinates is None:
                geocode = await self._safe_geocode(request.delivery.address)
                if geocode:
                    delivery_update = {
                        "coordinates": geocode.coordinates,
                        "formatted_address": geocode.formatted_address,
                        "postal_code": request.delivery.postal_code or geocode.postal_code,
                    }
            if request.pickup.coordinates is None:
                geocode = await self._safe_geocode(request.pickup.address)
                if geocode:
                    pickup_update = {
                        "coordinates": geocode.coordinates,
                        "postal_code": request.pickup.postal_code or geocode.postal_code,
                    }

        return request.model_copy(update={
            "meta": meta,
            "pickup": request.pickup.model_copy(update=pickup_update),
            "delivery": request.delivery.model_copy(update=delivery_update),
        })

    async def resolve_address_book(self, address: str, register: bool = True) -> Optional[str]:
        """Address-book id for a pickup address, or None when it cannot be had."""
        try:
            if register:
                return await self.address_cache.get_or_create(address)
            return await self.address_cache.lookup(address)
        except Exception as e:
            logger.warning(f"Pickup address-book resolution failed for '{address}': {e}")
            return None

    async def _safe_geocode(self, address: str):
        try:
            return await self.geocoder.normalize(address)
        except Exception as e:
            logger.warning(f"Geocoding failed for '{address}': {e}")
            return None

    async def fetch_raw(self, carrier: BaseCarrier, request: UnifiedQuoteRequest) -> RawQuote:
        return await asyncio.wait_for(carrier.get_quote(request), timeout=self.quote_timeout)

    def normalize(self, raw: RawQuote, provider_id: Optional[int] = None) -> ProviderQuote:
        return normalize_quote(raw, self.markup_policy, provider_id=provider_id, currency=self.currency)

    async def quote_with(
        self,
        carrier: BaseCarrier,
        request: UnifiedQuoteRequest,
        provider_id: Optional[int] = None,
    ) -> ProviderQuote:
        """Quote one carrier and normalize the result; errors propagate."""
        return self.normalize(await self.fetch_raw(carrier, request), provider_id)

    async def get_quotes(
        self,
        request: UnifiedQuoteRequest,
        wallet_balance: Optional[Decimal] = None,
    ) -> List[ProviderQuote]:
        """
        Quote every eligible carrier concurrently.

        Args:
            request: Shipment to price
            wallet_balance: When given, quotes the wallet cannot cover are dropped

        Returns:
            Successful quotes in no particular order (empty if none succeeded)
        """
        active_keys: Set[str] = await self.partner_store.active_keys()
        partner_ids = await self.partner_store.ids_by_key()
        carriers = eligible_carriers(request, self.registry, active_keys)
        if not carriers:
            logger.info("No eligible carriers for request")
            return []

        prepared = await self.prepare_request(request, carriers)
        if not prepared.meta.get("address_book_id"):
            skipped = [c for c in carriers if c.uses_address_book]
            for carrier in skipped:
                logger.info(f"Skipping {carrier.carrier_code.value}: no pickup address-book id")
            carriers = [c for c in carriers if not c.uses_address_book]

        results = await asyncio.gather(
            *(
                self.quote_with(carrier, prepared, partner_ids.get(carrier.carrier_code.value))
                for carrier in carriers
            ),
            return_exceptions=True,
        )

        quotes: List[ProviderQuote] = []
        for carrier, result in zip(carriers, results):
            if isinstance(result, BaseException):
                reason = "timed out" if isinstance(result, asyncio.TimeoutError) else str(result)
                logger.warning(f"Quote from {carrier.carrier_code.value} failed: {reason}")
                continue
            quotes.append(result)

        logger.info(f"Collected {len(quotes)}/{len(carriers)} quotes")
        if wallet_balance is not None:
            quotes = filter_affordable(quotes, wallet_balance)
        return quotes
