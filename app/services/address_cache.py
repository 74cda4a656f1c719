# app/services/address_cache.py
import hashlib
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional, Tuple

from app.core.exceptions import AddressConflictError, GeocodingError
from app.services.geocoding import GeocodeResult, GoogleGeocoder
from app.services.stores import AddressCacheEntry, AddressCacheStore

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")

# (formatted_address, (lat, lng), phone_number) -> carrier address-book id
AddressRegistrar = Callable[[str, Tuple[float, float], str], Awaitable[str]]


class AddressResolutionCache:
    """
    Maps physical addresses to carrier address-book ids.

    Addresses are geocoded first so that different spellings of the same place
    share one cache entry. A carrier registration call is only made on a miss.
    """

    def __init__(
        self,
        geocoder: GoogleGeocoder,
        store: AddressCacheStore,
        registrar: AddressRegistrar,
        default_phone: str,
    ):
        self.geocoder = geocoder
        self.store = store
        self.registrar = registrar
        self.default_phone = default_phone

    @staticmethod
    def hash_address(formatted_address: str) -> str:
        normalized = _WHITESPACE.sub(" ", formatted_address.strip().lower())
        return hashlib.sha256(normalized.encode("utf-8")).hexdigest()

    async def _geocode(self, raw_address: str) -> GeocodeResult:
        geocode = await self.geocoder.normalize(raw_address)
        if geocode is None:
            raise GeocodingError(f"Failed to geocode address: {raw_address}")
        return geocode

    async def lookup(self, raw_address: str) -> Optional[str]:
        """
        Return the cached id for an address without ever registering it.

        None means no id is known, including when the address does not geocode.
        """
        geocode = await self.geocoder.normalize(raw_address)
        if geocode is None:
            return None
        entry = await self.store.get(self.hash_address(geocode.formatted_address))
        return entry.provider_address_id if entry else None

    async def get_or_create(self, raw_address: str, default_contact_phone: Optional[str] = None) -> Optional[str]:
        """
        Resolve an address to a carrier address-book id, registering it on a miss.

        Returns:
            The id, or None when the carrier reports the address as owned by
            another account (callers skip that carrier)

        Raises:
            GeocodingError: the address could not be geocoded
            ProviderAPIError: registration failed for any reason other than a conflict
        """
        geocode = await self._geocode(raw_address)
        address_hash = self.hash_address(geocode.formatted_address)

        cached = await self.store.get(address_hash)
        if cached is not None:
            await self.store.touch(address_hash)
            return cached.provider_address_id

        phone = default_contact_phone or self.default_phone
        try:
            provider_id = await self.registrar(geocode.formatted_address, geocode.coordinates, phone)
        except AddressConflictError:
            logger.warning(
                f"Address '{geocode.formatted_address}' is registered under another account; skipping"
            )
            return None

        try:
            await self.store.upsert(AddressCacheEntry(
                address_hash=address_hash,
                formatted_address=geocode.formatted_address,
                phone_number=phone,
                provider_address_id=provider_id,
                updated_at=datetime.now(timezone.utc),
            ))
        except Exception as e:
            # The id is still valid; the next call will register again
            logger.warning(f"Address cache upsert failed for {address_hash}: {e}")
        return provider_id

    async def statistics(self) -> Dict[str, int]:
        since = datetime.now(timezone.utc) - timedelta(hours=24)
        return {
            "total_addresses": await self.store.count(),
            "recent_addresses": await self.store.count_updated_since(since),
        }

    async def purge_older_than(self, days: int = 90) -> int:
        """Delete entries not used for `days` days; returns the number removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        removed = await self.store.delete_older_than(cutoff)
        logger.info(f"Cleaned up {removed} address book entries older than {days} days")
        return removed
