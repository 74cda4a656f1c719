# app/services/geocoding.py
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import httpx

from app.core.exceptions import GeocodingError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    formatted_address: str
    coordinates: Tuple[float, float]  # (lat, lng)
    postal_code: Optional[str] = None


class GoogleGeocoder:
    """Thin async client for the Google Maps geocoding endpoint"""

    def __init__(self, api_key: str, url: str, timeout: float = 10.0):
        self.api_key = api_key
        self.url = url
        self.timeout = timeout

    async def normalize(self, raw_address: str) -> Optional[GeocodeResult]:
        """
        Resolve a free-text address.

        Returns None when Google has no match.

        Raises:
            GeocodingError: missing credentials, a failed request or an
                unreadable response body
        """
        if not self.api_key:
            raise GeocodingError("Google Maps API key is not configured")

        params = {"address": raw_address, "key": self.api_key}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Geocoding request failed for '{raw_address}': {e}")
            raise GeocodingError(f"Geocoding request failed: {e}") from e

        if response.status_code != 200:
            raise GeocodingError(f"Geocoding returned HTTP {response.status_code}")

        try:
            results = response.json().get("results") or []
            if not results:
                logger.warning(f"No geocoding result for '{raw_address}'")
                return None

            top = results[0]
            location = top["geometry"]["location"]
            postal_code = next(
                (
                    component.get("long_name")
                    for component in top.get("address_components", [])
                    if "postal_code" in component.get("types", [])
                ),
                None,
            )
            return GeocodeResult(
                formatted_address=top["formatted_address"],
                coordinates=(location["lat"], location["lng"]),
                postal_code=postal_code,
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error(f"Malformed geocoding response for '{raw_address}': {e}")
            raise GeocodingError(f"Malformed geocoding response: {e}") from e
