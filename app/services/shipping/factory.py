"""
Carrier registry, built once at startup
"""
from typing import Dict, Union

from app.core.enums import ProviderKey
from app.core.exceptions import InvalidProvider
from app.services.rate_limiter import ProviderRateLimiter
from app.services.shipping.base import BaseCarrier
from app.services.shipping.carriers.dhl import DHLCarrier
from app.services.shipping.carriers.faramove import FaramoveCarrier
from app.services.shipping.carriers.fez import FezCarrier
from app.services.shipping.carriers.gig import GIGCarrier
from app.services.shipping.carriers.glovo import GlovoCarrier

CARRIER_CLASSES = {
    ProviderKey.GLOVO: GlovoCarrier,
    ProviderKey.FARAMOVE: FaramoveCarrier,
    ProviderKey.FEZ: FezCarrier,
    ProviderKey.GIG: GIGCarrier,
    ProviderKey.DHL: DHLCarrier,
}


def build_carrier_registry(settings, rate_limiter: ProviderRateLimiter) -> Dict[ProviderKey, BaseCarrier]:
    """
    Instantiate one carrier per provider key

    Args:
        settings: Application settings (credentials, base URLs, timeouts)
        rate_limiter: Limiter shared by every carrier

    Returns:
        Mapping of provider key to carrier instance
    """
    return {
        key: carrier_class(rate_limiter, settings, timeout=settings.PROVIDER_TIMEOUT_SECONDS)
        for key, carrier_class in CARRIER_CLASSES.items()
    }


def get_carrier(registry: Dict[ProviderKey, BaseCarrier], provider: Union[ProviderKey, str]) -> BaseCarrier:
    """
    Look up a carrier by key

    Raises:
        InvalidProvider: If the provider key is not supported
    """
    try:
        key = ProviderKey(str(getattr(provider, "value", provider)).lower())
    except ValueError:
        raise InvalidProvider(f"Carrier '{provider}' is not supported")
    if key not in registry:
        raise InvalidProvider(f"Carrier '{provider}' is not supported")
    return registry[key]
