from fastapi import Request

from app.services.container import BrokerServices
from app.services.rate_limiter import ProviderRateLimiter


def get_services(request: Request) -> BrokerServices:
    """Dependency for the services built in the application lifespan."""
    return request.app.state.services


def get_rate_limiter(request: Request) -> ProviderRateLimiter:
    return get_services(request).rate_limiter
