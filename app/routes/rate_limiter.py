# app/routes/rate_limiter.py
from fastapi import APIRouter, Depends, HTTPException

from app.core.enums import ProviderKey
from app.dependencies import get_rate_limiter
from app.schemas.order import RateLimitConfigUpdate
from app.services.rate_limiter import ProviderRateLimiter

router = APIRouter(prefix="/utils/rate-limiter", tags=["rate-limiter"])


def _provider(provider: str) -> ProviderKey:
    try:
        return ProviderKey(provider.lower())
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown provider: {provider}")


@router.get("/status")
async def rate_limiter_status(limiter: ProviderRateLimiter = Depends(get_rate_limiter)):
    return limiter.status_all()


@router.get("/{provider}/status")
async def provider_rate_limit_status(provider: str, limiter: ProviderRateLimiter = Depends(get_rate_limiter)):
    return limiter.status(_provider(provider))


@router.patch("/{provider}/config")
async def update_provider_rate_limit(
    provider: str,
    config: RateLimitConfigUpdate,
    limiter: ProviderRateLimiter = Depends(get_rate_limiter),
):
    """Change a provider's window at runtime; existing call history is kept"""
    key = _provider(provider)
    limiter.update_config(key, config.max_requests, config.window_ms / 1000)
    return {
        "provider": key.value,
        "max_requests": config.max_requests,
        "window_ms": config.window_ms,
        **limiter.status(key),
    }
