# app/core/config.py

import os
from functools import lru_cache
from typing import Dict, List
from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings.
    Loads values from environment variables (.env file)
    """
    # Database settings
    DATABASE_URL: str = ""

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Pricing
    CURRENCY: str = "NGN"
    MARKUP_FEE: float = 500.0           # Flat platform fee added to every quote
    DHL_MARKUP_PERCENT: float = 15.0    # DHL: percentage of the provider price instead

    # Outbound call bounds
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    QUOTE_TIMEOUT_SECONDS: float = 45.0
    WEBSOCKET_SEND_TIMEOUT_SECONDS: float = 5.0

    # Per-provider rate limits (requests per window)
    FEZ_RATE_LIMIT_REQUESTS: int = 60
    FEZ_RATE_LIMIT_WINDOW_MS: int = 60000
    FARAMOVE_RATE_LIMIT_REQUESTS: int = 100
    FARAMOVE_RATE_LIMIT_WINDOW_MS: int = 60000
    GLOVO_RATE_LIMIT_REQUESTS: int = 120
    GLOVO_RATE_LIMIT_WINDOW_MS: int = 60000
    GIG_RATE_LIMIT_REQUESTS: int = 100
    GIG_RATE_LIMIT_WINDOW_MS: int = 60000
    DHL_RATE_LIMIT_REQUESTS: int = 50
    DHL_RATE_LIMIT_WINDOW_MS: int = 60000

    # Address book
    GLOVO_SERVICE_STATES: str = "lagos"   # Comma separated
    DEFAULT_ADDRESS_PHONE: str = "+2348130926960"
    ADDRESS_CACHE_MAX_AGE_DAYS: int = 90

    # Geocoding
    GOOGLE_MAPS_API_KEY: str = ""
    GOOGLE_GEOCODE_URL: str = "https://maps.googleapis.com/maps/api/geocode/json"

    # Glovo
    GLOVO_CLIENT_ID: str = ""
    GLOVO_CLIENT_SECRET: str = ""
    GLOVO_BASE_URL: str = "https://stageapi.glovoapp.com"
    GLOVO_PRODUCTION_URL: str = "https://api.glovoapp.com"

    # Faramove
    FARAMOVE_API_KEY: str = ""
    FARAMOVE_BASE_URL: str = "https://api.faramove.com"
    FARAMOVE_BUSINESS_ID: str = ""

    # Fez
    FEZ_USER_ID: str = ""
    FEZ_PASSWORD: str = ""
    FEZ_BASE_URL: str = "https://apisandbox.fezdelivery.co/v1"

    # GIG
    GIG_EMAIL: str = ""
    GIG_PASSWORD: str = ""
    GIG_CUSTOMER_CODE: str = ""
    GIG_CUSTOMER_TYPE: int = 1
    GIG_BASE_URL: str = "https://dev-thirdpartynode.theagilitysystems.com"
    GIG_PRODUCTION_URL: str = "https://thirdpartynode.theagilitysystems.com"

    # DHL Express settings
    DHL_API_KEY: str = ""
    DHL_API_SECRET: str = ""
    DHL_ACCOUNT_NUMBER: str = ""
    DHL_TEST_MODE: bool = True
    DHL_SHIPPER_COMPANY: str = "Sender Company"
    DHL_SHIPPER_EMAIL: str = "sender@example.com"
    DHL_RECEIVER_COMPANY: str = "Receiver Company"
    DHL_RECEIVER_EMAIL: str = "receiver@example.com"

    model_config = ConfigDict(
        env_file=os.environ.get('ENV_FILE', '.env') if os.path.exists('.env') else None,
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def glovo_service_states(self) -> List[str]:
        return [s.strip().lower() for s in self.GLOVO_SERVICE_STATES.split(",") if s.strip()]

    @field_validator(
        "FEZ_RATE_LIMIT_REQUESTS", "FEZ_RATE_LIMIT_WINDOW_MS",
        "FARAMOVE_RATE_LIMIT_REQUESTS", "FARAMOVE_RATE_LIMIT_WINDOW_MS",
        "GLOVO_RATE_LIMIT_REQUESTS", "GLOVO_RATE_LIMIT_WINDOW_MS",
        "GIG_RATE_LIMIT_REQUESTS", "GIG_RATE_LIMIT_WINDOW_MS",
        "DHL_RATE_LIMIT_REQUESTS", "DHL_RATE_LIMIT_WINDOW_MS",
    )
    @classmethod
    def rate_limit_must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("rate limit requests and window must be positive")
        return value

    def rate_limits(self) -> Dict[str, Dict[str, int]]:
        """Per-provider limits as {provider: {"max_requests", "window_ms"}}"""
        limits = {}
        for provider in ("fez", "faramove", "glovo", "gig", "dhl"):
            prefix = provider.upper()
            limits[provider] = {
                "max_requests": getattr(self, f"{prefix}_RATE_LIMIT_REQUESTS"),
                "window_ms": getattr(self, f"{prefix}_RATE_LIMIT_WINDOW_MS"),
            }
        return limits


@lru_cache()
def get_settings():
    """Cached settings to avoid loading .env file for every request"""
    return Settings()


def clear_settings_cache():
    """Clear the settings cache - useful when switching between environments"""
    get_settings.cache_clear()
