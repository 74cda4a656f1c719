# tests/conftest.py
import os

# Point the module-level engine at sqlite before anything imports app.database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from decimal import Decimal

import pytest

from app.core.config import Settings
from app.schemas.quote import UnifiedQuoteRequest
from app.services.pricing import MarkupPolicy
from tests.mocks import MockData


class FakeClock:
    """Monotonic clock the tests move by hand"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        DATABASE_URL="sqlite+aiosqlite:///:memory:",
        GOOGLE_MAPS_API_KEY="test-maps-key",
        GLOVO_CLIENT_ID="1234",
        GLOVO_CLIENT_SECRET="glovo-secret",
        FARAMOVE_API_KEY="faramove-key",
        FEZ_USER_ID="fez-user",
        FEZ_PASSWORD="fez-pass",
        GIG_EMAIL="ops@example.com",
        GIG_PASSWORD="gig-pass",
        GIG_CUSTOMER_CODE="IND1234",
        DHL_API_KEY="dhl-key",
        DHL_API_SECRET="dhl-secret",
        DHL_ACCOUNT_NUMBER="123456789",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def markup_policy():
    return MarkupPolicy(flat_fee=Decimal("500"), percent_by_provider={"dhl": Decimal("15")})


@pytest.fixture
def quote_request():
    """Same-city Lagos shipment"""
    return UnifiedQuoteRequest.model_validate(MockData.quote_request_payload())


@pytest.fixture
def international_request():
    return UnifiedQuoteRequest.model_validate(
        MockData.quote_request_payload(**MockData.international_overrides())
    )
