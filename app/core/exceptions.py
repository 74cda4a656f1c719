from decimal import Decimal
from typing import Optional


class BrokerError(Exception):
    """Base exception for all broker errors."""
    pass

class ProviderAPIError(BrokerError):
    """Raised when a carrier API call fails or is rejected."""

    def __init__(self, message: str, status_code: Optional[int] = None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

class AddressConflictError(ProviderAPIError):
    """Raised when an address is already registered under another account."""
    pass

class GeocodingError(BrokerError):
    """Raised when an address cannot be geocoded."""
    pass

class InvalidProvider(BrokerError):
    """Raised when a provider is unknown, inactive or mismatched."""
    pass

class InsufficientBalance(BrokerError):
    """Raised when the wallet cannot cover the quoted price."""

    def __init__(self, required: Decimal, available: Decimal):
        super().__init__(
            f"Insufficient wallet balance. Required: {required}, Available: {available}"
        )
        self.required = required
        self.available = available

class InsufficientFunds(BrokerError):
    """Raised by the balance store when a conditional debit matches no row."""
    pass

class ProviderRejected(BrokerError):
    """Raised when the carrier refuses to quote or create the order."""
    pass

class PersistenceFailed(BrokerError):
    """Raised when local recording fails after the carrier confirmed."""

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state

class OrderNotFoundError(BrokerError):
    """Raised when an order is not found."""
    pass

class BusinessNotFoundError(BrokerError):
    """Raised when a business account does not exist."""
    pass
