"""
Core module exports.
"""
from .enums import (
    ProviderKey,
    ServiceLevel,
    SagaState,
    DisplayStatus,
    TransactionType
)

from .exceptions import (
    BrokerError,
    ProviderAPIError,
    AddressConflictError,
    GeocodingError,
    InvalidProvider,
    InsufficientBalance,
    InsufficientFunds,
    ProviderRejected,
    PersistenceFailed,
    OrderNotFoundError,
    BusinessNotFoundError
)
