"""
Shared enums and constants used across the application.
"""

from enum import Enum


class ProviderKey(str, Enum):
    """Stable identifiers for the carriers we broker"""
    GLOVO = "glovo"
    FARAMOVE = "faramove"
    FEZ = "fez"
    GIG = "gig"
    DHL = "dhl"

    @property
    def display_name(self):
        return {
            "glovo": "Glovo",
            "faramove": "Faramove",
            "fez": "Fez Delivery",
            "gig": "GIG Logistics",
            "dhl": "DHL Express",
        }[self.value]


class ServiceLevel(str, Enum):
    """Normalized service tiers shown to callers"""
    ECONOMY = "economy"
    STANDARD = "standard"
    EXPRESS = "express"
    SAMEDAY = "sameday"


class SagaState(str, Enum):
    """Progress markers for a single order creation"""
    QUOTING = "QUOTING"
    EXTERNAL_CONFIRMED = "EXTERNAL_CONFIRMED"
    PERSISTED = "PERSISTED"
    DEBITED = "DEBITED"
    # Failure exits
    QUOTE_REJECTED = "QUOTE_REJECTED"
    PERSIST_FAILED_AFTER_EXTERNAL = "PERSIST_FAILED_AFTER_EXTERNAL"
    DEBIT_FAILED_AFTER_PERSIST = "DEBIT_FAILED_AFTER_PERSIST"


class DisplayStatus(str, Enum):
    """Presentation buckets for raw provider statuses"""
    PENDING = "Pending"
    IN_TRANSIT = "In-Transit"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


class TransactionType(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"
