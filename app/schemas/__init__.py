from .base import BaseSchema, RequestSchema
from .quote import (
    QuoteItem,
    PickupDetails,
    DeliveryDetails,
    UnifiedQuoteRequest,
    RawQuote,
    ProviderQuote
)
from .order import (
    ProviderOrderResponse,
    TrackingStatus,
    DeliveryCost,
    OrderResult,
    CreateOrderRequest,
    OrderRead,
    TrackingWebhook,
    RateLimitConfigUpdate
)
