# app/services/container.py
"""
Wiring for the broker's long-lived components.

Everything here is built once per application (in the FastAPI lifespan or a
CLI entry point) and handed to routes through `app.state`.
"""

import logging
from dataclasses import dataclass
from typing import Dict

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.config import Settings
from app.core.enums import ProviderKey
from app.services.address_cache import AddressResolutionCache
from app.services.aggregator import QuoteAggregator
from app.services.geocoding import GoogleGeocoder
from app.services.notifier import ConnectionManager, OrderEventNotifier
from app.services.order_status import OrderStatusService
from app.services.orchestrator import OrderOrchestrator
from app.services.pricing import MarkupPolicy
from app.services.rate_limiter import ProviderRateLimiter
from app.services.shipping.base import BaseCarrier
from app.services.shipping.factory import build_carrier_registry
from app.services.stores import (
    SqlAlchemyAddressCacheStore,
    SqlAlchemyBalanceStore,
    SqlAlchemyOrderStore,
    SqlAlchemyPartnerStore,
)

logger = logging.getLogger(__name__)


@dataclass
class BrokerServices:
    settings: Settings
    rate_limiter: ProviderRateLimiter
    registry: Dict[ProviderKey, BaseCarrier]
    partner_store: SqlAlchemyPartnerStore
    balance_store: SqlAlchemyBalanceStore
    order_store: SqlAlchemyOrderStore
    address_cache: AddressResolutionCache
    aggregator: QuoteAggregator
    orchestrator: OrderOrchestrator
    order_status: OrderStatusService
    connections: ConnectionManager
    notifier: OrderEventNotifier


def build_services(settings: Settings, session_factory: async_sessionmaker) -> BrokerServices:
    rate_limiter = ProviderRateLimiter.from_settings(settings)
    registry = build_carrier_registry(settings, rate_limiter)

    partner_store = SqlAlchemyPartnerStore(session_factory)
    balance_store = SqlAlchemyBalanceStore(session_factory)
    order_store = SqlAlchemyOrderStore(session_factory)

    geocoder = GoogleGeocoder(settings.GOOGLE_MAPS_API_KEY, settings.GOOGLE_GEOCODE_URL)
    address_cache = AddressResolutionCache(
        geocoder=geocoder,
        store=SqlAlchemyAddressCacheStore(session_factory),
        registrar=registry[ProviderKey.GLOVO].register_address,
        default_phone=settings.DEFAULT_ADDRESS_PHONE,
    )

    connections = ConnectionManager(send_timeout=settings.WEBSOCKET_SEND_TIMEOUT_SECONDS)
    notifier = OrderEventNotifier(connections)

    aggregator = QuoteAggregator(
        registry=registry,
        partner_store=partner_store,
        address_cache=address_cache,
        geocoder=geocoder,
        markup_policy=MarkupPolicy.from_settings(settings),
        quote_timeout=settings.QUOTE_TIMEOUT_SECONDS,
        currency=settings.CURRENCY,
    )
    orchestrator = OrderOrchestrator(
        aggregator=aggregator,
        partner_store=partner_store,
        balance_store=balance_store,
        order_store=order_store,
        notifier=notifier,
    )
    order_status = OrderStatusService(registry, order_store, notifier)

    logger.info(f"Broker services ready ({len(registry)} carriers)")
    return BrokerServices(
        settings=settings,
        rate_limiter=rate_limiter,
        registry=registry,
        partner_store=partner_store,
        balance_store=balance_store,
        order_store=order_store,
        address_cache=address_cache,
        aggregator=aggregator,
        orchestrator=orchestrator,
        order_status=order_status,
        connections=connections,
        notifier=notifier,
    )
