# app/services/order_status.py
import logging
from typing import Dict, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import OrderNotFoundError, ProviderAPIError
from app.schemas.order import TrackingStatus
from app.services.notifier import OrderEventNotifier
from app.services.shipping.base import BaseCarrier
from app.services.shipping.factory import get_carrier
from app.services.stores import OrderRecord, OrderStore

logger = logging.getLogger(__name__)


class OrderStatusService:
    """Refreshes stored order statuses from the carriers that hold them."""

    def __init__(
        self,
        registry: Dict[ProviderKey, BaseCarrier],
        order_store: OrderStore,
        notifier: Optional[OrderEventNotifier] = None,
    ):
        self.registry = registry
        self.order_store = order_store
        self.notifier = notifier

    @staticmethod
    def _tracking_refs(order: OrderRecord):
        seen = []
        for ref in (order.external_order_id, order.tracking_ref, order.customer_facing_order_id):
            if ref and ref not in seen:
                seen.append(ref)
        return seen

    async def _track(self, carrier: BaseCarrier, order: OrderRecord) -> TrackingStatus:
        last_error: Optional[Exception] = None
        for ref in self._tracking_refs(order):
            try:
                return await carrier.track_order(ref)
            except ProviderAPIError as e:
                logger.debug(f"Tracking {order.id} by '{ref}' failed: {e}")
                last_error = e
        raise last_error or ProviderAPIError(f"Order {order.id} has no reference to track by")

    async def sync_order(self, order_id: int) -> OrderRecord:
        """
        Pull the latest status for an order and store it if it changed.

        Raises:
            OrderNotFoundError: no such order
            ProviderAPIError: the carrier could not report a status
        """
        order = await self.order_store.get(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found")

        carrier = get_carrier(self.registry, order.provider_key)
        tracking = await self._track(carrier, order)

        if tracking.status and tracking.status != order.status:
            old_status = order.status
            await self.order_store.update_status(order.id, tracking.status)
            order.status = tracking.status
            logger.info(f"Order {order.id} status: {old_status} -> {tracking.status}")
            if self.notifier is not None:
                self.notifier.order_status_updated(order.id, old_status, tracking.status)
        return order
