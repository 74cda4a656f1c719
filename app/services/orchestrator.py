# app/services/orchestrator.py
"""
Order creation.

Placing an order touches three systems that share no transaction: the
carrier, our order table and the business wallet. The steps always run in
this order:

    re-quote -> balance check -> carrier create -> insert row -> debit

Once the carrier has confirmed, any later failure is compensated by
cancelling at the carrier (and removing the row if it was written). A
compensation that itself fails is logged at CRITICAL for manual follow-up and
never masks the original error.
"""

import logging
import uuid
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from app.core.enums import ProviderKey, SagaState
from app.core.exceptions import (
    InsufficientBalance,
    InvalidProvider,
    PersistenceFailed,
    ProviderRejected,
)
from app.schemas.order import DeliveryCost, OrderResult, ProviderOrderResponse
from app.schemas.quote import UnifiedQuoteRequest
from app.services.aggregator import QuoteAggregator
from app.services.notifier import OrderEventNotifier
from app.services.pricing import CENT
from app.services.shipping.base import BaseCarrier
from app.services.shipping.factory import get_carrier
from app.services.stores import BalanceStore, NewOrder, OrderStore, PartnerStore

logger = logging.getLogger(__name__)


def generate_order_reference() -> str:
    return f"ORD-{uuid.uuid4().hex[:12].upper()}"


class OrderOrchestrator:
    def __init__(
        self,
        aggregator: QuoteAggregator,
        partner_store: PartnerStore,
        balance_store: BalanceStore,
        order_store: OrderStore,
        notifier: Optional[OrderEventNotifier] = None,
    ):
        self.aggregator = aggregator
        self.partner_store = partner_store
        self.balance_store = balance_store
        self.order_store = order_store
        self.notifier = notifier

    async def _resolve_provider(self, provider_key: Union[ProviderKey, str], provider_id: Optional[int]):
        carrier = get_carrier(self.aggregator.registry, provider_key)
        partner = await self.partner_store.get_or_create(carrier.carrier_code.value)
        if not partner.is_active:
            raise InvalidProvider(f"Carrier '{carrier.carrier_code.value}' is not active")
        if provider_id is not None and provider_id != partner.id:
            raise InvalidProvider(
                f"Provider id {provider_id} does not match '{carrier.carrier_code.value}' (id {partner.id})"
            )
        return carrier, partner

    async def _cancel_at_provider(self, carrier: BaseCarrier, response: ProviderOrderResponse, reason: str) -> None:
        cancel_ref = response.cancel_ref
        if not cancel_ref:
            logger.critical(
                f"MANUAL INTERVENTION REQUIRED: {carrier.carrier_code.value} order has no reference "
                f"to cancel ({reason})"
            )
            return
        try:
            await carrier.cancel_order(cancel_ref)
            logger.info(f"Cancelled {carrier.carrier_code.value} order {cancel_ref} ({reason})")
        except Exception as e:
            logger.critical(
                f"MANUAL INTERVENTION REQUIRED: failed to cancel {carrier.carrier_code.value} "
                f"order {cancel_ref} after {reason}: {e}"
            )

    async def create_order(
        self,
        provider_key: Union[ProviderKey, str],
        request: UnifiedQuoteRequest,
        business_id: int,
        skip_balance_debit: bool = False,
        provider_id: Optional[int] = None,
        order_reference: Optional[str] = None,
    ) -> OrderResult:
        """
        Book a shipment with one carrier and charge the business for it.

        Args:
            provider_key: Carrier to book with
            request: Shipment details
            business_id: Business whose wallet is charged
            skip_balance_debit: Skip the balance check and the debit
            provider_id: Partner id the caller quoted against, if any
            order_reference: Customer-facing order id; generated when omitted

        Raises:
            InvalidProvider: unknown, inactive or mismatched carrier
            ProviderRejected: the carrier refused to quote or book
            BusinessNotFoundError: no wallet for the business; raised before any carrier call
            InsufficientBalance: wallet cannot cover the quote
            PersistenceFailed: recording failed after the carrier confirmed
        """
        carrier, partner = await self._resolve_provider(provider_key, provider_id)
        key = carrier.carrier_code.value
        reference = order_reference or generate_order_reference()
        state = SagaState.QUOTING

        # Unknown businesses are turned away before any outbound call
        balance = None
        if not skip_balance_debit:
            balance = await self.balance_store.get_balance(business_id)

        # The quote step normally cached the pickup's address-book id already;
        # registering here only happens when the carrier cannot price without one
        prepared = await self.aggregator.prepare_request(request, [carrier], register_addresses=False)
        if carrier.uses_address_book and not prepared.meta.get("address_book_id"):
            address_book_id = await self.aggregator.resolve_address_book(request.pickup.address)
            if address_book_id:
                prepared = prepared.model_copy(
                    update={"meta": {**prepared.meta, "address_book_id": address_book_id}}
                )

        try:
            raw_quote = await self.aggregator.fetch_raw(carrier, prepared)
        except Exception as e:
            state = SagaState.QUOTE_REJECTED
            logger.error(f"[{reference}] {key} quote failed ({state.value}): {e}")
            raise ProviderRejected(f"{carrier.carrier_name} could not quote this shipment: {e}") from e
        quote = self.aggregator.normalize(raw_quote, partner.id)

        provider_cost = Decimal(raw_quote.price).quantize(CENT, rounding=ROUND_HALF_UP)
        cost = DeliveryCost(
            total_cost=quote.price_final,
            platform_fee=quote.price_final - provider_cost,
            provider_cost=provider_cost,
        )

        if balance is not None and balance < quote.price_final:
            raise InsufficientBalance(required=quote.price_final, available=balance)

        try:
            response = await carrier.create_order(reference, prepared)
        except Exception as e:
            logger.error(f"[{reference}] {key} rejected order creation: {e}")
            raise ProviderRejected(f"{carrier.carrier_name} rejected the order: {e}") from e
        state = SagaState.EXTERNAL_CONFIRMED
        logger.info(f"[{reference}] {key} confirmed order {response.external_order_id}")

        try:
            order_id = await self.order_store.insert(NewOrder(
                business_id=business_id,
                provider_key=key,
                partner_id=partner.id,
                customer_facing_order_id=reference,
                delivery_cost={k: str(v) for k, v in cost.model_dump().items()},
                request_snapshot=request.model_dump(mode="json"),
                provider_response_snapshot=response.raw,
                status=response.status,
                external_order_id=response.external_order_id,
                tracking_ref=response.tracking_ref,
            ))
        except Exception as e:
            state = SagaState.PERSIST_FAILED_AFTER_EXTERNAL
            logger.error(f"[{reference}] failed to record order ({state.value}): {e}")
            await self._cancel_at_provider(carrier, response, "order insert failure")
            raise PersistenceFailed(f"Order could not be recorded: {e}", state=state) from e
        state = SagaState.PERSISTED

        debit = None
        if not skip_balance_debit:
            try:
                debit = await self.balance_store.debit(business_id, quote.price_final, reference)
            except Exception as e:
                state = SagaState.DEBIT_FAILED_AFTER_PERSIST
                logger.error(f"[{reference}] wallet debit failed ({state.value}): {e}")
                await self._cancel_at_provider(carrier, response, "wallet debit failure")
                try:
                    await self.order_store.delete(order_id)
                except Exception as delete_error:
                    logger.critical(
                        f"MANUAL INTERVENTION REQUIRED: failed to delete order {order_id} "
                        f"after debit failure: {delete_error}"
                    )
                raise PersistenceFailed(f"Wallet debit failed: {e}", state=state) from e
            state = SagaState.DEBITED
        logger.info(f"[{reference}] order {order_id} complete ({state.value})")

        result = OrderResult(
            provider_key=carrier.carrier_code,
            external_order_id=response.external_order_id,
            tracking_ref=response.tracking_ref,
            status=response.status,
            order_id=order_id,
            customer_facing_order_id=reference,
        )
        if self.notifier is not None:
            self.notifier.order_created(business_id, result.model_dump(mode="json"))
            if debit is not None and debit.below_threshold:
                self.notifier.low_balance(business_id, debit.balance_after, debit.threshold)
        return result
