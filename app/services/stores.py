# app/services/stores.py
"""
Persistence contracts used by the broker, and their SQLAlchemy implementations.

Each store method runs in its own session and commits before returning, so
every saga step is durable on its own.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Optional, Protocol, Set

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.core.enums import ProviderKey, TransactionType
from app.core.exceptions import InsufficientFunds, BusinessNotFoundError
from app.models.address_book import AddressBookEntry
from app.models.business import Business, WalletTransaction
from app.models.logistics_partner import LogisticsPartner
from app.models.order import DeliveryOrder

logger = logging.getLogger(__name__)

KOBO = Decimal("100")


def to_kobo(amount: Decimal) -> int:
    return int((Decimal(amount) * KOBO).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_kobo(kobo: int) -> Decimal:
    return (Decimal(kobo or 0) / KOBO).quantize(Decimal("0.01"))


# ----------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------
@dataclass
class WalletDebit:
    balance_after: Decimal
    threshold: Decimal = Decimal("0")

    @property
    def below_threshold(self) -> bool:
        return self.threshold > 0 and self.balance_after < self.threshold


@dataclass
class NewOrder:
    business_id: int
    provider_key: str
    partner_id: Optional[int]
    customer_facing_order_id: str
    delivery_cost: Dict[str, str]
    request_snapshot: Dict[str, Any]
    provider_response_snapshot: Dict[str, Any]
    status: str
    external_order_id: Optional[str]
    tracking_ref: Optional[str]


@dataclass
class OrderRecord:
    id: int
    business_id: int
    provider_key: str
    partner_id: Optional[int]
    customer_facing_order_id: str
    external_order_id: Optional[str]
    tracking_ref: Optional[str]
    status: str
    delivery_cost: Dict[str, Any] = field(default_factory=dict)
    request_snapshot: Dict[str, Any] = field(default_factory=dict)
    provider_response_snapshot: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, row: DeliveryOrder) -> "OrderRecord":
        return cls(
            id=row.id,
            business_id=row.business_id,
            provider_key=row.provider_key,
            partner_id=row.partner_id,
            customer_facing_order_id=row.customer_facing_order_id,
            external_order_id=row.external_order_id,
            tracking_ref=row.tracking_ref,
            status=row.status,
            delivery_cost=dict(row.delivery_cost or {}),
            request_snapshot=dict(row.request_snapshot or {}),
            provider_response_snapshot=row.provider_response_snapshot,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )


@dataclass
class PartnerRecord:
    id: int
    name: str
    is_active: bool


@dataclass
class AddressCacheEntry:
    address_hash: str
    formatted_address: str
    phone_number: Optional[str]
    provider_address_id: str
    updated_at: Optional[datetime] = None


# ----------------------------------------------------------------------
# Contracts
# ----------------------------------------------------------------------
class BalanceStore(Protocol):
    async def get_balance(self, business_id: int) -> Decimal: ...

    async def debit(self, business_id: int, amount: Decimal, reference: str) -> WalletDebit:
        """Atomic conditional decrement; raises InsufficientFunds when it matches nothing."""
        ...

    async def credit(self, business_id: int, amount: Decimal, reference: str) -> Decimal: ...


class OrderStore(Protocol):
    async def insert(self, order: NewOrder) -> int: ...

    async def delete(self, order_id: int) -> None: ...

    async def update_status(self, order_id: int, status: str) -> None: ...

    async def get(self, order_id: int) -> Optional[OrderRecord]: ...

    async def find_by_external_id(self, external_order_id: str) -> Optional[OrderRecord]: ...


class AddressCacheStore(Protocol):
    async def get(self, address_hash: str) -> Optional[AddressCacheEntry]: ...

    async def upsert(self, entry: AddressCacheEntry) -> None: ...

    async def touch(self, address_hash: str) -> None: ...

    async def count(self) -> int: ...

    async def count_updated_since(self, since: datetime) -> int: ...

    async def delete_older_than(self, cutoff: datetime) -> int: ...


class PartnerStore(Protocol):
    async def get_or_create(self, provider_key: str) -> PartnerRecord: ...

    async def ensure_partners(self, provider_keys: Iterable[str]) -> None: ...

    async def active_keys(self) -> Set[str]: ...

    async def ids_by_key(self) -> Dict[str, int]: ...


# ----------------------------------------------------------------------
# SQLAlchemy implementations
# ----------------------------------------------------------------------
class SqlAlchemyBalanceStore:
    """Wallet balances are stored in kobo; this store speaks currency units."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get_balance(self, business_id: int) -> Decimal:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Business.wallet_balance).where(Business.id == business_id)
            )
            balance = result.scalar_one_or_none()
        if balance is None:
            raise BusinessNotFoundError(f"Business {business_id} not found")
        return from_kobo(balance)

    async def debit(self, business_id: int, amount: Decimal, reference: str) -> WalletDebit:
        kobo = to_kobo(amount)
        async with self.session_factory() as session:
            result = await session.execute(
                update(Business)
                .where(Business.id == business_id, Business.wallet_balance >= kobo)
                .values(wallet_balance=Business.wallet_balance - kobo)
                .returning(Business.wallet_balance, Business.wallet_threshold)
            )
            row = result.first()
            if row is None:
                await session.rollback()
                raise InsufficientFunds(
                    f"Debit of {amount} rejected for business {business_id}"
                )
            balance_after, threshold = row
            session.add(WalletTransaction(
                business_id=business_id,
                type=TransactionType.DEBIT.value,
                amount=kobo,
                balance_after=balance_after,
                reference=reference,
            ))
            await session.commit()
        logger.info(f"Debited {amount} from business {business_id} ({reference})")
        return WalletDebit(balance_after=from_kobo(balance_after), threshold=from_kobo(threshold))

    async def credit(self, business_id: int, amount: Decimal, reference: str) -> Decimal:
        kobo = to_kobo(amount)
        async with self.session_factory() as session:
            result = await session.execute(
                update(Business)
                .where(Business.id == business_id)
                .values(wallet_balance=Business.wallet_balance + kobo)
                .returning(Business.wallet_balance)
            )
            balance_after = result.scalar_one_or_none()
            if balance_after is None:
                await session.rollback()
                raise BusinessNotFoundError(f"Business {business_id} not found")
            session.add(WalletTransaction(
                business_id=business_id,
                type=TransactionType.CREDIT.value,
                amount=kobo,
                balance_after=balance_after,
                reference=reference,
            ))
            await session.commit()
        return from_kobo(balance_after)


class SqlAlchemyOrderStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def insert(self, order: NewOrder) -> int:
        async with self.session_factory() as session:
            row = DeliveryOrder(
                business_id=order.business_id,
                provider_key=order.provider_key,
                partner_id=order.partner_id,
                customer_facing_order_id=order.customer_facing_order_id,
                delivery_cost=order.delivery_cost,
                request_snapshot=order.request_snapshot,
                provider_response_snapshot=order.provider_response_snapshot,
                status=order.status,
                external_order_id=order.external_order_id,
                tracking_ref=order.tracking_ref,
            )
            session.add(row)
            await session.commit()
            return row.id

    async def delete(self, order_id: int) -> None:
        async with self.session_factory() as session:
            await session.execute(delete(DeliveryOrder).where(DeliveryOrder.id == order_id))
            await session.commit()

    async def update_status(self, order_id: int, status: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(DeliveryOrder)
                .where(DeliveryOrder.id == order_id)
                .values(status=status, updated_at=func.now())
            )
            await session.commit()

    async def get(self, order_id: int) -> Optional[OrderRecord]:
        async with self.session_factory() as session:
            row = await session.get(DeliveryOrder, order_id)
            return OrderRecord.from_model(row) if row else None

    async def find_by_external_id(self, external_order_id: str) -> Optional[OrderRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(DeliveryOrder).where(DeliveryOrder.external_order_id == external_order_id)
            )
            row = result.scalars().first()
            return OrderRecord.from_model(row) if row else None


class SqlAlchemyAddressCacheStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def get(self, address_hash: str) -> Optional[AddressCacheEntry]:
        async with self.session_factory() as session:
            row = await session.get(AddressBookEntry, address_hash)
            if row is None:
                return None
            return AddressCacheEntry(
                address_hash=row.address_hash,
                formatted_address=row.formatted_address,
                phone_number=row.phone_number,
                provider_address_id=row.provider_address_id,
                updated_at=row.updated_at,
            )

    async def upsert(self, entry: AddressCacheEntry) -> None:
        async with self.session_factory() as session:
            await session.merge(AddressBookEntry(
                address_hash=entry.address_hash,
                formatted_address=entry.formatted_address,
                phone_number=entry.phone_number,
                provider_address_id=entry.provider_address_id,
                updated_at=entry.updated_at or datetime.now(timezone.utc),
            ))
            await session.commit()

    async def touch(self, address_hash: str) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(AddressBookEntry)
                .where(AddressBookEntry.address_hash == address_hash)
                .values(updated_at=func.now())
            )
            await session.commit()

    async def count(self) -> int:
        async with self.session_factory() as session:
            result = await session.execute(select(func.count()).select_from(AddressBookEntry))
            return result.scalar_one()

    async def count_updated_since(self, since: datetime) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(AddressBookEntry).where(AddressBookEntry.updated_at >= since)
            )
            return result.scalar_one()

    async def delete_older_than(self, cutoff: datetime) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                delete(AddressBookEntry).where(AddressBookEntry.updated_at < cutoff)
            )
            await session.commit()
            return result.rowcount or 0


class SqlAlchemyPartnerStore:
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @staticmethod
    def _record(row: LogisticsPartner) -> PartnerRecord:
        return PartnerRecord(id=row.id, name=row.name, is_active=row.is_active)

    async def get_or_create(self, provider_key: str) -> PartnerRecord:
        name = str(provider_key).lower()
        async with self.session_factory() as session:
            result = await session.execute(select(LogisticsPartner).where(LogisticsPartner.name == name))
            row = result.scalar_one_or_none()
            if row is not None:
                return self._record(row)

            try:
                display = ProviderKey(name).display_name
            except ValueError:
                display = name.title()
            row = LogisticsPartner(name=name, display_name=display, is_active=True)
            session.add(row)
            try:
                await session.commit()
            except IntegrityError:
                # Registered concurrently
                await session.rollback()
                result = await session.execute(select(LogisticsPartner).where(LogisticsPartner.name == name))
                row = result.scalar_one()
            else:
                logger.info(f"Registered logistics partner '{name}'")
            return self._record(row)

    async def ensure_partners(self, provider_keys: Iterable[str]) -> None:
        for key in provider_keys:
            await self.get_or_create(key)

    async def active_keys(self) -> Set[str]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(LogisticsPartner.name).where(LogisticsPartner.is_active.is_(True))
            )
            return {name for name in result.scalars().all()}

    async def ids_by_key(self) -> Dict[str, int]:
        async with self.session_factory() as session:
            result = await session.execute(select(LogisticsPartner.name, LogisticsPartner.id))
            return {name: partner_id for name, partner_id in result.all()}

    async def set_active(self, provider_key: str, is_active: bool) -> None:
        async with self.session_factory() as session:
            await session.execute(
                update(LogisticsPartner)
                .where(LogisticsPartner.name == str(provider_key).lower())
                .values(is_active=is_active)
            )
            await session.commit()
