"""In-memory stand-ins for the SQLAlchemy stores"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from app.core.enums import ProviderKey
from app.core.exceptions import BusinessNotFoundError, InsufficientFunds
from app.services.stores import (
    AddressCacheEntry,
    NewOrder,
    OrderRecord,
    PartnerRecord,
    WalletDebit,
)


class InMemoryBalanceStore:
    def __init__(self, balances=None, thresholds=None, journal: Optional[List[str]] = None):
        self.balances: Dict[int, Decimal] = {k: Decimal(str(v)) for k, v in (balances or {}).items()}
        self.thresholds: Dict[int, Decimal] = {k: Decimal(str(v)) for k, v in (thresholds or {}).items()}
        self.journal = journal if journal is not None else []
        self.debit_error = None
        self.debits: List[tuple] = []

    async def get_balance(self, business_id: int) -> Decimal:
        self.journal.append("get_balance")
        if business_id not in self.balances:
            raise BusinessNotFoundError(f"Business {business_id} not found")
        return self.balances[business_id]

    async def debit(self, business_id: int, amount: Decimal, reference: str) -> WalletDebit:
        self.journal.append("debit")
        if self.debit_error:
            raise self.debit_error
        if self.balances.get(business_id, Decimal("0")) < amount:
            raise InsufficientFunds(f"Debit of {amount} rejected for business {business_id}")
        self.balances[business_id] -= amount
        self.debits.append((business_id, amount, reference))
        return WalletDebit(
            balance_after=self.balances[business_id],
            threshold=self.thresholds.get(business_id, Decimal("0")),
        )

    async def credit(self, business_id: int, amount: Decimal, reference: str) -> Decimal:
        if business_id not in self.balances:
            raise BusinessNotFoundError(f"Business {business_id} not found")
        self.balances[business_id] += amount
        return self.balances[business_id]


class InMemoryOrderStore:
    def __init__(self, journal: Optional[List[str]] = None):
        self.rows: Dict[int, OrderRecord] = {}
        self.journal = journal if journal is not None else []
        self.insert_error = None
        self.status_updates: List[tuple] = []
        self._next_id = 1

    async def insert(self, order: NewOrder) -> int:
        self.journal.append("insert")
        if self.insert_error:
            raise self.insert_error
        order_id = self._next_id
        self._next_id += 1
        now = datetime.now(timezone.utc)
        self.rows[order_id] = OrderRecord(
            id=order_id,
            business_id=order.business_id,
            provider_key=order.provider_key,
            partner_id=order.partner_id,
            customer_facing_order_id=order.customer_facing_order_id,
            external_order_id=order.external_order_id,
            tracking_ref=order.tracking_ref,
            status=order.status,
            delivery_cost=dict(order.delivery_cost),
            request_snapshot=dict(order.request_snapshot),
            provider_response_snapshot=order.provider_response_snapshot,
            created_at=now,
            updated_at=now,
        )
        return order_id

    async def delete(self, order_id: int) -> None:
        self.journal.append("delete")
        self.rows.pop(order_id, None)

    async def update_status(self, order_id: int, status: str) -> None:
        self.status_updates.append((order_id, status))
        if order_id in self.rows:
            self.rows[order_id].status = status

    async def get(self, order_id: int) -> Optional[OrderRecord]:
        return self.rows.get(order_id)

    async def find_by_external_id(self, external_order_id: str) -> Optional[OrderRecord]:
        return next((r for r in self.rows.values() if r.external_order_id == external_order_id), None)


class InMemoryAddressCacheStore:
    def __init__(self):
        self.entries: Dict[str, AddressCacheEntry] = {}
        self.touched: List[str] = []

    async def get(self, address_hash: str) -> Optional[AddressCacheEntry]:
        return self.entries.get(address_hash)

    async def upsert(self, entry: AddressCacheEntry) -> None:
        self.entries[entry.address_hash] = entry

    async def touch(self, address_hash: str) -> None:
        self.touched.append(address_hash)
        if address_hash in self.entries:
            self.entries[address_hash].updated_at = datetime.now(timezone.utc)

    async def count(self) -> int:
        return len(self.entries)

    async def count_updated_since(self, since: datetime) -> int:
        return sum(1 for e in self.entries.values() if e.updated_at and e.updated_at >= since)

    async def delete_older_than(self, cutoff: datetime) -> int:
        stale = [h for h, e in self.entries.items() if e.updated_at and e.updated_at < cutoff]
        for address_hash in stale:
            del self.entries[address_hash]
        return len(stale)


class InMemoryPartnerStore:
    def __init__(self, provider_keys: Iterable[str] = (), inactive: Iterable[str] = ()):
        self.partners: Dict[str, PartnerRecord] = {}
        for key in provider_keys:
            self._add(str(getattr(key, "value", key)))
        for key in inactive:
            self.partners[str(getattr(key, "value", key))].is_active = False

    def _add(self, name: str) -> PartnerRecord:
        record = PartnerRecord(id=len(self.partners) + 1, name=name, is_active=True)
        self.partners[name] = record
        return record

    async def get_or_create(self, provider_key: str) -> PartnerRecord:
        name = str(getattr(provider_key, "value", provider_key)).lower()
        return self.partners.get(name) or self._add(name)

    async def ensure_partners(self, provider_keys: Iterable[str]) -> None:
        for key in provider_keys:
            await self.get_or_create(key)

    async def active_keys(self):
        return {name for name, p in self.partners.items() if p.is_active}

    async def ids_by_key(self) -> Dict[str, int]:
        return {name: p.id for name, p in self.partners.items()}


def all_partners(**kwargs) -> InMemoryPartnerStore:
    return InMemoryPartnerStore([k.value for k in ProviderKey], **kwargs)
