# tests/integration/test_sqlalchemy_stores.py
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from app.core.exceptions import BusinessNotFoundError, InsufficientFunds
from app.database import Base, build_engine, build_sessionmaker
from app.models import Business, WalletTransaction
from app.services.stores import (
    AddressCacheEntry,
    NewOrder,
    SqlAlchemyAddressCacheStore,
    SqlAlchemyBalanceStore,
    SqlAlchemyOrderStore,
    SqlAlchemyPartnerStore,
)

pytestmark = pytest.mark.integration


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'broker.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = build_sessionmaker(engine)
    async with factory() as session:
        # Balances in kobo: 10,000.00 and 2,000.00 threshold
        session.add(Business(id=1, business_name="Ada's Shoes", wallet_balance=1_000_000, wallet_threshold=200_000))
        await session.commit()
    yield factory
    await engine.dispose()


def new_order(**overrides):
    values = dict(
        business_id=1,
        provider_key="fez",
        partner_id=None,
        customer_facing_order_id="ORD-000000000001",
        delivery_cost={"total_cost": "4500.00", "platform_fee": "500.00", "provider_cost": "4000.00"},
        request_snapshot={"pickup": {"state": "Lagos"}},
        provider_response_snapshot={"orderNos": {"ORD-000000000001": "FEZ1"}},
        status="pending",
        external_order_id="FEZ1",
        tracking_ref="FEZ1",
    )
    values.update(overrides)
    return NewOrder(**values)


"""
1. Wallet
"""

@pytest.mark.asyncio
async def test_balance_is_returned_in_currency_units(session_factory):
    assert await SqlAlchemyBalanceStore(session_factory).get_balance(1) == Decimal("10000.00")


@pytest.mark.asyncio
async def test_unknown_business(session_factory):
    with pytest.raises(BusinessNotFoundError):
        await SqlAlchemyBalanceStore(session_factory).get_balance(2)


@pytest.mark.asyncio
async def test_debit_records_transaction(session_factory):
    store = SqlAlchemyBalanceStore(session_factory)

    debit = await store.debit(1, Decimal("8500.50"), "ORD-1")

    assert debit.balance_after == Decimal("1499.50")
    assert debit.threshold == Decimal("2000.00")
    assert debit.below_threshold
    assert await store.get_balance(1) == Decimal("1499.50")

    async with session_factory() as session:
        rows = (await session.execute(select(WalletTransaction))).scalars().all()
    assert [(r.type, r.amount, r.balance_after, r.reference) for r in rows] == [
        ("debit", 850_050, 149_950, "ORD-1")
    ]


@pytest.mark.asyncio
async def test_overdraft_leaves_balance_untouched(session_factory):
    store = SqlAlchemyBalanceStore(session_factory)

    with pytest.raises(InsufficientFunds):
        await store.debit(1, Decimal("10000.01"), "ORD-2")

    assert await store.get_balance(1) == Decimal("10000.00")
    async with session_factory() as session:
        assert (await session.execute(select(WalletTransaction))).first() is None


@pytest.mark.asyncio
async def test_debit_of_exact_balance(session_factory):
    debit = await SqlAlchemyBalanceStore(session_factory).debit(1, Decimal("10000"), "ORD-3")
    assert debit.balance_after == Decimal("0.00")


@pytest.mark.asyncio
async def test_credit(session_factory):
    store = SqlAlchemyBalanceStore(session_factory)
    assert await store.credit(1, Decimal("250.25"), "TOPUP-1") == Decimal("10250.25")
    with pytest.raises(BusinessNotFoundError):
        await store.credit(99, Decimal("1"), "TOPUP-2")


"""
2. Orders
"""

@pytest.mark.asyncio
async def test_order_lifecycle(session_factory):
    store = SqlAlchemyOrderStore(session_factory)

    order_id = await store.insert(new_order())
    order = await store.get(order_id)
    assert order.customer_facing_order_id == "ORD-000000000001"
    assert order.delivery_cost["total_cost"] == "4500.00"
    assert order.request_snapshot == {"pickup": {"state": "Lagos"}}

    assert (await store.find_by_external_id("FEZ1")).id == order_id
    assert await store.find_by_external_id("FEZ404") is None

    await store.update_status(order_id, "Delivered")
    assert (await store.get(order_id)).status == "Delivered"

    await store.delete(order_id)
    assert await store.get(order_id) is None


"""
3. Address cache
"""

@pytest.mark.asyncio
async def test_address_cache_upsert_and_purge(session_factory):
    store = SqlAlchemyAddressCacheStore(session_factory)
    now = datetime.utcnow()

    await store.upsert(AddressCacheEntry("a" * 64, "12 Admiralty Way", "+234800", "ab-1", updated_at=now))
    await store.upsert(AddressCacheEntry("b" * 64, "5 Allen Ave", None, "ab-2", updated_at=now - timedelta(days=120)))
    await store.upsert(AddressCacheEntry("a" * 64, "12 Admiralty Way", "+234801", "ab-3", updated_at=now))

    entry = await store.get("a" * 64)
    assert entry.provider_address_id == "ab-3"
    assert entry.phone_number == "+234801"
    assert await store.count() == 2
    assert await store.count_updated_since(now - timedelta(days=1)) == 1

    assert await store.delete_older_than(now - timedelta(days=90)) == 1
    assert await store.get("b" * 64) is None
    assert await store.count() == 1


"""
4. Partners
"""

@pytest.mark.asyncio
async def test_partners(session_factory):
    store = SqlAlchemyPartnerStore(session_factory)

    await store.ensure_partners(["glovo", "fez"])
    fez = await store.get_or_create("FEZ")
    assert fez.name == "fez"
    assert fez.is_active

    ids = await store.ids_by_key()
    assert set(ids) == {"glovo", "fez"}
    assert ids["fez"] == fez.id

    await store.set_active("glovo", False)
    assert await store.active_keys() == {"fez"}
