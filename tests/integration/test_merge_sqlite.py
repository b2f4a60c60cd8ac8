import sqlite3
from datetime import datetime
from decimal import Decimal

import pytest
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orm_extensions.exceptions import UnmappedEntityError
from orm_extensions.infrastructure.database.merge import build_merge_statement, merge_entity, merge_entity_async
from tests.models import Customer, Order, OrderLine, Plain

pytestmark = pytest.mark.integration


def _count(session, model):
    return session.scalar(select(func.count()).select_from(model))


# ───────────────────────── sync session ─────────────────────────

def test_inserts_missing_row(session):
    assert merge_entity(session, Customer(id=7, name="Ada", email="ada@example.com")) == 1
    session.commit()

    stored = session.get(Customer, 7)
    assert (stored.name, stored.email) == ("Ada", "ada@example.com")


def test_updates_existing_row(session):
    session.add(Customer(id=7, name="Old", email="old@example.com"))
    session.commit()

    assert merge_entity(session, Customer(id=7, name="New", email="new@example.com")) == 1
    session.commit()

    assert _count(session, Customer) == 1
    stored = session.get(Customer, 7)
    assert (stored.name, stored.email) == ("New", "new@example.com")


def test_repeated_merge_never_duplicates_the_key(session):
    customer = Customer(id=1, name="Ada", email=None)
    merge_entity(session, customer)
    customer.name = "Ada Lovelace"
    merge_entity(session, customer)
    session.commit()

    assert _count(session, Customer) == 1
    assert session.get(Customer, 1).name == "Ada Lovelace"


def test_stored_row_matches_extracted_parameters(session):
    merge_entity(session, Customer(id=7, name="Ada", email=None))
    order = Order(id=10, customer_id=7, total=Decimal("12.50"), placed_at=datetime(2024, 1, 2, 3, 4, 5))
    merge_entity(session, order)
    session.commit()
    session.expunge_all()

    stored = session.get(Order, 10)
    expected = build_merge_statement(order, "sqlite").parameters
    assert (stored.id, stored.customer_id, stored.total, stored.placed_at) == expected


def test_composite_key_merge(session):
    merge_entity(session, OrderLine(order_id=1, line_no=1, sku="A", quantity=1))
    merge_entity(session, OrderLine(order_id=1, line_no=2, sku="B", quantity=1))
    merge_entity(session, OrderLine(order_id=1, line_no=1, sku="A", quantity=9))
    session.commit()

    assert _count(session, OrderLine) == 2
    assert session.get(OrderLine, (1, 1)).quantity == 9


def test_foreign_key_violation_propagates(session):
    with pytest.raises(IntegrityError) as exc:
        merge_entity(session, Order(id=1, customer_id=999, total=Decimal("1.00"), placed_at=datetime(2024, 1, 1)))
    assert isinstance(exc.value.orig, sqlite3.IntegrityError)
    session.rollback()
    assert _count(session, Order) == 0


def test_unmapped_type_writes_nothing(session):
    with pytest.raises(UnmappedEntityError):
        merge_entity(session, Plain())
    assert not session.in_transaction()


def test_tracked_instances_are_not_refreshed(session):
    tracked = Customer(id=3, name="Old", email=None)
    session.add(tracked)
    session.flush()

    merge_entity(session, Customer(id=3, name="New", email=None))
    assert tracked.name == "Old"
    session.refresh(tracked)
    assert tracked.name == "New"


# ───────────────────────── async session ─────────────────────────

async def test_async_insert_then_update(async_session):
    assert await merge_entity_async(async_session, Customer(id=7, name="Old", email=None)) == 1
    await async_session.commit()
    assert await merge_entity_async(async_session, Customer(id=7, name="New", email=None)) == 1
    await async_session.commit()

    rows = (await async_session.execute(select(Customer.name))).scalars().all()
    assert rows == ["New"]


async def test_async_identity_map_left_for_caller(async_session):
    async_session.add(Customer(id=7, name="Old", email=None))
    await async_session.commit()
    tracked = await async_session.get(Customer, 7)

    await merge_entity_async(async_session, Customer(id=7, name="New", email=None))
    await async_session.commit()

    assert tracked.name == "Old"
    await async_session.refresh(tracked)
    assert tracked.name == "New"


async def test_async_foreign_key_violation_propagates(async_session):
    with pytest.raises(IntegrityError):
        await merge_entity_async(
            async_session,
            Order(id=1, customer_id=404, total=Decimal("5.00"), placed_at=datetime(2024, 1, 1)),
        )
    await async_session.rollback()
    count = await async_session.scalar(select(func.count()).select_from(Order))
    assert count == 0


async def test_async_merge_of_instance_expired_by_commit(session_factory):
    async with AsyncSession(session_factory.engine) as session:
        customer = Customer(id=7, name="Ada", email=None)
        session.add(customer)
        await session.commit()
        assert "name" in inspect(customer).expired_attributes

        assert await merge_entity_async(session, customer) == 1
        await session.commit()

        rows = (await session.execute(select(Customer.id, Customer.name))).all()
        assert [tuple(row) for row in rows] == [(7, "Ada")]


async def test_async_merge_of_detached_instance(session_factory):
    customer = Customer(id=8, name="Grace", email=None)
    async with AsyncSession(session_factory.engine, expire_on_commit=False) as session:
        assert await merge_entity_async(session, customer) == 1
        await session.commit()
        assert await session.scalar(select(Customer.name).where(Customer.id == 8)) == "Grace"
