"""Shared fixtures: in-memory SQLite schema, a small warehouse, a supplier and fake lookups."""
from decimal import Decimal
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import shelfwise.models  # noqa: F401
from shelfwise.core.order_status import OrderStatus
from shelfwise.db.base import Base
from shelfwise.services.location_service import LocationService
from shelfwise.services.party_service import PartyService
from shelfwise.services.purchase_order_service import PurchaseOrderService
from tests.factories import FakeOrderLookup, FakeRedis


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def layout(db):
    """WH1 > Z1 > R1 > (S1, S2), plus an empty zone Z2 with rack R2 > S3."""
    wh = await LocationService.create_warehouse(db, "Main Warehouse", "wh1")
    z1 = await LocationService.create_zone(db, wh.id, "Zone 1", "z1")
    z2 = await LocationService.create_zone(db, wh.id, "Zone 2", "z2")
    r1 = await LocationService.create_rack(db, z1.id, "Rack 1", "r1")
    r2 = await LocationService.create_rack(db, z2.id, "Rack 2", "r2")
    s1 = await LocationService.create_shelf(db, r1.id, "Shelf 1", "s1", capacity=100)
    s2 = await LocationService.create_shelf(db, r1.id, "Shelf 2", "s2")
    s3 = await LocationService.create_shelf(db, r2.id, "Shelf 3", "s3")
    await db.commit()
    return {"wh": wh, "z1": z1, "z2": z2, "r1": r1, "r2": r2, "s1": s1, "s2": s2, "s3": s3}


@pytest.fixture
async def supplier(db):
    party = await PartyService.create(db, "Acme Supplies", "supplier", gstin="29ABCDE1234F1Z5", pan="ABCDE1234F")
    await db.commit()
    return party


@pytest.fixture
async def confirmed_po(db, layout, supplier):
    """PO for 10 x SKU-A and 4 x SKU-B, confirmed."""
    po = await PurchaseOrderService.create_po(
        db,
        supplier_party_id=supplier.id,
        warehouse_id=layout["wh"].id,
        lines=[
            {"sku": "SKU-A", "product_name": "Widget A", "expected_qty": 10, "unit_cost": Decimal("12.50")},
            {"sku": "SKU-B", "product_name": "Widget B", "expected_qty": 4, "unit_cost": Decimal("3.00")},
        ],
        expected_date=datetime.now(timezone.utc) + timedelta(days=7),
    )
    await PurchaseOrderService.confirm_po(db, po.id)
    await db.commit()
    return po


@pytest.fixture
def order_lookup():
    return FakeOrderLookup({
        ("store-1", "1001"): OrderStatus(name="#1001", custom_status="RTO Closed"),
        ("store-1", "1002"): OrderStatus(name="#1002", custom_status="DTO Refunded"),
        ("store-1", "1003"): OrderStatus(name="#1003", custom_status="Delivered"),
    })


@pytest.fixture
def fake_redis():
    return FakeRedis()
