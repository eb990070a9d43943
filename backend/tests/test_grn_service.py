"""Receipt reconciliation: drafting GRNs, put-away, PO advancement and atomicity."""
import uuid
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shelfwise.core.errors import NotFoundError, StateConflictError, TransactionAbortError, ValidationError
from shelfwise.db.base import Base
from shelfwise.db.concurrency import flush_or_abort
from shelfwise.models.audit import AuditLog
from shelfwise.models.grn import GRNStatus
from shelfwise.models.location import LocationLevel
from shelfwise.models.purchase_order import POStatus, PurchaseOrder
from shelfwise.models.stock import MovementType, Placement, PutAwayState, StockMovement, StockUnit
from shelfwise.services.grn_service import GRNService
from shelfwise.services.location_service import LocationService
from shelfwise.services.party_service import PartyService
from shelfwise.services.purchase_order_service import PurchaseOrderService
from tests.factories import location_of


async def _count(db, model, *where) -> int:
    return (await db.execute(select(func.count(model.id)).where(*where))).scalar_one()


async def _receive(db, po, layout, qty, sku="SKU-A", shelf_key="s1"):
    grn, _ = await GRNService.create_grn(db, po.id, [{"sku": sku, "received_qty": qty}])
    grn, warnings = await GRNService.perform_receipt(
        db, grn.id, [{"sku": sku, "location": location_of(layout, shelf_key)}]
    )
    return grn, warnings


async def test_create_grn_drafts_against_remaining(db, confirmed_po):
    grn, warnings = await GRNService.create_grn(
        db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 5}], notes="Truck 1"
    )
    assert grn.grn_number == "GRN-00001"
    assert grn.status == GRNStatus.DRAFT.value
    assert grn.po_number == confirmed_po.po_number
    line = grn.line_for("SKU-A")
    assert (line.expected_qty, line.received_qty, line.accepted_qty, line.rejected_qty) == (10, 5, 5, 0)
    assert line.unit_cost == Decimal("12.50")
    assert warnings == []
    # Drafting touches nothing on the PO
    assert confirmed_po.line_for("SKU-A").received_qty == 0
    assert confirmed_po.status == POStatus.CONFIRMED.value


async def test_create_grn_warns_on_over_receipt(db, confirmed_po):
    _, warnings = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 12}])
    assert len(warnings) == 1
    assert "SKU-A" in warnings[0]


async def test_create_grn_requires_receivable_po(db, layout, supplier):
    po = await PurchaseOrderService.create_po(
        db, supplier.id, layout["wh"].id,
        [{"sku": "SKU-A", "product_name": "A", "expected_qty": 1, "unit_cost": Decimal("1")}],
    )
    with pytest.raises(StateConflictError):
        await GRNService.create_grn(db, po.id, [{"sku": "SKU-A", "received_qty": 1}])


@pytest.mark.parametrize("lines", [
    [],
    [{"sku": "SKU-Z", "received_qty": 1}],
    [{"sku": "SKU-A", "received_qty": -1}],
    [{"sku": "SKU-A", "received_qty": 1}, {"sku": "SKU-A", "received_qty": 2}],
])
async def test_create_grn_rejects_bad_lines(db, confirmed_po, lines):
    with pytest.raises(ValidationError):
        await GRNService.create_grn(db, confirmed_po.id, lines)


async def test_partial_receipt_five_of_ten(db, layout, confirmed_po):
    grn, warnings = await _receive(db, confirmed_po, layout, 5)

    assert warnings == []
    assert grn.status == GRNStatus.COMPLETED.value
    assert grn.received_at is not None

    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert po.line_for("SKU-A").received_qty == 5
    assert po.status == POStatus.PARTIALLY_RECEIVED.value

    placement = (await db.execute(
        select(Placement).where(Placement.sku == "SKU-A", Placement.shelf_id == layout["s1"].id)
    )).scalar_one()
    assert placement.quantity == 5
    assert placement.last_movement_reference == grn.grn_number

    units = (await db.execute(select(StockUnit).where(StockUnit.grn_id == grn.id))).scalars().all()
    assert len(units) == 5
    assert {u.put_away for u in units} == {PutAwayState.INBOUND.value}
    assert {u.shelf_id for u in units} == {layout["s1"].id}
    assert {u.placement_id for u in units} == {placement.id}
    assert all(u.store_id is None and u.order_id is None for u in units)

    movement = (await db.execute(select(StockMovement).where(StockMovement.reference == grn.grn_number))).scalar_one()
    assert movement.movement_type == MovementType.INBOUND.value
    assert movement.quantity == 5
    assert movement.to_shelf_id == layout["s1"].id

    assert grn.line_for("SKU-A").placed_qty == 5
    assert layout["s1"].current_occupancy == 5
    assert layout["s1"].product_count == 1
    assert layout["r1"].product_count == 1
    assert layout["wh"].product_count == 1


async def test_second_receipt_accumulates_on_one_placement(db, layout, confirmed_po):
    await _receive(db, confirmed_po, layout, 5)
    await _receive(db, confirmed_po, layout, 5)

    rows = (await db.execute(
        select(Placement).where(Placement.sku == "SKU-A", Placement.shelf_id == layout["s1"].id)
    )).scalars().all()
    assert len(rows) == 1
    assert rows[0].quantity == 10

    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert po.line_for("SKU-A").received_qty == 10
    assert po.status == POStatus.PARTIALLY_RECEIVED.value

    await _receive(db, confirmed_po, layout, 4, sku="SKU-B", shelf_key="s2")
    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert po.status == POStatus.FULLY_RECEIVED.value
    assert po.completed_at is not None


async def test_second_completion_is_a_conflict_and_changes_nothing(db, layout, confirmed_po):
    grn, _ = await _receive(db, confirmed_po, layout, 5)

    with pytest.raises(StateConflictError):
        await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "location": location_of(layout)}])

    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert po.line_for("SKU-A").received_qty == 5
    assert await _count(db, StockUnit, StockUnit.grn_id == grn.id) == 5


async def test_rejected_units_are_never_placed(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 5}])

    with pytest.raises(ValidationError):
        await GRNService.update_lines(db, grn.id, [{"sku": "SKU-A", "accepted_qty": 3}])
    with pytest.raises(ValidationError):
        await GRNService.update_lines(db, grn.id, [{"sku": "SKU-A", "accepted_qty": 6}])

    grn = await GRNService.update_lines(
        db, grn.id, [{"sku": "SKU-A", "accepted_qty": 3, "rejection_reason": "Crushed cartons"}]
    )
    line = grn.line_for("SKU-A")
    assert (line.received_qty, line.accepted_qty, line.rejected_qty) == (5, 3, 2)

    grn, _ = await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "location": location_of(layout)}])

    assert await _count(db, StockUnit, StockUnit.grn_id == grn.id) == 3
    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert po.line_for("SKU-A").received_qty == 3
    assert grn.total_rejected_qty == 2


async def test_rejection_inline_at_receipt(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 5}])
    with pytest.raises(ValidationError):
        await GRNService.perform_receipt(
            db, grn.id, [{"sku": "SKU-A", "accepted_qty": 4, "location": location_of(layout)}]
        )
    grn, _ = await GRNService.perform_receipt(
        db, grn.id,
        [{"sku": "SKU-A", "accepted_qty": 4, "rejection_reason": "Wet", "location": location_of(layout)}],
    )
    assert grn.line_for("SKU-A").rejection_reason == "Wet"
    assert await _count(db, StockUnit, StockUnit.grn_id == grn.id) == 4


async def test_all_rejected_completes_without_stock(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-B", "received_qty": 2}])
    grn, _ = await GRNService.perform_receipt(
        db, grn.id, [{"sku": "SKU-B", "accepted_qty": 0, "rejection_reason": "Wrong item"}]
    )
    assert grn.status == GRNStatus.COMPLETED.value
    assert await _count(db, StockUnit, StockUnit.grn_id == grn.id) == 0
    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert po.status == POStatus.CONFIRMED.value


async def test_bad_shelf_aborts_the_whole_receipt(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(
        db, confirmed_po.id,
        [{"sku": "SKU-A", "received_qty": 5}, {"sku": "SKU-B", "received_qty": 4}],
    )
    broken = location_of(layout, "s3")  # s3 lives in r2 / z2, not r1 / z1

    with pytest.raises(ValidationError):
        await GRNService.perform_receipt(db, grn.id, [
            {"sku": "SKU-A", "location": location_of(layout)},
            {"sku": "SKU-B", "location": broken},
        ])

    assert grn.status == GRNStatus.DRAFT.value
    assert await _count(db, Placement) == 0
    assert await _count(db, StockUnit) == 0
    assert await _count(db, StockMovement) == 0
    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    assert all(l.received_qty == 0 for l in po.lines)


async def test_unknown_shelf_is_not_found(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 1}])
    location = {**location_of(layout), "shelf_id": uuid.uuid4()}
    with pytest.raises(NotFoundError):
        await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "location": location}])


async def test_accepted_units_need_a_location(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 2}])
    with pytest.raises(ValidationError):
        await GRNService.perform_receipt(db, grn.id, [])


async def test_bad_unit_cost_aborts_the_whole_receipt(db, layout, confirmed_po):
    with pytest.raises(ValidationError):
        await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 1, "unit_cost": -7}])

    grn, _ = await GRNService.create_grn(
        db, confirmed_po.id,
        [{"sku": "SKU-A", "received_qty": 5}, {"sku": "SKU-B", "received_qty": 4}],
    )
    for bad in (-5, "abc", "Infinity"):
        with pytest.raises(ValidationError):
            await GRNService.perform_receipt(db, grn.id, [
                {"sku": "SKU-A", "location": location_of(layout)},
                {"sku": "SKU-B", "location": location_of(layout, "s2"), "unit_cost": bad},
            ])

    assert grn.status == GRNStatus.DRAFT.value
    assert grn.line_for("SKU-B").unit_cost == Decimal("3.00")
    assert await _count(db, Placement) == 0
    assert await _count(db, StockUnit) == 0


async def test_split_placements(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 5}])

    with pytest.raises(ValidationError):
        await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "placements": [
            {**location_of(layout, "s1"), "quantity": 3},
            {**location_of(layout, "s2"), "quantity": 1},
        ]}])

    grn, _ = await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "placements": [
        {**location_of(layout, "s1"), "quantity": 3},
        {**location_of(layout, "s2"), "quantity": 2},
    ]}])

    quantities = dict((await db.execute(
        select(Placement.shelf_id, Placement.quantity).where(Placement.sku == "SKU-A")
    )).all())
    assert quantities == {layout["s1"].id: 3, layout["s2"].id: 2}
    assert sorted(p.quantity for p in grn.line_for("SKU-A").placements) == [2, 3]
    assert await _count(db, StockMovement) == 2


async def test_warnings_for_over_receipt_and_capacity(db, layout, confirmed_po):
    await LocationService.update(db, LocationLevel.SHELF, layout["s2"].id, capacity=6)
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-B", "received_qty": 7}])
    grn, warnings = await GRNService.perform_receipt(
        db, grn.id, [{"sku": "SKU-B", "location": location_of(layout, "s2")}]
    )
    assert grn.status == GRNStatus.COMPLETED.value
    assert any("exceeds remaining" in w for w in warnings)
    assert any("over capacity" in w for w in warnings)
    assert layout["s2"].current_occupancy == 7


async def test_receipt_after_rack_move_uses_new_chain(db, layout, confirmed_po):
    await LocationService.move(db, LocationLevel.RACK, layout["r1"].id, layout["z2"].id)

    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 2}])
    moved = location_of(layout, "s1", zone_key="z2")
    grn, _ = await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "location": moved}])

    placement = (await db.execute(select(Placement).where(Placement.sku == "SKU-A"))).scalar_one()
    assert placement.zone_id == layout["z2"].id
    assert layout["z2"].product_count == 1
    assert layout["z1"].product_count == 0


async def test_conservation_across_receipts(db, layout, confirmed_po):
    await _receive(db, confirmed_po, layout, 3)
    await _receive(db, confirmed_po, layout, 4, shelf_key="s2")
    await _receive(db, confirmed_po, layout, 2, sku="SKU-B", shelf_key="s2")

    placed = (await db.execute(select(func.sum(Placement.quantity)))).scalar_one()
    units = await _count(db, StockUnit)
    po = await PurchaseOrderService.get_po(db, confirmed_po.id)
    received = sum(l.received_qty for l in po.lines)
    assert placed == units == received == 9

    # No orphan stock: every unit points at an existing placement on the shelf it claims
    orphans = (await db.execute(
        select(func.count(StockUnit.id))
        .outerjoin(Placement, StockUnit.placement_id == Placement.id)
        .where((Placement.id == None) | (Placement.shelf_id != StockUnit.shelf_id))  # noqa: E711
    )).scalar_one()
    assert orphans == 0


async def test_cancel_and_delete_grn(db, layout, confirmed_po):
    grn, _ = await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 2}])

    with pytest.raises(StateConflictError):
        await GRNService.delete_grn(db, grn.id)

    grn = await GRNService.cancel_grn(db, grn.id, reason="Wrong truck")
    assert grn.status == GRNStatus.CANCELLED.value
    with pytest.raises(StateConflictError):
        await GRNService.perform_receipt(db, grn.id, [{"sku": "SKU-A", "location": location_of(layout)}])
    with pytest.raises(StateConflictError):
        await GRNService.update_lines(db, grn.id, [{"sku": "SKU-A", "received_qty": 1}])

    await GRNService.delete_grn(db, grn.id)
    with pytest.raises(NotFoundError):
        await GRNService.get_grn(db, grn.id)
    assert confirmed_po.status == POStatus.CONFIRMED.value


async def test_receipt_is_audited(db, layout, confirmed_po):
    grn, _ = await _receive(db, confirmed_po, layout, 5)
    await db.flush()
    actions = set((await db.execute(
        select(AuditLog.entity_type, AuditLog.action).where(AuditLog.entity_id.in_([grn.id, confirmed_po.id]))
    )).all())
    assert ("grn", "created") in actions
    assert ("grn", "completed") in actions
    assert ("purchase_order", "receipt_applied") in actions


async def test_list_grns_by_po(db, layout, confirmed_po):
    await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 1}])
    await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-B", "received_qty": 1}])
    grns, total = await GRNService.list_grns(db, po_id=confirmed_po.id)
    assert total == 2
    assert {g.grn_number for g in grns} == {"GRN-00001", "GRN-00002"}


# ── Concurrency (two sessions on a shared file database) ─────────────────────


@pytest.fixture
async def file_sessions(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'shelfwise.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await engine.dispose()


async def _seed(session):
    wh = await LocationService.create_warehouse(session, "Main", "WH1")
    zone = await LocationService.create_zone(session, wh.id, "Zone", "Z1")
    rack = await LocationService.create_rack(session, zone.id, "Rack", "R1")
    shelf = await LocationService.create_shelf(session, rack.id, "Shelf", "S1")
    party = await PartyService.create(session, "Acme", "supplier")
    po = await PurchaseOrderService.create_po(
        session, party.id, wh.id,
        [{"sku": "SKU-A", "product_name": "A", "expected_qty": 10, "unit_cost": Decimal("1")}],
    )
    await PurchaseOrderService.confirm_po(session, po.id)
    await session.commit()
    location = {"warehouse_id": wh.id, "zone_id": zone.id, "rack_id": rack.id, "shelf_id": shelf.id}
    return po, location


async def test_stale_purchase_order_write_aborts(file_sessions):
    async with file_sessions() as setup:
        po, _ = await _seed(setup)

    async with file_sessions() as first, file_sessions() as second:
        mine = await first.get(PurchaseOrder, po.id)
        theirs = await second.get(PurchaseOrder, po.id)
        theirs.notes = "edited elsewhere"
        await second.commit()

        mine.notes = "edited here"
        with pytest.raises(TransactionAbortError) as exc:
            await flush_or_abort(first, "test edit")
        assert exc.value.retryable is True


async def test_late_receipt_on_completed_grn_is_a_conflict(file_sessions):
    async with file_sessions() as setup:
        po, location = await _seed(setup)
        grn, _ = await GRNService.create_grn(setup, po.id, [{"sku": "SKU-A", "received_qty": 5}])
        await setup.commit()

    async with file_sessions() as first, file_sessions() as second:
        seen = await GRNService.get_grn(first, grn.id)
        assert seen.status == GRNStatus.DRAFT.value

        await GRNService.perform_receipt(second, grn.id, [{"sku": "SKU-A", "location": location}])
        await second.commit()

        with pytest.raises(StateConflictError):
            await GRNService.perform_receipt(first, grn.id, [{"sku": "SKU-A", "location": location}])

    async with file_sessions() as check:
        po = await PurchaseOrderService.get_po(check, po.id)
        assert po.line_for("SKU-A").received_qty == 5
        assert await _count(check, StockUnit) == 5


async def test_colliding_placement_insert_aborts(file_sessions):
    async with file_sessions() as setup:
        _, location = await _seed(setup)

    def placement():
        return Placement(sku="SKU-A", quantity=1, **location)

    async with file_sessions() as first, file_sessions() as second:
        second.add(placement())
        await second.commit()

        first.add(placement())
        with pytest.raises(TransactionAbortError) as exc:
            await flush_or_abort(first, "placement of SKU-A")
        assert exc.value.retryable is True

    async with file_sessions() as check:
        assert await _count(check, Placement) == 1
