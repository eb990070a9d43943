"""Procurement ledger: PO creation rules, lifecycle and receipt application."""
import uuid
from decimal import Decimal

import pytest

from shelfwise.core.errors import NotFoundError, StateConflictError, ValidationError
from shelfwise.models.purchase_order import POStatus
from shelfwise.services.grn_service import GRNService
from shelfwise.services.party_service import PartyService
from shelfwise.services.purchase_order_service import PurchaseOrderService, derive_status


def _lines(*specs):
    return [
        {"sku": sku, "product_name": f"Product {sku}", "expected_qty": qty, "unit_cost": Decimal("1.00")}
        for sku, qty in specs
    ]


async def test_create_po_defaults(confirmed_po):
    assert confirmed_po.po_number == "PO-00001"
    assert confirmed_po.currency == "INR"
    assert confirmed_po.total_amount == Decimal("137.00")
    assert confirmed_po.supplier_name == "Acme Supplies"
    assert [l.line_no for l in confirmed_po.lines] == [1, 2]
    assert all(l.received_qty == 0 for l in confirmed_po.lines)


async def test_numbers_are_sequential_and_caller_numbers_unique(db, layout, supplier):
    first = await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("X", 1)))
    second = await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("X", 1)))
    assert (first.po_number, second.po_number) == ("PO-00001", "PO-00002")

    await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("X", 1)), po_number="EXT-7")
    with pytest.raises(ValidationError):
        await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("X", 1)), po_number="EXT-7")


@pytest.mark.parametrize("lines", [
    [],
    _lines(("A", 0)),
    [{"sku": "A", "product_name": "A", "expected_qty": 1, "unit_cost": Decimal("-1")}],
    [{"sku": "", "product_name": "A", "expected_qty": 1, "unit_cost": Decimal("1")}],
    [{"sku": "A", "product_name": "A", "expected_qty": True, "unit_cost": Decimal("1")}],
    [{"sku": "A", "product_name": "A", "expected_qty": 1, "unit_cost": None}],
    [{"sku": "A", "product_name": "A", "expected_qty": 1, "unit_cost": "abc"}],
    [{"sku": "A", "product_name": "A", "expected_qty": 1, "unit_cost": "NaN"}],
])
async def test_create_rejects_bad_lines(db, layout, supplier, lines):
    with pytest.raises(ValidationError):
        await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, lines)


async def test_duplicate_skus_are_listed(db, layout, supplier):
    with pytest.raises(ValidationError) as exc:
        await PurchaseOrderService.create_po(
            db, supplier.id, layout["wh"].id, _lines(("A", 1), ("B", 1), ("A", 2), ("B", 3))
        )
    assert exc.value.details["duplicate_skus"] == ["A", "B"]


async def test_supplier_must_be_an_active_supplier(db, layout):
    customer = await PartyService.create(db, "Walk-in", "customer")
    with pytest.raises(ValidationError):
        await PurchaseOrderService.create_po(db, customer.id, layout["wh"].id, _lines(("A", 1)))

    both = await PartyService.create(db, "Trader", "both")
    await PartyService.deactivate(db, both.id)
    with pytest.raises(ValidationError):
        await PurchaseOrderService.create_po(db, both.id, layout["wh"].id, _lines(("A", 1)))

    with pytest.raises(ValidationError):
        await PurchaseOrderService.create_po(db, uuid.uuid4(), layout["wh"].id, _lines(("A", 1)))


async def test_warehouse_must_exist(db, supplier):
    with pytest.raises(NotFoundError):
        await PurchaseOrderService.create_po(db, supplier.id, uuid.uuid4(), _lines(("A", 1)))


async def test_confirm_twice_is_a_conflict(db, confirmed_po):
    assert confirmed_po.status == POStatus.CONFIRMED.value
    assert confirmed_po.confirmed_at is not None
    with pytest.raises(StateConflictError):
        await PurchaseOrderService.confirm_po(db, confirmed_po.id)
    assert confirmed_po.status == POStatus.CONFIRMED.value


async def test_cancel_requires_reason_and_open_status(db, confirmed_po):
    with pytest.raises(ValidationError):
        await PurchaseOrderService.cancel_po(db, confirmed_po.id, "  ")

    po = await PurchaseOrderService.cancel_po(db, confirmed_po.id, "Supplier out of stock")
    assert po.status == POStatus.CANCELLED.value
    assert po.cancel_reason == "Supplier out of stock"

    with pytest.raises(StateConflictError):
        await PurchaseOrderService.cancel_po(db, po.id, "again")
    with pytest.raises(StateConflictError):
        await PurchaseOrderService.apply_receipt(db, po.id, [{"sku": "SKU-A", "accepted_qty": 1}])


async def test_receipt_on_draft_is_a_conflict(db, layout, supplier):
    po = await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("A", 2)))
    with pytest.raises(StateConflictError):
        await PurchaseOrderService.apply_receipt(db, po.id, [{"sku": "A", "accepted_qty": 1}])
    assert po.lines[0].received_qty == 0


async def test_apply_receipt_validates_before_writing(db, confirmed_po):
    with pytest.raises(ValidationError):
        await PurchaseOrderService.apply_receipt(
            db, confirmed_po.id, [{"sku": "SKU-A", "accepted_qty": 3}, {"sku": "NOPE", "accepted_qty": 1}]
        )
    with pytest.raises(ValidationError):
        await PurchaseOrderService.apply_receipt(db, confirmed_po.id, [{"sku": "SKU-A", "accepted_qty": -1}])
    with pytest.raises(ValidationError):
        await PurchaseOrderService.apply_receipt(db, confirmed_po.id, [{"sku": "SKU-A", "accepted_qty": True}])
    assert confirmed_po.line_for("SKU-A").received_qty == 0


async def test_receipts_accumulate_and_drive_status(db, confirmed_po):
    po = await PurchaseOrderService.apply_receipt(db, confirmed_po.id, [{"sku": "SKU-A", "accepted_qty": 5}])
    assert po.status == POStatus.PARTIALLY_RECEIVED.value
    assert po.completed_at is None

    with pytest.raises(StateConflictError):
        await PurchaseOrderService.close_po(db, po.id)

    po = await PurchaseOrderService.apply_receipt(db, po.id, [{"sku": "SKU-A", "accepted_qty": 0}])
    assert po.line_for("SKU-A").received_qty == 5

    po = await PurchaseOrderService.apply_receipt(
        db, po.id, [{"sku": "SKU-A", "accepted_qty": 5}, {"sku": "SKU-B", "accepted_qty": 4}]
    )
    assert po.status == POStatus.FULLY_RECEIVED.value
    assert po.completed_at is not None

    po = await PurchaseOrderService.close_po(db, po.id)
    assert po.status == POStatus.CLOSED.value
    with pytest.raises(StateConflictError):
        await PurchaseOrderService.apply_receipt(db, po.id, [{"sku": "SKU-A", "accepted_qty": 1}])


async def test_over_receipt_still_counts(db, confirmed_po):
    po = await PurchaseOrderService.apply_receipt(
        db, confirmed_po.id, [{"sku": "SKU-A", "accepted_qty": 12}, {"sku": "SKU-B", "accepted_qty": 4}]
    )
    assert po.line_for("SKU-A").received_qty == 12
    assert po.line_for("SKU-A").remaining_qty == 0
    assert po.status == POStatus.FULLY_RECEIVED.value


async def test_derive_status_keeps_status_when_nothing_received(confirmed_po):
    assert derive_status(confirmed_po) == POStatus.CONFIRMED.value


async def test_update_header_and_lines(db, confirmed_po):
    po = await PurchaseOrderService.update_po(
        db, confirmed_po.id, notes="Deliver to dock 2", lines=_lines(("SKU-C", 3))
    )
    assert po.notes == "Deliver to dock 2"
    assert [l.sku for l in po.lines] == ["SKU-C"]
    assert po.total_amount == Decimal("3.00")

    po = await PurchaseOrderService.update_po(db, po.id, lines=_lines(("SKU-C", 5), ("SKU-A", 1)))
    assert [(l.sku, l.expected_qty) for l in po.lines] == [("SKU-C", 5), ("SKU-A", 1)]


async def test_lines_frozen_after_receipt(db, confirmed_po):
    await PurchaseOrderService.apply_receipt(db, confirmed_po.id, [{"sku": "SKU-A", "accepted_qty": 1}])
    with pytest.raises(StateConflictError):
        await PurchaseOrderService.update_po(db, confirmed_po.id, lines=_lines(("SKU-C", 3)))


async def test_delete_only_draft_or_cancelled_without_grns(db, layout, supplier, confirmed_po):
    draft = await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("A", 1)))
    await PurchaseOrderService.delete_po(db, draft.id)
    with pytest.raises(NotFoundError):
        await PurchaseOrderService.get_po(db, draft.id)

    with pytest.raises(StateConflictError):
        await PurchaseOrderService.delete_po(db, confirmed_po.id)

    await GRNService.create_grn(db, confirmed_po.id, [{"sku": "SKU-A", "received_qty": 2}])
    await PurchaseOrderService.cancel_po(db, confirmed_po.id, "Duplicate order")
    with pytest.raises(StateConflictError):
        await PurchaseOrderService.delete_po(db, confirmed_po.id)


async def test_list_pos_paginates(db, layout, supplier):
    for _ in range(3):
        await PurchaseOrderService.create_po(db, supplier.id, layout["wh"].id, _lines(("A", 1)))
    await db.flush()

    page, total = await PurchaseOrderService.list_pos(db, page=1, page_size=2)
    assert total == 3
    assert len(page) == 2

    drafts, total = await PurchaseOrderService.list_pos(db, status=POStatus.DRAFT.value)
    assert total == 3 and len(drafts) == 3
