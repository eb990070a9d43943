"""Shelfwise — PurchaseOrderService: create, confirm, cancel, close, apply receipts."""
import logging
from collections import Counter as _Counter
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.config import get_settings
from shelfwise.core.errors import NotFoundError, StateConflictError, ValidationError
from shelfwise.db.concurrency import flush_or_abort
from shelfwise.models.grn import GoodsReceiptNote
from shelfwise.models.location import LocationLevel, utcnow
from shelfwise.models.purchase_order import RECEIVABLE_STATUSES, POStatus, PurchaseOrder, PurchaseOrderLine
from shelfwise.services.audit_service import (
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_PO_CANCELLED,
    ACTION_PO_CLOSED,
    ACTION_PO_CONFIRMED,
    ACTION_PO_RECEIPT_APPLIED,
    ACTION_UPDATED,
    ENTITY_PURCHASE_ORDER,
    diff,
    log_audit,
)
from shelfwise.services.location_service import LocationService
from shelfwise.services.party_service import PartyService
from shelfwise.services.sequence_service import PO_SEQUENCE, SequenceService

logger = logging.getLogger(__name__)


def parse_unit_cost(value, label: str) -> Decimal:
    """A money amount >= 0. Anything that is not a number is a ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        cost = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f"{label} must be a number")
    if not cost.is_finite() or cost < 0:
        raise ValidationError(f"{label} must be >= 0")
    return cost


def _validate_lines(lines: list[dict]) -> list[dict]:
    """Reject empty orders, bad quantities and duplicate skus before anything is written."""
    if not lines:
        raise ValidationError("At least one item is required")
    cleaned = []
    for line in lines:
        sku = (line.get("sku") or "").strip()
        product_name = (line.get("product_name") or "").strip()
        if not sku or not product_name:
            raise ValidationError("Each item must have sku and product_name")
        expected_qty = line.get("expected_qty")
        if not isinstance(expected_qty, int) or isinstance(expected_qty, bool) or expected_qty <= 0:
            raise ValidationError(f"Item {sku}: expected_qty must be > 0")
        unit_cost = parse_unit_cost(line.get("unit_cost", 0), f"Item {sku}: unit_cost")
        cleaned.append({
            "sku": sku,
            "product_name": product_name,
            "expected_qty": expected_qty,
            "unit_cost": unit_cost,
        })

    duplicates = sorted(sku for sku, n in _Counter(l["sku"] for l in cleaned).items() if n > 1)
    if duplicates:
        raise ValidationError(
            f"Duplicate SKUs found in line items: {', '.join(duplicates)}. Each product can only appear once.",
            details={"duplicate_skus": duplicates},
        )
    return cleaned


def derive_status(po: PurchaseOrder) -> str:
    """Receipt-driven status: fully received when every line is covered, partial when anything arrived."""
    if all(line.received_qty >= line.expected_qty for line in po.lines):
        return POStatus.FULLY_RECEIVED.value
    if any(line.received_qty > 0 for line in po.lines):
        return POStatus.PARTIALLY_RECEIVED.value
    return po.status


class PurchaseOrderService:
    """CRUD + business logic for Purchase Orders."""

    @staticmethod
    async def create_po(
        db: AsyncSession,
        supplier_party_id: UUID,
        warehouse_id: UUID,
        lines: list[dict],
        expected_date: datetime | None = None,
        currency: str | None = None,
        notes: str | None = None,
        po_number: str | None = None,
        created_by: UUID | None = None,
    ) -> PurchaseOrder:
        """Create a new PO with lines in DRAFT status."""
        cleaned = _validate_lines(lines)
        supplier = await PartyService.get_active_supplier(db, supplier_party_id)
        warehouse = await LocationService.get(db, LocationLevel.WAREHOUSE, warehouse_id)

        if po_number:
            po_number = po_number.strip()
            await PurchaseOrderService._ensure_number_free(db, po_number)
        else:
            po_number = await SequenceService.next_number(db, PO_SEQUENCE)

        po = PurchaseOrder(
            po_number=po_number,
            supplier_party_id=supplier.id,
            supplier_name=supplier.name,
            warehouse_id=warehouse.id,
            status=POStatus.DRAFT.value,
            currency=(currency or get_settings().DEFAULT_CURRENCY).upper(),
            expected_date=expected_date,
            notes=notes,
            created_by=created_by,
            lines=[
                PurchaseOrderLine(line_no=i, received_qty=0, **line)
                for i, line in enumerate(cleaned, start=1)
            ],
        )
        po.total_amount = PurchaseOrderService._total(po)
        db.add(po)
        await flush_or_abort(db, f"creation of {po_number}")

        log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_CREATED, entity_name=po.po_number, actor_id=created_by,
                  payload={"supplier": supplier.name, "total_amount": str(po.total_amount), "lines": len(po.lines)})
        logger.info("Created purchase order %s for %s", po.po_number, supplier.name)
        return po

    @staticmethod
    async def list_pos(
        db: AsyncSession,
        status: str | None = None,
        supplier_party_id: UUID | None = None,
        warehouse_id: UUID | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[PurchaseOrder], int]:
        """Paginated list of POs."""
        q = select(PurchaseOrder)
        count_q = select(func.count(PurchaseOrder.id))
        for column, value in (
            (PurchaseOrder.status, status),
            (PurchaseOrder.supplier_party_id, supplier_party_id),
            (PurchaseOrder.warehouse_id, warehouse_id),
        ):
            if value:
                q = q.where(column == value)
                count_q = count_q.where(column == value)
        total = (await db.execute(count_q)).scalar_one()
        q = q.order_by(PurchaseOrder.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(q)
        return list(result.scalars().all()), total

    @staticmethod
    async def get_po(db: AsyncSession, po_id: UUID, for_update: bool = False) -> PurchaseOrder:
        """Get single PO with lines (selectin loaded). for_update takes the row lock and re-reads."""
        q = select(PurchaseOrder).where(PurchaseOrder.id == po_id)
        if for_update:
            q = q.with_for_update().execution_options(populate_existing=True)
        po = (await db.execute(q)).scalar_one_or_none()
        if po is None:
            raise NotFoundError("Purchase Order", po_id)
        return po

    @staticmethod
    async def update_po(
        db: AsyncSession,
        po_id: UUID,
        actor_id: UUID | None = None,
        supplier_party_id: UUID | None = None,
        currency: str | None = None,
        expected_date: datetime | None = None,
        notes: str | None = None,
        lines: list[dict] | None = None,
    ) -> PurchaseOrder:
        """Edit header fields, or replace lines while nothing has been received."""
        po = await PurchaseOrderService.get_po(db, po_id, for_update=True)
        editable = (POStatus.DRAFT.value, POStatus.CONFIRMED.value)
        if po.status not in editable:
            raise StateConflictError(f"Cannot modify a PO in status: {po.status}")

        before = {"supplier_name": po.supplier_name, "currency": po.currency,
                  "expected_date": po.expected_date, "notes": po.notes}
        if supplier_party_id is not None and supplier_party_id != po.supplier_party_id:
            supplier = await PartyService.get_active_supplier(db, supplier_party_id)
            po.supplier_party_id = supplier.id
            po.supplier_name = supplier.name
        if currency is not None:
            po.currency = currency.upper()
        if expected_date is not None:
            po.expected_date = expected_date
        if notes is not None:
            po.notes = notes or None

        changes = diff(before, {"supplier_name": po.supplier_name, "currency": po.currency,
                                "expected_date": po.expected_date, "notes": po.notes})
        if lines is not None:
            cleaned = _validate_lines(lines)
            if any(line.received_qty > 0 for line in po.lines):
                raise StateConflictError("Cannot modify items on a PO that has already received goods")
            # Old rows must be gone before the new ones insert: (po_id, sku) is unique.
            po.lines.clear()
            await db.flush()
            po.lines.extend(
                PurchaseOrderLine(line_no=i, received_qty=0, **line)
                for i, line in enumerate(cleaned, start=1)
            )
            po.total_amount = PurchaseOrderService._total(po)
            changes["lines"] = {"to": [l["sku"] for l in cleaned]}

        po.updated_at = utcnow()
        await flush_or_abort(db, f"update of {po.po_number}")
        if changes:
            log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_UPDATED, entity_name=po.po_number,
                      actor_id=actor_id, payload={"changes": {k: _jsonable(v) for k, v in changes.items()}})
        return po

    @staticmethod
    async def confirm_po(db: AsyncSession, po_id: UUID, actor_id: UUID | None = None) -> PurchaseOrder:
        """draft -> confirmed. Confirming twice is a conflict, not a silent success."""
        po = await PurchaseOrderService.get_po(db, po_id, for_update=True)
        if po.status != POStatus.DRAFT.value:
            raise StateConflictError(f"Cannot confirm a PO in status: {po.status}")
        po.status = POStatus.CONFIRMED.value
        po.confirmed_at = utcnow()
        await flush_or_abort(db, f"confirmation of {po.po_number}")
        log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_PO_CONFIRMED, entity_name=po.po_number,
                  actor_id=actor_id, payload={"changes": {"status": {"from": "draft", "to": po.status}}})
        return po

    @staticmethod
    async def cancel_po(db: AsyncSession, po_id: UUID, reason: str, actor_id: UUID | None = None) -> PurchaseOrder:
        """Cancel a PO. Only allowed in DRAFT or CONFIRMED status, with a reason."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required")
        po = await PurchaseOrderService.get_po(db, po_id, for_update=True)
        if po.status not in (POStatus.DRAFT.value, POStatus.CONFIRMED.value):
            raise StateConflictError(f"Cannot cancel a PO in status: {po.status}")
        previous = po.status
        po.status = POStatus.CANCELLED.value
        po.cancelled_at = utcnow()
        po.cancel_reason = reason
        await flush_or_abort(db, f"cancellation of {po.po_number}")
        log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_PO_CANCELLED, entity_name=po.po_number,
                  actor_id=actor_id,
                  payload={"changes": {"status": {"from": previous, "to": po.status}}, "reason": reason})
        return po

    @staticmethod
    async def close_po(db: AsyncSession, po_id: UUID, actor_id: UUID | None = None) -> PurchaseOrder:
        """fully_received -> closed."""
        po = await PurchaseOrderService.get_po(db, po_id, for_update=True)
        if po.status != POStatus.FULLY_RECEIVED.value:
            raise StateConflictError(f"Only fully received POs can be closed (status: {po.status})")
        po.status = POStatus.CLOSED.value
        po.completed_at = po.completed_at or utcnow()
        await flush_or_abort(db, f"closing of {po.po_number}")
        log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_PO_CLOSED, entity_name=po.po_number, actor_id=actor_id,
                  payload={"changes": {"status": {"from": POStatus.FULLY_RECEIVED.value, "to": po.status}}})
        return po

    @staticmethod
    async def delete_po(db: AsyncSession, po_id: UUID, actor_id: UUID | None = None) -> None:
        """Hard delete of a draft or cancelled PO that no GRN references."""
        po = await PurchaseOrderService.get_po(db, po_id, for_update=True)
        if po.status not in (POStatus.DRAFT.value, POStatus.CANCELLED.value):
            raise StateConflictError(
                f"Cannot delete a PO with status '{po.status}'. Only draft or cancelled POs can be deleted."
            )
        grn_count = (await db.execute(
            select(func.count(GoodsReceiptNote.id)).where(GoodsReceiptNote.po_id == po.id)
        )).scalar_one()
        if grn_count:
            raise StateConflictError("Cannot delete a PO that has associated GRNs. Delete the GRNs first.")
        log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_DELETED, entity_name=po.po_number, actor_id=actor_id)
        await db.delete(po)
        await flush_or_abort(db, f"deletion of {po.po_number}")

    @staticmethod
    async def apply_receipt(
        db: AsyncSession,
        po_id: UUID,
        receipt_lines: list[dict],
        actor_id: UUID | None = None,
        reference: str | None = None,
    ) -> PurchaseOrder:
        """
        Add accepted quantities to a PO. Internal: called by the GRN engine only.
        - Row-locked read-modify-write, so concurrent receipts both land.
        - received_qty only ever grows.
        - Status is re-derived from line totals afterwards.
        """
        po = await PurchaseOrderService.get_po(db, po_id, for_update=True)
        if po.status not in RECEIVABLE_STATUSES:
            raise StateConflictError(f"Cannot receive against a PO in status: {po.status}")

        deltas: dict[str, int] = {}
        for recv in receipt_lines:
            sku = recv["sku"]
            qty = recv["accepted_qty"]
            if po.line_for(sku) is None:
                raise ValidationError(f"SKU {sku} is not on purchase order {po.po_number}")
            if not isinstance(qty, int) or isinstance(qty, bool) or qty < 0:
                raise ValidationError(f"Item {sku}: accepted_qty must be >= 0")
            deltas[sku] = deltas.get(sku, 0) + qty

        quantities = {}
        for sku, qty in deltas.items():
            line = po.line_for(sku)
            quantities[sku] = {"from": line.received_qty, "to": line.received_qty + qty}
            line.received_qty += qty

        previous = po.status
        po.status = derive_status(po)
        if po.status == POStatus.FULLY_RECEIVED.value and po.completed_at is None:
            po.completed_at = utcnow()
        po.updated_at = utcnow()
        await flush_or_abort(db, f"receipt against {po.po_number}")

        log_audit(db, ENTITY_PURCHASE_ORDER, po.id, ACTION_PO_RECEIPT_APPLIED, entity_name=po.po_number,
                  actor_id=actor_id,
                  payload={"quantities": quantities, "reference": reference,
                           "changes": {"status": {"from": previous, "to": po.status}}})
        if previous != po.status:
            logger.info("Purchase order %s moved %s -> %s", po.po_number, previous, po.status)
        return po

    @staticmethod
    def _total(po: PurchaseOrder) -> Decimal:
        return sum((line.expected_qty * line.unit_cost for line in po.lines), Decimal("0")).quantize(Decimal("0.01"))

    @staticmethod
    async def _ensure_number_free(db: AsyncSession, po_number: str) -> None:
        exists = (await db.execute(
            select(PurchaseOrder.id).where(PurchaseOrder.po_number == po_number)
        )).scalar_one_or_none()
        if exists is not None:
            raise ValidationError(f"PO number {po_number} already exists", code="DUPLICATE_NUMBER")


def _jsonable(change: dict) -> dict:
    return {k: v.isoformat() if isinstance(v, datetime) else v for k, v in change.items()}
