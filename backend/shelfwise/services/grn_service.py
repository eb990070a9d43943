"""Shelfwise — GRNService: receive goods against a PO and put them away on shelves."""
import logging
from collections import Counter as _Counter
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.core.errors import NotFoundError, StateConflictError, ValidationError
from shelfwise.db.concurrency import flush_or_abort
from shelfwise.models.grn import GoodsReceiptNote, GRNLine, GRNPlacement, GRNStatus
from shelfwise.models.location import Shelf, utcnow
from shelfwise.models.purchase_order import RECEIVABLE_STATUSES
from shelfwise.models.stock import MovementType, Placement, PutAwayState, StockMovement, StockUnit
from shelfwise.services.audit_service import (
    ACTION_DELETED,
    ACTION_GRN_CANCELLED,
    ACTION_GRN_COMPLETED,
    ACTION_GRN_LINES_UPDATED,
    ACTION_CREATED,
    ACTION_PLACEMENT_ADDED,
    ACTION_PLACEMENT_ADJUSTED,
    ENTITY_GRN,
    ENTITY_PLACEMENT,
    log_audit,
)
from shelfwise.services.location_service import LocationService
from shelfwise.services.purchase_order_service import PurchaseOrderService, parse_unit_cost
from shelfwise.services.sequence_service import GRN_SEQUENCE, SequenceService

logger = logging.getLogger(__name__)

RECEIPT_REASON = "grn_receipt"

_LOCATION_KEYS = ("warehouse_id", "zone_id", "rack_id", "shelf_id")


def _require_unique_skus(lines: list[dict]) -> None:
    if not lines:
        raise ValidationError("At least one item is required")
    duplicates = sorted(sku for sku, n in _Counter(l.get("sku") for l in lines).items() if n > 1)
    if duplicates:
        raise ValidationError(
            f"Duplicate SKUs found in line items: {', '.join(duplicates)}",
            details={"duplicate_skus": duplicates},
        )


def _non_negative_int(value, label: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{label} must be a non-negative integer")
    return value


class GRNService:
    """
    Goods receipt reconciliation.

    A GRN is created as a draft against a confirmed PO, edited while draft,
    then completed by perform_receipt: the single atomic step that places
    accepted units on shelves, writes stock units and movements, and adds
    the accepted quantities to the PO.
    """

    @staticmethod
    async def get_grn(db: AsyncSession, grn_id: UUID, for_update: bool = False) -> GoodsReceiptNote:
        q = select(GoodsReceiptNote).where(GoodsReceiptNote.id == grn_id)
        if for_update:
            q = q.with_for_update().execution_options(populate_existing=True)
        grn = (await db.execute(q)).scalar_one_or_none()
        if grn is None:
            raise NotFoundError("GRN", grn_id)
        return grn

    @staticmethod
    async def list_grns(
        db: AsyncSession,
        po_id: UUID | None = None,
        status: str | None = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[GoodsReceiptNote], int]:
        q = select(GoodsReceiptNote)
        count_q = select(func.count(GoodsReceiptNote.id))
        if po_id:
            q = q.where(GoodsReceiptNote.po_id == po_id)
            count_q = count_q.where(GoodsReceiptNote.po_id == po_id)
        if status:
            q = q.where(GoodsReceiptNote.status == status)
            count_q = count_q.where(GoodsReceiptNote.status == status)
        total = (await db.execute(count_q)).scalar_one()
        q = q.order_by(GoodsReceiptNote.created_at.desc()).offset((page - 1) * page_size).limit(page_size)
        result = await db.execute(q)
        return list(result.scalars().all()), total

    @staticmethod
    async def create_grn(
        db: AsyncSession,
        po_id: UUID,
        lines: list[dict],
        notes: str | None = None,
        grn_number: str | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[GoodsReceiptNote, list[str]]:
        """
        Draft a GRN for a receivable PO. Each line defaults to accepting all it
        received. Receiving more than the PO has left is reported as a warning.
        """
        po = await PurchaseOrderService.get_po(db, po_id)
        if po.status not in RECEIVABLE_STATUSES:
            raise StateConflictError(
                f"Cannot create a GRN for a PO in status '{po.status}'. PO must be confirmed or partially received."
            )
        _require_unique_skus(lines)

        warnings: list[str] = []
        grn_lines = []
        for i, line in enumerate(lines, start=1):
            sku = line.get("sku")
            po_line = po.line_for(sku)
            if po_line is None:
                raise ValidationError(f"SKU {sku} is not on purchase order {po.po_number}")
            received = _non_negative_int(line.get("received_qty"), f"Item {sku}: received_qty")
            if received > po_line.remaining_qty:
                warnings.append(
                    f"{sku}: receiving {received} exceeds remaining {po_line.remaining_qty} on {po.po_number}"
                )
            unit_cost = line.get("unit_cost")
            if unit_cost is not None:
                unit_cost = parse_unit_cost(unit_cost, f"Item {sku}: unit_cost")
            grn_lines.append(GRNLine(
                line_no=i,
                sku=sku,
                product_name=po_line.product_name,
                expected_qty=po_line.remaining_qty,
                received_qty=received,
                accepted_qty=received,
                rejected_qty=0,
                unit_cost=unit_cost if unit_cost is not None else po_line.unit_cost,
                placements=[],
            ))

        if grn_number:
            grn_number = grn_number.strip()
            await GRNService._ensure_number_free(db, grn_number)
        else:
            grn_number = await SequenceService.next_number(db, GRN_SEQUENCE)

        grn = GoodsReceiptNote(
            grn_number=grn_number,
            po_id=po.id,
            po_number=po.po_number,
            warehouse_id=po.warehouse_id,
            status=GRNStatus.DRAFT.value,
            notes=notes,
            created_by=actor_id,
            lines=grn_lines,
        )
        db.add(grn)
        await flush_or_abort(db, f"creation of {grn_number}")

        log_audit(db, ENTITY_GRN, grn.id, ACTION_CREATED, entity_name=grn.grn_number, actor_id=actor_id,
                  payload={"po_number": po.po_number, "total_received_qty": grn.total_received_qty,
                           "warnings": warnings})
        logger.info("Created GRN %s against %s", grn.grn_number, po.po_number)
        return grn, warnings

    @staticmethod
    async def update_lines(
        db: AsyncSession,
        grn_id: UUID,
        lines: list[dict],
        actor_id: UUID | None = None,
    ) -> GoodsReceiptNote:
        """Adjust received / accepted quantities on a draft GRN. rejected is always derived."""
        _require_unique_skus(lines)
        grn = await GRNService.get_grn(db, grn_id, for_update=True)
        GRNService._ensure_draft(grn)

        changes = {}
        for update in lines:
            sku = update.get("sku")
            line = grn.line_for(sku)
            if line is None:
                raise ValidationError(f"SKU {sku} is not on GRN {grn.grn_number}")
            received = line.received_qty
            if update.get("received_qty") is not None:
                received = _non_negative_int(update["received_qty"], f"Item {sku}: received_qty")
            accepted = received
            if update.get("accepted_qty") is not None:
                accepted = _non_negative_int(update["accepted_qty"], f"Item {sku}: accepted_qty")
            reason = update.get("rejection_reason", line.rejection_reason)
            GRNService._check_split(sku, received, accepted, reason)
            changes[sku] = (received, accepted, reason)

        # Apply only once every line has passed validation.
        payload = {}
        for sku, (received, accepted, reason) in changes.items():
            line = grn.line_for(sku)
            payload[sku] = {
                "received_qty": {"from": line.received_qty, "to": received},
                "accepted_qty": {"from": line.accepted_qty, "to": accepted},
            }
            line.received_qty = received
            line.accepted_qty = accepted
            line.rejected_qty = received - accepted
            line.rejection_reason = reason.strip() if line.rejected_qty else None

        grn.updated_at = utcnow()
        await flush_or_abort(db, f"update of {grn.grn_number}")
        log_audit(db, ENTITY_GRN, grn.id, ACTION_GRN_LINES_UPDATED, entity_name=grn.grn_number,
                  actor_id=actor_id, payload={"lines": payload})
        return grn

    @staticmethod
    async def perform_receipt(
        db: AsyncSession,
        grn_id: UUID,
        lines: list[dict] | None = None,
        actor_id: UUID | None = None,
    ) -> tuple[GoodsReceiptNote, list[str]]:
        """
        Complete a draft GRN in one transaction.

        Each entry of `lines` is {sku, accepted_qty?, rejection_reason?, unit_cost?}
        plus either `location` ({warehouse_id, zone_id, rack_id, shelf_id}) or
        `placements` (a list of locations each carrying a `quantity`). GRN lines
        not mentioned keep their drafted quantities but still need a location
        if they accepted anything.

        Every check runs before the first write. On success the accepted units
        are placed, the PO is advanced, and the GRN is completed.
        """
        lines = lines or []
        if lines:
            _require_unique_skus(lines)

        grn = await GRNService.get_grn(db, grn_id, for_update=True)
        if grn.status != GRNStatus.DRAFT.value:
            logger.warning("Refused receipt for GRN %s in status %s", grn.grn_number, grn.status)
            raise StateConflictError(
                f"GRN is already '{grn.status}'. Only draft GRNs can be received."
            )
        po = await PurchaseOrderService.get_po(db, grn.po_id, for_update=True)
        if po.status not in RECEIVABLE_STATUSES:
            raise StateConflictError(f"Cannot receive against a PO in status: {po.status}")

        requested = {}
        for entry in lines:
            sku = entry.get("sku")
            if grn.line_for(sku) is None:
                raise ValidationError(f"SKU {sku} is not on GRN {grn.grn_number}")
            requested[sku] = entry

        # ── Validate ──────────────────────────────────────────────────────────
        plan = []
        warnings: list[str] = []
        incoming_by_shelf: dict[UUID, int] = {}
        for line in grn.lines:
            entry = requested.get(line.sku, {})
            accepted = line.accepted_qty
            if entry.get("accepted_qty") is not None:
                accepted = _non_negative_int(entry["accepted_qty"], f"Item {line.sku}: accepted_qty")
            reason = entry.get("rejection_reason", line.rejection_reason)
            GRNService._check_split(line.sku, line.received_qty, accepted, reason)

            targets = await GRNService._resolve_targets(db, line.sku, accepted, entry)
            for target in targets:
                shelf_id = target["shelf"].id
                incoming_by_shelf[shelf_id] = incoming_by_shelf.get(shelf_id, 0) + target["quantity"]

            po_line = po.line_for(line.sku)
            if po_line is None:
                raise ValidationError(f"SKU {line.sku} is no longer on purchase order {po.po_number}")
            if accepted > po_line.remaining_qty:
                warnings.append(
                    f"{line.sku}: accepting {accepted} exceeds remaining {po_line.remaining_qty} on {po.po_number}"
                )
            unit_cost = entry.get("unit_cost")
            if unit_cost is not None:
                unit_cost = parse_unit_cost(unit_cost, f"Item {line.sku}: unit_cost")
            plan.append((line, accepted, reason, unit_cost, targets))

        for shelf_id, incoming in incoming_by_shelf.items():
            shelf = await db.get(Shelf, shelf_id)
            if shelf.capacity is None:
                continue
            occupied = (await db.execute(
                select(func.coalesce(func.sum(Placement.quantity), 0)).where(Placement.shelf_id == shelf_id)
            )).scalar_one()
            if occupied + incoming > shelf.capacity:
                warnings.append(
                    f"Shelf {shelf.code} over capacity: {occupied + incoming} units for capacity {shelf.capacity}"
                )

        # ── Write ─────────────────────────────────────────────────────────────
        receipt_lines = []
        units_created = 0
        for line, accepted, reason, unit_cost, targets in plan:
            line.accepted_qty = accepted
            line.rejected_qty = line.received_qty - accepted
            line.rejection_reason = reason.strip() if line.rejected_qty else None
            if unit_cost is not None:
                line.unit_cost = unit_cost

            for target in targets:
                shelf, qty = target["shelf"], target["quantity"]
                placement = await GRNService._upsert_placement(db, grn, line, target, actor_id)
                line.placements.append(GRNPlacement(
                    shelf_id=shelf.id,
                    rack_id=placement.rack_id,
                    zone_id=placement.zone_id,
                    warehouse_id=placement.warehouse_id,
                    quantity=qty,
                ))
                db.add(StockMovement(
                    sku=line.sku,
                    movement_type=MovementType.INBOUND.value,
                    to_warehouse_id=placement.warehouse_id,
                    to_zone_id=placement.zone_id,
                    to_rack_id=placement.rack_id,
                    to_shelf_id=shelf.id,
                    quantity=qty,
                    reason=RECEIPT_REASON,
                    reference=grn.grn_number,
                    actor_id=actor_id,
                ))
                db.add_all([
                    StockUnit(
                        sku=line.sku,
                        grn_id=grn.id,
                        put_away=PutAwayState.INBOUND.value,
                        warehouse_id=placement.warehouse_id,
                        zone_id=placement.zone_id,
                        rack_id=placement.rack_id,
                        shelf_id=shelf.id,
                        placement_id=placement.id,
                        created_by=actor_id,
                    )
                    for _ in range(qty)
                ])
                units_created += qty
            receipt_lines.append({"sku": line.sku, "accepted_qty": accepted})

        await PurchaseOrderService.apply_receipt(
            db, po.id, receipt_lines, actor_id=actor_id, reference=grn.grn_number
        )

        grn.status = GRNStatus.COMPLETED.value
        grn.received_at = utcnow()
        grn.received_by = actor_id
        await flush_or_abort(db, f"receipt of {grn.grn_number}")

        await LocationService.refresh_shelf_ancestry(db, incoming_by_shelf.keys())

        log_audit(db, ENTITY_GRN, grn.id, ACTION_GRN_COMPLETED, entity_name=grn.grn_number, actor_id=actor_id,
                  payload={
                      "po_number": grn.po_number,
                      "accepted": {l.sku: l.accepted_qty for l in grn.lines},
                      "rejected": {l.sku: l.rejected_qty for l in grn.lines if l.rejected_qty},
                      "units_created": units_created,
                      "warnings": warnings,
                  })
        logger.info("Completed GRN %s: %d unit(s) put away", grn.grn_number, units_created)
        return grn, warnings

    @staticmethod
    async def cancel_grn(
        db: AsyncSession,
        grn_id: UUID,
        reason: str | None = None,
        actor_id: UUID | None = None,
    ) -> GoodsReceiptNote:
        """Cancel a draft GRN. Nothing was applied to the PO, so there is nothing to undo."""
        grn = await GRNService.get_grn(db, grn_id, for_update=True)
        GRNService._ensure_draft(grn)
        grn.status = GRNStatus.CANCELLED.value
        grn.cancelled_at = utcnow()
        grn.cancel_reason = (reason or "").strip() or None
        await flush_or_abort(db, f"cancellation of {grn.grn_number}")
        log_audit(db, ENTITY_GRN, grn.id, ACTION_GRN_CANCELLED, entity_name=grn.grn_number, actor_id=actor_id,
                  payload={"changes": {"status": {"from": GRNStatus.DRAFT.value, "to": grn.status}},
                           "reason": grn.cancel_reason})
        return grn

    @staticmethod
    async def delete_grn(db: AsyncSession, grn_id: UUID, actor_id: UUID | None = None) -> None:
        grn = await GRNService.get_grn(db, grn_id, for_update=True)
        if grn.status != GRNStatus.CANCELLED.value:
            raise StateConflictError(
                f"Cannot delete a GRN with status '{grn.status}'. Only cancelled GRNs can be deleted."
            )
        log_audit(db, ENTITY_GRN, grn.id, ACTION_DELETED, entity_name=grn.grn_number, actor_id=actor_id)
        await db.delete(grn)
        await flush_or_abort(db, f"deletion of {grn.grn_number}")

    # ── Internals ────────────────────────────────────────────────────────────

    @staticmethod
    def _ensure_draft(grn: GoodsReceiptNote) -> None:
        if grn.status != GRNStatus.DRAFT.value:
            raise StateConflictError(f"GRN is '{grn.status}'. Only draft GRNs can be modified.")

    @staticmethod
    def _check_split(sku: str, received: int, accepted: int, reason: str | None) -> None:
        if accepted > received:
            raise ValidationError(f"Item {sku}: accepted_qty ({accepted}) cannot exceed received_qty ({received})")
        if accepted < received and not (reason or "").strip():
            raise ValidationError(f"Item {sku}: a rejection reason is required when units are rejected")

    @staticmethod
    async def _resolve_targets(db: AsyncSession, sku: str, accepted: int, entry: dict) -> list[dict]:
        """
        Turn a line's location / placements into validated targets, merged per
        shelf. Each target carries the shelf plus the live rack / zone /
        warehouse ids it was resolved through.
        """
        if accepted == 0:
            return []
        if entry.get("placements"):
            splits = entry["placements"]
        elif entry.get("location"):
            splits = [{**entry["location"], "quantity": accepted}]
        else:
            raise ValidationError(f"Item {sku}: a put-away location is required for {accepted} accepted unit(s)")

        merged: dict[UUID, dict] = {}
        for split in splits:
            missing = [k for k in _LOCATION_KEYS if not split.get(k)]
            if missing:
                raise ValidationError(f"Item {sku}: location is missing {', '.join(missing)}")
            qty = split.get("quantity")
            if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
                raise ValidationError(f"Item {sku}: placement quantity must be > 0")
            shelf = await LocationService.resolve_shelf(
                db, split["warehouse_id"], split["zone_id"], split["rack_id"], split["shelf_id"]
            )
            if shelf.id in merged:
                merged[shelf.id]["quantity"] += qty
            else:
                merged[shelf.id] = {
                    "shelf": shelf,
                    "quantity": qty,
                    "rack_id": shelf.rack_id,
                    "zone_id": split["zone_id"],
                    "warehouse_id": split["warehouse_id"],
                }

        placed = sum(t["quantity"] for t in merged.values())
        if placed != accepted:
            raise ValidationError(f"Item {sku}: placements total {placed} but {accepted} unit(s) were accepted")
        return list(merged.values())

    @staticmethod
    async def _upsert_placement(
        db: AsyncSession,
        grn: GoodsReceiptNote,
        line: GRNLine,
        target: dict,
        actor_id: UUID | None,
    ) -> Placement:
        """One placement row per (sku, shelf): increment it, or create it on first arrival."""
        shelf, qty = target["shelf"], target["quantity"]
        result = await db.execute(
            select(Placement)
            .where(Placement.sku == line.sku, Placement.shelf_id == shelf.id)
            .with_for_update()
        )
        placement = result.scalar_one_or_none()
        if placement is None:
            placement = Placement(
                sku=line.sku,
                product_name=line.product_name,
                shelf_id=shelf.id,
                quantity=qty,
                created_by=actor_id,
            )
            db.add(placement)
            action, previous = ACTION_PLACEMENT_ADDED, 0
        else:
            previous = placement.quantity
            placement.quantity += qty
            action = ACTION_PLACEMENT_ADJUSTED
        # Location snapshot follows the shelf's current chain, even if its rack moved since.
        placement.rack_id = target["rack_id"]
        placement.zone_id = target["zone_id"]
        placement.warehouse_id = target["warehouse_id"]
        placement.last_movement_reason = RECEIPT_REASON
        placement.last_movement_reference = grn.grn_number
        placement.updated_by = actor_id
        await flush_or_abort(db, f"placement of {line.sku} on shelf {shelf.code}")

        log_audit(db, ENTITY_PLACEMENT, placement.id, action, entity_name=f"{line.sku}@{shelf.code}",
                  actor_id=actor_id,
                  payload={"quantity": {"from": previous, "to": placement.quantity}, "reference": grn.grn_number})
        return placement

    @staticmethod
    async def _ensure_number_free(db: AsyncSession, grn_number: str) -> None:
        exists = (await db.execute(
            select(GoodsReceiptNote.id).where(GoodsReceiptNote.grn_number == grn_number)
        )).scalar_one_or_none()
        if exists is not None:
            raise ValidationError(f"GRN number {grn_number} already exists", code="DUPLICATE_NUMBER")
