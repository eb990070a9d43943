"""Shelfwise — AuditService: one event per state-changing operation."""
import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.models.audit import AuditLog

logger = logging.getLogger("shelfwise.audit")

# ── Audit action constants ────────────────────────────────────────────────────
ACTION_CREATED = "created"
ACTION_UPDATED = "updated"
ACTION_MOVED = "moved"
ACTION_DELETED = "deleted"

ACTION_PO_CONFIRMED = "confirmed"
ACTION_PO_CANCELLED = "cancelled"
ACTION_PO_CLOSED = "closed"
ACTION_PO_RECEIPT_APPLIED = "receipt_applied"

ACTION_GRN_LINES_UPDATED = "lines_updated"
ACTION_GRN_COMPLETED = "completed"
ACTION_GRN_CANCELLED = "cancelled"

ACTION_PLACEMENT_ADDED = "added"
ACTION_PLACEMENT_ADJUSTED = "quantity_adjusted"

ACTION_PARTY_DEACTIVATED = "deactivated"

ENTITY_WAREHOUSE = "warehouse"
ENTITY_ZONE = "zone"
ENTITY_RACK = "rack"
ENTITY_SHELF = "shelf"
ENTITY_PLACEMENT = "placement"
ENTITY_PURCHASE_ORDER = "purchase_order"
ENTITY_GRN = "grn"
ENTITY_PARTY = "party"


def log_audit(
    db: AsyncSession,
    entity_type: str,
    entity_id: UUID,
    action: str,
    *,
    entity_name: str | None = None,
    actor_id: UUID | None = None,
    payload: dict | None = None,
) -> None:
    """Write an audit log entry. Call this from services after the main action."""
    try:
        entry = AuditLog(
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            action=action,
            payload=payload,
            actor_id=actor_id,
        )
        # No flush here. The surrounding transaction picks it up, so the
        # audit row is committed atomically with the main action.
        db.add(entry)
    except Exception as exc:
        # Never allow audit failure to break the main request
        logger.error("Audit log write failed: %s", exc, exc_info=True)
        return
    logger.info("%s.%s %s (%s) by %s", entity_type, action, entity_id, entity_name or "-", actor_id or "system")


def diff(before: dict, after: dict) -> dict:
    """Field-level {field: {from, to}} changes between two snapshots."""
    return {
        key: {"from": before.get(key), "to": value}
        for key, value in after.items()
        if before.get(key) != value
    }
