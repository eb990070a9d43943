"""Shelfwise — PartyService: supplier / customer directory."""
import logging
import re
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.core.errors import NotFoundError, StateConflictError, ValidationError
from shelfwise.models.party import Party, PartyType
from shelfwise.models.purchase_order import TERMINAL_STATUSES, PurchaseOrder
from shelfwise.services.audit_service import (
    ACTION_CREATED,
    ACTION_PARTY_DEACTIVATED,
    ACTION_UPDATED,
    ENTITY_PARTY,
    diff,
    log_audit,
)

logger = logging.getLogger(__name__)

PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")

_PARTY_TYPES = {t.value for t in PartyType}
_UPDATABLE = {"name", "type", "code", "contact_person", "phone", "email", "address", "gstin", "pan", "notes"}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class PartyService:
    """CRUD for parties. Deletion is a soft deactivate."""

    @staticmethod
    async def get(db: AsyncSession, party_id: UUID) -> Party:
        party = await db.get(Party, party_id)
        if party is None:
            raise NotFoundError("Party", party_id)
        return party

    @staticmethod
    async def list_parties(
        db: AsyncSession,
        type: str | None = None,
        include_inactive: bool = False,
    ) -> list[Party]:
        q = select(Party)
        if type:
            q = q.where(Party.type.in_([type, PartyType.BOTH.value]))
        if not include_inactive:
            q = q.where(Party.is_active == True)  # noqa: E712
        result = await db.execute(q.order_by(Party.name))
        return list(result.scalars().all())

    @staticmethod
    async def get_active_supplier(db: AsyncSession, party_id: UUID) -> Party:
        """Supplier validity check used when creating or editing a purchase order."""
        party = await db.get(Party, party_id)
        if party is None:
            raise ValidationError("Supplier party not found. Please select a valid supplier.")
        if not party.is_active:
            raise ValidationError(f'Supplier "{party.name}" is inactive. Cannot create PO for an inactive party.')
        if not party.is_supplier:
            raise ValidationError(f'Party "{party.name}" is not a supplier (type: {party.type}).')
        return party

    @staticmethod
    async def create(
        db: AsyncSession,
        name: str,
        type: str,
        actor_id: UUID | None = None,
        **details,
    ) -> Party:
        name = _clean(name)
        if not name:
            raise ValidationError("Party name is required")
        if type not in _PARTY_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(sorted(_PARTY_TYPES))}")
        unknown = set(details) - _UPDATABLE
        if unknown:
            raise ValidationError(f"Unknown party fields: {', '.join(sorted(unknown))}")

        fields = {k: _clean(v) for k, v in details.items()}
        if fields.get("gstin"):
            fields["gstin"] = fields["gstin"].upper()
        if fields.get("pan"):
            fields["pan"] = fields["pan"].upper()
        await PartyService._validate_identifiers(db, fields.get("gstin"), fields.get("pan"))

        party = Party(name=name, type=type, created_by=actor_id, **fields)
        db.add(party)
        await db.flush()
        log_audit(db, ENTITY_PARTY, party.id, ACTION_CREATED, entity_name=party.name, actor_id=actor_id,
                  payload={"type": type})
        return party

    @staticmethod
    async def update(db: AsyncSession, party_id: UUID, actor_id: UUID | None = None, **fields) -> Party:
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValidationError(f"Unknown party fields: {', '.join(sorted(unknown))}")
        party = await PartyService.get(db, party_id)

        fields = {k: _clean(v) for k, v in fields.items()}
        if "name" in fields and not fields["name"]:
            raise ValidationError("Party name is required")
        if "type" in fields and fields["type"] not in _PARTY_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(sorted(_PARTY_TYPES))}")
        if fields.get("gstin"):
            fields["gstin"] = fields["gstin"].upper()
        if fields.get("pan"):
            fields["pan"] = fields["pan"].upper()
        await PartyService._validate_identifiers(db, fields.get("gstin"), fields.get("pan"), exclude_id=party.id)

        before = {k: getattr(party, k) for k in fields}
        for k, v in fields.items():
            setattr(party, k, v)
        await db.flush()
        changes = diff(before, fields)
        if changes:
            log_audit(db, ENTITY_PARTY, party.id, ACTION_UPDATED, entity_name=party.name, actor_id=actor_id,
                      payload={"changes": changes})
        return party

    @staticmethod
    async def deactivate(db: AsyncSession, party_id: UUID, actor_id: UUID | None = None) -> Party:
        """Soft delete. Refused while any non-terminal purchase order references the party."""
        party = await PartyService.get(db, party_id)
        if not party.is_active:
            raise StateConflictError("Party is already deactivated")

        result = await db.execute(
            select(PurchaseOrder.po_number).where(
                PurchaseOrder.supplier_party_id == party.id,
                PurchaseOrder.status.not_in(TERMINAL_STATUSES),
            ).order_by(PurchaseOrder.po_number)
        )
        open_pos = list(result.scalars().all())
        if open_pos:
            logger.warning("Refused deactivation of party %s: open POs %s", party.id, open_pos)
            raise StateConflictError(
                f"Cannot deactivate party. {len(open_pos)} open PO(s) exist: {', '.join(open_pos)}. "
                "Close or cancel them first.",
                details={"open_purchase_orders": open_pos},
            )

        party.is_active = False
        await db.flush()
        log_audit(db, ENTITY_PARTY, party.id, ACTION_PARTY_DEACTIVATED, entity_name=party.name, actor_id=actor_id)
        return party

    @staticmethod
    async def _validate_identifiers(
        db: AsyncSession,
        gstin: str | None,
        pan: str | None,
        exclude_id: UUID | None = None,
    ) -> None:
        if pan and not PAN_PATTERN.match(pan):
            raise ValidationError("Invalid PAN format")
        if gstin:
            q = select(Party).where(func.upper(Party.gstin) == gstin)
            if exclude_id is not None:
                q = q.where(Party.id != exclude_id)
            existing = (await db.execute(q.limit(1))).scalar_one_or_none()
            if existing is not None:
                raise ValidationError(f"A party with this GSTIN already exists: {existing.name}")
