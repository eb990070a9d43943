"""Shelfwise — Human-readable document numbers (PO-00001, GRN-00001)."""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.db.concurrency import flush_or_abort
from shelfwise.models.audit import Counter

PO_SEQUENCE = "purchase_orders"
GRN_SEQUENCE = "grns"

_PREFIXES = {
    PO_SEQUENCE: "PO",
    GRN_SEQUENCE: "GRN",
}


class SequenceService:
    """Row-locked counters so two concurrent creates never share a number."""

    @staticmethod
    async def next_number(db: AsyncSession, name: str) -> str:
        result = await db.execute(
            select(Counter).where(Counter.name == name).with_for_update()
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = Counter(name=name, last_number=0)
            db.add(counter)
        counter.last_number += 1
        await flush_or_abort(db, f"numbering of {name}")
        return f"{_PREFIXES[name]}-{counter.last_number:05d}"
