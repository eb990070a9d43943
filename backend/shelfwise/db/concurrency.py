"""Shelfwise — Optimistic-lock helpers for aggregate writes."""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.core.errors import TransactionAbortError

logger = logging.getLogger(__name__)


async def flush_or_abort(db: AsyncSession, context: str) -> None:
    """
    Flush pending writes. Another transaction got there first when either
    - a versioned aggregate no longer has the version we read, or
    - a row we inserted collides with one it inserted (same sku + shelf,
      same counter name).
    Roll everything back and surface a retryable abort so no partial effect survives.
    """
    try:
        await db.flush()
    except (StaleDataError, IntegrityError) as exc:
        logger.warning("Concurrent write conflict during %s: %s", context, exc)
        await db.rollback()
        raise TransactionAbortError(
            f"Concurrent update detected during {context}; re-read current state and retry"
        ) from exc
