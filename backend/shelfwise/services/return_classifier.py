"""Shelfwise — ReturnClassifier: sort inbound units into fresh receipts, RTO, DTO and unknown."""
import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.core.order_status import OrderStatusLookup
from shelfwise.models.stock import PutAwayState, StockUnit

logger = logging.getLogger(__name__)

RTO_STATUSES = frozenset({"RTO Processed", "RTO Closed"})
DTO_STATUSES = frozenset({"Pending Refunds", "DTO Refunded"})

NO_ORDER = "No Order"
UNKNOWN = "Unknown"


@dataclass
class ClassifiedUnit:
    unit: StockUnit
    order_name: Optional[str] = None
    order_status: Optional[str] = None
    store_name: Optional[str] = None


@dataclass
class InboundClassification:
    fresh_receipt: list[ClassifiedUnit] = field(default_factory=list)
    rto: list[ClassifiedUnit] = field(default_factory=list)
    dto: list[ClassifiedUnit] = field(default_factory=list)
    unknown: list[ClassifiedUnit] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.fresh_receipt) + len(self.rto) + len(self.dto) + len(self.unknown)


class ReturnClassifier:
    """Read-only. Nothing about a unit is changed by classifying it."""

    @staticmethod
    async def classify_inbound(db: AsyncSession, lookup: OrderStatusLookup) -> InboundClassification:
        result = await db.execute(
            select(StockUnit)
            .where(StockUnit.put_away == PutAwayState.INBOUND.value)
            .order_by(StockUnit.sku, StockUnit.created_at)
        )
        return await ReturnClassifier.classify(list(result.scalars().all()), lookup)

    @staticmethod
    async def classify(units: list[StockUnit], lookup: OrderStatusLookup) -> InboundClassification:
        """
        - grn set with no store/order: a fresh receipt.
        - store or order missing: unknown.
        - otherwise the order's custom status decides RTO / DTO; a missing
          order or any other status is unknown.
        Lookup failures propagate.
        """
        out = InboundClassification()
        for unit in sorted(units, key=lambda u: u.sku):
            if unit.grn_id and not unit.store_id and not unit.order_id:
                out.fresh_receipt.append(ClassifiedUnit(unit))
                continue
            if not unit.store_id or not unit.order_id:
                out.unknown.append(ClassifiedUnit(unit, UNKNOWN, NO_ORDER, unit.store_id or UNKNOWN))
                continue

            status = await lookup.get(unit.store_id, unit.order_id)
            if status is None:
                out.unknown.append(ClassifiedUnit(unit, UNKNOWN, NO_ORDER, unit.store_id))
                continue
            classified = ClassifiedUnit(unit, status.name, status.custom_status, unit.store_id)
            if status.custom_status in RTO_STATUSES:
                out.rto.append(classified)
            elif status.custom_status in DTO_STATUSES:
                out.dto.append(classified)
            else:
                out.unknown.append(classified)

        logger.debug(
            "Classified %d inbound unit(s): %d fresh, %d rto, %d dto, %d unknown",
            out.total, len(out.fresh_receipt), len(out.rto), len(out.dto), len(out.unknown),
        )
        return out
