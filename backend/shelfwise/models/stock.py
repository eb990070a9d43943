"""Shelfwise — Placement, StockMovement and StockUnit models."""
import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from shelfwise.db.base import Base
from shelfwise.models.location import utcnow


class MovementType(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"
    TRANSFER = "transfer"
    ADJUSTMENT = "adjustment"


class PutAwayState(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Placement(Base):
    """Quantity of one sku on one shelf. One row per (sku, shelf)."""

    __tablename__ = "placements"
    __table_args__ = (UniqueConstraint("sku", "shelf_id", name="uq_placements_sku_shelf"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shelf_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("shelves.id", ondelete="RESTRICT"), index=True)
    rack_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    zone_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_movement_reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    last_movement_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    updated_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())


class StockMovement(Base):
    """Append-only movement ledger. No UPDATE or DELETE."""

    __tablename__ = "stock_movements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)
    to_warehouse_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    to_zone_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    to_rack_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    to_shelf_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())


class StockUnit(Base):
    """A single trackable unit ("UPC"), from a completed GRN or a customer return."""

    __tablename__ = "stock_units"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    store_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    order_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    grn_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("goods_receipt_notes.id", ondelete="SET NULL"), nullable=True, index=True)
    put_away: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)  # None | inbound | outbound
    warehouse_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    zone_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    rack_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    shelf_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, ForeignKey("shelves.id", ondelete="SET NULL"), nullable=True)
    placement_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())
