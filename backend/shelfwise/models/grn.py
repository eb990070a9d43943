"""Shelfwise — Goods Receipt Note models."""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shelfwise.db.base import Base
from shelfwise.models.location import utcnow


class GRNStatus(str, Enum):
    DRAFT = "draft"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class GoodsReceiptNote(Base):
    """
    Record of goods physically received against one purchase order.
    po_number and warehouse_id are snapshots taken at creation.
    """

    __tablename__ = "goods_receipt_notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    grn_number: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    po_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("purchase_orders.id", ondelete="RESTRICT"), index=True)
    po_number: Mapped[str] = mapped_column(String(50), nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("warehouses.id", ondelete="RESTRICT"))
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=GRNStatus.DRAFT.value)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, server_default=func.now())

    lines: Mapped[list["GRNLine"]] = relationship(
        "GRNLine",
        back_populates="grn",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="GRNLine.line_no",
    )

    __mapper_args__ = {"version_id_col": version}

    def line_for(self, sku: str) -> "GRNLine | None":
        return next((line for line in self.lines if line.sku == sku), None)

    @property
    def total_received_qty(self) -> int:
        return sum(line.received_qty for line in self.lines)

    @property
    def total_accepted_qty(self) -> int:
        return sum(line.accepted_qty for line in self.lines)

    @property
    def total_rejected_qty(self) -> int:
        return sum(line.rejected_qty for line in self.lines)


class GRNLine(Base):
    """received = accepted + rejected, always."""

    __tablename__ = "grn_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    grn_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("goods_receipt_notes.id", ondelete="CASCADE"))
    line_no: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    sku: Mapped[str] = mapped_column(String(100), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    expected_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    received_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    accepted_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejected_qty: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit_cost: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    grn: Mapped["GoodsReceiptNote"] = relationship("GoodsReceiptNote", back_populates="lines")
    placements: Mapped[list["GRNPlacement"]] = relationship(
        "GRNPlacement",
        back_populates="line",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def placed_qty(self) -> int:
        return sum(p.quantity for p in self.placements)


class GRNPlacement(Base):
    """Where the accepted units of a GRN line were put."""

    __tablename__ = "grn_placements"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    grn_line_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("grn_lines.id", ondelete="CASCADE"))
    shelf_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("shelves.id", ondelete="RESTRICT"))
    rack_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    zone_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    warehouse_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    line: Mapped["GRNLine"] = relationship("GRNLine", back_populates="placements")
