"""Shelfwise — Goods Receipt Note schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class GRNLineCreate(BaseModel):
    sku: str = Field(..., min_length=1)
    received_qty: int = Field(..., ge=0)
    unit_cost: Decimal | None = Field(None, ge=0)


class GRNCreate(BaseModel):
    po_id: UUID
    grn_number: str | None = None
    notes: str | None = None
    lines: list[GRNLineCreate] = Field(..., min_length=1)


class GRNLineUpdate(BaseModel):
    sku: str = Field(..., min_length=1)
    received_qty: int | None = Field(None, ge=0)
    accepted_qty: int | None = Field(None, ge=0)
    rejection_reason: str | None = None


class GRNLinesUpdate(BaseModel):
    lines: list[GRNLineUpdate] = Field(..., min_length=1)


class ShelfLocation(BaseModel):
    warehouse_id: UUID
    zone_id: UUID
    rack_id: UUID
    shelf_id: UUID


class PlacementSplit(ShelfLocation):
    quantity: int = Field(..., gt=0)


class ReceiptLine(BaseModel):
    sku: str = Field(..., min_length=1)
    accepted_qty: int | None = Field(None, ge=0)
    rejection_reason: str | None = None
    unit_cost: Decimal | None = Field(None, ge=0)
    location: ShelfLocation | None = None
    placements: list[PlacementSplit] | None = None

    @model_validator(mode="after")
    def one_destination(self):
        if self.location is not None and self.placements:
            raise ValueError("Give either location or placements, not both")
        return self


class ReceiptRequest(BaseModel):
    lines: list[ReceiptLine] = Field(default_factory=list)


class GRNCancelRequest(BaseModel):
    reason: str | None = None


class GRNPlacementResponse(BaseModel):
    shelf_id: UUID
    rack_id: UUID
    zone_id: UUID
    warehouse_id: UUID
    quantity: int

    model_config = {"from_attributes": True}


class GRNLineResponse(BaseModel):
    id: UUID
    line_no: int
    sku: str
    product_name: str
    expected_qty: int
    received_qty: int
    accepted_qty: int
    rejected_qty: int
    rejection_reason: str | None
    unit_cost: Decimal
    placements: list[GRNPlacementResponse] = []

    model_config = {"from_attributes": True}


class GRNResponse(BaseModel):
    id: UUID
    grn_number: str
    po_id: UUID
    po_number: str
    warehouse_id: UUID
    status: str
    notes: str | None
    received_at: datetime | None
    received_by: UUID | None
    cancelled_at: datetime | None
    cancel_reason: str | None
    total_received_qty: int
    total_accepted_qty: int
    total_rejected_qty: int
    lines: list[GRNLineResponse]
    created_at: datetime | None

    model_config = {"from_attributes": True}
