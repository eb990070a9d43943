"""Shelfwise — Purchase Order schemas."""
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field


class POLineCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=100)
    product_name: str = Field(..., min_length=1, max_length=255)
    expected_qty: int = Field(..., gt=0)
    unit_cost: Decimal = Field(..., ge=0)


class POCreate(BaseModel):
    supplier_party_id: UUID
    warehouse_id: UUID
    expected_date: datetime
    currency: str | None = Field(None, min_length=3, max_length=3)
    po_number: str | None = None
    notes: str | None = None
    lines: list[POLineCreate] = Field(..., min_length=1)


class POUpdate(BaseModel):
    supplier_party_id: UUID | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    expected_date: datetime | None = None
    notes: str | None = None
    lines: list[POLineCreate] | None = None


class POCancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class POLineResponse(BaseModel):
    id: UUID
    line_no: int
    sku: str
    product_name: str
    expected_qty: int
    received_qty: int
    unit_cost: Decimal

    model_config = {"from_attributes": True}


class POResponse(BaseModel):
    id: UUID
    po_number: str
    supplier_party_id: UUID
    supplier_name: str
    warehouse_id: UUID
    status: str
    currency: str
    expected_date: datetime | None
    total_amount: Decimal
    notes: str | None
    confirmed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    cancel_reason: str | None
    lines: list[POLineResponse]
    created_at: datetime | None

    model_config = {"from_attributes": True}
