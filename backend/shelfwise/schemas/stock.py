"""Shelfwise — Stock unit and inbound classification schemas."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class StockUnitResponse(BaseModel):
    id: UUID
    sku: str
    store_id: str | None
    order_id: str | None
    grn_id: UUID | None
    put_away: str | None
    warehouse_id: UUID | None
    zone_id: UUID | None
    rack_id: UUID | None
    shelf_id: UUID | None
    placement_id: UUID | None
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ClassifiedUnitResponse(BaseModel):
    unit: StockUnitResponse
    order_name: str | None = None
    order_status: str | None = None
    store_name: str | None = None

    model_config = {"from_attributes": True}


class InboundClassificationResponse(BaseModel):
    fresh_receipt: list[ClassifiedUnitResponse]
    rto: list[ClassifiedUnitResponse]
    dto: list[ClassifiedUnitResponse]
    unknown: list[ClassifiedUnitResponse]
    total: int

    model_config = {"from_attributes": True}


class PlacementResponse(BaseModel):
    id: UUID
    sku: str
    product_name: str | None
    shelf_id: UUID
    rack_id: UUID
    zone_id: UUID
    warehouse_id: UUID
    quantity: int
    last_movement_reason: str | None
    last_movement_reference: str | None

    model_config = {"from_attributes": True}
