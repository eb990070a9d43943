"""Shelfwise — Warehouse / zone / rack / shelf schemas."""
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class WarehouseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=100)
    address: str | None = None


class ZoneCreate(BaseModel):
    warehouse_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=100)
    description: str | None = None


class RackCreate(BaseModel):
    zone_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=100)
    position: int | None = Field(None, ge=1)


class ShelfCreate(BaseModel):
    rack_id: UUID
    name: str = Field(..., min_length=1, max_length=255)
    code: str = Field(..., min_length=1, max_length=100)
    position: int | None = Field(None, ge=1)
    capacity: int | None = Field(None, ge=0)


class LocationUpdate(BaseModel):
    """Only the fields valid for the node's level are accepted; code is immutable."""

    name: str | None = Field(None, min_length=1, max_length=255)
    address: str | None = None
    description: str | None = None
    capacity: int | None = Field(None, ge=0)


class LocationMove(BaseModel):
    new_parent_id: UUID
    position: int | None = Field(None, ge=1)


class WarehouseResponse(BaseModel):
    id: UUID
    name: str
    code: str
    address: str | None
    is_active: bool
    zone_count: int
    rack_count: int
    shelf_count: int
    product_count: int
    created_at: datetime | None

    model_config = {"from_attributes": True}


class ZoneResponse(BaseModel):
    id: UUID
    warehouse_id: UUID
    name: str
    code: str
    description: str | None
    is_active: bool
    rack_count: int
    shelf_count: int
    product_count: int

    model_config = {"from_attributes": True}


class RackResponse(BaseModel):
    id: UUID
    zone_id: UUID
    warehouse_id: UUID
    name: str
    code: str
    position: int
    is_active: bool
    shelf_count: int
    product_count: int

    model_config = {"from_attributes": True}


class ShelfResponse(BaseModel):
    id: UUID
    rack_id: UUID
    zone_id: UUID
    warehouse_id: UUID
    name: str
    code: str
    position: int
    capacity: int | None
    is_active: bool
    product_count: int
    current_occupancy: int

    model_config = {"from_attributes": True}
