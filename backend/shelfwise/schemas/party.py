"""Shelfwise — Party (supplier / customer) schemas."""
from uuid import UUID

from pydantic import BaseModel, Field

from shelfwise.models.party import PartyType


class PartyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    type: PartyType
    code: str | None = None
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gstin: str | None = None
    pan: str | None = None
    notes: str | None = None


class PartyUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=255)
    type: PartyType | None = None
    code: str | None = None
    contact_person: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    gstin: str | None = None
    pan: str | None = None
    notes: str | None = None


class PartyResponse(BaseModel):
    id: UUID
    name: str
    type: str
    code: str | None
    contact_person: str | None
    phone: str | None
    email: str | None
    address: str | None
    gstin: str | None
    pan: str | None
    notes: str | None
    is_active: bool

    model_config = {"from_attributes": True}
