"""Shelfwise — Party directory endpoints."""
from uuid import UUID

from fastapi import APIRouter, Query, status

from shelfwise.api.deps import ActorId, DbSession
from shelfwise.models.party import PartyType
from shelfwise.schemas.common import ApiResponse
from shelfwise.schemas.party import PartyCreate, PartyResponse, PartyUpdate
from shelfwise.services.party_service import PartyService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[PartyResponse]])
async def list_parties(
    db: DbSession,
    type_filter: PartyType | None = Query(None, alias="type"),
    include_inactive: bool = False,
):
    parties = await PartyService.list_parties(
        db, type=type_filter.value if type_filter else None, include_inactive=include_inactive
    )
    return ApiResponse(data=[PartyResponse.model_validate(p) for p in parties])


@router.post("", response_model=ApiResponse[PartyResponse], status_code=status.HTTP_201_CREATED)
async def create_party(body: PartyCreate, db: DbSession, actor_id: ActorId):
    details = body.model_dump(exclude={"name", "type"}, exclude_none=True)
    party = await PartyService.create(db, body.name, body.type.value, actor_id=actor_id, **details)
    await db.commit()
    return ApiResponse(data=PartyResponse.model_validate(party))


@router.get("/{party_id}", response_model=ApiResponse[PartyResponse])
async def get_party(party_id: UUID, db: DbSession):
    return ApiResponse(data=PartyResponse.model_validate(await PartyService.get(db, party_id)))


@router.patch("/{party_id}", response_model=ApiResponse[PartyResponse])
async def update_party(party_id: UUID, body: PartyUpdate, db: DbSession, actor_id: ActorId):
    fields = body.model_dump(exclude_unset=True)
    if fields.get("type") is not None:
        fields["type"] = fields["type"].value
    party = await PartyService.update(db, party_id, actor_id=actor_id, **fields)
    await db.commit()
    return ApiResponse(data=PartyResponse.model_validate(party))


@router.post("/{party_id}/deactivate", response_model=ApiResponse[PartyResponse])
async def deactivate_party(party_id: UUID, db: DbSession, actor_id: ActorId):
    """Soft delete. Refused while the party has open purchase orders."""
    party = await PartyService.deactivate(db, party_id, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=PartyResponse.model_validate(party))
