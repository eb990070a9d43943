"""Shelfwise — Storage hierarchy endpoints (warehouses, zones, racks, shelves)."""
from enum import Enum
from uuid import UUID

from fastapi import APIRouter, Query, status

from shelfwise.api.deps import ActorId, DbSession
from shelfwise.models.location import LocationLevel
from shelfwise.schemas.common import ApiResponse
from shelfwise.schemas.location import (
    LocationMove, LocationUpdate, RackCreate, RackResponse, ShelfCreate, ShelfResponse,
    WarehouseCreate, WarehouseResponse, ZoneCreate, ZoneResponse,
)
from shelfwise.schemas.stock import PlacementResponse
from shelfwise.services.location_service import LocationService

router = APIRouter()


class LocationKind(str, Enum):
    WAREHOUSES = "warehouses"
    ZONES = "zones"
    RACKS = "racks"
    SHELVES = "shelves"


_LEVELS = {
    LocationKind.WAREHOUSES: LocationLevel.WAREHOUSE,
    LocationKind.ZONES: LocationLevel.ZONE,
    LocationKind.RACKS: LocationLevel.RACK,
    LocationKind.SHELVES: LocationLevel.SHELF,
}

_RESPONSES = {
    LocationLevel.WAREHOUSE: WarehouseResponse,
    LocationLevel.ZONE: ZoneResponse,
    LocationLevel.RACK: RackResponse,
    LocationLevel.SHELF: ShelfResponse,
}


def _to_response(level: LocationLevel, node):
    return _RESPONSES[level].model_validate(node)


@router.post("/warehouses", response_model=ApiResponse[WarehouseResponse], status_code=status.HTTP_201_CREATED)
async def create_warehouse(body: WarehouseCreate, db: DbSession, actor_id: ActorId):
    wh = await LocationService.create_warehouse(
        db, body.name, body.code, address=body.address, actor_id=actor_id
    )
    await db.commit()
    return ApiResponse(data=_to_response(LocationLevel.WAREHOUSE, wh))


@router.post("/zones", response_model=ApiResponse[ZoneResponse], status_code=status.HTTP_201_CREATED)
async def create_zone(body: ZoneCreate, db: DbSession, actor_id: ActorId):
    zone = await LocationService.create_zone(
        db, body.warehouse_id, body.name, body.code, description=body.description, actor_id=actor_id
    )
    await db.commit()
    return ApiResponse(data=_to_response(LocationLevel.ZONE, zone))


@router.post("/racks", response_model=ApiResponse[RackResponse], status_code=status.HTTP_201_CREATED)
async def create_rack(body: RackCreate, db: DbSession, actor_id: ActorId):
    rack = await LocationService.create_rack(
        db, body.zone_id, body.name, body.code, position=body.position, actor_id=actor_id
    )
    await db.commit()
    return ApiResponse(data=_to_response(LocationLevel.RACK, rack))


@router.post("/shelves", response_model=ApiResponse[ShelfResponse], status_code=status.HTTP_201_CREATED)
async def create_shelf(body: ShelfCreate, db: DbSession, actor_id: ActorId):
    shelf = await LocationService.create_shelf(
        db, body.rack_id, body.name, body.code,
        position=body.position, capacity=body.capacity, actor_id=actor_id,
    )
    await db.commit()
    return ApiResponse(data=_to_response(LocationLevel.SHELF, shelf))


@router.get("/shelves/{shelf_id}/path", response_model=ApiResponse[list[str]])
async def get_shelf_path(shelf_id: UUID, db: DbSession):
    """Get full path (Zone > Rack > Shelf) for a shelf."""
    return ApiResponse(data=await LocationService.get_path(db, shelf_id))


@router.get("/shelves/{shelf_id}/placements", response_model=ApiResponse[list[PlacementResponse]])
async def list_shelf_placements(shelf_id: UUID, db: DbSession):
    placements = await LocationService.list_placements(db, shelf_id)
    return ApiResponse(data=[PlacementResponse.model_validate(p) for p in placements])


@router.get("/{kind}", response_model=ApiResponse[list])
async def list_locations(
    kind: LocationKind,
    db: DbSession,
    parent_id: UUID | None = Query(None, description="Warehouse, zone or rack id; ignored for warehouses"),
    include_inactive: bool = False,
):
    """List nodes of one level, racks and shelves in position order."""
    level = _LEVELS[kind]
    items = await LocationService.list_children(db, level, parent_id=parent_id, include_inactive=include_inactive)
    return ApiResponse(data=[_to_response(level, i) for i in items])


@router.get("/{kind}/{node_id}", response_model=ApiResponse)
async def get_location(kind: LocationKind, node_id: UUID, db: DbSession):
    level = _LEVELS[kind]
    return ApiResponse(data=_to_response(level, await LocationService.get(db, level, node_id)))


@router.patch("/{kind}/{node_id}", response_model=ApiResponse)
async def update_location(kind: LocationKind, node_id: UUID, body: LocationUpdate, db: DbSession, actor_id: ActorId):
    """Rename or edit a node. Codes cannot be changed."""
    level = _LEVELS[kind]
    node = await LocationService.update(db, level, node_id, actor_id=actor_id, **body.model_dump(exclude_unset=True))
    await db.commit()
    return ApiResponse(data=_to_response(level, node))


@router.post("/{kind}/{node_id}/move", response_model=ApiResponse)
async def move_location(kind: LocationKind, node_id: UUID, body: LocationMove, db: DbSession, actor_id: ActorId):
    """Reparent a zone, rack or shelf. Its subtree follows through parent ids."""
    level = _LEVELS[kind]
    node = await LocationService.move(
        db, level, node_id, body.new_parent_id, position=body.position, actor_id=actor_id
    )
    await db.commit()
    return ApiResponse(data=_to_response(level, node))


@router.delete("/{kind}/{node_id}", response_model=ApiResponse)
async def delete_location(kind: LocationKind, node_id: UUID, db: DbSession, actor_id: ActorId):
    """Soft delete. Refused while the node has active children or stock."""
    await LocationService.delete(db, _LEVELS[kind], node_id, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data={"id": str(node_id), "deleted": True})
