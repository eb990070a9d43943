"""Shelfwise — LocationService: warehouse > zone > rack > shelf hierarchy.

Every node points at its parent by id and carries denormalized ancestor ids
for itself only. Moving a node rewrites that node alone; descendants keep
resolving through their own parent id, so a move costs the same for any
subtree size. Stats are cached on each node and recomputed from live parent
ids whenever the structure or the placements underneath change.
"""
import logging
from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.core.errors import NotFoundError, StateConflictError, ValidationError
from shelfwise.models.location import LocationLevel, Rack, Shelf, Warehouse, Zone
from shelfwise.models.stock import Placement
from shelfwise.services.audit_service import (
    ACTION_CREATED,
    ACTION_DELETED,
    ACTION_MOVED,
    ACTION_UPDATED,
    diff,
    log_audit,
)

logger = logging.getLogger(__name__)

_MODELS = {
    LocationLevel.WAREHOUSE: Warehouse,
    LocationLevel.ZONE: Zone,
    LocationLevel.RACK: Rack,
    LocationLevel.SHELF: Shelf,
}

# level -> (parent level, foreign key attribute on the node)
_PARENTS = {
    LocationLevel.ZONE: (LocationLevel.WAREHOUSE, "warehouse_id"),
    LocationLevel.RACK: (LocationLevel.ZONE, "zone_id"),
    LocationLevel.SHELF: (LocationLevel.RACK, "rack_id"),
}

# level -> (child level, foreign key attribute on the child)
_CHILDREN = {
    LocationLevel.WAREHOUSE: (LocationLevel.ZONE, "warehouse_id"),
    LocationLevel.ZONE: (LocationLevel.RACK, "zone_id"),
    LocationLevel.RACK: (LocationLevel.SHELF, "rack_id"),
}

_POSITIONED = (LocationLevel.RACK, LocationLevel.SHELF)

# Fields a caller may change after creation. code is never among them.
_UPDATABLE = {
    LocationLevel.WAREHOUSE: {"name", "address"},
    LocationLevel.ZONE: {"name", "description"},
    LocationLevel.RACK: {"name"},
    LocationLevel.SHELF: {"name", "capacity"},
}


def _normalize_code(code: str | None) -> str:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("code is required")
    return code


def _normalize_name(name: str | None, level: LocationLevel) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError(f"{level.value.capitalize()} name is required")
    return name


def _check_position(position: int | None) -> None:
    if position is not None and position < 1:
        raise ValidationError("position must be >= 1")


class LocationService:
    """CRUD and structural invariants for the storage hierarchy."""

    # ── Reads ────────────────────────────────────────────────────────────────

    @staticmethod
    async def find(db: AsyncSession, level: LocationLevel, id: UUID):
        """Active node or None."""
        model = _MODELS[level]
        result = await db.execute(
            select(model).where(model.id == id, model.is_active == True)  # noqa: E712
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def get(db: AsyncSession, level: LocationLevel, id: UUID):
        node = await LocationService.find(db, level, id)
        if node is None:
            raise NotFoundError(level.value.capitalize(), id)
        return node

    @staticmethod
    async def list_children(
        db: AsyncSession,
        level: LocationLevel,
        parent_id: UUID | None = None,
        include_inactive: bool = False,
    ) -> list:
        model = _MODELS[level]
        q = select(model)
        if level in _PARENTS and parent_id is not None:
            _, fk = _PARENTS[level]
            q = q.where(getattr(model, fk) == parent_id)
        if not include_inactive:
            q = q.where(model.is_active == True)  # noqa: E712
        if level in _POSITIONED:
            q = q.order_by(model.position, model.code)
        else:
            q = q.order_by(model.code)
        result = await db.execute(q)
        return list(result.scalars().all())

    @staticmethod
    async def resolve_shelf(
        db: AsyncSession,
        warehouse_id: UUID,
        zone_id: UUID,
        rack_id: UUID,
        shelf_id: UUID,
    ) -> Shelf:
        """Validate that all four levels exist and chain through live parent ids."""
        warehouse = await LocationService.find(db, LocationLevel.WAREHOUSE, warehouse_id)
        if warehouse is None:
            raise NotFoundError("Warehouse", warehouse_id)
        zone = await LocationService.find(db, LocationLevel.ZONE, zone_id)
        if zone is None:
            raise NotFoundError("Zone", zone_id)
        if zone.warehouse_id != warehouse_id:
            raise ValidationError("Given zone does not exist in the given warehouse")
        rack = await LocationService.find(db, LocationLevel.RACK, rack_id)
        if rack is None:
            raise NotFoundError("Rack", rack_id)
        if rack.zone_id != zone_id:
            raise ValidationError("Given rack does not exist in the given zone")
        shelf = await LocationService.find(db, LocationLevel.SHELF, shelf_id)
        if shelf is None:
            raise NotFoundError("Shelf", shelf_id)
        if shelf.rack_id != rack_id:
            raise ValidationError("Given shelf does not exist in the given rack")
        return shelf

    @staticmethod
    async def get_path(db: AsyncSession, shelf_id: UUID) -> list[str]:
        """Return full path as list of names: Zone > Rack > Shelf."""
        shelf = await LocationService.get(db, LocationLevel.SHELF, shelf_id)
        rack = await db.get(Rack, shelf.rack_id)
        zone = await db.get(Zone, rack.zone_id) if rack else None
        return [n.name for n in (zone, rack, shelf) if n is not None]

    @staticmethod
    async def list_placements(db: AsyncSession, shelf_id: UUID) -> list[Placement]:
        """Stocked placements on a shelf, by sku."""
        await LocationService.get(db, LocationLevel.SHELF, shelf_id)
        result = await db.execute(
            select(Placement)
            .where(Placement.shelf_id == shelf_id, Placement.quantity > 0)
            .order_by(Placement.sku)
        )
        return list(result.scalars().all())

    # ── Create ───────────────────────────────────────────────────────────────

    @staticmethod
    async def create_warehouse(
        db: AsyncSession,
        name: str,
        code: str,
        address: str | None = None,
        actor_id: UUID | None = None,
    ) -> Warehouse:
        name = _normalize_name(name, LocationLevel.WAREHOUSE)
        code = _normalize_code(code)
        await LocationService._ensure_code_free(db, LocationLevel.WAREHOUSE, None, code)
        wh = Warehouse(name=name, code=code, address=address, created_by=actor_id)
        db.add(wh)
        await db.flush()
        log_audit(db, "warehouse", wh.id, ACTION_CREATED, entity_name=wh.name, actor_id=actor_id,
                  payload={"code": code})
        return wh

    @staticmethod
    async def create_zone(
        db: AsyncSession,
        warehouse_id: UUID,
        name: str,
        code: str,
        description: str | None = None,
        actor_id: UUID | None = None,
    ) -> Zone:
        name = _normalize_name(name, LocationLevel.ZONE)
        code = _normalize_code(code)
        warehouse = await LocationService.get(db, LocationLevel.WAREHOUSE, warehouse_id)
        await LocationService._ensure_code_free(db, LocationLevel.ZONE, warehouse.id, code)
        zone = Zone(
            warehouse_id=warehouse.id,
            name=name,
            code=code,
            description=description,
            created_by=actor_id,
        )
        db.add(zone)
        await db.flush()
        await LocationService.refresh_stats(db, warehouse_ids=[warehouse.id])
        log_audit(db, "zone", zone.id, ACTION_CREATED, entity_name=zone.name, actor_id=actor_id,
                  payload={"code": code, "warehouse_id": str(warehouse.id)})
        return zone

    @staticmethod
    async def create_rack(
        db: AsyncSession,
        zone_id: UUID,
        name: str,
        code: str,
        position: int | None = None,
        actor_id: UUID | None = None,
    ) -> Rack:
        name = _normalize_name(name, LocationLevel.RACK)
        code = _normalize_code(code)
        _check_position(position)
        zone = await LocationService.get(db, LocationLevel.ZONE, zone_id)
        await LocationService._ensure_code_free(db, LocationLevel.RACK, zone.id, code)
        position = await LocationService._claim_position(db, LocationLevel.RACK, zone.id, position)
        rack = Rack(
            zone_id=zone.id,
            warehouse_id=zone.warehouse_id,
            name=name,
            code=code,
            position=position,
            created_by=actor_id,
        )
        db.add(rack)
        await db.flush()
        await LocationService.refresh_stats(db, warehouse_ids=[zone.warehouse_id], zone_ids=[zone.id])
        log_audit(db, "rack", rack.id, ACTION_CREATED, entity_name=rack.name, actor_id=actor_id,
                  payload={"code": code, "zone_id": str(zone.id), "position": position})
        return rack

    @staticmethod
    async def create_shelf(
        db: AsyncSession,
        rack_id: UUID,
        name: str,
        code: str,
        position: int | None = None,
        capacity: int | None = None,
        actor_id: UUID | None = None,
    ) -> Shelf:
        name = _normalize_name(name, LocationLevel.SHELF)
        code = _normalize_code(code)
        if capacity is not None and capacity < 0:
            raise ValidationError("capacity must be >= 0")
        _check_position(position)
        rack = await LocationService.get(db, LocationLevel.RACK, rack_id)
        zone = await LocationService.get(db, LocationLevel.ZONE, rack.zone_id)
        await LocationService._ensure_code_free(db, LocationLevel.SHELF, rack.id, code)
        position = await LocationService._claim_position(db, LocationLevel.SHELF, rack.id, position)
        shelf = Shelf(
            rack_id=rack.id,
            zone_id=zone.id,
            warehouse_id=zone.warehouse_id,
            name=name,
            code=code,
            position=position,
            capacity=capacity,
            created_by=actor_id,
        )
        db.add(shelf)
        await db.flush()
        await LocationService.refresh_stats(
            db, warehouse_ids=[zone.warehouse_id], zone_ids=[zone.id], rack_ids=[rack.id]
        )
        log_audit(db, "shelf", shelf.id, ACTION_CREATED, entity_name=shelf.name, actor_id=actor_id,
                  payload={"code": code, "rack_id": str(rack.id), "position": position})
        return shelf

    # ── Update ───────────────────────────────────────────────────────────────

    @staticmethod
    async def rename(
        db: AsyncSession,
        level: LocationLevel,
        id: UUID,
        name: str,
        actor_id: UUID | None = None,
    ):
        return await LocationService.update(db, level, id, actor_id=actor_id, name=name)

    @staticmethod
    async def update(db: AsyncSession, level: LocationLevel, id: UUID, actor_id: UUID | None = None, **fields):
        if "code" in fields:
            raise ValidationError("code is immutable once assigned")
        unknown = set(fields) - _UPDATABLE[level]
        if unknown:
            raise ValidationError(f"Cannot update {', '.join(sorted(unknown))} on a {level.value}")
        node = await LocationService.get(db, level, id)
        if "name" in fields:
            fields["name"] = _normalize_name(fields["name"], level)
        if fields.get("capacity") is not None and fields["capacity"] < 0:
            raise ValidationError("capacity must be >= 0")

        before = {k: getattr(node, k) for k in fields}
        for k, v in fields.items():
            setattr(node, k, v)
        changes = diff(before, fields)
        await db.flush()
        if changes:
            log_audit(db, level.value, node.id, ACTION_UPDATED, entity_name=node.name, actor_id=actor_id,
                      payload={"changes": changes})
        return node

    # ── Move ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def move(
        db: AsyncSession,
        level: LocationLevel,
        id: UUID,
        new_parent_id: UUID,
        position: int | None = None,
        actor_id: UUID | None = None,
    ):
        """
        Re-parent a zone, rack or shelf.
        - Rewrites the node's parent id and its own ancestor ids only.
        - Closes the position gap among the old siblings.
        - Inserts at `position` among the new siblings (append when omitted).
        """
        if level not in _PARENTS:
            raise ValidationError("Warehouses cannot be moved")
        _check_position(position)
        node = await LocationService.get(db, level, id)
        parent_level, fk = _PARENTS[level]

        new_parent = await LocationService.find(db, parent_level, new_parent_id)
        if new_parent is None:
            if new_parent_id == node.id or await LocationService._is_descendant(db, level, node.id, new_parent_id):
                raise StateConflictError(
                    f"Cannot move {level.value} {node.code} into itself or one of its descendants"
                )
            raise NotFoundError(parent_level.value.capitalize(), new_parent_id)

        old_parent_id = getattr(node, fk)
        if old_parent_id == new_parent.id:
            raise ValidationError(f"{level.value.capitalize()} is already in this {parent_level.value}")
        await LocationService._ensure_code_free(db, level, new_parent.id, node.code)

        old_location = LocationService._location_of(node)
        old_ancestry = await LocationService._live_ancestry(db, level, node)

        if level in _POSITIONED:
            await LocationService._shift(db, level, old_parent_id, node.position + 1, -1, exclude_id=node.id)
            node.position = await LocationService._claim_position(db, level, new_parent.id, position, exclude_id=node.id)

        setattr(node, fk, new_parent.id)
        if level == LocationLevel.RACK:
            node.warehouse_id = new_parent.warehouse_id
        elif level == LocationLevel.SHELF:
            zone = await LocationService.get(db, LocationLevel.ZONE, new_parent.zone_id)
            node.zone_id = zone.id
            node.warehouse_id = zone.warehouse_id
        await db.flush()

        new_ancestry = await LocationService._live_ancestry(db, level, node)
        await LocationService.refresh_stats(
            db,
            warehouse_ids=old_ancestry["warehouse_ids"] + new_ancestry["warehouse_ids"],
            zone_ids=old_ancestry["zone_ids"] + new_ancestry["zone_ids"],
            rack_ids=old_ancestry["rack_ids"] + new_ancestry["rack_ids"],
        )
        log_audit(
            db, level.value, node.id, ACTION_MOVED, entity_name=node.name, actor_id=actor_id,
            payload={"location_delta": {"from": old_location, "to": LocationService._location_of(node)}},
        )
        logger.info("Moved %s %s from %s to %s", level.value, node.code, old_parent_id, new_parent.id)
        return node

    # ── Delete ───────────────────────────────────────────────────────────────

    @staticmethod
    async def delete(db: AsyncSession, level: LocationLevel, id: UUID, actor_id: UUID | None = None) -> None:
        """Soft delete. Refused while the node has live children (or any placement, for shelves)."""
        node = await LocationService.get(db, level, id)

        if level in _CHILDREN:
            child_level, child_fk = _CHILDREN[level]
            child_model = _MODELS[child_level]
            count = (await db.execute(
                select(func.count(child_model.id)).where(
                    getattr(child_model, child_fk) == node.id,
                    child_model.is_active == True,  # noqa: E712
                )
            )).scalar_one()
            if count > 0:
                logger.warning("Refused delete of %s %s: %d active %s(s)", level.value, node.code, count, child_level.value)
                raise StateConflictError(
                    f"Cannot delete {level.value} with {count} active {child_level.value}(s). "
                    f"Remove all {child_level.value}s first.",
                    code="HAS_CHILDREN",
                )
        else:
            placements = (await db.execute(
                select(func.count(Placement.id)).where(Placement.shelf_id == node.id)
            )).scalar_one()
            if placements > 0:
                logger.warning("Refused delete of shelf %s: %d placement(s)", node.code, placements)
                raise StateConflictError(
                    f"Cannot delete shelf with {placements} placement(s)",
                    code="HAS_CHILDREN",
                )

        ancestry = await LocationService._live_ancestry(db, level, node)
        node.is_active = False
        if level in _POSITIONED:
            _, fk = _PARENTS[level]
            await LocationService._shift(db, level, getattr(node, fk), node.position + 1, -1, exclude_id=node.id)
        await db.flush()
        await LocationService.refresh_stats(db, **ancestry)
        log_audit(db, level.value, node.id, ACTION_DELETED, entity_name=node.name, actor_id=actor_id)

    # ── Stats ────────────────────────────────────────────────────────────────

    @staticmethod
    async def refresh_stats(
        db: AsyncSession,
        warehouse_ids: Iterable[UUID] = (),
        zone_ids: Iterable[UUID] = (),
        rack_ids: Iterable[UUID] = (),
        shelf_ids: Iterable[UUID] = (),
    ) -> None:
        """Recompute cached counts, following live parent ids rather than cached paths."""
        stocked = Placement.quantity > 0
        active_shelf = Shelf.is_active == True  # noqa: E712
        active_rack = Rack.is_active == True  # noqa: E712
        active_zone = Zone.is_active == True  # noqa: E712

        async def scalar(stmt) -> int:
            return int((await db.execute(stmt)).scalar_one() or 0)

        for shelf_id in set(shelf_ids):
            shelf = await db.get(Shelf, shelf_id)
            if shelf is None:
                continue
            shelf.product_count = await scalar(
                select(func.count(func.distinct(Placement.sku))).where(Placement.shelf_id == shelf_id, stocked)
            )
            shelf.current_occupancy = await scalar(
                select(func.coalesce(func.sum(Placement.quantity), 0)).where(Placement.shelf_id == shelf_id)
            )

        for rack_id in set(rack_ids):
            rack = await db.get(Rack, rack_id)
            if rack is None:
                continue
            rack.shelf_count = await scalar(
                select(func.count(Shelf.id)).where(Shelf.rack_id == rack_id, active_shelf)
            )
            rack.product_count = await scalar(
                select(func.count(func.distinct(Placement.sku)))
                .join(Shelf, Placement.shelf_id == Shelf.id)
                .where(Shelf.rack_id == rack_id, active_shelf, stocked)
            )

        for zone_id in set(zone_ids):
            zone = await db.get(Zone, zone_id)
            if zone is None:
                continue
            zone.rack_count = await scalar(
                select(func.count(Rack.id)).where(Rack.zone_id == zone_id, active_rack)
            )
            zone.shelf_count = await scalar(
                select(func.count(Shelf.id))
                .join(Rack, Shelf.rack_id == Rack.id)
                .where(Rack.zone_id == zone_id, active_rack, active_shelf)
            )
            zone.product_count = await scalar(
                select(func.count(func.distinct(Placement.sku)))
                .join(Shelf, Placement.shelf_id == Shelf.id)
                .join(Rack, Shelf.rack_id == Rack.id)
                .where(Rack.zone_id == zone_id, active_rack, active_shelf, stocked)
            )

        for warehouse_id in set(warehouse_ids):
            wh = await db.get(Warehouse, warehouse_id)
            if wh is None:
                continue
            wh.zone_count = await scalar(
                select(func.count(Zone.id)).where(Zone.warehouse_id == warehouse_id, active_zone)
            )
            wh.rack_count = await scalar(
                select(func.count(Rack.id))
                .join(Zone, Rack.zone_id == Zone.id)
                .where(Zone.warehouse_id == warehouse_id, active_zone, active_rack)
            )
            wh.shelf_count = await scalar(
                select(func.count(Shelf.id))
                .join(Rack, Shelf.rack_id == Rack.id)
                .join(Zone, Rack.zone_id == Zone.id)
                .where(Zone.warehouse_id == warehouse_id, active_zone, active_rack, active_shelf)
            )
            wh.product_count = await scalar(
                select(func.count(func.distinct(Placement.sku)))
                .join(Shelf, Placement.shelf_id == Shelf.id)
                .join(Rack, Shelf.rack_id == Rack.id)
                .join(Zone, Rack.zone_id == Zone.id)
                .where(Zone.warehouse_id == warehouse_id, active_zone, active_rack, active_shelf, stocked)
            )

        await db.flush()

    @staticmethod
    async def refresh_shelf_ancestry(db: AsyncSession, shelf_ids: Iterable[UUID]) -> None:
        """Refresh a set of shelves and every live ancestor above them."""
        shelf_ids = set(shelf_ids)
        rack_ids, zone_ids, warehouse_ids = set(), set(), set()
        for shelf_id in shelf_ids:
            shelf = await db.get(Shelf, shelf_id)
            rack = await db.get(Rack, shelf.rack_id) if shelf else None
            zone = await db.get(Zone, rack.zone_id) if rack else None
            if rack:
                rack_ids.add(rack.id)
            if zone:
                zone_ids.add(zone.id)
                warehouse_ids.add(zone.warehouse_id)
        await LocationService.refresh_stats(
            db, warehouse_ids=warehouse_ids, zone_ids=zone_ids, rack_ids=rack_ids, shelf_ids=shelf_ids
        )

    # ── Internals ────────────────────────────────────────────────────────────

    @staticmethod
    async def _ensure_code_free(db: AsyncSession, level: LocationLevel, parent_id: UUID | None, code: str) -> None:
        model = _MODELS[level]
        q = select(model.id).where(model.code == code, model.is_active == True)  # noqa: E712
        if level in _PARENTS:
            _, fk = _PARENTS[level]
            q = q.where(getattr(model, fk) == parent_id)
        if (await db.execute(q.limit(1))).scalar_one_or_none() is not None:
            raise ValidationError(f"{level.value.capitalize()} code {code} already exists", code="DUPLICATE_CODE")

    @staticmethod
    async def _claim_position(
        db: AsyncSession,
        level: LocationLevel,
        parent_id: UUID,
        position: int | None,
        exclude_id: UUID | None = None,
    ) -> int:
        """Pick a slot among siblings; shift later siblings up when inserting in the middle."""
        model = _MODELS[level]
        _, fk = _PARENTS[level]
        q = select(func.coalesce(func.max(model.position), 0)).where(
            getattr(model, fk) == parent_id, model.is_active == True  # noqa: E712
        )
        if exclude_id is not None:
            q = q.where(model.id != exclude_id)
        max_position = int((await db.execute(q)).scalar_one())
        if position is None or position > max_position:
            return max_position + 1
        await LocationService._shift(db, level, parent_id, position, 1, exclude_id=exclude_id)
        return position

    @staticmethod
    async def _shift(
        db: AsyncSession,
        level: LocationLevel,
        parent_id: UUID,
        from_position: int,
        delta: int,
        exclude_id: UUID | None = None,
    ) -> None:
        model = _MODELS[level]
        _, fk = _PARENTS[level]
        stmt = (
            update(model)
            .where(
                getattr(model, fk) == parent_id,
                model.is_active == True,  # noqa: E712
                model.position >= from_position,
            )
            .values(position=model.position + delta)
            .execution_options(synchronize_session="fetch")
        )
        if exclude_id is not None:
            stmt = stmt.where(model.id != exclude_id)
        await db.execute(stmt)

    @staticmethod
    async def _is_descendant(db: AsyncSession, level: LocationLevel, node_id: UUID, candidate_id: UUID) -> bool:
        if level == LocationLevel.ZONE:
            rack_hit = (await db.execute(
                select(Rack.id).where(Rack.id == candidate_id, Rack.zone_id == node_id)
            )).scalar_one_or_none()
            if rack_hit is not None:
                return True
            shelf_hit = (await db.execute(
                select(Shelf.id)
                .join(Rack, Shelf.rack_id == Rack.id)
                .where(Shelf.id == candidate_id, Rack.zone_id == node_id)
            )).scalar_one_or_none()
            return shelf_hit is not None
        if level == LocationLevel.RACK:
            shelf_hit = (await db.execute(
                select(Shelf.id).where(Shelf.id == candidate_id, Shelf.rack_id == node_id)
            )).scalar_one_or_none()
            return shelf_hit is not None
        return False

    @staticmethod
    async def _live_ancestry(db: AsyncSession, level: LocationLevel, node) -> dict[str, list[UUID]]:
        """Ancestor ids whose stats depend on this node, walked through parent ids."""
        ids: dict[str, list[UUID]] = {"warehouse_ids": [], "zone_ids": [], "rack_ids": []}
        rack_id = node.rack_id if level == LocationLevel.SHELF else None
        zone_id = node.zone_id if level == LocationLevel.RACK else None
        if rack_id is not None:
            ids["rack_ids"].append(rack_id)
            rack = await db.get(Rack, rack_id)
            zone_id = rack.zone_id if rack else None
        if level == LocationLevel.ZONE:
            ids["warehouse_ids"].append(node.warehouse_id)
        elif zone_id is not None:
            ids["zone_ids"].append(zone_id)
            zone = await db.get(Zone, zone_id)
            if zone is not None:
                ids["warehouse_ids"].append(zone.warehouse_id)
        return ids

    @staticmethod
    def _location_of(node) -> dict:
        location = {
            key: str(getattr(node, key))
            for key in ("warehouse_id", "zone_id", "rack_id")
            if hasattr(node, key)
        }
        if hasattr(node, "position"):
            location["position"] = node.position
        return location
