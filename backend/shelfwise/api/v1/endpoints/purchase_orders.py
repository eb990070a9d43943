"""Shelfwise — Purchase Order endpoints."""
from uuid import UUID

from fastapi import APIRouter, Query, status

from shelfwise.api.deps import ActorId, DbSession
from shelfwise.schemas.common import ApiResponse, Meta
from shelfwise.schemas.purchase_order import POCancelRequest, POCreate, POResponse, POUpdate
from shelfwise.services.purchase_order_service import PurchaseOrderService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[POResponse]])
async def list_purchase_orders(
    db: DbSession,
    status_filter: str | None = Query(None, alias="status"),
    supplier_party_id: UUID | None = None,
    warehouse_id: UUID | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
):
    """List Purchase Orders, newest first."""
    pos, total = await PurchaseOrderService.list_pos(
        db, status=status_filter, supplier_party_id=supplier_party_id, warehouse_id=warehouse_id,
        page=page, page_size=page_size,
    )
    return ApiResponse(
        data=[POResponse.model_validate(po) for po in pos],
        meta=Meta(page=page, page_size=page_size, total_count=total),
    )


@router.post("", response_model=ApiResponse[POResponse], status_code=status.HTTP_201_CREATED)
async def create_purchase_order(body: POCreate, db: DbSession, actor_id: ActorId):
    """Create a new Purchase Order in DRAFT status."""
    po = await PurchaseOrderService.create_po(
        db,
        supplier_party_id=body.supplier_party_id,
        warehouse_id=body.warehouse_id,
        lines=[line.model_dump() for line in body.lines],
        expected_date=body.expected_date,
        currency=body.currency,
        notes=body.notes,
        po_number=body.po_number,
        created_by=actor_id,
    )
    await db.commit()
    return ApiResponse(data=POResponse.model_validate(po))


@router.get("/{po_id}", response_model=ApiResponse[POResponse])
async def get_purchase_order(po_id: UUID, db: DbSession):
    """Get a single Purchase Order with all lines."""
    return ApiResponse(data=POResponse.model_validate(await PurchaseOrderService.get_po(db, po_id)))


@router.patch("/{po_id}", response_model=ApiResponse[POResponse])
async def update_purchase_order(po_id: UUID, body: POUpdate, db: DbSession, actor_id: ActorId):
    fields = body.model_dump(exclude_unset=True)
    if body.lines is not None:
        fields["lines"] = [line.model_dump() for line in body.lines]
    po = await PurchaseOrderService.update_po(db, po_id, actor_id=actor_id, **fields)
    await db.commit()
    return ApiResponse(data=POResponse.model_validate(po))


@router.post("/{po_id}/confirm", response_model=ApiResponse[POResponse])
async def confirm_purchase_order(po_id: UUID, db: DbSession, actor_id: ActorId):
    po = await PurchaseOrderService.confirm_po(db, po_id, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=POResponse.model_validate(po))


@router.post("/{po_id}/cancel", response_model=ApiResponse[POResponse])
async def cancel_purchase_order(po_id: UUID, body: POCancelRequest, db: DbSession, actor_id: ActorId):
    po = await PurchaseOrderService.cancel_po(db, po_id, body.reason, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=POResponse.model_validate(po))


@router.post("/{po_id}/close", response_model=ApiResponse[POResponse])
async def close_purchase_order(po_id: UUID, db: DbSession, actor_id: ActorId):
    po = await PurchaseOrderService.close_po(db, po_id, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=POResponse.model_validate(po))


@router.delete("/{po_id}", response_model=ApiResponse)
async def delete_purchase_order(po_id: UUID, db: DbSession, actor_id: ActorId):
    await PurchaseOrderService.delete_po(db, po_id, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data={"id": str(po_id), "deleted": True})
