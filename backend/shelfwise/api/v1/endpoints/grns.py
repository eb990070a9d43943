"""Shelfwise — Goods Receipt Note endpoints."""
from uuid import UUID

from fastapi import APIRouter, Query, status

from shelfwise.api.deps import ActorId, DbSession
from shelfwise.schemas.common import ApiResponse, Meta
from shelfwise.schemas.grn import GRNCancelRequest, GRNCreate, GRNLinesUpdate, GRNResponse, ReceiptRequest
from shelfwise.services.grn_service import GRNService

router = APIRouter()


@router.get("", response_model=ApiResponse[list[GRNResponse]])
async def list_grns(
    db: DbSession,
    po_id: UUID | None = None,
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
):
    grns, total = await GRNService.list_grns(db, po_id=po_id, status=status_filter, page=page, page_size=page_size)
    return ApiResponse(
        data=[GRNResponse.model_validate(g) for g in grns],
        meta=Meta(page=page, page_size=page_size, total_count=total),
    )


@router.post("", response_model=ApiResponse[GRNResponse], status_code=status.HTTP_201_CREATED)
async def create_grn(body: GRNCreate, db: DbSession, actor_id: ActorId):
    """Draft a GRN against a confirmed or partially received PO. Over-receipt comes back as a warning."""
    grn, warnings = await GRNService.create_grn(
        db,
        body.po_id,
        [line.model_dump() for line in body.lines],
        notes=body.notes,
        grn_number=body.grn_number,
        actor_id=actor_id,
    )
    await db.commit()
    return ApiResponse(data=GRNResponse.model_validate(grn), meta=Meta(warnings=warnings))


@router.get("/{grn_id}", response_model=ApiResponse[GRNResponse])
async def get_grn(grn_id: UUID, db: DbSession):
    return ApiResponse(data=GRNResponse.model_validate(await GRNService.get_grn(db, grn_id)))


@router.patch("/{grn_id}/lines", response_model=ApiResponse[GRNResponse])
async def update_grn_lines(grn_id: UUID, body: GRNLinesUpdate, db: DbSession, actor_id: ActorId):
    grn = await GRNService.update_lines(db, grn_id, [l.model_dump(exclude_unset=True) for l in body.lines],
                                       actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=GRNResponse.model_validate(grn))


@router.post("/{grn_id}/receive", response_model=ApiResponse[GRNResponse])
async def perform_receipt(grn_id: UUID, body: ReceiptRequest, db: DbSession, actor_id: ActorId):
    """
    Complete a draft GRN: put accepted units away on shelves, create stock
    units, and add the accepted quantities to the purchase order. All or nothing.
    """
    lines = [line.model_dump(exclude_unset=True) for line in body.lines]
    grn, warnings = await GRNService.perform_receipt(db, grn_id, lines, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=GRNResponse.model_validate(grn), meta=Meta(warnings=warnings))


@router.post("/{grn_id}/cancel", response_model=ApiResponse[GRNResponse])
async def cancel_grn(grn_id: UUID, body: GRNCancelRequest, db: DbSession, actor_id: ActorId):
    grn = await GRNService.cancel_grn(db, grn_id, reason=body.reason, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data=GRNResponse.model_validate(grn))


@router.delete("/{grn_id}", response_model=ApiResponse)
async def delete_grn(grn_id: UUID, db: DbSession, actor_id: ActorId):
    await GRNService.delete_grn(db, grn_id, actor_id=actor_id)
    await db.commit()
    return ApiResponse(data={"id": str(grn_id), "deleted": True})
