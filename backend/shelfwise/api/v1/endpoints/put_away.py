"""Shelfwise — Put-away queue endpoints."""
from fastapi import APIRouter

from shelfwise.api.deps import DbSession, OrderLookup
from shelfwise.schemas.common import ApiResponse
from shelfwise.schemas.stock import InboundClassificationResponse
from shelfwise.services.return_classifier import ReturnClassifier

router = APIRouter()


@router.get("/inbound", response_model=ApiResponse[InboundClassificationResponse])
async def classify_inbound_units(db: DbSession, lookup: OrderLookup):
    """Units waiting in the inbound area, grouped as fresh receipts, RTO, DTO and unknown."""
    classification = await ReturnClassifier.classify_inbound(db, lookup)
    return ApiResponse(data=InboundClassificationResponse.model_validate(classification))
