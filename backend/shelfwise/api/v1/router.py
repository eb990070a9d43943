"""Shelfwise — API v1 router aggregation."""
from fastapi import APIRouter

from shelfwise.api.v1.endpoints import grns, locations, parties, purchase_orders, put_away

api_router = APIRouter()

api_router.include_router(locations.router, prefix="/locations", tags=["locations"])
api_router.include_router(parties.router, prefix="/parties", tags=["parties"])
api_router.include_router(purchase_orders.router, prefix="/purchase-orders", tags=["purchase-orders"])
api_router.include_router(grns.router, prefix="/grns", tags=["grns"])
api_router.include_router(put_away.router, prefix="/put-away", tags=["put-away"])
