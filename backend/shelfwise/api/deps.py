"""Shelfwise — FastAPI dependencies (DB session, acting user, order lookup)."""
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from shelfwise.core.order_status import CachedOrderStatusLookup, HttpOrderStatusLookup, OrderStatusLookup
from shelfwise.db.session import get_db

DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_actor_id(x_actor_id: Annotated[UUID | None, Header()] = None) -> UUID | None:
    """
    Acting user for audit rows, taken from the X-Actor-Id header.
    Authentication happens upstream; this service only records who acted.
    """
    return x_actor_id


ActorId = Annotated[UUID | None, Depends(get_actor_id)]


def get_order_status_lookup() -> OrderStatusLookup:
    return CachedOrderStatusLookup(HttpOrderStatusLookup())


OrderLookup = Annotated[OrderStatusLookup, Depends(get_order_status_lookup)]
