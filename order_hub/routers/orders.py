import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from order_hub.database import get_db
from order_hub.schemas.orders import (
    OrderListResponse,
    OrderResponse,
    StatusHistoryEntry,
    StatusHistoryResponse,
)
from order_hub.services import order_store
from shared.errors import NotFoundError

router = APIRouter()


@router.get("", response_model=OrderListResponse)
async def list_orders(request: Request) -> OrderListResponse:
    return OrderListResponse(orders=await request.app.state.lifecycle.list_orders())


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: uuid.UUID, request: Request) -> OrderResponse:
    return OrderResponse(order=await request.app.state.lifecycle.get_order(order_id))


@router.get("/{order_id}/history", response_model=StatusHistoryResponse)
async def get_status_history(order_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> StatusHistoryResponse:
    if await order_store.get_order(db, order_id) is None:
        raise NotFoundError("Order not found")
    entries = await order_store.get_status_history(db, order_id)
    return StatusHistoryResponse(
        history=[StatusHistoryEntry(status=e.status, created_at=e.created_at) for e in entries]
    )
