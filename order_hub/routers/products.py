import logging
import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from order_hub.database import get_db
from order_hub.schemas.catalog import ProductListResponse, ProductResponse, ProductUpdate
from order_hub.services import catalog_store
from shared.errors import NotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=ProductListResponse)
async def list_products(db: AsyncSession = Depends(get_db)) -> ProductListResponse:
    products = await catalog_store.list_products(db)
    return ProductListResponse(products=[catalog_store.to_payload(p) for p in products])


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(product_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> ProductResponse:
    product = await catalog_store.get_product(db, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return ProductResponse(product=catalog_store.to_payload(product))


@router.patch("/{product_id}", response_model=ProductResponse)
async def update_product(product_id: uuid.UUID, body: ProductUpdate, request: Request) -> ProductResponse:
    logger.info(
        "Received update_product request",
        extra={
            "request_id": getattr(request.state, "request_id", "unknown"),
            "product_id": str(product_id),
        },
    )
    product = await request.app.state.broadcaster.update_product(
        product_id, stock=body.stock, is_available=body.is_available
    )
    return ProductResponse(product=product)
