from pydantic import Field

from shared.events import ProductPayload, WireModel


class ProductListResponse(WireModel):
    products: list[ProductPayload]


class ProductResponse(WireModel):
    product: ProductPayload


class ProductUpdate(WireModel):
    stock: int | None = Field(default=None, ge=0)
    is_available: bool | None = None
