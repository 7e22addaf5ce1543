"""
Canonical wire payloads shared by the server and its clients.

Every frame on the real-time channel is ``{"event": <name>, "data": <payload>}``.
Payload models use snake_case fields with camelCase aliases on the wire.
The server only ever emits these shapes; tolerance for older shapes lives
in sync_client.normalize.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Server -> client
PRODUCTS_UPDATED = "products_updated"
ORDER_CONFIRMATION = "order_confirmation"
ORDER_STATUS_CHANGED = "order_status_changed"
NEW_ORDER_RECEIVED = "new_order_received"
ORDER_UPDATED = "order_updated"
CLIENTS_COUNT = "clients_count"
ORDER_ERROR = "order_error"

# Client -> server
REGISTER = "register"
NEW_ORDER = "new_order"
UPDATE_ORDER_STATUS = "update_order_status"


class Category(str, Enum):
    DRINK = "DRINK"
    FOOD = "FOOD"
    DESSERT = "DESSERT"
    SNACK = "SNACK"


class PaymentMethod(str, Enum):
    CARD = "CARD"
    CASH = "CASH"
    PAYPAL = "PAYPAL"


class OrderStatus(str, Enum):
    NEW = "NEW"
    PREPARING = "PREPARING"
    READY = "READY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

    def can_transition_to(self, target: "OrderStatus") -> bool:
        # Kitchen operators may move an order forwards or backwards freely;
        # only terminal orders are frozen.
        return not self.is_terminal


class ClientRole(str, Enum):
    CUSTOMER = "customer"
    KITCHEN = "kitchen"


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class Frame(BaseModel):
    event: str
    data: dict = Field(default_factory=dict)

    model_config = {"extra": "ignore"}


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class LocalizedText(WireModel):
    name: str
    description: str | None = None


class ProductPayload(WireModel):
    id: uuid.UUID
    name: str
    description: str | None = None
    translations: dict[str, LocalizedText] = Field(default_factory=dict)
    price: Decimal
    category: Category
    stock: int
    is_available: bool

    @property
    def orderable(self) -> bool:
        return self.is_available and self.stock > 0


class OrderItemPayload(WireModel):
    product_id: uuid.UUID
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderPayload(WireModel):
    id: uuid.UUID
    number: str
    customer_name: str
    instructions: str | None = None
    payment_method: PaymentMethod
    is_paid: bool
    status: OrderStatus
    items: list[OrderItemPayload]
    total_amount: Decimal
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Server -> client events
# ---------------------------------------------------------------------------


class ProductsUpdated(WireModel):
    products: list[ProductPayload]


class OrderConfirmation(WireModel):
    order_id: uuid.UUID
    order_number: str


class OrderStatusChanged(WireModel):
    order_id: uuid.UUID
    status: OrderStatus | None = None
    is_paid: bool | None = None
    updated_at: datetime

    def wire(self) -> dict:
        # Absent fields mean "unchanged" to the receiving projection.
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClientsCount(WireModel):
    customers: int = 0
    kitchen: int = 0


class OrderError(WireModel):
    code: str
    message: str


# ---------------------------------------------------------------------------
# Client -> server events
# ---------------------------------------------------------------------------


class RegisterMessage(WireModel):
    client_type: str
    # Set by a reconnecting customer that still follows an order
    order_id: uuid.UUID | None = None

    def wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class NewOrderLine(WireModel):
    product_id: uuid.UUID
    quantity: int
    name: str | None = None  # informational; the server snapshots from the catalog
    price: Decimal | None = None


class NewOrderMessage(WireModel):
    customer_name: str = ""
    instructions: str | None = None
    payment_method: PaymentMethod = PaymentMethod.CARD
    items: list[NewOrderLine] = Field(default_factory=list)
    total: Decimal | None = None  # client-computed, recomputed server-side
    timestamp: datetime | None = None


class UpdateOrderStatusMessage(WireModel):
    order_id: uuid.UUID
    status: OrderStatus | None = None
    is_paid: bool | None = None
