# Import all models here so SQLAlchemy registers them with Base.metadata
from order_hub.models.order import Order, OrderItem, OrderStatusHistory
from order_hub.models.product import Product

__all__ = [
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Product",
]
