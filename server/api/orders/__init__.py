# Orders module: buyer order creation, pooling and the live queue

from .routes import router as orders_router
from .models import CreateOrderRequest, OrderSummary

__all__ = [
    "orders_router",
    "CreateOrderRequest",
    "OrderSummary"
]
