# Delivery requests module: on-demand broadcast matching endpoints

from .routes import router as delivery_requests_router
from .models import CreateDeliveryRequest, RespondRequest, CompleteRequest

__all__ = [
    "delivery_requests_router",
    "CreateDeliveryRequest",
    "RespondRequest",
    "CompleteRequest"
]
