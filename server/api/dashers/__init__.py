# Dashers module: availability toggle

from .routes import router as dashers_router
from .models import AvailabilityRequest

__all__ = [
    "dashers_router",
    "AvailabilityRequest"
]
