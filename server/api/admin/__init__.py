# Admin module: pricing, fees, payment reports, run overrides and maintenance

from .routes import router as admin_router
from .models import UpsertHallRequest, SetPlatformFeeRequest, PaymentOutcomeRequest

__all__ = [
    "admin_router",
    "UpsertHallRequest",
    "SetPlatformFeeRequest",
    "PaymentOutcomeRequest"
]
