# Runs module: dasher-facing run lifecycle endpoints

from .routes import router as runs_router
from .models import DeliverRunRequest, CancelRunRequest

__all__ = [
    "runs_router",
    "DeliverRunRequest",
    "CancelRunRequest"
]
