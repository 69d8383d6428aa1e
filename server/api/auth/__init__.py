# Authentication module: bearer-token dependencies shared by every router

from .routes import router as auth_router
from .models import TokenData

__all__ = [
    "auth_router",
    "TokenData"
]
