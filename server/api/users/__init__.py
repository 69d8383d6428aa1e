# Users module: the caller's payment history and payouts

from .routes import router as users_router

__all__ = [
    "users_router"
]
