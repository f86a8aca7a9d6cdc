"""API endpoint modules."""

from .account import router as account_router
from .auth import router as auth_router

__all__ = ["account_router", "auth_router"]
