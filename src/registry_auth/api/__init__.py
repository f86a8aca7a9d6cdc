"""HTTP API for the authentication service."""

from .endpoints import account_router, auth_router

__all__ = ["account_router", "auth_router"]
