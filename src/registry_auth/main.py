# src/registry_auth/main.py
"""Main entry point for the registry auth service."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from registry_auth import __version__
from registry_auth.api import account_router, auth_router
from registry_auth.api.errors import register_error_handlers
from registry_auth.api.middleware import BodySizeLimitMiddleware
from registry_auth.core.settings import settings
from registry_auth.services.auth_service import AuthService
from registry_auth.services.nonce_store import build_nonce_store
from registry_auth.services.rate_limit import FixedWindowRateLimiter
from registry_auth.services.registry import RegistryClient
from registry_auth.services.session_tokens import SessionIssuer

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Registry Auth API",
    description="Passwordless wallet authentication backed by an on-chain key registry",
    version=__version__,
)

app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=settings.cors_origin_regex,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

register_error_handlers(app)

# Include API routers
app.include_router(auth_router)
app.include_router(account_router)


def _build_limiter(limit: int) -> FixedWindowRateLimiter | None:
    if not settings.rate_limit_enabled:
        return None
    return FixedWindowRateLimiter(limit, settings.rate_limit_window_seconds)


@app.on_event("startup")
async def on_startup() -> None:
    registry = RegistryClient()
    app.state.registry = registry
    app.state.auth_service = AuthService(
        build_nonce_store(settings),
        registry,
        SessionIssuer.from_settings(settings),
        events_block_window=settings.events_block_window,
    )
    app.state.challenge_limiter = _build_limiter(settings.challenge_rate_limit)
    app.state.verify_limiter = _build_limiter(settings.verify_rate_limit)
    logger.info("KeyRegistry @ %s via %s", settings.registry_addr, settings.rpc_url)
    logger.info("Nonce store backend: %s", settings.nonce_store_backend)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    service: AuthService | None = getattr(app.state, "auth_service", None)
    if service:
        await service.close()
    registry: RegistryClient | None = getattr(app.state, "registry", None)
    if registry:
        await registry.close()


@app.get("/health")
async def health_check() -> dict[str, bool]:
    """Health check endpoint to verify the service is running."""
    return {"ok": True}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }


def run() -> None:
    """Configure logging and serve the app with uvicorn."""
    import uvicorn

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Auth server on http://%s:%s", settings.host, settings.port)
    uvicorn.run(
        "registry_auth.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
