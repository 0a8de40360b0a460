"""FastAPI application entry point for the crypto dashboard API."""

import logging
import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from errors import register_error_handlers
from services.admin_auth import AdminAuthenticator
from services.cache import TTLCache
from services.rate_limit import SlidingWindowRateLimiter

# Structured logging: JSON for production, human-readable for local
if settings.is_production:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time":"%(asctime)s","level":"%(levelname)s","logger":"%(name)s","message":"%(message)s"}',
        stream=sys.stdout,
    )
else:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

logger = logging.getLogger(__name__)


def create_app(
    cache: TTLCache | None = None,
    authenticator: AdminAuthenticator | None = None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    app = FastAPI(title="Crypto Dashboard API", version="1.0.0")

    # Process-local stores, one per app instance
    app.state.cache = cache if cache is not None else TTLCache(max_entries=settings.cache_max_entries)
    app.state.authenticator = (
        authenticator if authenticator is not None else AdminAuthenticator(settings.admin_key)
    )
    app.state.rate_limiter = (
        rate_limiter
        if rate_limiter is not None
        else SlidingWindowRateLimiter(
            max_requests=settings.rate_limit_max_requests,
            window_seconds=settings.rate_limit_window_seconds,
        )
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers
    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        if settings.is_production:
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
        return response

    # Centralized error handlers
    register_error_handlers(app)

    from routes.admin import router as admin_router
    from routes.crypto import router as crypto_router
    from routes.health import router as health_router

    app.include_router(health_router)
    app.include_router(crypto_router)
    app.include_router(admin_router)

    @app.on_event("startup")
    async def _validate_config() -> None:
        missing = settings.validate()
        if missing:
            logger.warning("Missing env vars (admin features may fail): %s", ", ".join(missing))

    return app


app = create_app()
