"""Custom exceptions and centralized FastAPI error handlers."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from config import settings

logger = logging.getLogger(__name__)


class DashboardError(Exception):
    """Base exception with HTTP status code and a stable error code."""

    code = "internal_error"

    def __init__(self, message: str, status_code: int = 500, headers: dict[str, str] | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.headers = headers


class UpstreamUnavailableError(DashboardError):
    """External data source failed and no cached value exists."""

    def __init__(self, source: str):
        super().__init__(f"Failed to fetch {source} data", status_code=500)
        self.source = source


class RateLimitedError(DashboardError):
    code = "rate_limited"

    def __init__(self, headers: dict[str, str]):
        super().__init__("Rate limit exceeded. Please try again later.", status_code=429, headers=headers)


class AuthError(DashboardError):
    pass


class LockedOutError(AuthError):
    code = "locked_out"

    def __init__(self):
        # No remaining time in the message: it would help enumeration.
        super().__init__("Too many failed attempts. Try again later.", status_code=429)


class InvalidCredentialsError(AuthError):
    code = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid credentials", status_code=401)


class InvalidSessionError(AuthError):
    code = "invalid_or_expired_session"

    def __init__(self):
        super().__init__("Invalid or expired session", status_code=401)


class MissingInputError(AuthError):
    code = "missing_input"

    def __init__(self, message: str = "Missing adminKey or sessionToken"):
        super().__init__(message, status_code=400)


class ServerMisconfiguredError(AuthError):
    """Server-side secret is not configured. Logged, surfaced as a generic 500."""

    code = "internal_error"

    def __init__(self, detail: str):
        super().__init__("Server configuration error", status_code=500)
        self.detail = detail


def _error_body(exc: DashboardError) -> dict:
    message = str(exc)
    if exc.status_code >= 500 and settings.is_production:
        message = "Internal server error"
    return {"error": exc.code, "message": message}


def register_error_handlers(app: FastAPI) -> None:
    """Register centralized exception handlers on the FastAPI app."""

    @app.exception_handler(DashboardError)
    async def handle_dashboard_error(_request: Request, exc: DashboardError):
        if isinstance(exc, ServerMisconfiguredError):
            logger.error("Server misconfigured: %s", exc.detail)
        return JSONResponse(_error_body(exc), status_code=exc.status_code, headers=exc.headers)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, _exc: RequestValidationError):
        # Validation details can carry the submitted values, secrets included.
        return JSONResponse({"error": "bad_request", "message": "Invalid request body"}, status_code=400)

    @app.exception_handler(ValueError)
    async def handle_value_error(_request: Request, exc: ValueError):
        return JSONResponse({"error": "bad_request", "message": str(exc)}, status_code=400)

    @app.exception_handler(Exception)
    async def handle_unexpected(_request: Request, exc: Exception):
        logger.exception("Unhandled error: %s", exc)
        return JSONResponse(
            {"error": "internal_error", "message": "Internal server error"},
            status_code=500,
        )
