"""
Error types raised by the services and the handlers that render them.

Every failure reaches the client in one envelope:

    {"error": {"code": "ALERT_NOT_FOUND", "message": "...", "status": 404,
               "details": {...}}}

Services raise the typed errors below and never build responses themselves.
Each class carries its HTTP status and default code; callers override the
code where the API distinguishes cases (``ALERT_NOT_FOUND`` vs ``NOT_FOUND``,
``UNAUTHORIZED`` vs ``ACCESS_DENIED``).
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sereno.app.core.config import settings

logger = logging.getLogger(__name__)


class SerenoAPIError(Exception):
    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}


# ── 400 ──────────────────────────────────────────────────────────────────

class ValidationError(SerenoAPIError):
    status_code = 400
    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class ConflictError(SerenoAPIError):
    """The alert is not in a state that allows the operation."""

    status_code = 400

    def __init__(self, message: str, *, error_code: str, **details: Any):
        super().__init__(message, error_code=error_code, details=details)


class AlreadyActiveError(ConflictError):
    def __init__(self, owner_user_id: str):
        super().__init__(
            "An emergency alert is already active",
            error_code="ALREADY_ACTIVE", owner_user_id=owner_user_id,
        )


class AlertNotActiveError(ConflictError):
    def __init__(self, alert_id: str):
        super().__init__(
            "Emergency alert is no longer active",
            error_code="ALERT_NOT_ACTIVE", alert_id=alert_id,
        )


# ── 401 / 403 / 404 ──────────────────────────────────────────────────────

class AuthenticationError(SerenoAPIError):
    status_code = 401
    error_code = "AUTHENTICATION_REQUIRED"

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class AuthorizationError(SerenoAPIError):
    """Authenticated, but the caller's role or relation to the alert forbids it."""

    status_code = 403
    error_code = "UNAUTHORIZED"

    def __init__(self, message: str, *, error_code: Optional[str] = None, **details: Any):
        super().__init__(message, error_code=error_code, details=details)


class NotFoundError(SerenoAPIError):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, *, error_code: Optional[str] = None, **identifiers: Any):
        super().__init__(
            f"{resource} not found",
            error_code=error_code,
            details={"resource": resource, **identifiers},
        )


# ── 5xx ──────────────────────────────────────────────────────────────────

class ConfigurationError(SerenoAPIError):
    error_code = "CONFIGURATION_ERROR"

    def __init__(self, setting: str, message: str = ""):
        super().__init__(
            message or f"Setting '{setting}' is not configured",
            details={"setting": setting},
        )


class ExternalServiceError(SerenoAPIError):
    """The chat service or another upstream returned an error."""

    status_code = 502
    error_code = "EXTERNAL_SERVICE_ERROR"

    def __init__(self, service: str, message: str = "", **details: Any):
        super().__init__(
            f"External service '{service}' failed: {message}",
            details={"service": service, **details},
        )


def _error_body(
    request: Request,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message, "status": status_code}
    if details:
        error["details"] = details
    if not settings.is_production:
        error["path"] = request.url.path
        error["method"] = request.method
    return JSONResponse(status_code=status_code, content={"error": error})


def _field_errors(exc: RequestValidationError) -> list:
    return [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]


def register_error_handlers(app: FastAPI) -> None:
    """Install the handlers that turn exceptions into the error envelope."""

    @app.exception_handler(SerenoAPIError)
    async def on_api_error(request: Request, exc: SerenoAPIError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(level, "%s %s -> %s: %s", request.method, request.url.path,
                   exc.error_code, exc.message)
        return _error_body(request, exc.status_code, exc.error_code, exc.message, exc.details)

    # malformed bodies are a 400 like every other validation failure
    @app.exception_handler(RequestValidationError)
    async def on_request_validation(request: Request, exc: RequestValidationError):
        errors = _field_errors(exc)
        logger.warning("Rejected request body on %s: %s", request.url.path, errors)
        return _error_body(request, 400, "VALIDATION_ERROR", "Invalid request data",
                           {"errors": errors})

    @app.exception_handler(ValueError)
    async def on_value_error(request: Request, exc: ValueError):
        logger.warning("Invalid value on %s: %s", request.url.path, exc)
        return _error_body(request, 400, "VALIDATION_ERROR", str(exc))

    @app.exception_handler(Exception)
    async def on_unhandled(request: Request, exc: Exception):
        logger.critical("Unhandled error on %s", request.url.path, exc_info=exc)
        if settings.DEBUG:
            return _error_body(request, 500, "INTERNAL_ERROR", str(exc),
                               {"traceback": traceback.format_exception(exc)})
        return _error_body(request, 500, "INTERNAL_ERROR", "Internal server error")
