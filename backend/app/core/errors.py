"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes
    • The relay's JSON error body: {success: false, message, error: {...}}
    • Automatic logging of unhandled errors

Usage:
    from backend.app.core.errors import (
        SafetyAPIError,
        NotFoundError,
        EmptyFacilitySetError,
        ChannelUnavailableError,
        register_error_handlers,
    )

    raise NotFoundError("Alert", id="alert_1758500000000_k3j9x0a1b")
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.app.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SafetyAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class NotFoundError(SafetyAPIError):
    """Resource not found (404). Non-fatal: the caller's state is unchanged."""

    def __init__(self, resource: str, **identifiers: Any):
        details = {"resource": resource, **identifiers}
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details=details,
        )


class ValidationError(SafetyAPIError):
    """Input validation failed (422)."""

    def __init__(self, message: str, *, field: Optional[str] = None, **details: Any):
        d = {**details}
        if field:
            d["field"] = field
        super().__init__(
            message=message,
            status_code=422,
            error_code="VALIDATION_ERROR",
            details=d,
        )


class EmptyFacilitySetError(SafetyAPIError):
    """Nearest-facility resolution was asked to choose from nothing (422)."""

    def __init__(self, kind: str = "facility"):
        super().__init__(
            message=f"Cannot resolve nearest {kind}: facility set is empty",
            status_code=422,
            error_code="EMPTY_FACILITY_SET",
            details={"kind": kind},
        )


class ChannelUnavailableError(SafetyAPIError):
    """The primary broadcast channel is not usable in this runtime (503)."""

    def __init__(self, channel: str, message: str = "channel unavailable"):
        super().__init__(
            message=f"Broadcast channel '{channel}': {message}",
            status_code=503,
            error_code="CHANNEL_UNAVAILABLE",
            details={"channel": channel},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build the relay's structured failure body."""
    body: Dict[str, Any] = {
        "success": False,
        "message": message,
        "error": {
            "code": error_code,
            "status": status_code,
        },
    }

    if details:
        body["error"]["details"] = details

    # Include request path in non-production
    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SafetyAPIError)
    async def handle_safety_error(request: Request, exc: SafetyAPIError):
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning("Request validation failed: %s", exc.errors())
        return _build_error_response(
            422, "VALIDATION_ERROR", "Invalid request body",
            {"errors": jsonable_encoder(exc.errors())}, request,
        )

    @app.exception_handler(ValueError)
    async def handle_value_error(request: Request, exc: ValueError):
        logger.warning("ValueError: %s", exc)
        return _build_error_response(
            422, "VALIDATION_ERROR", str(exc), request=request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Error processing request"
        details = (
            {"traceback": traceback.format_exc().split("\n")}
            if settings.DEBUG else None
        )
        return _build_error_response(
            500, "INTERNAL_ERROR", message, details, request,
        )
