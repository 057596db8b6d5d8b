"""
Global exception handlers
"""

import logging
from decimal import Decimal
from typing import Any, Dict
from fastapi import Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from escrow_core.services.errors import EscrowError, DependencyUnavailableError
from escrow_core.utils.trace_id import get_trace_id

logger = logging.getLogger(__name__)


def _error_body(code: str, message: str, trace_id, **extra) -> Dict[str, Any]:
    body: Dict[str, Any] = {"code": code, "message": message, "trace_id": trace_id}
    body.update(extra)
    return {"error": body}


async def escrow_exception_handler(request: Request, exc: EscrowError) -> JSONResponse:
    """Handle domain errors raised by the escrow services"""
    trace_id = get_trace_id(request)

    log = logger.warning if exc.http_status >= 500 else logger.info
    log(
        "Escrow operation rejected",
        extra={"error_code": exc.code, "error_message": exc.message, "path": request.url.path},
    )

    return JSONResponse(
        status_code=exc.http_status,
        content=_error_body(exc.code, exc.message, trace_id),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle HTTP exceptions"""
    trace_id = get_trace_id(request)

    # If detail is already a dict with "error" key, use it directly (preserving custom codes)
    if isinstance(exc.detail, dict) and "error" in exc.detail:
        error_response: Dict[str, Any] = {"error": dict(exc.detail["error"])}
        if not error_response["error"].get("trace_id"):
            error_response["error"]["trace_id"] = trace_id
    else:
        error_response = _error_body(
            f"HTTP_{exc.status_code}",
            exc.detail if isinstance(exc.detail, str) else str(exc.detail),
            trace_id,
        )

    return JSONResponse(
        status_code=exc.status_code,
        content=error_response,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle validation exceptions"""
    trace_id = get_trace_id(request)

    def convert_non_serializable(obj):
        """Recursively convert non-JSON-serializable objects to strings"""
        if isinstance(obj, (Decimal, Exception)):
            return str(obj)
        elif isinstance(obj, dict):
            return {key: convert_non_serializable(value) for key, value in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [convert_non_serializable(item) for item in obj]
        elif isinstance(obj, type):
            return str(obj)
        return obj

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            "VALIDATION_ERROR",
            "Request validation failed",
            trace_id,
            details=convert_non_serializable(exc.errors()),
        ),
    )


async def operational_error_handler(request: Request, exc: OperationalError) -> JSONResponse:
    """Persistence unreachable during a request - surfaced, never skipped"""
    trace_id = get_trace_id(request)
    logger.error("Database unavailable", exc_info=exc, extra={"path": request.url.path})

    unavailable = DependencyUnavailableError("Database is unavailable")
    return JSONResponse(
        status_code=unavailable.http_status,
        content=_error_body(unavailable.code, unavailable.message, trace_id),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle general exceptions"""
    trace_id = get_trace_id(request)

    # Log the actual exception (don't expose details)
    logger.exception("Unhandled exception", exc_info=exc, extra={"path": request.url.path})

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("INTERNAL_ERROR", "An internal error occurred", trace_id),
    )
