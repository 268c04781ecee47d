"""FastAPI integration: map the shared error taxonomy onto HTTP responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.exceptions import (
    ConcurrentModification,
    CredentialsMissing,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    StorefrontError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnavailable,
    ValidationError,
)

logger = structlog.get_logger(__name__)

_STATUS_BY_ERROR: list[tuple[type[StorefrontError], int]] = [
    (ValidationError, 400),
    (PermissionDenied, 403),
    (NotFound, 404),
    (InvalidTransition, 409),
    (ConcurrentModification, 409),
    (CredentialsMissing, 500),
    (UpstreamTimeout, 504),
    (UpstreamUnavailable, 502),
]


def status_for(exc: StorefrontError) -> int:
    """HTTP status for a domain error. Upstream errors echo the provider's status."""
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    if isinstance(exc, UpstreamError):
        if exc.status_code is not None and exc.status_code >= 400:
            return exc.status_code
        return 502
    return 500


def error_body(exc: StorefrontError) -> dict:
    return {"error": exc.message or type(exc).__name__, "details": exc.details}


async def _handle_storefront_error(request: Request, exc: StorefrontError) -> JSONResponse:
    status = status_for(exc)
    log = logger.warning if status < 500 else logger.error
    log(
        "request_failed",
        path=request.url.path,
        error=type(exc).__name__,
        status=status,
        message=str(exc),
    )
    return JSONResponse(status_code=status, content=error_body(exc))


async def _handle_request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    messages: dict[str, list[str]] = {}
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body") or "body"
        messages.setdefault(location, []).append(error.get("msg", "Invalid value"))
    return await _handle_storefront_error(request, ValidationError(messages))


def register_exception_handlers(app: FastAPI) -> None:
    """Install the domain-error handlers on an application (or a test app)."""
    app.add_exception_handler(StorefrontError, _handle_storefront_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation_error)
