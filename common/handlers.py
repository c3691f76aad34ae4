"""Exception handlers shared by every service app."""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from .errors import (
    ConflictError,
    DomainError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    PersistenceError,
)

logger = logging.getLogger(__name__)


def status_for(exc: DomainError) -> int:
    """Map a domain error onto the HTTP status code callers receive."""
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, InvalidRangeError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (ConflictError, InvalidTransitionError)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, PersistenceError):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _error_body(service_name: str, request: Request, status_code: int, detail, code=None) -> dict:
    body = {
        "service": service_name,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "detail": detail,
    }
    if code is not None:
        body["code"] = code
    return body


def register_exception_handlers(app: FastAPI, service_name: str) -> None:
    """Attach the domain, HTTP and catch-all handlers to a service app."""

    @app.exception_handler(DomainError)
    async def domain_exception_handler(request: Request, exc: DomainError):
        status_code = status_for(exc)
        return JSONResponse(
            status_code=status_code,
            content=_error_body(service_name, request, status_code, exc.message, exc.code.value),
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(service_name, request, exc.status_code, exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content=_error_body(service_name, request, 500, "Internal server error"),
        )
