"""Global exception handlers for the HTTP API.

Every failure is rendered as ``{"success": false, "message": ...}``:
- EventThreadsError -> status by error kind, message passed through verbatim
- RequestValidationError -> 400 with per-field details
- Exception (catch-all) -> 500, never leaks internal details
"""

from typing import Dict, Type

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from ..exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    EventThreadsError,
    NotFoundError,
    ValidationError,
)

logger = structlog.get_logger()

ERROR_STATUS: Dict[Type[EventThreadsError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ConflictError: status.HTTP_409_CONFLICT,
}


def status_for(exc: EventThreadsError) -> int:
    """Map an error to its HTTP status via the most specific known kind."""
    for klass in type(exc).__mro__:
        if klass in ERROR_STATUS:
            return ERROR_STATUS[klass]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def failure(message: str, status_code: int, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, **extra},
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register all global error handlers on the FastAPI app."""

    @app.exception_handler(EventThreadsError)
    async def domain_error_handler(request: Request, exc: EventThreadsError):
        status_code = status_for(exc)
        if status_code >= 500:
            logger.error(
                "Internal error", path=request.url.path, error=str(exc), exc_info=exc
            )
            return failure("An unexpected error occurred", status_code)

        logger.info(
            "Request rejected",
            path=request.url.path,
            error_type=type(exc).__name__,
            error=str(exc),
            status_code=status_code,
        )
        return failure(str(exc), status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.info(
            "Request body validation failed",
            path=request.url.path,
            errors=exc.errors(),
        )
        return failure(
            "Invalid request data",
            status.HTTP_400_BAD_REQUEST,
            details=[
                {
                    "field": ".".join(str(loc) for loc in error["loc"]),
                    "message": error["msg"],
                }
                for error in exc.errors()
            ],
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error(
            "Unhandled exception", path=request.url.path, error=str(exc), exc_info=exc
        )
        return failure(
            "An unexpected error occurred", status.HTTP_500_INTERNAL_SERVER_ERROR
        )
