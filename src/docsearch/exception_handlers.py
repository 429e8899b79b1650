"""Exception handlers producing one JSON error shape for every failure.

Error response format:

    {
        "error": {
            "status_code": 400,
            "message": "Invalid search request",
            "type": "Bad Request",
            "details": {"errors": [...]}
        }
    }
"""

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from docsearch.errors import SearchError

logger = structlog.get_logger()

_ERROR_TYPES = {
    400: "Bad Request",
    401: "Unauthorized",
    404: "Not Found",
    405: "Method Not Allowed",
    422: "Validation Error",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


def create_error_response(
    status_code: int, message: str, details: dict[str, Any] | None = None
) -> JSONResponse:
    """Build the standard error envelope.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        details: Optional structured context.

    Returns:
        JSONResponse with the error envelope.
    """
    error: dict[str, Any] = {
        "status_code": status_code,
        "message": message,
        "type": _ERROR_TYPES.get(status_code, "Error"),
    }
    if details:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"error": error})


async def search_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render a SearchError with its own status code and details."""
    assert isinstance(exc, SearchError)
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "search_error_response",
        error_type=type(exc).__name__,
        status=exc.status_code,
        path=request.url.path,
        message=exc.message,
    )
    return create_error_response(exc.status_code, exc.message, exc.details or None)


async def validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render FastAPI request validation failures."""
    assert isinstance(exc, RequestValidationError)
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    return create_error_response(422, "Request validation failed", {"errors": errors})


async def http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render HTTPException raised by routes or routing itself."""
    assert isinstance(exc, StarletteHTTPException)
    return create_error_response(exc.status_code, str(exc.detail))


def register_exception_handlers(app: FastAPI) -> None:
    """Attach every handler to the application.

    Args:
        app: FastAPI application instance.
    """
    app.add_exception_handler(SearchError, search_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
