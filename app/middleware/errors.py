"""Error handling middleware."""

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
    HTTP_500_INTERNAL_SERVER_ERROR,
)

from app.core.logging import get_logger
from app.llm.errors import NoteNotClaimableError, NoteNotFoundError, ValidationError

logger = get_logger(module="errors")

# Map exception types to status codes (None means use exception's status_code).
# Lookup walks the exception's MRO, so the most specific entry wins.
ErrorMapping = dict[type[Exception], int | None]

ERROR_MAPPING: ErrorMapping = {
    StarletteHTTPException: None,
    RequestValidationError: HTTP_422_UNPROCESSABLE_ENTITY,
    NoteNotFoundError: HTTP_404_NOT_FOUND,
    NoteNotClaimableError: HTTP_409_CONFLICT,
    ValidationError: HTTP_400_BAD_REQUEST,
    KeyError: HTTP_404_NOT_FOUND,
    ValueError: HTTP_400_BAD_REQUEST,
}


def _status_for(exc: Exception) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_MAPPING:
            mapped = ERROR_MAPPING[cls]
            if mapped is None and isinstance(exc, StarletteHTTPException):
                return exc.status_code
            if mapped is not None:
                return mapped
    return HTTP_500_INTERNAL_SERVER_ERROR


def _detail_for(exc: Exception, status_code: int) -> str:
    if isinstance(exc, StarletteHTTPException):
        return str(exc.detail)
    if isinstance(exc, RequestValidationError):
        return "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()
        )
    if status_code == HTTP_500_INTERNAL_SERVER_ERROR:
        return "Internal Server Error"
    if isinstance(exc, KeyError):
        return f"'{exc.args[0]}'" if exc.args else str(exc)
    return str(exc.args[0] if exc.args else str(exc))


def error_response(request: Request, exc: Exception) -> JSONResponse:
    """Build the JSON error envelope for ``exc`` and log it."""
    status_code = _status_for(exc)
    error_type = exc.__class__.__name__
    detail = _detail_for(exc, status_code)
    correlation_id = getattr(request.state, "correlation_id", None)

    log = logger.error if status_code >= HTTP_500_INTERNAL_SERVER_ERROR else logger.warning
    log(
        "request_error",
        error_type=error_type,
        error_message=str(exc),
        status_code=status_code,
        path=request.url.path,
        method=request.method,
        correlation_id=correlation_id,
    )

    response = JSONResponse(
        status_code=status_code,
        content={
            "error": error_type,
            "message": detail,
            "status_code": status_code,
            "correlation_id": correlation_id if correlation_id else "unknown",
        },
        media_type="application/json",
    )
    if correlation_id:
        response.headers["X-Request-ID"] = correlation_id
    return response


async def handle_exception(request: Request, exc: Exception) -> JSONResponse:
    """Exception handler returning the JSON error envelope."""
    return error_response(request, exc)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the JSON envelope handler for every mapped exception type."""
    for exc_type in ERROR_MAPPING:
        app.add_exception_handler(exc_type, handle_exception)
    app.add_exception_handler(HTTPException, handle_exception)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turns exceptions that escape the routers into JSON error responses."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        """
        Process the request/response cycle and handle errors.

        Args:
        ----
            request: The incoming request
            call_next: The next handler in the middleware chain

        Returns:
        -------
            The response from downstream handlers or error response
        """
        try:
            return await call_next(request)
        except Exception as exc:
            return error_response(request, exc)
