"""API middleware: CORS, request logging and error translation.

Middleware is a stack (last added, first executed)::

    app.add_middleware(ErrorHandlingMiddleware)    # inner
    app.add_middleware(RequestLoggingMiddleware)   # outer

    Client → RequestLogging → ErrorHandling → route handler

so the request log records the status code produced after an error was
turned into a JSON response.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from queue_processor.api.schemas import ErrorResponse
from queue_processor.utils.errors import LockConflictError, QueueProcessorError
from queue_processor.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; all origins are allowed unless *allowed_origins* is given."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = response.status_code if response else 500
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=status_code,
                duration_ms=duration_ms,
            )


def error_response(exc: QueueProcessorError) -> JSONResponse:
    """Translate an application error into its JSON response.

    The status code comes from the error class; a lock conflict also
    reports the current holder as ``existingLock``.
    """
    body = ErrorResponse(error=exc.message, detail=type(exc).__name__).model_dump()
    if isinstance(exc, LockConflictError):
        body["existingLock"] = exc.existing_lock
    return JSONResponse(status_code=exc.status_code, content=body)


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Catch ``QueueProcessorError`` subclasses and return structured JSON errors.

    Stack traces stay in the server log; the client sees the error message
    and class name only.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except QueueProcessorError as exc:
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            return error_response(exc)
