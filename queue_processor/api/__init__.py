"""HTTP layer: routes, schemas and middleware."""

from queue_processor.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from queue_processor.api.routes import coordinator_router, router
from queue_processor.api.schemas import (
    AcquireLockRequest,
    DeduplicateRequest,
    ErrorResponse,
    HealthResponse,
    PushBatchRequest,
    ReleaseLockRequest,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "configure_cors",
    "coordinator_router",
    "router",
    "AcquireLockRequest",
    "DeduplicateRequest",
    "ErrorResponse",
    "HealthResponse",
    "PushBatchRequest",
    "ReleaseLockRequest",
]
