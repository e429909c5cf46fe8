"""Request/response schemas for the coordinator and service endpoints.

All bodies use camelCase on the wire (``documentId``, ``ttlSeconds``);
snake_case is accepted on input as well.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from queue_processor.models.coordination import LockType
from queue_processor.models.wire import WireModel
from queue_processor.utils.text import content_hash


class AcquireLockRequest(WireModel):
    document_id: str = Field(min_length=1)
    worker_id: str = Field(min_length=1)
    lock_type: LockType = LockType.PROCESSING
    ttl_seconds: int = Field(default=300, ge=1)
    metadata: dict[str, Any] | None = None


class ReleaseLockRequest(WireModel):
    document_id: str = Field(min_length=1)
    lock_id: str = Field(min_length=1)
    worker_id: str = Field(min_length=1)


class DeduplicateRequest(WireModel):
    """Either ``contentHash`` or the raw ``content`` to hash must be supplied."""

    document_id: str = Field(min_length=1)
    content_hash: str | None = None
    content: str | None = None

    @model_validator(mode="after")
    def _hash_or_content(self) -> "DeduplicateRequest":
        if self.content_hash is None and self.content is None:
            raise ValueError("contentHash or content is required")
        return self

    def resolved_hash(self) -> str:
        if self.content_hash is not None:
            return self.content_hash
        return content_hash(self.content or "")


class PushedMessage(WireModel):
    """One message delivered by a push-style transport."""

    id: str = Field(min_length=1)
    body: Any
    attempts: int = Field(default=1, ge=1)


class PushBatchRequest(WireModel):
    messages: list[PushedMessage] = Field(default_factory=list)


class MessageDisposition(WireModel):
    id: str
    disposition: str
    reason: str | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    timestamp: str
    worker: str
    version: str
    providers: dict[str, Any] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    """Standard error response body."""

    success: bool = False
    error: str
    detail: str | None = None
