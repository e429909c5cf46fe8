"""Custom exception hierarchy for the queue processor.

All application exceptions inherit from :class:`QueueProcessorError`,
which carries an optional ``provider_name`` identifying the collaborator
("embedding", "blob_store", "website", ...) that caused the failure, an
:class:`ErrorKind` used for retry decisions, and an HTTP status code used
by the API error middleware.

    QueueProcessorError  (base)
    +-- LockConflictError          (another worker holds the lock)     TRANSIENT
    +-- LockNotFoundError          (release of a missing lock)         PERMANENT
    +-- LockReleaseForbiddenError  (lockId / workerId mismatch)        PERMANENT
    +-- StateTransitionError       (write to a finished cycle)         PERMANENT
    +-- ProcessingFailedError      (generic pipeline stage failure)    UNKNOWN
    +-- BatchPartialFailureError   (majority of a sub-batch failed)    PERMANENT
    +-- UnsupportedQueueError      (no processor for a queue name)     PERMANENT
    +-- InvalidPayloadError        (malformed message body)            PERMANENT
    +-- ConfigurationError         (startup / missing config)          PERMANENT
    +-- ProviderUnavailableError   (collaborator down, 5xx, timeout)   TRANSIENT
    +-- RateLimitError             (collaborator rate limit, 429)      TRANSIENT
    +-- ProviderRejectedError      (collaborator refused request, 4xx) PERMANENT

Collaborators raise the typed errors so that :func:`is_retryable` can
decide structurally; message-pattern matching is kept only as the
fallback for foreign exceptions.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Iterable

import httpx

# Substrings that mark a foreign exception message as a transient failure.
DEFAULT_TRANSIENT_PATTERNS: tuple[str, ...] = (
    "timeout",
    "rate limit",
    "network",
    "503",
    "502",
)

WEBHOOK_TRANSIENT_PATTERNS: tuple[str, ...] = (*DEFAULT_TRANSIENT_PATTERNS, "429")


class ErrorKind(str, Enum):
    """Retry classification carried by every application error."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class QueueProcessorError(Exception):
    """Base exception for all queue processor errors.

    The ``__str__`` method prefixes the provider name in brackets for log
    scanning, e.g. ``[embedding] Rate limit exceeded``.
    """

    kind: ErrorKind = ErrorKind.UNKNOWN
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Coordination errors
# ---------------------------------------------------------------------------


class LockConflictError(QueueProcessorError):
    """Raised when a different worker holds an unexpired lock on the document.

    ``existing_lock`` is the holder summary (``workerId``, ``lockType``,
    ``expiresAt``) so the caller can decide when to try again.
    """

    kind = ErrorKind.TRANSIENT
    status_code = 409

    def __init__(
        self,
        message: str = "Document is locked by another worker",
        provider_name: str | None = None,
        existing_lock: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._existing_lock = existing_lock or {}

    @property
    def existing_lock(self) -> dict[str, Any]:
        return dict(self._existing_lock)


class LockNotFoundError(QueueProcessorError):
    """Raised when releasing a lock that has no stored record."""

    kind = ErrorKind.PERMANENT
    status_code = 404

    def __init__(
        self,
        message: str = "Lock not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class LockReleaseForbiddenError(QueueProcessorError):
    """Raised when the caller's ``lockId`` or ``workerId`` does not match the record."""

    kind = ErrorKind.PERMANENT
    status_code = 403

    def __init__(
        self,
        message: str = "Lock ID or worker ID mismatch",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class StateTransitionError(QueueProcessorError):
    """Raised when an update targets a terminal state of the same processing cycle."""

    kind = ErrorKind.PERMANENT
    status_code = 409

    def __init__(
        self,
        message: str = "Processing state is terminal",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Processing / dispatch errors
# ---------------------------------------------------------------------------


class ProcessingFailedError(QueueProcessorError):
    """Raised when a pipeline stage fails for a reason other than a typed collaborator error."""

    def __init__(
        self,
        message: str = "Document processing failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class BatchPartialFailureError(QueueProcessorError):
    """Raised when more than half of a reprocessing sub-batch failed."""

    kind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str = "Majority of sub-batch failed",
        provider_name: str | None = None,
        failed_ids: list[str] | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
        self._failed_ids = list(failed_ids or [])

    @property
    def failed_ids(self) -> list[str]:
        return list(self._failed_ids)


class UnsupportedQueueError(QueueProcessorError):
    """Raised by the dispatcher for a queue name it has no processor for."""

    kind = ErrorKind.PERMANENT
    status_code = 400

    def __init__(
        self,
        message: str = "Unsupported queue",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class InvalidPayloadError(QueueProcessorError):
    """Raised when a message body does not validate against its payload model."""

    kind = ErrorKind.PERMANENT
    status_code = 422

    def __init__(
        self,
        message: str = "Invalid message payload",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(QueueProcessorError):
    """Raised when configuration is invalid or missing at startup."""

    kind = ErrorKind.PERMANENT

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External collaborator errors
# ---------------------------------------------------------------------------


class ProviderUnavailableError(QueueProcessorError):
    """Raised when a collaborator is unreachable, times out or answers 5xx."""

    kind = ErrorKind.TRANSIENT
    status_code = 503

    def __init__(
        self,
        message: str = "External service is unavailable",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RateLimitError(QueueProcessorError):
    """Raised when a collaborator's rate limit is exceeded."""

    kind = ErrorKind.TRANSIENT
    status_code = 503

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ProviderRejectedError(QueueProcessorError):
    """Raised when a collaborator refuses the request (4xx other than 429)."""

    kind = ErrorKind.PERMANENT
    status_code = 502

    def __init__(
        self,
        message: str = "External service rejected the request",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


def classify_error(
    exc: BaseException,
    patterns: Iterable[str] = DEFAULT_TRANSIENT_PATTERNS,
) -> ErrorKind:
    """Return the retry classification for *exc*.

    Typed application errors decide for themselves; httpx transport and
    timeout failures are transient; anything else is transient only when
    its message contains one of *patterns* (case-insensitive) and
    permanent otherwise.
    """
    if isinstance(exc, QueueProcessorError) and exc.kind is not ErrorKind.UNKNOWN:
        return exc.kind
    if isinstance(exc, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, TimeoutError):
        return ErrorKind.TRANSIENT

    message = str(exc).lower()
    if any(pattern in message for pattern in patterns):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


def is_retryable(
    exc: BaseException,
    patterns: Iterable[str] = DEFAULT_TRANSIENT_PATTERNS,
) -> bool:
    """Whether a failure caused by *exc* is worth redelivering."""
    return classify_error(exc, patterns) is ErrorKind.TRANSIENT

