"""Unit tests for the exception hierarchy and retry classification."""

from __future__ import annotations

import httpx
import pytest

from queue_processor.utils.errors import (
    DEFAULT_TRANSIENT_PATTERNS,
    WEBHOOK_TRANSIENT_PATTERNS,
    ErrorKind,
    LockConflictError,
    LockNotFoundError,
    ProcessingFailedError,
    ProviderRejectedError,
    ProviderUnavailableError,
    QueueProcessorError,
    RateLimitError,
    classify_error,
    is_retryable,
)


class TestQueueProcessorError:
    def test_str_prefixes_provider_name(self) -> None:
        assert str(ProviderUnavailableError("down", provider_name="embedding")) == "[embedding] down"

    def test_str_without_provider(self) -> None:
        assert str(QueueProcessorError("plain")) == "plain"

    def test_status_codes(self) -> None:
        assert LockConflictError().status_code == 409
        assert LockNotFoundError().status_code == 404
        assert ProviderUnavailableError().status_code == 503

    def test_conflict_exposes_a_copy_of_the_holder(self) -> None:
        exc = LockConflictError(existing_lock={"workerId": "w1"})
        exc.existing_lock["workerId"] = "tampered"
        assert exc.existing_lock == {"workerId": "w1"}


class TestClassifyError:
    @pytest.mark.parametrize(
        "exc",
        [ProviderUnavailableError(), RateLimitError(), LockConflictError()],
    )
    def test_typed_transient_errors(self, exc: Exception) -> None:
        assert classify_error(exc) is ErrorKind.TRANSIENT

    def test_typed_permanent_error_ignores_message_patterns(self) -> None:
        assert classify_error(ProviderRejectedError("timeout in request body")) is ErrorKind.PERMANENT

    def test_httpx_transport_errors_are_transient(self) -> None:
        assert is_retryable(httpx.ConnectError("refused"))
        assert is_retryable(httpx.ReadTimeout("slow"))

    @pytest.mark.parametrize("message", ["Request Timeout", "rate limit hit", "Network unreachable", "HTTP 503", "502 bad gateway"])
    def test_foreign_errors_matching_patterns_are_transient(self, message: str) -> None:
        assert is_retryable(RuntimeError(message), DEFAULT_TRANSIENT_PATTERNS)

    def test_foreign_errors_without_pattern_are_permanent(self) -> None:
        assert not is_retryable(ValueError("malformed document"))

    def test_unknown_kind_falls_back_to_patterns(self) -> None:
        assert is_retryable(ProcessingFailedError("upstream timeout"))
        assert not is_retryable(ProcessingFailedError("no chunks"))

    def test_webhook_patterns_include_429(self) -> None:
        assert not is_retryable(RuntimeError("status 429"), DEFAULT_TRANSIENT_PATTERNS)
        assert is_retryable(RuntimeError("status 429"), WEBHOOK_TRANSIENT_PATTERNS)
