"""Unit tests for BatchDispatcher: routing, validation and per-message settlement."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from queue_processor.dispatch.dispatcher import BatchDispatcher, default_processors
from queue_processor.dispatch.queues import (
    BATCH_REPROCESSING_QUEUE,
    DOCUMENT_INGESTION_QUEUE,
    WEBHOOK_PROCESSING_QUEUE,
)
from queue_processor.dispatch.transport import DeliveredMessage, Disposition, MessageBatch
from queue_processor.models.messages import MessageType, QueueMessage
from queue_processor.models.results import ErrorCode, ProcessingResult
from queue_processor.processors import (
    BatchReprocessProcessor,
    DocumentLifecycleProcessor,
    DocumentProcessor,
    WebhookProcessor,
)
from queue_processor.utils.errors import UnsupportedQueueError

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _batch(queue: str, bodies: list, attempts: int = 1) -> MessageBatch:
    return MessageBatch(
        queue,
        [DeliveredMessage(f"m{i}", body, attempts=attempts) for i, body in enumerate(bodies)],
    )


def _ok(message: QueueMessage) -> ProcessingResult:
    return ProcessingResult(success=True, message_id=message.message_id)


def _fake_processor(side_effect) -> AsyncMock:
    processor = AsyncMock()
    processor.process = AsyncMock(side_effect=side_effect)
    return processor


def _dispositions(batch: MessageBatch) -> list[Disposition]:
    return [m.disposition for m in batch.messages]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


class TestDefaultProcessors:
    def test_every_message_type_has_a_processor(self, ctx) -> None:
        registry = default_processors(ctx)

        assert set(registry) == set(MessageType)
        assert isinstance(registry[MessageType.DOCUMENT_INGESTION], DocumentProcessor)
        assert isinstance(registry[MessageType.DOCUMENT_UPDATE], DocumentLifecycleProcessor)
        assert isinstance(registry[MessageType.DOCUMENT_DELETE], DocumentLifecycleProcessor)
        assert isinstance(registry[MessageType.WEBHOOK_SYNC], WebhookProcessor)
        assert isinstance(registry[MessageType.BATCH_REPROCESS], BatchReprocessProcessor)


class TestSettlement:
    """Each message is settled on its own outcome; one failure never touches the rest."""

    @pytest.mark.asyncio
    async def test_one_raising_message_is_retried_and_the_rest_acked(self, ctx, make_ingestion_body) -> None:
        async def _process(message: QueueMessage) -> ProcessingResult:
            if message.payload.document.id == "doc-3":
                raise RuntimeError("exploded")
            return _ok(message)

        processor = _fake_processor(_process)
        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: processor})
        batch = _batch(DOCUMENT_INGESTION_QUEUE, [make_ingestion_body(f"doc-{i}", "x") for i in range(10)])

        result = await dispatcher.dispatch(batch)

        assert result.total_messages == 10
        assert result.success_count == 9
        assert result.failure_count == 1
        assert result.success_count + result.failure_count == result.total_messages
        assert _dispositions(batch).count(Disposition.ACK) == 9
        assert batch.messages[3].disposition is Disposition.RETRY
        assert result.results[3].error.code is ErrorCode.UNHANDLED_EXCEPTION
        assert result.errors[0].message_id == "m3"
        assert result.errors[0].retryable is True

    @pytest.mark.asyncio
    async def test_retryable_failure_requests_redelivery(self, ctx, make_ingestion_body) -> None:
        async def _process(message: QueueMessage) -> ProcessingResult:
            return ProcessingResult.failure(
                message.message_id, ErrorCode.PROCESSING_FAILED, "network down", retryable=True
            )

        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: _fake_processor(_process)})
        batch = _batch(DOCUMENT_INGESTION_QUEUE, [make_ingestion_body("doc-1", "x")])

        await dispatcher.dispatch(batch)

        assert batch.messages[0].disposition is Disposition.RETRY
        assert batch.messages[0].reason == "network down"

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_acknowledged(self, ctx, make_ingestion_body) -> None:
        async def _process(message: QueueMessage) -> ProcessingResult:
            return ProcessingResult.failure(
                message.message_id, ErrorCode.PROCESSING_FAILED, "bad document", retryable=False
            )

        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: _fake_processor(_process)})
        batch = _batch(DOCUMENT_INGESTION_QUEUE, [make_ingestion_body("doc-1", "x")])

        result = await dispatcher.dispatch(batch)

        assert batch.messages[0].disposition is Disposition.ACK
        assert result.failure_count == 1
        assert result.errors[0].retryable is False

    @pytest.mark.asyncio
    async def test_empty_batch_completes(self, dispatcher) -> None:
        result = await dispatcher.dispatch(MessageBatch(DOCUMENT_INGESTION_QUEUE, []))
        assert result.total_messages == 0
        assert result.success_rate == 1.0

    @pytest.mark.asyncio
    async def test_batch_metric_is_recorded(self, ctx, make_ingestion_body) -> None:
        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: _fake_processor(_ok)})

        await dispatcher.dispatch(_batch(DOCUMENT_INGESTION_QUEUE, [make_ingestion_body("doc-1", "x")]))

        series = ctx.metrics.get("batch_processing_time")
        assert series is not None
        assert series.last_tags["queue_type"] == DOCUMENT_INGESTION_QUEUE
        assert series.last_tags["success_rate"] == "1.00"


class TestValidation:
    @pytest.mark.asyncio
    async def test_unknown_queue_acks_everything_and_raises(self, dispatcher) -> None:
        batch = _batch("mystery-queue", [{"type": "document_ingestion"}, {}])

        with pytest.raises(UnsupportedQueueError):
            await dispatcher.dispatch(batch)

        assert _dispositions(batch) == [Disposition.ACK, Disposition.ACK]

    @pytest.mark.asyncio
    async def test_invalid_payload_is_acked_without_calling_processor(self, ctx) -> None:
        processor = _fake_processor(_ok)
        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: processor})
        batch = _batch(DOCUMENT_INGESTION_QUEUE, [{"type": "document_ingestion", "document": {"id": "d"}}])

        result = await dispatcher.dispatch(batch)

        assert result.results[0].error.code is ErrorCode.INVALID_PAYLOAD
        assert batch.messages[0].disposition is Disposition.ACK
        processor.process.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_object_body_is_invalid(self, dispatcher) -> None:
        batch = _batch(DOCUMENT_INGESTION_QUEUE, ["just a string"])

        result = await dispatcher.dispatch(batch)

        assert result.results[0].error.code is ErrorCode.INVALID_PAYLOAD
        assert batch.messages[0].disposition is Disposition.ACK

    @pytest.mark.asyncio
    async def test_type_not_accepted_on_queue_is_unsupported(self, dispatcher) -> None:
        body = {"type": "batch_reprocess", "documentIds": ["d1"], "reason": "manual_reindex"}
        batch = _batch(DOCUMENT_INGESTION_QUEUE, [body])

        result = await dispatcher.dispatch(batch)

        assert result.results[0].error.code is ErrorCode.UNSUPPORTED_MESSAGE_TYPE
        assert batch.messages[0].disposition is Disposition.ACK

    @pytest.mark.asyncio
    async def test_missing_type_defaults_to_queue_primary_type(self, ctx, make_ingestion_body) -> None:
        processor = _fake_processor(_ok)
        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: processor})
        body = make_ingestion_body("doc-1", "hello")
        del body["type"]

        result = await dispatcher.dispatch(_batch(DOCUMENT_INGESTION_QUEUE, [body]))

        assert result.success_count == 1
        message = processor.process.await_args.args[0]
        assert message.type is MessageType.DOCUMENT_INGESTION

    @pytest.mark.asyncio
    async def test_envelope_carries_attempts_and_queue_retry_budget(self, ctx, make_ingestion_body) -> None:
        processor = _fake_processor(_ok)
        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: processor})

        await dispatcher.dispatch(_batch(DOCUMENT_INGESTION_QUEUE, [make_ingestion_body("doc-1", "x")], attempts=2))

        metadata = processor.process.await_args.args[0].metadata
        assert metadata.retry_count == 2
        assert metadata.max_retries == 3
        assert metadata.correlation_id == "m0"
        assert metadata.priority.value == "medium"


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_batch_queue_runs_strictly_sequentially(self, ctx) -> None:
        active = 0
        peak = 0

        async def _process(message: QueueMessage) -> ProcessingResult:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1
            return _ok(message)

        dispatcher = BatchDispatcher(ctx, processors={MessageType.BATCH_REPROCESS: _fake_processor(_process)})
        bodies = [{"type": "batch_reprocess", "documentIds": [f"d{i}"], "reason": "manual_reindex"} for i in range(4)]

        result = await dispatcher.dispatch(_batch(BATCH_REPROCESSING_QUEUE, bodies))

        assert result.success_count == 4
        assert peak == 1

    @pytest.mark.asyncio
    async def test_ingestion_queue_caps_in_flight_messages(self, ctx, make_ingestion_body) -> None:
        active = 0
        peak = 0

        async def _process(message: QueueMessage) -> ProcessingResult:
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0)
            active -= 1
            return _ok(message)

        dispatcher = BatchDispatcher(ctx, processors={MessageType.DOCUMENT_INGESTION: _fake_processor(_process)})
        bodies = [make_ingestion_body(f"doc-{i}", "x") for i in range(10)]

        await dispatcher.dispatch(_batch(DOCUMENT_INGESTION_QUEUE, bodies))

        assert peak == 5

    def test_webhook_queue_accepts_only_webhooks(self, dispatcher) -> None:
        config = dispatcher.queue_config(WEBHOOK_PROCESSING_QUEUE)
        assert config.accepts(MessageType.WEBHOOK_SYNC)
        assert not config.accepts(MessageType.DOCUMENT_INGESTION)
        assert config.group_size == 10
