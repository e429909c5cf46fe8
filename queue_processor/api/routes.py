"""FastAPI routes for the queue processor.

Endpoint                              Method  Description
────────────────────────────────────  ──────  ─────────────────────────────────
/                                     GET     Service info, endpoints, queues
/health                               GET     Health check + provider names
/metrics                              GET     Metric series, queue depth
/admin/cleanup                        POST    Run coordinator cleanup now
/queues/{queueName}/batch             POST    Push a delivered batch to the dispatcher
/coordinator/acquire-lock             POST    Acquire or extend a document lock
/coordinator/release-lock             POST    Release a lock (lockId + workerId)
/coordinator/check-lock?documentId=   GET     Is the document locked?
/coordinator/update-state             POST    Merge a partial processing state
/coordinator/get-state?documentId=    GET     Current processing state
/coordinator/deduplicate              POST    Claim a content hash
/coordinator/cleanup                  POST    Reap expired locks and old states

Dependencies are read from ``app.state`` (populated by the lifespan in
``main.py``) through ``Annotated[..., Depends(...)]`` aliases.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from queue_processor.api.schemas import (
    AcquireLockRequest,
    DeduplicateRequest,
    HealthResponse,
    MessageDisposition,
    PushBatchRequest,
    ReleaseLockRequest,
)
from queue_processor.context import QueueProcessorContext
from queue_processor.coordination.coordinator import DocumentCoordinator
from queue_processor.dispatch.dispatcher import BatchDispatcher
from queue_processor.dispatch.transport import DeliveredMessage, Disposition, MessageBatch
from queue_processor.models.coordination import StateUpdate
from queue_processor.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

SERVICE_NAME = "Queue Processor"
SERVICE_VERSION = "1.0.0"

router = APIRouter()
coordinator_router = APIRouter(prefix="/coordinator")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def _get_coordinator(request: Request) -> DocumentCoordinator:
    return request.app.state.coordinator


def _get_dispatcher(request: Request) -> BatchDispatcher:
    return request.app.state.dispatcher


def _get_context(request: Request) -> QueueProcessorContext:
    return request.app.state.context


CoordinatorDep = Annotated[DocumentCoordinator, Depends(_get_coordinator)]
DispatcherDep = Annotated[BatchDispatcher, Depends(_get_dispatcher)]
ContextDep = Annotated[QueueProcessorContext, Depends(_get_context)]


def _missing_document_id() -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": "Missing documentId parameter"})


def _now_iso() -> str:
    return datetime.now(tz=timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Service endpoints
# ---------------------------------------------------------------------------


@router.get("/")
async def service_info(dispatcher: DispatcherDep) -> dict[str, Any]:
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "description": "Processes RAG documents from the ingestion, webhook and reprocessing queues",
        "endpoints": [
            "GET / - Service information",
            "GET /health - Health check",
            "GET /metrics - Processing metrics",
            "POST /admin/cleanup - Trigger cleanup",
            "POST /queues/{queueName}/batch - Deliver a message batch",
        ],
        "queues": [f"{name} - {cfg.description}" for name, cfg in dispatcher.queues.items()],
    }


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request, ctx: ContextDep) -> HealthResponse:
    return HealthResponse(
        status="healthy",
        timestamp=_now_iso(),
        worker="queue-processor",
        version=SERVICE_VERSION,
        providers={
            "kv_store": ctx.coordinator.store.get_provider_name(),
            "embedding": ctx.embedder.get_provider_name(),
            "vector_index": ctx.vector_index.get_provider_name(),
            "fetchers": sorted(source.value for source in ctx.fetchers),
            "worker_enabled": getattr(request.app.state, "worker_task", None) is not None,
        },
    )


@router.get("/metrics")
async def metrics(request: Request, ctx: ContextDep) -> dict[str, Any]:
    body: dict[str, Any] = {
        "timestamp": _now_iso(),
        "workerId": ctx.worker_id,
        "metrics": ctx.metrics.snapshot(),
    }
    broker = getattr(request.app.state, "broker", None)
    if broker is not None:
        body["queues"] = {
            name: {
                "pending": broker.pending(name),
                "deadLetters": len(broker.dead_letters(name)),
            }
            for name in request.app.state.dispatcher.queues
        }
    return body


@router.post("/admin/cleanup")
async def admin_cleanup(coordinator: CoordinatorDep) -> dict[str, Any]:
    result = await coordinator.cleanup()
    return {"success": True, "message": "Cleanup triggered", "result": result.to_wire()}


@router.post("/queues/{queue_name}/batch")
async def push_batch(queue_name: str, body: PushBatchRequest, dispatcher: DispatcherDep) -> dict[str, Any]:
    """Deliver a batch as a push transport would and report each message's disposition.

    An unknown queue is answered with 400 after every message was acknowledged.
    """
    delivered = [DeliveredMessage(m.id, m.body, attempts=m.attempts) for m in body.messages]
    batch = MessageBatch(queue_name, delivered)
    result = await dispatcher.dispatch(batch)

    for message in delivered:
        if message.disposition is Disposition.PENDING:
            message.ack()

    return {
        "queue": queue_name,
        "dispositions": [
            MessageDisposition(id=m.id, disposition=m.disposition.value, reason=m.reason).to_wire()
            for m in delivered
        ],
        "result": result.to_wire(),
    }


# ---------------------------------------------------------------------------
# Coordinator endpoints
# ---------------------------------------------------------------------------


@coordinator_router.post("/acquire-lock")
async def acquire_lock(body: AcquireLockRequest, coordinator: CoordinatorDep) -> dict[str, Any]:
    grant = await coordinator.acquire_lock(
        body.document_id,
        worker_id=body.worker_id,
        lock_type=body.lock_type,
        ttl_seconds=body.ttl_seconds,
        metadata=body.metadata,
    )
    return grant.to_wire()


@coordinator_router.post("/release-lock")
async def release_lock(body: ReleaseLockRequest, coordinator: CoordinatorDep) -> dict[str, Any]:
    await coordinator.release_lock(body.document_id, body.lock_id, body.worker_id)
    return {"success": True}


@coordinator_router.get("/check-lock", response_model=None)
async def check_lock(
    coordinator: CoordinatorDep,
    documentId: str | None = None,  # noqa: N803
) -> dict[str, Any] | JSONResponse:
    if not documentId:
        return _missing_document_id()
    status = await coordinator.check_lock(documentId)
    return status.to_wire()


@coordinator_router.post("/update-state")
async def update_state(body: StateUpdate, coordinator: CoordinatorDep) -> dict[str, Any]:
    state = await coordinator.update_state(body)
    return {"success": True, "state": state.to_wire()}


@coordinator_router.get("/get-state", response_model=None)
async def get_state(
    coordinator: CoordinatorDep,
    documentId: str | None = None,  # noqa: N803
) -> dict[str, Any] | JSONResponse:
    if not documentId:
        return _missing_document_id()
    state = await coordinator.get_state(documentId)
    return {"state": state.to_wire() if state is not None else None}


@coordinator_router.post("/deduplicate")
async def deduplicate(body: DeduplicateRequest, coordinator: CoordinatorDep) -> dict[str, Any]:
    result = await coordinator.deduplicate(body.document_id, body.resolved_hash())
    return result.to_wire()


@coordinator_router.post("/cleanup")
async def cleanup(coordinator: CoordinatorDep) -> dict[str, Any]:
    result = await coordinator.cleanup()
    return {"success": True, "cleanupResults": result.to_wire()}
