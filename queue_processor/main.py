"""Queue processor FastAPI application entry point.

Wires the coordinator, collaborators, processors and dispatcher together
and exposes them over HTTP.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging.

When ``WORKER_ENABLED=true`` the lifespan also starts the pull worker over
the in-process broker and the periodic coordinator cleanup.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from queue_processor.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from queue_processor.api.routes import SERVICE_VERSION, coordinator_router
from queue_processor.api.routes import router as service_router
from queue_processor.config.loader import load_config, queue_configs
from queue_processor.config.settings import Settings
from queue_processor.context import ProcessingSettings, QueueProcessorContext
from queue_processor.coordination.coordinator import DocumentCoordinator
from queue_processor.dispatch.dispatcher import BatchDispatcher
from queue_processor.interfaces.content_fetcher import IContentFetcher
from queue_processor.interfaces.embedding_provider import IEmbeddingProvider
from queue_processor.interfaces.kv_store import IKeyValueStore
from queue_processor.interfaces.vector_index import IVectorIndex
from queue_processor.models.messages import SourceType
from queue_processor.providers.blob_store.memory_blob_store import MemoryBlobStore
from queue_processor.providers.embedding.hash_embedding_provider import HashEmbeddingProvider
from queue_processor.providers.fetcher.stub_fetcher import StubSourceFetcher
from queue_processor.providers.fetcher.website_fetcher import WebsiteFetcher
from queue_processor.providers.kv_store.memory_kv_store import MemoryKeyValueStore
from queue_processor.providers.kv_store.sqlite_kv_store import SQLiteKeyValueStore
from queue_processor.providers.queue.memory_broker import MemoryQueueBroker
from queue_processor.providers.vector_index.memory_vector_index import MemoryVectorIndex
from queue_processor.runtime.scheduler import CleanupScheduler
from queue_processor.runtime.worker import QueueWorker
from queue_processor.utils.errors import ConfigurationError
from queue_processor.utils.logging import bind_worker_context, configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_kv_store(app_settings: Settings) -> IKeyValueStore:
    if app_settings.kv_backend == "memory":
        return MemoryKeyValueStore()
    if app_settings.kv_backend == "sqlite":
        return SQLiteKeyValueStore(db_path=app_settings.kv_sqlite_path)
    raise ConfigurationError(f"Unknown KV_BACKEND: {app_settings.kv_backend}", provider_name="config")


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Select the embedder named by ``EMBEDDING_BACKEND``.

    ``openai`` and ``fastembed`` are imported lazily so the optional
    dependencies are only needed when selected.
    """
    backend = app_settings.embedding_backend
    if backend == "hash":
        return HashEmbeddingProvider(dimension=app_settings.embedding_dimension)
    if backend == "openai":
        from queue_processor.providers.embedding.openai_embedding_provider import (
            OpenAIEmbeddingProvider,
        )

        provider: IEmbeddingProvider = OpenAIEmbeddingProvider(settings=app_settings)
        if not provider.is_available():
            raise ConfigurationError("EMBEDDING_BACKEND=openai requires OPENAI_API_KEY", provider_name="config")
        return provider
    if backend == "fastembed":
        from queue_processor.providers.embedding.fastembed_embedding_provider import (
            FastEmbedEmbeddingProvider,
        )

        return FastEmbedEmbeddingProvider(model_name=app_settings.fastembed_model)
    raise ConfigurationError(f"Unknown EMBEDDING_BACKEND: {backend}", provider_name="config")


def _build_vector_index(app_settings: Settings) -> IVectorIndex:
    if app_settings.vector_backend == "memory":
        return MemoryVectorIndex()
    if app_settings.vector_backend == "chroma":
        from queue_processor.providers.vector_index.chroma_vector_index import ChromaVectorIndex

        return ChromaVectorIndex(
            persist_directory=app_settings.chromadb_persist_dir,
            collection_name=app_settings.chromadb_collection,
        )
    raise ConfigurationError(f"Unknown VECTOR_BACKEND: {app_settings.vector_backend}", provider_name="config")


def _build_fetchers(app_settings: Settings) -> dict[SourceType, IContentFetcher]:
    fetchers: dict[SourceType, IContentFetcher] = {
        SourceType.WEBSITE: WebsiteFetcher(timeout=app_settings.http_fetch_timeout),
    }
    for source in (SourceType.SHAREPOINT, SourceType.CONFLUENCE, SourceType.JIRA):
        fetchers[source] = StubSourceFetcher(source)
    return fetchers


def _processing_settings(app_settings: Settings) -> ProcessingSettings:
    return ProcessingSettings(
        lock_ttl_processing=app_settings.lock_ttl_processing,
        lock_ttl_updating=app_settings.lock_ttl_updating,
        lock_ttl_deleting=app_settings.lock_ttl_deleting,
        default_chunk_size=app_settings.default_chunk_size,
        default_chunk_overlap=app_settings.default_chunk_overlap,
        reprocess_sub_batch_size=app_settings.reprocess_sub_batch_size,
        reprocess_sub_batch_delay=app_settings.reprocess_sub_batch_delay,
    )


# ---------------------------------------------------------------------------
# Full DI assembly
# ---------------------------------------------------------------------------


def build_components(app_settings: Settings, app_config: dict[str, Any]) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    """
    queues = queue_configs(app_config)
    kv_store = _build_kv_store(app_settings)
    coordinator = DocumentCoordinator(
        kv_store,
        default_ttl_seconds=app_settings.lock_ttl_default,
        state_retention=timedelta(days=app_settings.state_retention_days),
    )
    broker = MemoryQueueBroker(max_retries={name: cfg.max_retries for name, cfg in queues.items()})
    fetchers = _build_fetchers(app_settings)

    context = QueueProcessorContext(
        coordinator=coordinator,
        embedder=_build_embedding_provider(app_settings),
        blob_store=MemoryBlobStore(),
        vector_index=_build_vector_index(app_settings),
        producer=broker,
        fetchers=fetchers,
        settings=_processing_settings(app_settings),
    )
    dispatcher = BatchDispatcher(context, queues=queues)

    return {
        "settings": app_settings,
        "kv_store": kv_store,
        "coordinator": coordinator,
        "context": context,
        "dispatcher": dispatcher,
        "broker": broker,
        "worker": QueueWorker(broker, dispatcher, poll_interval=app_settings.worker_poll_interval),
        "scheduler": CleanupScheduler(coordinator, interval_seconds=app_settings.cleanup_interval_seconds),
        "fetchers": fetchers,
    }


async def start_components(components: dict[str, Any]) -> None:
    await components["kv_store"].initialize()
    bind_worker_context(components["context"].worker_id)


async def close_components(components: dict[str, Any]) -> None:
    for fetcher in components.get("fetchers", {}).values():
        if isinstance(fetcher, WebsiteFetcher):
            await fetcher.aclose()
    await components["kv_store"].close()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


def _make_lifespan(injected: dict[str, Any] | None):  # noqa: ANN202
    @asynccontextmanager
    async def _lifespan(application: FastAPI):  # noqa: ANN202
        """Initialise providers on startup; stop background tasks and close them on shutdown."""
        components = injected if injected is not None else build_components(settings, config)
        for key, value in components.items():
            setattr(application.state, key, value)
        await start_components(components)

        stop_event = asyncio.Event()
        tasks: list[asyncio.Task] = []
        app_settings: Settings = components.get("settings", settings)
        if app_settings.worker_enabled:
            tasks.append(asyncio.create_task(components["worker"].run_forever(stop_event)))
            tasks.append(asyncio.create_task(components["scheduler"].run_forever(stop_event)))
            application.state.worker_task = tasks[0]
        else:
            application.state.worker_task = None

        _logger.info(
            "app_startup",
            version=SERVICE_VERSION,
            environment=app_settings.app_env,
            worker_id=components["context"].worker_id,
            worker_enabled=app_settings.worker_enabled,
            queues=sorted(components["dispatcher"].queues),
        )

        yield

        stop_event.set()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await close_components(components)
        _logger.info("app_shutdown", message="Background tasks stopped, providers closed")

    return _lifespan


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(components: dict[str, Any] | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    *components* replaces :func:`build_components` (tests inject in-memory
    collaborators this way).
    """
    application = FastAPI(
        title="Queue Processor API",
        version=SERVICE_VERSION,
        description=(
            "Coordinates idempotent document processing: per-document locks, "
            "processing state, content-hash deduplication and batch dispatch "
            "for the ingestion, webhook and reprocessing queues."
        ),
        lifespan=_make_lifespan(components),
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    application.include_router(service_router)
    application.include_router(coordinator_router)
    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "queue_processor.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
