"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ─────────────────────────────────────────────────
#
# pydantic-settings reads each field from (highest priority first):
#
#   1. Environment variables, e.g. KV_BACKEND=sqlite
#   2. The .env file in the project root (local development)
#   3. The defaults declared below
#
# Field ``lock_ttl_processing`` maps to env var ``LOCK_TTL_PROCESSING``.
# Per-queue batch sizes and retry budgets live in config/config.yaml
# (see loader.py) because they are structured, not scalar.
# ──────────────────────────────────────────────────────────────────────
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Queue processor settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Coordination storage ===
    # "memory" keeps locks/state/hashes in the process; "sqlite" shares
    # them between worker processes on one host.
    kv_backend: str = "memory"
    kv_sqlite_path: str = "data/coordination.db"

    # === Embeddings ===
    # "hash" is a deterministic local embedder for development and tests.
    embedding_backend: str = "hash"
    embedding_dimension: int = 768
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_embedding_model: str = "text-embedding-3-small"
    fastembed_model: str = "BAAI/bge-base-en-v1.5"

    # === Vector index ===
    vector_backend: str = "memory"
    chromadb_persist_dir: str = "./data/chromadb"
    chromadb_collection: str = "document_chunks"

    # === Locks / retention ===
    lock_ttl_default: int = 300
    lock_ttl_processing: int = 1800
    lock_ttl_updating: int = 300
    lock_ttl_deleting: int = 300
    state_retention_days: int = 7

    # === Ingestion ===
    default_chunk_size: int = 1000
    default_chunk_overlap: int = 200

    # === Batch reprocessing ===
    reprocess_sub_batch_size: int = 5
    reprocess_sub_batch_delay: float = 1.0

    # === Worker runtime ===
    worker_enabled: bool = False
    worker_poll_interval: float = 1.0
    cleanup_interval_seconds: float = 3600.0
    http_fetch_timeout: float = 30.0

    # === App Config ===
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"
