"""Local ONNX-based embedding provider using fastembed.

Runs on CPU through ONNX Runtime with no PyTorch dependency.  ``fastembed``
is an optional extra (``pip install .[fastembed]``) and is imported on
first use; model weights are downloaded once and cached.
"""

from __future__ import annotations

import asyncio

import structlog

from queue_processor.interfaces.embedding_provider import IEmbeddingProvider
from queue_processor.utils.errors import ConfigurationError, ProcessingFailedError

logger = structlog.get_logger(logger_name=__name__)

_MODEL_DIMENSIONS: dict[str, int] = {
    "BAAI/bge-base-en-v1.5": 768,
    "BAAI/bge-small-en-v1.5": 384,
    "intfloat/multilingual-e5-large": 1024,
    "sentence-transformers/all-MiniLM-L6-v2": 384,
}

_DEFAULT_MODEL = "BAAI/bge-base-en-v1.5"
_BATCH_LIMIT = 64


class FastEmbedEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by fastembed (ONNX Runtime), loaded lazily."""

    def __init__(self, model_name: str | None = None) -> None:
        self._model_name = model_name or _DEFAULT_MODEL
        self._dimension = _MODEL_DIMENSIONS.get(self._model_name, 768)
        self._model = None

    def _load_model(self) -> None:
        if self._model is not None:
            return
        try:
            from fastembed import TextEmbedding
        except ImportError as exc:
            raise ConfigurationError(
                message="fastembed is not installed; install the 'fastembed' extra",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info("loading_fastembed_model", model=self._model_name)
        self._model = TextEmbedding(model_name=self._model_name)
        logger.info("fastembed_model_loaded", model=self._model_name, dimension=self._dimension)

    def _embed_sync(self, texts: list[str]) -> list[list[float]]:
        self._load_model()
        vectors: list[list[float]] = []
        for start in range(0, len(texts), _BATCH_LIMIT):
            batch = texts[start : start + _BATCH_LIMIT]
            vectors.extend(v.tolist() for v in self._model.embed(batch))
        return vectors

    async def embed(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        try:
            return await asyncio.to_thread(self._embed_sync, texts)
        except ConfigurationError:
            raise
        except Exception as exc:
            raise ProcessingFailedError(
                message=f"Fastembed embedding error: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_dimension(self) -> int:
        return self._dimension

    def get_provider_name(self) -> str:
        return f"fastembed_{self._model_name.split('/')[-1]}"

    def is_available(self) -> bool:
        try:
            import fastembed  # noqa: F401

            return True
        except ImportError:
            return False
