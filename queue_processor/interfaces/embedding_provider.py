"""Abstract base class for text-embedding service providers.

Document ingestion and model-update reprocessing request one vector per
chunk through this contract; the concrete backend (OpenAI-compatible API,
local FastEmbed ONNX model, or the deterministic hash embedder) is chosen
at startup.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   HashEmbeddingProvider       - deterministic, dependency-free vectors for dev/tests
#   OpenAIEmbeddingProvider     - any OpenAI-compatible /embeddings endpoint
#   FastEmbedEmbeddingProvider  - local ONNX model (optional extra)
# Located in: queue_processor/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the processors."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts.

        Returns
        -------
        list[list[float]]
            Vectors corresponding positionally to *texts*.

        Raises
        ------
        queue_processor.utils.errors.ProviderUnavailableError
            If the backend cannot be reached or times out.
        queue_processor.utils.errors.RateLimitError
            If the backend reports a rate limit.
        """

    async def embed_single(self, text: str) -> list[float]:
        """Embed one text; convenience wrapper around :meth:`embed`."""
        vectors = await self.embed([text])
        return vectors[0]

    @abstractmethod
    def get_dimension(self) -> int:
        """Return the dimensionality of the embedding vectors."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier, e.g. ``"openai"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured and usable."""
