"""Embedding providers.

``OpenAIEmbeddingProvider`` and ``FastEmbedEmbeddingProvider`` are imported
from their modules directly by ``main.py`` so that neither SDK is loaded
unless configured.
"""

from queue_processor.providers.embedding.hash_embedding_provider import HashEmbeddingProvider

__all__ = ["HashEmbeddingProvider"]
