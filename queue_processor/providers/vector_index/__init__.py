"""Vector indexes.

``ChromaVectorIndex`` lives in its own module and is imported by
``main.py`` only when ``VECTOR_BACKEND=chroma``, since chromadb is an
optional extra.
"""

from queue_processor.providers.vector_index.memory_vector_index import MemoryVectorIndex

__all__ = ["MemoryVectorIndex"]
