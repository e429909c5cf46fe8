"""Records exchanged with the blob store and vector index collaborators."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class StoredBlob(BaseModel):
    """A blob as returned by :meth:`IBlobStore.get`."""

    model_config = ConfigDict(frozen=True)

    key: str
    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    content_type: str = "text/plain"


class VectorRecord(BaseModel):
    """A vector with its metadata as held by an :class:`IVectorIndex`."""

    model_config = ConfigDict(frozen=True)

    id: str
    values: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)
