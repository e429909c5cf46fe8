"""Base model for records that cross a process boundary.

Coordinator records, queue envelopes and results are exchanged as JSON
with camelCase keys (``documentId``, ``expiresAt``).  :class:`WireModel`
accepts either camelCase or snake_case on input and always emits
camelCase from :meth:`WireModel.to_wire`.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable, camelCase-serialised pydantic model."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
