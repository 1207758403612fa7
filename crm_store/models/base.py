"""Shared pydantic base for every record persisted by the store."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class StoredModel(BaseModel):
    """Base model for persisted records.

    Field names are snake_case in Python and camelCase on disk. Unknown keys
    are kept so that a record written by a newer build survives a round trip.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_json(self) -> dict[str, Any]:
        """Return the on-disk (camelCase, JSON-compatible) representation."""
        return self.model_dump(mode="json", by_alias=True)
