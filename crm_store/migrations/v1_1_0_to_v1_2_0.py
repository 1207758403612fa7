"""
Migration: v1.1.0 -> v1.2.0

Adds the product catalog as an empty ``products`` list.
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FROM_VERSION = "1.1.0"
TO_VERSION = "1.2.0"


class DatabaseV1_1_0(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str
    customers: list[dict[str, Any]] = Field(default_factory=list)
    business: dict[str, Any] | None = None
    settings: dict[str, Any]


def migrate(data: dict[str, Any]) -> dict[str, Any]:
    """Reshape a 1.1.0 record into a 1.2.0 record."""
    DatabaseV1_1_0.model_validate(data)

    migrated = copy.deepcopy(data)
    migrated["version"] = TO_VERSION
    migrated["products"] = []
    return migrated
