"""
Migration: v1.0.0 -> v1.1.0

Adds the document number template system:
- invoiceNumberFormat / offerNumberFormat: template strings, set to the
  format that reproduces the numbers 1.0.0 generated
- invoiceCountersByYear / offerCountersByYear: empty per-year counters,
  filled on first use
"""

from __future__ import annotations

import copy
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

FROM_VERSION = "1.0.0"
TO_VERSION = "1.1.0"

LEGACY_NUMBER_FORMAT = "{PREFIX}-{YEAR}-{NUMBER:4}"


class SettingsV1_0_0(BaseModel):
    """Numbering part of the 1.0.0 settings; other keys pass through."""

    model_config = ConfigDict(extra="allow")

    offer_prefix: str = Field(default="OFF", alias="offerPrefix")
    next_offer_number: int = Field(default=1, alias="nextOfferNumber")
    invoice_prefix: str = Field(default="INV", alias="invoicePrefix")
    next_invoice_number: int = Field(default=1, alias="nextInvoiceNumber")


class DatabaseV1_0_0(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str
    customers: list[dict[str, Any]] = Field(default_factory=list)
    business: dict[str, Any] | None = None
    settings: SettingsV1_0_0


def migrate(data: dict[str, Any]) -> dict[str, Any]:
    """Reshape a 1.0.0 record into a 1.1.0 record."""
    DatabaseV1_0_0.model_validate(data)

    migrated = copy.deepcopy(data)
    migrated["version"] = TO_VERSION
    migrated["settings"] = {
        **migrated["settings"],
        "invoiceNumberFormat": LEGACY_NUMBER_FORMAT,
        "offerNumberFormat": LEGACY_NUMBER_FORMAT,
        "invoiceCountersByYear": {},
        "offerCountersByYear": {},
    }
    return migrated
