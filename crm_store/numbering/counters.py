"""
Counter management for document numbers.

Settings keep, per document type, a global "next number" and a map of
"next number" per calendar year. Allocating a number renders the type's
template with both counters and then advances them.

Invariants:
    - A missing year entry starts at 1
    - Allocation advances both counters by exactly one
    - next_number() never mutates settings; allocate_number() always does

Callers run allocate_number() inside PersistentStore.mutate() so the
advanced counters are persisted with the record.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING

from .template import build_variables, render, validate

if TYPE_CHECKING:
    from ..models.database import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocatedNumber:
    """A rendered document number and the counter values used for it."""

    number: str
    document_type: str
    global_counter: int
    year_counter: int
    year: int


def _counter_fields(document_type: str) -> tuple[str, str, str, str]:
    """Return (prefix, format, global counter, per-year map) attribute names."""
    if document_type == "offer":
        return "offer_prefix", "offer_number_format", "next_offer_number", "offer_counters_by_year"
    if document_type == "invoice":
        return (
            "invoice_prefix",
            "invoice_number_format",
            "next_invoice_number",
            "invoice_counters_by_year",
        )
    raise ValueError(f"Unknown document type: {document_type}")


def next_number(
    settings: Settings,
    document_type: str,
    when: date | datetime | None = None,
) -> AllocatedNumber:
    """Compute the next number for a document type without consuming it.

    Args:
        settings: Settings holding prefix, template and counters
        document_type: "offer" or "invoice"
        when: Issue date; defaults to now

    Returns:
        AllocatedNumber describing the number and counters
    """
    prefix_attr, format_attr, global_attr, years_attr = _counter_fields(document_type)
    variables = build_variables(
        getattr(settings, prefix_attr),
        getattr(settings, global_attr),
        1,
        when,
    )
    year = variables["YEAR"]
    year_counter = getattr(settings, years_attr).get(str(year), 1)
    variables["NUMBER_YEAR"] = year_counter

    template = getattr(settings, format_attr)
    if not validate(template).valid:
        logger.warning(f"Stored {document_type} number format '{template}' is invalid")

    return AllocatedNumber(
        number=render(template, variables),
        document_type=document_type,
        global_counter=variables["NUMBER"],
        year_counter=year_counter,
        year=year,
    )


def advance_counters(settings: Settings, allocated: AllocatedNumber) -> None:
    """Mark an allocated number as used by advancing both counters."""
    _, _, global_attr, years_attr = _counter_fields(allocated.document_type)
    setattr(settings, global_attr, allocated.global_counter + 1)
    getattr(settings, years_attr)[str(allocated.year)] = allocated.year_counter + 1


def allocate_number(
    settings: Settings,
    document_type: str,
    when: date | datetime | None = None,
) -> AllocatedNumber:
    """Render the next number for a document type and advance its counters."""
    allocated = next_number(settings, document_type, when)
    advance_counters(settings, allocated)
    return allocated
