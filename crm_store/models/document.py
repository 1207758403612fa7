"""
Document (offer / invoice) schema.

Offers and invoices share one structure so an offer can be turned into an
invoice by copying it. Each document is stored as its own file:

    {root}/offers/{year}/{documentNumber}.json
    {root}/invoices/{year}/{documentNumber}.json

wrapped in a DocumentFile envelope carrying the file format version. The
year directory is the local-time year of created_at.

Money is stored in cents. Quantities may be fractional. Documents created
here have whole-cent amounts; files written by earlier releases keep
unrounded line totals (quantity * unitPrice) and are read as they are.

Invariants:
    - The first status history entry has from_status None
    - status and every history status belong to the document type's status set
    - Line totals, subtotal, tax amount and total equal their recomputation
      from the items and the tax rate, either rounded half up to whole cents
      (compute_totals) or unrounded per line (legacy_totals)

How to change safely:
    - Bump CURRENT_DOCUMENT_VERSION when the file envelope changes
    - Keep compute_totals() the single source of the rounding rule for new
      documents
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
from typing import Literal, Union

from pydantic import AwareDatetime, Field, model_validator

from .base import StoredModel

CURRENT_DOCUMENT_VERSION = "1.0.0"

DocumentType = Literal["offer", "invoice"]
DOCUMENT_TYPES: tuple[str, ...] = ("offer", "invoice")

OFFER_STATUSES: tuple[str, ...] = ("draft", "sent", "accepted", "cancelled")
INVOICE_STATUSES: tuple[str, ...] = ("draft", "sent", "paid", "overdue", "cancelled")

STATUSES_BY_TYPE: dict[str, tuple[str, ...]] = {
    "offer": OFFER_STATUSES,
    "invoice": INVOICE_STATUSES,
}


# Whole cents for documents created here; floats appear in older files
Amount = Union[int, float]

AMOUNT_TOLERANCE = 1e-6


def round_half_up(value: float | int | Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def line_total(quantity: float, unit_price: Amount) -> int:
    """Total of one line item in whole cents."""
    return round_half_up(Decimal(str(quantity)) * Decimal(str(unit_price)))


def compute_totals(
    line_totals: Iterable[Amount], tax_rate: float
) -> tuple[Amount, int, Amount]:
    """Compute (subtotal, tax_amount, total) in cents.

    Args:
        line_totals: Line item totals in cents
        tax_rate: Tax percentage, e.g. 21 for 21%
    """
    subtotal = sum(line_totals)
    tax_amount = round_half_up(Decimal(str(subtotal)) * Decimal(str(tax_rate)) / 100)
    return subtotal, tax_amount, subtotal + tax_amount


def legacy_totals(
    line_totals: Iterable[Amount], tax_rate: float
) -> tuple[Amount, int, Amount]:
    """Totals as release 1.x documents computed them, in binary floating point."""
    subtotal = sum(line_totals)
    tax_amount = math.floor(subtotal * (tax_rate / 100) + 0.5)
    return subtotal, tax_amount, subtotal + tax_amount


def same_amount(a: Amount, b: Amount) -> bool:
    return math.isclose(a, b, rel_tol=0, abs_tol=AMOUNT_TOLERANCE)


class DocumentItem(StoredModel):
    """One line on a document."""

    id: str
    description: str
    quantity: float
    unit_price: Amount
    total: Amount

    @model_validator(mode="after")
    def _check_total(self) -> DocumentItem:
        expected = line_total(self.quantity, self.unit_price)
        if self.total != expected and not same_amount(
            self.total, self.quantity * self.unit_price
        ):
            raise ValueError(
                f"Item {self.id}: total {self.total} does not match "
                f"quantity * unitPrice ({expected})"
            )
        return self


class CustomerSnapshot(StoredModel):
    """Customer details copied into the document when it is created."""

    name: str
    company: str | None = None
    street: str = ""
    postal_code: str = ""
    city: str = ""
    country: str = ""


class StatusLogEntry(StoredModel):
    timestamp: AwareDatetime
    from_status: str | None
    to_status: str
    note: str | None = None


class Document(StoredModel):
    """A full offer or invoice."""

    id: str
    document_type: DocumentType
    document_title: str
    document_number: str
    customer_id: str
    customer: CustomerSnapshot
    items: list[DocumentItem]
    subtotal: Amount
    tax_rate: float = Field(ge=0)
    tax_amount: Amount
    total: Amount
    payment_term_days: int = Field(ge=0)
    due_date: AwareDatetime
    intro_text: str | None = None
    notes_text: str | None = None
    footer_text: str | None = None
    status: str
    status_history: list[StatusLogEntry]
    created_at: AwareDatetime
    updated_at: AwareDatetime
    converted_from_offer_id: str | None = None
    converted_to_invoice_id: str | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> Document:
        allowed = STATUSES_BY_TYPE[self.document_type]
        if self.status not in allowed:
            raise ValueError(
                f"Status '{self.status}' is not valid for {self.document_type}; "
                f"expected one of {', '.join(allowed)}"
            )

        if not self.status_history:
            raise ValueError("Status history must contain the creation entry")
        if self.status_history[0].from_status is not None:
            raise ValueError("First status history entry must have fromStatus null")
        for entry in self.status_history:
            if entry.to_status not in allowed or (
                entry.from_status is not None and entry.from_status not in allowed
            ):
                raise ValueError(f"Status history contains a status invalid for {self.document_type}")

        line_totals = [item.total for item in self.items]
        stored = (self.subtotal, self.tax_amount, self.total)
        expected = compute_totals(line_totals, self.tax_rate)
        if not all(map(same_amount, stored, expected)) and not all(
            map(same_amount, stored, legacy_totals(line_totals, self.tax_rate))
        ):
            raise ValueError(
                f"Totals ({self.subtotal}, {self.tax_amount}, {self.total}) do not match "
                f"recomputed values {expected}"
            )
        return self

    @property
    def year(self) -> int:
        """Partition year: the local-time year of created_at."""
        return self.created_at.astimezone().year

    def summary(self) -> DocumentSummary:
        return DocumentSummary(
            id=self.id,
            document_type=self.document_type,
            document_number=self.document_number,
            customer_id=self.customer_id,
            customer_name=self.customer.name,
            total=self.total,
            status=self.status,
            due_date=self.due_date,
            created_at=self.created_at,
        )


class DocumentSummary(StoredModel):
    """Reduced document for list views."""

    id: str
    document_type: DocumentType
    document_number: str
    customer_id: str
    customer_name: str
    total: Amount
    status: str
    due_date: AwareDatetime
    created_at: AwareDatetime


class DocumentFile(StoredModel):
    """On-disk envelope around one document."""

    version: str = CURRENT_DOCUMENT_VERSION
    document: Document
