"""
Persisted data model for the CRM local store.

This package provides the pydantic models for:
- The database record (customers, business, products, settings)
- Documents (offers and invoices) and their file envelope

Invariants:
    - Python attributes are snake_case, on-disk keys are camelCase
    - Models validate their own cross-field invariants on construction
"""

from .base import StoredModel
from .database import (
    CURRENT_DATABASE_VERSION,
    DUTCH_LABELS,
    Address,
    BankDetails,
    Business,
    Customer,
    DatabaseRecord,
    DocumentLabels,
    Product,
    Settings,
    empty_database,
    local_now,
)
from .document import (
    CURRENT_DOCUMENT_VERSION,
    DOCUMENT_TYPES,
    INVOICE_STATUSES,
    OFFER_STATUSES,
    STATUSES_BY_TYPE,
    CustomerSnapshot,
    Document,
    DocumentFile,
    DocumentItem,
    DocumentSummary,
    Amount,
    StatusLogEntry,
    compute_totals,
    legacy_totals,
    line_total,
    round_half_up,
    same_amount,
)

__all__ = [
    "StoredModel",
    # Database record
    "CURRENT_DATABASE_VERSION",
    "DUTCH_LABELS",
    "Address",
    "BankDetails",
    "Business",
    "Customer",
    "DatabaseRecord",
    "DocumentLabels",
    "Product",
    "Settings",
    "empty_database",
    "local_now",
    # Documents
    "CURRENT_DOCUMENT_VERSION",
    "DOCUMENT_TYPES",
    "INVOICE_STATUSES",
    "OFFER_STATUSES",
    "STATUSES_BY_TYPE",
    "CustomerSnapshot",
    "Document",
    "DocumentFile",
    "DocumentItem",
    "DocumentSummary",
    "StatusLogEntry",
    "Amount",
    "compute_totals",
    "legacy_totals",
    "line_total",
    "round_half_up",
    "same_amount",
]
