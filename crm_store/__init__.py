"""
CRM local store - file-based, schema-versioned data layer for a small
invoicing and quoting tool.

This package provides:
- PersistentStore: database record plus one file per offer/invoice
- Migration engine and the built-in migration catalog
- Document number templates with global and per-year counters
- Domain services, a local FastAPI app and an admin CLI on top

Example:
    >>> from crm_store import PersistentStore
    >>>
    >>> store = PersistentStore("./data")
    >>> db = await store.initialize()
    >>> db.version
    '1.2.0'

Invariants:
    - One process writes a storage root at a time
    - Every file write is atomic (temp file + fsync + rename)
    - A loaded database record is always at CURRENT_DATABASE_VERSION
"""

from ._version import __version__
from .errors import (
    ConflictError,
    InitializationFailedError,
    InvalidTemplateError,
    MalformedError,
    MigrationCatalogError,
    MigrationFailedError,
    MigrationIncompleteError,
    NotFoundError,
    NotInitializedError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
    WriteFailedError,
)
from .migrations import MIGRATIONS, MigrationDefinition, MigrationEngine, compare_versions
from .models import CURRENT_DATABASE_VERSION, DatabaseRecord, Document
from .storage import PersistentStore

__all__ = [
    "__version__",
    # Store
    "PersistentStore",
    "CURRENT_DATABASE_VERSION",
    "DatabaseRecord",
    "Document",
    # Migrations
    "MIGRATIONS",
    "MigrationDefinition",
    "MigrationEngine",
    "compare_versions",
    # Errors
    "ConflictError",
    "InitializationFailedError",
    "InvalidTemplateError",
    "MalformedError",
    "MigrationCatalogError",
    "MigrationFailedError",
    "MigrationIncompleteError",
    "NotFoundError",
    "NotInitializedError",
    "PermissionDeniedError",
    "StoreError",
    "ValidationError",
    "WriteFailedError",
]
