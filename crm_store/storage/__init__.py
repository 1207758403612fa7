"""
Storage layer for the CRM local store.

This package provides:
- Atomic JSON file I/O (atomic_io)
- The persistent store over one storage root (store)
"""

from . import atomic_io
from .store import DATABASE_FILE, DOCUMENT_DIRECTORIES, PersistentStore, document_filename

__all__ = [
    "DATABASE_FILE",
    "DOCUMENT_DIRECTORIES",
    "PersistentStore",
    "atomic_io",
    "document_filename",
]
