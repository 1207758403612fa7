"""
Persistent store for the CRM local data directory.

This module owns everything under one storage root:
- database.json: the single database record (customers, business profile,
  products, settings), loaded once and kept resident
- offers/{year}/{documentNumber}.json and invoices/{year}/...: one file per
  document, read and written on demand

On initialize() the database record is read, handed to the migration engine
when it is stale and persisted again at the current version. A missing
record is created from defaults.

Invariants:
    - Exactly one database record per storage root
    - After initialize() the resident record is at CURRENT_DATABASE_VERSION
    - mutate() is the only way the resident record changes, and every
      successful mutate() is followed by a full atomic write
    - A failed mutate() leaves the resident record as it was
    - A document's year directory is taken from its created_at
    - Present-but-unreadable files are reported, never replaced by defaults

How to change safely:
    - Schema changes go through crm_store.migrations, not through this module
    - Keep document paths derived from (type, created_at, number) only
    - One process per storage root; there is no cross-process locking

Directory layout:
    {root}/
        database.json
        offers/
            2025/
                OFF-2025-0001.json
        invoices/
            2025/
                INV-2025-0001.json
"""

from __future__ import annotations

import inspect
import logging
import re
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any, TypeVar

import pydantic

from ..errors import (
    ConflictError,
    InitializationFailedError,
    MalformedError,
    NotFoundError,
    NotInitializedError,
    StoreError,
    ValidationError,
)
from ..migrations import MigrationEngine, compare_versions, default_engine
from ..models.database import DatabaseRecord, empty_database
from ..models.document import CURRENT_DOCUMENT_VERSION, Document, DocumentFile
from . import atomic_io

logger = logging.getLogger(__name__)

T = TypeVar("T")

DATABASE_FILE = "database.json"

DOCUMENT_DIRECTORIES: dict[str, str] = {
    "offer": "offers",
    "invoice": "invoices",
}

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def document_filename(document_number: str) -> str:
    """Map a document number to the name of its file.

    Path separators and other characters that are not portable in file
    names are replaced with "_".

    Raises:
        ValidationError: If nothing usable is left of the number
    """
    name = _UNSAFE_FILENAME_CHARS.sub("_", document_number).strip()
    if name in ("", ".", ".."):
        raise ValidationError(
            f"Document number '{document_number}' cannot be used as a file name",
            field_errors={"documentNumber": ["not usable as a file name"]},
        )
    return f"{name}{atomic_io.JSON_SUFFIX}"


def _field_errors(error: pydantic.ValidationError) -> dict[str, list[str]]:
    fields: dict[str, list[str]] = {}
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "__root__"
        fields.setdefault(location, []).append(item["msg"])
    return fields


class PersistentStore:
    """File-backed store bound to one storage root.

    Example:
        >>> store = PersistentStore("./data")
        >>> await store.initialize()
        >>> await store.mutate(lambda db: db.customers.append(customer))
        >>> await store.save_document(document)

    Attributes:
        root: Storage root directory
        engine: Migration engine applied to stale records
    """

    def __init__(
        self,
        root: str | Path,
        engine: MigrationEngine | None = None,
    ) -> None:
        """Bind the store to a storage root.

        Nothing is read or created until initialize() is awaited.

        Args:
            root: Storage root directory
            engine: Migration engine (defaults to the built-in catalog)
        """
        self._root = Path(root)
        self.engine = engine or default_engine()
        self._database: DatabaseRecord | None = None

    @property
    def root(self) -> Path:
        return self._root

    @property
    def database_path(self) -> Path:
        return self._root / DATABASE_FILE

    @property
    def initialized(self) -> bool:
        return self._database is not None

    def documents_dir(self, document_type: str) -> Path:
        """Directory holding all year partitions for a document type."""
        try:
            return self._root / DOCUMENT_DIRECTORIES[document_type]
        except KeyError:
            raise ValidationError(
                f"Unknown document type: {document_type}",
                field_errors={"documentType": ["must be 'offer' or 'invoice'"]},
            ) from None

    def document_path(self, document_type: str, year: int | str, document_number: str) -> Path:
        """Path of the file for a document."""
        return self.documents_dir(document_type) / str(year) / document_filename(document_number)

    # =========================================================================
    # Database record
    # =========================================================================

    async def initialize(self) -> DatabaseRecord:
        """Create the directory layout and load (or create) the database record.

        Returns:
            The resident database record

        Raises:
            InitializationFailedError: If database.json exists but cannot be
                read, parsed, validated or migrated, or was written by a
                newer version
        """
        for directory in (self._root, *(self.documents_dir(t) for t in DOCUMENT_DIRECTORIES)):
            await atomic_io.ensure_dir(directory)

        if not await atomic_io.path_exists(self.database_path):
            database = empty_database()
            await self._write_database(database)
            self._database = database
            logger.info(f"Created new database at {self.database_path}")
            return database

        try:
            database, migrated_from = await self._load_database()
        except StoreError as e:
            logger.error(f"Failed to load database at {self.database_path}: {e}", exc_info=True)
            raise InitializationFailedError(
                f"Failed to load database at {self.database_path}: {e.message}",
                details={"path": str(self.database_path), "reason": e.code},
                cause=e,
            ) from e

        if migrated_from is not None:
            await self._write_database(database)
            logger.info(
                f"Database migrated from v{migrated_from} to v{database.version} and saved"
            )

        self._database = database
        logger.info(f"Loaded database v{database.version} from {self.database_path}")
        return database

    async def _load_database(self) -> tuple[DatabaseRecord, str | None]:
        """Read, migrate and validate database.json.

        Returns:
            (record, version it was migrated from or None)
        """
        raw = await atomic_io.read_json(self.database_path)
        if not isinstance(raw, dict):
            raise MalformedError("database.json does not contain a JSON object")

        stored_version = raw.get("version")
        if not isinstance(stored_version, str):
            raise MalformedError("database.json has no version")
        try:
            newer = compare_versions(stored_version, self.engine.current_version) > 0
        except ValueError as e:
            raise MalformedError(f"database.json has an invalid version: {stored_version}", cause=e) from e
        if newer:
            raise MalformedError(
                f"database.json is at v{stored_version}, which is newer than "
                f"v{self.engine.current_version}; upgrade the application"
            )

        migrated_from = None
        if self.engine.needs_migration(stored_version):
            logger.info(f"Database version {stored_version} requires migration")
            raw = self.engine.run_migrations(raw)
            migrated_from = stored_version

        try:
            database = DatabaseRecord.model_validate(raw)
        except pydantic.ValidationError as e:
            raise MalformedError(
                f"database.json does not match the v{self.engine.current_version} schema",
                details={"fields": _field_errors(e)},
                cause=e,
            ) from e
        return database, migrated_from

    def get(self) -> DatabaseRecord:
        """Return the resident database record.

        Raises:
            NotInitializedError: If initialize() has not completed
        """
        if self._database is None:
            raise NotInitializedError("Storage not initialized")
        return self._database

    async def mutate(self, fn: Callable[[DatabaseRecord], T | Awaitable[T]]) -> T:
        """Apply a change to the database record and persist it.

        fn receives a working copy of the record and may change it in place.
        The copy is validated and written atomically before it replaces the
        resident record.

        Args:
            fn: Function (or coroutine function) applied to the record

        Returns:
            Whatever fn returns

        Raises:
            NotInitializedError: If initialize() has not completed
            ValidationError: If the changed record is not a valid record
            WriteFailedError: If the record could not be written
        """
        working = self.get().model_copy(deep=True)

        result = fn(working)
        if inspect.isawaitable(result):
            result = await result

        try:
            database = DatabaseRecord.model_validate(working.to_json())
        except pydantic.ValidationError as e:
            raise ValidationError(
                "Database change produced an invalid record", field_errors=_field_errors(e)
            ) from e

        await self._write_database(database)
        self._database = database
        return result

    async def _write_database(self, database: DatabaseRecord) -> None:
        await atomic_io.write_json(self.database_path, database.to_json())

    # =========================================================================
    # Documents
    # =========================================================================

    async def save_document(self, document: Document) -> Path:
        """Write a document to its year partition, replacing any previous file.

        Returns:
            Path of the written file
        """
        path = self.document_path(document.document_type, document.year, document.document_number)
        envelope = DocumentFile(version=CURRENT_DOCUMENT_VERSION, document=document)
        await atomic_io.write_json(path, envelope.to_json())
        logger.info(f"Saved {document.document_type} {document.document_number} to {path}")
        return path

    async def _read_document(self, path: Path) -> Document:
        raw = await atomic_io.read_json(path)
        try:
            envelope = DocumentFile.model_validate(raw)
        except pydantic.ValidationError as e:
            raise MalformedError(
                f"Invalid document file: {path}",
                details={"path": str(path), "fields": _field_errors(e)},
                cause=e,
            ) from e

        try:
            newer = compare_versions(envelope.version, CURRENT_DOCUMENT_VERSION) > 0
        except ValueError as e:
            raise MalformedError(f"Invalid document file version in {path}", cause=e) from e
        if newer:
            raise MalformedError(
                f"Document file {path} is at v{envelope.version}, newer than "
                f"v{CURRENT_DOCUMENT_VERSION}"
            )
        return envelope.document

    async def _iter_document_files(self, document_type: str) -> list[Path]:
        base = self.documents_dir(document_type)
        paths: list[Path] = []
        for year in await atomic_io.list_subdirectories(base):
            paths.extend(await atomic_io.list_json_files(base / year))
        return paths

    def _types(self, document_type: str | None) -> tuple[str, ...]:
        if document_type is None:
            return tuple(DOCUMENT_DIRECTORIES)
        self.documents_dir(document_type)
        return (document_type,)

    async def load_document(
        self,
        document_id: str,
        document_type: str | None = None,
    ) -> Document | None:
        """Find a document by id, scanning every year partition.

        Args:
            document_id: Document id
            document_type: Restrict the scan to one type

        Returns:
            The document, or None if no file holds that id
        """
        for doc_type in self._types(document_type):
            for path in await self._iter_document_files(doc_type):
                document = await self._read_document(path)
                if document.id == document_id:
                    return document
        return None

    async def load_document_by_number(
        self,
        document_type: str,
        document_number: str,
        year: int | str | None = None,
    ) -> Document | None:
        """Find a document by its number.

        With a known year the file is read directly; otherwise every year
        partition of the type is checked.

        Returns:
            The document, or None if there is no such file
        """
        if year is not None:
            years = [str(year)]
        else:
            years = await atomic_io.list_subdirectories(self.documents_dir(document_type))

        for candidate in years:
            path = self.document_path(document_type, candidate, document_number)
            if not await atomic_io.path_exists(path):
                continue
            document = await self._read_document(path)
            if document.document_number == document_number:
                return document
        return None

    async def document_exists(self, document_type: str, document_number: str) -> bool:
        """Whether any year partition has a file for this number."""
        years = await atomic_io.list_subdirectories(self.documents_dir(document_type))
        for year in years:
            if await atomic_io.path_exists(self.document_path(document_type, year, document_number)):
                return True
        return False

    async def delete_document(self, document: Document) -> None:
        """Delete a document's file.

        Raises:
            NotFoundError: If the file does not exist
        """
        path = self.document_path(document.document_type, document.year, document.document_number)
        try:
            await atomic_io.remove_file(path)
        except NotFoundError as e:
            raise NotFoundError(
                f"Document file not found: {path}",
                resource_type=document.document_type,
                resource_id=document.id,
                cause=e,
            ) from e
        logger.info(f"Deleted {document.document_type} {document.document_number}")

    async def list_documents(self, document_type: str | None = None) -> list[Document]:
        """Load every document, newest first.

        Args:
            document_type: Only list offers or invoices

        Returns:
            Documents sorted by created_at descending

        Raises:
            MalformedError: If any document file is corrupt
        """
        documents: list[Document] = []
        for doc_type in self._types(document_type):
            for path in await self._iter_document_files(doc_type):
                documents.append(await self._read_document(path))

        documents.sort(key=lambda d: d.created_at, reverse=True)
        return documents

    # =========================================================================
    # Root management
    # =========================================================================

    async def relocate(self, new_root: str | Path, delete_old: bool = False) -> Path:
        """Copy all data to a new storage root and switch to it.

        Args:
            new_root: Destination directory
            delete_old: Remove the store's files from the old root afterwards

        Returns:
            The new root

        Raises:
            ConflictError: If the new root is the current root or nested
                inside it
        """
        new_root = Path(new_root)
        old_root = self._root
        resolved_new = new_root.resolve()
        resolved_old = old_root.resolve()

        if resolved_new == resolved_old:
            raise ConflictError(
                "New path is the same as current path", details={"path": str(new_root)}
            )
        if resolved_old in resolved_new.parents:
            raise ConflictError(
                "New path must not be inside the current path",
                details={"path": str(new_root), "current": str(old_root)},
            )

        logger.info(f"Relocating storage from {old_root} to {new_root}")

        await atomic_io.ensure_dir(new_root)
        if await atomic_io.path_exists(self.database_path):
            await atomic_io.copy_file(self.database_path, new_root / DATABASE_FILE)
        for directory in DOCUMENT_DIRECTORIES.values():
            source = old_root / directory
            if await atomic_io.path_exists(source):
                await atomic_io.copy_tree(source, new_root / directory)
            else:
                await atomic_io.ensure_dir(new_root / directory)

        self._root = new_root
        logger.info(f"Storage relocated to {new_root}")

        if delete_old:
            await self._remove_old_root(old_root)

        return new_root

    async def _remove_old_root(self, old_root: Path) -> None:
        targets: list[tuple[Callable[[Path], Awaitable[Any]], Path]] = [
            (atomic_io.remove_file, old_root / DATABASE_FILE),
            *((atomic_io.remove_tree, old_root / d) for d in DOCUMENT_DIRECTORIES.values()),
        ]
        for remove, path in targets:
            try:
                await remove(path)
            except StoreError as e:
                logger.warning(f"Failed to delete old storage data at {path}: {e}")

    async def reset_all_data(self) -> DatabaseRecord:
        """Delete every document and replace the record with a fresh default.

        Returns:
            The new resident record
        """
        logger.info(f"Resetting all data in {self._root}")
        for doc_type in DOCUMENT_DIRECTORIES:
            directory = self.documents_dir(doc_type)
            await atomic_io.remove_tree(directory)
            await atomic_io.ensure_dir(directory)

        database = empty_database()
        await self._write_database(database)
        self._database = database
        return database

    async def stats(self) -> dict[str, Any]:
        """Counts and version information for diagnostics."""
        database = self.get()
        counts = {
            doc_type: len(await self._iter_document_files(doc_type))
            for doc_type in DOCUMENT_DIRECTORIES
        }
        return {
            "root": str(self._root),
            "version": database.version,
            "customers": len(database.customers),
            "products": len(database.products),
            "offers": counts["offer"],
            "invoices": counts["invoice"],
        }
