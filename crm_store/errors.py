"""
Error types for the CRM local store.

This module defines every exception raised by the storage layer and the
services built on top of it:
- StoreError: Base exception
- NotFoundError, MalformedError, PermissionDeniedError, WriteFailedError:
  file-level failures
- NotInitializedError, InitializationFailedError: store lifecycle failures
- MigrationIncompleteError, MigrationCatalogError, MigrationFailedError:
  schema upgrade failures
- InvalidTemplateError: document number template rejected
- ValidationError, ConflictError: domain input problems

Invariants:
    - All errors inherit from StoreError
    - Every error carries a stable code for programmatic handling
    - The original cause (if any) is kept on the error and chained
    - Error messages are actionable
"""

from __future__ import annotations

from typing import Any


class StoreError(Exception):
    """Base exception for all store errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
        cause: Underlying exception, if any
    """

    default_code = "STORE_ERROR"

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause


class NotFoundError(StoreError):
    """A file, document or record does not exist."""

    default_code = "NOT_FOUND"

    def __init__(
        self,
        message: str,
        resource_type: str | None = None,
        resource_id: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            details={"resource_type": resource_type, "resource_id": resource_id},
            cause=cause,
        )
        self.resource_type = resource_type
        self.resource_id = resource_id


class MalformedError(StoreError):
    """Stored content could not be parsed or does not match its schema."""

    default_code = "MALFORMED"


class PermissionDeniedError(StoreError):
    """The operating system refused a read, write or directory operation."""

    default_code = "PERMISSION_DENIED"


class WriteFailedError(StoreError):
    """An atomic write could not be committed."""

    default_code = "WRITE_FAILED"


class NotInitializedError(StoreError):
    """The store was used before initialize() completed."""

    default_code = "NOT_INITIALIZED"


class InitializationFailedError(StoreError):
    """The store could not be brought up on its storage root.

    Raised when:
    - database.json exists but cannot be read, parsed or validated
    - database.json was written by a newer schema version
    - a migration failed or left the record behind the current version
    """

    default_code = "INITIALIZATION_FAILED"


class MigrationIncompleteError(StoreError):
    """Migrations stopped before reaching the current schema version."""

    default_code = "MIGRATION_INCOMPLETE"

    def __init__(
        self,
        message: str,
        reached_version: str | None = None,
        target_version: str | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"reached_version": reached_version, "target_version": target_version},
        )
        self.reached_version = reached_version
        self.target_version = target_version


class MigrationCatalogError(MigrationIncompleteError):
    """The migration catalog does not form a single chain to the current version."""

    default_code = "MIGRATION_CATALOG_INVALID"

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or []
        self.details["problems"] = self.problems


class MigrationFailedError(StoreError):
    """A migration transform raised while reshaping the record."""

    default_code = "MIGRATION_FAILED"

    def __init__(
        self,
        message: str,
        from_version: str,
        to_version: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            details={"from_version": from_version, "to_version": to_version},
            cause=cause,
        )
        self.from_version = from_version
        self.to_version = to_version


class InvalidTemplateError(StoreError):
    """A document number template failed validation."""

    default_code = "INVALID_TEMPLATE"

    def __init__(self, message: str, template: str, errors: list[str]) -> None:
        super().__init__(message, details={"template": template, "errors": errors})
        self.template = template
        self.errors = errors


class ValidationError(StoreError):
    """Input to a domain operation is invalid.

    Attributes:
        field_errors: Mapping of field name to messages
    """

    default_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field_errors: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(message, details={"fields": field_errors or {}})
        self.field_errors = field_errors or {}


class ConflictError(StoreError):
    """The operation conflicts with existing data."""

    default_code = "CONFLICT"
