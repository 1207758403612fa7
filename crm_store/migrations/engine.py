"""
Schema migration engine for the database record.

The engine is a state machine over schema versions: states are version
strings, transitions are MigrationDefinitions. A stored record starts at
whatever version is on disk and is walked forward until it reaches the
engine's current version.

Invariants:
    - The catalog, read in order, is one unbroken chain ending at the
      current version (checked when the engine is built)
    - No two definitions share a from_version
    - Transforms are pure: they never mutate their input
    - A record is either fully migrated or the run raises; nothing
      half-migrated is returned

How to change safely:
    - Append one definition whose from_version is the previous to_version
    - Never edit or reorder a released definition
    - Keep each transform self-contained; it only knows its source shape

Example:
    >>> engine = MigrationEngine(MIGRATIONS, current_version="1.2.0")
    >>> engine.needs_migration("1.0.0")
    True
    >>> record = engine.run_migrations({"version": "1.0.0", ...})
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from ..errors import (
    MalformedError,
    MigrationCatalogError,
    MigrationFailedError,
    MigrationIncompleteError,
)

logger = logging.getLogger(__name__)

RawRecord = dict[str, Any]
Transform = Callable[[RawRecord], RawRecord]


def parse_version(version: str) -> tuple[int, ...]:
    """Split a dotted version into integer components.

    Raises:
        ValueError: If a component is not a non-negative integer
    """
    parts = version.strip().split(".")
    if not all(part.isdigit() for part in parts):
        raise ValueError(f"Invalid version '{version}': expected dot-separated integers")
    return tuple(int(part) for part in parts)


def compare_versions(a: str, b: str) -> int:
    """Compare two semantic versions.

    Missing trailing components count as zero, so "1.2" equals "1.2.0".

    Returns:
        Negative if a < b, zero if equal, positive if a > b
    """
    parts_a = parse_version(a)
    parts_b = parse_version(b)
    length = max(len(parts_a), len(parts_b))
    parts_a += (0,) * (length - len(parts_a))
    parts_b += (0,) * (length - len(parts_b))
    return (parts_a > parts_b) - (parts_a < parts_b)


@dataclass(frozen=True)
class MigrationDefinition:
    """One step in the migration catalog.

    Attributes:
        from_version: Version the transform accepts
        to_version: Version the transform produces
        transform: Pure function from the source shape to the target shape
        description: Human-readable summary for logs
    """

    from_version: str
    to_version: str
    transform: Transform
    description: str = ""

    def __str__(self) -> str:
        return f"v{self.from_version} -> v{self.to_version}"


def validate_catalog(
    catalog: Sequence[MigrationDefinition],
    current_version: str,
) -> list[str]:
    """Check that a catalog forms one chain ending at the current version.

    Returns:
        List of problems (empty when the catalog is valid)
    """
    problems: list[str] = []
    seen_from: set[str] = set()
    previous: MigrationDefinition | None = None

    for definition in catalog:
        try:
            if compare_versions(definition.to_version, definition.from_version) <= 0:
                problems.append(f"Migration {definition} does not move forward")
        except ValueError as e:
            problems.append(f"Migration {definition}: {e}")
            previous = definition
            continue

        key = ".".join(str(p) for p in parse_version(definition.from_version))
        if key in seen_from:
            problems.append(f"Duplicate migration from v{definition.from_version}")
        seen_from.add(key)

        if previous is not None and compare_versions(
            definition.from_version, previous.to_version
        ) != 0:
            problems.append(
                f"Gap in migration chain: {previous} is followed by {definition}"
            )
        previous = definition

    if previous is not None and compare_versions(previous.to_version, current_version) != 0:
        problems.append(
            f"Migration chain ends at v{previous.to_version}, "
            f"expected current version v{current_version}"
        )

    return problems


class MigrationEngine:
    """Applies catalog migrations to raw database records.

    Attributes:
        catalog: Ordered migration definitions
        current_version: Version every migrated record ends at
    """

    def __init__(
        self,
        catalog: Sequence[MigrationDefinition],
        current_version: str,
        validate: bool = True,
    ) -> None:
        """Initialize the engine.

        Args:
            catalog: Ordered migration definitions
            current_version: Target schema version
            validate: Check the catalog chain eagerly

        Raises:
            MigrationCatalogError: If validate is set and the chain is broken
        """
        self.catalog = tuple(catalog)
        self.current_version = current_version

        if validate:
            problems = validate_catalog(self.catalog, current_version)
            if problems:
                raise MigrationCatalogError(
                    f"Invalid migration catalog: {problems[0]}", problems=problems
                )

    def needs_migration(self, stored_version: str) -> bool:
        """Whether a record at stored_version is behind the current version."""
        return compare_versions(stored_version, self.current_version) < 0

    def run_migrations(self, record: RawRecord) -> RawRecord:
        """Bring a raw record up to the current version.

        Args:
            record: Raw record as read from disk

        Returns:
            The record reshaped to the current schema (the input itself when
            it is already current)

        Raises:
            MalformedError: If the record has no usable version
            MigrationFailedError: If a transform raises
            MigrationIncompleteError: If the chain stops before the current
                version
        """
        version = record.get("version") if isinstance(record, dict) else None
        if not isinstance(version, str):
            raise MalformedError("Database record has no version string")
        try:
            parse_version(version)
        except ValueError as e:
            raise MalformedError(f"Database record has an invalid version: {version}", cause=e) from e

        if not self.needs_migration(version):
            return record

        logger.info(f"Migrating database from v{version} to v{self.current_version}")

        running_version = version
        data = record
        applied: set[int] = set()

        while compare_versions(running_version, self.current_version) < 0:
            step = self._find_step(running_version, applied)
            if step is None:
                break
            index, definition = step

            logger.info(f"Applying migration {definition}")
            try:
                data = definition.transform(data)
            except Exception as e:
                logger.error(f"Migration {definition} failed: {e}")
                raise MigrationFailedError(
                    f"Migration {definition} failed: {e}",
                    from_version=definition.from_version,
                    to_version=definition.to_version,
                    cause=e,
                ) from e

            if not isinstance(data, dict) or data.get("version") != definition.to_version:
                raise MigrationFailedError(
                    f"Migration {definition} did not produce a v{definition.to_version} record",
                    from_version=definition.from_version,
                    to_version=definition.to_version,
                )

            applied.add(index)
            running_version = definition.to_version

        if compare_versions(running_version, self.current_version) != 0:
            raise MigrationIncompleteError(
                f"Migration incomplete: reached v{running_version} but expected "
                f"v{self.current_version}. A migration from v{running_version} is missing.",
                reached_version=running_version,
                target_version=self.current_version,
            )

        logger.info(f"Migration complete. Database is now at v{self.current_version}")
        return data

    def _find_step(
        self, running_version: str, applied: set[int]
    ) -> tuple[int, MigrationDefinition] | None:
        for index, definition in enumerate(self.catalog):
            if index in applied:
                continue
            try:
                matches = compare_versions(running_version, definition.from_version) == 0
            except ValueError:
                continue
            if matches:
                return index, definition
        return None
