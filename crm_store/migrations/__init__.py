"""
Database record migrations.

MIGRATIONS is the ordered catalog applied when a database.json older than
CURRENT_DATABASE_VERSION is loaded.

When adding a migration:
    1. Create v{from}_to_v{to}.py with FROM_VERSION, TO_VERSION and migrate()
    2. Append it to MIGRATIONS
    3. Bump CURRENT_DATABASE_VERSION in crm_store.models.database

Invariants:
    - MIGRATIONS is validated when default_engine() builds an engine
"""

from ..models.database import CURRENT_DATABASE_VERSION
from . import v1_0_0_to_v1_1_0, v1_1_0_to_v1_2_0
from .engine import (
    MigrationDefinition,
    MigrationEngine,
    compare_versions,
    parse_version,
    validate_catalog,
)

MIGRATIONS: tuple[MigrationDefinition, ...] = (
    MigrationDefinition(
        from_version=v1_0_0_to_v1_1_0.FROM_VERSION,
        to_version=v1_0_0_to_v1_1_0.TO_VERSION,
        transform=v1_0_0_to_v1_1_0.migrate,
        description="Document number templates and per-year counters",
    ),
    MigrationDefinition(
        from_version=v1_1_0_to_v1_2_0.FROM_VERSION,
        to_version=v1_1_0_to_v1_2_0.TO_VERSION,
        transform=v1_1_0_to_v1_2_0.migrate,
        description="Product catalog",
    ),
)


def default_engine() -> MigrationEngine:
    """Engine over the built-in catalog, targeting the current version."""
    return MigrationEngine(MIGRATIONS, current_version=CURRENT_DATABASE_VERSION)


__all__ = [
    "MIGRATIONS",
    "MigrationDefinition",
    "MigrationEngine",
    "compare_versions",
    "default_engine",
    "parse_version",
    "validate_catalog",
]
