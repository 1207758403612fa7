"""
Administrative CLI for a CRM local storage root.

Commands:
- info: Show the root, schema version and record counts
- migrate: Initialize the root, migrating database.json if it is stale
- relocate: Copy all data to a new root
- reset: Delete every document and reset the database record
- validate-template: Check a document number template and preview it

Usage:
    crm-store --root ./data info
    crm-store --root ./data migrate
    crm-store --root ./data relocate /mnt/backup/crm --delete-old
    crm-store --root ./data reset --yes
    crm-store validate-template "{PREFIX}-{YEAR}-{NUMBER:4}" --prefix INV

Invariants:
    - Any StoreError exits with code 1 and a one-line message on stderr
    - reset refuses to run without --yes
    - An invalid template exits with code 1
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Any

from ..errors import StoreError
from ..migrations import compare_versions
from ..numbering import preview, validate
from ..storage import DATABASE_FILE, PersistentStore, atomic_io

logger = logging.getLogger(__name__)


class StoreCLI:
    """Commands over one storage root.

    Example:
        >>> cli = StoreCLI("./data")
        >>> asyncio.run(cli.info())
    """

    def __init__(self, root: str) -> None:
        self.store = PersistentStore(root)

    async def info(self) -> dict[str, Any]:
        """Initialize the store and return its statistics."""
        await self.store.initialize()
        return await self.store.stats()

    async def migrate(self) -> tuple[str | None, str]:
        """Bring database.json to the current version.

        Returns:
            (version found on disk or None for a new root, version now)
        """
        stored_version = None
        path = self.store.database_path
        if await atomic_io.path_exists(path):
            raw = await atomic_io.read_json(path)
            if isinstance(raw, dict) and isinstance(raw.get("version"), str):
                stored_version = raw["version"]

        database = await self.store.initialize()
        return stored_version, database.version

    async def relocate(self, new_root: str, delete_old: bool) -> str:
        await self.store.initialize()
        return str(await self.store.relocate(new_root, delete_old=delete_old))

    async def reset(self) -> None:
        await self.store.initialize()
        await self.store.reset_all_data()


def validate_template_command(template: str, prefix: str) -> int:
    """Print the validation result for a template; returns the exit code."""
    result = validate(template)
    if result.valid:
        print(f"Template is valid: {template}")
        print(f"Example: {preview(template, prefix, 42, 7)}")
    else:
        print(f"Template is invalid with {len(result.errors)} error(s):")
        for error in result.errors:
            print(f"  - {error}")
    for warning in result.warnings:
        print(f"  warning: {warning}")
    return 0 if result.valid else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crm-store", description="CRM local store administration tool"
    )
    parser.add_argument(
        "--root",
        default=os.getenv("CRM_STORAGE_PATH", os.getenv("STORAGE_PATH", "./data")),
        help="Storage root (default: $CRM_STORAGE_PATH or ./data)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log store activity")
    subparsers = parser.add_subparsers(dest="command", required=True)

    info_parser = subparsers.add_parser("info", help="Show version and record counts")
    info_parser.add_argument("--json", action="store_true", help="Print JSON")

    subparsers.add_parser("migrate", help="Migrate database.json to the current version")

    relocate_parser = subparsers.add_parser("relocate", help="Copy all data to a new root")
    relocate_parser.add_argument("new_root", help="Destination directory")
    relocate_parser.add_argument(
        "--delete-old", action="store_true", help="Remove the data from the old root afterwards"
    )

    reset_parser = subparsers.add_parser("reset", help="Delete all documents and settings")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")

    template_parser = subparsers.add_parser(
        "validate-template", help="Validate a document number template"
    )
    template_parser.add_argument("template", help="Template, e.g. '{PREFIX}-{YEAR}-{NUMBER:4}'")
    template_parser.add_argument("--prefix", default="INV", help="Prefix used in the preview")

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point; returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.command == "validate-template":
        return validate_template_command(args.template, args.prefix)

    if args.command == "reset" and not args.yes:
        print("Refusing to reset without --yes", file=sys.stderr)
        return 1

    cli = StoreCLI(args.root)
    try:
        if args.command == "info":
            stats = asyncio.run(cli.info())
            if args.json:
                print(json.dumps(stats, indent=2, sort_keys=True))
            else:
                for key, value in stats.items():
                    print(f"{key}: {value}")

        elif args.command == "migrate":
            before, after = asyncio.run(cli.migrate())
            if before is None:
                print(f"Created new database at v{after} in {os.path.join(args.root, DATABASE_FILE)}")
            elif compare_versions(before, after) < 0:
                print(f"Migrated database from v{before} to v{after}")
            else:
                print(f"Database is already at v{after}")

        elif args.command == "relocate":
            new_root = asyncio.run(cli.relocate(args.new_root, args.delete_old))
            print(f"Data copied to {new_root}")
            if args.delete_old:
                print(f"Old data removed from {args.root}")

        elif args.command == "reset":
            asyncio.run(cli.reset())
            print(f"All data in {args.root} has been reset")

    except StoreError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
