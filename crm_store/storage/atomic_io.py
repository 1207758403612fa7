"""
Atomic JSON file I/O for the CRM local store.

Every file the store owns is a single pretty-printed JSON document. This
module reads and writes those documents and provides the few directory
helpers the store needs. Blocking calls run in the event loop's default
executor so that coroutines only suspend at I/O boundaries.

Write protocol:
    1. Create parent directories (recursive, idempotent)
    2. Serialize to a temporary file in the destination directory
    3. Flush and fsync the temporary file
    4. os.replace() the temporary file over the destination

Invariants:
    - A crash at any step leaves either the previous complete file or the
      new complete file on disk, never a partial one
    - Temporary files never end in ".json", so directory listings skip them
    - Every OS error is wrapped in a StoreError subclass with its cause

How to change safely:
    - Keep the temporary file in the same directory as the destination;
      rename is only atomic within one filesystem
    - Do not add partial-update helpers; callers rewrite whole documents
"""

from __future__ import annotations

import asyncio
import functools
import json
import logging
import os
import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from ..errors import MalformedError, NotFoundError, PermissionDeniedError, WriteFailedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

JSON_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"


async def _run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking call in the default executor."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args))


def read_json_sync(path: str | Path) -> Any:
    """Read and parse a JSON file.

    Args:
        path: File to read

    Returns:
        Parsed JSON value

    Raises:
        NotFoundError: If the file does not exist
        PermissionDeniedError: If the file cannot be read
        MalformedError: If the content is not valid UTF-8 JSON
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise NotFoundError(
            f"File not found: {path}", resource_type="file", resource_id=str(path), cause=e
        ) from e
    except UnicodeDecodeError as e:
        raise MalformedError(f"File is not valid UTF-8: {path}", cause=e) from e
    except OSError as e:
        raise PermissionDeniedError(f"Failed to read file: {path}", cause=e) from e

    try:
        return json.loads(content)
    except json.JSONDecodeError as e:
        raise MalformedError(
            f"Invalid JSON in file: {path}",
            details={"path": str(path), "line": e.lineno, "column": e.colno},
            cause=e,
        ) from e


def write_json_sync(path: str | Path, value: Any) -> None:
    """Write a JSON value to a file atomically.

    Args:
        path: Destination file
        value: JSON-serializable value

    Raises:
        PermissionDeniedError: If the parent directory cannot be created
        WriteFailedError: If serialization or the commit step fails
    """
    path = Path(path)
    ensure_dir_sync(path.parent)

    try:
        content = json.dumps(value, indent=2, ensure_ascii=False) + "\n"
    except (TypeError, ValueError) as e:
        raise WriteFailedError(f"Value is not JSON serializable: {path}", cause=e) from e

    tmp_path: str | None = None
    try:
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=TEMP_SUFFIX
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        tmp_path = None
    except OSError as e:
        raise WriteFailedError(
            f"Failed to write file: {path}", details={"path": str(path)}, cause=e
        ) from e
    finally:
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                logger.warning(f"Failed to remove temporary file: {tmp_path}")

    _fsync_dir(path.parent)


def _fsync_dir(directory: Path) -> None:
    """Persist a rename by syncing its directory (POSIX only)."""
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(str(directory), os.O_RDONLY | os.O_DIRECTORY)
    except OSError as e:
        logger.debug(f"Failed to open directory {directory} for fsync: {e}")
        return
    try:
        os.fsync(fd)
    except OSError as e:
        logger.debug(f"Failed to fsync directory {directory}: {e}")
    finally:
        os.close(fd)


def ensure_dir_sync(directory: str | Path) -> None:
    """Create a directory and its parents if missing."""
    try:
        Path(directory).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise PermissionDeniedError(f"Failed to create directory: {directory}", cause=e) from e


def list_subdirectories_sync(directory: str | Path) -> list[str]:
    """List subdirectory names of a directory (empty if it does not exist)."""
    directory = Path(directory)
    if not directory.is_dir():
        return []
    try:
        return sorted(entry.name for entry in directory.iterdir() if entry.is_dir())
    except OSError as e:
        raise PermissionDeniedError(f"Failed to list directory: {directory}", cause=e) from e


def list_json_files_sync(directory: str | Path) -> list[Path]:
    """List regular *.json files in a directory (non-recursive).

    Raises:
        NotFoundError: If the directory does not exist
    """
    directory = Path(directory)
    if not directory.is_dir():
        raise NotFoundError(
            f"Directory not found: {directory}",
            resource_type="directory",
            resource_id=str(directory),
        )
    try:
        return sorted(
            entry
            for entry in directory.iterdir()
            if entry.is_file() and entry.name.endswith(JSON_SUFFIX)
        )
    except OSError as e:
        raise PermissionDeniedError(f"Failed to list directory: {directory}", cause=e) from e


def remove_file_sync(path: str | Path) -> None:
    """Delete a file.

    Raises:
        NotFoundError: If the file does not exist
    """
    path = Path(path)
    try:
        path.unlink()
    except FileNotFoundError as e:
        raise NotFoundError(
            f"File not found: {path}", resource_type="file", resource_id=str(path), cause=e
        ) from e
    except OSError as e:
        raise PermissionDeniedError(f"Failed to delete file: {path}", cause=e) from e


def remove_tree_sync(directory: str | Path) -> None:
    """Delete a directory tree; a missing tree is not an error."""
    try:
        shutil.rmtree(directory)
    except FileNotFoundError:
        return
    except OSError as e:
        raise PermissionDeniedError(f"Failed to delete directory: {directory}", cause=e) from e


def copy_tree_sync(source: str | Path, destination: str | Path) -> None:
    """Copy a directory tree, merging into an existing destination."""
    try:
        shutil.copytree(source, destination, dirs_exist_ok=True)
    except (OSError, shutil.Error) as e:
        raise WriteFailedError(f"Failed to copy {source} to {destination}", cause=e) from e


def copy_file_sync(source: str | Path, destination: str | Path) -> None:
    """Copy a single file, preserving metadata."""
    try:
        shutil.copy2(source, destination)
    except OSError as e:
        raise WriteFailedError(f"Failed to copy {source} to {destination}", cause=e) from e


async def read_json(path: str | Path) -> Any:
    """Read and parse a JSON file. See read_json_sync()."""
    return await _run_blocking(read_json_sync, path)


async def write_json(path: str | Path, value: Any) -> None:
    """Write a JSON value atomically. See write_json_sync()."""
    await _run_blocking(write_json_sync, path, value)


async def ensure_dir(directory: str | Path) -> None:
    await _run_blocking(ensure_dir_sync, directory)


async def list_subdirectories(directory: str | Path) -> list[str]:
    return await _run_blocking(list_subdirectories_sync, directory)


async def list_json_files(directory: str | Path) -> list[Path]:
    return await _run_blocking(list_json_files_sync, directory)


async def remove_file(path: str | Path) -> None:
    await _run_blocking(remove_file_sync, path)


async def remove_tree(directory: str | Path) -> None:
    await _run_blocking(remove_tree_sync, directory)


async def copy_tree(source: str | Path, destination: str | Path) -> None:
    await _run_blocking(copy_tree_sync, source, destination)


async def copy_file(source: str | Path, destination: str | Path) -> None:
    await _run_blocking(copy_file_sync, source, destination)


async def path_exists(path: str | Path) -> bool:
    return await _run_blocking(os.path.exists, str(path))
