"""
Unit tests for atomic JSON file I/O.

Tests cover:
- Round trip and pretty-printed output
- Typed read failures (missing, malformed)
- Crash safety of the write protocol
- Directory helpers
"""

import json
import logging
import os
import tempfile
from pathlib import Path

import pytest

from crm_store.errors import MalformedError, NotFoundError, WriteFailedError
from crm_store.storage import atomic_io


class TestReadWrite:
    """Tests for read_json / write_json."""

    @pytest.fixture
    def data_dir(self):
        """Create temporary data directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.mark.asyncio
    async def test_write_then_read(self, data_dir):
        """A written value reads back equal."""
        path = data_dir / "value.json"
        value = {"name": "Café", "items": [1, 2, 3], "nested": {"ok": True}}

        await atomic_io.write_json(path, value)

        assert await atomic_io.read_json(path) == value

    def test_output_is_pretty_printed_utf8(self, data_dir):
        """Files use 2-space indentation and keep non-ASCII text."""
        path = data_dir / "value.json"
        atomic_io.write_json_sync(path, {"symbol": "€", "list": [1]})

        text = path.read_text(encoding="utf-8")
        assert '\n  "symbol": "€"' in text
        assert text.endswith("\n")

    def test_creates_missing_parent_directories(self, data_dir):
        """Parent directories are created recursively."""
        path = data_dir / "a" / "b" / "c" / "value.json"
        atomic_io.write_json_sync(path, [1])

        assert json.loads(path.read_text()) == [1]

    def test_read_missing_file(self, data_dir):
        """Reading a missing file raises NotFoundError."""
        with pytest.raises(NotFoundError) as exc_info:
            atomic_io.read_json_sync(data_dir / "missing.json")
        assert exc_info.value.code == "NOT_FOUND"

    def test_read_malformed_file(self, data_dir):
        """Invalid JSON raises MalformedError with the cause kept."""
        path = data_dir / "broken.json"
        path.write_text('{"version": "1.2.0",', encoding="utf-8")

        with pytest.raises(MalformedError) as exc_info:
            atomic_io.read_json_sync(path)
        assert isinstance(exc_info.value.cause, json.JSONDecodeError)
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_unserializable_value(self, data_dir):
        """A value json cannot encode fails before touching the file."""
        path = data_dir / "value.json"
        atomic_io.write_json_sync(path, {"old": True})

        with pytest.raises(WriteFailedError):
            atomic_io.write_json_sync(path, {"bad": object()})

        assert json.loads(path.read_text()) == {"old": True}


class TestCrashSafety:
    """Interrupting a write never leaves a partial file."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    def test_failed_commit_keeps_previous_file(self, data_dir, monkeypatch):
        """If the rename fails, the previous complete file is still there."""
        path = data_dir / "database.json"
        atomic_io.write_json_sync(path, {"version": "1.1.0"})

        def failing_replace(src, dst):
            raise OSError("simulated crash before commit")

        monkeypatch.setattr(atomic_io.os, "replace", failing_replace)

        with pytest.raises(WriteFailedError):
            atomic_io.write_json_sync(path, {"version": "1.2.0", "big": "x" * 10000})

        assert json.loads(path.read_text()) == {"version": "1.1.0"}

    def test_failed_commit_removes_temporary_file(self, data_dir, monkeypatch):
        """The temporary file is cleaned up after a failed commit."""
        path = data_dir / "database.json"

        def failing_replace(src, dst):
            raise OSError("simulated crash before commit")

        monkeypatch.setattr(atomic_io.os, "replace", failing_replace)

        with pytest.raises(WriteFailedError):
            atomic_io.write_json_sync(path, {"version": "1.2.0"})

        assert os.listdir(data_dir) == []

    def test_failed_flush_keeps_previous_file(self, data_dir, monkeypatch):
        """A failure while syncing the temporary file leaves the old content."""
        path = data_dir / "database.json"
        atomic_io.write_json_sync(path, {"n": 1})

        def failing_fsync(fd):
            raise OSError("disk full")

        monkeypatch.setattr(atomic_io.os, "fsync", failing_fsync)

        with pytest.raises(WriteFailedError):
            atomic_io.write_json_sync(path, {"n": 2})

        assert json.loads(path.read_text()) == {"n": 1}
        assert sorted(os.listdir(data_dir)) == ["database.json"]

    @pytest.mark.skipif(not hasattr(os, "O_DIRECTORY"), reason="directory fsync is POSIX only")
    def test_directory_sync_failure_is_logged(self, data_dir, monkeypatch, caplog):
        """The file is committed even when the directory cannot be synced."""
        path = data_dir / "database.json"
        real_fsync = os.fsync
        calls = []

        def fsync_file_only(fd):
            calls.append(fd)
            if len(calls) > 1:
                raise OSError("not supported")
            real_fsync(fd)

        monkeypatch.setattr(atomic_io.os, "fsync", fsync_file_only)
        caplog.set_level(logging.DEBUG, logger="crm_store.storage.atomic_io")

        atomic_io.write_json_sync(path, {"n": 3})

        assert json.loads(path.read_text()) == {"n": 3}
        assert len(calls) == 2
        assert "Failed to fsync directory" in caplog.text


class TestDirectoryHelpers:
    """Tests for listing and removal helpers."""

    @pytest.fixture
    def data_dir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.mark.asyncio
    async def test_list_subdirectories_missing_dir(self, data_dir):
        """A missing directory has no subdirectories."""
        assert await atomic_io.list_subdirectories(data_dir / "nope") == []

    @pytest.mark.asyncio
    async def test_list_subdirectories(self, data_dir):
        (data_dir / "2025").mkdir()
        (data_dir / "2024").mkdir()
        (data_dir / "file.json").write_text("{}")

        assert await atomic_io.list_subdirectories(data_dir) == ["2024", "2025"]

    @pytest.mark.asyncio
    async def test_list_json_files_skips_temporary_files(self, data_dir):
        """Only *.json files are listed; leftover temp files are ignored."""
        (data_dir / "INV-2025-0001.json").write_text("{}")
        (data_dir / ".INV-2025-0002.json.abc123.tmp").write_text("{")
        (data_dir / "notes.txt").write_text("")

        files = await atomic_io.list_json_files(data_dir)

        assert [f.name for f in files] == ["INV-2025-0001.json"]

    @pytest.mark.asyncio
    async def test_list_json_files_missing_dir(self, data_dir):
        with pytest.raises(NotFoundError):
            await atomic_io.list_json_files(data_dir / "nope")

    @pytest.mark.asyncio
    async def test_remove_file_missing(self, data_dir):
        with pytest.raises(NotFoundError):
            await atomic_io.remove_file(data_dir / "missing.json")

    @pytest.mark.asyncio
    async def test_remove_tree_missing_is_ok(self, data_dir):
        await atomic_io.remove_tree(data_dir / "missing")
