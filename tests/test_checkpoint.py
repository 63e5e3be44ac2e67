# tests/test_checkpoint.py
"""
Unit tests for the WAL checkpoint coordinator (utils.backup.checkpoint_store).
"""

import shutil
import sqlite3
from unittest.mock import MagicMock, patch

import pytest

from utils.backup import checkpoint_store
from utils.db import StoreHandle
from utils.errors import SourceMissing, StoreBusy


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def handle(tmp_path):
    """Open store handle with one company written through the WAL."""
    h = StoreHandle(tmp_path / "data" / "invoice.db")
    conn = h.connection
    conn.execute("INSERT INTO companies (name) VALUES (?)", ("Checkpoint Co",))
    conn.commit()
    yield h
    h.close()


def _busy_handle(db_path):
    mock_handle = MagicMock()
    mock_handle.db_path = db_path
    mock_handle.connection.execute.side_effect = sqlite3.OperationalError(
        "database is locked"
    )
    return mock_handle


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_checkpoint_makes_store_file_self_contained(handle, tmp_path):
    """A raw copy of the store file alone holds every committed row."""
    checkpoint_store(handle)

    wal_path = handle.db_path.with_name(handle.db_path.name + "-wal")
    assert not wal_path.exists() or wal_path.stat().st_size == 0

    copy_path = tmp_path / "copy.db"
    shutil.copyfile(handle.db_path, copy_path)
    conn = sqlite3.connect(copy_path)
    try:
        names = [r[0] for r in conn.execute("SELECT name FROM companies")]
    finally:
        conn.close()
    assert names == ["Checkpoint Co"]


def test_checkpoint_keeps_handle_open(handle):
    checkpoint_store(handle)

    assert handle.is_open
    assert handle.ping()


def test_checkpoint_is_idempotent(handle):
    checkpoint_store(handle)
    after_first = handle.db_path.read_bytes()

    checkpoint_store(handle)
    after_second = handle.db_path.read_bytes()

    assert after_first == after_second


def test_checkpoint_missing_store_file_raises_source_missing(tmp_path):
    mock_handle = MagicMock()
    mock_handle.db_path = tmp_path / "data" / "missing.db"

    with pytest.raises(SourceMissing):
        checkpoint_store(mock_handle)

    mock_handle.connection.execute.assert_not_called()


def test_checkpoint_retries_then_raises_store_busy(tmp_path):
    db_path = tmp_path / "invoice.db"
    db_path.write_bytes(b"")
    mock_handle = _busy_handle(db_path)

    with patch("utils.backup.time.sleep") as mock_sleep:
        with pytest.raises(StoreBusy) as exc_info:
            checkpoint_store(mock_handle, max_attempts=3, retry_delay=0.5)

    assert mock_handle.connection.execute.call_count == 3
    assert mock_sleep.call_count == 2
    mock_sleep.assert_called_with(0.5)
    assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
    assert exc_info.value.http_status == 503


def test_checkpoint_busy_result_row_counts_as_failure(tmp_path):
    """PRAGMA wal_checkpoint reports busy=1 instead of raising."""
    db_path = tmp_path / "invoice.db"
    db_path.write_bytes(b"")
    mock_handle = MagicMock()
    mock_handle.db_path = db_path
    mock_handle.connection.execute.return_value.fetchone.return_value = (1, 10, 4)

    with patch("utils.backup.time.sleep"):
        with pytest.raises(StoreBusy):
            checkpoint_store(mock_handle, max_attempts=2)

    assert mock_handle.connection.execute.call_count == 2


def test_checkpoint_succeeds_after_transient_lock(tmp_path):
    db_path = tmp_path / "invoice.db"
    db_path.write_bytes(b"")
    mock_handle = MagicMock()
    mock_handle.db_path = db_path
    ok_cursor = MagicMock()
    ok_cursor.fetchone.return_value = (0, 0, 0)
    mock_handle.connection.execute.side_effect = [
        sqlite3.OperationalError("database is locked"),
        ok_cursor,
    ]

    with patch("utils.backup.time.sleep") as mock_sleep:
        checkpoint_store(mock_handle, max_attempts=3)

    assert mock_handle.connection.execute.call_count == 2
    mock_sleep.assert_called_once()


def test_checkpoint_rejects_zero_attempts(handle):
    with pytest.raises(ValueError):
        checkpoint_store(handle, max_attempts=0)
