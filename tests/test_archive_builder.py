# tests/test_archive_builder.py
"""
Unit tests for streaming archive generation in utils.backup.
"""

import io
import zipfile
import zlib
from datetime import datetime
from pathlib import Path

import pytest

from utils.backup import (
    ArchiveEntry,
    EntryKind,
    backup_filename,
    build_backup_entries,
    get_backup_stats,
    stream_file,
    stream_zip_archive,
)
from utils.errors import ArchiveWriteFailed, SourceMissing
from utils.path_manager import PathManager


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def pm(tmp_path):
    return PathManager(tmp_path)


@pytest.fixture
def uploads_tree(pm):
    """Upload tree with nested company assets."""
    company_dir = pm.get_uploads_dir() / "companies" / "1"
    company_dir.mkdir(parents=True)
    (company_dir / "logo.png").write_bytes(b"\x89PNG logo bytes")
    (company_dir / "stamp.png").write_bytes(b"\x89PNG stamp bytes" * 5000)
    (pm.uploads_dir / "readme.txt").write_text("hello")
    return pm.uploads_dir


def _open_archive(chunks) -> zipfile.ZipFile:
    return zipfile.ZipFile(io.BytesIO(b"".join(chunks)))


# ---------------------------------------------------------------------------
# Zip Streaming
# ---------------------------------------------------------------------------


def test_directory_entry_stores_full_subtree(uploads_tree):
    entries = [ArchiveEntry(uploads_tree, "uploads", EntryKind.DIRECTORY)]

    with _open_archive(stream_zip_archive(entries)) as zf:
        assert zf.testzip() is None
        names = set(zf.namelist())
        assert "uploads/" in names
        assert "uploads/companies/" in names
        assert "uploads/companies/1/" in names
        assert zf.read("uploads/companies/1/logo.png") == b"\x89PNG logo bytes"
        assert zf.read("uploads/companies/1/stamp.png") == b"\x89PNG stamp bytes" * 5000
        assert zf.read("uploads/readme.txt") == b"hello"
        assert zf.getinfo("uploads/readme.txt").compress_type == zipfile.ZIP_DEFLATED


def test_file_entries_use_maximum_compression(tmp_path):
    source = tmp_path / "notes.txt"
    payload = "".join(f"invoice {i} total {i * 37 % 1000}\n" for i in range(20000)).encode()
    source.write_bytes(payload)
    entries = [ArchiveEntry(source, "notes.txt", EntryKind.FILE)]

    compressor = zlib.compressobj(9, zlib.DEFLATED, -15)
    expected = compressor.compress(payload) + compressor.flush()

    with _open_archive(stream_zip_archive(entries, chunk_size=4096)) as zf:
        assert zf.getinfo("notes.txt").compress_size == len(expected)
        assert zf.read("notes.txt") == payload


def test_file_entry_stores_exact_bytes(tmp_path):
    source = tmp_path / "invoice.db"
    payload = bytes(range(256)) * 1000
    source.write_bytes(payload)
    entries = [ArchiveEntry(source, "invoice.db", EntryKind.FILE)]

    with _open_archive(stream_zip_archive(entries, chunk_size=4096)) as zf:
        assert zf.namelist() == ["invoice.db"]
        assert zf.read("invoice.db") == payload


def test_stream_yields_multiple_chunks(uploads_tree):
    """Bytes are produced incrementally, not as one materialized blob."""
    entries = [ArchiveEntry(uploads_tree, "uploads", EntryKind.DIRECTORY)]

    chunks = list(stream_zip_archive(entries, chunk_size=1024))

    assert len(chunks) > 1
    assert all(isinstance(c, bytes) and c for c in chunks)


def test_missing_directory_yields_single_empty_root(tmp_path):
    entries = [ArchiveEntry(tmp_path / "nope", "uploads", EntryKind.DIRECTORY)]

    with _open_archive(stream_zip_archive(entries)) as zf:
        assert zf.namelist() == ["uploads/"]


def test_empty_directory_yields_single_empty_root(pm):
    entries = build_backup_entries(pm, include_db=False, include_uploads=True)
    pm.get_uploads_dir()

    with _open_archive(stream_zip_archive(entries)) as zf:
        assert zf.namelist() == ["uploads/"]


def test_missing_file_entry_fails_before_streaming(tmp_path):
    entries = [ArchiveEntry(tmp_path / "missing.db", "invoice.db", EntryKind.FILE)]

    with pytest.raises(SourceMissing):
        stream_zip_archive(entries)


def test_source_vanishing_mid_stream_raises_archive_write_failed(tmp_path):
    source = tmp_path / "invoice.db"
    source.write_bytes(b"data")
    entries = [ArchiveEntry(source, "invoice.db", EntryKind.FILE)]

    stream = stream_zip_archive(entries)
    source.unlink()

    with pytest.raises(ArchiveWriteFailed) as exc_info:
        list(stream)
    assert isinstance(exc_info.value.__cause__, FileNotFoundError)


def test_abandoned_stream_closes_cleanly(uploads_tree):
    """Consumer disconnect: closing the generator raises nothing."""
    entries = [ArchiveEntry(uploads_tree, "uploads", EntryKind.DIRECTORY)]
    stream = stream_zip_archive(entries, chunk_size=512)

    first = next(stream)
    stream.close()

    assert first.startswith(b"PK\x03\x04")
    with pytest.raises(StopIteration):
        next(stream)


def test_truncated_stream_is_not_a_valid_archive(uploads_tree):
    entries = [ArchiveEntry(uploads_tree, "uploads", EntryKind.DIRECTORY)]
    stream = stream_zip_archive(entries, chunk_size=512)
    partial = next(stream)
    stream.close()

    with pytest.raises(zipfile.BadZipFile):
        zipfile.ZipFile(io.BytesIO(partial))


def test_full_entries_put_store_at_root(pm, uploads_tree):
    pm.get_data_dir()
    pm.db_path.write_bytes(b"SQLite format 3\x00rest")
    entries = build_backup_entries(pm, include_db=True, include_uploads=True)

    with _open_archive(stream_zip_archive(entries)) as zf:
        names = zf.namelist()
        assert names[0] == "invoice.db"
        assert "uploads/" in names
        assert zf.read("invoice.db") == b"SQLite format 3\x00rest"


# ---------------------------------------------------------------------------
# Raw File Streaming
# ---------------------------------------------------------------------------


def test_stream_file_returns_exact_bytes(tmp_path):
    source = tmp_path / "invoice.db"
    payload = b"x" * 200000
    source.write_bytes(payload)

    chunks = list(stream_file(source, chunk_size=65536))

    assert b"".join(chunks) == payload
    assert len(chunks) == 4


def test_stream_file_missing_raises_before_first_chunk(tmp_path):
    with pytest.raises(SourceMissing):
        stream_file(tmp_path / "missing.db")


# ---------------------------------------------------------------------------
# Names and Stats
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "kind,expected",
    [
        ("database", "invoice-backup-2024-03-05.db"),
        ("uploads", "invoice-uploads-2024-03-05.zip"),
        ("full", "invoice-full-backup-2024-03-05.zip"),
    ],
)
def test_backup_filename_uses_iso_date(kind, expected):
    assert backup_filename(kind, datetime(2024, 3, 5, 23, 59, 1)) == expected


def test_backup_stats_counts_uploads_and_rollback_copies(pm, uploads_tree):
    pm.get_data_dir()
    pm.db_path.write_bytes(b"a" * 2048)
    Path(f"{pm.db_path}.backup-1700000000000").write_bytes(b"old")

    stats = get_backup_stats(pm)

    assert stats["db_size_bytes"] == 2048
    assert stats["uploads_count"] == 3
    assert stats["uploads_size_bytes"] > 0
    assert stats["rollback_copies"] == ["invoice.db.backup-1700000000000"]


def test_backup_stats_on_empty_data_root(pm):
    stats = get_backup_stats(pm)

    assert stats["db_size_bytes"] == 0
    assert stats["uploads_count"] == 0
    assert stats["rollback_copies"] == []
