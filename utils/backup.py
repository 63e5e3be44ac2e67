# ------------------------------------------------------------------------------
# Backup Utilities for Invoice Manager
# utils/backup.py
# ------------------------------------------------------------------------------
"""
WAL checkpointing and streaming backup archive generation.
Implements zip streaming without a local archive file.
"""

import logging
import sqlite3
import sys
import time
import zipfile
from collections.abc import Generator, Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path

from utils.errors import ArchiveWriteFailed, SourceMissing, StoreBusy

logger = logging.getLogger(__name__)

DB_ARCHIVE_NAME = "invoice.db"
UPLOADS_ARCHIVE_NAME = "uploads"
CHUNK_SIZE = 64 * 1024

BACKUP_FILENAMES = {
    "database": "invoice-backup-{date}.db",
    "uploads": "invoice-uploads-{date}.zip",
    "full": "invoice-full-backup-{date}.zip",
}


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class ArchiveEntry:
    source_path: Path
    archive_name: str
    kind: EntryKind


def backup_filename(kind: str, started_at: datetime) -> str:
    """Date-stamped download filename (YYYY-MM-DD of the operation start)."""
    return BACKUP_FILENAMES[kind].format(date=started_at.date().isoformat())


# ------------------------------------------------------------------------------
# Checkpoint Coordinator
# ------------------------------------------------------------------------------


def checkpoint_store(handle, max_attempts: int = 3, retry_delay: float = 0.1) -> None:
    """
    Forces all WAL frames into the main store file and truncates the log,
    so a raw copy of the store file is self-consistent on its own.

    Args:
        handle: Open StoreHandle. It is neither closed nor reopened.
        max_attempts: Total attempts before giving up (>= 1).
        retry_delay: Seconds to wait between attempts.

    Raises:
        SourceMissing: The store file does not exist.
        StoreBusy: The checkpoint kept failing (usually a writer holds a lock).
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    if not Path(handle.db_path).exists():
        raise SourceMissing(f"Store file not found: {handle.db_path}")

    last_error = None
    for attempt in range(1, max_attempts + 1):
        try:
            row = handle.connection.execute("PRAGMA wal_checkpoint(TRUNCATE);").fetchone()
            # Row is (busy, log_frames, checkpointed_frames)
            if row is not None and row[0]:
                raise sqlite3.OperationalError("database is locked")
            logger.debug("Database checkpoint completed")
            return
        except sqlite3.OperationalError as e:
            last_error = e
            logger.warning(f"Checkpoint attempt {attempt}/{max_attempts} failed: {e}")
            if attempt < max_attempts:
                time.sleep(retry_delay)

    raise StoreBusy(
        f"Checkpoint failed after {max_attempts} attempts: {last_error}"
    ) from last_error


# ------------------------------------------------------------------------------
# Archive Builder
# ------------------------------------------------------------------------------


class _StreamSink:
    """
    Unseekable write target for ZipFile.

    ZipFile falls back to data descriptors when it cannot tell/seek, so each
    entry is written strictly forward and the buffer can be drained at any
    point.
    """

    def __init__(self):
        self._chunks: list[bytes] = []
        self.bytes_written = 0

    def write(self, data) -> int:
        if data:
            self._chunks.append(bytes(data))
            self.bytes_written += len(data)
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _iter_directory(root: Path) -> Generator[Path, None, None]:
    """Yields every path below root, parents before children, sorted."""
    for path in sorted(root.rglob("*")):
        yield path


def stream_zip_archive(
    entries: Iterable[ArchiveEntry], chunk_size: int = CHUNK_SIZE
) -> Generator[bytes, None, None]:
    """
    Streams a zip archive built from `entries`.

    Missing FILE sources are checked before the first byte is produced.
    A missing DIRECTORY source contributes only its empty root entry.

    Yields:
        bytes: Chunks of the archive, each produced only when pulled.

    Raises:
        SourceMissing: A FILE entry's source does not exist.
        ArchiveWriteFailed: Reading a source or encoding failed mid-stream.
    """
    entries = list(entries)
    for entry in entries:
        if entry.kind is EntryKind.FILE and not entry.source_path.is_file():
            raise SourceMissing(f"Backup source file not found: {entry.source_path}")

    return _generate_zip(entries, chunk_size)


def _generate_zip(
    entries: list[ArchiveEntry], chunk_size: int
) -> Generator[bytes, None, None]:
    sink = _StreamSink()
    file_count = 0

    try:
        with zipfile.ZipFile(
            sink, mode="w", compression=zipfile.ZIP_DEFLATED, compresslevel=9
        ) as zf:
            for entry in entries:
                if entry.kind is EntryKind.FILE:
                    yield from _write_file_entry(
                        zf, sink, entry.source_path, entry.archive_name, chunk_size
                    )
                    file_count += 1
                    logger.debug(f"Added {entry.archive_name} to archive")
                    continue

                root_name = entry.archive_name.rstrip("/")
                _write_dir_entry(zf, f"{root_name}/")
                if not entry.source_path.is_dir():
                    logger.warning(
                        f"Backup: {entry.source_path} does not exist, "
                        "archiving empty root entry"
                    )
                    continue

                dir_count = 0
                for path in _iter_directory(entry.source_path):
                    rel = path.relative_to(entry.source_path).as_posix()
                    arcname = f"{root_name}/{rel}"
                    if path.is_dir():
                        _write_dir_entry(zf, f"{arcname}/")
                    elif path.is_file():
                        yield from _write_file_entry(zf, sink, path, arcname, chunk_size)
                        dir_count += 1
                file_count += dir_count
                logger.debug(f"Added {dir_count} files under {root_name}/ to archive")

        # Central directory
        data = sink.drain()
        if data:
            yield data

        logger.info(
            f"Backup archive streaming complete ({file_count} files, "
            f"{sink.bytes_written} bytes)"
        )

    except GeneratorExit:
        logger.warning("Backup: Consumer closed the stream, archive abandoned")
        raise
    except ArchiveWriteFailed:
        raise
    except Exception as e:
        logger.error(f"Error streaming backup: {e}", exc_info=True)
        raise ArchiveWriteFailed(f"Archive construction failed: {e}") from e


def _write_dir_entry(zf: zipfile.ZipFile, arcname: str) -> None:
    info = zipfile.ZipInfo(arcname, date_time=time.localtime()[:6])
    info.external_attr = (0o40755 << 16) | 0x10
    zf.writestr(info, b"")


def _set_compress_level(info: zipfile.ZipInfo, level: int | None) -> None:
    """ZipFile.open("w") does not apply the archive-wide level, so it goes on the entry."""
    if sys.version_info >= (3, 13):
        info.compress_level = level
    else:
        info._compresslevel = level


def _write_file_entry(
    zf: zipfile.ZipFile, sink: _StreamSink, path: Path, arcname: str, chunk_size: int
) -> Generator[bytes, None, None]:
    info = zipfile.ZipInfo.from_file(path, arcname, strict_timestamps=False)
    info.compress_type = zipfile.ZIP_DEFLATED
    _set_compress_level(info, zf.compresslevel)
    with open(path, "rb") as src, zf.open(info, mode="w") as dest:
        while True:
            chunk = src.read(chunk_size)
            if not chunk:
                break
            dest.write(chunk)
            data = sink.drain()
            if data:
                yield data
    data = sink.drain()
    if data:
        yield data


def stream_file(path: Path, chunk_size: int = CHUNK_SIZE) -> Generator[bytes, None, None]:
    """
    Streams a raw file. The existence check happens before the generator
    is returned so a missing file fails before any response is started.
    """
    path = Path(path)
    if not path.is_file():
        raise SourceMissing(f"Backup source file not found: {path}")

    def generate():
        total = 0
        try:
            with open(path, "rb") as f:
                while True:
                    chunk = f.read(chunk_size)
                    if not chunk:
                        break
                    total += len(chunk)
                    yield chunk
        except OSError as e:
            logger.error(f"Error streaming {path.name}: {e}")
            raise ArchiveWriteFailed(f"Reading {path.name} failed: {e}") from e
        logger.info(f"Backup: Streamed {path.name} ({total} bytes)")

    return generate()


def build_backup_entries(pm, include_db: bool, include_uploads: bool) -> list[ArchiveEntry]:
    entries = []
    if include_db:
        entries.append(ArchiveEntry(pm.db_path, DB_ARCHIVE_NAME, EntryKind.FILE))
    if include_uploads:
        entries.append(
            ArchiveEntry(pm.uploads_dir, UPLOADS_ARCHIVE_NAME, EntryKind.DIRECTORY)
        )
    return entries


def get_backup_stats(pm) -> dict:
    """
    Returns statistics about data to be backed up.

    Returns:
        dict: {
            "db_size_bytes": int,
            "db_size_mb": float,
            "uploads_count": int,
            "uploads_size_bytes": int,
            "uploads_size_mb": float,
            "rollback_copies": list[str],
        }
    """
    stats = {
        "db_size_bytes": 0,
        "db_size_mb": 0.0,
        "uploads_count": 0,
        "uploads_size_bytes": 0,
        "uploads_size_mb": 0.0,
        "rollback_copies": [],
    }

    # DB Size
    try:
        if pm.db_path.exists():
            stats["db_size_bytes"] = pm.db_path.stat().st_size
            stats["db_size_mb"] = round(stats["db_size_bytes"] / (1024 * 1024), 2)
    except OSError as e:
        logger.warning(f"Could not get DB size: {e}")

    # Uploads
    try:
        if pm.uploads_dir.exists():
            for f in pm.uploads_dir.rglob("*"):
                if f.is_file():
                    stats["uploads_count"] += 1
                    stats["uploads_size_bytes"] += f.stat().st_size
            stats["uploads_size_mb"] = round(
                stats["uploads_size_bytes"] / (1024 * 1024), 2
            )
    except OSError as e:
        logger.warning(f"Could not scan uploads: {e}")

    stats["rollback_copies"] = [p.name for p in pm.list_rollback_copies()]
    return stats
