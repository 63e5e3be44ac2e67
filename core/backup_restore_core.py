"""
Backup & Restore Core - Business Logic for Backup, Restore and Reset.

Provides a clean interface to backup and restore functionality,
abstracting away the infrastructure details. The store handle and path
manager are passed in by the caller; nothing here holds them globally.
"""

import logging
from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from typing import Any

from utils.backup import (
    backup_filename,
    build_backup_entries,
    checkpoint_store,
    get_backup_stats,
    stream_file,
    stream_zip_archive,
)
from utils.db import reset_all_data
# Errors are re-exported for the web layer
from utils.errors import (  # noqa: F401
    ArtifactTooLarge,
    BackupRestoreError,
    InvalidArtifact,
    OperationInProgress,
)
from utils.restore import (
    MAX_ARTIFACT_SIZE_BYTES,
    RestoreKind,
    StoreSwapController,
    cleanup_restore_tmp,
    get_operation_status,
    is_operation_active,
    operation_guard,
)

logger = logging.getLogger(__name__)

# Re-export constants
MAX_ARTIFACT_SIZE = MAX_ARTIFACT_SIZE_BYTES
ACCEPTED_EXTENSIONS = (".db", ".zip")


# --- Operation State ---


def check_operation_active() -> bool:
    """
    Check if a restore or reset is currently in progress.

    Returns:
        True if an operation holds the slot
    """
    return is_operation_active()


def get_current_operation_status() -> dict[str, Any]:
    """
    Get current restore/reset status.

    Returns:
        Dictionary with operation status info
    """
    return get_operation_status()


def _refuse_during_operation(what: str) -> None:
    if is_operation_active():
        raise OperationInProgress(f"{what} refused while a restore/reset is running")


# --- Backup Operations ---


def get_backup_statistics(pm) -> dict[str, Any]:
    """
    Get statistics about data available for backup.

    Returns:
        Dictionary with backup size statistics
    """
    return get_backup_stats(pm)


def prepare_database_backup(
    handle,
    pm,
    started_at: datetime | None = None,
    checkpoint_attempts: int = 3,
    checkpoint_delay: float = 0.1,
) -> tuple[str, Generator[bytes, None, None], int]:
    """
    Checkpoints the store and returns a stream of the raw store file.

    Checkpoint and existence checks run before returning, so StoreBusy and
    SourceMissing surface before any response is started.

    Returns:
        (download filename, generator of bytes, file size after checkpoint)
    """
    _refuse_during_operation("Database backup")
    started_at = started_at or datetime.now()
    checkpoint_store(handle, checkpoint_attempts, checkpoint_delay)
    stream = stream_file(pm.db_path)
    return backup_filename("database", started_at), stream, pm.db_path.stat().st_size


def prepare_uploads_backup(
    pm, started_at: datetime | None = None
) -> tuple[str, Generator[bytes, None, None]]:
    """
    Returns a zip stream of the upload tree. An absent tree gives an
    archive holding only the empty uploads/ root entry.
    """
    _refuse_during_operation("Uploads backup")
    started_at = started_at or datetime.now()
    if not pm.uploads_dir.exists():
        logger.warning("Backup: Uploads directory does not exist, creating empty backup")
    entries = build_backup_entries(pm, include_db=False, include_uploads=True)
    return backup_filename("uploads", started_at), stream_zip_archive(entries)


def prepare_full_backup(
    handle,
    pm,
    started_at: datetime | None = None,
    checkpoint_attempts: int = 3,
    checkpoint_delay: float = 0.1,
) -> tuple[str, Generator[bytes, None, None]]:
    """
    Checkpoints the store and returns a zip stream holding invoice.db and
    the uploads/ tree.
    """
    _refuse_during_operation("Full backup")
    started_at = started_at or datetime.now()
    checkpoint_store(handle, checkpoint_attempts, checkpoint_delay)
    entries = build_backup_entries(pm, include_db=True, include_uploads=True)
    return backup_filename("full", started_at), stream_zip_archive(entries)


# --- Restore Operations ---


def perform_restore(handle, pm, kind: str, artifact_path: str | Path) -> dict[str, Any]:
    """
    Performs a restore from an uploaded artifact.

    Args:
        handle: The application's StoreHandle
        pm: PathManager
        kind: "database", "uploads" or "full"
        artifact_path: Uploaded temp file, consumed by the restore

    Returns:
        Dictionary with restore results
    """
    controller = StoreSwapController(handle, pm)
    result = controller.restore(RestoreKind(kind), Path(artifact_path))
    return result.to_dict()


# --- Reset ---


def reset_all(handle) -> dict[str, int]:
    """
    Irreversibly deletes all companies, clients, invoices and their items.

    Returns:
        Rows deleted per table
    """
    with operation_guard("reset"):
        return reset_all_data(handle)


# --- Cleanup ---


def cleanup_temp_files(pm) -> None:
    """
    Cleans up temporary files from restore operations.
    """
    cleanup_restore_tmp(pm)
