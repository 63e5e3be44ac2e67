"""
Backup & Restore Service - Web Layer Service for Backup, Restore and Reset.

Thin wrapper over core.backup_restore_core for web-specific concerns.
"""

from collections.abc import Generator
from pathlib import Path
from typing import Any

from core import backup_restore_core

# --- Operation State ---


def is_operation_active() -> bool:
    """Check if a restore or reset is in progress."""
    return backup_restore_core.check_operation_active()


def get_operation_status() -> dict[str, Any]:
    """Get current restore/reset status."""
    return backup_restore_core.get_current_operation_status()


# --- Backup Operations ---


def get_backup_stats(pm) -> dict[str, Any]:
    """Get backup size statistics."""
    return backup_restore_core.get_backup_statistics(pm)


def download_database_backup(
    handle, pm, checkpoint_attempts: int = 3, checkpoint_delay: float = 0.1
) -> tuple[str, Generator[bytes, None, None], int]:
    """Checkpoint and stream the raw store file. Also returns its size."""
    return backup_restore_core.prepare_database_backup(
        handle,
        pm,
        checkpoint_attempts=checkpoint_attempts,
        checkpoint_delay=checkpoint_delay,
    )


def download_uploads_backup(pm) -> tuple[str, Generator[bytes, None, None]]:
    """Stream the upload tree as a zip archive."""
    return backup_restore_core.prepare_uploads_backup(pm)


def download_full_backup(
    handle, pm, checkpoint_attempts: int = 3, checkpoint_delay: float = 0.1
) -> tuple[str, Generator[bytes, None, None]]:
    """Checkpoint and stream store file plus upload tree as a zip archive."""
    return backup_restore_core.prepare_full_backup(
        handle,
        pm,
        checkpoint_attempts=checkpoint_attempts,
        checkpoint_delay=checkpoint_delay,
    )


# --- Restore Operations ---


def restore(handle, pm, kind: str, artifact_path: str | Path) -> dict[str, Any]:
    """Perform a database, uploads or full restore."""
    return backup_restore_core.perform_restore(handle, pm, kind, artifact_path)


# --- Reset ---


def reset_all_data(handle) -> dict[str, int]:
    """Delete all business data."""
    return backup_restore_core.reset_all(handle)


# --- Constants ---
MAX_ARTIFACT_SIZE_BYTES = backup_restore_core.MAX_ARTIFACT_SIZE
ACCEPTED_EXTENSIONS = backup_restore_core.ACCEPTED_EXTENSIONS

# --- Errors ---
BackupRestoreError = backup_restore_core.BackupRestoreError
ArtifactTooLarge = backup_restore_core.ArtifactTooLarge
InvalidArtifact = backup_restore_core.InvalidArtifact


# --- Cleanup ---


def cleanup_temp_files(pm) -> None:
    """Clean up temporary restore files."""
    backup_restore_core.cleanup_temp_files(pm)
