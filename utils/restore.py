# ------------------------------------------------------------------------------
# Restore Utilities for Invoice Manager
# utils/restore.py
# ------------------------------------------------------------------------------
"""
Restore functionality for backup artifacts.
Implements safe zip extraction, shape detection and the store swap.
"""

import logging
import os
import shutil
import sqlite3
import threading
import zipfile
from collections.abc import Callable
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path, PurePosixPath

from utils.backup import DB_ARCHIVE_NAME, UPLOADS_ARCHIVE_NAME
from utils.errors import (
    InvalidArtifact,
    MalformedArchive,
    OperationInProgress,
    RestoreFailed,
)

logger = logging.getLogger(__name__)

# Maximum uploaded artifact size (500 MiB)
MAX_ARTIFACT_SIZE_BYTES = 500 * 1024 * 1024
# Maximum uncompressed size of an extracted archive
MAX_EXTRACTED_SIZE_BYTES = 4 * MAX_ARTIFACT_SIZE_BYTES
# Maximum number of entries in an archive
MAX_FILE_COUNT = 100000

ZIP_MAGIC = b"PK\x03\x04"
EMPTY_ZIP_MAGIC = b"PK\x05\x06"
SQLITE_MAGIC = b"SQLite format 3\x00"


class RestoreKind(Enum):
    DATABASE = "database"
    UPLOADS = "uploads"
    FULL = "full"

    @property
    def extension(self) -> str:
        return ".db" if self is RestoreKind.DATABASE else ".zip"

    @property
    def touches_store(self) -> bool:
        return self is not RestoreKind.UPLOADS


class ArchiveShape(Enum):
    DATABASE_ONLY = "database_only"
    UPLOADS_ONLY = "uploads_only"
    FULL = "full"


# Shapes each restore kind accepts
ACCEPTED_SHAPES = {
    RestoreKind.UPLOADS: {ArchiveShape.UPLOADS_ONLY, ArchiveShape.FULL},
    RestoreKind.FULL: {ArchiveShape.FULL, ArchiveShape.DATABASE_ONLY},
}


@dataclass
class RestoreResult:
    kind: RestoreKind
    rollback_path: Path | None = None
    uploads_restored: int = 0
    store_restored: bool = False

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "rollback_copy": self.rollback_path.name if self.rollback_path else None,
            "uploads_restored": self.uploads_restored,
            "store_restored": self.store_restored,
        }


# ------------------------------------------------------------------------------
# Operation Guard
# ------------------------------------------------------------------------------

# Single slot: at most one restore or reset at a time.
_operation_lock = threading.Lock()
_operation_state = {"active": False, "operation": None, "started_at": None}


def is_operation_active() -> bool:
    """Returns True if a restore or reset is currently in progress."""
    return _operation_state["active"]


def get_operation_status() -> dict:
    """Returns current operation status."""
    return _operation_state.copy()


@contextmanager
def operation_guard(operation: str):
    """
    Holds the single operation slot for the duration of the block.

    Raises:
        OperationInProgress: Another restore/reset holds the slot.
    """
    if not _operation_lock.acquire(blocking=False):
        raise OperationInProgress(
            f"Cannot start {operation}: {_operation_state['operation']} in progress"
        )
    _operation_state.update(
        active=True, operation=operation, started_at=datetime.now(UTC).isoformat()
    )
    try:
        yield
    finally:
        _operation_state.update(active=False, operation=None, started_at=None)
        _operation_lock.release()


# ------------------------------------------------------------------------------
# Archive Extractor
# ------------------------------------------------------------------------------


def _is_safe_zip_path(info: zipfile.ZipInfo, destination: Path) -> tuple[bool, str]:
    """
    Validates a zip archive member for path containment.

    Checks:
    - No absolute paths
    - No path traversal (..)
    - Resolved target stays inside destination

    Returns:
        tuple: (is_safe, error_message)
    """
    name = info.filename.replace("\\", "/")

    if name.startswith("/") or PurePosixPath(name).is_absolute():
        return False, f"Absolute path blocked: {name}"

    # Drive letters
    if len(name) > 1 and name[1] == ":":
        return False, f"Absolute path blocked: {name}"

    if ".." in PurePosixPath(name).parts:
        return False, f"Path traversal blocked: {name}"

    target = (destination / name).resolve()
    root = destination.resolve()
    if target != root and root not in target.parents:
        return False, f"Path escapes destination: {name}"

    return True, ""


def _check_magic(path: Path, accepted: tuple[bytes, ...], label: str) -> None:
    try:
        with open(path, "rb") as f:
            header = f.read(max(len(m) for m in accepted))
    except OSError as e:
        raise InvalidArtifact(f"Cannot read artifact: {e}") from e
    if not any(header.startswith(m) for m in accepted):
        raise InvalidArtifact(f"Invalid artifact format (not a valid {label} file)")


def _check_store_file(path: Path) -> None:
    """
    Rejects anything SQLite cannot read. The file is opened immutable so no
    -wal/-shm siblings are created next to the artifact.
    """
    _check_magic(path, (SQLITE_MAGIC,), "SQLite database")
    try:
        conn = sqlite3.connect(f"{path.resolve().as_uri()}?immutable=1", uri=True)
        try:
            row = conn.execute("PRAGMA quick_check").fetchone()
        finally:
            conn.close()
    except sqlite3.DatabaseError as e:
        raise InvalidArtifact(f"Not a readable SQLite database: {e}") from e
    if row is None or row[0] != "ok":
        raise InvalidArtifact(f"SQLite quick_check failed: {row[0] if row else 'no result'}")


def extract_archive(archive_path: Path, destination: Path) -> int:
    """
    Unpacks every entry of a zip archive into `destination`.

    All entries are checked before anything is written, so a rejected
    archive leaves the destination empty.

    Returns:
        int: Number of entries extracted.

    Raises:
        InvalidArtifact: Not a zip file, corrupt, unsafe entry names or
            over the size/count limits.
    """
    archive_path = Path(archive_path)
    destination = Path(destination)
    _check_magic(archive_path, (ZIP_MAGIC, EMPTY_ZIP_MAGIC), "zip")

    try:
        with zipfile.ZipFile(archive_path, "r") as zf:
            members = zf.infolist()
            if len(members) > MAX_FILE_COUNT:
                raise InvalidArtifact(f"Too many files in archive: >{MAX_FILE_COUNT}")

            total_size = 0
            for info in members:
                is_safe, error_msg = _is_safe_zip_path(info, destination)
                if not is_safe:
                    raise InvalidArtifact(error_msg)
                total_size += info.file_size
            if total_size > MAX_EXTRACTED_SIZE_BYTES:
                raise InvalidArtifact(
                    f"Archive too large when extracted: {total_size} bytes"
                )

            for info in members:
                zf.extract(info, destination)

    except zipfile.BadZipFile as e:
        raise InvalidArtifact(f"Invalid zip archive: {e}") from e

    logger.info(f"Restore: Extracted {len(members)} entries to {destination.name}")
    return len(members)


def classify_extracted_tree(staging_dir: Path) -> ArchiveShape:
    """
    Classifies an extracted archive by its top-level shape.

    - invoice.db + uploads/  -> FULL
    - invoice.db only        -> DATABASE_ONLY
    - uploads/, or any other non-empty tree (the tree IS the uploads
      content)               -> UPLOADS_ONLY

    Raises:
        MalformedArchive: Nothing recognizable was extracted.
    """
    has_db = (staging_dir / DB_ARCHIVE_NAME).is_file()
    has_uploads = (staging_dir / UPLOADS_ARCHIVE_NAME).is_dir()

    if has_db and has_uploads:
        return ArchiveShape.FULL
    if has_db:
        return ArchiveShape.DATABASE_ONLY
    if has_uploads or any(staging_dir.iterdir()):
        return ArchiveShape.UPLOADS_ONLY
    raise MalformedArchive("Archive contains no recognizable backup content")


def uploads_source_dir(staging_dir: Path) -> Path:
    """The directory whose contents replace the live upload tree."""
    nested = staging_dir / UPLOADS_ARCHIVE_NAME
    return nested if nested.is_dir() else staging_dir


# ------------------------------------------------------------------------------
# Upload Tree Helpers
# ------------------------------------------------------------------------------


def clear_dir_contents(dir_path: Path) -> None:
    """Removes every entry inside dir_path but keeps dir_path itself."""
    if not dir_path.exists():
        return
    for entry in dir_path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def move_dir_contents(src_dir: Path, dest_dir: Path) -> None:
    """Moves every entry of src_dir into dest_dir (works across devices)."""
    dest_dir.mkdir(parents=True, exist_ok=True)
    for entry in src_dir.iterdir():
        shutil.move(str(entry), str(dest_dir / entry.name))


def copy_dir_contents(src_dir: Path, dest_dir: Path) -> int:
    """Copies the contents of src_dir into dest_dir. Returns files copied."""
    if not src_dir.exists():
        return 0
    dest_dir.mkdir(parents=True, exist_ok=True)
    count = 0
    for entry in src_dir.iterdir():
        target = dest_dir / entry.name
        if entry.is_dir():
            count += copy_dir_contents(entry, target)
        else:
            shutil.copy2(entry, target)
            count += 1
    return count


def _install_store_file(staged_db: Path, live_db: Path) -> None:
    """Copies next to the live file, then renames over it (atomic on POSIX)."""
    temp_new = live_db.with_name(live_db.name + ".new")
    try:
        shutil.copyfile(staged_db, temp_new)
        os.replace(temp_new, live_db)
    finally:
        if temp_new.exists():
            temp_new.unlink()


def _remove_path(path: Path | None) -> None:
    if path is None or not path.exists():
        return
    try:
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()
        logger.debug(f"Restore: Removed {path}")
    except OSError as e:
        logger.warning(f"Restore: Could not remove {path}: {e}")


# ------------------------------------------------------------------------------
# Store Swap Controller
# ------------------------------------------------------------------------------


class StoreSwapController:
    """
    Replaces the live store file and/or upload tree with a staged artifact.

    Per restore: validate -> close handle -> rollback copy -> purge WAL/SHM
    -> install -> reopen handle (always) -> remove staging + upload (always).
    """

    def __init__(self, handle, path_manager, clock: Callable[[], datetime] = datetime.now):
        self.handle = handle
        self.pm = path_manager
        self.clock = clock

    def restore_database(self, artifact_path: Path) -> RestoreResult:
        return self.restore(RestoreKind.DATABASE, artifact_path)

    def restore_uploads(self, artifact_path: Path) -> RestoreResult:
        return self.restore(RestoreKind.UPLOADS, artifact_path)

    def restore_full(self, artifact_path: Path) -> RestoreResult:
        return self.restore(RestoreKind.FULL, artifact_path)

    def restore(self, kind: RestoreKind, artifact_path: Path) -> RestoreResult:
        """
        Runs one restore. The uploaded artifact is consumed: it is deleted
        when this returns or raises.

        Raises:
            OperationInProgress: Another restore/reset is running.
            InvalidArtifact / MalformedArchive: Rejected before any live
                file is touched.
            RestoreFailed: Install phase failed. The handle is open again
                and the rollback copy (if any) is kept.
        """
        artifact_path = Path(artifact_path)
        started_at = self.clock()
        staging_dir = None

        try:
            with operation_guard(f"{kind.value} restore"):
                logger.info(f"Restore: {kind.value} restore started")

                # 1. Validate
                staged_db, staged_uploads, staging_dir = self._validate(
                    kind, artifact_path, started_at
                )

                result = RestoreResult(kind=kind)
                if kind.touches_store:
                    self._swap_store(staged_db, started_at, result, staged_uploads)
                else:
                    self._swap_uploads_guarded(staged_uploads, started_at, result)

                logger.info(f"Restore: {kind.value} restore completed successfully")
                return result
        finally:
            # 7. Cleanup
            _remove_path(staging_dir)
            _remove_path(artifact_path)

    # --- Step 1 ---------------------------------------------------------------

    def _validate(
        self, kind: RestoreKind, artifact_path: Path, started_at: datetime
    ) -> tuple[Path | None, Path | None, Path | None]:
        if artifact_path.suffix.lower() != kind.extension:
            raise InvalidArtifact(
                f"Expected a {kind.extension} file for {kind.value} restore, "
                f"got {artifact_path.suffix or 'no extension'}",
                message_key=f"restore.error_invalid_{'db' if kind is RestoreKind.DATABASE else 'zip'}",
            )
        if not artifact_path.is_file():
            raise InvalidArtifact("Uploaded artifact not found")

        if kind is RestoreKind.DATABASE:
            _check_store_file(artifact_path)
            return artifact_path, None, None

        staging_dir = self.pm.create_staging_dir(started_at)
        try:
            extract_archive(artifact_path, staging_dir)
            shape = classify_extracted_tree(staging_dir)
            if shape not in ACCEPTED_SHAPES[kind]:
                raise InvalidArtifact(
                    f"Archive shape {shape.value} cannot be used for {kind.value} restore",
                    message_key=f"restore.error_invalid_{kind.value}",
                )
        except Exception:
            _remove_path(staging_dir)
            raise

        staged_db = staging_dir / DB_ARCHIVE_NAME
        if kind is RestoreKind.FULL:
            _check_store_file(staged_db)
            uploads = staging_dir / UPLOADS_ARCHIVE_NAME
            return staged_db, uploads if uploads.is_dir() else None, staging_dir
        return None, uploads_source_dir(staging_dir), staging_dir

    # --- Steps 2-6 ------------------------------------------------------------

    def _swap_store(
        self,
        staged_db: Path,
        started_at: datetime,
        result: RestoreResult,
        staged_uploads: Path | None,
    ) -> None:
        live_db = self.pm.db_path
        try:
            # 2. Quiesce
            self.handle.close()

            # 3. Snapshot
            if live_db.exists():
                rollback_path = self.pm.get_rollback_path(started_at)
                shutil.copy2(live_db, rollback_path)
                result.rollback_path = rollback_path
                logger.info(f"Restore: Rollback copy created: {rollback_path.name}")

            # 4. Purge log siblings
            self._purge_log_siblings()

            # 5. Install
            self.pm.get_data_dir()
            _install_store_file(staged_db, live_db)
            result.store_restored = True
            logger.info("Restore: Store file installed")

            if staged_uploads is not None:
                result.uploads_restored = self._swap_uploads(staged_uploads, started_at)

        except Exception as e:
            logger.error(f"Restore: Install phase failed: {e}", exc_info=True)
            raise RestoreFailed(f"Restore failed during install: {e}") from e

        finally:
            # 6. Reopen, whatever happened above
            self._reopen_handle(result)

    def _purge_log_siblings(self) -> None:
        for sibling in (self.pm.wal_path, self.pm.shm_path):
            if sibling.exists():
                sibling.unlink()
                logger.info(f"Restore: Deleted {sibling.name}")

    def _reopen_handle(self, result: RestoreResult) -> None:
        """
        Reopens the store handle. If the installed file cannot be opened,
        the rollback copy is put back and opened instead.
        """
        try:
            self.handle.reopen()
            logger.info("Restore: Store handle reopened")
            return
        except Exception as e:
            logger.error(f"Restore: Installed store cannot be opened: {e}", exc_info=True)
            reopen_error = e

        if result.rollback_path is None:
            logger.critical("Restore: No rollback copy available, store handle stays closed")
            raise RestoreFailed(f"Store cannot be reopened: {reopen_error}") from reopen_error

        try:
            self._purge_log_siblings()
            _install_store_file(result.rollback_path, self.pm.db_path)
            result.store_restored = False
            self.handle.reopen()
        except Exception as e:
            logger.critical(f"Restore: Failed to reopen store handle: {e}", exc_info=True)
            raise
        logger.warning(
            f"Restore: Previous store reinstalled from {result.rollback_path.name}"
        )
        raise RestoreFailed(f"Installed store cannot be opened: {reopen_error}") from reopen_error

    def _swap_uploads_guarded(
        self, staged_uploads: Path, started_at: datetime, result: RestoreResult
    ) -> None:
        try:
            result.uploads_restored = self._swap_uploads(staged_uploads, started_at)
        except Exception as e:
            logger.error(f"Restore: Uploads install failed: {e}", exc_info=True)
            raise RestoreFailed(f"Uploads restore failed: {e}") from e

    def _swap_uploads(self, staged_uploads: Path, started_at: datetime) -> int:
        """
        Replaces the contents of the live upload tree. The directory itself
        is kept (it may be a mounted volume). Existing entries are moved to a
        sidecar directory first and moved back if anything fails. The sidecar
        is only removed once the live tree is complete again.
        """
        uploads_dir = self.pm.get_uploads_dir()
        sidecar = self.pm.create_staging_dir(started_at, prefix="uploads-previous")
        try:
            move_dir_contents(uploads_dir, sidecar)
        except Exception:
            logger.warning("Restore: Moving previous uploads aside failed, putting them back")
            self._put_back_previous_uploads(uploads_dir, sidecar, clear_first=False)
            raise

        try:
            count = copy_dir_contents(staged_uploads, uploads_dir)
        except Exception:
            logger.warning("Restore: Uploads copy failed, putting previous files back")
            self._put_back_previous_uploads(uploads_dir, sidecar, clear_first=True)
            raise

        _remove_path(sidecar)
        logger.info(f"Restore: {count} upload files installed")
        return count

    @staticmethod
    def _put_back_previous_uploads(uploads_dir: Path, sidecar: Path, clear_first: bool) -> None:
        try:
            if clear_first:
                clear_dir_contents(uploads_dir)
            move_dir_contents(sidecar, uploads_dir)
        except Exception:
            logger.critical(
                f"Restore: Could not put previous uploads back, they are kept in {sidecar}",
                exc_info=True,
            )
            raise
        _remove_path(sidecar)


def cleanup_restore_tmp(pm) -> None:
    """
    Removes leftover staging areas and uploaded artifacts from temp/.
    Should be called on application startup.

    Sidecar copies of a previous upload tree are left alone: if one exists,
    a restore was interrupted mid-swap and it holds the operator's files.
    """
    temp_dir = pm.temp_dir
    if not temp_dir.exists():
        return
    for entry in temp_dir.iterdir():
        if entry.name.startswith(("extract-", "restore-")):
            _remove_path(entry)
        elif entry.name.startswith("uploads-previous-"):
            logger.warning(
                f"Found {entry.name} from an interrupted uploads restore, "
                "leaving it in place for manual recovery"
            )
    logger.info("Cleaned up restore temp directory")
