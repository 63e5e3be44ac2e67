"""
Backup Blueprint.

Handles backup, restore and reset routes:
- GET /backup/stats - Backup statistics
- GET /backup/status - Restore/reset operation state
- GET /backup/download/database - Stream raw database backup
- GET /backup/download/uploads - Stream uploads zip archive
- GET /backup/download/full - Stream database + uploads zip archive
- POST /backup/restore/database - Restore database from .db upload
- POST /backup/restore/uploads - Restore uploads from .zip upload
- POST /backup/restore/full - Restore database + uploads from .zip upload
- POST /backup/reset - Delete all business data
"""

from pathlib import Path

from flask import Blueprint, Response, jsonify, request, session
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from logging_config import get_logger
from web.blueprints.auth import login_required
from web.services import backup_restore_service, db_service, path_service, settings_service
from web.services.backup_restore_service import (
    ArtifactTooLarge,
    BackupRestoreError,
    InvalidArtifact,
)

logger = get_logger(__name__)

backup_bp = Blueprint("backup", __name__, url_prefix="/backup")

# Store handle and path manager - set by init function
_store_handle = None
_path_manager = None

UPLOAD_FIELD = "backup"
UPLOAD_CHUNK_SIZE = 8192
EXPECTED_EXTENSIONS = {"database": ".db", "uploads": ".zip", "full": ".zip"}


def init_backup_bp(store_handle, path_manager):
    """Initialize backup blueprint with the store handle and path manager."""
    global _store_handle, _path_manager
    _store_handle = store_handle
    _path_manager = path_manager


def _lang() -> str:
    return settings_service.pick_language(
        request.args.get("lang"), request.cookies.get("lang")
    )


def _user() -> str:
    return session.get("username") or "admin"


def _error_response(error: BackupRestoreError, area: str):
    cause = error.__cause__
    logger.error(
        f"{area}: {error.kind}: {error.message}" + (f" (cause: {cause!r})" if cause else "")
    )
    params = {}
    if isinstance(error, ArtifactTooLarge):
        params["max_mb"] = _max_upload_bytes() // (1024 * 1024)
    return (
        jsonify(
            {
                "success": False,
                "error": settings_service.get_message(_lang(), error.message_key, **params),
                "kind": error.kind,
            }
        ),
        error.http_status,
    )


def _internal_error(error: Exception, area: str):
    logger.error(f"{area}: Unexpected error: {error}", exc_info=True)
    return (
        jsonify(
            {
                "success": False,
                "error": settings_service.get_message(_lang(), "error.internal"),
                "kind": "internal_error",
            }
        ),
        500,
    )


def _max_upload_bytes() -> int:
    return settings_service.get_setting(
        "MAX_UPLOAD_BYTES", backup_restore_service.MAX_ARTIFACT_SIZE_BYTES
    )


def _checkpoint_settings() -> dict:
    return {
        "checkpoint_attempts": settings_service.get_setting("CHECKPOINT_ATTEMPTS", 3),
        "checkpoint_delay": settings_service.get_setting("CHECKPOINT_RETRY_DELAY", 0.1),
    }


def _stream_response(
    stream, filename: str, mimetype: str, content_length: int | None = None
) -> Response:
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "Cache-Control": "no-cache",
    }
    if content_length is not None:
        headers["Content-Length"] = str(content_length)
    return Response(stream, mimetype=mimetype, headers=headers)


# --- Status ---


@backup_bp.route("/stats", methods=["GET"])
@login_required
def backup_stats():
    """Returns statistics about data available for backup."""
    try:
        stats = backup_restore_service.get_backup_stats(_path_manager)
        return jsonify(stats)
    except Exception as e:
        return _internal_error(e, "Backup stats")


@backup_bp.route("/status", methods=["GET"])
@login_required
def operation_status():
    """Returns the restore/reset slot state and whether the store answers."""
    status = backup_restore_service.get_operation_status()
    status["store_open"] = db_service.is_store_responsive(_store_handle)
    return jsonify(status)


# --- Downloads ---


@backup_bp.route("/download/database", methods=["GET"])
@login_required
def download_database():
    logger.info(f"Backup: Database backup requested by {_user()}")
    try:
        filename, stream, size = backup_restore_service.download_database_backup(
            _store_handle, _path_manager, **_checkpoint_settings()
        )
    except BackupRestoreError as e:
        return _error_response(e, "Backup")
    except Exception as e:
        return _internal_error(e, "Backup")
    return _stream_response(stream, filename, "application/octet-stream", content_length=size)


@backup_bp.route("/download/uploads", methods=["GET"])
@login_required
def download_uploads():
    logger.info(f"Backup: Uploads backup requested by {_user()}")
    try:
        filename, stream = backup_restore_service.download_uploads_backup(_path_manager)
    except BackupRestoreError as e:
        return _error_response(e, "Backup")
    except Exception as e:
        return _internal_error(e, "Backup")
    return _stream_response(stream, filename, "application/zip")


@backup_bp.route("/download/full", methods=["GET"])
@login_required
def download_full():
    logger.info(f"Backup: Full backup requested by {_user()}")
    try:
        filename, stream = backup_restore_service.download_full_backup(
            _store_handle, _path_manager, **_checkpoint_settings()
        )
    except BackupRestoreError as e:
        return _error_response(e, "Backup")
    except Exception as e:
        return _internal_error(e, "Backup")
    return _stream_response(stream, filename, "application/zip")


# --- Restore ---


def _save_upload(kind: str) -> Path:
    """
    Streams the uploaded artifact to temp/ in chunks.
    Validates presence, extension and max size before any core logic runs.
    """
    try:
        file = request.files.get(UPLOAD_FIELD)
    except RequestEntityTooLarge as e:
        raise ArtifactTooLarge("Upload exceeds MAX_CONTENT_LENGTH") from e

    if not file or not file.filename:
        raise InvalidArtifact("No file uploaded", message_key="restore.error_no_file")

    # secure_filename drops non-ASCII names entirely, so the extension comes from the raw name
    original = Path(file.filename)
    extension = original.suffix.lower()
    filename = f"{secure_filename(original.stem) or 'upload'}{extension}"
    if extension not in backup_restore_service.ACCEPTED_EXTENSIONS:
        raise InvalidArtifact(f"Rejected upload extension: {extension or 'none'}")
    if extension != EXPECTED_EXTENSIONS[kind]:
        message_key = "restore.error_invalid_db" if kind == "database" else "restore.error_invalid_zip"
        raise InvalidArtifact(
            f"{kind} restore expects {EXPECTED_EXTENSIONS[kind]}, got {extension}",
            message_key=message_key,
        )

    max_bytes = _max_upload_bytes()
    upload_path = path_service.get_restore_upload_path(_path_manager, filename)
    total_size = 0
    try:
        with open(upload_path, "wb") as f:
            while True:
                chunk = file.stream.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                total_size += len(chunk)
                if total_size > max_bytes:
                    raise ArtifactTooLarge(f"Upload larger than {max_bytes} bytes")
                f.write(chunk)
    except Exception:
        upload_path.unlink(missing_ok=True)
        raise

    logger.info(f"Restore: Uploaded artifact {filename} ({total_size} bytes)")
    return upload_path


def _run_restore(kind: str):
    logger.info(f"Restore: {kind.capitalize()} restore requested by {_user()}")
    upload_path = None
    try:
        upload_path = _save_upload(kind)
        result = backup_restore_service.restore(_store_handle, _path_manager, kind, upload_path)
        return jsonify(
            {
                "success": True,
                "message": settings_service.get_message(_lang(), f"restore.success_{kind}"),
                "result": result,
            }
        )
    except BackupRestoreError as e:
        return _error_response(e, "Restore")
    except Exception as e:
        return _internal_error(e, "Restore")
    finally:
        if upload_path is not None:
            upload_path.unlink(missing_ok=True)


@backup_bp.route("/restore/database", methods=["POST"])
@login_required
def restore_database():
    """Restores the store file from an uploaded .db file."""
    return _run_restore("database")


@backup_bp.route("/restore/uploads", methods=["POST"])
@login_required
def restore_uploads():
    """Restores the upload tree from an uploaded .zip archive."""
    return _run_restore("uploads")


@backup_bp.route("/restore/full", methods=["POST"])
@login_required
def restore_full():
    """Restores store file and upload tree from an uploaded .zip archive."""
    return _run_restore("full")


# --- Reset ---


@backup_bp.route("/reset", methods=["POST"])
@login_required
def reset_all():
    """Deletes all companies, clients, invoices and items. Irreversible."""
    logger.info(f"Reset: Data reset requested by {_user()}")
    try:
        deleted = backup_restore_service.reset_all_data(_store_handle)
    except BackupRestoreError as e:
        return _error_response(e, "Reset")
    except Exception as e:
        return _internal_error(e, "Reset")
    return jsonify(
        {
            "success": True,
            "message": settings_service.get_message(_lang(), "reset.success"),
            "deleted": deleted,
        }
    )
