"""
Error taxonomy for backup, restore and reset operations.

Every error carries a machine-checkable ``kind``, the i18n ``message_key``
shown to the operator, and the HTTP status the web layer answers with.
The message passed to the constructor is for the log only and is never
sent across the HTTP boundary.
"""


class BackupRestoreError(RuntimeError):
    """Base class for all backup/restore/reset failures."""

    kind = "backup_restore_error"
    message_key = "backup.error_failed"
    http_status = 500

    def __init__(self, message: str = "", *, message_key: str | None = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        if message_key:
            self.message_key = message_key

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message_key": self.message_key}


class StoreBusy(BackupRestoreError):
    """WAL checkpoint could not complete after all retries."""

    kind = "store_busy"
    message_key = "backup.error_locked"
    http_status = 503


class SourceMissing(BackupRestoreError):
    """The live store file is absent when a backup expected it."""

    kind = "source_missing"
    message_key = "backup.error_failed"
    http_status = 500


class InvalidArtifact(BackupRestoreError):
    """Uploaded file extension or shape does not match the restore kind."""

    kind = "invalid_artifact"
    message_key = "restore.error_invalid_file"
    http_status = 400


class MalformedArchive(BackupRestoreError):
    """Archive extracted but none of the recognized entry shapes exist."""

    kind = "malformed_archive"
    message_key = "restore.error_malformed"
    http_status = 400


class RestoreFailed(BackupRestoreError):
    """A fault during the install phase of a restore."""

    kind = "restore_failed"
    message_key = "restore.error_failed"
    http_status = 500


class ArchiveWriteFailed(BackupRestoreError):
    """The archive encoder or output sink faulted mid-stream."""

    kind = "archive_write_failed"
    message_key = "backup.error_failed"
    http_status = 500


class ArtifactTooLarge(BackupRestoreError):
    kind = "artifact_too_large"
    message_key = "restore.error_too_large"
    http_status = 413


class OperationInProgress(BackupRestoreError):
    kind = "operation_in_progress"
    message_key = "backup.error_in_progress"
    http_status = 409


class ResetFailed(BackupRestoreError):
    kind = "reset_failed"
    message_key = "reset.error_failed"
    http_status = 500
