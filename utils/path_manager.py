from datetime import datetime
from pathlib import Path


# Directory structure:
# <data root>/
# ├── data/
# │   ├── invoice.db
# │   ├── invoice.db-wal / invoice.db-shm   (managed by SQLite)
# │   └── invoice.db.backup-<stamp>          (rollback copies, kept)
# ├── uploads/
# │   └── companies/...
# └── temp/
#     ├── restore-<stamp>-<name>             (uploaded artifacts)
#     └── extract-<stamp>/                   (staging areas)


def operation_stamp(started_at: datetime) -> str:
    """Epoch milliseconds of an operation's start time."""
    return str(int(started_at.timestamp() * 1000))


class PathManager:
    def __init__(self, base_dir: str, db_name: str = "invoice"):
        self.base_dir = Path(base_dir)
        self.db_name = db_name
        self.data_dir = self.base_dir / "data"
        self.uploads_dir = self.base_dir / "uploads"
        self.temp_dir = self.base_dir / "temp"

    # -------------------------------------------------------------------------
    # Store File Paths
    # -------------------------------------------------------------------------
    @property
    def db_filename(self) -> str:
        return f"{self.db_name}.db"

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def wal_path(self) -> Path:
        return self.data_dir / f"{self.db_filename}-wal"

    @property
    def shm_path(self) -> Path:
        return self.data_dir / f"{self.db_filename}-shm"

    def get_data_dir(self) -> Path:
        """Returns the data directory, creates if needed."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        return self.data_dir

    def get_rollback_path(self, started_at: datetime) -> Path:
        """
        Returns the rollback copy path for a restore started at `started_at`.
        Format: data/invoice.db.backup-<epoch ms>
        """
        return self.get_data_dir() / f"{self.db_filename}.backup-{operation_stamp(started_at)}"

    def list_rollback_copies(self) -> list[Path]:
        """Returns existing rollback copies, oldest first."""
        if not self.data_dir.exists():
            return []
        return sorted(self.data_dir.glob(f"{self.db_filename}.backup-*"))

    # -------------------------------------------------------------------------
    # Upload Tree
    # -------------------------------------------------------------------------
    def get_uploads_dir(self) -> Path:
        """Returns the uploads directory, creates if needed."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        return self.uploads_dir

    # -------------------------------------------------------------------------
    # Temp / Staging Paths
    # -------------------------------------------------------------------------
    def get_temp_dir(self) -> Path:
        """Returns the temp directory, creates if needed."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        return self.temp_dir

    def create_staging_dir(self, started_at: datetime, prefix: str = "extract") -> Path:
        """
        Creates a uniquely named staging directory.
        Format: temp/extract-<epoch ms>, suffixed with -1, -2... on collision.
        """
        base = f"{prefix}-{operation_stamp(started_at)}"
        temp_dir = self.get_temp_dir()
        candidate = temp_dir / base
        counter = 0
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                counter += 1
                candidate = temp_dir / f"{base}-{counter}"

    def get_restore_upload_path(self, filename: str, started_at: datetime | None = None) -> Path:
        """
        Returns the temp path an uploaded restore artifact is written to.
        Format: temp/restore-<epoch ms>-<filename>
        """
        started_at = started_at or datetime.now()
        return self.get_temp_dir() / f"restore-{operation_stamp(started_at)}-{filename}"


# Global Instance - to be initialized by app with config["DATA_ROOT"]
_instance = None


def get_path_manager(base_dir: str = None) -> PathManager:
    global _instance
    if _instance is None or (base_dir is not None and Path(base_dir) != _instance.base_dir):
        from config import get_config

        cfg = get_config()
        if base_dir is None:
            # Default fallback if called before init
            base_dir = cfg["DATA_ROOT"]
        _instance = PathManager(base_dir, cfg["DB_NAME"])
    return _instance
