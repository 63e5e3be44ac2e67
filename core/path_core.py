"""
Path Core - Path Management Business Logic.

Provides path resolution and management abstracted from the web layer.
"""

from pathlib import Path

from utils.path_manager import get_path_manager as _get_path_manager


def get_path_manager(base_dir: str | None = None):
    """
    Get or create a PathManager instance.

    Args:
        base_dir: Optional data root override

    Returns:
        PathManager instance
    """
    return _get_path_manager(base_dir)


def get_restore_upload_path(pm, filename: str) -> Path:
    """
    Get the temp path an uploaded restore artifact is written to.

    Args:
        pm: PathManager
        filename: Sanitized upload filename

    Returns:
        Path inside the temp directory
    """
    return pm.get_restore_upload_path(filename)
