"""
Path Service - Web Layer Service for Path Operations.

Thin wrapper over core.path_core for web-specific concerns.
"""

from pathlib import Path

from core import path_core


def get_path_manager(base_dir: str | None = None):
    """Get or create a PathManager instance."""
    return path_core.get_path_manager(base_dir)


def get_restore_upload_path(pm, filename: str) -> Path:
    """Get the path for a restore upload file."""
    return path_core.get_restore_upload_path(pm, filename)
