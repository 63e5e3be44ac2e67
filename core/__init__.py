"""
Invoice Manager Core Package.

This package contains the core business logic of the application,
separated from the web layer. All store, backup and restore operations
are coordinated through core modules.

ARCHITECTURE RULES:
- core/ modules may only import from:
  - Python standard library
  - utils/ (infrastructure)
  - config (for global configuration)

- core/ modules MUST NOT import from:
  - web/ (no Flask dependencies)
  - flask, werkzeug, or any web-specific packages

- All new business logic should be placed here, not in web/
"""

__all__ = [
    "backup_restore_core",
    "db_core",
    "path_core",
    "settings_core",
]
