"""
DB Service - Web Layer Service for Database Operations.

Thin wrapper over core.db_core for web-specific concerns.
"""

from core import db_core

# --- Connection Management ---


def open_store(pm):
    """Create and open the application's store handle."""
    return db_core.open_store(pm)


def is_store_responsive(handle) -> bool:
    """Check that the store handle is open and answering."""
    return db_core.is_store_responsive(handle)


def fetch_table_counts(handle) -> dict[str, int]:
    """Row counts of the business tables."""
    return db_core.fetch_table_counts(handle)
