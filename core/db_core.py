"""
DB Core - Database Access Layer.

Provides a clean interface to the store handle,
serving as an abstraction over utils.db.
"""

from utils.db import StoreHandle

# --- Connection Management ---


def open_store(pm) -> StoreHandle:
    """Create the application's store handle and open it (bootstraps the schema)."""
    handle = StoreHandle(pm.db_path)
    handle.open()
    return handle


def is_store_responsive(handle) -> bool:
    """True if the handle is open and answers a trivial query."""
    return handle.ping()


def fetch_table_counts(handle) -> dict[str, int]:
    """Row counts of the business tables."""
    conn = handle.connection
    return {
        table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
        for table in ("companies", "clients", "invoices", "note_templates")
    }
