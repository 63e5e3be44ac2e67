"""
Invoice Manager Database Module.

Usage:
    from utils.db import StoreHandle, reset_all_data
    # or
    from utils.db.connection import StoreHandle
"""

# Connection and Schema
from utils.db.connection import (
    SCHEMA_VERSION,
    StoreHandle,
    _ensure_column_on_table,
    get_schema_version,
    init_schema,
)

# Destructive Reset
from utils.db.reset import RESET_TABLES, reset_all_data

__all__ = [
    # Connection
    "SCHEMA_VERSION",
    "StoreHandle",
    "init_schema",
    "get_schema_version",
    "_ensure_column_on_table",
    # Reset
    "RESET_TABLES",
    "reset_all_data",
]
