"""
Destructive reset of all business data.
"""

import logging
import sqlite3

from utils.errors import ResetFailed

logger = logging.getLogger(__name__)

# Child-to-parent order so foreign keys never dangle mid-sequence.
RESET_TABLES = (
    "invoice_item_details",
    "invoice_items",
    "invoices",
    "clients",
    "companies",
)


def reset_all_data(handle) -> dict:
    """
    Deletes every business row and resets the identity counters of the
    business tables. Note templates and schema metadata are untouched.

    The whole sequence runs in a single transaction: a failure rolls back
    every delete and raises ResetFailed. There is no other undo.

    Returns:
        dict: {table_name: rows_deleted}
    """
    conn = handle.connection
    deleted = {}
    try:
        with conn:
            for table in RESET_TABLES:
                cur = conn.execute(f"DELETE FROM {table}")
                deleted[table] = cur.rowcount
            placeholders = ", ".join("?" for _ in RESET_TABLES)
            conn.execute(
                f"DELETE FROM sqlite_sequence WHERE name IN ({placeholders})",
                RESET_TABLES,
            )
    except sqlite3.Error as e:
        logger.error(f"Reset: Failed, all deletions rolled back: {e}")
        raise ResetFailed(f"Data reset failed: {e}") from e

    logger.info(f"Reset: All business data deleted ({deleted})")
    return deleted
