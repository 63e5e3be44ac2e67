"""
Database Connection and Schema Management.

This module owns the SQLite store handle and the schema bootstrap.
"""

import logging
import sqlite3
import threading
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.1.0"

DEFAULT_NOTE_TEMPLATES = [
    (
        "일반과세사업자 안내",
        "본 업체는 일반과세사업자로, 견적금액은 공급가액에 세액이 포함되어 있습니다.",
        1,
        1,
    ),
    (
        "유지보수 협의",
        "유지보수, 정기 점검 등의 계약은 필요시 추후에 협의할 수 있습니다.",
        0,
        2,
    ),
    (
        "비용 조정 안내",
        "최종 비용은 실제 작업 난이도에 따라 조정될 수 있습니다.",
        0,
        3,
    ),
]


class StoreHandle:
    """Exclusive, lazily opened connection to the store file.

    One handle is created by the application and passed to whatever needs
    the store. Only the swap controller and the initial open routine may
    close or reopen it. Holding a reference to ``handle.connection`` across
    a close is not allowed: closing invalidates it.
    """

    def __init__(self, db_path: str | Path, init_schema: bool = True):
        self.db_path = Path(db_path)
        self._init_schema = init_schema
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.RLock()

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> sqlite3.Connection:
        """Returns the open connection, opening it on first use."""
        with self._lock:
            if self._conn is None:
                self.open()
            return self._conn

    def open(self) -> sqlite3.Connection:
        with self._lock:
            if self._conn is not None:
                return self._conn
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            try:
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA foreign_keys=ON;")
                conn.row_factory = sqlite3.Row
                if self._init_schema:
                    init_schema(conn)
            except Exception:
                conn.close()
                raise
            self._conn = conn
            logger.debug(f"Store handle opened: {self.db_path}")
            return conn

    def close(self) -> None:
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.close()
            finally:
                self._conn = None
            logger.debug(f"Store handle closed: {self.db_path}")

    def reopen(self) -> sqlite3.Connection:
        with self._lock:
            self.close()
            return self.open()

    def ping(self) -> bool:
        """True if the handle is open and answers a trivial query."""
        with self._lock:
            if self._conn is None:
                return False
            try:
                return self._conn.execute("SELECT 1").fetchone()[0] == 1
            except sqlite3.Error:
                return False


def init_schema(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_version (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            version TEXT NOT NULL,
            applied_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            description TEXT
        );
        """)
    current_version = get_schema_version(conn)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS companies (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            business_number TEXT,
            representative TEXT,
            address TEXT,
            phone TEXT,
            email TEXT,
            bank_info TEXT,
            logo_path TEXT,
            stamp_path TEXT,
            invoice_prefix TEXT DEFAULT 'INV',
            is_default INTEGER DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        """)
    # Multilingual company info
    for column in (
        "name_en",
        "representative_en",
        "address_en",
        "phone_en",
        "email_en",
        "bank_info_en",
    ):
        _ensure_column_on_table(conn, "companies", column, "TEXT")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS clients (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            business_number TEXT,
            contact_person TEXT,
            phone TEXT,
            email TEXT,
            address TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS invoices (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            invoice_number TEXT UNIQUE NOT NULL,
            company_id INTEGER,
            client_id INTEGER,
            project_name TEXT,
            issue_date DATE,
            validity_period TEXT DEFAULT '견적일로부터 1개월',
            subtotal REAL DEFAULT 0,
            tax_rate REAL DEFAULT 10,
            tax_amount REAL DEFAULT 0,
            total_amount REAL DEFAULT 0,
            notes TEXT,
            status TEXT DEFAULT 'draft',
            pdf_path TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            FOREIGN KEY (company_id) REFERENCES companies(id),
            FOREIGN KEY (client_id) REFERENCES clients(id)
        );
        """)
    _ensure_column_on_table(conn, "invoices", "currency", "TEXT DEFAULT 'KRW'")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS invoice_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            invoice_id INTEGER NOT NULL,
            title TEXT NOT NULL,
            details TEXT,
            quantity REAL DEFAULT 1,
            unit_price REAL DEFAULT 0,
            amount REAL DEFAULT 0,
            sort_order INTEGER DEFAULT 0,
            FOREIGN KEY (invoice_id) REFERENCES invoices(id) ON DELETE CASCADE
        );
        """)
    # 'text' = simple text details, 'itemized' = priced sub-details
    _ensure_column_on_table(conn, "invoice_items", "detail_mode", "TEXT DEFAULT 'text'")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS invoice_item_details (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            item_id INTEGER NOT NULL,
            description TEXT NOT NULL,
            quantity REAL DEFAULT 1,
            unit_price REAL DEFAULT 0,
            amount REAL DEFAULT 0,
            sort_order INTEGER DEFAULT 0,
            FOREIGN KEY (item_id) REFERENCES invoice_items(id) ON DELETE CASCADE
        );
        """)
    _ensure_column_on_table(conn, "invoice_item_details", "title", "TEXT")

    conn.execute("""
        CREATE TABLE IF NOT EXISTS note_templates (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            content TEXT NOT NULL,
            is_default INTEGER DEFAULT 0,
            sort_order INTEGER DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        );
        """)
    template_count = conn.execute("SELECT COUNT(*) FROM note_templates").fetchone()[0]
    if template_count == 0:
        conn.executemany(
            "INSERT INTO note_templates (title, content, is_default, sort_order) "
            "VALUES (?, ?, ?, ?)",
            DEFAULT_NOTE_TEMPLATES,
        )

    if current_version != SCHEMA_VERSION:
        description = (
            f"Upgraded from {current_version}"
            if current_version
            else "Initial schema with itemized invoice details support"
        )
        conn.execute(
            "INSERT INTO schema_version (version, description) VALUES (?, ?)",
            (SCHEMA_VERSION, description),
        )
        logger.info(f"Schema updated to version {SCHEMA_VERSION}: {description}")

    conn.commit()


def get_schema_version(conn: sqlite3.Connection) -> str | None:
    try:
        row = conn.execute(
            "SELECT version FROM schema_version ORDER BY id DESC LIMIT 1"
        ).fetchone()
    except sqlite3.OperationalError:
        return None
    return row[0] if row else None


def _ensure_column_on_table(
    conn: sqlite3.Connection, table: str, column: str, coltype: str
) -> None:
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = {row[1] for row in cur.fetchall()}
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {coltype};")
        conn.commit()
