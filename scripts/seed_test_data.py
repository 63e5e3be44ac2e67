#!/usr/bin/env python3
"""
Seed Script for Invoice Manager Test Data

Creates reproducible test data for exercising backup, restore and reset:
- SQLite database with companies, clients, invoices and line items
- Placeholder logo/stamp files in the upload tree

Usage:
    python scripts/seed_test_data.py              # Fresh seed (clears existing)
    python scripts/seed_test_data.py --append     # Append to existing data
    python scripts/seed_test_data.py --dry-run    # Show what would be created

Output:
    - <data root>/data/invoice.db
    - <data root>/uploads/companies/<id>/logo.png, stamp.png
"""

import argparse
import random
import sys
from datetime import datetime, timedelta
from pathlib import Path

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from utils.db import RESET_TABLES, StoreHandle  # noqa: E402
from utils.path_manager import PathManager  # noqa: E402


# =============================================================================
# Configuration
# =============================================================================

TEST_CONFIG = {
    "companies": 2,
    "clients": 5,
    "invoices": 12,
    "items_per_invoice": (1, 4),
    "details_per_item": (0, 3),
    "days_back": 60,
}

COMPANY_NAMES = ["한빛소프트웨어", "Bluepeak Studio", "누리디자인"]
CLIENT_NAMES = ["서울전자", "Acme Corp", "미래건설", "Northwind Traders", "바른식품", "Contoso"]
ITEM_TITLES = ["웹사이트 개발", "유지보수", "UI 디자인", "서버 구축", "Consulting", "Data migration"]

# Smallest valid PNG (1x1 transparent pixel)
PLACEHOLDER_PNG = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


# =============================================================================
# Database Functions
# =============================================================================

def clear_business_data(handle: StoreHandle) -> None:
    """Remove existing business rows (templates are kept)."""
    conn = handle.connection
    with conn:
        for table in RESET_TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.execute("DELETE FROM sqlite_sequence WHERE name IN ({})".format(
            ", ".join("?" for _ in RESET_TABLES)), RESET_TABLES)
    print("  Cleared existing business data")


def insert_company(conn, name: str, index: int) -> int:
    cursor = conn.execute("""
        INSERT INTO companies (name, business_number, representative, phone, email, is_default)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (name, f"123-45-{67890 + index}", "홍길동", "02-1234-5678",
          f"contact{index}@example.com", 1 if index == 0 else 0))
    return cursor.lastrowid


def insert_client(conn, name: str) -> int:
    cursor = conn.execute("""
        INSERT INTO clients (name, contact_person, phone, email)
        VALUES (?, ?, ?, ?)
    """, (name, "담당자", "010-0000-0000", "client@example.com"))
    return cursor.lastrowid


def insert_invoice(conn, number: str, company_id: int, client_id: int, issue_date: str) -> int:
    cursor = conn.execute("""
        INSERT INTO invoices (invoice_number, company_id, client_id, project_name, issue_date)
        VALUES (?, ?, ?, ?, ?)
    """, (number, company_id, client_id, f"Project {number}", issue_date))
    return cursor.lastrowid


def insert_item(conn, invoice_id: int, title: str, quantity: float,
                unit_price: float, sort_order: int) -> int:
    cursor = conn.execute("""
        INSERT INTO invoice_items (invoice_id, title, quantity, unit_price, amount, sort_order)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (invoice_id, title, quantity, unit_price, quantity * unit_price, sort_order))
    return cursor.lastrowid


def insert_detail(conn, item_id: int, description: str, amount: float, sort_order: int) -> None:
    conn.execute("""
        INSERT INTO invoice_item_details (item_id, description, unit_price, amount, sort_order)
        VALUES (?, ?, ?, ?, ?)
    """, (item_id, description, amount, amount, sort_order))


def update_totals(conn, invoice_id: int) -> None:
    subtotal = conn.execute(
        "SELECT COALESCE(SUM(amount), 0) FROM invoice_items WHERE invoice_id = ?",
        (invoice_id,),
    ).fetchone()[0]
    tax = round(subtotal * 0.1)
    conn.execute(
        "UPDATE invoices SET subtotal = ?, tax_amount = ?, total_amount = ? WHERE id = ?",
        (subtotal, tax, subtotal + tax, invoice_id),
    )


# =============================================================================
# Upload Files
# =============================================================================

def write_company_assets(uploads_dir: Path, company_id: int) -> int:
    """Write placeholder logo and stamp images. Returns files written."""
    company_dir = uploads_dir / "companies" / str(company_id)
    company_dir.mkdir(parents=True, exist_ok=True)
    for name in ("logo.png", "stamp.png"):
        (company_dir / name).write_bytes(PLACEHOLDER_PNG)
    return 2


# =============================================================================
# Data Generation
# =============================================================================

def generate_test_data(pm: PathManager, clear: bool = True, dry_run: bool = False) -> dict:
    """Generate complete test dataset."""
    stats = {
        "companies": 0,
        "clients": 0,
        "invoices": 0,
        "items": 0,
        "details": 0,
        "files_created": 0,
    }

    cfg = TEST_CONFIG
    handle = None
    conn = None
    if not dry_run:
        handle = StoreHandle(pm.db_path)
        if clear:
            clear_business_data(handle)
        conn = handle.connection

    company_ids = []
    for idx in range(cfg["companies"]):
        name = COMPANY_NAMES[idx % len(COMPANY_NAMES)]
        if not dry_run:
            company_id = insert_company(conn, name, idx)
            company_ids.append(company_id)
            stats["files_created"] += write_company_assets(pm.get_uploads_dir(), company_id)
        stats["companies"] += 1

    client_ids = []
    for idx in range(cfg["clients"]):
        if not dry_run:
            client_ids.append(insert_client(conn, CLIENT_NAMES[idx % len(CLIENT_NAMES)]))
        stats["clients"] += 1

    today = datetime.now()
    for idx in range(cfg["invoices"]):
        issue_date = today - timedelta(days=random.randint(0, cfg["days_back"]))
        number = f"INV-{issue_date:%Y%m%d}-{idx + 1:03d}"
        invoice_id = None
        if not dry_run:
            invoice_id = insert_invoice(
                conn, number, random.choice(company_ids), random.choice(client_ids),
                issue_date.date().isoformat(),
            )
        stats["invoices"] += 1

        for item_idx in range(random.randint(*cfg["items_per_invoice"])):
            title = random.choice(ITEM_TITLES)
            quantity = random.randint(1, 5)
            unit_price = random.randint(10, 200) * 10000
            item_id = None
            if not dry_run:
                item_id = insert_item(conn, invoice_id, title, quantity, unit_price, item_idx)
            stats["items"] += 1

            for detail_idx in range(random.randint(*cfg["details_per_item"])):
                if not dry_run:
                    insert_detail(conn, item_id, f"{title} 세부 {detail_idx + 1}",
                                  random.randint(1, 50) * 10000, detail_idx)
                stats["details"] += 1

        if not dry_run:
            update_totals(conn, invoice_id)

    if not dry_run:
        conn.commit()
        handle.close()

    return stats


# =============================================================================
# CLI
# =============================================================================

def main():
    parser = argparse.ArgumentParser(
        description="Generate test data for Invoice Manager backup/restore testing"
    )
    parser.add_argument(
        "--data-root", "-r",
        default=".",
        help="Data root directory (default: .)"
    )
    parser.add_argument(
        "--append", "-a",
        action="store_true",
        help="Keep existing data and append"
    )
    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Show what would be created without actually creating anything"
    )
    parser.add_argument(
        "--invoices", "-i",
        type=int,
        default=12,
        help="Number of invoices to generate (default: 12)"
    )

    args = parser.parse_args()

    TEST_CONFIG["invoices"] = args.invoices

    pm = PathManager(args.data_root)

    print("=" * 60)
    print("Invoice Manager Test Data Seed Script")
    print("=" * 60)
    print(f"Data root: {pm.base_dir.absolute()}")
    print(f"Invoices: {args.invoices}")
    print(f"Mode: {'DRY RUN' if args.dry_run else 'LIVE'}")
    print("=" * 60)

    stats = generate_test_data(pm, clear=not args.append, dry_run=args.dry_run)

    print("\n" + "=" * 60)
    print("Summary")
    print("=" * 60)
    print(f"  Companies: {stats['companies']}")
    print(f"  Clients:   {stats['clients']}")
    print(f"  Invoices:  {stats['invoices']}")
    print(f"  Items:     {stats['items']}")
    print(f"  Details:   {stats['details']}")
    if not args.dry_run:
        print(f"  Files created: {stats['files_created']}")
        print(f"\nTest data generated: {pm.db_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
