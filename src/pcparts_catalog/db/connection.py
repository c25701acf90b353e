"""Database connection management and schema for the catalog database."""

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS categories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE COLLATE NOCASE,
    description TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS subcategories (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    category_id INTEGER NOT NULL REFERENCES categories(id) ON DELETE CASCADE,
    name TEXT NOT NULL COLLATE NOCASE,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (category_id, name)
);

CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category_id INTEGER NOT NULL REFERENCES categories(id),
    subcategory_id INTEGER REFERENCES subcategories(id) ON DELETE SET NULL,
    brand TEXT NOT NULL DEFAULT '',
    model_number TEXT NOT NULL DEFAULT '',
    quantity INTEGER NOT NULL DEFAULT 0,
    selling_rate REAL NOT NULL,
    cost_rate REAL,
    status TEXT NOT NULL DEFAULT 'Active',
    warranty TEXT NOT NULL DEFAULT '',
    attributes TEXT NOT NULL DEFAULT '{}',  -- JSON object
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_products_category ON products(category_id);

CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_id TEXT UNIQUE,  -- O-001, set for type Order
    quote_id TEXT UNIQUE,  -- Q-001, set for type Quotation
    type TEXT NOT NULL DEFAULT 'Order',
    customer_name TEXT NOT NULL,
    customer_email TEXT NOT NULL DEFAULT '',
    customer_phone TEXT NOT NULL DEFAULT '',
    address TEXT NOT NULL,
    total_amount REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending',
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_deleted ON orders(is_deleted);
CREATE INDEX IF NOT EXISTS idx_orders_email ON orders(customer_email);

-- product_id is not a foreign key: order lines survive product deletion
CREATE TABLE IF NOT EXISTS order_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    order_pk INTEGER NOT NULL REFERENCES orders(id) ON DELETE CASCADE,
    product_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    quantity INTEGER NOT NULL,
    price REAL NOT NULL
);

CREATE TABLE IF NOT EXISTS carts (
    session_id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    expires_at REAL NOT NULL  -- unix timestamp
);

CREATE TABLE IF NOT EXISTS cart_items (
    session_id TEXT NOT NULL REFERENCES carts(session_id) ON DELETE CASCADE,
    product_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    quantity INTEGER NOT NULL,
    price REAL NOT NULL,
    PRIMARY KEY (session_id, product_id)
);

CREATE TABLE IF NOT EXISTS counters (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


def utc_now() -> str:
    """Current UTC time as an ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open a catalog connection with Row factory, WAL and foreign keys on.

    ``:memory:`` is accepted for throwaway databases.
    """
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    if str(db_path) != ":memory:":
        conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if missing. Idempotent."""
    conn.executescript(SCHEMA)
    conn.commit()


def import_records(conn: sqlite3.Connection, records: list[dict[str, Any]]) -> dict[str, int]:
    """Load category and product records into the database.

    Records with ``"kind": "category"`` create categories (and their
    ``subcategories`` names). Every other record is a product whose
    ``category`` name is created on demand. Products keep their ``id`` if
    given, so re-importing the same file replaces rather than duplicates.

    Args:
        conn: SQLite connection with schema initialised
        records: Decoded JSON objects

    Returns:
        Dict with counts of categories, subcategories and products written

    Raises:
        ValueError: If a product record lacks a name, category or selling rate
    """
    from .catalog import clean_attributes

    now = utc_now()
    counts = {"categories": 0, "subcategories": 0, "products": 0}

    def category_id(name: str, description: str = "") -> int:
        row = conn.execute("SELECT id FROM categories WHERE name = ?", [name]).fetchone()
        if row:
            return row["id"]
        cursor = conn.execute(
            "INSERT INTO categories (name, description, created_at, updated_at) VALUES (?, ?, ?, ?)",
            [name, description, now, now],
        )
        counts["categories"] += 1
        return cursor.lastrowid

    def subcategory_id(cat_id: int, name: str) -> int:
        row = conn.execute(
            "SELECT id FROM subcategories WHERE category_id = ? AND name = ?", [cat_id, name]
        ).fetchone()
        if row:
            return row["id"]
        cursor = conn.execute(
            "INSERT INTO subcategories (category_id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
            [cat_id, name, now, now],
        )
        counts["subcategories"] += 1
        return cursor.lastrowid

    with conn:
        for line_no, record in enumerate(records, 1):
            if record.get("kind") == "category":
                cat_id = category_id(str(record["name"]).strip(), record.get("description") or "")
                for sub_name in record.get("subcategories") or []:
                    subcategory_id(cat_id, str(sub_name).strip())
                continue

            name = str(record.get("name") or "").strip()
            category = str(record.get("category") or "").strip()
            if not name or not category or record.get("selling_rate") is None:
                raise ValueError(
                    f"Record {line_no}: products need name, category and selling_rate"
                )
            cat_id = category_id(category)
            sub_id = None
            if record.get("subcategory"):
                sub_id = subcategory_id(cat_id, str(record["subcategory"]).strip())

            conn.execute(
                """
                INSERT OR REPLACE INTO products (
                    id, name, category_id, subcategory_id, brand, model_number, quantity,
                    selling_rate, cost_rate, status, warranty, attributes, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    record.get("id") or uuid4().hex,
                    name,
                    cat_id,
                    sub_id,
                    record.get("brand") or "",
                    record.get("model_number") or "",
                    int(record.get("quantity") or 0),
                    float(record["selling_rate"]),
                    record.get("cost_rate"),
                    record.get("status") or "Active",
                    record.get("warranty") or "",
                    json.dumps(clean_attributes(record.get("attributes"))),
                    now,
                    now,
                ],
            )
            counts["products"] += 1
    return counts


def read_jsonl(path: Path) -> list[dict[str, Any]]:
    """Read a JSON Lines file, skipping blank lines.

    Raises:
        ValueError: If a line is not a JSON object
    """
    records = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON: {e}") from e
            if not isinstance(record, dict):
                raise ValueError(f"{path}:{line_no}: expected a JSON object")
            records.append(record)
    return records


def build_database(seed_path: Path | None, db_path: Path) -> dict[str, int]:
    """Create the database at db_path, importing seed_path if it exists.

    Args:
        seed_path: JSON Lines seed file, or None for an empty catalog
        db_path: Output database path

    Returns:
        Import counts (all zero when there was nothing to import)

    Raises:
        ValueError: On an invalid seed record. The partial file at db_path is removed.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(db_path)
    try:
        init_schema(conn)
        if seed_path is None or not seed_path.exists():
            logger.info(f"No seed data at {seed_path}, starting with an empty catalog")
            return {"categories": 0, "subcategories": 0, "products": 0}
        counts = import_records(conn, read_jsonl(seed_path))
        logger.info(
            f"Imported {counts['products']} products in {counts['categories']} categories "
            f"from {seed_path}"
        )
        return counts
    except Exception:
        # A partial file would be opened as-is on the next start
        conn.close()
        db_path.unlink(missing_ok=True)
        raise
    finally:
        conn.close()
