"""Database package for the parts catalog.

Holds categories, products (with free-form attribute maps), carts, orders and
quotations in one SQLite file. The database is created (and seeded from the
JSON Lines seed file, if present) on first use.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..config import DB_PATH, DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, SEED_PATH
from . import carts, catalog, orders
from .connection import build_database, connect, init_schema
from .lookup import count_products, find_product_by_id, find_products, pagination_meta
from .stats import get_stats

logger = logging.getLogger(__name__)

__all__ = [
    "CatalogDatabase",
    "get_db",
    "close_db",
]


class CatalogDatabase:
    """SQLite-backed catalog, cart and order store.

    Thread safety: one connection opened with check_same_thread=False.
    _conn_lock protects lazy initialization; _write_lock serializes write
    transactions so they never interleave on the shared connection.
    """

    def __init__(self, db_path: Path | str | None = None, seed_path: Path | None = None):
        self.db_path = db_path or DB_PATH
        self.seed_path = seed_path if seed_path is not None else SEED_PATH
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()
        self._write_lock = threading.RLock()

    def _ensure_db(self) -> sqlite3.Connection:
        """Open the database, building it if missing. Thread-safe."""
        if self._conn is not None:
            return self._conn

        with self._conn_lock:
            # Double-check after acquiring lock
            if self._conn is not None:
                return self._conn

            in_memory = str(self.db_path) == ":memory:"
            if not in_memory and not Path(self.db_path).exists():
                logger.info(f"Database not found at {self.db_path}, building...")
                build_database(self.seed_path, Path(self.db_path))

            conn = connect(self.db_path)
            init_schema(conn)
            total = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]
            logger.info(f"Catalog database ready at {self.db_path} ({total} products)")
            self._conn = conn
            return conn

    def close(self) -> None:
        """Close database connection. Thread-safe."""
        with self._conn_lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    # ===== Products (read) =====

    def find_product_by_id(self, product_id: str) -> dict[str, Any] | None:
        return find_product_by_id(self._ensure_db(), product_id)

    def find_products(self, **filters: Any) -> list[dict[str, Any]]:
        """All products matching the filter (see lookup.find_products), catalog order."""
        return find_products(self._ensure_db(), **filters)

    def list_products(
        self,
        query: str | None = None,
        category: str | None = None,
        status: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict[str, Any]:
        """Paged product listing / search."""
        conn = self._ensure_db()
        page = max(1, page)
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        total = count_products(conn, category=category, query=query, status=status)
        products = find_products(
            conn, category=category, query=query, status=status, limit=limit, offset=(page - 1) * limit
        )
        return {"products": products, "pagination": pagination_meta(page, limit, total)}

    def products_by_category(self, category_id: int) -> dict[str, Any] | None:
        return catalog.products_by_category(self._ensure_db(), category_id)

    # ===== Products (write) =====

    def create_product(self, data: dict[str, Any]) -> dict[str, Any]:
        with self._write_lock:
            return catalog.create_product(self._ensure_db(), data)

    def update_product(self, product_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        with self._write_lock:
            return catalog.update_product(self._ensure_db(), product_id, changes)

    def merge_attributes(self, product_id: str, attributes: dict[str, Any]) -> dict[str, Any] | None:
        with self._write_lock:
            return catalog.merge_attributes(self._ensure_db(), product_id, attributes)

    def delete_product(self, product_id: str) -> bool:
        with self._write_lock:
            return catalog.delete_product(self._ensure_db(), product_id)

    # ===== Categories =====

    def list_categories(self) -> list[dict[str, Any]]:
        return catalog.list_categories(self._ensure_db())

    def find_category_by_name(self, name: str) -> dict[str, Any] | None:
        return catalog.find_category_by_name(self._ensure_db(), name)

    def create_category(self, name: str, description: str = "") -> dict[str, Any]:
        with self._write_lock:
            return catalog.create_category(self._ensure_db(), name, description)

    def update_category(self, category_id: int, name: str | None = None, description: str | None = None) -> dict[str, Any] | None:
        with self._write_lock:
            return catalog.update_category(self._ensure_db(), category_id, name, description)

    def delete_category(self, category_id: int) -> bool:
        with self._write_lock:
            return catalog.delete_category(self._ensure_db(), category_id)

    def category_tree(self) -> list[dict[str, Any]]:
        return catalog.category_tree(self._ensure_db())

    # ===== Subcategories =====

    def list_subcategories(self, category: str | None = None) -> list[dict[str, Any]]:
        return catalog.list_subcategories(self._ensure_db(), category)

    def create_subcategory(self, category_id: int, name: str) -> dict[str, Any]:
        with self._write_lock:
            return catalog.create_subcategory(self._ensure_db(), category_id, name)

    def update_subcategory(self, subcategory_id: int, name: str | None = None, category_id: int | None = None) -> dict[str, Any] | None:
        with self._write_lock:
            return catalog.update_subcategory(self._ensure_db(), subcategory_id, name, category_id)

    def delete_subcategory(self, subcategory_id: int) -> bool:
        with self._write_lock:
            return catalog.delete_subcategory(self._ensure_db(), subcategory_id)

    # ===== Carts =====

    def get_cart(self, session_id: str, now: float | None = None) -> dict[str, Any]:
        """The session's cart, created empty if it does not exist."""
        with self._write_lock:
            return carts.get_or_create_cart(self._ensure_db(), session_id, now)

    def add_to_cart(self, session_id: str, product_id: str, quantity: int = 1, now: float | None = None) -> dict[str, Any]:
        with self._write_lock:
            return carts.add_item(self._ensure_db(), session_id, product_id, quantity, now)

    def update_cart_item(self, session_id: str, product_id: str, quantity: int, now: float | None = None) -> dict[str, Any] | None:
        with self._write_lock:
            return carts.update_item(self._ensure_db(), session_id, product_id, quantity, now)

    def remove_from_cart(self, session_id: str, product_id: str, now: float | None = None) -> dict[str, Any] | None:
        with self._write_lock:
            return carts.remove_item(self._ensure_db(), session_id, product_id, now)

    def clear_cart(self, session_id: str) -> None:
        with self._write_lock:
            carts.clear_cart(self._ensure_db(), session_id)

    def purge_expired_carts(self, now: float | None = None) -> int:
        with self._write_lock:
            return carts.purge_expired(self._ensure_db(), now)

    # ===== Orders and quotations =====

    def create_order(self, data: dict[str, Any]) -> dict[str, Any]:
        with self._write_lock:
            return orders.create_order(self._ensure_db(), data)

    def create_quotation_from_cart(self, session_id: str, data: dict[str, Any], now: float | None = None) -> dict[str, Any]:
        with self._write_lock:
            return orders.create_quotation_from_cart(self._ensure_db(), session_id, data, now)

    def get_order(self, order_pk: int) -> dict[str, Any] | None:
        return orders.get_order(self._ensure_db(), order_pk)

    def get_by_order_id(self, order_id: str) -> dict[str, Any] | None:
        return orders.get_by_order_id(self._ensure_db(), order_id)

    def get_by_quote_id(self, quote_id: str) -> dict[str, Any] | None:
        return orders.get_by_quote_id(self._ensure_db(), quote_id)

    def quotation_items(self, quote_id: str) -> dict[str, Any] | None:
        return orders.quotation_items(self._ensure_db(), quote_id)

    def list_orders(
        self,
        order_type: str | None = None,
        status: str | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> dict[str, Any]:
        return orders.list_orders(self._ensure_db(), order_type, status, search, page, limit)

    def all_orders(self, order_type: str | None = None, include_deleted: bool = True) -> list[dict[str, Any]]:
        return orders.all_orders(self._ensure_db(), order_type, include_deleted)

    def update_order_status(self, order_pk: int, status: str) -> dict[str, Any] | None:
        with self._write_lock:
            return orders.update_status(self._ensure_db(), order_pk, status)

    def update_order(self, order_pk: int, changes: dict[str, Any]) -> dict[str, Any] | None:
        with self._write_lock:
            return orders.update_order(self._ensure_db(), order_pk, changes)

    def delete_order(self, order_pk: int) -> str | None:
        with self._write_lock:
            return orders.delete_order(self._ensure_db(), order_pk)

    def list_deleted_quotations(self) -> list[dict[str, Any]]:
        return orders.list_deleted_quotations(self._ensure_db())

    def restore_quotation(self, order_pk: int) -> dict[str, Any] | None:
        with self._write_lock:
            return orders.restore_quotation(self._ensure_db(), order_pk)

    def list_customers(self, search: str | None = None) -> list[dict[str, Any]]:
        return orders.list_customers(self._ensure_db(), search)

    def customer_orders(self, email: str) -> list[dict[str, Any]]:
        return orders.customer_orders(self._ensure_db(), email)

    # ===== Dashboard =====

    def get_stats(self) -> dict[str, Any]:
        """Get dashboard statistics."""
        return get_stats(self._ensure_db())


# Global instance with thread safety
_db: CatalogDatabase | None = None
_db_lock = threading.Lock()


def get_db() -> CatalogDatabase:
    """Get or create the global database instance (thread-safe)."""
    global _db
    if _db is None:
        with _db_lock:
            # Double-check locking pattern
            if _db is None:
                _db = CatalogDatabase()
    return _db


def close_db() -> None:
    """Close the global database instance (thread-safe)."""
    global _db
    with _db_lock:
        if _db:
            _db.close()
            _db = None
