"""Product lookup functions for the catalog database."""

import json
import logging
import sqlite3
from typing import Any

logger = logging.getLogger(__name__)

PRODUCT_SELECT = """
    SELECT p.*, c.name AS category_name, s.name AS subcategory_name
    FROM products p
    JOIN categories c ON c.id = p.category_id
    LEFT JOIN subcategories s ON s.id = p.subcategory_id
"""


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def row_to_product(row: sqlite3.Row) -> dict[str, Any]:
    """Convert a joined product row to a product dict.

    Attributes are stored as a JSON object. A malformed value is logged and
    the product comes back with an empty map.
    """
    attributes: dict[str, Any] = {}
    if row["attributes"]:
        try:
            parsed = json.loads(row["attributes"])
            if isinstance(parsed, dict):
                attributes = parsed
            else:
                logger.warning(f"Attributes for product {row['id']} are not an object")
        except (json.JSONDecodeError, TypeError) as e:
            logger.warning(f"Failed to parse attributes for product {row['id']}: {e}")

    return {
        "id": row["id"],
        "name": row["name"],
        "category": row["category_name"],
        "category_id": row["category_id"],
        "subcategory": row["subcategory_name"],
        "subcategory_id": row["subcategory_id"],
        "brand": row["brand"],
        "model_number": row["model_number"],
        "quantity": row["quantity"],
        "selling_rate": row["selling_rate"],
        "cost_rate": row["cost_rate"],
        "status": row["status"],
        "warranty": row["warranty"],
        "attributes": attributes,
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def find_product_by_id(conn: sqlite3.Connection, product_id: str) -> dict[str, Any] | None:
    """Get a single product, joined with its category name.

    Returns:
        Product dict or None if not found
    """
    row = conn.execute(f"{PRODUCT_SELECT} WHERE p.id = ?", [product_id]).fetchone()
    return row_to_product(row) if row else None


def find_products(
    conn: sqlite3.Connection,
    category: str | None = None,
    category_id: int | None = None,
    query: str | None = None,
    status: str | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> list[dict[str, Any]]:
    """Find products matching a filter, in catalog (insertion) order.

    Args:
        conn: SQLite connection
        category: Category name (case-insensitive exact match)
        category_id: Category id (takes precedence over category)
        query: Case-insensitive substring of name, brand or model number
        status: Product status
        limit: Max results (None for all)
        offset: Pagination offset

    Returns:
        List of product dicts
    """
    where, params = _build_filter(category, category_id, query, status)
    sql = f"{PRODUCT_SELECT} {where} ORDER BY p.rowid"
    if limit is not None:
        sql += " LIMIT ? OFFSET ?"
        params.extend([limit, offset])
    return [row_to_product(row) for row in conn.execute(sql, params)]


def count_products(
    conn: sqlite3.Connection,
    category: str | None = None,
    category_id: int | None = None,
    query: str | None = None,
    status: str | None = None,
) -> int:
    """Count products matching the same filter as find_products()."""
    where, params = _build_filter(category, category_id, query, status)
    sql = f"""
        SELECT COUNT(*) FROM products p
        JOIN categories c ON c.id = p.category_id
        {where}
    """
    return conn.execute(sql, params).fetchone()[0]


def _build_filter(
    category: str | None,
    category_id: int | None,
    query: str | None,
    status: str | None,
) -> tuple[str, list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []
    if category_id is not None:
        conditions.append("p.category_id = ?")
        params.append(category_id)
    elif category:
        conditions.append("c.name = ? COLLATE NOCASE")
        params.append(category.strip())
    if query and query.strip():
        pattern = f"%{escape_like(query.strip())}%"
        conditions.append(
            "(p.name LIKE ? ESCAPE '\\' OR p.brand LIKE ? ESCAPE '\\' OR p.model_number LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern, pattern])
    if status:
        conditions.append("p.status = ?")
        params.append(status)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    return where, params


def pagination_meta(page: int, limit: int, total: int) -> dict[str, Any]:
    """Pagination block attached to paged list responses."""
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": (total + limit - 1) // limit if limit else 0,
        "has_next": page * limit < total,
        "has_prev": page > 1,
    }
