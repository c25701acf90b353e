"""Category, subcategory and product management."""

import json
import logging
import sqlite3
from typing import Any
from uuid import uuid4

from ..config import PRODUCT_STATUSES
from .connection import utc_now
from .lookup import find_product_by_id, find_products

logger = logging.getLogger(__name__)


def clean_attributes(attributes: Any) -> dict[str, Any]:
    """Normalise an attribute map for storage.

    Keys are trimmed; blank keys and None values are dropped. Anything that is
    not a dict becomes an empty map.
    """
    if not isinstance(attributes, dict):
        return {}
    cleaned = {}
    for key, value in attributes.items():
        key = str(key).strip() if key is not None else ""
        if key and value is not None:
            cleaned[key] = value
    return cleaned


def _category_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "description": row["description"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _subcategory_dict(row: sqlite3.Row) -> dict[str, Any]:
    return {
        "id": row["id"],
        "name": row["name"],
        "category_id": row["category_id"],
        "category": row["category_name"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


_SUBCATEGORY_SELECT = """
    SELECT s.*, c.name AS category_name
    FROM subcategories s
    JOIN categories c ON c.id = s.category_id
"""


# =============================================================================
# CATEGORIES
# =============================================================================


def create_category(conn: sqlite3.Connection, name: str, description: str = "") -> dict[str, Any]:
    """Create a category. Names are unique, ignoring case.

    Raises:
        ValueError: If the name is blank or already taken
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Category name is required")
    now = utc_now()
    try:
        with conn:
            cursor = conn.execute(
                "INSERT INTO categories (name, description, created_at, updated_at) VALUES (?, ?, ?, ?)",
                [name, description or "", now, now],
            )
    except sqlite3.IntegrityError as e:
        raise ValueError(f"Category '{name}' already exists") from e
    return get_category(conn, cursor.lastrowid)


def get_category(conn: sqlite3.Connection, category_id: int) -> dict[str, Any] | None:
    row = conn.execute("SELECT * FROM categories WHERE id = ?", [category_id]).fetchone()
    return _category_dict(row) if row else None


def find_category_by_name(conn: sqlite3.Connection, name: str) -> dict[str, Any] | None:
    """Case-insensitive exact lookup by name."""
    row = conn.execute(
        "SELECT * FROM categories WHERE name = ? COLLATE NOCASE", [(name or "").strip()]
    ).fetchone()
    return _category_dict(row) if row else None


def list_categories(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """All categories, sorted by name."""
    rows = conn.execute("SELECT * FROM categories ORDER BY name COLLATE NOCASE")
    return [_category_dict(row) for row in rows]


def update_category(
    conn: sqlite3.Connection,
    category_id: int,
    name: str | None = None,
    description: str | None = None,
) -> dict[str, Any] | None:
    """Rename or re-describe a category. Returns None if it does not exist.

    Raises:
        ValueError: If the new name is blank or already taken
    """
    existing = get_category(conn, category_id)
    if existing is None:
        return None
    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Category name is required")
    try:
        with conn:
            conn.execute(
                "UPDATE categories SET name = ?, description = ?, updated_at = ? WHERE id = ?",
                [
                    name if name is not None else existing["name"],
                    description if description is not None else existing["description"],
                    utc_now(),
                    category_id,
                ],
            )
    except sqlite3.IntegrityError as e:
        raise ValueError(f"Category '{name}' already exists") from e
    return get_category(conn, category_id)


def delete_category(conn: sqlite3.Connection, category_id: int) -> bool:
    """Delete a category and its subcategories.

    Raises:
        ValueError: If products still belong to the category
    """
    in_use = conn.execute(
        "SELECT COUNT(*) FROM products WHERE category_id = ?", [category_id]
    ).fetchone()[0]
    if in_use:
        raise ValueError(f"Category has {in_use} products; delete or move them first")
    with conn:
        cursor = conn.execute("DELETE FROM categories WHERE id = ?", [category_id])
    return cursor.rowcount > 0


# =============================================================================
# SUBCATEGORIES
# =============================================================================


def create_subcategory(conn: sqlite3.Connection, category_id: int, name: str) -> dict[str, Any]:
    """Create a subcategory. Names are unique within their category.

    Raises:
        ValueError: If the name is blank, the category is missing or the name is taken
    """
    name = (name or "").strip()
    if not name:
        raise ValueError("Subcategory name is required")
    if get_category(conn, category_id) is None:
        raise ValueError(f"Category {category_id} not found")
    now = utc_now()
    try:
        with conn:
            cursor = conn.execute(
                "INSERT INTO subcategories (category_id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
                [category_id, name, now, now],
            )
    except sqlite3.IntegrityError as e:
        raise ValueError(f"Subcategory '{name}' already exists in this category") from e
    return get_subcategory(conn, cursor.lastrowid)


def get_subcategory(conn: sqlite3.Connection, subcategory_id: int) -> dict[str, Any] | None:
    row = conn.execute(f"{_SUBCATEGORY_SELECT} WHERE s.id = ?", [subcategory_id]).fetchone()
    return _subcategory_dict(row) if row else None


def list_subcategories(conn: sqlite3.Connection, category: str | None = None) -> list[dict[str, Any]]:
    """Subcategories sorted by name, optionally restricted to one category name."""
    if category:
        rows = conn.execute(
            f"{_SUBCATEGORY_SELECT} WHERE c.name = ? COLLATE NOCASE ORDER BY s.name COLLATE NOCASE",
            [category.strip()],
        )
    else:
        rows = conn.execute(f"{_SUBCATEGORY_SELECT} ORDER BY s.name COLLATE NOCASE")
    return [_subcategory_dict(row) for row in rows]


def update_subcategory(
    conn: sqlite3.Connection,
    subcategory_id: int,
    name: str | None = None,
    category_id: int | None = None,
) -> dict[str, Any] | None:
    """Rename or move a subcategory. Returns None if it does not exist.

    Raises:
        ValueError: If the name is blank, the target category is missing or the name is taken
    """
    existing = get_subcategory(conn, subcategory_id)
    if existing is None:
        return None
    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Subcategory name is required")
    if category_id is not None and get_category(conn, category_id) is None:
        raise ValueError(f"Category {category_id} not found")
    try:
        with conn:
            conn.execute(
                "UPDATE subcategories SET name = ?, category_id = ?, updated_at = ? WHERE id = ?",
                [
                    name if name is not None else existing["name"],
                    category_id if category_id is not None else existing["category_id"],
                    utc_now(),
                    subcategory_id,
                ],
            )
    except sqlite3.IntegrityError as e:
        raise ValueError("Subcategory name already exists in this category") from e
    return get_subcategory(conn, subcategory_id)


def delete_subcategory(conn: sqlite3.Connection, subcategory_id: int) -> bool:
    with conn:
        cursor = conn.execute("DELETE FROM subcategories WHERE id = ?", [subcategory_id])
    return cursor.rowcount > 0


def category_tree(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Categories (sorted by name) each with their subcategories nested."""
    by_category: dict[int, list[dict[str, Any]]] = {}
    for sub in list_subcategories(conn):
        by_category.setdefault(sub["category_id"], []).append(
            {"id": sub["id"], "name": sub["name"]}
        )
    tree = []
    for category in list_categories(conn):
        tree.append({**category, "subcategories": by_category.get(category["id"], [])})
    return tree


# =============================================================================
# PRODUCTS
# =============================================================================


def _resolve_category_id(conn: sqlite3.Connection, data: dict[str, Any]) -> int:
    if data.get("category_id") is not None:
        if get_category(conn, data["category_id"]) is None:
            raise ValueError(f"Category {data['category_id']} not found")
        return data["category_id"]
    category = find_category_by_name(conn, data.get("category") or "")
    if category is None:
        raise ValueError(f"Unknown category: {data.get('category')!r}")
    return category["id"]


def _resolve_subcategory_id(conn: sqlite3.Connection, value: Any, category_id: int) -> int | None:
    if value is None:
        return None
    sub = get_subcategory(conn, value)
    if sub is None:
        raise ValueError(f"Subcategory {value} not found")
    if sub["category_id"] != category_id:
        raise ValueError(f"Subcategory {value} does not belong to this category")
    return sub["id"]


def _validate_status(status: str) -> str:
    if status not in PRODUCT_STATUSES:
        raise ValueError(f"Invalid status '{status}'. Must be one of: {', '.join(PRODUCT_STATUSES)}")
    return status


def create_product(conn: sqlite3.Connection, data: dict[str, Any]) -> dict[str, Any]:
    """Create a product.

    ``name``, ``selling_rate`` and a category (``category`` name or
    ``category_id``) are required. Attributes are normalised with
    clean_attributes().

    Raises:
        ValueError: On missing fields, an unknown category or an invalid status
    """
    name = str(data.get("name") or "").strip()
    if not name:
        raise ValueError("Product name is required")
    if data.get("selling_rate") is None:
        raise ValueError("selling_rate is required")
    category_id = _resolve_category_id(conn, data)
    subcategory_id = _resolve_subcategory_id(conn, data.get("subcategory_id"), category_id)
    status = _validate_status(data.get("status") or "Active")

    product_id = uuid4().hex
    now = utc_now()
    with conn:
        conn.execute(
            """
            INSERT INTO products (
                id, name, category_id, subcategory_id, brand, model_number, quantity,
                selling_rate, cost_rate, status, warranty, attributes, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            [
                product_id,
                name,
                category_id,
                subcategory_id,
                data.get("brand") or "",
                data.get("model_number") or "",
                int(data.get("quantity") or 0),
                float(data["selling_rate"]),
                data.get("cost_rate"),
                status,
                data.get("warranty") or "",
                json.dumps(clean_attributes(data.get("attributes"))),
                now,
                now,
            ],
        )
    logger.info(f"Created product {product_id} ({name})")
    return find_product_by_id(conn, product_id)


_UPDATABLE_FIELDS = ("name", "brand", "model_number", "quantity", "selling_rate", "cost_rate", "warranty")


def update_product(
    conn: sqlite3.Connection, product_id: str, changes: dict[str, Any]
) -> dict[str, Any] | None:
    """Apply changes to a product. A given ``attributes`` map replaces the stored one.

    Returns:
        The updated product, or None if it does not exist

    Raises:
        ValueError: On a blank name, an unknown category or an invalid status
    """
    existing = find_product_by_id(conn, product_id)
    if existing is None:
        return None

    sets: list[str] = []
    params: list[Any] = []
    for field in _UPDATABLE_FIELDS:
        if field in changes and changes[field] is not None:
            value = changes[field]
            if field == "name":
                value = str(value).strip()
                if not value:
                    raise ValueError("Product name is required")
            sets.append(f"{field} = ?")
            params.append(value)

    category_id = existing["category_id"]
    if changes.get("category") is not None or changes.get("category_id") is not None:
        category_id = _resolve_category_id(conn, changes)
        sets.append("category_id = ?")
        params.append(category_id)
    if "subcategory_id" in changes:
        sets.append("subcategory_id = ?")
        params.append(_resolve_subcategory_id(conn, changes["subcategory_id"], category_id))
    if changes.get("status") is not None:
        sets.append("status = ?")
        params.append(_validate_status(changes["status"]))
    if changes.get("attributes") is not None:
        sets.append("attributes = ?")
        params.append(json.dumps(clean_attributes(changes["attributes"])))

    if sets:
        sets.append("updated_at = ?")
        params.extend([utc_now(), product_id])
        with conn:
            conn.execute(f"UPDATE products SET {', '.join(sets)} WHERE id = ?", params)
    return find_product_by_id(conn, product_id)


def merge_attributes(
    conn: sqlite3.Connection, product_id: str, attributes: dict[str, Any]
) -> dict[str, Any] | None:
    """Merge attribute values into a product's existing map (new values win)."""
    existing = find_product_by_id(conn, product_id)
    if existing is None:
        return None
    merged = {**existing["attributes"], **clean_attributes(attributes)}
    with conn:
        conn.execute(
            "UPDATE products SET attributes = ?, updated_at = ? WHERE id = ?",
            [json.dumps(merged), utc_now(), product_id],
        )
    return find_product_by_id(conn, product_id)


def delete_product(conn: sqlite3.Connection, product_id: str) -> bool:
    with conn:
        cursor = conn.execute("DELETE FROM products WHERE id = ?", [product_id])
    return cursor.rowcount > 0


def products_by_category(conn: sqlite3.Connection, category_id: int) -> dict[str, Any] | None:
    """Products in a category plus the union of attribute keys they use.

    Returns:
        Dict with category, products and available_attributes (first-seen
        order), or None if the category does not exist
    """
    category = get_category(conn, category_id)
    if category is None:
        return None
    products = find_products(conn, category_id=category_id)
    keys: dict[str, None] = {}
    for product in products:
        for key in product["attributes"]:
            keys.setdefault(key, None)
    return {
        "category": category,
        "products": products,
        "available_attributes": list(keys),
    }
