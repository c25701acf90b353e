"""Orders, quotations and the customers view.

Orders and quotations share one table and differ by ``type``. Orders take
stock when created; quotations never touch stock. Human-readable ids
(O-001, Q-001) come from a counter row incremented in the same transaction as
the insert, so concurrent creations cannot be handed the same number.
"""

import logging
import sqlite3
from typing import Any

from ..config import (
    DEFAULT_PAGE_SIZE,
    ID_PAD_WIDTH,
    MAX_PAGE_SIZE,
    ORDER_ID_PREFIX,
    ORDER_STATUSES,
    ORDER_TYPES,
    QUOTE_ID_PREFIX,
)
from .carts import get_cart
from .connection import utc_now
from .lookup import escape_like, find_product_by_id, pagination_meta

logger = logging.getLogger(__name__)

ORDER = "Order"
QUOTATION = "Quotation"

_COUNTERS = {ORDER: ("order", ORDER_ID_PREFIX), QUOTATION: ("quotation", QUOTE_ID_PREFIX)}


def next_display_id(conn: sqlite3.Connection, order_type: str) -> str:
    """Increment the counter for order_type and format it, e.g. 'O-007'.

    Must run inside the caller's write transaction.
    """
    counter, prefix = _COUNTERS[order_type]
    value = conn.execute(
        """
        INSERT INTO counters (name, value) VALUES (?, 1)
        ON CONFLICT(name) DO UPDATE SET value = value + 1
        RETURNING value
        """,
        [counter],
    ).fetchone()[0]
    return f"{prefix}-{value:0{ID_PAD_WIDTH}d}"


def _validate_type(order_type: str | None) -> str:
    order_type = order_type or ORDER
    if order_type not in ORDER_TYPES:
        raise ValueError(f"Invalid type '{order_type}'. Must be one of: {', '.join(ORDER_TYPES)}")
    return order_type


def _merge_items(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collapse repeated products into one line, summing quantities.

    Raises:
        ValueError: If the list is empty, or an item lacks a product or has quantity < 1
    """
    if not items:
        raise ValueError("At least one item is required")
    merged: dict[str, dict[str, Any]] = {}
    for item in items:
        if not isinstance(item, dict):
            raise ValueError("Every item must be an object with product_id and quantity")
        product_id = item.get("product_id")
        if not product_id:
            raise ValueError("Every item needs a product_id")
        quantity = int(item.get("quantity") or 0)
        if quantity < 1:
            raise ValueError(f"Quantity for {product_id} must be at least 1")
        if product_id in merged:
            merged[product_id]["quantity"] += quantity
        else:
            merged[product_id] = {"product_id": product_id, "quantity": quantity, "price": item.get("price")}
    return list(merged.values())


def _price_lines(conn: sqlite3.Connection, items: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], float]:
    """Resolve products and prices for merged items. Price defaults to the selling rate.

    Raises:
        ValueError: If a product does not exist
    """
    lines = []
    total = 0.0
    for item in items:
        product = find_product_by_id(conn, item["product_id"])
        if product is None:
            raise ValueError(f"Product not found: {item['product_id']}")
        price = item["price"] if item["price"] else product["selling_rate"]
        lines.append({
            "product_id": product["id"],
            "name": product["name"],
            "quantity": item["quantity"],
            "price": float(price),
        })
        total += float(price) * item["quantity"]
    return lines, total


def _take_stock(conn: sqlite3.Connection, lines: list[dict[str, Any]]) -> None:
    """Decrement stock for each line. Caller's transaction rolls back on failure.

    Raises:
        ValueError: If any product has less stock than requested
    """
    for line in lines:
        cursor = conn.execute(
            "UPDATE products SET quantity = quantity - ? WHERE id = ? AND quantity >= ?",
            [line["quantity"], line["product_id"], line["quantity"]],
        )
        if cursor.rowcount == 0:
            raise ValueError(f"Insufficient stock for {line['name']}")


def _return_stock(conn: sqlite3.Connection, order_pk: int) -> None:
    for item in conn.execute("SELECT product_id, quantity FROM order_items WHERE order_pk = ?", [order_pk]).fetchall():
        conn.execute(
            "UPDATE products SET quantity = quantity + ? WHERE id = ?",
            [item["quantity"], item["product_id"]],
        )


def _insert_lines(conn: sqlite3.Connection, order_pk: int, lines: list[dict[str, Any]]) -> None:
    conn.executemany(
        "INSERT INTO order_items (order_pk, product_id, name, quantity, price) VALUES (?, ?, ?, ?, ?)",
        [(order_pk, line["product_id"], line["name"], line["quantity"], line["price"]) for line in lines],
    )


def _order_dict(conn: sqlite3.Connection, row: sqlite3.Row) -> dict[str, Any]:
    items = [
        {
            "product_id": item["product_id"],
            "name": item["name"],
            "quantity": item["quantity"],
            "price": item["price"],
            "subtotal": item["price"] * item["quantity"],
        }
        for item in conn.execute("SELECT * FROM order_items WHERE order_pk = ? ORDER BY id", [row["id"]])
    ]
    return {
        "id": row["id"],
        "order_id": row["order_id"],
        "quote_id": row["quote_id"],
        "type": row["type"],
        "customer_name": row["customer_name"],
        "customer_email": row["customer_email"],
        "customer_phone": row["customer_phone"],
        "address": row["address"],
        "items": items,
        "total_amount": row["total_amount"],
        "status": row["status"],
        "is_deleted": bool(row["is_deleted"]),
        "deleted_at": row["deleted_at"],
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
    }


def _require_customer(data: dict[str, Any]) -> tuple[str, str]:
    name = str(data.get("customer_name") or "").strip()
    address = str(data.get("address") or "").strip()
    if not name or not address:
        raise ValueError("customer_name and address are required")
    return name, address


def _insert_order(
    conn: sqlite3.Connection,
    data: dict[str, Any],
    order_type: str,
    lines: list[dict[str, Any]],
    total: float,
) -> int:
    """Insert the order row and its lines. Caller owns the transaction."""
    name, address = _require_customer(data)
    display_id = next_display_id(conn, order_type)
    now = utc_now()
    cursor = conn.execute(
        """
        INSERT INTO orders (
            order_id, quote_id, type, customer_name, customer_email, customer_phone,
            address, total_amount, status, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 'Pending', ?, ?)
        """,
        [
            display_id if order_type == ORDER else None,
            display_id if order_type == QUOTATION else None,
            order_type,
            name,
            data.get("customer_email") or "",
            data.get("customer_phone") or "",
            address,
            total,
            now,
            now,
        ],
    )
    _insert_lines(conn, cursor.lastrowid, lines)
    logger.info(f"Created {order_type.lower()} {display_id} for {name} ({len(lines)} lines, total {total:.2f})")
    return cursor.lastrowid


def create_order(conn: sqlite3.Connection, data: dict[str, Any]) -> dict[str, Any]:
    """Create an order or quotation.

    Args:
        conn: SQLite connection
        data: customer_name, address (required), customer_email, customer_phone,
            type ("Order" default or "Quotation") and items, a list of
            {product_id, quantity, price?}

    Raises:
        ValueError: On missing fields, unknown products or insufficient stock
    """
    order_type = _validate_type(data.get("type"))
    _require_customer(data)
    lines, total = _price_lines(conn, _merge_items(data.get("items") or []))
    with conn:
        if order_type == ORDER:
            _take_stock(conn, lines)
        order_pk = _insert_order(conn, data, order_type, lines, total)
    return get_order(conn, order_pk)


def create_quotation_from_cart(
    conn: sqlite3.Connection, session_id: str, data: dict[str, Any], now: float | None = None
) -> dict[str, Any]:
    """Turn a session's cart into a quotation at the cart's captured prices, then empty the cart.

    Raises:
        ValueError: If the cart is missing, empty or the customer fields are incomplete
    """
    _require_customer(data)
    cart = get_cart(conn, session_id, now)
    if not cart or not cart["items"]:
        raise ValueError("Cart is empty")
    lines = [
        {"product_id": i["product_id"], "name": i["name"], "quantity": i["quantity"], "price": i["price"]}
        for i in cart["items"]
    ]
    with conn:
        order_pk = _insert_order(conn, data, QUOTATION, lines, cart["total_amount"])
        conn.execute("DELETE FROM carts WHERE session_id = ?", [cart["session_id"]])
    return get_order(conn, order_pk)


def get_order(conn: sqlite3.Connection, order_pk: int) -> dict[str, Any] | None:
    row = conn.execute("SELECT * FROM orders WHERE id = ?", [order_pk]).fetchone()
    return _order_dict(conn, row) if row else None


def get_by_order_id(conn: sqlite3.Connection, order_id: str) -> dict[str, Any] | None:
    """Look up an order by its O-xxx id."""
    row = conn.execute("SELECT * FROM orders WHERE order_id = ?", [order_id]).fetchone()
    return _order_dict(conn, row) if row else None


def get_by_quote_id(conn: sqlite3.Connection, quote_id: str) -> dict[str, Any] | None:
    """Look up a live (not deleted) quotation by its Q-xxx id."""
    row = conn.execute(
        "SELECT * FROM orders WHERE quote_id = ? AND type = ? AND is_deleted = 0",
        [quote_id, QUOTATION],
    ).fetchone()
    return _order_dict(conn, row) if row else None


def quotation_items(conn: sqlite3.Connection, quote_id: str) -> dict[str, Any] | None:
    """Line items of a quotation with the current catalog product attached, if it still exists."""
    quotation = get_by_quote_id(conn, quote_id)
    if quotation is None:
        return None
    items = [{**item, "product": find_product_by_id(conn, item["product_id"])} for item in quotation["items"]]
    return {
        "quote_id": quotation["quote_id"],
        "customer_name": quotation["customer_name"],
        "items": items,
        "total_amount": quotation["total_amount"],
    }


def list_orders(
    conn: sqlite3.Connection,
    order_type: str | None = None,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> dict[str, Any]:
    """Paged list of live orders/quotations, newest first.

    search matches order id, quote id or customer name (case-insensitive substring).
    """
    page = max(1, page)
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    conditions = ["is_deleted = 0"]
    params: list[Any] = []
    if order_type:
        conditions.append("type = ?")
        params.append(order_type)
    if status:
        conditions.append("status = ?")
        params.append(status)
    if search and search.strip():
        pattern = f"%{escape_like(search.strip())}%"
        conditions.append(
            "(order_id LIKE ? ESCAPE '\\' OR quote_id LIKE ? ESCAPE '\\' OR customer_name LIKE ? ESCAPE '\\')"
        )
        params.extend([pattern, pattern, pattern])
    where = " AND ".join(conditions)

    total = conn.execute(f"SELECT COUNT(*) FROM orders WHERE {where}", params).fetchone()[0]
    rows = conn.execute(
        f"SELECT * FROM orders WHERE {where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
        [*params, limit, (page - 1) * limit],
    ).fetchall()
    return {
        "orders": [_order_dict(conn, row) for row in rows],
        "pagination": pagination_meta(page, limit, total),
    }


def update_status(conn: sqlite3.Connection, order_pk: int, status: str) -> dict[str, Any] | None:
    """Set the status of an order or quotation.

    Raises:
        ValueError: If status is not one of ORDER_STATUSES
    """
    if status not in ORDER_STATUSES:
        raise ValueError(f"Invalid status '{status}'. Must be one of: {', '.join(ORDER_STATUSES)}")
    with conn:
        cursor = conn.execute(
            "UPDATE orders SET status = ?, updated_at = ? WHERE id = ?", [status, utc_now(), order_pk]
        )
    return get_order(conn, order_pk) if cursor.rowcount else None


def update_order(conn: sqlite3.Connection, order_pk: int, changes: dict[str, Any]) -> dict[str, Any] | None:
    """Edit customer fields, type and/or items of an order or quotation.

    When items are replaced, stock taken by the old lines is returned first
    (if it was an Order) and the new lines take stock (if it is an Order now).
    An Order switched to a Quotation returns its stock. Each record gets the
    display id of its new type the first time it takes that type (it keeps
    the old one). Everything happens in one transaction.

    Returns:
        The updated order, or None if it does not exist

    Raises:
        ValueError: On invalid type, unknown products or insufficient stock
    """
    existing = get_order(conn, order_pk)
    if existing is None:
        return None
    new_type = _validate_type(changes.get("type") or existing["type"])

    new_lines = None
    total = existing["total_amount"]
    if changes.get("items") is not None:
        new_lines, total = _price_lines(conn, _merge_items(changes["items"]))

    fields = {
        key: str(changes[key]).strip() or existing[key]
        for key in ("customer_name", "customer_email", "customer_phone", "address")
        if changes.get(key)
    }

    with conn:
        if new_lines is not None:
            if existing["type"] == ORDER:
                _return_stock(conn, order_pk)
            conn.execute("DELETE FROM order_items WHERE order_pk = ?", [order_pk])
            if new_type == ORDER:
                _take_stock(conn, new_lines)
            _insert_lines(conn, order_pk, new_lines)
        elif new_type == ORDER and existing["type"] != ORDER:
            _take_stock(conn, existing["items"])
        elif new_type == QUOTATION and existing["type"] == ORDER:
            _return_stock(conn, order_pk)

        order_id = existing["order_id"]
        if new_type == ORDER and not order_id:
            order_id = next_display_id(conn, ORDER)
        quote_id = existing["quote_id"]
        if new_type == QUOTATION and not quote_id:
            quote_id = next_display_id(conn, QUOTATION)

        assignments = ", ".join(f"{key} = ?" for key in fields)
        conn.execute(
            f"""
            UPDATE orders SET {assignments + ', ' if assignments else ''}
                type = ?, order_id = ?, quote_id = ?, total_amount = ?, updated_at = ?
            WHERE id = ?
            """,
            [*fields.values(), new_type, order_id, quote_id, total, utc_now(), order_pk],
        )
    return get_order(conn, order_pk)


def delete_order(conn: sqlite3.Connection, order_pk: int) -> str | None:
    """Soft-delete a quotation or hard-delete an order.

    Returns:
        "soft" or "hard", or None if nothing with that id exists

    Raises:
        ValueError: If the quotation is already deleted
    """
    existing = get_order(conn, order_pk)
    if existing is None:
        return None
    with conn:
        if existing["type"] == QUOTATION:
            if existing["is_deleted"]:
                raise ValueError("Quotation already deleted")
            conn.execute(
                "UPDATE orders SET is_deleted = 1, deleted_at = ? WHERE id = ?", [utc_now(), order_pk]
            )
            return "soft"
        conn.execute("DELETE FROM orders WHERE id = ?", [order_pk])
        return "hard"


def list_deleted_quotations(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Soft-deleted quotations, most recently deleted first."""
    rows = conn.execute(
        "SELECT * FROM orders WHERE type = ? AND is_deleted = 1 ORDER BY deleted_at DESC, id DESC",
        [QUOTATION],
    ).fetchall()
    return [_order_dict(conn, row) for row in rows]


def restore_quotation(conn: sqlite3.Connection, order_pk: int) -> dict[str, Any] | None:
    """Undo a soft delete. Returns None if no deleted quotation has that id."""
    with conn:
        cursor = conn.execute(
            "UPDATE orders SET is_deleted = 0, deleted_at = NULL WHERE id = ? AND type = ? AND is_deleted = 1",
            [order_pk, QUOTATION],
        )
    return get_order(conn, order_pk) if cursor.rowcount else None


def all_orders(conn: sqlite3.Connection, order_type: str | None = None, include_deleted: bool = True) -> list[dict[str, Any]]:
    """Every order (optionally one type), oldest first. Used by exports."""
    conditions = []
    params: list[Any] = []
    if order_type:
        conditions.append("type = ?")
        params.append(order_type)
    if not include_deleted:
        conditions.append("is_deleted = 0")
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    rows = conn.execute(f"SELECT * FROM orders {where} ORDER BY created_at, id", params).fetchall()
    return [_order_dict(conn, row) for row in rows]


# =============================================================================
# CUSTOMERS
# =============================================================================


def list_customers(conn: sqlite3.Connection, search: str | None = None) -> list[dict[str, Any]]:
    """Orders grouped by customer email, most recent customer first.

    Name, phone and address come from the customer's earliest order.
    search matches name, email or phone (case-insensitive substring).
    """
    where = ""
    params: list[Any] = []
    if search and search.strip():
        pattern = f"%{escape_like(search.strip())}%"
        where = (
            "WHERE customer_name LIKE ? ESCAPE '\\' OR customer_email LIKE ? ESCAPE '\\' "
            "OR customer_phone LIKE ? ESCAPE '\\'"
        )
        params = [pattern, pattern, pattern]

    customers: dict[str, dict[str, Any]] = {}
    for row in conn.execute(f"SELECT * FROM orders {where} ORDER BY created_at, id", params).fetchall():
        email = row["customer_email"]
        customer = customers.get(email)
        if customer is None:
            customer = customers[email] = {
                "customer_email": email,
                "customer_name": row["customer_name"],
                "customer_phone": row["customer_phone"],
                "address": row["address"],
                "orders": [],
                "total_orders": 0,
                "last_order_date": None,
            }
        customer["orders"].append({
            "id": row["id"],
            "order_id": row["order_id"],
            "quote_id": row["quote_id"],
            "type": row["type"],
            "total_amount": row["total_amount"],
            "status": row["status"],
            "created_at": row["created_at"],
        })
        customer["total_orders"] += 1
        customer["last_order_date"] = row["created_at"]

    return sorted(customers.values(), key=lambda c: c["last_order_date"], reverse=True)


def customer_orders(conn: sqlite3.Connection, email: str) -> list[dict[str, Any]]:
    """Every order placed under an email, newest first."""
    rows = conn.execute(
        "SELECT * FROM orders WHERE customer_email = ? ORDER BY created_at DESC, id DESC", [email]
    ).fetchall()
    return [_order_dict(conn, row) for row in rows]
