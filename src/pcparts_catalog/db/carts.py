"""Session-scoped shopping carts.

Each cart belongs to a caller-supplied session id and expires CART_SESSION_TTL
seconds after its last write. Expired carts read as absent and are deleted
the next time they are touched, or by purge_expired().
"""

import logging
import sqlite3
import time
from typing import Any

from ..config import CART_SESSION_TTL
from .connection import utc_now
from .lookup import find_product_by_id

logger = logging.getLogger(__name__)


def _now(now: float | None) -> float:
    return time.time() if now is None else now


def _validate_session(session_id: str) -> str:
    session_id = (session_id or "").strip()
    if not session_id:
        raise ValueError("session_id is required")
    return session_id


def purge_expired(conn: sqlite3.Connection, now: float | None = None) -> int:
    """Delete every expired cart. Returns how many were removed."""
    with conn:
        cursor = conn.execute("DELETE FROM carts WHERE expires_at <= ?", [_now(now)])
    if cursor.rowcount:
        logger.info(f"Purged {cursor.rowcount} expired carts")
    return cursor.rowcount


def _live_cart_row(conn: sqlite3.Connection, session_id: str, now: float) -> sqlite3.Row | None:
    row = conn.execute("SELECT * FROM carts WHERE session_id = ?", [session_id]).fetchone()
    if row is None:
        return None
    if row["expires_at"] <= now:
        with conn:
            conn.execute("DELETE FROM carts WHERE session_id = ?", [session_id])
        return None
    return row


def _touch(conn: sqlite3.Connection, session_id: str, now: float) -> None:
    """Create the cart if needed and push its expiry out. Caller commits."""
    stamp = utc_now()
    conn.execute(
        """
        INSERT INTO carts (session_id, created_at, updated_at, expires_at) VALUES (?, ?, ?, ?)
        ON CONFLICT(session_id) DO UPDATE SET updated_at = excluded.updated_at,
            expires_at = excluded.expires_at
        """,
        [session_id, stamp, stamp, now + CART_SESSION_TTL],
    )


def _cart_dict(conn: sqlite3.Connection, row: sqlite3.Row) -> dict[str, Any]:
    items = []
    total = 0.0
    for item in conn.execute(
        "SELECT * FROM cart_items WHERE session_id = ? ORDER BY rowid", [row["session_id"]]
    ):
        subtotal = item["price"] * item["quantity"]
        total += subtotal
        items.append({
            "product_id": item["product_id"],
            "name": item["name"],
            "quantity": item["quantity"],
            "price": item["price"],
            "subtotal": subtotal,
        })
    return {
        "session_id": row["session_id"],
        "items": items,
        "total_amount": total,
        "created_at": row["created_at"],
        "updated_at": row["updated_at"],
        "expires_at": row["expires_at"],
    }


def get_cart(conn: sqlite3.Connection, session_id: str, now: float | None = None) -> dict[str, Any] | None:
    """The session's live cart, or None if it has none (or it expired)."""
    session_id = _validate_session(session_id)
    row = _live_cart_row(conn, session_id, _now(now))
    return _cart_dict(conn, row) if row else None


def get_or_create_cart(conn: sqlite3.Connection, session_id: str, now: float | None = None) -> dict[str, Any]:
    session_id = _validate_session(session_id)
    now = _now(now)
    row = _live_cart_row(conn, session_id, now)
    if row is None:
        with conn:
            _touch(conn, session_id, now)
        row = _live_cart_row(conn, session_id, now)
    return _cart_dict(conn, row)


def add_item(
    conn: sqlite3.Connection,
    session_id: str,
    product_id: str,
    quantity: int = 1,
    now: float | None = None,
) -> dict[str, Any]:
    """Add a product to the cart at its current selling rate.

    Adding a product already in the cart increases its quantity and keeps the
    price captured when it was first added.

    Raises:
        ValueError: If quantity < 1 or the product does not exist
    """
    session_id = _validate_session(session_id)
    if quantity < 1:
        raise ValueError("quantity must be at least 1")
    product = find_product_by_id(conn, product_id)
    if product is None:
        raise ValueError(f"Product not found: {product_id}")

    now = _now(now)
    _live_cart_row(conn, session_id, now)  # drops an expired cart and its items
    with conn:
        _touch(conn, session_id, now)
        conn.execute(
            """
            INSERT INTO cart_items (session_id, product_id, name, quantity, price) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(session_id, product_id) DO UPDATE SET quantity = quantity + excluded.quantity
            """,
            [session_id, product_id, product["name"], quantity, product["selling_rate"]],
        )
    return get_cart(conn, session_id, now)


def update_item(
    conn: sqlite3.Connection,
    session_id: str,
    product_id: str,
    quantity: int,
    now: float | None = None,
) -> dict[str, Any] | None:
    """Set an item's quantity; zero or less removes it.

    Returns:
        The updated cart, or None if the cart or item does not exist
    """
    session_id = _validate_session(session_id)
    now = _now(now)
    if _live_cart_row(conn, session_id, now) is None:
        return None
    with conn:
        if quantity <= 0:
            cursor = conn.execute(
                "DELETE FROM cart_items WHERE session_id = ? AND product_id = ?",
                [session_id, product_id],
            )
        else:
            cursor = conn.execute(
                "UPDATE cart_items SET quantity = ? WHERE session_id = ? AND product_id = ?",
                [quantity, session_id, product_id],
            )
        if cursor.rowcount == 0:
            return None
        _touch(conn, session_id, now)
    return get_cart(conn, session_id, now)


def remove_item(
    conn: sqlite3.Connection, session_id: str, product_id: str, now: float | None = None
) -> dict[str, Any] | None:
    """Remove a product from the cart. Returns None if the cart does not exist."""
    session_id = _validate_session(session_id)
    now = _now(now)
    if _live_cart_row(conn, session_id, now) is None:
        return None
    with conn:
        conn.execute(
            "DELETE FROM cart_items WHERE session_id = ? AND product_id = ?",
            [session_id, product_id],
        )
        _touch(conn, session_id, now)
    return get_cart(conn, session_id, now)


def clear_cart(conn: sqlite3.Connection, session_id: str) -> None:
    """Empty and drop the session's cart. A missing cart is not an error."""
    session_id = _validate_session(session_id)
    with conn:
        conn.execute("DELETE FROM carts WHERE session_id = ?", [session_id])
