"""Dashboard statistics."""

import sqlite3
from typing import Any


def get_stats(conn: sqlite3.Connection) -> dict[str, Any]:
    """Get dashboard statistics.

    Orders and sales per year count every order and quotation, deleted or not.

    Returns:
        Dict with total_categories, total_products, yearly_orders, yearly_sales
        and products_per_category (largest first)
    """
    stats: dict[str, Any] = {}

    stats["total_categories"] = conn.execute("SELECT COUNT(*) FROM categories").fetchone()[0]
    stats["total_products"] = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]

    cursor = conn.execute("""
        SELECT CAST(substr(created_at, 1, 4) AS INTEGER) AS year,
               COUNT(*) AS orders,
               COALESCE(SUM(total_amount), 0) AS sales
        FROM orders
        GROUP BY year
        ORDER BY year
    """)
    yearly = cursor.fetchall()
    stats["yearly_orders"] = [{"year": row["year"], "orders": row["orders"]} for row in yearly]
    stats["yearly_sales"] = [{"year": row["year"], "sales": row["sales"]} for row in yearly]

    cursor = conn.execute("""
        SELECT c.name AS category, COUNT(p.id) AS cnt
        FROM products p
        JOIN categories c ON c.id = p.category_id
        GROUP BY c.id
        ORDER BY cnt DESC, c.name
    """)
    stats["products_per_category"] = [{"category": row["category"], "count": row["cnt"]} for row in cursor]

    return stats
