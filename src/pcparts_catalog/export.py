"""CSV export of products, orders and quotations."""

import csv
import io
from typing import Any

PRODUCT_COLUMNS: list[tuple[str, str]] = [
    ("ID", "id"),
    ("Name", "name"),
    ("Category", "category"),
    ("Brand", "brand"),
    ("Model Number", "model_number"),
    ("Quantity", "quantity"),
    ("Selling Rate", "selling_rate"),
    ("Cost Rate", "cost_rate"),
    ("Status", "status"),
    ("Warranty", "warranty"),
]

ORDER_HEADER = [
    "ID", "OrderID", "QuoteID", "CustomerName", "CustomerEmail", "CustomerPhone", "Address",
    "Product", "Quantity", "Price", "TotalAmount", "Type", "Status", "CreatedAt",
]


def _sanitize_csv_field(value: Any) -> Any:
    """Sanitize a CSV field to prevent formula injection in Excel.

    Prefixes strings starting with formula characters (=, -, +, @, tab, carriage
    return) with a single quote. Non-strings pass through unchanged.
    """
    if isinstance(value, str) and value and value[0] in ('=', '-', '+', '@', '\t', '\r'):
        return "'" + value
    return value


def _render(header: list[str], rows: list[list[Any]]) -> str:
    output = io.StringIO(newline='')
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if v is None else _sanitize_csv_field(v) for v in row])
    return output.getvalue()


def products_csv(products: list[dict[str, Any]]) -> str:
    """One row per product."""
    header = [label for label, _ in PRODUCT_COLUMNS]
    rows = [[p.get(key) for _, key in PRODUCT_COLUMNS] for p in products]
    return _render(header, rows)


def orders_csv(orders: list[dict[str, Any]]) -> str:
    """One row per order line; order-level fields repeat on every line."""
    rows = []
    for order in orders:
        for item in order["items"]:
            rows.append([
                order["id"],
                order["order_id"],
                order["quote_id"],
                order["customer_name"],
                order["customer_email"],
                order["customer_phone"],
                order["address"],
                item["name"],
                item["quantity"],
                item["price"],
                order["total_amount"],
                order["type"],
                order["status"],
                order["created_at"],
            ])
    return _render(ORDER_HEADER, rows)
