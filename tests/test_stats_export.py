"""Tests for dashboard statistics, CSV export and attribute templates."""

import csv
import io
from datetime import datetime, timezone

from pcparts_catalog.export import _sanitize_csv_field, orders_csv, products_csv
from pcparts_catalog.templates import all_templates, get_template

CUSTOMER = {"customer_name": "Dana Reyes", "customer_email": "dana@example.com", "address": "12 Elm St"}


class TestStats:
    def test_empty(self, db):
        stats = db.get_stats()
        assert stats == {
            "total_categories": 0,
            "total_products": 0,
            "yearly_orders": [],
            "yearly_sales": [],
            "products_per_category": [],
        }

    def test_seeded(self, seeded_db):
        seeded_db.create_order({**CUSTOMER, "items": [{"product_id": "ssd-990", "quantity": 2}]})
        quote = seeded_db.create_order({
            **CUSTOMER, "type": "Quotation", "items": [{"product_id": "ssd-990", "quantity": 1}],
        })
        seeded_db.delete_order(quote["id"])

        stats = seeded_db.get_stats()
        year = datetime.now(timezone.utc).year
        assert stats["total_categories"] == 6
        assert stats["total_products"] == 8
        # Deleted quotations still count
        assert stats["yearly_orders"] == [{"year": year, "orders": 2}]
        assert stats["yearly_sales"] == [{"year": year, "sales": 507.0}]
        assert stats["products_per_category"][:2] == [
            {"category": "CPU", "count": 2},
            {"category": "Motherboard", "count": 2},
        ]


class TestSanitize:
    def test_formula_prefixes(self):
        for value in ("=SUM(A1)", "-1", "+1", "@x", "\tx", "\rx"):
            assert _sanitize_csv_field(value) == "'" + value

    def test_plain_values_unchanged(self):
        assert _sanitize_csv_field("Ryzen") == "Ryzen"
        assert _sanitize_csv_field(-5) == -5
        assert _sanitize_csv_field("") == ""


class TestCsv:
    def test_products(self, seeded_db):
        rows = list(csv.reader(io.StringIO(products_csv(seeded_db.find_products(category="PSU")))))
        assert rows[0][:3] == ["ID", "Name", "Category"]
        assert rows[1][:3] == ["psu-750", "RM750e", "PSU"]
        assert len(rows) == 2

    def test_orders_one_row_per_line(self, seeded_db):
        seeded_db.create_order({**CUSTOMER, "items": [
            {"product_id": "ssd-990", "quantity": 1},
            {"product_id": "psu-750", "quantity": 1},
        ]})
        rows = list(csv.reader(io.StringIO(orders_csv(seeded_db.all_orders()))))
        assert len(rows) == 3
        assert [r[7] for r in rows[1:]] == ["990 Pro 2TB", "RM750e"]
        assert rows[1][1] == "O-001"

    def test_none_becomes_blank(self):
        products = [{"id": "x", "name": "=cmd", "cost_rate": None}]
        rows = list(csv.reader(io.StringIO(products_csv(products))))
        assert rows[1][1] == "'=cmd"
        assert rows[1][7] == ""


class TestTemplates:
    def test_case_insensitive(self):
        name, attributes = get_template(" motherboard ")
        assert name == "Motherboard"
        assert attributes["CPU Socket"] == ""

    def test_unknown(self):
        assert get_template("Toaster") is None
        assert get_template("") is None

    def test_all(self):
        assert set(all_templates()) == {"CPU", "Motherboard", "RAM", "Storage", "GPU", "PSU"}
