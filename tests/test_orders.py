"""Tests for orders, quotations and customers."""

import pytest

NOW = 1_700_000_000.0

CUSTOMER = {
    "customer_name": "Dana Reyes",
    "customer_email": "dana@example.com",
    "customer_phone": "555-0100",
    "address": "12 Elm St",
}


def _order(seeded_db, items, order_type="Order", **customer):
    return seeded_db.create_order({**CUSTOMER, **customer, "type": order_type, "items": items})


def _stock(seeded_db, product_id):
    return seeded_db.find_product_by_id(product_id)["quantity"]


class TestCreateOrder:
    def test_order_takes_stock(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 2}])
        assert order["order_id"] == "O-001"
        assert order["quote_id"] is None
        assert order["status"] == "Pending"
        assert order["total_amount"] == 1198.0
        assert _stock(seeded_db, "gpu-4070") == 3

    def test_display_ids_increment_per_type(self, seeded_db):
        first = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        quote = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], "Quotation")
        second = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert (first["order_id"], quote["quote_id"], second["order_id"]) == ("O-001", "Q-001", "O-002")

    def test_quotation_leaves_stock(self, seeded_db):
        quote = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 2}], "Quotation")
        assert quote["order_id"] is None
        assert _stock(seeded_db, "gpu-4070") == 5

    def test_duplicate_lines_merge(self, seeded_db):
        order = _order(seeded_db, [
            {"product_id": "ssd-990", "quantity": 1},
            {"product_id": "ssd-990", "quantity": 2},
        ])
        assert [(i["product_id"], i["quantity"]) for i in order["items"]] == [("ssd-990", 3)]

    def test_price_override(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "ssd-990", "quantity": 2, "price": 150}])
        assert order["items"][0]["price"] == 150.0
        assert order["total_amount"] == 300.0

    def test_insufficient_stock_rolls_back(self, seeded_db):
        with pytest.raises(ValueError, match="Insufficient stock"):
            _order(seeded_db, [
                {"product_id": "ssd-990", "quantity": 1},
                {"product_id": "gpu-4070", "quantity": 99},
            ])
        assert _stock(seeded_db, "ssd-990") == 15
        assert seeded_db.list_orders()["pagination"]["total"] == 0

    def test_failed_order_does_not_burn_display_id(self, seeded_db):
        with pytest.raises(ValueError):
            _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 99}])
        assert _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])["order_id"] == "O-001"

    @pytest.mark.parametrize("items, message", [
        ([], "At least one item"),
        ([{"product_id": "gpu-4070", "quantity": 0}], "at least 1"),
        ([{"quantity": 1}], "product_id"),
        ([{"product_id": "nope", "quantity": 1}], "not found"),
        (["gpu-4070"], "must be an object"),
        ([None], "must be an object"),
    ])
    def test_invalid_items(self, seeded_db, items, message):
        with pytest.raises(ValueError, match=message):
            _order(seeded_db, items)

    def test_requires_customer(self, seeded_db):
        with pytest.raises(ValueError, match="customer_name"):
            seeded_db.create_order({"address": "x", "items": [{"product_id": "gpu-4070", "quantity": 1}]})

    def test_invalid_type(self, seeded_db):
        with pytest.raises(ValueError, match="Invalid type"):
            _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], "Invoice")


class TestQuotationFromCart:
    def test_converts_and_empties_cart(self, seeded_db):
        seeded_db.add_to_cart("s1", "ram-ddr5-32", 2, now=NOW)
        seeded_db.update_product("ram-ddr5-32", {"selling_rate": 999})
        quote = seeded_db.create_quotation_from_cart("s1", CUSTOMER, now=NOW)
        assert quote["type"] == "Quotation"
        assert quote["quote_id"] == "Q-001"
        assert quote["items"][0]["price"] == 109.0
        assert quote["total_amount"] == 218.0
        assert seeded_db.get_cart("s1", now=NOW)["items"] == []

    def test_empty_cart(self, seeded_db):
        with pytest.raises(ValueError, match="Cart is empty"):
            seeded_db.create_quotation_from_cart("s1", CUSTOMER, now=NOW)


class TestLookupAndList:
    def test_get_by_display_ids(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        quote = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], "Quotation")
        assert seeded_db.get_by_order_id("O-001")["id"] == order["id"]
        assert seeded_db.get_by_quote_id("Q-001")["id"] == quote["id"]
        assert seeded_db.get_order(9999) is None

    def test_quotation_items_attach_product(self, seeded_db):
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], "Quotation")
        result = seeded_db.quotation_items("Q-001")
        assert result["items"][0]["product"]["id"] == "gpu-4070"
        seeded_db.delete_product("gpu-4070")
        assert seeded_db.quotation_items("Q-001")["items"][0]["product"] is None

    def test_list_filters(self, seeded_db):
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], "Quotation", customer_name="Sam Ito")
        assert seeded_db.list_orders(order_type="Quotation")["pagination"]["total"] == 1
        assert [o["customer_name"] for o in seeded_db.list_orders(search="sam")["orders"]] == ["Sam Ito"]
        assert seeded_db.list_orders(search="O-00")["orders"][0]["order_id"] == "O-001"
        assert seeded_db.list_orders(status="Confirmed")["orders"] == []

    def test_list_newest_first(self, seeded_db):
        first = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        second = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert [o["id"] for o in seeded_db.list_orders()["orders"]] == [second["id"], first["id"]]


class TestUpdate:
    def test_status(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert seeded_db.update_order_status(order["id"], "Confirmed")["status"] == "Confirmed"
        with pytest.raises(ValueError, match="Invalid status"):
            seeded_db.update_order_status(order["id"], "Shipped")
        assert seeded_db.update_order_status(9999, "Confirmed") is None

    def test_replace_items_restocks(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 3}])
        updated = seeded_db.update_order(order["id"], {"items": [{"product_id": "ssd-990", "quantity": 1}]})
        assert _stock(seeded_db, "gpu-4070") == 5
        assert _stock(seeded_db, "ssd-990") == 14
        assert updated["total_amount"] == 169.0

    def test_quotation_converted_to_order(self, seeded_db):
        quote = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 2}], "Quotation")
        order = seeded_db.update_order(quote["id"], {"type": "Order"})
        assert order["type"] == "Order"
        assert order["order_id"] == "O-001"
        assert order["quote_id"] == "Q-001"
        assert _stock(seeded_db, "gpu-4070") == 3

    def test_order_converted_to_quotation_returns_stock(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert _stock(seeded_db, "gpu-4070") == 4
        quote = seeded_db.update_order(order["id"], {"type": "Quotation"})
        assert quote["type"] == "Quotation"
        assert quote["quote_id"] == "Q-001"
        assert quote["order_id"] == "O-001"
        assert _stock(seeded_db, "gpu-4070") == 5
        assert seeded_db.get_by_quote_id("Q-001")["id"] == order["id"]

    def test_round_trip_keeps_display_ids(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 2}])
        seeded_db.update_order(order["id"], {"type": "Quotation"})
        again = seeded_db.update_order(order["id"], {"type": "Order"})
        assert (again["order_id"], again["quote_id"]) == ("O-001", "Q-001")
        assert _stock(seeded_db, "gpu-4070") == 3

    def test_customer_fields(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        updated = seeded_db.update_order(order["id"], {"address": "99 Oak Ave"})
        assert updated["address"] == "99 Oak Ave"
        assert updated["customer_name"] == "Dana Reyes"

    def test_failed_update_changes_nothing(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        with pytest.raises(ValueError, match="Insufficient stock"):
            seeded_db.update_order(order["id"], {"items": [{"product_id": "ssd-990", "quantity": 999}]})
        assert _stock(seeded_db, "gpu-4070") == 4
        assert seeded_db.get_order(order["id"])["items"][0]["product_id"] == "gpu-4070"

    def test_missing(self, seeded_db):
        assert seeded_db.update_order(9999, {"address": "x"}) is None


class TestDelete:
    def test_quotation_soft_delete_and_restore(self, seeded_db):
        quote = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], "Quotation")
        assert seeded_db.delete_order(quote["id"]) == "soft"
        assert seeded_db.get_by_quote_id("Q-001") is None
        assert [q["id"] for q in seeded_db.list_deleted_quotations()] == [quote["id"]]
        assert seeded_db.list_orders()["orders"] == []
        with pytest.raises(ValueError, match="already deleted"):
            seeded_db.delete_order(quote["id"])

        restored = seeded_db.restore_quotation(quote["id"])
        assert not restored["is_deleted"]
        assert seeded_db.get_by_quote_id("Q-001") is not None

    def test_order_hard_delete(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert seeded_db.delete_order(order["id"]) == "hard"
        assert seeded_db.get_order(order["id"]) is None
        # Stock is not returned on delete
        assert _stock(seeded_db, "gpu-4070") == 4

    def test_restore_requires_deleted_quotation(self, seeded_db):
        order = _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert seeded_db.restore_quotation(order["id"]) is None
        assert seeded_db.delete_order(9999) is None


class TestCustomers:
    def test_grouped_by_email(self, seeded_db):
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        _order(seeded_db, [{"product_id": "ssd-990", "quantity": 1}], "Quotation")
        _order(seeded_db, [{"product_id": "ssd-990", "quantity": 1}],
               customer_name="Sam Ito", customer_email="sam@example.com")
        customers = {c["customer_email"]: c for c in seeded_db.list_customers()}
        assert customers["dana@example.com"]["total_orders"] == 2
        assert customers["sam@example.com"]["customer_name"] == "Sam Ito"

    def test_search(self, seeded_db):
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        assert seeded_db.list_customers("nobody") == []
        assert len(seeded_db.list_customers("DANA")) == 1

    def test_customer_orders(self, seeded_db):
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}])
        _order(seeded_db, [{"product_id": "gpu-4070", "quantity": 1}], customer_email="other@example.com")
        orders = seeded_db.customer_orders("dana@example.com")
        assert [o["order_id"] for o in orders] == ["O-001"]
