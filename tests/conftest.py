"""Shared fixtures for catalog tests."""

from pathlib import Path

import pytest

from pcparts_catalog.db import CatalogDatabase

SEED_PATH = Path(__file__).parent.parent / "data" / "catalog.jsonl"


def make_product(product_id: str, category: str, attributes: dict | None = None, **fields) -> dict:
    """In-memory product record shaped like the database rows."""
    product = {
        "id": product_id,
        "name": fields.pop("name", product_id),
        "brand": fields.pop("brand", ""),
        "category": category,
        "selling_rate": fields.pop("selling_rate", 100.0),
        "attributes": attributes if attributes is not None else {},
    }
    product.update(fields)
    return product


@pytest.fixture
def db(tmp_path):
    """Empty catalog database in a temp directory."""
    database = CatalogDatabase(tmp_path / "catalog.db", seed_path=tmp_path / "missing.jsonl")
    yield database
    database.close()


@pytest.fixture
def seeded_db(tmp_path):
    """Catalog database built from the bundled seed file."""
    database = CatalogDatabase(tmp_path / "catalog.db", seed_path=SEED_PATH)
    yield database
    database.close()
