"""Compatibility operations over the stored catalog.

Each function fetches a fresh catalog snapshot from the database, runs the
engine over it and shapes the response payload. Lookup failures and invalid
input come back as ``{"error": ..., "code": ...}`` dicts; database errors
propagate.
"""

import logging
from typing import Any

from .compat import (
    MatchMode,
    MatchResult,
    REASON_NO_ATTRIBUTES,
    assemble_builds,
    builds_for_selection,
    flag_compatibility,
    has_attributes,
    is_compatible,
    narrow_sequential,
    product_summary,
    scan,
    scan_all,
)
from .config import MAX_SELECTED_PRODUCTS
from .db import CatalogDatabase

logger = logging.getLogger(__name__)


def parse_mode(value: str | MatchMode | None, default: MatchMode) -> MatchMode:
    """Resolve a mode name. Accepts 'rule_based'/'ruleBased' and 'generic_overlap'/'genericOverlap'.

    Raises:
        ValueError: If the name is not a known mode
    """
    if value is None or value == "":
        return default
    if isinstance(value, MatchMode):
        return value
    normalized = value.strip().replace("-", "_")
    aliases = {"rulebased": MatchMode.RULE_BASED, "genericoverlap": MatchMode.GENERIC_OVERLAP}
    mode = aliases.get(normalized.lower().replace("_", ""))
    if mode is None:
        raise ValueError(f"Unknown mode '{value}'. Use 'rule_based' or 'generic_overlap'")
    return mode


# Codes carried next to "error"; routes map them to HTTP statuses
ERROR_NOT_FOUND = "not_found"
ERROR_INVALID_INPUT = "invalid_input"


def _error(message: str, code: str = ERROR_INVALID_INPUT, hint: str | None = None) -> dict[str, Any]:
    payload = {"error": message, "code": code}
    if hint:
        payload["hint"] = hint
    return payload


def _not_found(product_id: str) -> dict[str, Any]:
    return _error(f"Product not found: {product_id}", ERROR_NOT_FOUND)


def _match_entry(result: MatchResult) -> dict[str, Any]:
    return {
        **product_summary(result.product_b),
        "selling_rate": result.product_b.get("selling_rate"),
        "matchedAttributes": result.matched_attributes,
    }


def compatible_products(db: CatalogDatabase, product_id: str, mode: MatchMode) -> dict[str, Any]:
    """Products compatible with one product.

    Returns:
        {product, compatibleProducts, totalCompatible, mode}; a product with no
        attributes gets an empty list and reason "no_attributes".
    """
    target = db.find_product_by_id(product_id)
    if target is None:
        return _not_found(product_id)

    payload: dict[str, Any] = {"product": product_summary(target), "mode": mode.value}
    if not has_attributes(target):
        payload.update({
            "compatibleProducts": [],
            "totalCompatible": 0,
            "reason": REASON_NO_ATTRIBUTES,
            "message": "No attributes to match",
        })
        return payload

    matches = scan(target, db.find_products(), mode)
    payload["compatibleProducts"] = [_match_entry(m) for m in matches]
    payload["totalCompatible"] = len(matches)
    return payload


def products_with_compatibility(db: CatalogDatabase, product_id: str, mode: MatchMode) -> dict[str, Any]:
    """Every other product flagged with whether it is compatible with product_id.

    Returns:
        {product, products: [{...product, isCompatible}], totalCompatible, mode}
    """
    target = db.find_product_by_id(product_id)
    if target is None:
        return _not_found(product_id)

    flagged = flag_compatibility(target, db.find_products(), mode)
    products = [{**product, "isCompatible": ok} for product, ok in flagged]
    return {
        "product": product_summary(target),
        "products": products,
        "totalCompatible": sum(1 for _, ok in flagged if ok),
        "mode": mode.value,
    }


def check_pair(db: CatalogDatabase, product_id_a: str, product_id_b: str, mode: MatchMode) -> dict[str, Any]:
    """Pairwise check between two stored products."""
    a = db.find_product_by_id(product_id_a)
    if a is None:
        return _not_found(product_id_a)
    b = db.find_product_by_id(product_id_b)
    if b is None:
        return _not_found(product_id_b)

    result = is_compatible(a, b, mode)
    return {
        "productA": product_summary(a),
        "productB": product_summary(b),
        "compatible": result.compatible,
        "matchedAttributes": result.matched_attributes,
        "reason": result.reason,
        "mode": mode.value,
    }


def all_compatibility(db: CatalogDatabase, mode: MatchMode) -> dict[str, Any]:
    """Many-to-many view: every product with at least one compatible partner."""
    catalog = db.find_products()
    compatibility = scan_all(catalog, mode)
    by_id = {p["id"]: p for p in catalog}
    return {
        "totalProducts": len(catalog),
        "productsWithCompatibility": len(compatibility),
        "compatibility": [
            {"product": product_summary(by_id[pid]), "compatibleWith": [_match_entry(m) for m in matches]}
            for pid, matches in compatibility.items()
        ],
        "mode": mode.value,
    }


def compatible_builds(db: CatalogDatabase) -> dict[str, Any]:
    """Every complete motherboard-centred build in the catalog."""
    builds = assemble_builds(db.find_products())
    return {"totalBuilds": len(builds), "builds": [b.to_dict() for b in builds]}


def builds_for_product(db: CatalogDatabase, product_id: str) -> dict[str, Any]:
    """Builds anchored on one selected product."""
    selected = db.find_product_by_id(product_id)
    if selected is None:
        return _not_found(product_id)
    builds = builds_for_selection(selected, db.find_products())
    return {
        "selectedProduct": product_summary(selected),
        "totalBuilds": len(builds),
        "builds": [b.to_dict() for b in builds],
    }


def sequential_compatibility(db: CatalogDatabase, selected_ids: list[str] | None) -> dict[str, Any]:
    """Narrow the remaining catalog given the products selected so far."""
    if not selected_ids:
        return _error("No products selected", hint="Pass at least one product id in selectedProductIds")
    if any(not isinstance(product_id, str) for product_id in selected_ids):
        return _error("Selected product ids must be strings")
    if len(selected_ids) > MAX_SELECTED_PRODUCTS:
        return _error(f"Too many selected products (max {MAX_SELECTED_PRODUCTS})")

    narrowing = narrow_sequential(selected_ids, db.find_products())
    return {
        "state": narrowing.state,
        "selectedProducts": [product_summary(p) for p in narrowing.selected],
        "compatibleProducts": [product_summary(p) for p in narrowing.candidates],
        "totalCompatible": len(narrowing.candidates),
    }
