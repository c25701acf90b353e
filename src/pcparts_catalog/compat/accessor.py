"""Attribute lookup over free-form product specification maps.

Product records carry an ``attributes`` dict whose keys are whatever the admin
typed or the importer produced: the same property shows up as ``socketType``,
``socket`` or ``Socket`` depending on the record. Everything that compares
attributes for rule-based matching goes through this module, so spelling and
casing differences are absorbed in one place.
"""

import re
from typing import Any, Iterable

# =============================================================================
# CONCEPT KEYS
# =============================================================================
# Synonym groups for each physical property, in lookup order. The first key
# present with a non-empty value wins.

CONCEPT_KEYS: dict[str, tuple[str, ...]] = {
    "socket": ("socketType", "socket", "Socket", "CPU Socket"),
    "ram_type": ("ramType", "memoryType", "RamType"),
    "ram_capacity": ("RamMemoryCapacity", "ramMemoryCapacity"),
    "ram_speed": ("RamSpeed", "ramSpeed"),
    "pcie": ("pcieInterface", "pcieVersion", "pcie"),
    "wattage": ("wattage", "Wattage"),
    "storage_type": ("Storagetype", "storageType"),
}

_NON_DIGIT_PATTERN = re.compile(r"\D")


def _clean(value: Any) -> str | None:
    """Stringify and trim an attribute value. Blank and None values are absent."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def get_attributes(product: dict[str, Any] | None) -> dict[str, Any]:
    """Return the product's attribute map, or an empty dict if it has none."""
    if not product:
        return {}
    attrs = product.get("attributes")
    return attrs if isinstance(attrs, dict) else {}


def has_attributes(product: dict[str, Any] | None) -> bool:
    """True if the product has at least one non-empty attribute value."""
    return any(_clean(v) is not None for v in get_attributes(product).values())


def lookup(product: dict[str, Any] | None, keys: Iterable[str]) -> tuple[str, str] | None:
    """Find the first present, non-empty value among synonym keys.

    Exact key matches are tried first, in the given order. If none hit, the same
    keys are retried case-insensitively so ``ramtype`` still resolves.

    Returns:
        Tuple of (attribute_key_as_stored, trimmed_value) or None
    """
    attrs = get_attributes(product)
    if not attrs:
        return None
    keys = list(keys)

    for key in keys:
        value = _clean(attrs.get(key))
        if value is not None:
            return key, value

    lowered: dict[str, str] = {}
    for stored_key in attrs:
        lowered.setdefault(str(stored_key).lower(), stored_key)
    for key in keys:
        stored_key = lowered.get(key.lower())
        if stored_key is None:
            continue
        value = _clean(attrs.get(stored_key))
        if value is not None:
            return stored_key, value
    return None


def get_attr(product: dict[str, Any] | None, keys: Iterable[str]) -> str | None:
    """Normalized (lower-cased, trimmed) value for a synonym group, or None."""
    found = lookup(product, keys)
    return found[1].lower() if found else None


def get_concept(product: dict[str, Any] | None, concept: str) -> str | None:
    """Normalized value for a named concept from CONCEPT_KEYS."""
    return get_attr(product, CONCEPT_KEYS[concept])


def parse_number(value: str | None) -> int | None:
    """Strip every non-digit and parse what is left: '650W' -> 650, 'n/a' -> None"""
    if not value:
        return None
    digits = _NON_DIGIT_PATTERN.sub("", value)
    return int(digits) if digits else None


def category_of(product: dict[str, Any] | None) -> str:
    """Lower-cased category name. Accepts a plain name or a {"name": ...} dict."""
    if not product:
        return ""
    category = product.get("category")
    if isinstance(category, dict):
        category = category.get("name")
    return str(category or "").strip().lower()
