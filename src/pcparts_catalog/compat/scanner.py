"""Catalog-wide compatibility scanning."""

from typing import Any

from .accessor import has_attributes
from .matcher import MatchMode, MatchResult, is_compatible


def scan(
    target: dict[str, Any],
    candidates: list[dict[str, Any]],
    mode: MatchMode,
) -> list[MatchResult]:
    """Match target against every candidate, keeping the compatible ones.

    Results are in candidate order. The target itself (same id) is skipped, as
    are candidates without attributes. A target without attributes matches nothing.
    """
    if not has_attributes(target):
        return []

    target_id = target.get("id")
    results = []
    for candidate in candidates:
        if target_id is not None and candidate.get("id") == target_id:
            continue
        if not has_attributes(candidate):
            continue
        result = is_compatible(target, candidate, mode)
        if result.compatible:
            results.append(result)
    return results


def scan_all(catalog: list[dict[str, Any]], mode: MatchMode) -> dict[str, list[MatchResult]]:
    """Many-to-many compatibility over the whole catalog.

    Products without attributes are left out entirely. Only products with at
    least one match get an entry; keys follow catalog order.
    """
    with_attributes = [p for p in catalog if has_attributes(p)]
    compatibility: dict[str, list[MatchResult]] = {}
    for product in with_attributes:
        matches = scan(product, with_attributes, mode)
        if matches:
            compatibility[product["id"]] = matches
    return compatibility


def flag_compatibility(
    target: dict[str, Any],
    candidates: list[dict[str, Any]],
    mode: MatchMode,
) -> list[tuple[dict[str, Any], bool]]:
    """Pair each candidate (except the target) with whether it matches the target."""
    compatible_ids = {id(r.product_b) for r in scan(target, candidates, mode)}
    target_id = target.get("id")
    return [
        (candidate, id(candidate) in compatible_ids)
        for candidate in candidates
        if target_id is None or candidate.get("id") != target_id
    ]
