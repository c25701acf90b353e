"""Pairwise compatibility matching between two products.

Two strategies exist and callers must pick one:

- ``MatchMode.RULE_BASED``: the category-pair rules in rules.py (motherboard hub).
- ``MatchMode.GENERIC_OVERLAP``: rule-free; any attribute key present on both
  products with case-insensitively equal values counts as a match.

They answer different questions and give different result sets for the same
inputs, so neither is a fallback for the other.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .accessor import category_of, get_attributes, get_concept, has_attributes, parse_number
from .rules import Comparison, get_rule


class MatchMode(str, Enum):
    RULE_BASED = "rule_based"
    GENERIC_OVERLAP = "generic_overlap"


# Reason codes attached to non-compatible results
REASON_NO_ATTRIBUTES = "no_attributes"
REASON_UNKNOWN_CATEGORY_PAIR = "unknown_category_pair"
REASON_UNPARSEABLE_NUMERIC = "unparseable_numeric"
REASON_NO_MATCH = "no_match"


@dataclass(frozen=True)
class MatchedAttribute:
    """An attribute the two products agreed on."""

    key: str
    value: str

    def to_dict(self) -> dict[str, str]:
        return {self.key: self.value}


@dataclass
class MatchResult:
    """Outcome of matching product_a against product_b."""

    product_a: dict[str, Any]
    product_b: dict[str, Any]
    compatible: bool
    matched_on: list[MatchedAttribute] = field(default_factory=list)
    reason: str | None = None

    @property
    def matched_attributes(self) -> list[dict[str, str]]:
        return [m.to_dict() for m in self.matched_on]


def _compare(
    comparison: Comparison, a: dict[str, Any], b: dict[str, Any]
) -> tuple[bool, list[MatchedAttribute], str | None]:
    """Evaluate one comparison. Returns (ok, matched, reason_if_not_ok)."""
    if comparison.kind == "exact":
        concept = comparison.concepts[0]
        value_a = get_concept(a, concept)
        value_b = get_concept(b, concept)
        if value_a and value_b and value_a == value_b:
            return True, [MatchedAttribute(concept, value_a)], None
        return False, [], REASON_NO_MATCH

    if comparison.kind == "any_of":
        matched = []
        for concept in comparison.concepts:
            value_a = get_concept(a, concept)
            value_b = get_concept(b, concept)
            if value_a and value_b and value_a == value_b:
                matched.append(MatchedAttribute(concept, value_a))
        if matched:
            return True, matched, None
        return False, [], REASON_NO_MATCH

    if comparison.kind == "at_least":
        concept = comparison.concepts[0]
        if category_of(a) == comparison.provider:
            provider, consumer = a, b
        else:
            provider, consumer = b, a
        provider_raw = get_concept(provider, concept)
        consumer_raw = get_concept(consumer, concept)
        if not provider_raw or not consumer_raw:
            return False, [], REASON_NO_MATCH
        provider_value = parse_number(provider_raw)
        consumer_value = parse_number(consumer_raw)
        if provider_value is None or consumer_value is None:
            return False, [], REASON_UNPARSEABLE_NUMERIC
        if provider_value >= consumer_value:
            return True, [MatchedAttribute(concept, provider_raw)], None
        return False, [], REASON_NO_MATCH

    raise ValueError(f"Unknown comparison kind: {comparison.kind}")


def match_rule_based(a: dict[str, Any], b: dict[str, Any]) -> MatchResult:
    """Apply the category-pair rule set. All comparisons for the pair must hold."""
    rule = get_rule(category_of(a), category_of(b))
    if rule is None:
        return MatchResult(a, b, False, reason=REASON_UNKNOWN_CATEGORY_PAIR)
    if not has_attributes(a) or not has_attributes(b):
        return MatchResult(a, b, False, reason=REASON_NO_ATTRIBUTES)

    matched: list[MatchedAttribute] = []
    for comparison in rule:
        ok, comparison_matched, reason = _compare(comparison, a, b)
        if not ok:
            return MatchResult(a, b, False, reason=reason)
        matched.extend(comparison_matched)
    return MatchResult(a, b, True, matched_on=matched)


def match_generic_overlap(a: dict[str, Any], b: dict[str, Any]) -> MatchResult:
    """Compatible if any key present on both has case-insensitively equal values.

    Keys must match exactly. Reported values come from ``a``.
    """
    attrs_a = get_attributes(a)
    attrs_b = get_attributes(b)
    if not has_attributes(a) or not has_attributes(b):
        return MatchResult(a, b, False, reason=REASON_NO_ATTRIBUTES)

    matched = []
    for key, value in attrs_a.items():
        if key not in attrs_b or value is None or attrs_b[key] is None:
            continue
        text_a = str(value).strip()
        text_b = str(attrs_b[key]).strip()
        if text_a and text_a.lower() == text_b.lower():
            matched.append(MatchedAttribute(key, text_a))

    if matched:
        return MatchResult(a, b, True, matched_on=matched)
    return MatchResult(a, b, False, reason=REASON_NO_MATCH)


def is_compatible(a: dict[str, Any], b: dict[str, Any], mode: MatchMode) -> MatchResult:
    """Match two products using the given strategy."""
    if mode == MatchMode.RULE_BASED:
        return match_rule_based(a, b)
    if mode == MatchMode.GENERIC_OVERLAP:
        return match_generic_overlap(a, b)
    raise ValueError(f"Unknown match mode: {mode!r}")
