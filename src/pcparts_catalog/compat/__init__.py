"""Attribute-based component compatibility engine."""

from .accessor import CONCEPT_KEYS, get_attr, get_attributes, get_concept, has_attributes
from .builds import (
    Build,
    Narrowing,
    assemble_builds,
    builds_for_selection,
    narrow_sequential,
    product_summary,
)
from .matcher import (
    REASON_NO_ATTRIBUTES,
    REASON_NO_MATCH,
    REASON_UNKNOWN_CATEGORY_PAIR,
    REASON_UNPARSEABLE_NUMERIC,
    MatchedAttribute,
    MatchMode,
    MatchResult,
    is_compatible,
)
from .rules import COMPATIBILITY_RULES, Comparison, get_rule
from .scanner import flag_compatibility, scan, scan_all

__all__ = [
    "CONCEPT_KEYS",
    "get_attr",
    "get_attributes",
    "get_concept",
    "has_attributes",
    "Build",
    "Narrowing",
    "assemble_builds",
    "builds_for_selection",
    "narrow_sequential",
    "product_summary",
    "REASON_NO_ATTRIBUTES",
    "REASON_NO_MATCH",
    "REASON_UNKNOWN_CATEGORY_PAIR",
    "REASON_UNPARSEABLE_NUMERIC",
    "MatchedAttribute",
    "MatchMode",
    "MatchResult",
    "is_compatible",
    "COMPATIBILITY_RULES",
    "Comparison",
    "get_rule",
    "flag_compatibility",
    "scan",
    "scan_all",
]
