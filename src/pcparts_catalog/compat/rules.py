"""Category-pair compatibility rules for PC components.

The motherboard is the hub: every rule has a motherboard on one side. Two
non-motherboard parts (say a CPU and a RAM kit) are only ever related through a
board they both fit.
"""

from dataclasses import dataclass
from typing import Literal

# Category tags (compared lower-cased)
CPU = "cpu"
MOTHERBOARD = "motherboard"
RAM = "ram"
GPU = "gpu"
PSU = "psu"
STORAGE = "storage"

HUB_CATEGORY = MOTHERBOARD

# Slots every assembled build must fill besides the motherboard
REQUIRED_SLOTS: tuple[str, ...] = (CPU, RAM, GPU)

# Slots a selected motherboard can narrow
HUB_SLOTS: tuple[str, ...] = (CPU, RAM, GPU, PSU, STORAGE)


@dataclass(frozen=True)
class Comparison:
    """One check between two products.

    kind:
        exact    - concept values equal after lower-case/trim
        any_of   - at least one of the concepts present on both sides and equal
        at_least - numeric value on the ``provider`` side >= the other side
    """

    kind: Literal["exact", "any_of", "at_least"]
    concepts: tuple[str, ...]
    provider: str | None = None


# =============================================================================
# COMPATIBILITY RULES
# =============================================================================
# Keyed by unordered category pair. All comparisons listed for a pair must hold.

COMPATIBILITY_RULES: dict[frozenset[str], tuple[Comparison, ...]] = {
    frozenset({MOTHERBOARD, CPU}): (
        Comparison("exact", ("socket",)),
    ),
    # Loose signal: type, capacity or speed agreeing is enough
    frozenset({MOTHERBOARD, RAM}): (
        Comparison("any_of", ("ram_type", "ram_capacity", "ram_speed")),
    ),
    frozenset({MOTHERBOARD, GPU}): (
        Comparison("exact", ("pcie",)),
    ),
    frozenset({MOTHERBOARD, PSU}): (
        Comparison("at_least", ("wattage",), provider=PSU),
    ),
    frozenset({MOTHERBOARD, STORAGE}): (
        Comparison("exact", ("storage_type",)),
    ),
}


def get_rule(category_a: str, category_b: str) -> tuple[Comparison, ...] | None:
    """Rule for a category pair in either order, or None if the pair has no rule."""
    a = (category_a or "").strip().lower()
    b = (category_b or "").strip().lower()
    if not a or not b or a == b:
        return None
    return COMPATIBILITY_RULES.get(frozenset({a, b}))
