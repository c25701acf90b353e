"""Multi-part build assembly around the motherboard hub.

A build is one motherboard plus, for each required slot (CPU, RAM, GPU), the
products in that category compatible with it. Builds are computed per request
and never stored.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from .accessor import category_of
from .matcher import match_rule_based
from .rules import CPU, GPU, HUB_SLOTS, MOTHERBOARD, RAM, REQUIRED_SLOTS

logger = logging.getLogger(__name__)

# Sequential narrowing states
STATE_NONE = "none"
STATE_CPU_ONLY = "cpu_only"
STATE_MOTHERBOARD_ONLY = "motherboard_only"
STATE_BOTH = "both"

_SLOT_KEYS = {CPU: "compatibleCpus", RAM: "compatibleRams", GPU: "compatibleGpus"}


def product_summary(product: dict[str, Any]) -> dict[str, Any]:
    """Compact product view used in build and narrowing payloads."""
    return {
        "id": product.get("id"),
        "name": product.get("name"),
        "brand": product.get("brand"),
        "category": product.get("category"),
    }


@dataclass
class Build:
    motherboard: dict[str, Any]
    slots: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    selected: dict[str, Any] | None = None

    def is_complete(self) -> bool:
        """True if every required slot has at least one candidate."""
        return all(self.slots.get(slot) for slot in REQUIRED_SLOTS)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.selected is not None:
            result["selectedProduct"] = product_summary(self.selected)
        result["motherboard"] = product_summary(self.motherboard)
        for slot, key in _SLOT_KEYS.items():
            result[key] = [product_summary(p) for p in self.slots.get(slot, [])]
        return result


@dataclass
class Narrowing:
    """Result of sequential narrowing: which state fired and what still fits."""

    state: str
    selected: list[dict[str, Any]]
    candidates: list[dict[str, Any]]


def _by_category(catalog: list[dict[str, Any]], category: str) -> list[dict[str, Any]]:
    return [p for p in catalog if category_of(p) == category]


def _compatible_with(
    anchor: dict[str, Any], candidates: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    return [c for c in candidates if match_rule_based(anchor, c).compatible]


def _fill_slots(
    motherboard: dict[str, Any],
    catalog: list[dict[str, Any]],
    slots: tuple[str, ...],
) -> dict[str, list[dict[str, Any]]]:
    return {slot: _compatible_with(motherboard, _by_category(catalog, slot)) for slot in slots}


def assemble_builds(catalog: list[dict[str, Any]]) -> list[Build]:
    """One build per motherboard with at least one compatible CPU, RAM and GPU.

    Motherboards missing candidates for any required slot are dropped.
    """
    builds = []
    for motherboard in _by_category(catalog, MOTHERBOARD):
        build = Build(motherboard, _fill_slots(motherboard, catalog, REQUIRED_SLOTS))
        if build.is_complete():
            builds.append(build)
    return builds


def builds_for_selection(selected: dict[str, Any], catalog: list[dict[str, Any]]) -> list[Build]:
    """Builds anchored on one selected product.

    Motherboard: the complete build for that board, or nothing.
    CPU/RAM/GPU: one build per compatible motherboard, filling only the two
    slots other than the selection's own category. These are not filtered for
    completeness.
    Any other category: no builds.
    """
    category = category_of(selected)
    selected_id = selected.get("id")
    others = [p for p in catalog if p.get("id") != selected_id]

    if category == MOTHERBOARD:
        build = Build(selected, _fill_slots(selected, others, REQUIRED_SLOTS), selected=selected)
        return [build] if build.is_complete() else []

    if category not in REQUIRED_SLOTS:
        return []

    remaining_slots = tuple(slot for slot in REQUIRED_SLOTS if slot != category)
    builds = []
    for motherboard in _compatible_with(selected, _by_category(others, MOTHERBOARD)):
        builds.append(
            Build(motherboard, _fill_slots(motherboard, others, remaining_slots), selected=selected)
        )
    return builds


def narrow_sequential(selected_ids: list[str], catalog: list[dict[str, Any]]) -> Narrowing:
    """Candidates that still fit given the products picked so far.

    Only CPU and motherboard selections drive narrowing:
        both             - RAM and GPU matching the selected motherboard
        motherboard only - CPU, RAM, GPU, PSU and Storage matching the motherboard
        CPU only         - motherboards matching the CPU
        none             - the remaining catalog, unfiltered

    Selected products never appear among the candidates. Ids not in the catalog
    are ignored.

    Raises:
        ValueError: If no ids were given
    """
    if not selected_ids:
        raise ValueError("No products selected")

    wanted = set(selected_ids)
    selected = [p for p in catalog if p.get("id") in wanted]
    remaining = [p for p in catalog if p.get("id") not in wanted]

    cpu = next((p for p in selected if category_of(p) == CPU), None)
    motherboard = next((p for p in selected if category_of(p) == MOTHERBOARD), None)

    if cpu is not None and motherboard is not None:
        state = STATE_BOTH
        pool = [p for p in remaining if category_of(p) in (RAM, GPU)]
        candidates = _compatible_with(motherboard, pool)
    elif motherboard is not None:
        state = STATE_MOTHERBOARD_ONLY
        pool = [p for p in remaining if category_of(p) in HUB_SLOTS]
        candidates = _compatible_with(motherboard, pool)
    elif cpu is not None:
        state = STATE_CPU_ONLY
        candidates = _compatible_with(cpu, _by_category(remaining, MOTHERBOARD))
    else:
        state = STATE_NONE
        candidates = remaining

    logger.debug(f"Sequential narrowing: state={state}, {len(candidates)} candidates")
    return Narrowing(state, selected, candidates)
