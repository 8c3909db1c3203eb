"""Dependency-aware load ordering for BG3 mods.

A mod must load after every mod it depends on. ``topological_sort`` orders
a list accordingly and is stable: mods with no constraint between them keep
their input order. ``dependency_sort`` applies it to a whole load order;
``smart_sort`` first groups mods by category tier and sorts each tier on
its own, so a cycle inside one tier only leaves that tier unsorted.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field

from bg3_mod_manager.constants import BUILTIN_MODULE_UUIDS
from bg3_mod_manager.schemas.mod import ModCategory, ModRecord

logger = logging.getLogger(__name__)


class CycleError(ValueError):
    """The dependency graph has a cycle. ``mod_ids`` lists the mods on it."""

    def __init__(self, mod_ids: list[str]) -> None:
        super().__init__(f"Circular dependency among: {', '.join(mod_ids)}")
        self.mod_ids = mod_ids


@dataclass
class SmartSortResult:
    order: list[ModRecord]
    categorized: dict[ModCategory, list[str]] = field(default_factory=dict)
    cyclic_tiers: list[ModCategory] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Graph helpers
# ---------------------------------------------------------------------------


def _build_edges(mods: list[ModRecord]) -> list[set[int]]:
    """successors[i] holds the indices of mods that depend on mods[i]."""
    index: dict[str, int] = {}
    for i, mod in enumerate(mods):
        index.setdefault(mod.id, i)
    successors: list[set[int]] = [set() for _ in mods]
    for i, mod in enumerate(mods):
        for dep in mod.dependencies:
            if dep.id in BUILTIN_MODULE_UUIDS:
                continue
            j = index.get(dep.id)
            if j is not None:
                successors[j].add(i)
    return successors


def _cycle_members(remaining: set[int], successors: list[set[int]]) -> set[int]:
    """Strip nodes that only feed into other leftovers, leaving the cycles.

    Every node Kahn's algorithm could not emit is either on a cycle or
    downstream of one. Downstream-only nodes eventually have no successor
    inside the remaining set and are removed.
    """
    members = set(remaining)
    changed = True
    while changed:
        changed = False
        for node in list(members):
            if not successors[node] & members:
                members.discard(node)
                changed = True
    return members


# ---------------------------------------------------------------------------
# Core API
# ---------------------------------------------------------------------------


def topological_sort(mods: list[ModRecord]) -> list[ModRecord]:
    """Order *mods* so each one comes after its dependencies.

    Uses Kahn's algorithm with a min-heap on the original index, so among
    mods that are ready at the same time the earliest in the input wins.
    Dependencies on base modules or on mods outside *mods* are ignored.

    Raises:
        CycleError: If the dependencies form a cycle.
    """
    successors = _build_edges(mods)
    in_degree = [0] * len(mods)
    for succ in successors:
        for j in succ:
            in_degree[j] += 1

    ready = [i for i, deg in enumerate(in_degree) if deg == 0]
    heapq.heapify(ready)
    order: list[int] = []
    while ready:
        i = heapq.heappop(ready)
        order.append(i)
        for j in successors[i]:
            in_degree[j] -= 1
            if in_degree[j] == 0:
                heapq.heappush(ready, j)

    if len(order) < len(mods):
        emitted = set(order)
        remaining = {i for i in range(len(mods)) if i not in emitted}
        members = _cycle_members(remaining, successors) or remaining
        ids = [mods[i].id for i in sorted(members)]
        raise CycleError(list(dict.fromkeys(ids)))

    return [mods[i] for i in order]


def _split_base(mods: list[ModRecord]) -> tuple[list[ModRecord], list[ModRecord]]:
    base = [m for m in mods if m.is_base_module]
    rest = [m for m in mods if not m.is_base_module]
    return base, rest


def dependency_sort(mods: list[ModRecord]) -> list[ModRecord]:
    """Base modules first, then every other mod in dependency order.

    Raises:
        CycleError: If the non-base mods contain a cycle.
    """
    base, rest = _split_base(mods)
    return base + topological_sort(rest)


def smart_sort(mods: list[ModRecord]) -> SmartSortResult:
    """Tiered sort: base modules, then tiers 1-5, each in dependency order.

    Uncategorized mods are grouped with tier 3 without changing their stored
    category. A tier whose dependencies form a cycle keeps its input order
    and is listed in ``cyclic_tiers``; other tiers are unaffected.
    """
    base, rest = _split_base(mods)
    tiers: dict[ModCategory, list[ModRecord]] = {tier: [] for tier in ModCategory}
    for mod in rest:
        tiers[mod.effective_tier()].append(mod)

    order = list(base)
    categorized: dict[ModCategory, list[str]] = {}
    cyclic: list[ModCategory] = []
    for tier in sorted(tiers):
        members = tiers[tier]
        if not members:
            continue
        try:
            sorted_members = topological_sort(members)
        except CycleError as exc:
            logger.warning("Cycle in %s tier, keeping its current order: %s", tier.label, exc)
            sorted_members = members
            cyclic.append(tier)
        order.extend(sorted_members)
        categorized[tier] = [m.id for m in sorted_members]
    return SmartSortResult(order=order, categorized=categorized, cyclic_tiers=cyclic)
