"""The ordered mod set: active load order plus inactive mods, with warnings.

``ModSet`` owns the mutable state. Every public mutator keeps these
properties and re-runs validation before returning:

* base game modules stay at the front of ``active`` and never move or
  deactivate;
* no mutator puts an id into both lists or twice into one list (duplicates
  that came from discovery are kept and reported, not created);
* ``warnings`` always reflects the current state.

Collaborators (validator, category service, environment probe) are passed
in, so tests can substitute plain functions.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path

from bg3_mod_manager.constants import BUILTIN_MODULE_UUIDS, GUSTAV_DEV_UUID
from bg3_mod_manager.schemas.mod import (
    MetadataSource,
    ModCategory,
    ModRecord,
    ModSetState,
    gustav_dev,
)
from bg3_mod_manager.schemas.warning import ModWarning
from bg3_mod_manager.services.category_inference import CategoryInferenceService
from bg3_mod_manager.services.discovery import placeholder_for
from bg3_mod_manager.services.environment import ExtensionStatus
from bg3_mod_manager.services.load_order import SmartSortResult, dependency_sort, smart_sort
from bg3_mod_manager.services.load_order_import import ImportedModEntry
from bg3_mod_manager.services.validation import validate

logger = logging.getLogger(__name__)


class ModNotFoundError(LookupError):
    def __init__(self, mod_id: str) -> None:
        super().__init__(f"Mod {mod_id} not found")
        self.mod_id = mod_id


@dataclass(frozen=True)
class EnvironmentFacts:
    """Inputs to validation that come from outside the mod lists."""

    extension_status: ExtensionStatus | None = None
    extension_previously_deployed: bool = False
    hazard_paths: tuple[Path, ...] = ()
    external_mutation: bool = False


@dataclass
class ImportSummary:
    source_name: str
    matched: int = 0
    missing: list[str] = field(default_factory=list)


Validator = Callable[..., list[ModWarning]]


def _name_key(mod: ModRecord) -> str:
    return (mod.display_name or mod.id).casefold()


class ModSet:
    def __init__(
        self,
        *,
        validator: Validator = validate,
        categories: CategoryInferenceService | None = None,
        environment: Callable[[], EnvironmentFacts] | None = None,
    ) -> None:
        self._validator = validator
        self._categories = categories
        self._environment = environment or EnvironmentFacts
        self._lock = threading.RLock()
        self.active: list[ModRecord] = [gustav_dev()]
        self.inactive: list[ModRecord] = []
        self.warnings: list[ModWarning] = []

    # ---- Queries ----

    def load_order_ids(self) -> list[str]:
        """Active ids in load order; GustavDev is always first."""
        ids = [m.id for m in self.active]
        if GUSTAV_DEV_UUID in ids:
            ids.remove(GUSTAV_DEV_UUID)
        return [GUSTAV_DEV_UUID, *ids]

    def get(self, mod_id: str) -> ModRecord:
        mod_id = mod_id.lower()
        for mod in (*self.active, *self.inactive):
            if mod.id == mod_id:
                return mod
        raise ModNotFoundError(mod_id)

    def is_active(self, mod_id: str) -> bool:
        return any(m.id == mod_id.lower() for m in self.active)

    def state(self) -> ModSetState:
        with self._lock:
            return ModSetState(
                active=list(self.active),
                inactive=list(self.inactive),
                load_order=self.load_order_ids(),
            )

    # ---- Internal helpers ----

    def _base_count(self) -> int:
        count = 0
        for mod in self.active:
            if not mod.is_base_module:
                break
            count += 1
        return count

    def _index(self, seq: list[ModRecord], mod_id: str) -> int | None:
        for i, mod in enumerate(seq):
            if mod.id == mod_id:
                return i
        return None

    def _active_index(self, mod_id: str) -> int:
        mod_id = mod_id.lower()
        i = self._index(self.active, mod_id)
        if i is None:
            if self._index(self.inactive, mod_id) is not None:
                raise ValueError(f"Mod {mod_id} is not active")
            raise ModNotFoundError(mod_id)
        if self.active[i].is_base_module:
            raise ValueError(f"Base module {mod_id} cannot be moved or deactivated")
        return i

    def _normalize_base(self) -> None:
        """Pull every base module to the front of ``active``, GustavDev included."""
        base = [m for m in (*self.active, *self.inactive) if m.is_base_module]
        if not any(m.id == GUSTAV_DEV_UUID for m in base):
            base.insert(0, gustav_dev())
        self.active = base + [m for m in self.active if not m.is_base_module]
        self.inactive = [m for m in self.inactive if not m.is_base_module]

    def _sort_inactive(self) -> None:
        self.inactive.sort(key=_name_key)

    def _categorize(self, mods: Iterable[ModRecord]) -> None:
        if self._categories is not None:
            self._categories.apply(mods)

    def revalidate(self) -> list[ModWarning]:
        with self._lock:
            facts = self._environment()
            self.warnings = self._validator(
                self.active,
                self.inactive,
                facts.extension_status,
                facts.extension_previously_deployed,
                hazard_paths=facts.hazard_paths,
                external_mutation=facts.external_mutation,
            )
            return self.warnings

    # ---- Mutators ----

    def load(self, active: list[ModRecord], inactive: list[ModRecord]) -> None:
        """Replace the whole state, e.g. after discovery."""
        with self._lock:
            self.active = list(active)
            self.inactive = list(inactive)
            self._normalize_base()
            self._sort_inactive()
            self._categorize([*self.active, *self.inactive])
            logger.info("Loaded %d active and %d inactive mods", len(self.active), len(self.inactive))
            self.revalidate()

    def activate(self, mod_id: str) -> ModRecord:
        """Append an inactive mod to the end of the load order."""
        with self._lock:
            mod_id = mod_id.lower()
            i = self._index(self.inactive, mod_id)
            if i is None:
                if self._index(self.active, mod_id) is not None:
                    return self.get(mod_id)
                raise ModNotFoundError(mod_id)
            if self._index(self.active, mod_id) is not None:
                raise ValueError(f"Another copy of {mod_id} is already active")
            mod = self.inactive.pop(i)
            self.active.append(mod)
            self.revalidate()
            return mod

    def deactivate(self, mod_id: str) -> ModRecord:
        with self._lock:
            i = self._active_index(mod_id)
            mod = self.active.pop(i)
            self.inactive.append(mod)
            self._sort_inactive()
            self.revalidate()
            return mod

    def move(self, mod_id: str, index: int) -> int:
        """Move an active mod to *index*, clamped to stay behind the base modules.

        Returns the position the mod ended up at.
        """
        with self._lock:
            i = self._active_index(mod_id)
            mod = self.active.pop(i)
            target = max(self._base_count(), min(index, len(self.active)))
            self.active.insert(target, mod)
            self.revalidate()
            return target

    def move_to_top(self, mod_id: str) -> int:
        return self.move(mod_id, 0)

    def move_to_bottom(self, mod_id: str) -> int:
        return self.move(mod_id, len(self.active))

    def sort_by_dependencies(self) -> list[str]:
        """Plain dependency sort of the active list.

        Raises:
            CycleError: If active mods depend on each other in a cycle. The
                order is left unchanged.
        """
        with self._lock:
            self.active = dependency_sort(self.active)
            self.revalidate()
            return self.load_order_ids()

    def smart_sort(self) -> SmartSortResult:
        """Tiered sort. Cyclic tiers keep their order instead of failing."""
        with self._lock:
            result = smart_sort(self.active)
            self.active = list(result.order)
            self.revalidate()
            categorized = sum(1 for m in self.active if not m.is_base_module and m.category)
            logger.info(
                "Smart sort complete (%d/%d mods categorized)",
                categorized,
                len(self.active) - self._base_count(),
            )
            return result

    def activate_missing_dependencies(self, mod_id: str | None = None) -> int:
        """Activate inactive mods that active mods depend on.

        Each dependency is inserted just before the first mod that needs it.
        With *mod_id*, only that mod's dependencies are considered. Returns
        the number of mods activated.
        """
        with self._lock:
            if mod_id is not None:
                targets = [self.active[self._active_index(mod_id)]]
            else:
                targets = [m for m in self.active if not m.is_base_module]

            activated = 0
            for mod in targets:
                for dep in mod.dependencies:
                    if dep.id in BUILTIN_MODULE_UUIDS or self._index(self.active, dep.id) is not None:
                        continue
                    j = self._index(self.inactive, dep.id)
                    if j is None:
                        continue
                    dep_mod = self.inactive.pop(j)
                    pos = self._index(self.active, mod.id)
                    self.active.insert(pos if pos is not None else len(self.active), dep_mod)
                    activated += 1
            if activated:
                logger.info("Activated %d missing dependencies", activated)
            self.revalidate()
            return activated

    def set_category(self, mod_id: str, category: ModCategory | None) -> ModRecord:
        """Set (or clear, with ``None``) the user's tier for a mod.

        Clearing falls back to inference when a category service is present.
        """
        with self._lock:
            mod = self.get(mod_id)
            if self._categories is not None:
                self._categories.set_override(mod.id, category)
                inferred = self._categories.infer(mod)
            else:
                inferred = category
            for record in (*self.active, *self.inactive):
                if record.id == mod.id:
                    record.category = inferred
            self.revalidate()
            return mod

    def apply_import(self, entries: list[ImportedModEntry], source_name: str = "") -> ImportSummary:
        """Replace the load order with *entries*.

        Known mods are activated in entry order. Unknown ids become
        ``imported`` placeholders so validation flags their missing archives.
        """
        with self._lock:
            summary = ImportSummary(source_name=source_name)
            pool = [m for m in (*self.active, *self.inactive) if not m.is_base_module]
            base = [m for m in self.active if m.is_base_module]
            new_active: list[ModRecord] = []
            used: set[int] = set()
            seen: set[str] = set()
            for entry in entries:
                if entry.id in BUILTIN_MODULE_UUIDS or entry.id in seen:
                    continue
                seen.add(entry.id)
                match = next(
                    (m for m in pool if m.id == entry.id and id(m) not in used), None
                )
                if match is not None:
                    used.add(id(match))
                    summary.matched += 1
                else:
                    match = placeholder_for(entry)
                    self._categorize([match])
                    summary.missing.append(entry.id)
                new_active.append(match)

            self.active = base + new_active
            # placeholders only exist to be flagged while active
            self.inactive = [
                m
                for m in pool
                if id(m) not in used and m.metadata_source is not MetadataSource.imported
            ]
            self._sort_inactive()
            self._normalize_base()
            logger.info(
                "Imported load order from %s (%d matched, %d missing)",
                source_name or "file",
                summary.matched,
                len(summary.missing),
            )
            self.revalidate()
            return summary
