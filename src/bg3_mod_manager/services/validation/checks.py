"""Validation check protocol, registry, and built-in checks.

Each check inspects the active/inactive mod lists (plus environment facts
gathered by the caller) and returns zero or more ``ModWarning``s. Checks
never touch the filesystem and never raise for a finding.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from bg3_mod_manager.constants import BUILTIN_MODULE_UUIDS
from bg3_mod_manager.schemas.mod import DependencyRef, MetadataSource, ModRecord
from bg3_mod_manager.schemas.warning import (
    ActivateAction,
    DeactivateAction,
    DeleteAction,
    InstallAction,
    InstallExtensionAction,
    ModWarning,
    ReorderAction,
    RestoreBackupAction,
    Severity,
    ViewExtensionStatusAction,
    WarningCategory,
)
from bg3_mod_manager.services.environment import ExtensionStatus
from bg3_mod_manager.services.load_order import CycleError, topological_sort

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationContext:
    active: list[ModRecord]
    inactive: list[ModRecord]
    extension_status: ExtensionStatus | None = None
    extension_previously_deployed: bool = False
    hazard_paths: tuple[Path, ...] = ()
    external_mutation: bool = False
    _positions: dict[str, int] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        for i, mod in enumerate(self.active):
            self._positions.setdefault(mod.id, i)

    @property
    def active_ids(self) -> set[str]:
        return set(self._positions)

    def position(self, mod_id: str) -> int | None:
        return self._positions.get(mod_id)

    def user_mods(self) -> Iterator[ModRecord]:
        """Active mods that are not base game modules."""
        return (m for m in self.active if not m.is_base_module)

    def find(self, mod_id: str) -> ModRecord | None:
        for mod in self.active:
            if mod.id == mod_id:
                return mod
        for mod in self.inactive:
            if mod.id == mod_id:
                return mod
        return None


# ---------------------------------------------------------------------------
# Protocol + Registry
# ---------------------------------------------------------------------------


class ValidationCheck(Protocol):
    """Interface that all validation checks must satisfy."""

    category: WarningCategory

    def check(self, ctx: ValidationContext) -> list[ModWarning]: ...


_CHECKS: list[type[ValidationCheck]] = []


def register_check(cls: type[ValidationCheck]) -> type[ValidationCheck]:
    """Class decorator that adds a check to the global registry."""
    if cls not in _CHECKS:
        _CHECKS.append(cls)
    return cls


def get_all_checks() -> list[ValidationCheck]:
    """Instantiate and return all registered checks."""
    return [cls() for cls in _CHECKS]  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _name(mod: ModRecord) -> str:
    return mod.display_name or mod.id


def _dep_name(dep: DependencyRef, ctx: ValidationContext) -> str:
    known = ctx.find(dep.id)
    if known is not None:
        return _name(known)
    return dep.name or dep.id


def _relevant_deps(mod: ModRecord) -> Iterator[DependencyRef]:
    """Non-base dependencies of *mod*, each id once, self-references skipped."""
    seen: set[str] = set()
    for dep in mod.dependencies:
        if dep.id in BUILTIN_MODULE_UUIDS or dep.id == mod.id or dep.id in seen:
            continue
        seen.add(dep.id)
        yield dep


# ---------------------------------------------------------------------------
# Built-in checks
# ---------------------------------------------------------------------------


@register_check
class DuplicateIdCheck:
    category = WarningCategory.duplicate_id

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        groups: dict[str, list[tuple[ModRecord, bool]]] = {}
        for mod in ctx.active:
            groups.setdefault(mod.id, []).append((mod, True))
        for mod in ctx.inactive:
            groups.setdefault(mod.id, []).append((mod, False))

        warnings: list[ModWarning] = []
        for mod_id, copies in groups.items():
            if len(copies) < 2:
                continue
            active_copies = sum(1 for _, is_active in copies if is_active)
            files = ", ".join(
                Path(m.source_archive_path).name if m.source_archive_path else _name(m)
                for m, _ in copies
            )
            warnings.append(
                ModWarning(
                    severity=Severity.critical if active_copies >= 2 else Severity.warning,
                    category=self.category,
                    message=f"Duplicate UUID: {_name(copies[0][0])}",
                    detail=f"Files with same UUID ({mod_id}): {files}. Only one should be active.",
                    affected_ids=[mod_id],
                    suggested_action=DeactivateAction(mod_id=mod_id),
                )
            )
        return warnings


@register_check
class MissingDependencyCheck:
    category = WarningCategory.missing_dependency

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        active_ids = ctx.active_ids
        inactive_ids = {m.id for m in ctx.inactive}
        warnings: list[ModWarning] = []
        for mod in ctx.user_mods():
            for dep in _relevant_deps(mod):
                if dep.id in active_ids:
                    continue
                dep_name = _dep_name(dep, ctx)
                if dep.id in inactive_ids:
                    message = f"{_name(mod)} requires {dep_name}, which is installed but inactive"
                    detail = f"Dependency '{dep_name}' ({dep.id}) can be activated."
                    action = ActivateAction(mod_id=dep.id)
                else:
                    message = f"{_name(mod)} requires {dep_name}, which is not installed"
                    detail = f"Dependency '{dep_name}' ({dep.id}) was not found in the Mods folder."
                    action = InstallAction(name=dep.name or dep.id)
                warnings.append(
                    ModWarning(
                        severity=Severity.warning,
                        category=self.category,
                        message=message,
                        detail=detail,
                        affected_ids=[mod.id],
                        suggested_action=action,
                    )
                )
        return warnings


@register_check
class WrongOrderCheck:
    category = WarningCategory.wrong_order

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        warnings: list[ModWarning] = []
        for mod in ctx.user_mods():
            mod_pos = ctx.position(mod.id)
            if mod_pos is None:
                continue
            for dep in _relevant_deps(mod):
                dep_pos = ctx.position(dep.id)
                if dep_pos is None or dep_pos <= mod_pos:
                    continue
                dep_name = _dep_name(dep, ctx)
                warnings.append(
                    ModWarning(
                        severity=Severity.warning,
                        category=self.category,
                        message=f"{_name(mod)} loads before its dependency {dep_name}",
                        detail=(
                            f"{_name(mod)} is at position {mod_pos + 1} but depends on "
                            f"{dep_name} at position {dep_pos + 1}. Dependencies should load first."
                        ),
                        affected_ids=[mod.id, dep.id],
                        suggested_action=ReorderAction(),
                    )
                )
        return warnings


@register_check
class CircularDependencyCheck:
    category = WarningCategory.circular_dependency

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        try:
            topological_sort(list(ctx.user_mods()))
        except CycleError as exc:
            names = ", ".join(_name(ctx.find(i)) for i in exc.mod_ids if ctx.find(i))
            return [
                ModWarning(
                    severity=Severity.critical,
                    category=self.category,
                    message="Circular dependency detected",
                    detail=f"These mods form a dependency cycle: {names}. "
                    "This may prevent the game from loading.",
                    affected_ids=list(exc.mod_ids),
                )
            ]
        return []


@register_check
class ConflictCheck:
    category = WarningCategory.conflict

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        user = {m.id: m for m in reversed(list(ctx.user_mods()))}
        seen: set[tuple[str, str]] = set()
        warnings: list[ModWarning] = []
        for mod in ctx.user_mods():
            for ref in mod.conflicts:
                if ref.id == mod.id or ref.id not in user:
                    continue
                pair = tuple(sorted((mod.id, ref.id)))
                if pair in seen:
                    continue
                seen.add(pair)
                # report in load-order position so the result does not depend on who declared it
                first, second = sorted(pair, key=lambda i: ctx.position(i) or 0)
                a, b = user[first], user[second]
                warnings.append(
                    ModWarning(
                        severity=Severity.warning,
                        category=self.category,
                        message=f"{_name(a)} conflicts with {_name(b)}",
                        detail=(
                            f"{_name(a)} and {_name(b)} are declared incompatible. "
                            "Having both active may cause issues."
                        ),
                        affected_ids=[first, second],
                        suggested_action=DeactivateAction(mod_id=second),
                    )
                )
        return warnings


@register_check
class OrphanedEntryCheck:
    category = WarningCategory.orphaned_entry

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        return [
            ModWarning(
                severity=Severity.critical,
                category=self.category,
                message=f"Missing PAK: {_name(mod)}",
                detail="This mod is in the load order but no archive was found. "
                "The game will fail to load it.",
                affected_ids=[mod.id],
                suggested_action=DeactivateAction(mod_id=mod.id),
            )
            for mod in ctx.user_mods()
            if mod.metadata_source is MetadataSource.imported
        ]


@register_check
class ExtensionRequiredCheck:
    category = WarningCategory.extension_required

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        status = ctx.extension_status
        if status is not None and status.deployed:
            return []
        warnings: list[ModWarning] = []
        needing = [m for m in ctx.active if m.requires_runtime_extension]
        if needing:
            names = ", ".join(_name(m) for m in needing)
            warnings.append(
                ModWarning(
                    severity=Severity.warning,
                    category=self.category,
                    message=f"{len(needing)} mod(s) require Script Extender but it is not deployed",
                    detail=f"Mods requiring Script Extender: {names}.",
                    affected_ids=list(dict.fromkeys(m.id for m in needing)),
                    suggested_action=InstallExtensionAction(),
                )
            )
        if ctx.extension_previously_deployed:
            warnings.append(
                ModWarning(
                    severity=Severity.warning,
                    category=self.category,
                    message="Script Extender is no longer deployed",
                    detail="Script Extender was deployed before but is missing now. "
                    "A game update may have removed it.",
                    affected_ids=list(dict.fromkeys(m.id for m in needing)),
                    suggested_action=ViewExtensionStatusAction(),
                )
            )
        return warnings


@register_check
class NoMetadataCheck:
    category = WarningCategory.no_metadata

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        return [
            ModWarning(
                severity=Severity.info,
                category=self.category,
                message=f"{_name(mod)} has no metadata",
                detail="The archive has no meta.lsx and no info.json was found. "
                "UUID and version are derived from the filename.",
                affected_ids=[mod.id],
            )
            for mod in [*ctx.active, *ctx.inactive]
            if mod.metadata_source is MetadataSource.filename
        ]


@register_check
class EnvironmentHazardCheck:
    category = WarningCategory.environment_hazard

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        return [
            ModWarning(
                severity=Severity.info,
                category=self.category,
                message=f"{path.name} folder detected",
                detail=f"{path} can cause the game to deactivate your mods on launch. "
                "Delete it to prevent this.",
                suggested_action=DeleteAction(path=str(path)),
            )
            for path in ctx.hazard_paths
        ]


@register_check
class ExternalMutationCheck:
    category = WarningCategory.external_mutation

    def check(self, ctx: ValidationContext) -> list[ModWarning]:
        if not ctx.external_mutation:
            return []
        return [
            ModWarning(
                severity=Severity.warning,
                category=self.category,
                message="Load order was changed outside the manager",
                detail="modsettings.lsx no longer matches the last saved version. "
                "The game may have reset it.",
                suggested_action=RestoreBackupAction(),
            )
        ]
