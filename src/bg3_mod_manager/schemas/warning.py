"""Validation findings. These are data, never raised."""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class Severity(StrEnum):
    info = "info"
    warning = "warning"
    critical = "critical"

    @property
    def rank(self) -> int:
        return _RANK[self]


_RANK: dict[Severity, int] = {
    Severity.info: 1,
    Severity.warning: 2,
    Severity.critical: 3,
}


class WarningCategory(StrEnum):
    duplicate_id = "duplicate-id"
    missing_dependency = "missing-dependency"
    wrong_order = "wrong-order"
    circular_dependency = "circular-dependency"
    conflict = "conflict"
    orphaned_entry = "orphaned-entry"
    extension_required = "extension-required"
    no_metadata = "no-metadata"
    environment_hazard = "environment-hazard"
    external_mutation = "external-mutation"


# ---- Suggested actions ----


class ReorderAction(BaseModel):
    kind: Literal["reorder"] = "reorder"


class DeactivateAction(BaseModel):
    kind: Literal["deactivate"] = "deactivate"
    mod_id: str


class ActivateAction(BaseModel):
    kind: Literal["activate"] = "activate"
    mod_id: str


class InstallAction(BaseModel):
    kind: Literal["install"] = "install"
    name: str


class InstallExtensionAction(BaseModel):
    kind: Literal["install-extension"] = "install-extension"


class ViewExtensionStatusAction(BaseModel):
    kind: Literal["view-extension-status"] = "view-extension-status"


class DeleteAction(BaseModel):
    kind: Literal["delete"] = "delete"
    path: str


class RestoreBackupAction(BaseModel):
    kind: Literal["restore-backup"] = "restore-backup"


SuggestedAction = Annotated[
    ReorderAction
    | DeactivateAction
    | ActivateAction
    | InstallAction
    | InstallExtensionAction
    | ViewExtensionStatusAction
    | DeleteAction
    | RestoreBackupAction,
    Field(discriminator="kind"),
]


class ModWarning(BaseModel):
    severity: Severity
    category: WarningCategory
    message: str
    detail: str = ""
    affected_ids: list[str] = Field(default_factory=list)
    suggested_action: SuggestedAction | None = None


class WarningSummary(BaseModel):
    warnings: list[ModWarning]
    critical: int
    blocks_save: bool
