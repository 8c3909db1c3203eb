"""Canonical mod records produced by discovery and consumed by sort/validation."""

from __future__ import annotations

from enum import IntEnum, StrEnum

from pydantic import BaseModel, Field, field_validator

from bg3_mod_manager.constants import BUILTIN_AUTHOR, BUILTIN_MODULE_UUIDS, GUSTAV_DEV_UUID
from bg3_mod_manager.utils.version import DEFAULT_VERSION64, Version64

GUSTAV_DEV_VERSION64 = 145_100_779_997_082_624


class MetadataSource(StrEnum):
    """Where a record's metadata came from, most trusted first."""

    builtin = "builtin"
    embedded = "embedded"
    sidecar = "sidecar"
    imported = "imported"
    filename = "filename"

    @property
    def trust(self) -> int:
        return _TRUST[self]


_TRUST: dict[MetadataSource, int] = {
    MetadataSource.builtin: 5,
    MetadataSource.embedded: 4,
    MetadataSource.sidecar: 3,
    MetadataSource.imported: 2,
    MetadataSource.filename: 1,
}


class ModCategory(IntEnum):
    """Load-order tier. Lower tiers load first."""

    FRAMEWORK = 1
    GAMEPLAY = 2
    CONTENT = 3
    VISUAL = 4
    LATE_LOADER = 5

    @property
    def label(self) -> str:
        return _LABELS[self]


_LABELS: dict[ModCategory, str] = {
    ModCategory.FRAMEWORK: "Framework",
    ModCategory.GAMEPLAY: "Gameplay",
    ModCategory.CONTENT: "Content",
    ModCategory.VISUAL: "Visual",
    ModCategory.LATE_LOADER: "Late Loader",
}

UNCATEGORIZED_TIER = ModCategory.CONTENT


class DependencyRef(BaseModel):
    id: str
    folder_name: str = ""
    name: str = ""
    version: int = 0
    content_hash: str = ""

    @field_validator("id")
    @classmethod
    def _lower_id(cls, v: str) -> str:
        return v.strip().lower()


class ModRecord(BaseModel):
    id: str
    folder_name: str = ""
    display_name: str = ""
    author: str = ""
    description: str = ""
    version64: int = DEFAULT_VERSION64
    content_hash: str | None = None
    tags: list[str] = Field(default_factory=list)
    dependencies: list[DependencyRef] = Field(default_factory=list)
    conflicts: list[DependencyRef] = Field(default_factory=list)
    requires_runtime_extension: bool = False
    source_archive_path: str | None = None
    metadata_source: MetadataSource = MetadataSource.filename
    category: ModCategory | None = None

    @field_validator("id")
    @classmethod
    def _lower_id(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, v: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for tag in v:
            tag = tag.strip()
            if tag:
                seen.setdefault(tag, None)
        return list(seen)

    @property
    def version(self) -> Version64:
        return Version64.from_int(self.version64)

    @property
    def is_base_module(self) -> bool:
        return self.id in BUILTIN_MODULE_UUIDS

    def effective_tier(self) -> ModCategory:
        """Tier used for grouping. Uncategorized mods sort with content mods."""
        return self.category if self.category is not None else UNCATEGORIZED_TIER


def gustav_dev() -> ModRecord:
    """The base game module every load order starts with."""
    return ModRecord(
        id=GUSTAV_DEV_UUID,
        folder_name="GustavDev",
        display_name="GustavDev",
        author=BUILTIN_AUTHOR,
        description="Base game module (required)",
        version64=GUSTAV_DEV_VERSION64,
        metadata_source=MetadataSource.builtin,
    )


class ModSetState(BaseModel):
    active: list[ModRecord]
    inactive: list[ModRecord]
    load_order: list[str]
