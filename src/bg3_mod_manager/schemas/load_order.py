"""Request/response schemas for the load-order and archive endpoints."""

from pydantic import BaseModel

from bg3_mod_manager.schemas.mod import ModCategory, ModSetState


class LoadOrderIds(BaseModel):
    ids: list[str]


class MoveRequest(BaseModel):
    index: int


class CategoryRequest(BaseModel):
    category: ModCategory | None = None


class SmartSortOut(BaseModel):
    ids: list[str]
    categorized: dict[str, list[str]]
    cyclic_tiers: list[str]


class ImportRequest(BaseModel):
    path: str


class ImportSummaryOut(BaseModel):
    source_name: str
    matched: int
    missing: list[str]
    state: ModSetState


class RefreshResult(BaseModel):
    discovered: int
    failures: dict[str, str]
    cancelled: bool = False
    state: ModSetState


class ArchiveEntryOut(BaseModel):
    name: str
    offset: int
    compressed_size: int
    uncompressed_size: int
    compression: str
    archive_part: int


class ArchiveListing(BaseModel):
    path: str
    version: int
    solid: bool
    entries: list[ArchiveEntryOut]
