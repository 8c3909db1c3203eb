"""Turn mod metadata documents into canonical ``ModRecord``s.

Two document kinds are understood:

* ``meta.lsx`` embedded in the archive (``ModuleInfo`` node plus optional
  ``Dependencies``/``Conflicts`` lists), and
* an ``info.json`` sidecar next to the archive (flat object, or the
  ``{"Mods": [...]}`` shape written by mod packaging tools).

The embedded document is trusted more. When both exist they are merged:
embedded values win and sidecar values fill the gaps. With neither, a
record is synthesized from the archive filename with a stable id.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bg3_mod_manager.archive import ArchiveError, LspkReader
from bg3_mod_manager.constants import (
    EXTENSION_PATH_FRAGMENT,
    META_DOCUMENT_NAME,
    SIDECAR_NAME,
    UNKNOWN_AUTHOR,
)
from bg3_mod_manager.schemas.mod import DependencyRef, MetadataSource, ModRecord
from bg3_mod_manager.utils import lsx
from bg3_mod_manager.utils.identity import uuid_for_filename
from bg3_mod_manager.utils.version import DEFAULT_VERSION64, Version64, parse_version64

logger = logging.getLogger(__name__)


class MissingIdentityError(ValueError):
    """A metadata document has no module node or no UUID."""


@dataclass(frozen=True)
class ParsedMetadata:
    id: str
    source: MetadataSource
    folder_name: str = ""
    display_name: str = ""
    author: str = ""
    description: str = ""
    version64: int | None = None
    content_hash: str = ""
    tags: list[str] = field(default_factory=list)
    dependencies: list[DependencyRef] = field(default_factory=list)
    conflicts: list[DependencyRef] = field(default_factory=list)


# ---------------------------------------------------------------------------
# meta.lsx
# ---------------------------------------------------------------------------


def _short_descs(root, list_id: str) -> list[DependencyRef]:
    container = lsx.find_node(root, list_id)
    if container is None:
        return []
    refs: list[DependencyRef] = []
    for node in lsx.child_nodes(container, "ModuleShortDesc"):
        attrs = lsx.attributes(node)
        uuid = attrs.get("UUID", "").strip()
        if not uuid:
            continue
        refs.append(
            DependencyRef(
                id=uuid,
                folder_name=attrs.get("Folder", ""),
                name=attrs.get("Name", ""),
                version=parse_version64(attrs.get("Version64") or attrs.get("Version"), 0),
                content_hash=attrs.get("MD5", ""),
            )
        )
    return refs


def _module_tags(module_info, attrs: dict[str, str]) -> list[str]:
    tags = [t for t in attrs.get("Tags", "").split(";") if t.strip()]
    tags_node = lsx.find_node(module_info, "Tags")
    if tags_node is not None:
        for tag_node in lsx.child_nodes(tags_node, "Tag"):
            value = lsx.attributes(tag_node).get("Tag", "")
            if value.strip():
                tags.append(value)
    return tags


def parse_meta_lsx(data: bytes) -> ParsedMetadata:
    """Parse a ``meta.lsx`` document.

    Raises:
        MissingIdentityError: If the XML is malformed or has no ModuleInfo/UUID.
    """
    try:
        root = lsx.parse_lsx(data)
    except ValueError as exc:
        raise MissingIdentityError(str(exc)) from exc

    module_info = lsx.find_node(root, "ModuleInfo")
    if module_info is None:
        raise MissingIdentityError("meta.lsx has no ModuleInfo node")
    attrs = lsx.attributes(module_info)
    uuid = attrs.get("UUID", "").strip()
    if not uuid:
        raise MissingIdentityError("ModuleInfo has no UUID attribute")

    version_text = attrs.get("Version64") or attrs.get("Version")
    return ParsedMetadata(
        id=uuid.lower(),
        source=MetadataSource.embedded,
        folder_name=attrs.get("Folder", ""),
        display_name=attrs.get("Name", ""),
        author=attrs.get("Author", ""),
        description=attrs.get("Description", ""),
        version64=parse_version64(version_text, DEFAULT_VERSION64) if version_text else None,
        content_hash=attrs.get("MD5", ""),
        tags=_module_tags(module_info, attrs),
        dependencies=_short_descs(root, "Dependencies"),
        conflicts=_short_descs(root, "Conflicts"),
    )


# ---------------------------------------------------------------------------
# info.json
# ---------------------------------------------------------------------------


def _first_of(obj: dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = obj.get(key)
        if value not in (None, ""):
            return str(value)
    return ""


def _json_version(raw: str) -> int | None:
    if not raw:
        return None
    try:
        return Version64.parse(raw).packed
    except ValueError:
        logger.debug("Ignoring unparseable sidecar version %r", raw)
        return None


def parse_info_json(data: bytes) -> ParsedMetadata:
    """Parse an ``info.json`` sidecar.

    Raises:
        MissingIdentityError: If the JSON is invalid or carries no UUID.
    """
    try:
        doc = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MissingIdentityError(f"Invalid info.json: {exc}") from exc
    if not isinstance(doc, dict):
        raise MissingIdentityError("info.json root is not an object")

    mods = doc.get("Mods", doc.get("mods"))
    if isinstance(mods, list):
        if not mods or not isinstance(mods[0], dict):
            raise MissingIdentityError("info.json has an empty mod list")
        entry: dict[str, Any] = mods[0]
    else:
        entry = doc

    uuid = _first_of(entry, "UUID", "uuid").strip()
    if not uuid:
        raise MissingIdentityError("info.json has no UUID")
    return ParsedMetadata(
        id=uuid.lower(),
        source=MetadataSource.sidecar,
        folder_name=_first_of(entry, "Folder", "folderName", "folder"),
        display_name=_first_of(entry, "Name", "modName", "name"),
        author=_first_of(entry, "Author", "author"),
        description=_first_of(entry, "Description", "description"),
        version64=_json_version(_first_of(entry, "Version", "version")),
        content_hash=_first_of(entry, "MD5", "md5"),
    )


# ---------------------------------------------------------------------------
# Record building
# ---------------------------------------------------------------------------


def synthesize_from_filename(archive_path: str | Path) -> ModRecord:
    path = Path(archive_path)
    stem = path.stem
    return ModRecord(
        id=uuid_for_filename(path.name),
        folder_name=stem,
        display_name=stem,
        author=UNKNOWN_AUTHOR,
        version64=DEFAULT_VERSION64,
        source_archive_path=str(path),
        metadata_source=MetadataSource.filename,
    )


def build_record(
    archive_path: str | Path,
    *,
    embedded: ParsedMetadata | None = None,
    sidecar: ParsedMetadata | None = None,
    requires_extension: bool = False,
) -> ModRecord:
    """Merge the available documents into one record.

    The more trusted document supplies every field it has; the other only
    fills fields left empty. The result carries the more trusted source.
    """
    sources = [doc for doc in (embedded, sidecar) if doc is not None]
    if not sources:
        record = synthesize_from_filename(archive_path)
        record.requires_runtime_extension = requires_extension
        return record
    sources.sort(key=lambda doc: doc.source.trust, reverse=True)
    primary = sources[0]

    def pick(attr: str) -> Any:
        for doc in sources:
            value = getattr(doc, attr)
            if value:
                return value
        return None

    stem = Path(archive_path).stem
    version = primary.version64 if primary.version64 is not None else pick("version64")
    return ModRecord(
        id=primary.id,
        folder_name=pick("folder_name") or stem,
        display_name=pick("display_name") or pick("folder_name") or stem,
        author=pick("author") or UNKNOWN_AUTHOR,
        description=pick("description") or "",
        version64=version if version is not None else DEFAULT_VERSION64,
        content_hash=pick("content_hash"),
        tags=pick("tags") or [],
        dependencies=pick("dependencies") or [],
        conflicts=pick("conflicts") or [],
        requires_runtime_extension=requires_extension,
        source_archive_path=str(archive_path),
        metadata_source=primary.source,
    )


def merge_records(current: ModRecord, incoming: ModRecord) -> ModRecord:
    """Combine two views of the same mod.

    The more (or equally) trusted record wins field by field, but an empty
    value never erases a known one. A category already on *current* is kept.
    """
    if incoming.metadata_source.trust >= current.metadata_source.trust:
        winner, other = incoming, current
    else:
        winner, other = current, incoming

    merged: dict[str, Any] = {}
    for name in ModRecord.model_fields:
        value = getattr(winner, name)
        if value in (None, "", []):
            value = getattr(other, name)
        merged[name] = value
    merged["id"] = current.id
    merged["metadata_source"] = winner.metadata_source
    merged["requires_runtime_extension"] = (
        winner.requires_runtime_extension or other.requires_runtime_extension
    )
    merged["category"] = current.category if current.category is not None else incoming.category
    return ModRecord.model_validate(merged)


# ---------------------------------------------------------------------------
# Full pipeline for one archive
# ---------------------------------------------------------------------------


def _sidecar_candidates(archive_path: Path) -> list[Path]:
    return [
        archive_path.with_suffix(".json"),
        archive_path.with_name(SIDECAR_NAME),
    ]


def _read_sidecar(archive_path: Path) -> ParsedMetadata | None:
    for candidate in _sidecar_candidates(archive_path):
        if not candidate.is_file():
            continue
        try:
            return parse_info_json(candidate.read_bytes())
        except MissingIdentityError as exc:
            logger.warning("Ignoring sidecar %s: %s", candidate, exc)
        except OSError as exc:
            logger.warning("Cannot read sidecar %s: %s", candidate, exc)
    return None


def _read_embedded(archive_path: Path) -> tuple[ParsedMetadata | None, bool]:
    try:
        with LspkReader(archive_path) as reader:
            requires_extension = reader.contains_path_fragment(EXTENSION_PATH_FRAGMENT)
            entry = reader.find_entry(META_DOCUMENT_NAME)
            if entry is None:
                return None, requires_extension
            data = reader.read(entry)
    except ArchiveError as exc:
        logger.warning("Cannot read %s: %s", archive_path.name, exc)
        return None, False

    try:
        return parse_meta_lsx(data), requires_extension
    except MissingIdentityError as exc:
        logger.warning("Ignoring meta.lsx in %s: %s", archive_path.name, exc)
        return None, requires_extension


def read_mod_record(archive_path: str | Path) -> ModRecord:
    """Build the best available record for one archive on disk."""
    path = Path(archive_path)
    embedded, requires_extension = _read_embedded(path)
    sidecar = _read_sidecar(path)
    if embedded is not None and sidecar is not None and sidecar.id != embedded.id:
        logger.info(
            "Sidecar for %s describes %s, archive declares %s; using archive metadata",
            path.name,
            sidecar.id,
            embedded.id,
        )
        sidecar = None
    return build_record(
        path,
        embedded=embedded,
        sidecar=sidecar,
        requires_extension=requires_extension,
    )
