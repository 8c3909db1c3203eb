"""Parse load orders written by other tools into a normalized entry list.

Supported inputs:

* the game's own ``modsettings.lsx``,
* BG3 Mod Manager JSON exports (``{"mods": [...]}``),
* save files (``.lsv``), which embed a ``modsettings.lsx``.

Base game modules are dropped and ids are lowercased.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from bg3_mod_manager.archive import ArchiveError, LspkReader
from bg3_mod_manager.constants import BUILTIN_MODULE_UUIDS, MODSETTINGS_NAME
from bg3_mod_manager.utils import lsx
from bg3_mod_manager.utils.version import DEFAULT_VERSION64, parse_version64

logger = logging.getLogger(__name__)


class LoadOrderImportError(ValueError):
    """The document could not be parsed or lists no mods."""


class ImportFormat(StrEnum):
    modsettings = "modsettings"
    bg3mm = "bg3mm"
    save = "save"


@dataclass(frozen=True, slots=True)
class ImportedModEntry:
    id: str
    name: str
    folder_name: str = ""
    version64: int = DEFAULT_VERSION64
    content_hash: str = ""


@dataclass(frozen=True, slots=True)
class ImportResult:
    format: ImportFormat
    entries: list[ImportedModEntry]
    source_name: str


def _keep(uuid: str) -> bool:
    return bool(uuid) and uuid not in BUILTIN_MODULE_UUIDS


def read_modsettings_entries(data: bytes) -> list[ImportedModEntry]:
    """Ordered entries of a ``modsettings.lsx`` document, base modules excluded.

    ``ModOrder`` defines the sequence when present; newer game versions only
    write the ``Mods`` list, whose order is then used. An empty list is valid.
    """
    try:
        root = lsx.parse_lsx(data)
    except ValueError as exc:
        raise LoadOrderImportError(str(exc)) from exc

    descs: dict[str, dict[str, str]] = {}
    listed: list[str] = []
    mods_node = lsx.find_node(root, "Mods")
    if mods_node is not None:
        for node in lsx.child_nodes(mods_node, "ModuleShortDesc"):
            attrs = lsx.attributes(node)
            uuid = attrs.get("UUID", "").strip().lower()
            if uuid:
                descs.setdefault(uuid, attrs)
                listed.append(uuid)

    order: list[str] = []
    order_node = lsx.find_node(root, "ModOrder")
    if order_node is not None:
        for node in lsx.child_nodes(order_node, "Module"):
            uuid = lsx.attributes(node).get("UUID", "").strip().lower()
            if uuid:
                order.append(uuid)
    if not order:
        order = listed

    entries: list[ImportedModEntry] = []
    seen: set[str] = set()
    for uuid in order:
        if not _keep(uuid) or uuid in seen:
            continue
        seen.add(uuid)
        attrs = descs.get(uuid, {})
        entries.append(
            ImportedModEntry(
                id=uuid,
                name=attrs.get("Name") or uuid,
                folder_name=attrs.get("Folder", ""),
                version64=parse_version64(attrs.get("Version64") or attrs.get("Version")),
                content_hash=attrs.get("MD5", ""),
            )
        )
    return entries


def parse_modsettings(data: bytes) -> ImportResult:
    entries = read_modsettings_entries(data)
    if not entries:
        raise LoadOrderImportError("The imported file contains no mods")
    return ImportResult(format=ImportFormat.modsettings, entries=entries, source_name=MODSETTINGS_NAME)


def parse_bg3mm_json(data: bytes) -> ImportResult:
    try:
        doc = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise LoadOrderImportError(f"Invalid BG3MM JSON: {exc}") from exc
    mods = doc.get("mods", doc.get("Mods")) if isinstance(doc, dict) else None
    if not isinstance(mods, list):
        raise LoadOrderImportError("Invalid BG3MM JSON: no 'mods' list")

    entries: list[ImportedModEntry] = []
    seen: set[str] = set()
    for mod in mods:
        if not isinstance(mod, dict):
            continue
        uuid = str(mod.get("UUID") or mod.get("uuid") or "").strip().lower()
        if not _keep(uuid) or uuid in seen:
            continue
        seen.add(uuid)
        entries.append(
            ImportedModEntry(
                id=uuid,
                name=str(mod.get("modName") or mod.get("name") or uuid),
                folder_name=str(mod.get("folder") or mod.get("folderName") or ""),
                version64=parse_version64(str(mod.get("version") or "")),
                content_hash=str(mod.get("md5") or mod.get("MD5") or ""),
            )
        )
    if not entries:
        raise LoadOrderImportError("The imported file contains no mods")
    return ImportResult(format=ImportFormat.bg3mm, entries=entries, source_name="BG3 Mod Manager")


def parse_save_file(path: str | Path) -> ImportResult:
    """Read the load order embedded in an ``.lsv`` save."""
    path = Path(path)
    try:
        with LspkReader(path) as reader:
            entry = reader.find_entry(MODSETTINGS_NAME)
            if entry is None:
                raise LoadOrderImportError(f"{path.name} contains no {MODSETTINGS_NAME}")
            data = reader.read(entry)
    except ArchiveError as exc:
        raise LoadOrderImportError(f"Cannot read save {path.name}: {exc}") from exc
    result = parse_modsettings(data)
    return ImportResult(format=ImportFormat.save, entries=result.entries, source_name=path.name)


def parse_file(path: str | Path) -> ImportResult:
    """Detect the format from the extension and parse *path*."""
    path = Path(path)
    ext = path.suffix.lower()
    if ext == ".lsv":
        return parse_save_file(path)
    if ext not in (".json", ".lsx"):
        raise LoadOrderImportError(f"Unrecognized load order format: {ext or path.name}")
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise LoadOrderImportError(f"Cannot read {path}: {exc}") from exc
    logger.info("Importing load order from %s", path)
    if ext == ".json":
        return parse_bg3mm_json(data)
    return parse_modsettings(data)
