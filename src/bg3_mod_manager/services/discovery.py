"""Mod discovery: scan the Mods folder and build one record per archive.

Each ``.pak`` is read independently; a broken archive is logged and
reported without stopping the scan. The game's ``modsettings.lsx`` then
decides which discovered mods are active and in which order.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from bg3_mod_manager.archive import ArchiveError
from bg3_mod_manager.constants import ARCHIVE_SUFFIX, UNKNOWN_AUTHOR
from bg3_mod_manager.schemas.mod import MetadataSource, ModRecord
from bg3_mod_manager.services.load_order_import import (
    ImportedModEntry,
    LoadOrderImportError,
    read_modsettings_entries,
)
from bg3_mod_manager.services.metadata_parser import read_mod_record
from bg3_mod_manager.services.progress import ProgressCallback, noop_progress

logger = logging.getLogger(__name__)

_PART_RE = re.compile(r"^(?P<stem>.+)_(?P<part>\d+)$")


@dataclass
class DiscoveryResult:
    mods: list[ModRecord] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False


def find_archives(mods_dir: str | Path) -> list[Path]:
    """``.pak`` files directly in *mods_dir*, sorted by name.

    Extra data parts (``Foo_1.pak`` next to ``Foo.pak``) are not mods of
    their own and are skipped.
    """
    root = Path(mods_dir)
    if not root.is_dir():
        return []
    paks = sorted(
        p
        for p in root.iterdir()
        if p.is_file() and not p.name.startswith(".") and p.suffix.lower() == ARCHIVE_SUFFIX
    )
    names = {p.name.lower() for p in paks}
    result: list[Path] = []
    for pak in paks:
        m = _PART_RE.match(pak.stem)
        if m and f"{m['stem']}{pak.suffix}".lower() in names:
            continue
        result.append(pak)
    return result


def discover_mods(
    mods_dir: str | Path,
    *,
    on_progress: ProgressCallback = noop_progress,
    should_cancel: Callable[[], bool] | None = None,
) -> DiscoveryResult:
    """Read metadata for every archive in *mods_dir*."""
    result = DiscoveryResult()
    on_progress("discover", "Scanning mods folder...", 0)
    archives = find_archives(mods_dir)
    total = len(archives)
    if total == 0:
        on_progress("discover", "No mod archives found", 100)
        return result

    for i, path in enumerate(archives):
        if should_cancel is not None and should_cancel():
            result.cancelled = True
            logger.info("Discovery cancelled after %d of %d archives", i, total)
            break
        pct = int(((i + 1) / total) * 100)
        try:
            record = read_mod_record(path)
        except (ArchiveError, OSError, ValueError) as exc:
            logger.warning("Failed to read %s: %s", path, exc)
            result.failures[path.name] = str(exc)
            on_progress("discover", f"Failed: {path.name}", pct)
            continue
        result.mods.append(record)
        on_progress("discover", f"Read: {record.display_name}", pct)

    on_progress("discover", f"Found {len(result.mods)} mods in {total} archives", 100)
    logger.info("Discovered %d mods (%d failures)", len(result.mods), len(result.failures))
    return result


def placeholder_for(entry: ImportedModEntry) -> ModRecord:
    """Record for a load-order entry whose archive is not on disk."""
    return ModRecord(
        id=entry.id,
        folder_name=entry.folder_name,
        display_name=entry.name,
        author=UNKNOWN_AUTHOR,
        version64=entry.version64,
        content_hash=entry.content_hash or None,
        metadata_source=MetadataSource.imported,
    )


def partition_by_load_order(
    mods: list[ModRecord], entries: list[ImportedModEntry]
) -> tuple[list[ModRecord], list[ModRecord]]:
    """Split *mods* into (active, inactive) following *entries*.

    Entries with no discovered archive become ``imported`` placeholders in
    the active list so validation can flag them.
    """
    by_id: dict[str, ModRecord] = {}
    for mod in mods:
        by_id.setdefault(mod.id, mod)
    active: list[ModRecord] = []
    active_ids: set[str] = set()
    for entry in entries:
        if entry.id in active_ids:
            continue
        active.append(by_id.get(entry.id) or placeholder_for(entry))
        active_ids.add(entry.id)
    taken = {id(m) for m in active}
    inactive = [m for m in mods if id(m) not in taken]
    return active, inactive


def read_active_entries(modsettings_path: str | Path) -> list[ImportedModEntry]:
    """Current load order from the game's modsettings file. Missing file means none."""
    path = Path(modsettings_path)
    if not path.is_file():
        return []
    try:
        return read_modsettings_entries(path.read_bytes())
    except (LoadOrderImportError, OSError) as exc:
        logger.warning("Cannot read %s: %s", path, exc)
        return []
