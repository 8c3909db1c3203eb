"""Reader for Larian LSPK ``.pak`` archives (and ``.lsv`` saves, which share the format).

Layout (little-endian)::

    "LSPK" | header | ... file data ... | file list

The header names the version and the offset of the file list. The file
list is a ``num_files``/``compressed_size`` preamble followed by the entry
table, stored raw or LZ4 compressed. Entry data is either compressed per
entry or, in solid archives, as one stream covering every entry.

Format reference:
  https://github.com/Norbyte/lslib (LSLib/LS/PackageFormat.cs)
"""

from __future__ import annotations

import logging
import struct
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from bg3_mod_manager.archive import codecs
from bg3_mod_manager.archive.codecs import CompressionMethod
from bg3_mod_manager.archive.errors import (
    ArchiveIOError,
    CorruptHeaderError,
    DecompressionError,
    EntryNotFoundError,
)
from bg3_mod_manager.services.progress import ProgressCallback, noop_progress

logger = logging.getLogger(__name__)

LSPK_MAGIC = b"LSPK"
SUPPORTED_VERSIONS = frozenset({15, 16, 18})
FLAG_SOLID = 0x04
MAX_FILE_COUNT = 1_000_000  # sanity limit

# struct formats (little-endian); the v15 header has no num_parts field
_HEADER_FMT_V15 = "<IQIBB16s"
_HEADER_FMT = "<IQIBB16sH"
_TABLE_PREAMBLE_FMT = "<II"
_ENTRY_FMT_V18 = "<256sIHBBII"  # 272 bytes
_ENTRY_FMT_V15 = "<256sQQQIIII"  # 296 bytes

_TABLE_PREAMBLE_SIZE = struct.calcsize(_TABLE_PREAMBLE_FMT)


def _entry_size(version: int) -> int:
    return struct.calcsize(_ENTRY_FMT_V18 if version >= 18 else _ENTRY_FMT_V15)


@dataclass(frozen=True, slots=True)
class LspkHeader:
    version: int
    file_list_offset: int
    file_list_size: int
    flags: int
    priority: int
    md5: bytes
    num_parts: int

    @property
    def solid(self) -> bool:
        return bool(self.flags & FLAG_SOLID)


@dataclass(frozen=True, slots=True)
class ArchiveIndexEntry:
    name: str  # archive-relative, "/" separated
    offset: int
    compressed_size: int
    uncompressed_size: int
    compression: CompressionMethod
    archive_part: int = 0


# ---- Binary parsing ----


def parse_lspk_header(data: bytes) -> LspkHeader:
    """Parse the magic and header from the first bytes of an archive."""
    if len(data) < 8:
        raise CorruptHeaderError(f"Header too short: {len(data)} bytes")
    magic = data[0:4]
    if magic != LSPK_MAGIC:
        raise CorruptHeaderError(f"Invalid LSPK magic: {magic!r}")
    (version,) = struct.unpack_from("<I", data, 4)
    if version not in SUPPORTED_VERSIONS:
        raise CorruptHeaderError(f"Unsupported LSPK version: {version}")

    fmt = _HEADER_FMT_V15 if version == 15 else _HEADER_FMT
    need = 4 + struct.calcsize(fmt)
    if len(data) < need:
        raise CorruptHeaderError(f"Header truncated: {len(data)} bytes, need {need}")
    fields = struct.unpack_from(fmt, data, 4)
    _, file_list_offset, file_list_size, flags, priority, md5 = fields[:6]
    num_parts = fields[6] if len(fields) > 6 else 1
    return LspkHeader(
        version=version,
        file_list_offset=file_list_offset,
        file_list_size=file_list_size,
        flags=flags,
        priority=priority,
        md5=md5,
        num_parts=num_parts,
    )


def _decode_name(raw: bytes) -> str:
    name = raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")
    return name.replace("\\", "/")


def _parse_entry(table: bytes, pos: int, version: int) -> ArchiveIndexEntry:
    if version >= 18:
        raw_name, off_lo, off_hi, part, flags, on_disk, size = struct.unpack_from(
            _ENTRY_FMT_V18, table, pos
        )
        offset = off_lo | (off_hi << 32)
    else:
        raw_name, offset, on_disk, size, part, flags, _crc, _unk = struct.unpack_from(
            _ENTRY_FMT_V15, table, pos
        )
    name = _decode_name(raw_name)
    try:
        method = codecs.method_from_flags(flags)
    except ValueError:
        raise CorruptHeaderError(
            f"Unknown compression method {flags & 0x0F} for entry {name!r}"
        ) from None
    return ArchiveIndexEntry(
        name=name,
        offset=offset,
        compressed_size=on_disk,
        uncompressed_size=size,
        compression=method,
        archive_part=part,
    )


def parse_file_list(fh: BinaryIO, header: LspkHeader) -> list[ArchiveIndexEntry]:
    """Read and decode the file table described by *header*."""
    fh.seek(header.file_list_offset)
    preamble = fh.read(_TABLE_PREAMBLE_SIZE)
    if len(preamble) < _TABLE_PREAMBLE_SIZE:
        raise CorruptHeaderError("File list preamble truncated")
    num_files, stored_size = struct.unpack(_TABLE_PREAMBLE_FMT, preamble)
    if num_files > MAX_FILE_COUNT:
        raise CorruptHeaderError(f"Unreasonable file count: {num_files} (file likely corrupt)")

    entry_size = _entry_size(header.version)
    table_size = num_files * entry_size
    stored = fh.read(stored_size)
    if len(stored) < stored_size:
        raise CorruptHeaderError(
            f"File list truncated: got {len(stored)}, expected {stored_size} bytes"
        )

    if stored_size == table_size:
        table = stored
    else:
        try:
            table = codecs.decompress_table(stored, table_size, solid=header.solid)
        except DecompressionError as exc:
            raise CorruptHeaderError(str(exc)) from exc

    return [_parse_entry(table, i * entry_size, header.version) for i in range(num_files)]


def part_path(path: Path, part: int) -> Path:
    """Location of the data file for *part*; part 0 is the archive itself."""
    if part == 0:
        return path
    return path.with_name(f"{path.stem}_{part}{path.suffix}")


def _matches_suffix(name: str, suffix: str) -> bool:
    suffix = suffix.replace("\\", "/").strip("/")
    if not suffix:
        return False
    return name == suffix or name.endswith("/" + suffix)


# ---- Reader ----


class LspkReader:
    """Open LSPK archive with a parsed index.

    The index is read once on construction. Entry data is read on demand;
    a solid archive's stream is decompressed on first use and cached for
    the lifetime of the reader.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._parts: dict[int, BinaryIO] = {}
        self._solid_cache: dict[str, bytes] | None = None
        try:
            fh = self._path.open("rb")
        except OSError as exc:
            raise ArchiveIOError(f"Cannot open {self._path}: {exc}") from exc
        self._parts[0] = fh
        try:
            self.header = parse_lspk_header(fh.read(4 + struct.calcsize(_HEADER_FMT)))
            self._entries = parse_file_list(fh, self.header)
        except Exception:
            self.close()
            raise

    @property
    def path(self) -> Path:
        return self._path

    def list_entries(self) -> list[ArchiveIndexEntry]:
        return list(self._entries)

    def find_entry(self, suffix: str) -> ArchiveIndexEntry | None:
        for entry in self._entries:
            if _matches_suffix(entry.name, suffix):
                return entry
        return None

    def get_entry(self, name: str) -> ArchiveIndexEntry:
        name = name.replace("\\", "/")
        for entry in self._entries:
            if entry.name == name:
                return entry
        raise EntryNotFoundError(str(self._path), name)

    def contains_path_fragment(self, fragment: str) -> bool:
        return any(fragment in entry.name for entry in self._entries)

    def _handle(self, part: int) -> BinaryIO:
        fh = self._parts.get(part)
        if fh is None:
            target = part_path(self._path, part)
            try:
                fh = target.open("rb")
            except OSError as exc:
                raise ArchiveIOError(f"Missing archive part {part}: {target}") from exc
            self._parts[part] = fh
        return fh

    def _read_raw(self, part: int, offset: int, size: int, what: str) -> bytes:
        fh = self._handle(part)
        fh.seek(offset)
        data = fh.read(size)
        if len(data) < size:
            raise DecompressionError(
                f"{what}: data truncated, got {len(data)} of {size} bytes"
            )
        return data

    def _load_solid(self) -> dict[str, bytes]:
        if self._solid_cache is not None:
            return self._solid_cache
        cache: dict[str, bytes] = {}
        if self._entries:
            first = self._entries[0]
            start = min(e.offset for e in self._entries)
            end = max(e.offset + e.compressed_size for e in self._entries)
            total = sum(e.uncompressed_size for e in self._entries)
            region = self._read_raw(first.archive_part, start, end - start, "solid region")
            stream = codecs.decompress_stream(region, first.compression, total)
            pos = 0
            for entry in self._entries:
                cache[entry.name] = stream[pos : pos + entry.uncompressed_size]
                pos += entry.uncompressed_size
            logger.debug("Decompressed solid region of %s (%d bytes)", self._path.name, total)
        self._solid_cache = cache
        return cache

    def read(self, entry: ArchiveIndexEntry) -> bytes:
        """Return the decompressed bytes of *entry*."""
        if self.header.solid:
            return self._load_solid()[entry.name]
        what = f"{self._path.name}:{entry.name}"
        data = self._read_raw(entry.archive_part, entry.offset, entry.compressed_size, what)
        method = entry.compression
        # Packers store incompressible entries raw but keep the method flag.
        if entry.compressed_size == entry.uncompressed_size:
            method = CompressionMethod.NONE
        return codecs.decompress(data, method, entry.uncompressed_size, what=what)

    def extract(self, name: str) -> bytes:
        return self.read(self.get_entry(name))

    def extract_all(
        self,
        destination: str | Path,
        *,
        on_progress: ProgressCallback = noop_progress,
        should_cancel: Callable[[], bool] | None = None,
    ) -> int:
        """Write every entry below *destination*. Returns the number of files written.

        Output already written is left in place when a later entry fails.
        """
        dest = Path(destination).resolve()
        total = len(self._entries)
        written = 0
        for i, entry in enumerate(self._entries):
            if should_cancel is not None and should_cancel():
                logger.info("Extraction of %s cancelled after %d files", self._path.name, written)
                break
            target = (dest / PurePosixPath(entry.name)).resolve()
            if dest not in target.parents:
                raise ArchiveIOError(f"Entry {entry.name!r} escapes {dest}")
            data = self.read(entry)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
            except OSError as exc:
                raise ArchiveIOError(f"Failed to write {target}: {exc}") from exc
            written += 1
            on_progress("extract", entry.name, int((i + 1) / total * 100))
        return written

    def close(self) -> None:
        self._solid_cache = None
        for fh in self._parts.values():
            fh.close()
        self._parts.clear()

    def __enter__(self) -> LspkReader:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()


# ---- One-shot helpers ----


def list_entries(path: str | Path) -> list[ArchiveIndexEntry]:
    with LspkReader(path) as reader:
        return reader.list_entries()


def extract_entry(path: str | Path, name: str) -> bytes:
    with LspkReader(path) as reader:
        return reader.extract(name)


def find_entry(path: str | Path, suffix: str) -> ArchiveIndexEntry | None:
    with LspkReader(path) as reader:
        return reader.find_entry(suffix)


def extract_all(
    path: str | Path,
    destination: str | Path,
    *,
    on_progress: ProgressCallback = noop_progress,
    should_cancel: Callable[[], bool] | None = None,
) -> int:
    with LspkReader(path) as reader:
        return reader.extract_all(destination, on_progress=on_progress, should_cancel=should_cancel)


def contains_path_fragment(path: str | Path, fragment: str) -> bool:
    """True if any entry name contains *fragment*. Unreadable archives report False."""
    try:
        with LspkReader(path) as reader:
            return reader.contains_path_fragment(fragment)
    except (CorruptHeaderError, ArchiveIOError) as exc:
        logger.debug("Cannot scan %s for %r: %s", path, fragment, exc)
        return False
