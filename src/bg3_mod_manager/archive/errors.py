"""Exception types raised by the LSPK archive reader."""

from __future__ import annotations


class ArchiveError(Exception):
    """Base class for every archive failure."""


class CorruptHeaderError(ArchiveError, ValueError):
    """Bad magic, unsupported version, truncated header/table or unknown codec."""


class DecompressionError(ArchiveError, ValueError):
    """An entry failed to decompress or produced the wrong number of bytes."""


class EntryNotFoundError(ArchiveError, LookupError):
    def __init__(self, archive: str, name: str) -> None:
        super().__init__(f"Entry {name!r} not found in {archive}")
        self.archive = archive
        self.name = name


class ArchiveIOError(ArchiveError, OSError):
    """Reading or writing archive data on disk failed."""
