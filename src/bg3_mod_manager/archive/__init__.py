from bg3_mod_manager.archive.codecs import CompressionMethod
from bg3_mod_manager.archive.errors import (
    ArchiveError,
    ArchiveIOError,
    CorruptHeaderError,
    DecompressionError,
    EntryNotFoundError,
)
from bg3_mod_manager.archive.lspk_reader import (
    ArchiveIndexEntry,
    LspkHeader,
    LspkReader,
    contains_path_fragment,
    extract_all,
    extract_entry,
    find_entry,
    list_entries,
)

__all__ = [
    "ArchiveError",
    "ArchiveIOError",
    "ArchiveIndexEntry",
    "CompressionMethod",
    "CorruptHeaderError",
    "DecompressionError",
    "EntryNotFoundError",
    "LspkHeader",
    "LspkReader",
    "contains_path_fragment",
    "extract_all",
    "extract_entry",
    "find_entry",
    "list_entries",
]
