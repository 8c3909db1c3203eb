"""Block codecs used by LSPK entries.

Per-entry LZ4 data is a raw LZ4 block with no size prefix. Solid archives
wrap the whole data region in an LZ4 frame. zlib data is a regular zlib
stream. Every decode is checked against the size declared in the file table.
"""

from __future__ import annotations

import zlib
from enum import IntEnum

import lz4.block
import lz4.frame

from bg3_mod_manager.archive.errors import DecompressionError


class CompressionMethod(IntEnum):
    NONE = 0
    ZLIB = 1
    LZ4 = 2


def method_from_flags(flags: int) -> CompressionMethod:
    """Map the low nibble of an entry's flags byte to a codec.

    Raises ValueError for an unknown method.
    """
    return CompressionMethod(flags & 0x0F)


def _lz4_block(data: bytes, expected_size: int) -> bytes:
    if expected_size == 0:
        return b""
    return lz4.block.decompress(data, uncompressed_size=expected_size)


def _check_size(out: bytes, expected_size: int, what: str) -> bytes:
    if len(out) != expected_size:
        raise DecompressionError(
            f"{what}: decompressed to {len(out)} bytes, expected {expected_size}"
        )
    return out


def decompress(
    data: bytes,
    method: CompressionMethod,
    expected_size: int,
    *,
    what: str = "entry",
) -> bytes:
    """Decompress one independently compressed entry."""
    if method is CompressionMethod.NONE:
        return _check_size(data, expected_size, what)
    if expected_size == 0 and not data:
        return b""
    try:
        if method is CompressionMethod.ZLIB:
            out = zlib.decompress(data)
        else:
            out = _lz4_block(data, expected_size)
    except (zlib.error, lz4.block.LZ4BlockError) as exc:
        raise DecompressionError(f"{what}: {method.name} data is corrupt ({exc})") from exc
    return _check_size(out, expected_size, what)


def decompress_stream(
    data: bytes,
    method: CompressionMethod,
    expected_size: int,
    *,
    what: str = "solid stream",
) -> bytes:
    """Decompress a solid region. LZ4 is tried as a frame first, then as a block."""
    if method is not CompressionMethod.LZ4:
        return decompress(data, method, expected_size, what=what)
    try:
        out = lz4.frame.decompress(data)
    except RuntimeError:
        try:
            out = _lz4_block(data, expected_size)
        except lz4.block.LZ4BlockError as exc:
            raise DecompressionError(f"{what}: LZ4 data is corrupt ({exc})") from exc
    return _check_size(out, expected_size, what)


def decompress_table(data: bytes, expected_size: int, *, solid: bool) -> bytes:
    """Decompress a file table. Frame and block layouts are tried in the
    order the archive kind prefers.

    Raises DecompressionError when neither layout yields ``expected_size`` bytes.
    """

    def _frame() -> bytes:
        return lz4.frame.decompress(data)

    def _block() -> bytes:
        return _lz4_block(data, expected_size)

    attempts = (_frame, _block) if solid else (_block, _frame)
    for attempt in attempts:
        try:
            out = attempt()
        except (RuntimeError, lz4.block.LZ4BlockError):
            continue
        if len(out) == expected_size:
            return out
    raise DecompressionError(f"file table: LZ4 data does not expand to {expected_size} bytes")


def compress(data: bytes, method: CompressionMethod, *, solid: bool = False) -> bytes:
    """Encode *data* the way the reader expects to find it on disk."""
    if method is CompressionMethod.NONE:
        return bytes(data)
    if method is CompressionMethod.ZLIB:
        return zlib.compress(data)
    if solid:
        return lz4.frame.compress(data)
    return lz4.block.compress(data, store_size=False)
