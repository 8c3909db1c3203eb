"""Stable mod identifiers for archives that carry no metadata."""

from __future__ import annotations

import uuid

import xxhash


def deterministic_uuid(key: str) -> str:
    """UUID string derived from *key*.

    The same key always yields the same id, so a metadata-less archive keeps
    its identity (and any category override) across rescans.
    """
    digest = xxhash.xxh128(key.encode("utf-8")).digest()
    return str(uuid.UUID(bytes=digest, version=4))


def uuid_for_filename(filename: str) -> str:
    return deterministic_uuid(filename.lower())
