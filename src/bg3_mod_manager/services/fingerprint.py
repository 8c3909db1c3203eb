"""SHA-256 fingerprints of the load-order document.

The digest of ``modsettings.lsx`` is stored after every write. A different
digest on the next start means the game or another tool rewrote the file.
"""

from __future__ import annotations

import hashlib
from pathlib import Path


def compute(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def compute_file(file_path: str | Path) -> str | None:
    """Digest of the file's bytes, or ``None`` if it does not exist."""
    path = Path(file_path)
    if not path.is_file():
        return None
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            h.update(chunk)
    return h.hexdigest()


def has_changed(file_path: str | Path, stored: str | None) -> bool:
    """True when a stored fingerprint exists and the file no longer matches it.

    With nothing stored, or no file on disk, there is nothing to compare.
    """
    if not stored:
        return False
    current = compute_file(file_path)
    if current is None:
        return False
    return current != stored
