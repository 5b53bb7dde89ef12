"""Change detection: decide whether a file needs re-indexing."""

from __future__ import annotations

import hashlib
from pathlib import Path

from lumina.vault.schema import IndexState


def compute_checksum(content: str | bytes) -> str:
    """SHA256 hex digest of text or bytes."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    return hashlib.sha256(content).hexdigest()


def checksum_file(path: str | Path) -> str | None:
    """Checksum of a file's raw bytes, or None if it cannot be read."""
    try:
        return compute_checksum(Path(path).read_bytes())
    except OSError:
        return None


def should_reindex(
    path: str,
    mtime: float,
    checksum: str | None,
    state: IndexState,
    force: bool = False,
) -> bool:
    """Return False only for a file whose persisted state still matches.

    A null checksum (unreadable file) always needs re-indexing.
    """
    if force or checksum is None:
        return True
    file_state = state.files.get(path)
    if file_state is None:
        return True
    return not (
        file_state.mtime == mtime
        and file_state.checksum == checksum
        and file_state.indexed
    )
