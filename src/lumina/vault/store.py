"""Flat binary vector store (``embeddings.bin``).

Vectors are little-endian float32, concatenated in catalog order and
addressed by byte offset. The only mutation is a full rebuild: surviving
vectors are copied out of the old buffer, new vectors are appended and every
chunk's offset is rewritten. That makes a single-file update O(total chunks).
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from pathlib import Path

import numpy as np

from lumina.vault.schema import BYTES_PER_FLOAT, EMBEDDING_DIM, VaultChunk

logger = logging.getLogger(__name__)

VECTOR_DTYPE = np.dtype("<f4")


def encode_vectors(vectors: Sequence[Sequence[float]], dim: int = EMBEDDING_DIM) -> bytes:
    """Pack vectors of exactly ``dim`` values into a contiguous buffer."""
    if not vectors:
        return b""
    array = np.asarray(vectors, dtype=VECTOR_DTYPE).reshape(len(vectors), dim)
    return array.tobytes()


def extract(buffer: bytes | None, offset: int, length: int) -> np.ndarray | None:
    """Read ``length`` floats at byte ``offset``.

    Returns None instead of raising when the read would run past the end of
    the buffer; callers skip such records.
    """
    if buffer is None or offset < 0 or length <= 0:
        return None
    if offset + length * BYTES_PER_FLOAT > len(buffer):
        logger.warning(
            "Chunk embedding out of bounds: offset=%d, required=%d, buffer=%d",
            offset, offset + length * BYTES_PER_FLOAT, len(buffer),
        )
        return None
    return np.frombuffer(buffer, dtype=VECTOR_DTYPE, count=length, offset=offset)


def rebuild_with(
    old_buffer: bytes | None,
    survivors: Sequence[VaultChunk],
    new_chunks: Sequence[VaultChunk],
    new_vectors: bytes,
    dim: int = EMBEDDING_DIM,
) -> tuple[list[VaultChunk], bytes]:
    """Build a new buffer holding survivors' vectors followed by new ones.

    ``survivors`` carry their offsets into ``old_buffer``. Survivors whose
    vector is out of bounds are dropped so catalog and buffer stay aligned.
    All kept chunks get contiguous offsets with a ``dim * 4`` stride.

    Returns the resulting catalog order and the new buffer.
    """
    stride = dim * BYTES_PER_FLOAT
    if len(new_vectors) != len(new_chunks) * stride:
        raise ValueError(
            f"Expected {len(new_chunks) * stride} bytes for {len(new_chunks)} "
            f"new vectors, got {len(new_vectors)}"
        )

    parts: list[bytes] = []
    kept: list[VaultChunk] = []
    for chunk in survivors:
        vector = extract(old_buffer, chunk.embedding_offset, chunk.embedding_length)
        if vector is None:
            logger.warning("Dropping chunk %s with missing embedding", chunk.id)
            continue
        parts.append(_fit(vector, dim).tobytes())
        kept.append(chunk)

    parts.append(new_vectors)
    kept.extend(new_chunks)

    for i, chunk in enumerate(kept):
        chunk.embedding_offset = i * stride
        chunk.embedding_length = dim

    return kept, b"".join(parts)


def _fit(vector: np.ndarray, dim: int) -> np.ndarray:
    if len(vector) == dim:
        return vector
    fitted = np.zeros(dim, dtype=VECTOR_DTYPE)
    n = min(dim, len(vector))
    fitted[:n] = vector[:n]
    return fitted


class VectorStore:
    """The vector file on disk."""

    def __init__(self, path: Path, dim: int = EMBEDDING_DIM) -> None:
        self.path = path
        self.dim = dim

    def exists(self) -> bool:
        return self.path.exists()

    def size(self) -> int:
        return self.path.stat().st_size if self.path.exists() else 0

    def load(self) -> bytes:
        """Read the whole buffer; a missing file is an empty buffer."""
        if not self.path.exists():
            return b""
        return self.path.read_bytes()

    def save(self, buffer: bytes) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_bytes(buffer)

    def clear(self) -> None:
        self.save(b"")

    def extract(self, buffer: bytes | None, offset: int, length: int) -> np.ndarray | None:
        return extract(buffer, offset, length)

    def rebuild_with(
        self,
        survivors: Sequence[VaultChunk],
        new_chunks: Sequence[VaultChunk],
        new_vectors: bytes,
    ) -> tuple[list[VaultChunk], bytes]:
        """Rebuild against the buffer currently on disk (does not write it)."""
        return rebuild_with(self.load(), survivors, new_chunks, new_vectors, self.dim)
