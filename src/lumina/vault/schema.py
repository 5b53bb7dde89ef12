"""Record types and on-disk constants for the vault index.

The catalog (``vault_index.jsonl``) and state file (``vault_state.json``)
use camelCase keys; the dataclasses here convert to and from that shape.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


EMBEDDING_DIM = 384  # all-MiniLM-L6-v2
BYTES_PER_FLOAT = 4
INDEX_VERSION = "1.0.0"

INDEX_DIR_NAME = "vault-index"
CATALOG_FILE = "vault_index.jsonl"
VECTORS_FILE = "embeddings.bin"
STATE_FILE = "vault_state.json"


class ChunkType(str, Enum):
    """How a chunk was cut out of its source file."""
    FUNCTION = "function"
    CODE = "code"
    SECTION = "section"
    PARAGRAPH = "paragraph"
    GENERIC = "generic"


@dataclass
class ChunkMetadata:
    """File-level facts carried by every chunk of a file."""
    mtime: float = 0.0
    size: int = 0
    checksum: str | None = None
    file_name: str = ""
    heading: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "mtime": self.mtime,
            "size": self.size,
            "checksum": self.checksum,
            "fileName": self.file_name,
        }
        if self.heading is not None:
            data["heading"] = self.heading
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ChunkMetadata:
        data = data or {}
        return cls(
            mtime=data.get("mtime") or 0.0,
            size=data.get("size") or 0,
            checksum=data.get("checksum"),
            file_name=data.get("fileName", ""),
            heading=data.get("heading"),
        )


@dataclass
class VaultChunk:
    """One catalog record: a span of a source file plus where its vector lives."""
    id: str
    file_path: str
    chunk_index: int
    text: str
    start: int
    end: int
    type: ChunkType
    metadata: ChunkMetadata = field(default_factory=ChunkMetadata)
    embedding_offset: int = 0
    embedding_length: int = EMBEDDING_DIM

    @property
    def byte_length(self) -> int:
        return self.embedding_length * BYTES_PER_FLOAT

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "filePath": self.file_path,
            "chunkIndex": self.chunk_index,
            "text": self.text,
            "start": self.start,
            "end": self.end,
            "type": self.type.value,
            "metadata": self.metadata.to_dict(),
            "embeddingOffset": self.embedding_offset,
            "embeddingLength": self.embedding_length,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VaultChunk:
        try:
            chunk_type = ChunkType(data.get("type", "generic"))
        except ValueError:
            chunk_type = ChunkType.GENERIC
        return cls(
            id=str(data["id"]),
            file_path=data["filePath"],
            chunk_index=data.get("chunkIndex", 0),
            text=data.get("text", ""),
            start=data.get("start", 0),
            end=data.get("end", 0),
            type=chunk_type,
            metadata=ChunkMetadata.from_dict(data.get("metadata")),
            embedding_offset=data.get("embeddingOffset") or 0,
            embedding_length=data.get("embeddingLength") or EMBEDDING_DIM,
        )


@dataclass
class SourceFileState:
    """Persisted per-file indexing state."""
    mtime: float = 0.0
    checksum: str | None = None
    indexed: bool = False
    chunk_count: int = 0
    last_indexed: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "mtime": self.mtime,
            "checksum": self.checksum,
            "indexed": self.indexed,
            "chunkCount": self.chunk_count,
            "lastIndexed": self.last_indexed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SourceFileState:
        return cls(
            mtime=data.get("mtime") or 0.0,
            checksum=data.get("checksum"),
            indexed=bool(data.get("indexed", False)),
            chunk_count=data.get("chunkCount", 0),
            last_indexed=data.get("lastIndexed"),
        )


@dataclass
class IndexStats:
    """Counters for one index_vault run."""
    total_files: int = 0
    indexed_files: int = 0
    total_chunks: int = 0
    errors: int = 0
    pruned_files: int = 0
    last_index_time: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "indexedFiles": self.indexed_files,
            "totalChunks": self.total_chunks,
            "errors": self.errors,
            "prunedFiles": self.pruned_files,
            "lastIndexTime": self.last_index_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> IndexStats:
        data = data or {}
        return cls(
            total_files=data.get("totalFiles", 0),
            indexed_files=data.get("indexedFiles", 0),
            total_chunks=data.get("totalChunks", 0),
            errors=data.get("errors", 0),
            pruned_files=data.get("prunedFiles", 0),
            last_index_time=data.get("lastIndexTime"),
        )


@dataclass
class IndexState:
    """The single persisted state record (``vault_state.json``)."""
    version: str = INDEX_VERSION
    files: dict[str, SourceFileState] = field(default_factory=dict)
    stats: IndexStats | None = None
    last_index_time: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "version": self.version,
            "files": {path: f.to_dict() for path, f in self.files.items()},
        }
        if self.stats is not None:
            data["stats"] = self.stats.to_dict()
        if self.last_index_time is not None:
            data["lastIndexTime"] = self.last_index_time
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IndexState:
        files = data.get("files") or {}
        stats = data.get("stats")
        return cls(
            version=data.get("version", ""),
            files={path: SourceFileState.from_dict(f) for path, f in files.items()},
            stats=IndexStats.from_dict(stats) if stats is not None else None,
            last_index_time=data.get("lastIndexTime"),
        )


@dataclass
class ScoredChunk:
    """A search hit: the chunk, its cosine score and its reranked score."""
    chunk: VaultChunk
    score: float
    final_score: float | None = None

    @property
    def rank_score(self) -> float:
        return self.final_score if self.final_score is not None else self.score

    def to_dict(self) -> dict[str, Any]:
        data = self.chunk.to_dict()
        data["score"] = self.score
        if self.final_score is not None:
            data["finalScore"] = self.final_score
        return data


@dataclass
class FileIndexResult:
    """Outcome of index_file for one path."""
    indexed: bool
    reason: str | None = None
    chunk_count: int = 0
    file_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"indexed": self.indexed}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.indexed:
            data["chunkCount"] = self.chunk_count
            data["filePath"] = self.file_path
        return data


@dataclass
class IndexRunResult:
    """Outcome of index_vault: either a finished run or a queued request."""
    success: bool = False
    stats: IndexStats | None = None
    queued: bool = False

    def to_dict(self) -> dict[str, Any]:
        if self.queued:
            return {"queued": True}
        return {
            "success": self.success,
            "stats": self.stats.to_dict() if self.stats else None,
        }


@dataclass
class ValidationResult:
    """Verdict of validate_index. Never triggers a rebuild by itself."""
    valid: bool
    reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"valid": self.valid}
        if self.reason is not None:
            data["reason"] = self.reason
        if self.error is not None:
            data["error"] = self.error
        return data
