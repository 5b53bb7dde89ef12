"""In-memory vault search with filters, reranking and a query cache.

The catalog and vector file are read fully into memory by ``load_index``.
The engine never watches the files: after the index changes, the owner must
call ``reload()``, which also drops cached results.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np

from lumina.vault.catalog import IndexCatalog
from lumina.vault.embedder import Embedder, fit_dimension
from lumina.vault.errors import EmbeddingError
from lumina.vault.schema import (
    CATALOG_FILE,
    EMBEDDING_DIM,
    VECTORS_FILE,
    ScoredChunk,
    VaultChunk,
)
from lumina.vault.store import VectorStore, extract

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.3
DEFAULT_LIMIT = 20
DEFAULT_SIMILAR_LIMIT = 10
SIMILAR_FLOOR = 0.3
CACHE_MAX_SIZE = 100

DAY_MS = 24 * 60 * 60 * 1000
WORD_MATCH_BOOST = 0.1
WEEK_RECENCY_BOOST = 0.05
DAY_RECENCY_BOOST = 0.1
FILENAME_BOOST = 0.15


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Cosine of the angle between two vectors.

    Returns 0.0 when either vector is missing, the lengths differ, or either
    magnitude is zero.
    """
    if a is None or b is None or len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    magnitude = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if magnitude <= 0:
        return 0.0
    return float(np.dot(va, vb) / magnitude)


@dataclass
class SearchFilters:
    """Structural filters applied before scoring."""
    file_path: str | None = None
    file_type: str | None = None
    type: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> SearchFilters:
        data = data or {}
        return cls(
            file_path=data.get("filePath") or data.get("file_path"),
            file_type=data.get("fileType") or data.get("file_type"),
            type=data.get("type"),
        )

    def to_dict(self) -> dict[str, str]:
        data = {}
        if self.file_path:
            data["filePath"] = self.file_path
        if self.file_type:
            data["fileType"] = self.file_type
        if self.type:
            data["type"] = self.type
        return data

    def check(self) -> None:
        """Raise TypeError unless every set filter is a string."""
        for name in ("file_path", "file_type", "type"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, str):
                raise TypeError(f"{name} filter must be a string, got {type(value).__name__}")

    def apply(self, chunks: Sequence[VaultChunk]) -> list[VaultChunk]:
        """Filter chunks. Raises re.error on a malformed path pattern."""
        candidates = list(chunks)
        if self.file_path:
            pattern = re.compile(self.file_path, re.IGNORECASE)
            candidates = [c for c in candidates if pattern.search(c.file_path)]
        if self.file_type:
            ext = self.file_type if self.file_type.startswith(".") else f".{self.file_type}"
            ext = ext.lower()
            candidates = [c for c in candidates if Path(c.file_path).suffix.lower() == ext]
        if self.type:
            candidates = [c for c in candidates if c.type.value == self.type]
        return candidates


class QueryCache:
    """Bounded result cache evicting in insertion order (FIFO, not LRU).

    A hit does not refresh an entry's position.
    """

    def __init__(self, max_size: int = CACHE_MAX_SIZE) -> None:
        self.max_size = max_size
        self._entries: dict[str, list[ScoredChunk]] = {}

    @staticmethod
    def make_key(query: str, threshold: float, filters: SearchFilters) -> str:
        return json.dumps(
            {"query": query, "threshold": threshold, "filters": filters.to_dict()},
            sort_keys=True,
        )

    def get(self, key: str) -> list[ScoredChunk] | None:
        return self._entries.get(key)

    def put(self, key: str, results: list[ScoredChunk]) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = results

    def clear(self) -> None:
        self._entries.clear()

    def keys(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def _query_words(query: str) -> list[str]:
    words: list[str] = []
    for word in query.lower().split():
        if len(word) >= 3 and word not in words:
            words.append(word)
    return words


def rerank_boost(
    chunk: VaultChunk,
    query_words: Sequence[str],
    now_ms: float | None = None,
) -> float:
    """Multiplicative boost from lexical match, recency and file name."""
    boost = 1.0
    text = chunk.text.lower()
    boost += WORD_MATCH_BOOST * sum(1 for w in query_words if w in text)

    mtime = chunk.metadata.mtime
    if mtime:
        now_ms = time.time() * 1000 if now_ms is None else now_ms
        days_old = (now_ms - mtime) / DAY_MS
        if days_old < 7:
            boost += WEEK_RECENCY_BOOST
        if days_old < 1:
            boost += DAY_RECENCY_BOOST

    file_name = chunk.metadata.file_name.lower()
    if file_name and any(w in file_name for w in query_words):
        boost += FILENAME_BOOST

    return boost


class SearchEngine:
    """Exact cosine-similarity search over the loaded index."""

    def __init__(
        self,
        index_dir: Path,
        embedder: Embedder,
        dim: int = EMBEDDING_DIM,
        cache_size: int = CACHE_MAX_SIZE,
    ) -> None:
        self.index_dir = Path(index_dir)
        self.embedder = embedder
        self.dim = dim
        self.catalog = IndexCatalog(self.index_dir / CATALOG_FILE)
        self.vectors = VectorStore(self.index_dir / VECTORS_FILE, dim)
        self.query_cache = QueryCache(cache_size)

        self.index: list[VaultChunk] = []
        self.embeddings: bytes | None = None
        self.is_loaded = False

    # -- loading ----------------------------------------------------------

    def load_index(self) -> None:
        """Read catalog and vectors into memory. Missing files load as empty."""
        try:
            if not self.catalog.exists():
                logger.warning("Index file not found: %s", self.catalog.path)
                self.index = []
                self.embeddings = None
            else:
                self.index = self.catalog.load()
                self.embeddings = self.vectors.load() if self.vectors.exists() else None
                logger.info("Loaded %d chunks into memory", len(self.index))
        except OSError as e:
            logger.error("Failed to load index: %s", e)
            self.index = []
            self.embeddings = None
        self.is_loaded = True

    def reload(self) -> None:
        """Reload after the index changed; cached results are discarded."""
        self.is_loaded = False
        self.query_cache.clear()
        self.load_index()

    def get_chunk_embedding(self, chunk: VaultChunk) -> np.ndarray | None:
        return extract(self.embeddings, chunk.embedding_offset, chunk.embedding_length)

    # -- queries ----------------------------------------------------------

    async def search(
        self,
        query: str,
        threshold: float = DEFAULT_THRESHOLD,
        limit: int = DEFAULT_LIMIT,
        filters: SearchFilters | dict[str, Any] | None = None,
        rerank: bool = True,
    ) -> list[ScoredChunk]:
        """Rank loaded chunks against a query.

        Never raises for a bad query, a missing index, an embedding failure
        or a malformed filter; those all produce an empty list. Identical
        (query, threshold, filters) calls return the cached list object.
        """
        if not self.is_loaded or not self.index:
            return []
        try:
            if not isinstance(filters, SearchFilters):
                filters = SearchFilters.from_dict(filters)
            filters.check()
        except (TypeError, AttributeError) as e:
            logger.warning("Invalid search filters %r: %s", filters, e)
            return []

        key = QueryCache.make_key(query, threshold, filters)
        cached = self.query_cache.get(key)
        if cached is not None:
            return cached

        if not isinstance(query, str) or not query.strip():
            logger.warning("Ignoring empty search query")
            return []

        try:
            candidates = filters.apply(self.index)
        except re.error as e:
            logger.warning("Invalid filePath filter %r: %s", filters.file_path, e)
            return []

        try:
            query_vector = await self._embed_query(query)
        except EmbeddingError as e:
            logger.error("Search failed: %s", e)
            return []

        results: list[ScoredChunk] = []
        for chunk in candidates:
            vector = self.get_chunk_embedding(chunk)
            if vector is None:
                continue
            score = cosine_similarity(query_vector, vector)
            if score >= threshold:
                results.append(ScoredChunk(chunk=chunk, score=score))

        results.sort(key=lambda r: r.score, reverse=True)

        if rerank and results:
            words = _query_words(query)
            now_ms = time.time() * 1000
            for result in results:
                result.final_score = result.score * rerank_boost(result.chunk, words, now_ms)
            results.sort(key=lambda r: r.rank_score, reverse=True)

        final = results[:limit]
        self.query_cache.put(key, final)
        return final

    async def _embed_query(self, query: str) -> list[float]:
        try:
            vector = await asyncio.to_thread(self.embedder.embed, query)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Failed to generate query embedding: {e}") from e
        return fit_dimension(vector, self.dim)

    def find_similar(self, chunk_id: str, limit: int = DEFAULT_SIMILAR_LIMIT) -> list[ScoredChunk]:
        """Chunks most similar to a given chunk, excluding itself."""
        if not self.is_loaded:
            return []

        chunk = next((c for c in self.index if c.id == chunk_id), None)
        if chunk is None:
            return []
        source = self.get_chunk_embedding(chunk)
        if source is None:
            return []

        results: list[ScoredChunk] = []
        for other in self.index:
            if other.id == chunk_id:
                continue
            vector = self.get_chunk_embedding(other)
            if vector is None:
                continue
            score = cosine_similarity(source, vector)
            if score > SIMILAR_FLOOR:
                results.append(ScoredChunk(chunk=other, score=score))

        results.sort(key=lambda r: r.score, reverse=True)
        return results[:limit]

    def get_chunks_by_file(self, file_path: str) -> list[VaultChunk]:
        if not self.is_loaded:
            return []
        return [c for c in self.index if c.file_path == file_path]

    # -- housekeeping -----------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        if not self.is_loaded:
            return {"totalChunks": 0, "loaded": False, "cacheSize": len(self.query_cache)}

        type_counts: dict[str, int] = {}
        for chunk in self.index:
            type_counts[chunk.type.value] = type_counts.get(chunk.type.value, 0) + 1

        return {
            "totalChunks": len(self.index),
            "fileCount": len({c.file_path for c in self.index}),
            "typeCounts": type_counts,
            "loaded": True,
            "cacheSize": len(self.query_cache),
        }

    def clear_cache(self) -> None:
        self.query_cache.clear()
