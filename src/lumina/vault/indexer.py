"""Vault indexer: scan, change-detect, chunk, embed and persist.

The indexer is the only writer of the catalog, vector file and state file.
All three are rewritten under a single asyncio lock, so concurrent
``index_file`` calls cannot interleave their read-modify-write cycles.
Embedding runs outside the lock in worker threads.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from lumina.vault.catalog import IndexCatalog, StateStore
from lumina.vault.changes import checksum_file, should_reindex
from lumina.vault.chunker import chunk_content
from lumina.vault.embedder import Embedder, fit_dimension
from lumina.vault.errors import EmbeddingError, IndexBusyError, IndexValidationError
from lumina.vault.events import IndexProgress, ProgressStream
from lumina.vault.schema import (
    BYTES_PER_FLOAT,
    CATALOG_FILE,
    EMBEDDING_DIM,
    INDEX_VERSION,
    STATE_FILE,
    VECTORS_FILE,
    ChunkMetadata,
    FileIndexResult,
    IndexRunResult,
    IndexState,
    IndexStats,
    SourceFileState,
    ValidationResult,
    VaultChunk,
)
from lumina.vault.store import VectorStore, encode_vectors

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({
    ".md", ".txt", ".js", ".ts", ".jsx", ".tsx", ".json",
    ".py", ".java", ".cpp", ".c", ".html", ".css",
})
IGNORED_NAMES = frozenset({"node_modules", ".git"})
DEFAULT_BATCH_SIZE = 5
SIZE_TOLERANCE_BYTES = 1000

ProgressCallback = Callable[[IndexProgress], Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _normalize(path: str | Path) -> str:
    return os.path.abspath(os.path.expanduser(str(path)))


def scan_vault_files(
    root: str | Path,
    extensions: frozenset[str] = SUPPORTED_EXTENSIONS,
) -> list[str]:
    """Recursively list indexable files under root.

    Hidden entries, ``node_modules`` and ``.git`` are skipped. Directories
    that cannot be read are logged and skipped.
    """
    files: list[str] = []

    def scan_dir(directory: str) -> None:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Error scanning %s: %s", directory, e)
            return

        for entry in entries:
            if entry.name.startswith(".") or entry.name in IGNORED_NAMES:
                continue
            if entry.is_dir(follow_symlinks=False):
                scan_dir(entry.path)
            elif entry.is_file() and os.path.splitext(entry.name)[1].lower() in extensions:
                files.append(entry.path)

    scan_dir(str(root))
    return files


def _find_stale(state: IndexState, root: Path, seen: set[str]) -> list[str]:
    """State entries under root that were not scanned and no longer exist."""
    return [
        path for path in state.files
        if path not in seen
        and Path(path).is_relative_to(root)
        and not Path(path).exists()
    ]


@dataclass
class _RunRequest:
    root: str
    force: bool = False
    on_progress: ProgressCallback | None = None
    progress: ProgressStream | None = None


class IndexManager:
    """Builds and maintains the persisted vault index."""

    def __init__(
        self,
        index_dir: Path,
        embedder: Embedder,
        dim: int = EMBEDDING_DIM,
        batch_size: int = DEFAULT_BATCH_SIZE,
        version: str = INDEX_VERSION,
    ) -> None:
        self.index_dir = Path(index_dir)
        self.embedder = embedder
        self.dim = dim
        self.batch_size = batch_size
        self.version = version

        self.catalog = IndexCatalog(self.index_dir / CATALOG_FILE)
        self.vectors = VectorStore(self.index_dir / VECTORS_FILE, dim)
        self.state_store = StateStore(self.index_dir / STATE_FILE, version)

        self.stats = IndexStats()
        self._write_lock = asyncio.Lock()
        self._running = False
        self._pending: _RunRequest | None = None

    @property
    def is_indexing(self) -> bool:
        return self._running

    # -- validation -------------------------------------------------------

    def validate_index(self) -> ValidationResult:
        """Diagnose the persisted index. Remediation is left to the caller."""
        try:
            self._check_index()
        except IndexValidationError as e:
            logger.info("Index invalid (%s), will rebuild on next index", e.reason)
            return ValidationResult(valid=False, reason=e.reason)
        except (OSError, ValueError) as e:
            logger.error("Validation error: %s", e)
            return ValidationResult(valid=False, reason="validation_error", error=str(e))
        return ValidationResult(valid=True)

    def _check_index(self) -> None:
        if not (self.catalog.exists() and self.vectors.exists() and self.state_store.exists()):
            raise IndexValidationError("missing")

        state = self.state_store.load()
        if state.version != self.version:
            raise IndexValidationError("version_mismatch")

        expected = len(self.catalog.load()) * self.dim * BYTES_PER_FLOAT
        actual = self.vectors.size()
        if abs(expected - actual) > SIZE_TOLERANCE_BYTES:
            raise IndexValidationError(
                "size_mismatch",
                f"Embeddings size mismatch: expected {expected} bytes, found {actual}",
            )

    # -- single file ------------------------------------------------------

    async def index_file(self, file_path: str | Path, force: bool = False) -> FileIndexResult:
        """Index one file, replacing all of its previous chunks.

        Raises on read or embedding failure; nothing is persisted for the
        file in that case.
        """
        path = _normalize(file_path)
        try:
            return await self._index_file(path, force)
        except Exception as e:
            self.stats.errors += 1
            logger.error("Failed to index %s: %s", path, e)
            raise

    async def _index_file(self, path: str, force: bool) -> FileIndexResult:
        stat = await asyncio.to_thread(os.stat, path)
        mtime = stat.st_mtime * 1000
        checksum = await asyncio.to_thread(checksum_file, path)

        state = await asyncio.to_thread(self.state_store.load)
        if not should_reindex(path, mtime, checksum, state, force):
            return FileIndexResult(indexed=False, reason="unchanged")

        # Undecodable bytes become U+FFFD rather than failing the file
        content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8", errors="replace")
        if not content.strip():
            return FileIndexResult(indexed=False, reason="empty")

        metadata = ChunkMetadata(mtime=mtime, size=stat.st_size, checksum=checksum)
        chunks = chunk_content(path, content, metadata)
        if not chunks:
            return FileIndexResult(indexed=False, reason="no_chunks")

        vectors = []
        for chunk in chunks:
            vectors.append(fit_dimension(await self._embed(chunk.text), self.dim))
        new_vectors = encode_vectors(vectors, self.dim)

        file_state = SourceFileState(
            mtime=mtime,
            checksum=checksum,
            indexed=True,
            chunk_count=len(chunks),
            last_indexed=_now_ms(),
        )
        async with self._write_lock:
            await asyncio.to_thread(self._persist_file, path, chunks, new_vectors, file_state)

        return FileIndexResult(indexed=True, chunk_count=len(chunks), file_path=path)

    async def _embed(self, text: str) -> list[float]:
        try:
            vector = await asyncio.to_thread(self.embedder.embed, text)
        except EmbeddingError:
            raise
        except Exception as e:
            raise EmbeddingError(f"Embedding generation failed: {e}") from e
        return list(vector)

    def _persist_file(
        self,
        path: str,
        chunks: list[VaultChunk],
        new_vectors: bytes,
        file_state: SourceFileState,
    ) -> None:
        survivors = IndexCatalog.filter_out_file(self.catalog.load(), path)
        kept, buffer = self.vectors.rebuild_with(survivors, chunks, new_vectors)
        self.catalog.save(kept)
        self.vectors.save(buffer)

        state = self.state_store.load()
        state.files[path] = file_state
        state.version = self.version
        state.last_index_time = _now_ms()
        self.state_store.save(state)

    # -- whole vault ------------------------------------------------------

    async def index_vault(
        self,
        root: str | Path,
        force: bool = False,
        on_progress: ProgressCallback | None = None,
        progress: ProgressStream | None = None,
    ) -> IndexRunResult:
        """Index every supported file under root.

        If a run is already active the request takes the single pending
        slot (replacing any earlier pending request) and ``queued=True`` is
        returned. The active run executes the pending request before it
        finishes.
        """
        if not root or not str(root).strip():
            raise ValueError("Vault path must be a non-empty path")

        request = _RunRequest(_normalize(root), force, on_progress, progress)
        if self._running:
            logger.info("Indexing already in progress, queuing %s", request.root)
            if self._pending is not None and self._pending.progress is not None:
                self._pending.progress.close()
            self._pending = request
            return IndexRunResult(queued=True)

        return await self._run_exclusive(request)

    async def _run_exclusive(self, request: _RunRequest, reset: bool = False) -> IndexRunResult:
        # Caller has checked _running; no await may precede setting it
        self._running = True
        try:
            try:
                if reset:
                    try:
                        async with self._write_lock:
                            await asyncio.to_thread(self._reset_files)
                    except Exception:
                        if request.progress is not None:
                            request.progress.close()
                        raise
                return await self._run(request)
            finally:
                await self._drain_pending()
        finally:
            self._running = False

    async def _drain_pending(self) -> None:
        while self._pending is not None:
            request, self._pending = self._pending, None
            logger.info("Running queued index of %s", request.root)
            try:
                await self._run(request)
            except Exception:
                logger.exception("Queued indexing of %s failed", request.root)

    async def _run(self, request: _RunRequest) -> IndexRunResult:
        self.stats = IndexStats(last_index_time=_now_ms())
        force = request.force
        try:
            if await asyncio.to_thread(self._has_version_mismatch):
                logger.info("Index version mismatch, rebuilding from scratch")
                async with self._write_lock:
                    await asyncio.to_thread(self._reset_files)
                force = True

            files = await asyncio.to_thread(scan_vault_files, request.root)
            self.stats.total_files = len(files)
            logger.info("Starting index of %d files...", len(files))

            self.stats.pruned_files = await self.prune_deleted(request.root, files)

            for i in range(0, len(files), self.batch_size):
                batch = files[i:i + self.batch_size]
                await asyncio.gather(*(self._index_batch_file(f, force) for f in batch))

                event = IndexProgress(
                    processed_count=i + len(batch),
                    total_count=len(files),
                    chunk_count=self.stats.total_chunks,
                    indexed_count=self.stats.indexed_files,
                )
                if request.on_progress is not None:
                    request.on_progress(event)
                if request.progress is not None:
                    request.progress.publish(event)

            async with self._write_lock:
                await asyncio.to_thread(self._save_stats, replace(self.stats))

            logger.info(
                "Index complete: %d files, %d chunks",
                self.stats.indexed_files, self.stats.total_chunks,
            )
            return IndexRunResult(success=True, stats=self.stats)
        finally:
            if request.progress is not None:
                request.progress.close()

    async def _index_batch_file(self, path: str, force: bool) -> None:
        # index_file has already counted the error
        try:
            result = await self.index_file(path, force)
        except Exception as e:
            logger.error("Error indexing %s: %s", path, e)
            return
        if result.indexed:
            self.stats.indexed_files += 1
            self.stats.total_chunks += result.chunk_count

    def _save_stats(self, stats: IndexStats) -> None:
        state = self.state_store.load()
        state.stats = stats
        self.state_store.save(state)

    def _has_version_mismatch(self) -> bool:
        if not self.state_store.exists():
            return False
        return self.state_store.load().version != self.version

    # -- pruning ----------------------------------------------------------

    async def prune_deleted(self, root: str | Path, seen: list[str] | None = None) -> int:
        """Forget files under root that no longer exist.

        Their state entries are removed and their chunks are dropped from
        the catalog and vector store. Returns the number of files pruned.
        """
        root_path = Path(_normalize(root))
        if seen is None:
            seen = await asyncio.to_thread(scan_vault_files, root_path)
        seen_set = set(seen)

        async with self._write_lock:
            state = await asyncio.to_thread(self.state_store.load)
            stale = await asyncio.to_thread(_find_stale, state, root_path, seen_set)
            if not stale:
                return 0
            await asyncio.to_thread(self._remove_files, state, set(stale))

        logger.info("Pruned %d deleted files from index", len(stale))
        return len(stale)

    def _remove_files(self, state: IndexState, paths: set[str]) -> None:
        survivors = [c for c in self.catalog.load() if c.file_path not in paths]
        kept, buffer = self.vectors.rebuild_with(survivors, [], b"")
        self.catalog.save(kept)
        self.vectors.save(buffer)

        for path in paths:
            state.files.pop(path, None)
        self.state_store.save(state)

    # -- rebuild ----------------------------------------------------------

    async def rebuild_index(
        self,
        root: str | Path,
        on_progress: ProgressCallback | None = None,
        progress: ProgressStream | None = None,
    ) -> IndexRunResult:
        """Back up and clear the index, then force a full re-index of root."""
        if not root or not str(root).strip():
            raise ValueError("Vault path must be a non-empty path")
        if self._running:
            raise IndexBusyError("Cannot rebuild while indexing is in progress")

        logger.info("Rebuilding index from scratch...")
        request = _RunRequest(_normalize(root), True, on_progress, progress)
        return await self._run_exclusive(request, reset=True)

    def _reset_files(self) -> None:
        self._backup_files()
        self.catalog.clear()
        self.vectors.clear()
        self.state_store.clear()

    def _backup_files(self) -> None:
        for path in (self.catalog.path, self.vectors.path):
            if not path.exists():
                continue
            try:
                shutil.copyfile(path, path.with_name(path.name + ".bak"))
            except OSError as e:
                logger.warning("Backup of %s failed: %s", path, e)

    # -- stats ------------------------------------------------------------

    def get_stats(self) -> dict[str, Any]:
        state = self.state_store.load()
        return {
            **self.stats.to_dict(),
            "indexSize": len(self.catalog.load()),
            "stateStats": state.stats.to_dict() if state.stats else {},
            "lastIndexTime": state.last_index_time,
        }
