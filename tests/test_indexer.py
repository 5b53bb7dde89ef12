"""Tests for the vault indexer."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from lumina.vault.errors import EmbeddingError, IndexBusyError
from lumina.vault.events import ProgressStream
from lumina.vault.indexer import IndexManager, scan_vault_files
from lumina.vault.schema import EMBEDDING_DIM

from tests.conftest import GEARS_MD, FakeEmbedder

STRIDE = EMBEDDING_DIM * 4


def _file_ids(indexer: IndexManager, path: Path) -> list[str]:
    return [c.id for c in indexer.catalog.load() if c.file_path == str(path)]


class TestScanVaultFiles:
    def test_skips_hidden_ignored_and_unsupported(self, vault: Path):
        files = scan_vault_files(vault)
        names = sorted(Path(f).relative_to(vault).as_posix() for f in files)
        assert names == ["gears.md", "notes/recipes.txt", "src/utils.py"]

    def test_missing_root_is_empty(self, tmp_path: Path):
        assert scan_vault_files(tmp_path / "nope") == []


class TestIndexFile:
    @pytest.mark.asyncio
    async def test_indexes_new_file(self, indexer: IndexManager, vault: Path):
        path = vault / "gears.md"
        result = await indexer.index_file(path)
        assert result.indexed is True
        assert result.chunk_count == 2
        assert result.file_path == str(path)

        chunks = indexer.catalog.load()
        assert len(chunks) == 2
        assert [c.embedding_offset for c in chunks] == [0, STRIDE]
        assert indexer.vectors.size() == 2 * STRIDE

        state = indexer.state_store.load()
        assert state.files[str(path)].indexed is True
        assert state.files[str(path)].chunk_count == 2
        assert state.last_index_time is not None

    @pytest.mark.asyncio
    async def test_unchanged_file_skipped(self, indexer: IndexManager, embedder: FakeEmbedder,
                                          vault: Path):
        path = vault / "gears.md"
        await indexer.index_file(path)
        calls = len(embedder.calls)
        size = indexer.vectors.size()

        result = await indexer.index_file(path)
        assert result.indexed is False
        assert result.reason == "unchanged"
        assert len(embedder.calls) == calls
        assert indexer.vectors.size() == size

    @pytest.mark.asyncio
    async def test_force_reindexes_without_duplicates(self, indexer: IndexManager, vault: Path):
        path = vault / "gears.md"
        await indexer.index_file(path)
        ids = _file_ids(indexer, path)

        result = await indexer.index_file(path, force=True)
        assert result.indexed is True
        assert _file_ids(indexer, path) == ids
        assert indexer.vectors.size() == len(ids) * STRIDE

    @pytest.mark.asyncio
    async def test_modified_file_replaces_its_chunks(self, indexer: IndexManager, vault: Path):
        gears = vault / "gears.md"
        await indexer.index_file(gears)
        await indexer.index_file(vault / "src" / "utils.py")
        utils_ids = _file_ids(indexer, vault / "src" / "utils.py")

        gears.write_text(
            "# Gear Trains\n\n" + "Compound gear trains multiply the overall ratio. " * 5,
            encoding="utf-8",
        )
        result = await indexer.index_file(gears)
        assert result.indexed is True
        assert result.chunk_count == 1

        chunks = indexer.catalog.load()
        gear_chunks = [c for c in chunks if c.file_path == str(gears)]
        assert len(gear_chunks) == 1
        assert gear_chunks[0].text.startswith("# Gear Trains")
        assert _file_ids(indexer, vault / "src" / "utils.py") == utils_ids
        assert indexer.vectors.size() == len(chunks) * STRIDE
        assert [c.embedding_offset for c in chunks] == [i * STRIDE for i in range(len(chunks))]

    @pytest.mark.asyncio
    async def test_empty_file(self, indexer: IndexManager, tmp_path: Path):
        path = tmp_path / "empty.md"
        path.write_text("  \n\n ", encoding="utf-8")
        result = await indexer.index_file(path)
        assert result.indexed is False
        assert result.reason == "empty"

    @pytest.mark.asyncio
    async def test_file_without_chunks(self, indexer: IndexManager, tmp_path: Path):
        path = tmp_path / "short.md"
        path.write_text("tiny note", encoding="utf-8")
        result = await indexer.index_file(path)
        assert result.indexed is False
        assert result.reason == "no_chunks"
        assert indexer.catalog.load() == []

    @pytest.mark.asyncio
    async def test_undecodable_bytes_are_replaced(self, indexer: IndexManager, tmp_path: Path):
        path = tmp_path / "latin.txt"
        path.write_bytes(("Caf\xe9 notes: " + "espresso ratios and grind sizes. " * 3).encode("latin-1"))
        result = await indexer.index_file(path)
        assert result.indexed is True
        assert "\ufffd" in indexer.catalog.load()[0].text
        assert indexer.stats.errors == 0

        again = await indexer.index_file(path)
        assert again.reason == "unchanged"

    @pytest.mark.asyncio
    async def test_missing_file_raises_and_counts(self, indexer: IndexManager, tmp_path: Path):
        with pytest.raises(OSError):
            await indexer.index_file(tmp_path / "gone.md")
        assert indexer.stats.errors == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_persists_nothing(self, index_dir: Path, vault: Path):
        indexer = IndexManager(index_dir, FakeEmbedder(fail_on="Materials"))
        with pytest.raises(EmbeddingError):
            await indexer.index_file(vault / "gears.md")
        assert indexer.stats.errors == 1
        assert indexer.catalog.load() == []
        assert str(vault / "gears.md") not in indexer.state_store.load().files

    @pytest.mark.asyncio
    async def test_concurrent_calls_keep_every_chunk(self, indexer: IndexManager, vault: Path):
        paths = [vault / "gears.md", vault / "notes" / "recipes.txt", vault / "src" / "utils.py"]
        results = await asyncio.gather(*(indexer.index_file(p) for p in paths))
        assert all(r.indexed for r in results)

        chunks = indexer.catalog.load()
        assert len(chunks) == 6
        assert {c.file_path for c in chunks} == {str(p) for p in paths}
        assert indexer.vectors.size() == 6 * STRIDE
        assert len(indexer.state_store.load().files) == 3


class TestIndexVault:
    @pytest.mark.asyncio
    async def test_indexes_supported_files(self, indexer: IndexManager, vault: Path):
        result = await indexer.index_vault(vault)
        assert result.success is True
        assert result.queued is False
        assert result.stats.total_files == 3
        assert result.stats.indexed_files == 3
        assert result.stats.total_chunks == 6
        assert result.stats.errors == 0

        paths = {c.file_path for c in indexer.catalog.load()}
        assert str(vault / ".hidden.md") not in paths
        assert str(vault / "node_modules" / "pkg.js") not in paths

        state = json.loads(indexer.state_store.path.read_text(encoding="utf-8"))
        assert state["stats"]["totalChunks"] == 6

    @pytest.mark.asyncio
    async def test_second_run_is_incremental(self, indexer: IndexManager, embedder: FakeEmbedder,
                                             vault: Path):
        await indexer.index_vault(vault)
        calls = len(embedder.calls)
        result = await indexer.index_vault(vault)
        assert result.stats.indexed_files == 0
        assert result.stats.total_chunks == 0
        assert len(embedder.calls) == calls
        assert len(indexer.catalog.load()) == 6

    @pytest.mark.asyncio
    async def test_errors_counted_once(self, index_dir: Path, vault: Path):
        indexer = IndexManager(index_dir, FakeEmbedder(fail_on="Sourdough"))
        result = await indexer.index_vault(vault)
        assert result.success is True
        assert result.stats.errors == 1
        assert result.stats.indexed_files == 2

    @pytest.mark.asyncio
    async def test_progress_callback(self, index_dir: Path, embedder: FakeEmbedder, vault: Path):
        indexer = IndexManager(index_dir, embedder, batch_size=1)
        events = []
        await indexer.index_vault(vault, on_progress=events.append)
        assert [e.processed_count for e in events] == [1, 2, 3]
        assert all(e.total_count == 3 for e in events)
        assert events[-1].progress == 100.0
        assert events[-1].chunk_count == 6

    @pytest.mark.asyncio
    async def test_progress_stream_closed_after_run(self, index_dir: Path,
                                                    embedder: FakeEmbedder, vault: Path):
        indexer = IndexManager(index_dir, embedder, batch_size=2)
        stream = ProgressStream()
        await indexer.index_vault(vault, progress=stream)
        assert stream.closed
        events = [e async for e in stream]
        assert [e.processed_count for e in events] == [2, 3]

    @pytest.mark.asyncio
    async def test_blank_root_rejected(self, indexer: IndexManager):
        with pytest.raises(ValueError):
            await indexer.index_vault("  ")

    @pytest.mark.asyncio
    async def test_request_during_run_is_queued(self, indexer: IndexManager, vault: Path):
        first = asyncio.create_task(indexer.index_vault(vault))
        await asyncio.sleep(0)
        assert indexer.is_indexing

        queued_events = []
        second = await indexer.index_vault(vault, force=True, on_progress=queued_events.append)
        assert second.queued is True
        assert second.to_dict() == {"queued": True}

        result = await first
        assert result.success is True
        # the pending request ran before the active run finished
        assert queued_events
        assert queued_events[-1].indexed_count == 3
        assert not indexer.is_indexing
        assert len(indexer.catalog.load()) == 6

    @pytest.mark.asyncio
    async def test_later_request_replaces_pending(self, indexer: IndexManager, vault: Path):
        first = asyncio.create_task(indexer.index_vault(vault))
        await asyncio.sleep(0)

        replaced, latest = [], []
        stream = ProgressStream()
        await indexer.index_vault(vault, on_progress=replaced.append, progress=stream)
        await indexer.index_vault(vault, force=True, on_progress=latest.append)
        assert stream.closed

        await first
        assert replaced == []
        assert latest

    @pytest.mark.asyncio
    async def test_deleted_files_pruned(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        (vault / "notes" / "recipes.txt").unlink()

        result = await indexer.index_vault(vault)
        assert result.stats.pruned_files == 1
        paths = {c.file_path for c in indexer.catalog.load()}
        assert str(vault / "notes" / "recipes.txt") not in paths
        assert len(indexer.catalog.load()) == 4
        assert indexer.vectors.size() == 4 * STRIDE
        assert str(vault / "notes" / "recipes.txt") not in indexer.state_store.load().files

    @pytest.mark.asyncio
    async def test_version_mismatch_forces_full_rebuild(self, indexer: IndexManager,
                                                        vault: Path):
        await indexer.index_vault(vault)
        state = indexer.state_store.load()
        state.version = "0.9.0"
        indexer.state_store.save(state)

        result = await indexer.index_vault(vault)
        assert result.stats.indexed_files == 3
        assert len(indexer.catalog.load()) == 6
        assert indexer.state_store.load().version == "1.0.0"
        assert (indexer.index_dir / "vault_index.jsonl.bak").exists()
        assert (indexer.index_dir / "embeddings.bin.bak").exists()


class TestPruneDeleted:
    @pytest.mark.asyncio
    async def test_nothing_to_prune(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        assert await indexer.prune_deleted(vault) == 0

    @pytest.mark.asyncio
    async def test_prunes_only_under_root(self, indexer: IndexManager, vault: Path,
                                          tmp_path: Path):
        other = tmp_path / "elsewhere"
        other.mkdir()
        outside = other / "outside.md"
        outside.write_text(GEARS_MD, encoding="utf-8")
        await indexer.index_file(outside)
        await indexer.index_file(vault / "gears.md")

        outside.unlink()
        (vault / "gears.md").unlink()
        assert await indexer.prune_deleted(vault) == 1
        files = indexer.state_store.load().files
        assert str(outside) in files
        assert str(vault / "gears.md") not in files


class TestRebuildIndex:
    @pytest.mark.asyncio
    async def test_rebuild_backs_up_and_reindexes(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        before = [c.id for c in indexer.catalog.load()]

        result = await indexer.rebuild_index(vault)
        assert result.success is True
        assert result.stats.indexed_files == 3
        assert (indexer.index_dir / "vault_index.jsonl.bak").exists()
        assert (indexer.index_dir / "embeddings.bin.bak").exists()
        assert sorted(c.id for c in indexer.catalog.load()) == sorted(before)
        assert indexer.validate_index().valid

    @pytest.mark.asyncio
    async def test_index_during_rebuild_is_queued(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        rebuild = asyncio.create_task(indexer.rebuild_index(vault))
        await asyncio.sleep(0)
        assert indexer.is_indexing

        queued = await indexer.index_vault(vault)
        assert queued.queued is True

        result = await rebuild
        assert result.queued is False
        assert result.success is True
        assert result.stats.indexed_files == 3
        assert len(indexer.catalog.load()) == 6
        assert indexer.validate_index().valid

    @pytest.mark.asyncio
    async def test_rebuild_while_running_is_busy(self, indexer: IndexManager, vault: Path):
        task = asyncio.create_task(indexer.index_vault(vault))
        await asyncio.sleep(0)
        with pytest.raises(IndexBusyError):
            await indexer.rebuild_index(vault)
        await task


class TestValidateIndex:
    def test_missing(self, indexer: IndexManager):
        result = indexer.validate_index()
        assert result.valid is False
        assert result.reason == "missing"

    @pytest.mark.asyncio
    async def test_valid_after_indexing(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        assert indexer.validate_index().to_dict() == {"valid": True}

    @pytest.mark.asyncio
    async def test_version_mismatch(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        state = indexer.state_store.load()
        state.version = "0.1.0"
        indexer.state_store.save(state)
        assert indexer.validate_index().reason == "version_mismatch"

    @pytest.mark.asyncio
    async def test_size_mismatch(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        indexer.vectors.save(indexer.vectors.load()[:-2 * STRIDE])
        assert indexer.validate_index().reason == "size_mismatch"

    @pytest.mark.asyncio
    async def test_small_drift_tolerated(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        indexer.vectors.save(indexer.vectors.load()[:-100])
        assert indexer.validate_index().valid is True

    @pytest.mark.asyncio
    async def test_validation_does_not_repair(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        indexer.vectors.save(b"")
        indexer.validate_index()
        assert indexer.vectors.size() == 0


class TestGetStats:
    @pytest.mark.asyncio
    async def test_stats_after_run(self, indexer: IndexManager, vault: Path):
        await indexer.index_vault(vault)
        stats = indexer.get_stats()
        assert stats["indexSize"] == 6
        assert stats["totalChunks"] == 6
        assert stats["stateStats"]["indexedFiles"] == 3
        assert stats["lastIndexTime"] is not None

    def test_stats_before_any_run(self, indexer: IndexManager):
        stats = indexer.get_stats()
        assert stats["indexSize"] == 0
        assert stats["stateStats"] == {}
