"""Chunk catalog (``vault_index.jsonl``) and index state (``vault_state.json``)."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from pathlib import Path

from lumina.vault.schema import INDEX_VERSION, IndexState, VaultChunk

logger = logging.getLogger(__name__)


class IndexCatalog:
    """Ordered chunk records, one JSON object per line.

    Catalog order defines vector store offsets, so the catalog is always
    rewritten together with the vector file.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> list[VaultChunk]:
        """Load all records. A missing or unreadable catalog is empty."""
        if not self.path.exists():
            return []
        try:
            content = self.path.read_text(encoding="utf-8")
            return [
                VaultChunk.from_dict(json.loads(line))
                for line in content.splitlines()
                if line.strip()
            ]
        except (OSError, ValueError, KeyError) as e:
            logger.error("Failed to load index catalog %s: %s", self.path, e)
            return []

    def save(self, chunks: Iterable[VaultChunk]) -> None:
        """Overwrite the catalog; every line, including the last, ends in a newline."""
        lines = [json.dumps(chunk.to_dict(), ensure_ascii=False) for chunk in chunks]
        text = "".join(line + "\n" for line in lines)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(text, encoding="utf-8")

    def clear(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text("", encoding="utf-8")

    @staticmethod
    def filter_out_file(chunks: Sequence[VaultChunk], file_path: str) -> list[VaultChunk]:
        """Drop every record of one file, keeping the rest in order."""
        return [c for c in chunks if c.file_path != file_path]


class StateStore:
    """The single persisted IndexState record."""

    def __init__(self, path: Path, version: str = INDEX_VERSION) -> None:
        self.path = path
        self.version = version

    def exists(self) -> bool:
        return self.path.exists()

    def default(self) -> IndexState:
        return IndexState(version=self.version)

    def load(self) -> IndexState:
        """Load state, falling back to a fresh default on any read error."""
        if not self.path.exists():
            return self.default()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return IndexState.from_dict(data)
        except (OSError, ValueError, AttributeError) as e:
            logger.warning("Failed to load index state, using defaults: %s", e)
            return self.default()

    def save(self, state: IndexState) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")

    def clear(self) -> None:
        self.save(self.default())
