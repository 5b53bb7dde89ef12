"""Service container for the vault index.

One embedder, one IndexManager and one SearchEngine are built at startup
and handed to whatever needs them (HTTP routes, the CLI).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from lumina.config import LuminaSettings, load_settings
from lumina.utils.paths import get_index_dir
from lumina.vault.embedder import Embedder, SentenceTransformerEmbedder
from lumina.vault.indexer import IndexManager
from lumina.vault.search import SearchEngine

logger = logging.getLogger(__name__)


@dataclass
class VaultServices:
    """Long-lived vault services sharing one embedder and index directory."""

    settings: LuminaSettings
    embedder: Embedder
    indexer: IndexManager
    search: SearchEngine


def create_services(
    settings: LuminaSettings | None = None,
    embedder: Embedder | None = None,
) -> VaultServices:
    """Build the vault services and load the search index.

    The persisted index is validated and the verdict logged; rebuilding an
    invalid index is left to the caller.
    """
    settings = settings or load_settings()
    embedder = embedder or SentenceTransformerEmbedder(settings.model)
    index_dir = get_index_dir(settings.data_path)

    indexer = IndexManager(
        index_dir,
        embedder,
        dim=settings.embedding_dim,
        batch_size=settings.batch_size,
    )
    search = SearchEngine(
        index_dir,
        embedder,
        dim=settings.embedding_dim,
        cache_size=settings.cache_size,
    )

    verdict = indexer.validate_index()
    if not verdict.valid:
        logger.info("Vault index not usable yet (%s)", verdict.reason)
    search.load_index()

    return VaultServices(settings=settings, embedder=embedder, indexer=indexer, search=search)
