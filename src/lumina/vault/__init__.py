"""Semantic vault index: chunking, vector storage, indexing and search."""

from lumina.vault.chunker import chunk_content
from lumina.vault.embedder import Embedder, SentenceTransformerEmbedder
from lumina.vault.errors import EmbeddingError, IndexBusyError, IndexValidationError, VaultError
from lumina.vault.events import IndexProgress, ProgressStream
from lumina.vault.indexer import IndexManager, scan_vault_files
from lumina.vault.schema import ChunkMetadata, ChunkType, ScoredChunk, VaultChunk
from lumina.vault.search import SearchEngine, SearchFilters, cosine_similarity

__all__ = [
    "ChunkMetadata",
    "ChunkType",
    "Embedder",
    "EmbeddingError",
    "IndexBusyError",
    "IndexManager",
    "IndexProgress",
    "IndexValidationError",
    "ProgressStream",
    "ScoredChunk",
    "SearchEngine",
    "SearchFilters",
    "SentenceTransformerEmbedder",
    "VaultChunk",
    "VaultError",
    "chunk_content",
    "cosine_similarity",
    "scan_vault_files",
]
