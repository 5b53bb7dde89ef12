"""Pydantic request models for the Lumina API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class VaultIndexRequest(BaseModel):
    """Request to index the vault."""
    vault_path: str | None = Field(default=None, description="Vault root (defaults to configured vault_path)")
    force: bool = Field(default=False, description="Re-index files even if unchanged")


class VaultRebuildRequest(BaseModel):
    """Request to rebuild the index from scratch."""
    vault_path: str | None = Field(default=None, description="Vault root (defaults to configured vault_path)")


class VaultIndexFileRequest(BaseModel):
    """Request to index a single file."""
    file_path: str = Field(..., description="Path of the file to index")
    force: bool = Field(default=False, description="Re-index even if unchanged")


class SearchFiltersModel(BaseModel):
    """Structural search filters."""
    file_path: str | None = Field(default=None, description="Case-insensitive regex matched against the file path")
    file_type: str | None = Field(default=None, description="File extension, with or without the dot")
    type: str | None = Field(default=None, description="Chunk type (function, code, section, paragraph, generic)")


class VaultSearchRequest(BaseModel):
    """Request to search the vault."""
    query: str = Field(..., description="Natural language search query")
    threshold: float | None = Field(default=None, description="Minimum cosine similarity")
    limit: int | None = Field(default=None, ge=1, le=200, description="Maximum results to return")
    filters: SearchFiltersModel = Field(default_factory=SearchFiltersModel)
    rerank: bool = Field(default=True, description="Apply lexical/recency/filename boosts")


class VaultSimilarRequest(BaseModel):
    """Request for chunks similar to a given chunk."""
    chunk_id: str = Field(..., description="ID of the reference chunk")
    limit: int | None = Field(default=None, ge=1, le=200, description="Maximum results to return")
