"""Pydantic response models for the Lumina API."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from lumina.vault.schema import ScoredChunk


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str
    capabilities: list[str] = Field(default_factory=list)


class VaultSearchResult(BaseModel):
    """A single ranked chunk."""
    id: str
    file_path: str
    chunk_index: int
    text: str
    start: int
    end: int
    type: str
    heading: str | None = None
    score: float
    final_score: float | None = None

    @classmethod
    def from_scored(cls, result: ScoredChunk) -> VaultSearchResult:
        chunk = result.chunk
        return cls(
            id=chunk.id,
            file_path=chunk.file_path,
            chunk_index=chunk.chunk_index,
            text=chunk.text,
            start=chunk.start,
            end=chunk.end,
            type=chunk.type.value,
            heading=chunk.metadata.heading,
            score=result.score,
            final_score=result.final_score,
        )


class VaultSearchResponse(BaseModel):
    """Response from vault search."""
    success: bool
    query: str
    results: list[VaultSearchResult] = Field(default_factory=list)
    error: str | None = None


class VaultSimilarResponse(BaseModel):
    """Response from a similar-chunks lookup."""
    success: bool
    chunk_id: str
    results: list[VaultSearchResult] = Field(default_factory=list)


class VaultIndexResponse(BaseModel):
    """Response from vault indexing or rebuild."""
    success: bool
    queued: bool = False
    stats: dict[str, Any] | None = None
    error: str | None = None


class VaultIndexFileResponse(BaseModel):
    """Response from single-file indexing."""
    success: bool
    indexed: bool = False
    reason: str | None = None
    chunk_count: int = 0
    error: str | None = None


class VaultValidateResponse(BaseModel):
    """Index validation verdict."""
    valid: bool
    reason: str | None = None
    error: str | None = None


class VaultStatsResponse(BaseModel):
    """Index or search statistics."""
    success: bool = True
    stats: dict[str, Any] = Field(default_factory=dict)


class StatusResponse(BaseModel):
    """Plain acknowledgement."""
    success: bool = True
    message: str | None = None
