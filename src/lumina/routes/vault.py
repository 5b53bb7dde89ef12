"""Vault indexing and search endpoints."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from lumina.models.requests import (
    VaultIndexFileRequest,
    VaultIndexRequest,
    VaultRebuildRequest,
    VaultSearchRequest,
    VaultSimilarRequest,
)
from lumina.models.responses import (
    StatusResponse,
    VaultIndexFileResponse,
    VaultIndexResponse,
    VaultSearchResponse,
    VaultSearchResult,
    VaultSimilarResponse,
    VaultStatsResponse,
    VaultValidateResponse,
)
from lumina.services import VaultServices
from lumina.vault.errors import IndexBusyError
from lumina.vault.events import ProgressStream
from lumina.vault.schema import IndexRunResult
from lumina.vault.search import SearchFilters

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vault")


def get_services(request: Request) -> VaultServices:
    return request.app.state.vault


def _vault_path(services: VaultServices, requested: str | None) -> str | None:
    return requested or services.settings.vault_path


def _index_response(result: IndexRunResult) -> VaultIndexResponse:
    return VaultIndexResponse(
        success=result.success,
        queued=result.queued,
        stats=result.stats.to_dict() if result.stats else None,
    )


@router.post("/index", response_model=VaultIndexResponse)
async def index_vault_endpoint(
    req: VaultIndexRequest,
    services: VaultServices = Depends(get_services),
) -> VaultIndexResponse:
    """Index the vault, then reload the search engine."""
    vault_path = _vault_path(services, req.vault_path)
    if not vault_path:
        return VaultIndexResponse(success=False, error="No vault path configured")

    try:
        result = await services.indexer.index_vault(vault_path, force=req.force)
    except Exception as e:
        logger.exception("Vault indexing failed")
        return VaultIndexResponse(success=False, error=str(e))

    if not result.queued:
        await asyncio.to_thread(services.search.reload)
    return _index_response(result)


@router.post("/index/stream")
async def index_vault_stream(
    req: VaultIndexRequest,
    services: VaultServices = Depends(get_services),
) -> StreamingResponse:
    """Index the vault, streaming progress events via SSE."""
    vault_path = _vault_path(services, req.vault_path)
    stream = ProgressStream()

    async def event_generator() -> AsyncIterator[str]:
        if not vault_path:
            yield f"event: error\ndata: {json.dumps({'error': 'No vault path configured'})}\n\n"
            return

        task = asyncio.create_task(
            services.indexer.index_vault(vault_path, force=req.force, progress=stream)
        )
        try:
            async for event in stream:
                yield f"event: progress\ndata: {json.dumps(event.to_dict())}\n\n"
            result = await task
        except asyncio.CancelledError:
            stream.cancel()
            raise
        except Exception as e:
            logger.exception("Vault indexing failed")
            yield f"event: error\ndata: {json.dumps({'error': str(e)})}\n\n"
            return

        await asyncio.to_thread(services.search.reload)
        yield f"event: done\ndata: {json.dumps(result.to_dict())}\n\n"

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )


@router.post("/rebuild", response_model=VaultIndexResponse)
async def rebuild_index_endpoint(
    req: VaultRebuildRequest,
    services: VaultServices = Depends(get_services),
) -> VaultIndexResponse:
    """Back up, clear and fully rebuild the index."""
    vault_path = _vault_path(services, req.vault_path)
    if not vault_path:
        return VaultIndexResponse(success=False, error="No vault path configured")

    try:
        result = await services.indexer.rebuild_index(vault_path)
    except IndexBusyError as e:
        return VaultIndexResponse(success=False, error=str(e))
    except Exception as e:
        logger.exception("Vault rebuild failed")
        return VaultIndexResponse(success=False, error=str(e))

    await asyncio.to_thread(services.search.reload)
    return _index_response(result)


@router.post("/index-file", response_model=VaultIndexFileResponse)
async def index_file_endpoint(
    req: VaultIndexFileRequest,
    services: VaultServices = Depends(get_services),
) -> VaultIndexFileResponse:
    """Index (or re-index) a single file."""
    try:
        result = await services.indexer.index_file(req.file_path, force=req.force)
    except Exception as e:
        logger.warning("Indexing %s failed: %s", req.file_path, e)
        return VaultIndexFileResponse(success=False, error=str(e))

    if result.indexed:
        await asyncio.to_thread(services.search.reload)
    return VaultIndexFileResponse(
        success=True,
        indexed=result.indexed,
        reason=result.reason,
        chunk_count=result.chunk_count,
    )


@router.get("/stats", response_model=VaultStatsResponse)
async def index_stats_endpoint(services: VaultServices = Depends(get_services)) -> VaultStatsResponse:
    """Indexer statistics."""
    return VaultStatsResponse(stats=await asyncio.to_thread(services.indexer.get_stats))


@router.get("/validate", response_model=VaultValidateResponse)
async def validate_index_endpoint(services: VaultServices = Depends(get_services)) -> VaultValidateResponse:
    """Check the persisted index without repairing it."""
    verdict = await asyncio.to_thread(services.indexer.validate_index)
    return VaultValidateResponse(valid=verdict.valid, reason=verdict.reason, error=verdict.error)


@router.post("/search", response_model=VaultSearchResponse)
async def search_endpoint(
    req: VaultSearchRequest,
    services: VaultServices = Depends(get_services),
) -> VaultSearchResponse:
    """Search the vault."""
    settings = services.settings
    filters = SearchFilters(
        file_path=req.filters.file_path,
        file_type=req.filters.file_type,
        type=req.filters.type,
    )
    results = await services.search.search(
        req.query,
        threshold=req.threshold if req.threshold is not None else settings.search_threshold,
        limit=req.limit or settings.search_limit,
        filters=filters,
        rerank=req.rerank,
    )
    return VaultSearchResponse(
        success=True,
        query=req.query,
        results=[VaultSearchResult.from_scored(r) for r in results],
    )


@router.post("/similar", response_model=VaultSimilarResponse)
async def similar_endpoint(
    req: VaultSimilarRequest,
    services: VaultServices = Depends(get_services),
) -> VaultSimilarResponse:
    """Find chunks similar to a given chunk."""
    results = services.search.find_similar(
        req.chunk_id,
        limit=req.limit or services.settings.similar_limit,
    )
    return VaultSimilarResponse(
        success=True,
        chunk_id=req.chunk_id,
        results=[VaultSearchResult.from_scored(r) for r in results],
    )


@router.get("/search-stats", response_model=VaultStatsResponse)
async def search_stats_endpoint(services: VaultServices = Depends(get_services)) -> VaultStatsResponse:
    """Search engine statistics."""
    return VaultStatsResponse(stats=services.search.get_stats())


@router.post("/cache/clear", response_model=StatusResponse)
async def clear_cache_endpoint(services: VaultServices = Depends(get_services)) -> StatusResponse:
    """Drop cached search results."""
    services.search.clear_cache()
    return StatusResponse(message="Query cache cleared")


@router.post("/reload", response_model=StatusResponse)
async def reload_endpoint(services: VaultServices = Depends(get_services)) -> StatusResponse:
    """Reload the index into the search engine."""
    await asyncio.to_thread(services.search.reload)
    stats = services.search.get_stats()
    return StatusResponse(message=f"Loaded {stats['totalChunks']} chunks")
