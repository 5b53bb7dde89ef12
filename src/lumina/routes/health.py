"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter

from lumina import __version__
from lumina.models.responses import HealthResponse

router = APIRouter()


def _detect_capabilities() -> list[str]:
    """Detect which optional dependencies are available."""
    caps = []
    try:
        import sentence_transformers  # noqa: F401
        caps.append("embeddings")
    except Exception:
        pass
    try:
        import uvicorn  # noqa: F401
        caps.append("server")
    except Exception:
        pass
    return caps


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health status and available capabilities."""
    return HealthResponse(
        status="ok",
        version=__version__,
        capabilities=_detect_capabilities(),
    )
