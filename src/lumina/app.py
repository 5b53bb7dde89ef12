"""FastAPI application factory for Lumina."""

from __future__ import annotations

import os

from fastapi import FastAPI

from lumina import __version__
from lumina.routes import health, vault
from lumina.services import VaultServices, create_services


def create_app(services: VaultServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    When no services are passed they are built from the loaded settings.
    CORS is enabled when LUMINA_CORS_ORIGINS is set (comma-separated).
    """
    app = FastAPI(
        title="Lumina",
        version=__version__,
        description="Semantic vault indexing and search",
    )

    cors_env = os.environ.get("LUMINA_CORS_ORIGINS")
    if cors_env:
        from starlette.middleware.cors import CORSMiddleware

        origins = [o.strip() for o in cors_env.split(",")]
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.state.vault = services or create_services()

    app.include_router(health.router)
    app.include_router(vault.router)

    return app
