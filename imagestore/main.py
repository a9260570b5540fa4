"""FastAPI application factory for the image store service."""

from __future__ import annotations

import inspect
import logging

from fastapi import FastAPI

from .api import router
from .config import Settings, get_settings
from .storage import PathLocks

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    logging.basicConfig(level=logging.INFO)
    app = FastAPI(
        title="Image Store",
        description="File store for images with lazily rendered, URL-addressed variants.",
        version="0.1.0",
    )
    app.include_router(router)
    app.state.path_locks = PathLocks()

    async def _resolve_settings() -> Settings:
        override = app.dependency_overrides.get(get_settings)
        if override is None:
            return get_settings()

        candidate = override()
        if inspect.isawaitable(candidate):
            return await candidate
        return candidate

    @app.on_event("startup")
    async def prepare_storage_root() -> None:
        """Make sure the storage root exists before serving requests."""
        settings = await _resolve_settings()
        settings.store_root_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Image store ready",
            extra={
                "root_dir": str(settings.store_root_dir.resolve()),
                "fan_out": settings.store_fan_out,
                "source_filename": settings.store_source_filename,
            },
        )

    return app


app = create_app()
