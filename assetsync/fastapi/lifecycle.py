from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..clients import LibraryCache, LibraryClient
from ..config import SyncSettings
from ..fileops import LocalFileOps
from ..manager import JobManager
from ..task import WorkflowRegistry

logger = logging.getLogger("assetsync.lifecycle")

MANAGER_STATE_KEY = "assetsync_manager"


def setup_assetsync(
    app: FastAPI,
    *,
    client: LibraryClient | None = None,
    manager: JobManager | None = None,
    settings: SyncSettings | None = None,
    workflows: WorkflowRegistry | None = None,
    cache: LibraryCache | None = None,
    file_ops: LocalFileOps | None = None,
    include_router: bool = True,
    prefix: str = "",
    shutdown_grace_seconds: float = 5.0,
) -> JobManager:
    """Setup assetsync in a FastAPI application."""
    if manager is None:
        if client is None:
            raise ValueError("Provide `manager` or `client`")
        manager = JobManager(
            client,
            settings=settings,
            workflows=workflows,
            cache=cache,
            file_ops=file_ops,
        )
    setattr(app.state, MANAGER_STATE_KEY, manager)

    @asynccontextmanager
    async def _lifespan(app_: FastAPI):
        logger.info(
            f"assetsync ready: workflows={[f.value for f in manager.workflows.families()]}"
        )
        try:
            yield
        finally:
            logger.info("Shutting down assetsync...")
            try:
                await manager.shutdown(grace_seconds=shutdown_grace_seconds)
            except Exception:
                logger.exception("Failed to shut down job manager")
            logger.info("assetsync shutdown complete")

    # Compose with existing lifespan
    if app.router.lifespan_context is None:
        app.router.lifespan_context = _lifespan
    else:
        existing = app.router.lifespan_context

        @asynccontextmanager
        async def _composed(app_: FastAPI):
            async with existing(app_):
                async with _lifespan(app_):
                    yield

        app.router.lifespan_context = _composed

    if include_router:
        from .router import get_router

        app.include_router(get_router(prefix), prefix=prefix)

    return manager
