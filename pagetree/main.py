"""Pagetree FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pagetree.config import Settings
from pagetree.content.router import get_content_service
from pagetree.content.router import router as content_router
from pagetree.content.service import ContentService
from pagetree.db.connection import Database
from pagetree.events.notifier import LoggingNotifier
from pagetree.tree.router import get_tree_service, workspaces_router
from pagetree.tree.router import router as nodes_router
from pagetree.tree.service import TreeService

logger = logging.getLogger(__name__)

settings = Settings.from_env()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage database lifecycle and service wiring."""
    db = await Database.connect(settings.db_path, lock_timeout=settings.lock_timeout)
    notifier = LoggingNotifier()

    tree_service = TreeService(db, notifier=notifier, max_depth=settings.max_depth)
    app.dependency_overrides[get_tree_service] = lambda: tree_service

    content_service = ContentService(db, notifier=notifier, max_depth=settings.max_depth)
    app.dependency_overrides[get_content_service] = lambda: content_service

    app.state.db = db
    logger.info("Pagetree started (db=%s)", settings.db_path)
    yield

    await db.close()


app = FastAPI(
    title="Pagetree",
    description="Hierarchical workspace, section and page tree with ordered content blocks",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(workspaces_router)
app.include_router(nodes_router)
app.include_router(content_router)


@app.get("/api/health")
async def health() -> dict:
    return {"status": "ok", "version": "0.1.0"}
