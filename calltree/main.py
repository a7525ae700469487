"""calltree FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from calltree import __version__
from calltree.config import load_settings
from calltree.trees.router import get_tree_service
from calltree.trees.router import router as tree_router
from calltree.trees.schemas import HealthResponse
from calltree.trees.service import TreeService

logger = logging.getLogger(__name__)

# .env is read before settings so CALLTREE_* overrides apply to both.
load_dotenv()
settings = load_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the session on startup; flush pending writes on shutdown."""
    logging.basicConfig(
        level=settings.log_level_value,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    service = await TreeService.create(settings.data_dir, flush_delay=settings.flush_delay)
    app.dependency_overrides[get_tree_service] = lambda: service
    logger.info("Session directory: %s", settings.sessions_dir)
    yield

    await service.shutdown()
    app.dependency_overrides.pop(get_tree_service, None)


app = FastAPI(
    title="calltree",
    description=(
        "Task tree where finishing a task returns focus to its parent,"
        " with undo/redo and a per-session audit trail"
    ),
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tree_router)


@app.get("/api/health")
async def health(service: TreeService = Depends(get_tree_service)) -> HealthResponse:
    return HealthResponse(status="ok", version=__version__, session_id=service.store.session_id)
