import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .routers.companion import router as companion_router
from .routers.journal import router as journal_router
from .routers.tasks import router as tasks_router
from .workspace import Workspace

logger = logging.getLogger(__name__)


def create_app(workspace: Optional[Workspace] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.workspace.reconciler.start()
        try:
            yield
        finally:
            await app.state.workspace.reconciler.stop()

    app = FastAPI(title="Headspace Companion Core", version="0.1.0", lifespan=lifespan)
    app.state.workspace = workspace or Workspace()

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/reset")
    async def reset() -> dict[str, list[str]]:
        removed = app.state.workspace.wipe()
        logger.info("Removed %s application keys", len(removed))
        return {"removed": removed}

    app.include_router(journal_router)
    app.include_router(tasks_router)
    app.include_router(companion_router)
    return app


app = create_app()
