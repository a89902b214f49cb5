"""HTTP surface of SheetLens.

One ``SpreadsheetRepository`` backs every request. It opens the local store
when the server starts, which also resumes any writes left queued by a
previous run, and stops the background drain before the store closes.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import settings
from ..repository import SpreadsheetRepository
from .routes import router

_repository: Optional[SpreadsheetRepository] = None


def get_repository() -> SpreadsheetRepository:
    """Repository shared by all routes, built on first use."""
    global _repository
    if _repository is None:
        _repository = SpreadsheetRepository()
    return _repository


@asynccontextmanager
async def lifespan(app: FastAPI):
    repository = get_repository()
    await repository.initialize()
    yield
    # Lets an in-flight replay finish before the store goes away
    await repository.shutdown()


def create_app() -> FastAPI:
    """Build the app: the ``/api`` routes behind CORS for the configured origins."""
    app = FastAPI(
        title="SheetLens",
        description="Offline-first typed tables over Google Sheets",
        version=__version__,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router, prefix="/api")
    return app
