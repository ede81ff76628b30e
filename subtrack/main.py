"""
FastAPI application factory
"""
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.responses import Response

from subtrack.config import get_settings
from subtrack.infrastructure.db.session import Base, check_db_connection, get_session_factory
from subtrack.infrastructure.realtime import ChangeFeed
from subtrack.infrastructure.remote_store import RemoteStore, RemoteStoreError, RowNotFoundError
from subtrack.infrastructure.storage import BlobStorage
from subtrack.application.scheduler import start_scheduler, shutdown_scheduler
from subtrack.application.workspace import WorkspaceRegistry
from subtrack.api.v1 import auth, subscriptions, categories, notifications, dashboard, profile

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class ErrorLoggingMiddleware(BaseHTTPMiddleware):
    """Catches everything the routes did not, including sync routes."""

    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            tb_str = traceback.format_exc()
            logger.error("\n%s\nERROR on %s %s\n%s%s", "=" * 60, request.method, request.url.path, tb_str, "=" * 60)
            return Response(content=f"Internal Server Error: {exc}", status_code=500)


def create_app(
    session_factory: sessionmaker | None = None,
    storage: BlobStorage | None = None,
) -> FastAPI:
    """
    Application factory

    Args:
        session_factory: defaults to the engine built from DATABASE_URL
        storage: blob storage client; built from settings when storage is configured
    """
    settings = get_settings()
    session_factory = session_factory or get_session_factory()
    if storage is None and settings.storage_enabled:
        storage = BlobStorage.from_settings()

    feed = ChangeFeed()
    store = RemoteStore(session_factory, feed)
    registry = WorkspaceRegistry(store, feed)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        Base.metadata.create_all(session_factory.kw["bind"])
        if settings.SCHEDULER_ENABLED:
            start_scheduler(store)
        yield
        registry.close_all()
        shutdown_scheduler()

    app = FastAPI(
        title="SubTrack",
        debug=settings.DEBUG,
        lifespan=lifespan,
    )

    app.state.session_factory = session_factory
    app.state.feed = feed
    app.state.remote_store = store
    app.state.registry = registry
    app.state.storage = storage

    app.add_middleware(ErrorLoggingMiddleware)
    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.SECRET_KEY
    )

    @app.exception_handler(RowNotFoundError)
    async def row_not_found(request: Request, exc: RowNotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(RemoteStoreError)
    async def remote_store_failed(request: Request, exc: RemoteStoreError):
        logger.error("Remote store error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    app.include_router(auth.router)
    app.include_router(subscriptions.router)
    app.include_router(categories.router)
    app.include_router(notifications.router)
    app.include_router(dashboard.router)
    app.include_router(profile.router)

    # Health checks
    @app.get("/health", response_class=PlainTextResponse, tags=["system"])
    def health():
        """Health check endpoint"""
        return "ok"

    @app.get("/ready", response_class=PlainTextResponse, tags=["system"])
    def ready():
        """Readiness check endpoint (database reachable)"""
        try:
            check_db_connection(session_factory)
        except SQLAlchemyError:
            logger.exception("Readiness check failed")
            return PlainTextResponse("database unavailable", status_code=503)
        return "ok"

    return app


# Create app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "subtrack.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
