"""FastAPI application entry point."""
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from anonlink.config import Settings
from anonlink.database import create_engine, create_session_factory, init_models
from anonlink.errors import FileShareError
from anonlink.routes.auth import router as auth_router
from anonlink.routes.errors import file_share_error_handler
from anonlink.routes.files import router as files_router
from anonlink.routes.public import router as public_router
from anonlink.services.access_tokens import AccessTokenManager
from anonlink.services.blob_store import BlobStore
from anonlink.services.file_lifecycle import FileLifecycleService
from anonlink.services.identity import IdentityProvider
from anonlink.services.metadata_store import FileRecordStore
from anonlink.services.reaper import ExpiryReaper

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, wire components onto app.state, run the expiry reaper."""
    settings: Settings = app.state.settings
    engine = create_engine(settings.DATABASE_URL)
    await init_models(engine)
    session_factory = create_session_factory(engine)

    blobs = BlobStore(settings.FILE_STORAGE_PATH)
    store = FileRecordStore(session_factory)
    tokens = AccessTokenManager(store, max_attempts=settings.TOKEN_ISSUE_ATTEMPTS)

    app.state.engine = engine
    app.state.files = FileLifecycleService(
        blobs,
        store,
        tokens,
        file_ttl=timedelta(hours=settings.FILE_TTL_HOURS),
        max_upload_bytes=settings.MAX_UPLOAD_BYTES,
    )
    app.state.identity = IdentityProvider(
        session_factory,
        jwt_secret=settings.JWT_SECRET,
        token_ttl=timedelta(hours=settings.ACCESS_TOKEN_TTL_HOURS),
    )
    app.state.reaper = ExpiryReaper(
        store,
        blobs,
        interval_seconds=settings.REAPER_INTERVAL_SECONDS,
        initial_delay_seconds=settings.REAPER_INITIAL_DELAY_SECONDS,
    )
    app.state.reaper.start()

    yield

    # Cleanup
    await app.state.reaper.stop()
    await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="anonlink API",
        version="1.0.0",
        description="Self-hosted file sharing with expiring, download-limited links.",
        lifespan=lifespan,
    )
    app.state.settings = settings

    # CORS
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FileShareError, file_share_error_handler)

    @app.get("/api/health")
    async def health_check(request: Request):
        """Verify API and database connectivity."""
        try:
            async with request.app.state.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            return {"status": "error", "database": str(e)}

    app.include_router(auth_router)
    app.include_router(files_router)
    app.include_router(public_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=app.state.settings.API_PORT)
