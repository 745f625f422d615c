"""
Shared pytest fixtures for the anonlink test suite.

Async tests run on the AnyIO pytest plugin (asyncio backend). Every test gets
its own SQLite database file and blob directory under tmp_path, and a
controllable clock so expiry can be tested without sleeping.
"""

from datetime import datetime, timedelta, timezone
from typing import AsyncIterator, Optional

import pytest

from anonlink.database import create_engine, create_session_factory, init_models
from anonlink.services.access_tokens import AccessTokenManager
from anonlink.services.blob_store import DEFAULT_CHUNK_SIZE, BlobStore
from anonlink.services.file_lifecycle import FileLifecycleService
from anonlink.services.identity import IdentityProvider
from anonlink.services.metadata_store import FileRecordStore
from anonlink.services.reaper import ExpiryReaper


async def iter_bytes(data: bytes, chunk_size: Optional[int] = None) -> AsyncIterator[bytes]:
    """Feed an in-memory payload to BlobStore.put or FileLifecycleService.upload."""
    size = chunk_size or DEFAULT_CHUNK_SIZE
    for start in range(0, len(data), size):
        yield data[start:start + size]


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
async def engine(tmp_path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'anonlink.db'}")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def blob_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def blob_store(blob_dir) -> BlobStore:
    return BlobStore(blob_dir)


@pytest.fixture
def record_store(session_factory) -> FileRecordStore:
    return FileRecordStore(session_factory)


@pytest.fixture
def token_manager(record_store) -> AccessTokenManager:
    return AccessTokenManager(record_store, max_attempts=3)


@pytest.fixture
def file_service(blob_store, record_store, token_manager, clock) -> FileLifecycleService:
    return FileLifecycleService(
        blob_store,
        record_store,
        token_manager,
        file_ttl=timedelta(hours=24),
        max_upload_bytes=10 * 1024 * 1024,
        clock=clock,
    )


@pytest.fixture
def reaper(record_store, blob_store, clock) -> ExpiryReaper:
    return ExpiryReaper(
        record_store,
        blob_store,
        interval_seconds=3600,
        initial_delay_seconds=0,
        clock=clock,
    )


@pytest.fixture
def identity(session_factory) -> IdentityProvider:
    return IdentityProvider(session_factory, jwt_secret="test-secret", token_ttl=timedelta(hours=1))
