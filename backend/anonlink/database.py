"""Async SQLAlchemy engine and session factory.

The engine and session factory are built once by the application lifespan
and handed to the stores that need them:

    engine = create_engine(settings.DATABASE_URL)
    session_factory = create_session_factory(engine)
    store = FileRecordStore(session_factory)
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from anonlink.errors import DuplicateKeyError, MetadataStorageError
from anonlink.models import Base

logger = logging.getLogger(__name__)


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create the async engine. Pool sizing only applies to server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_models(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@contextmanager
def translate_db_errors(action: str) -> Iterator[None]:
    """Re-raise SQLAlchemy errors from the wrapped block as engine errors."""
    try:
        yield
    except IntegrityError as e:
        raise DuplicateKeyError(f"Failed to {action}: key already in use") from e
    except SQLAlchemyError as e:
        logger.error(f"Database error while trying to {action}: {e}")
        raise MetadataStorageError(f"Failed to {action}") from e
