"""Metadata store: file records in the relational database.

Every method runs in its own session and commits before returning, so each
single-record mutation is one atomic statement and no record state is cached
between calls. SQLAlchemy errors leave this module only as DuplicateKeyError
or MetadataStorageError.
"""
import logging
from datetime import datetime
from typing import List, Tuple

from sqlalchemy import delete, desc, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from anonlink.database import translate_db_errors
from anonlink.errors import DuplicateKeyError, NotFoundError
from anonlink.models.file_record import FileRecord, UNLIMITED_DOWNLOADS

logger = logging.getLogger(__name__)


class FileRecordStore:
    """CRUD and conditional updates on the ``files`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def insert(self, record: FileRecord) -> FileRecord:
        """Insert a new record. Raises DuplicateKeyError on id or token collision."""
        with translate_db_errors("insert file record"):
            async with self.session_factory() as db:
                db.add(record)
                try:
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    raise DuplicateKeyError(f"File {record.id} collides with an existing key") from e
                await db.refresh(record)
                return record

    async def get_by_id(self, file_id: str) -> FileRecord:
        with translate_db_errors("load file record"):
            async with self.session_factory() as db:
                record = await db.get(FileRecord, file_id)
        if record is None:
            raise NotFoundError("File not found")
        return record

    async def get_owned(self, file_id: str, owner_id: str) -> FileRecord:
        """Fetch a record only if it belongs to owner_id.

        Missing and foreign records raise the same NotFoundError.
        """
        with translate_db_errors("load file record"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(FileRecord).where(FileRecord.id == file_id, FileRecord.owner_id == owner_id)
                )
                record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("File not found")
        return record

    async def get_by_token(self, token: str) -> FileRecord:
        with translate_db_errors("look up download token"):
            async with self.session_factory() as db:
                result = await db.execute(select(FileRecord).where(FileRecord.download_token == token))
                record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("File not found")
        return record

    async def list_by_owner(self, owner_id: str) -> List[FileRecord]:
        """All records of one owner, newest first."""
        with translate_db_errors("list files"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(FileRecord)
                    .where(FileRecord.owner_id == owner_id)
                    .order_by(desc(FileRecord.created_at), desc(FileRecord.id))
                )
                return list(result.scalars().all())

    async def update_token(self, file_id: str, new_token: str) -> None:
        """Replace the download token. The old token stops resolving on commit."""
        with translate_db_errors("update download token"):
            async with self.session_factory() as db:
                try:
                    result = await db.execute(
                        update(FileRecord)
                        .where(FileRecord.id == file_id)
                        .values(download_token=new_token)
                        .execution_options(synchronize_session=False)
                    )
                    await db.commit()
                except IntegrityError as e:
                    await db.rollback()
                    raise DuplicateKeyError("Download token already in use") from e
        if result.rowcount == 0:
            raise NotFoundError("File not found")

    async def increment_download_count(self, file_id: str) -> bool:
        """Atomically add one download if the quota allows it.

        Returns False when the record is gone or its quota is exhausted; the
        check and the increment are a single UPDATE so concurrent downloads
        cannot overshoot max_downloads.
        """
        with translate_db_errors("record download"):
            async with self.session_factory() as db:
                result = await db.execute(
                    update(FileRecord)
                    .where(
                        FileRecord.id == file_id,
                        or_(
                            FileRecord.max_downloads == UNLIMITED_DOWNLOADS,
                            FileRecord.download_count < FileRecord.max_downloads,
                        ),
                    )
                    .values(download_count=FileRecord.download_count + 1)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        return result.rowcount == 1

    async def set_max_downloads(self, file_id: str, max_downloads: int) -> None:
        with translate_db_errors("update download limit"):
            async with self.session_factory() as db:
                result = await db.execute(
                    update(FileRecord)
                    .where(FileRecord.id == file_id)
                    .values(max_downloads=max_downloads)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        if result.rowcount == 0:
            raise NotFoundError("File not found")

    async def delete_by_id(self, file_id: str) -> bool:
        """Delete a record. Returns False if it was already gone."""
        with translate_db_errors("delete file record"):
            async with self.session_factory() as db:
                result = await db.execute(
                    delete(FileRecord)
                    .where(FileRecord.id == file_id)
                    .execution_options(synchronize_session=False)
                )
                await db.commit()
        return result.rowcount == 1

    async def list_expired_before(self, now: datetime) -> List[Tuple[str, str]]:
        """(id, storage_name) of every record whose expiry is at or before now."""
        with translate_db_errors("list expired files"):
            async with self.session_factory() as db:
                result = await db.execute(
                    select(FileRecord.id, FileRecord.storage_name)
                    .where(FileRecord.expires_at.is_not(None), FileRecord.expires_at <= now)
                    .order_by(FileRecord.expires_at)
                )
                return [(row.id, row.storage_name) for row in result.all()]
