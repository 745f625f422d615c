"""File lifecycle: upload, owner operations and public token downloads.

Ordering rules that keep the blob directory and the files table consistent:

- upload writes the blob first and inserts the record second; if the insert
  fails the blob is removed before the error propagates.
- delete removes the record first (this alone revokes every token) and the
  blob second, best-effort.
- a public download consumes quota when it is granted, not when the transfer
  completes. A transfer that fails at the transport does not refund the
  download; the counter trades perfect fairness for a single atomic update.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import PurePath
from typing import AsyncIterable, AsyncIterator, Callable, List, Optional

from anonlink.errors import (
    DuplicateKeyError,
    ExpiredError,
    InvalidRequestError,
    NotFoundError,
    QuotaExceededError,
    TokenCollisionError,
    UploadAbortedError,
    UploadTooLargeError,
)
from anonlink.models.base import utc_now
from anonlink.models.file_record import FileRecord, UNLIMITED_DOWNLOADS
from anonlink.services.access_tokens import AccessTokenManager, TokenVerdict
from anonlink.services.blob_store import BlobStore, BlobStream
from anonlink.services.cleanup import remove_blob_best_effort
from anonlink.services.metadata_store import FileRecordStore

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
_SAFE_SUFFIX = re.compile(r"^\.[A-Za-z0-9]{1,16}$")


@dataclass
class DownloadResult:
    record: FileRecord
    stream: BlobStream


@dataclass
class PublicFileInfo:
    """What an anonymous token holder may see about a file."""
    display_name: str
    size_bytes: int
    content_type: str
    download_count: int
    expires_at: Optional[datetime]


def storage_name_for(file_id: str, original_name: str) -> str:
    """Blob key: the file id plus the original extension when it is a plain one."""
    suffix = PurePath(original_name).suffix
    if _SAFE_SUFFIX.match(suffix):
        return f"{file_id}{suffix.lower()}"
    return file_id


class FileLifecycleService:
    """Orchestrates the blob store, metadata store and token manager."""

    def __init__(
        self,
        blobs: BlobStore,
        store: FileRecordStore,
        tokens: AccessTokenManager,
        file_ttl: Optional[timedelta] = timedelta(hours=24),
        max_upload_bytes: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.blobs = blobs
        self.store = store
        self.tokens = tokens
        self.file_ttl = file_ttl
        self.max_upload_bytes = max_upload_bytes
        self.clock = clock

    # ── Owner operations ─────────────────────────────────────────

    async def upload(
        self,
        owner_id: str,
        original_name: str,
        content_type: Optional[str],
        size_bytes: Optional[int],
        chunks: AsyncIterable[bytes],
    ) -> FileRecord:
        """Store a new file and create its record.

        ``size_bytes`` is the size the client declared, if any. A stream that
        ends short of it is treated as an aborted upload.
        """
        display_name = original_name or "unnamed"
        file_id = str(uuid.uuid4())
        storage_name = storage_name_for(file_id, display_name)

        written = await self.blobs.put(storage_name, self._limited(chunks))
        if size_bytes is not None and written != size_bytes:
            await remove_blob_best_effort(self.blobs, file_id, storage_name)
            raise UploadAbortedError(f"Received {written} of {size_bytes} bytes")

        now = self.clock()
        expires_at = now + self.file_ttl if self.file_ttl is not None else None
        try:
            record = await self._insert_with_fresh_token(
                id=file_id,
                owner_id=owner_id,
                storage_name=storage_name,
                display_name=display_name,
                size_bytes=written,
                content_type=content_type or DEFAULT_CONTENT_TYPE,
                created_at=now,
                expires_at=expires_at,
            )
        except BaseException:
            await remove_blob_best_effort(self.blobs, file_id, storage_name)
            raise
        logger.info(f"Uploaded file {record.id} ({written} bytes) for owner {owner_id}")
        return record

    async def list_owned(self, owner_id: str) -> List[FileRecord]:
        return await self.store.list_by_owner(owner_id)

    async def delete(self, owner_id: str, file_id: str) -> None:
        """Delete an owned file. Blob removal failures are logged, not raised."""
        record = await self.store.get_owned(file_id, owner_id)
        if not await self.store.delete_by_id(record.id):
            raise NotFoundError("File not found")
        await remove_blob_best_effort(self.blobs, record.id, record.storage_name)
        logger.info(f"Deleted file {record.id} for owner {owner_id}")

    async def download_by_owner(self, owner_id: str, file_id: str) -> DownloadResult:
        """Owner access ignores expiry and quota entirely."""
        record = await self.store.get_owned(file_id, owner_id)
        stream = await self.blobs.get(record.storage_name)
        return DownloadResult(record=record, stream=stream)

    async def rotate_share_link(self, owner_id: str, file_id: str) -> FileRecord:
        record = await self.store.get_owned(file_id, owner_id)
        return await self.tokens.rotate(record)

    async def set_download_limit(
        self, owner_id: str, file_id: str, max_downloads: Optional[int]
    ) -> FileRecord:
        """Set a download ceiling, or remove it with ``None``."""
        if max_downloads is not None and max_downloads < 1:
            raise InvalidRequestError("max_downloads must be a positive integer or null")
        record = await self.store.get_owned(file_id, owner_id)
        limit = UNLIMITED_DOWNLOADS if max_downloads is None else max_downloads
        await self.store.set_max_downloads(record.id, limit)
        return await self.store.get_by_id(record.id)

    # ── Public (token) operations ────────────────────────────────

    async def download_by_token(self, token: str) -> DownloadResult:
        record = await self.store.get_by_token(token)
        verdict = self.tokens.validate_for_download(record, self.clock())
        if verdict is TokenVerdict.EXPIRED:
            raise ExpiredError("File not found or expired")
        if verdict is TokenVerdict.QUOTA_EXCEEDED:
            raise QuotaExceededError("Download limit reached")

        if not await self.store.increment_download_count(record.id):
            # Lost the race for the last download, or the record was deleted
            await self.store.get_by_id(record.id)
            raise QuotaExceededError("Download limit reached")
        record.download_count += 1

        # Quota stays consumed from here on, even if the blob is unreadable
        stream = await self.blobs.get(record.storage_name)
        return DownloadResult(record=record, stream=stream)

    async def public_info(self, token: str) -> PublicFileInfo:
        """Metadata for a token holder. Quota exhaustion does not hide it; expiry does."""
        record = await self.store.get_by_token(token)
        if self.tokens.is_expired(record, self.clock()):
            raise ExpiredError("File not found or expired")
        return PublicFileInfo(
            display_name=record.display_name,
            size_bytes=record.size_bytes,
            content_type=record.content_type,
            download_count=record.download_count,
            expires_at=record.expires_at,
        )

    # ── Internals ────────────────────────────────────────────────

    async def _limited(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        total = 0
        async for chunk in chunks:
            total += len(chunk)
            if self.max_upload_bytes is not None and total > self.max_upload_bytes:
                raise UploadTooLargeError(f"File too large (max {self.max_upload_bytes} bytes)")
            yield chunk

    async def _insert_with_fresh_token(self, **fields) -> FileRecord:
        attempts = self.tokens.max_attempts
        for attempt in range(1, attempts + 1):
            record = FileRecord(
                download_token=self.tokens.issue(),
                download_count=0,
                max_downloads=UNLIMITED_DOWNLOADS,
                **fields,
            )
            try:
                return await self.store.insert(record)
            except DuplicateKeyError:
                logger.warning(f"Key collision inserting file {fields['id']} (attempt {attempt}/{attempts})")
        raise TokenCollisionError(f"Could not issue a unique token after {attempts} attempts")
