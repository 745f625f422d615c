"""Download token issuance, rotation and validation."""
import enum
import logging
import secrets
from datetime import datetime

from anonlink.errors import DuplicateKeyError, TokenCollisionError
from anonlink.models.file_record import FileRecord
from anonlink.services.metadata_store import FileRecordStore

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32


class TokenVerdict(str, enum.Enum):
    ALLOWED = "allowed"
    EXPIRED = "expired"
    QUOTA_EXCEEDED = "quota_exceeded"


class AccessTokenManager:
    """Decides whether a token grants a download and mints replacement tokens.

    Validation order is fixed: expiry first, then quota. A record that is both
    expired and exhausted is reported as EXPIRED.
    """

    def __init__(self, store: FileRecordStore, max_attempts: int = 3):
        self.store = store
        self.max_attempts = max(1, max_attempts)

    def issue(self) -> str:
        return secrets.token_urlsafe(TOKEN_BYTES)

    @staticmethod
    def is_expired(record: FileRecord, now: datetime) -> bool:
        """Expiry is inclusive: a record expiring exactly at ``now`` is expired."""
        return record.expires_at is not None and now >= record.expires_at

    def validate_for_download(self, record: FileRecord, now: datetime) -> TokenVerdict:
        if self.is_expired(record, now):
            return TokenVerdict.EXPIRED
        if record.has_download_limit and record.download_count >= record.max_downloads:
            return TokenVerdict.QUOTA_EXCEEDED
        return TokenVerdict.ALLOWED

    async def rotate(self, record: FileRecord) -> FileRecord:
        """Replace the record's token with a fresh one and return the stored record.

        Collisions are retried with a new value up to max_attempts times.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.store.update_token(record.id, self.issue())
            except DuplicateKeyError:
                logger.warning(
                    f"Token collision rotating file {record.id} (attempt {attempt}/{self.max_attempts})"
                )
                continue
            logger.info(f"Rotated download token for file {record.id}")
            return await self.store.get_by_id(record.id)
        raise TokenCollisionError(f"Could not issue a unique token after {self.max_attempts} attempts")
