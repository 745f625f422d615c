"""FileRecord model - file metadata and share-link state (bytes live in the blob store)."""
from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from anonlink.models.base import Base, UTCDateTime

# Sentinel stored in max_downloads for "no download ceiling"
UNLIMITED_DOWNLOADS = -1


class FileRecord(Base):
    __tablename__ = "files"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    storage_name: Mapped[str] = mapped_column(String(300), nullable=False)
    display_name: Mapped[str] = mapped_column(String(500), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    download_token: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_downloads: Mapped[int] = mapped_column(Integer, nullable=False, default=UNLIMITED_DOWNLOADS)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    @property
    def has_download_limit(self) -> bool:
        return self.max_downloads != UNLIMITED_DOWNLOADS
