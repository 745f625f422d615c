"""File request/response schemas."""
from datetime import datetime
from typing import Optional

from pydantic import Field, computed_field, field_validator

from anonlink.models.file_record import UNLIMITED_DOWNLOADS
from anonlink.schemas.base import CamelModel, CamelORMModel


class FileResponse(CamelORMModel):
    """Owner view of a file, including its current share token."""
    id: str
    display_name: str
    size_bytes: int
    content_type: str
    download_token: str
    download_count: int
    max_downloads: Optional[int] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    @field_validator("max_downloads", mode="before")
    @classmethod
    def unlimited_as_null(cls, v):
        """The API shows "no limit" as null rather than the stored sentinel."""
        return None if v == UNLIMITED_DOWNLOADS else v

    @computed_field
    @property
    def share_path(self) -> str:
        return f"/api/v1/download/{self.download_token}"


class PublicFileInfoResponse(CamelORMModel):
    """What an anonymous token holder sees."""
    display_name: str
    size_bytes: int
    content_type: str
    download_count: int
    expires_at: Optional[datetime] = None


class DownloadLimitUpdate(CamelModel):
    """``null`` removes the limit."""
    max_downloads: Optional[int] = Field(default=None, ge=1)


class DeleteResponse(CamelModel):
    deleted: bool = True
    id: str = ""
