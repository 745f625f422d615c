"""Import all models so SQLAlchemy metadata knows about them."""
from anonlink.models.base import Base
from anonlink.models.file_record import FileRecord, UNLIMITED_DOWNLOADS
from anonlink.models.user import User

__all__ = ["Base", "FileRecord", "UNLIMITED_DOWNLOADS", "User"]
