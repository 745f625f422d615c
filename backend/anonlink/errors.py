"""Error taxonomy for the file-sharing engine.

Every failure a caller can observe is one of these classes. Each carries a
stable ``kind`` that the routing layer maps to a transport status; storage
driver exceptions never cross the store boundary.
"""


class FileShareError(Exception):
    """Base class for all engine errors."""

    kind = "internal"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__doc__ or self.kind


class NotFoundError(FileShareError):
    """Record not found or not owned by the caller."""

    kind = "not_found"


class ExpiredError(FileShareError):
    """Share link has expired."""

    kind = "expired"


class QuotaExceededError(FileShareError):
    """Download limit reached."""

    kind = "quota_exceeded"


class DuplicateKeyError(FileShareError):
    """A unique key is already taken."""

    kind = "duplicate_key"


class TokenCollisionError(FileShareError):
    """Could not issue a unique download token."""

    kind = "internal"


class BlobStorageError(FileShareError):
    """Blob read, write or delete failed."""

    kind = "storage_error"


class MetadataStorageError(FileShareError):
    """Metadata database read or write failed."""

    kind = "storage_error"


class BlobNotFoundError(NotFoundError):
    """Blob missing from the content directory."""


class UploadTooLargeError(FileShareError):
    """Upload exceeds the maximum allowed size."""

    kind = "too_large"


class UploadAbortedError(FileShareError):
    """Upload stream ended before the declared size was received."""

    kind = "upload_aborted"


class InvalidRequestError(FileShareError):
    """Request parameters are invalid."""

    kind = "invalid_request"


class InvalidCredentialsError(FileShareError):
    """Invalid credentials."""

    kind = "unauthorized"


class InvalidTokenError(FileShareError):
    """Invalid or expired access token."""

    kind = "unauthorized"
