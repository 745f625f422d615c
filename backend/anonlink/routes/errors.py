"""Translate engine errors into HTTP responses.

This is the only place that knows about status codes; services raise the
typed errors from anonlink.errors.
"""
import logging
from urllib.parse import quote

from fastapi import Request
from fastapi.responses import JSONResponse

from anonlink.errors import FileShareError
from anonlink.schemas.base import ErrorResponse

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "not_found": 404,
    "expired": 404,
    "quota_exceeded": 410,
    "duplicate_key": 409,
    "too_large": 413,
    "upload_aborted": 400,
    "invalid_request": 400,
    "unauthorized": 401,
    "storage_error": 500,
    "internal": 500,
}


async def file_share_error_handler(request: Request, exc: FileShareError) -> JSONResponse:
    status = STATUS_BY_KIND.get(exc.kind, 500)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}", exc_info=exc)
    body = ErrorResponse(detail=exc.message, kind=exc.kind)
    headers = {"WWW-Authenticate": "Bearer"} if status == 401 else None
    return JSONResponse(status_code=status, content=body.model_dump(), headers=headers)


def content_disposition(filename: str) -> str:
    """Attachment header that survives non-ASCII file names."""
    quoted = quote(filename, safe="")
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'
