"""Files API routes - owner operations (bearer token required)."""
from typing import AsyncIterator

from fastapi import APIRouter, Depends, UploadFile, File as FastAPIFile
from fastapi.responses import StreamingResponse

from anonlink.routes.deps import get_current_owner, get_file_service
from anonlink.routes.errors import content_disposition
from anonlink.schemas.file import DeleteResponse, DownloadLimitUpdate, FileResponse
from anonlink.services.blob_store import DEFAULT_CHUNK_SIZE
from anonlink.services.file_lifecycle import DownloadResult, FileLifecycleService
from anonlink.services.identity import Principal

router = APIRouter(prefix="/api/v1", tags=["files"])


async def read_upload(file: UploadFile, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        yield chunk


def blob_response(result: DownloadResult) -> StreamingResponse:
    record = result.record
    return StreamingResponse(
        result.stream,
        media_type=record.content_type,
        headers={
            "Content-Disposition": content_disposition(record.display_name),
            "Content-Length": str(result.stream.size),
        },
    )


@router.post("/upload", response_model=FileResponse, status_code=201)
async def upload_file(
    file: UploadFile = FastAPIFile(...),
    owner: Principal = Depends(get_current_owner),
    files: FileLifecycleService = Depends(get_file_service),
):
    """Upload a file and create its share link."""
    record = await files.upload(
        owner_id=owner.user_id,
        original_name=file.filename or "unnamed",
        content_type=file.content_type,
        size_bytes=file.size,
        chunks=read_upload(file),
    )
    return FileResponse.model_validate(record)


@router.get("/files", response_model=list[FileResponse])
async def list_files(
    owner: Principal = Depends(get_current_owner),
    files: FileLifecycleService = Depends(get_file_service),
):
    """List the caller's files, newest first."""
    records = await files.list_owned(owner.user_id)
    return [FileResponse.model_validate(r) for r in records]


@router.delete("/files/{file_id}", response_model=DeleteResponse)
async def delete_file(
    file_id: str,
    owner: Principal = Depends(get_current_owner),
    files: FileLifecycleService = Depends(get_file_service),
):
    """Delete a file and its blob."""
    await files.delete(owner.user_id, file_id)
    return DeleteResponse(deleted=True, id=file_id)


@router.get("/files/{file_id}/download")
async def download_own_file(
    file_id: str,
    owner: Principal = Depends(get_current_owner),
    files: FileLifecycleService = Depends(get_file_service),
):
    """Download a file as its owner. Expiry and download limits do not apply."""
    result = await files.download_by_owner(owner.user_id, file_id)
    return blob_response(result)


@router.post("/files/{file_id}/regenerate-link", response_model=FileResponse)
async def regenerate_link(
    file_id: str,
    owner: Principal = Depends(get_current_owner),
    files: FileLifecycleService = Depends(get_file_service),
):
    """Replace the share token. The previous link stops working immediately."""
    record = await files.rotate_share_link(owner.user_id, file_id)
    return FileResponse.model_validate(record)


@router.put("/files/{file_id}/download-limit", response_model=FileResponse)
async def set_download_limit(
    file_id: str,
    body: DownloadLimitUpdate,
    owner: Principal = Depends(get_current_owner),
    files: FileLifecycleService = Depends(get_file_service),
):
    """Set or clear the maximum number of public downloads."""
    record = await files.set_download_limit(owner.user_id, file_id, body.max_downloads)
    return FileResponse.model_validate(record)
