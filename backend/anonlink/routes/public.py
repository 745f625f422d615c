"""Public share-link routes. No authentication; the token is the capability."""
from fastapi import APIRouter, Depends

from anonlink.errors import ExpiredError, NotFoundError
from anonlink.routes.deps import get_file_service
from anonlink.routes.files import blob_response
from anonlink.schemas.file import PublicFileInfoResponse
from anonlink.services.file_lifecycle import FileLifecycleService

router = APIRouter(prefix="/api/v1", tags=["public"])

# Unknown and expired tokens get the same response so tokens can't be enumerated
NOT_FOUND_OR_EXPIRED = "File not found or expired"


@router.get("/download/{token}")
async def public_download(
    token: str,
    files: FileLifecycleService = Depends(get_file_service),
):
    """Download through a share link. Each call counts against the download limit."""
    try:
        result = await files.download_by_token(token)
    except (NotFoundError, ExpiredError) as e:
        raise NotFoundError(NOT_FOUND_OR_EXPIRED) from e
    return blob_response(result)


@router.get("/file-info/{token}", response_model=PublicFileInfoResponse)
async def public_file_info(
    token: str,
    files: FileLifecycleService = Depends(get_file_service),
):
    """File details for a share link, shown even when the download limit is reached."""
    try:
        info = await files.public_info(token)
    except (NotFoundError, ExpiredError) as e:
        raise NotFoundError(NOT_FOUND_OR_EXPIRED) from e
    return PublicFileInfoResponse.model_validate(info)
