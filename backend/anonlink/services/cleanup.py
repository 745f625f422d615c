"""Best-effort blob removal shared by owner deletes and the expiry reaper.

Once a record is gone no token can reach its blob, so a failed blob removal
is reported here and never raised to the caller.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from anonlink.errors import BlobStorageError
from anonlink.services.blob_store import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class CleanupFailure:
    """One non-fatal failure while removing a file."""
    file_id: str
    storage_name: str
    stage: str  # "metadata" or "blob"
    error: str


async def remove_blob_best_effort(
    blobs: BlobStore, file_id: str, storage_name: str
) -> Tuple[bool, Optional[CleanupFailure]]:
    """Remove a blob without raising.

    Returns whether a file was actually removed, and the failure if removal
    went wrong. An already missing blob is (False, None).
    """
    try:
        removed = await blobs.remove(storage_name)
    except BlobStorageError as e:
        logger.warning(
            f"Failed to delete blob {storage_name} for file {file_id}: {e}",
            extra={"file_id": file_id, "storage_name": storage_name, "stage": "blob"},
        )
        return False, CleanupFailure(file_id, storage_name, "blob", str(e))
    if not removed:
        logger.info(f"Blob {storage_name} for file {file_id} was already gone")
    return removed, None
