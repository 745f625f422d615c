"""Blob store: file content on the local filesystem, keyed by opaque storage names."""
import logging
import os
from pathlib import Path
from typing import AsyncIterable, AsyncIterator

import aiofiles
import aiofiles.os

from anonlink.errors import BlobNotFoundError, BlobStorageError

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 64 * 1024


class BlobStream:
    """An open blob, read lazily in chunks.

    The file handle is opened before any metadata is returned to the caller,
    so a concurrent remove() cannot break a transfer that was already granted.
    """

    def __init__(self, handle, size: int, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self._handle = handle
        self._closed = False
        self.size = size
        self.chunk_size = chunk_size

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks()

    async def _chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await self._handle.read(self.chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.aclose()

    async def read(self) -> bytes:
        """Read the whole blob into memory."""
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self._handle.close()


class BlobStore:
    """Handles blob read/write/delete under a single content directory."""

    def __init__(self, base_path, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.chunk_size = chunk_size

    def path_for(self, key: str) -> Path:
        """Resolve a storage key to its path. Keys must be plain file names."""
        if not key or key in (".", "..") or "/" in key or "\\" in key or "\x00" in key:
            raise BlobStorageError(f"Invalid blob key: {key!r}")
        return self.base_path / key

    async def put(self, key: str, chunks: AsyncIterable[bytes]) -> int:
        """Write a blob from a stream of chunks. Returns the number of bytes written.

        If the stream or the write fails part-way, the partial file is removed
        before the error propagates.
        """
        path = self.path_for(key)
        written = 0
        try:
            async with aiofiles.open(path, "wb") as f:
                async for chunk in chunks:
                    await f.write(chunk)
                    written += len(chunk)
        except OSError as e:
            await self._discard(path)
            raise BlobStorageError(f"Failed to write blob {key}: {e}") from e
        except BaseException:
            # Aborted stream (size limit, client disconnect, cancellation)
            await self._discard(path)
            raise
        return written

    async def get(self, key: str) -> BlobStream:
        """Open a blob for streaming. Raises BlobNotFoundError if it is absent."""
        path = self.path_for(key)
        try:
            handle = await aiofiles.open(path, "rb")
        except FileNotFoundError as e:
            raise BlobNotFoundError(f"Blob {key} not found") from e
        except OSError as e:
            raise BlobStorageError(f"Failed to open blob {key}: {e}") from e
        try:
            size = os.fstat(handle.fileno()).st_size
        except OSError as e:
            await handle.close()
            raise BlobStorageError(f"Failed to stat blob {key}: {e}") from e
        return BlobStream(handle, size=size, chunk_size=self.chunk_size)

    async def remove(self, key: str) -> bool:
        """Delete a blob. Returns False if it was already gone."""
        path = self.path_for(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except OSError as e:
            raise BlobStorageError(f"Failed to delete blob {key}: {e}") from e
        return True

    async def _discard(self, path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove partial blob {path.name}: {e}")

