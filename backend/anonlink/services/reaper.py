"""Expiry reaper.

Periodically deletes expired file records and their blobs. Runs as an asyncio
task within the FastAPI process, started and cancelled by the app lifespan.

Each expired file is cleaned up independently: the record is deleted first,
then the blob. A failure on one file is logged and recorded in the sweep
report, and the sweep moves on. An interrupted sweep leaves processed files
fully removed and the rest untouched for the next run.
"""
import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from anonlink.models.base import utc_now
from anonlink.services.blob_store import BlobStore
from anonlink.services.cleanup import CleanupFailure, remove_blob_best_effort
from anonlink.services.metadata_store import FileRecordStore

logger = logging.getLogger(__name__)


@dataclass
class ReapReport:
    examined: int = 0
    records_deleted: int = 0
    blobs_deleted: int = 0
    failures: List[CleanupFailure] = field(default_factory=list)


class ExpiryReaper:
    def __init__(
        self,
        store: FileRecordStore,
        blobs: BlobStore,
        interval_seconds: float = 3600.0,
        initial_delay_seconds: float = 10.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.blobs = blobs
        self.interval_seconds = interval_seconds
        self.initial_delay_seconds = initial_delay_seconds
        self.clock = clock
        self._task: Optional[asyncio.Task] = None

    async def sweep(self, now: Optional[datetime] = None) -> ReapReport:
        """Remove every file whose expiry is at or before ``now``."""
        now = now or self.clock()
        report = ReapReport()
        expired = await self.store.list_expired_before(now)
        report.examined = len(expired)

        for file_id, storage_name in expired:
            try:
                deleted = await self.store.delete_by_id(file_id)
            except Exception as e:
                logger.warning(f"Failed to delete expired file {file_id} from database: {e}")
                report.failures.append(CleanupFailure(file_id, storage_name, "metadata", str(e)))
                continue
            if not deleted:
                # Deleted by its owner since the listing; the owner path removes the blob
                continue
            report.records_deleted += 1

            removed, failure = await remove_blob_best_effort(self.blobs, file_id, storage_name)
            if failure:
                report.failures.append(failure)
            elif removed:
                report.blobs_deleted += 1

        if report.examined:
            logger.info(
                f"Reaped {report.records_deleted} expired file(s), "
                f"{report.blobs_deleted} blob(s) removed, {len(report.failures)} failure(s)"
            )
        return report

    async def run_forever(self) -> None:
        """Sweep once after the initial delay, then every interval until cancelled."""
        logger.info("Expiry reaper started")
        await asyncio.sleep(self.initial_delay_seconds)
        while True:
            try:
                await self.sweep()
            except Exception as e:
                logger.error(f"Expiry sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_forever(), name="expiry-reaper")
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Expiry reaper stopped")
