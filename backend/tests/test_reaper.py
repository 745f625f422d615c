"""Tests for the ExpiryReaper sweep and its background task."""

import asyncio

import pytest

from anonlink.errors import BlobStorageError, ExpiredError, NotFoundError
from conftest import iter_bytes

pytestmark = pytest.mark.anyio


async def upload(service, name="data.bin", owner="owner-1"):
    return await service.upload(owner, name, "application/octet-stream", None, iter_bytes(b"payload"))


class TestSweep:

    async def test_expired_file_is_fully_removed(self, file_service, reaper, record_store, blob_dir, clock):
        record = await upload(file_service)
        clock.advance(hours=25)

        report = await reaper.sweep()

        assert (report.examined, report.records_deleted, report.blobs_deleted) == (1, 1, 1)
        assert report.failures == []
        assert not (blob_dir / record.storage_name).exists()
        with pytest.raises(NotFoundError):
            await record_store.get_by_id(record.id)
        with pytest.raises((NotFoundError, ExpiredError)):
            await file_service.download_by_token(record.download_token)

    async def test_unexpired_files_are_untouched(self, file_service, reaper, record_store, clock):
        record = await upload(file_service)
        clock.advance(hours=23)

        report = await reaper.sweep()

        assert report.examined == 0
        assert (await record_store.get_by_id(record.id)).id == record.id

    async def test_sweep_is_idempotent(self, file_service, reaper, clock):
        await upload(file_service)
        clock.advance(hours=25)

        first = await reaper.sweep()
        second = await reaper.sweep()

        assert first.records_deleted == 1
        assert (second.examined, second.records_deleted, second.failures) == (0, 0, [])

    async def test_missing_blob_does_not_fail_sweep(self, file_service, reaper, record_store, blob_dir, clock):
        record = await upload(file_service)
        (blob_dir / record.storage_name).unlink()
        clock.advance(hours=25)

        report = await reaper.sweep()

        assert report.records_deleted == 1
        assert report.blobs_deleted == 0
        assert report.failures == []
        with pytest.raises(NotFoundError):
            await record_store.get_by_id(record.id)

    async def test_blob_failure_is_recorded_and_sweep_continues(
        self, file_service, reaper, record_store, blob_store, clock, monkeypatch
    ):
        first = await upload(file_service, name="a.bin")
        second = await upload(file_service, name="b.bin")
        clock.advance(hours=25)
        real_remove = blob_store.remove

        async def flaky_remove(key):
            if key == first.storage_name:
                raise BlobStorageError("device busy")
            return await real_remove(key)

        monkeypatch.setattr(blob_store, "remove", flaky_remove)

        report = await reaper.sweep()

        assert report.records_deleted == 2
        assert report.blobs_deleted == 1
        assert [(f.file_id, f.stage) for f in report.failures] == [(first.id, "blob")]
        for record in (first, second):
            with pytest.raises(NotFoundError):
                await record_store.get_by_id(record.id)

    async def test_metadata_failure_skips_blob_and_continues(
        self, file_service, reaper, record_store, blob_dir, clock, monkeypatch
    ):
        first = await upload(file_service, name="a.bin")
        second = await upload(file_service, name="b.bin")
        clock.advance(hours=25)
        real_delete = record_store.delete_by_id

        async def flaky_delete(file_id):
            if file_id == first.id:
                raise RuntimeError("database is locked")
            return await real_delete(file_id)

        monkeypatch.setattr(record_store, "delete_by_id", flaky_delete)

        report = await reaper.sweep()

        assert report.records_deleted == 1
        assert [(f.file_id, f.stage) for f in report.failures] == [(first.id, "metadata")]
        assert (blob_dir / first.storage_name).exists()
        assert not (blob_dir / second.storage_name).exists()

    async def test_record_deleted_by_owner_mid_sweep_is_skipped(
        self, file_service, reaper, record_store, clock, monkeypatch
    ):
        record = await upload(file_service)
        clock.advance(hours=25)
        real_list = record_store.list_expired_before

        async def list_then_owner_deletes(now):
            expired = await real_list(now)
            await file_service.delete("owner-1", record.id)
            return expired

        monkeypatch.setattr(record_store, "list_expired_before", list_then_owner_deletes)

        report = await reaper.sweep()

        assert report.examined == 1
        assert report.records_deleted == 0
        assert report.failures == []


class TestBackgroundTask:

    async def test_start_sweeps_then_stop_cancels(self, file_service, reaper, record_store, clock):
        record = await upload(file_service)
        clock.advance(hours=25)

        task = reaper.start()
        for _ in range(100):
            try:
                await record_store.get_by_id(record.id)
            except NotFoundError:
                break
            await asyncio.sleep(0.01)
        await reaper.stop()

        assert task.cancelled()
        with pytest.raises(NotFoundError):
            await record_store.get_by_id(record.id)

    async def test_loop_survives_sweep_errors(self, reaper, monkeypatch):
        calls = []

        async def failing_sweep(now=None):
            calls.append(now)
            raise RuntimeError("boom")

        monkeypatch.setattr(reaper, "sweep", failing_sweep)
        reaper.interval_seconds = 0

        reaper.start()
        for _ in range(100):
            if len(calls) >= 3:
                break
            await asyncio.sleep(0.01)
        await reaper.stop()

        assert len(calls) >= 3

    async def test_stop_without_start(self, reaper):
        await reaper.stop()
