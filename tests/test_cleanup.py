"""
Tests for expired preview cleanup: store queries, blob + row removal, worker scheduling.
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from listing_ingest.errors import StorageError
from listing_ingest.services.cleanup import cleanup_expired_previews
from listing_ingest.workers.scrape_worker import _maybe_cleanup

LISTING_URL = "https://listings.example.com/home/12-oak-ln"
LATER = datetime.now(timezone.utc) + timedelta(hours=25)


async def _previews(store, count: int) -> list:
    return [await store.create(f"{LISTING_URL}-{i}") for i in range(count)]


class TestPreviewStoreExpiry:
    async def test_fresh_previews_not_expired(self, store):
        await _previews(store, 2)
        assert await store.expired_ids() == []

    async def test_expired_ids_respects_limit(self, store):
        previews = await _previews(store, 3)
        expired = await store.expired_ids(now=LATER, limit=2)
        assert len(expired) == 2
        assert set(expired) <= {p.id for p in previews}

    async def test_delete(self, store):
        first, second = await _previews(store, 2)
        assert await store.delete([first.id]) == 1
        assert await store.get(first.id) is None
        assert await store.get(second.id) is not None
        assert await store.delete([]) == 0


class TestCleanupExpiredPreviews:
    async def test_removes_rows_and_images(self, store):
        previews = await _previews(store, 2)
        with patch("listing_ingest.services.storage.delete_prefix", new_callable=AsyncMock, return_value=4) as delete_prefix:
            summary = await cleanup_expired_previews(store=store, now=LATER)

        assert summary == {"previews_deleted": 2, "images_deleted": 8, "failed": 0}
        prefixes = {call.args[0] for call in delete_prefix.call_args_list}
        assert prefixes == {f"temp-preview/{p.id}" for p in previews}
        for preview in previews:
            assert await store.get(preview.id) is None

    async def test_nothing_expired(self, store):
        await _previews(store, 1)
        with patch("listing_ingest.services.storage.delete_prefix", new_callable=AsyncMock) as delete_prefix:
            summary = await cleanup_expired_previews(store=store)
        assert summary == {"previews_deleted": 0, "images_deleted": 0, "failed": 0}
        delete_prefix.assert_not_called()

    async def test_storage_failure_keeps_row(self, store):
        kept, removed = await _previews(store, 2)

        async def fake_delete(path):
            if str(kept.id) in path:
                raise StorageError("AccessDenied")
            return 1

        with patch("listing_ingest.services.storage.delete_prefix", side_effect=fake_delete):
            summary = await cleanup_expired_previews(store=store, now=LATER)

        assert summary == {"previews_deleted": 1, "images_deleted": 1, "failed": 1}
        assert await store.get(kept.id) is not None
        assert await store.get(removed.id) is None

    async def test_rows_removed_without_storage(self, store, settings):
        settings.storage_access_key_id = ""
        preview, = await _previews(store, 1)
        with patch("listing_ingest.services.storage.delete_prefix", new_callable=AsyncMock) as delete_prefix:
            summary = await cleanup_expired_previews(store=store, now=LATER)
        assert summary["previews_deleted"] == 1
        delete_prefix.assert_not_called()
        assert await store.get(preview.id) is None


class TestWorkerCleanupSchedule:
    async def test_first_pass_runs(self, settings):
        with patch("listing_ingest.workers.scrape_worker.cleanup_expired_previews", new_callable=AsyncMock) as cleanup:
            last_run = await _maybe_cleanup(None, settings)
        assert last_run is not None
        cleanup.assert_awaited_once_with(store=None, limit=settings.preview_cleanup_batch_size)

    async def test_skipped_within_interval(self, settings):
        with (
            patch("listing_ingest.workers.scrape_worker.time.monotonic", return_value=1000.0),
            patch("listing_ingest.workers.scrape_worker.cleanup_expired_previews", new_callable=AsyncMock) as cleanup,
        ):
            assert await _maybe_cleanup(999.0, settings) == 999.0
        cleanup.assert_not_called()

    async def test_runs_after_interval(self, settings):
        settings.preview_cleanup_interval_seconds = 60
        with (
            patch("listing_ingest.workers.scrape_worker.time.monotonic", return_value=1000.0),
            patch("listing_ingest.workers.scrape_worker.cleanup_expired_previews", new_callable=AsyncMock) as cleanup,
        ):
            assert await _maybe_cleanup(900.0, settings) == 1000.0
        cleanup.assert_awaited_once()

    async def test_disabled(self, settings):
        settings.preview_cleanup_interval_seconds = 0
        with patch("listing_ingest.workers.scrape_worker.cleanup_expired_previews", new_callable=AsyncMock) as cleanup:
            assert await _maybe_cleanup(None, settings) is None
        cleanup.assert_not_called()

    async def test_errors_are_logged_not_raised(self, settings):
        store = MagicMock()
        with (
            patch("listing_ingest.workers.scrape_worker.time.monotonic", return_value=50.0),
            patch(
                "listing_ingest.workers.scrape_worker.cleanup_expired_previews",
                new_callable=AsyncMock, side_effect=RuntimeError("db down"),
            ),
        ):
            assert await _maybe_cleanup(None, settings, store=store) == 50.0
