import asyncio
from datetime import datetime, timedelta

from legisync.sync.base_synchronizer import is_changed_since
from legisync.sync.watermark import WatermarkStore, adjust_since


def test_adjust_since_subtracts_exactly_five_minutes() -> None:
    cursor = datetime(2025, 6, 1, 12, 0, 0)
    assert adjust_since(cursor) == datetime(2025, 6, 1, 11, 55, 0)
    assert adjust_since(None) is None


def test_watermark_never_moves_backwards(make_settings, database) -> None:
    settings = make_settings()
    later = datetime(2025, 6, 1, 12, 0, 0)
    earlier = later - timedelta(hours=1)

    async def scenario():
        async with database(settings) as db:
            store = WatermarkStore(db, settings.sync)
            assert await store.get("votes") is None
            await store.set("votes", later)
            stored = await store.set("votes", earlier)
            return stored, await store.adjusted_since("votes")

    stored, since = asyncio.run(scenario())

    assert stored == later
    assert since == later - timedelta(minutes=5)


def test_forced_full_backfill_ignores_cursor(make_settings, database) -> None:
    settings = make_settings(sync={"force_full_backfill": "votes"})

    async def scenario():
        async with database(settings) as db:
            store = WatermarkStore(db, settings.sync)
            await store.set("votes", datetime(2025, 6, 1))
            await store.set("bills", datetime(2025, 6, 1))
            return await store.adjusted_since("votes"), await store.adjusted_since("bills")

    votes_since, bills_since = asyncio.run(scenario())

    assert votes_since is None
    assert bills_since == datetime(2025, 5, 31, 23, 55)


def test_is_changed_since_uses_updated_then_created_timestamps() -> None:
    since = datetime(2025, 6, 1, 12, 0, 0)

    assert is_changed_since({"updated_at": "2025-06-01T12:00:01Z"}, since) is True
    assert is_changed_since({"updated_at": "2025-06-01T12:00:00Z"}, since) is False
    assert is_changed_since({"created_at": "2025-06-02T00:00:00Z"}, since) is True
    assert is_changed_since({"title": "no timestamps"}, since) is True
    assert is_changed_since({"updated_at": "2020-01-01T00:00:00Z"}, None) is True
