import asyncio

import pytest

from legisync.db.repositories import SessionRepository, StatsRepository
from legisync.db.repositories.stats_repository import snapshot_lock_key
from legisync.orchestration import SyncOrchestrator
from legisync.services import AnalyticsService
from legisync.services.analytics_service import compute_lock


def _synced_service(api, settings, database, body):
    async def scenario():
        async with database(settings) as db:
            await SyncOrchestrator(db, settings, transport=api.transport()).run()
            service = AnalyticsService(db, metrics_version="v3")
            return await body(db, service)

    return asyncio.run(scenario())


def test_compute_builds_every_derived_collection(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        result = await service.run_compute("45", "1")
        vote_stats = await service.vote_stats("45", "1")
        records = await service.member_vote_records("45", "1")
        async with db.session() as session:
            summary = await SessionRepository(session).get("45", "1")
        return result, vote_stats, records, summary

    result, vote_stats, records, summary = _synced_service(api, settings, database, body)

    assert result.votes_processed == 2
    assert result.member_vote_records_written == 6
    assert result.vote_stats_written == 2
    assert result.member_stats_written == 2
    assert result.metrics_version == "v3"

    assert [(row["division_number"], row["label"]) for row in vote_stats] == [(1, "C-2"), (2, "Opposition motion")]
    assert vote_stats[0]["participation_rate"] == 100.0
    assert vote_stats[1]["participation_rate"] == 50.0
    assert vote_stats[0]["by_party"]["CPC"]["Yea"] == 1
    assert vote_stats[0]["by_party"]["LPC"]["Paired"] == 1

    senator = [row for row in records if row["person_id"] == "201" and row["division_number"] == 1][0]
    assert senator["status"] == "present"
    assert senator["party"] == "Senate"

    assert summary.total_members_computed == 2
    assert summary.metrics_version == "v3"
    assert summary.computed_at == result.computed_at


def test_recompute_replaces_the_snapshot(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        first = await service.run_compute("45", "1")
        second = await service.run_compute("45", "1")
        stats = await service.member_stats("45", "1")
        records = await service.member_vote_records("45", "1")
        return first, second, stats, records

    first, second, stats, records = _synced_service(api, settings, database, body)

    assert len(records) == 6
    assert len(stats) == 2
    assert second.computed_at >= first.computed_at
    assert all(row["computed_at"] == second.computed_at for row in stats)


def test_concurrent_computes_for_one_session_are_serialized(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        await asyncio.gather(service.run_compute("45", "1"), service.run_compute("45", "1"))
        return await service.member_vote_records("45", "1")

    records = _synced_service(api, settings, database, body)
    assert len(records) == 6


def test_compute_lock_is_shared_across_service_instances(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        lock = compute_lock("45", "1")
        assert compute_lock(45, 1) is lock
        assert compute_lock("45", "2") is not lock

        async with lock:
            other = asyncio.ensure_future(AnalyticsService(db).run_compute("45", "1"))
            await asyncio.sleep(0.05)
            waited = not other.done()
        result = await other

        async with db.session() as session:
            advisory = await StatsRepository(session).lock_snapshot("45", "1")
        return waited, result, advisory

    waited, result, advisory = _synced_service(api, settings, database, body)

    assert waited is True
    assert result.member_stats_written == 2
    # SQLite serializes writers itself; the advisory lock is PostgreSQL-only
    assert advisory is False


def test_snapshot_lock_key_is_stable_per_session() -> None:
    assert snapshot_lock_key("45", "1") == snapshot_lock_key("45", "1")
    assert snapshot_lock_key("45", "1") != snapshot_lock_key("45", "2")
    assert 0 <= snapshot_lock_key("45", "1") < 2 ** 32


def test_member_stats_filters_and_sorting(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        await service.run_compute("45", "1")
        by_presence = await service.member_stats("45", "1", sort="presence_rate", order="desc")
        ascending = await service.member_stats("45", "1", sort="presence_rate", order="asc")
        quebec = await service.member_stats("45", "1", province="Quebec")
        limited = await service.member_stats("45", "1", limit=1)
        return by_presence, ascending, quebec, limited

    by_presence, ascending, quebec, limited = _synced_service(api, settings, database, body)

    assert [row["person_id"] for row in by_presence] == ["101", "102"]
    assert by_presence[0]["presence_rate"] == 100.0
    assert by_presence[1]["presence_rate"] == 50.0
    assert [row["person_id"] for row in ascending] == ["102", "101"]
    assert [row["person_id"] for row in quebec] == ["102"]
    assert len(limited) == 1

    alice = by_presence[0]
    assert alice["party"] == "CPC"
    assert alice["committees_count"] == 2
    assert alice["associations_count"] == 1
    assert alice["elections_won"] == 2
    assert alice["bills_sponsored_current"] == 2
    assert set(alice["rankings"]["activity_index_score"]) == {
        "rank", "percentile", "rank_in_party", "percentile_in_party",
    }


def test_member_stats_rejects_unknown_sort(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        with pytest.raises(ValueError, match="sort field"):
            await service.member_stats("45", "1", sort="drop table")
        with pytest.raises(ValueError, match="sort order"):
            await service.member_stats("45", "1", order="sideways")

    _synced_service(api, settings, database, body)


def test_member_profile_compares_against_party_and_province(api, make_settings, database) -> None:
    settings = make_settings()

    async def body(db, service):
        await service.run_compute("45", "1")
        return await service.member_profile("102", "45", "1"), await service.member_profile("999", "45", "1")

    profile, missing = _synced_service(api, settings, database, body)

    assert missing is None
    assert profile["person_id"] == "102"
    assert profile["party_average"]["members"] == 1
    assert profile["party_average"]["presence_rate"] == 50.0
    assert profile["province_average"]["members"] == 1
    assert profile["comparisons"]["presence_above_party_average"] is False
