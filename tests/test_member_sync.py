import asyncio

from legisync.db.repositories import MemberRepository, SyncCursorRepository, SyncLogRepository
from legisync.models.adapter_models import SyncStatus
from legisync.orchestration import SyncOrchestrator


def test_member_sync_stores_redacted_members_with_string_ids(api, make_settings, database) -> None:
    settings = make_settings()

    async def scenario():
        async with database(settings) as db:
            result = await SyncOrchestrator(db, settings, transport=api.transport()).run(["members"])
            async with db.session() as session:
                members = {member.person_id: member for member in await MemberRepository(session).list_all()}
            return result, members

    result, members = asyncio.run(scenario())

    stage = result.stages["members"]
    assert result.status == SyncStatus.SUCCESS
    assert stage.status == SyncStatus.SUCCESS
    assert stage.metrics.inserted == 3
    assert stage.watermark_advanced is True

    assert set(members) == {"101", "102", "201"}
    alice = members["101"]
    assert alice.caucus_short_name == "CPC"
    assert alice.province == "Ontario"
    assert alice.bills_sponsored == 2
    assert {item["committee_name"] for item in alice.committees} == {"Finance", "Ethics"}
    assert alice.source_attributes == {"website": "https://example.test/alice"}
    assert "short_summary" not in alice.source_attributes
    assert "keywords" not in alice.source_attributes

    # Senators are stored from listing data only
    assert api.count("/members/201") == 0
    assert members["201"].chamber == "Senate"


def test_member_sync_second_run_writes_nothing(api, make_settings, database) -> None:
    settings = make_settings()

    async def scenario():
        async with database(settings) as db:
            orchestrator = SyncOrchestrator(db, settings, transport=api.transport())
            first = await orchestrator.run(["members"])
            second = await orchestrator.run(["members"])
            async with db.session() as session:
                count = await MemberRepository(session).count()
                cursor = await SyncCursorRepository(session).get("members")
                logs = await SyncLogRepository(session).get_recent_logs(entity="members")
            return first, second, count, cursor, logs

    first, second, count, cursor, logs = asyncio.run(scenario())

    assert first.stages["members"].metrics.inserted == 3
    stage = second.stages["members"]
    assert stage.metrics.inserted == 0
    assert stage.metrics.updated == 0
    assert stage.metrics.items_skipped == 3
    assert stage.since is not None
    assert count == 3
    assert cursor == second.stages["members"].started_at
    assert len(logs) == 2
    assert logs[0].parliament is None


def test_forced_full_backfill_updates_and_preserves_created_at(api, make_settings, database) -> None:
    settings = make_settings()
    forced = make_settings(sync={"force_full_backfill": ["members"]})

    async def scenario():
        async with database(settings) as db:
            await SyncOrchestrator(db, settings, transport=api.transport()).run(["members"])
            async with db.session() as session:
                before = {m.person_id: (m.created_at, m.updated_at) for m in await MemberRepository(session).list_all()}

            api.members[0]["full_name"] = "Alice Able-Baker"
            result = await SyncOrchestrator(db, forced, transport=api.transport()).run(["members"])
            async with db.session() as session:
                after = {m.person_id: m for m in await MemberRepository(session).list_all()}
            return before, result, after

    before, result, after = asyncio.run(scenario())

    stage = result.stages["members"]
    assert stage.since is None
    assert stage.metrics.inserted == 0
    assert stage.metrics.updated == 3
    assert after["101"].full_name == "Alice Able-Baker"
    for person_id, (created_at, updated_at) in before.items():
        assert after[person_id].created_at == created_at
        assert after[person_id].updated_at >= updated_at


def test_member_detail_failure_falls_back_to_listing_data(api, make_settings, database) -> None:
    settings = make_settings()
    api.fail("/members/102", 500)

    async def scenario():
        async with database(settings) as db:
            result = await SyncOrchestrator(db, settings, transport=api.transport()).run(["members"])
            async with db.session() as session:
                bob = await MemberRepository(session).get("102")
            return result, bob

    result, bob = asyncio.run(scenario())

    stage = result.stages["members"]
    assert stage.status == SyncStatus.SUCCESS
    assert stage.metrics.detail_fallbacks == 1
    assert stage.watermark_advanced is True
    assert bob.full_name == "Bob Brown"
    assert not bob.committees


def test_detail_fallback_does_not_clear_stored_details(api, make_settings, database) -> None:
    settings = make_settings()
    forced = make_settings(sync={"force_full_backfill": ["members"]})

    async def scenario():
        async with database(settings) as db:
            await SyncOrchestrator(db, settings, transport=api.transport()).run(["members"])
            api.fail("/members/101", 500)
            api.members[0]["full_name"] = "Alice Able-Baker"
            result = await SyncOrchestrator(db, forced, transport=api.transport()).run(["members"])
            async with db.session() as session:
                alice = await MemberRepository(session).get("101")
                bob = await MemberRepository(session).get("102")
            return result, alice, bob

    result, alice, bob = asyncio.run(scenario())

    stage = result.stages["members"]
    assert stage.metrics.detail_fallbacks == 1
    assert stage.metrics.updated == 3
    assert alice.full_name == "Alice Able-Baker"
    assert [item["committee_name"] for item in alice.committees] == ["Finance", "Finance", "Ethics"]
    assert alice.associations == [{"organization": "Canada-France"}]
    assert len(alice.election_history) == 3
    assert [item["committee_name"] for item in bob.committees] == ["Health"]


def test_member_without_created_at_is_backfilled_even_when_unchanged(api, make_settings, database) -> None:
    settings = make_settings()

    async def scenario():
        async with database(settings) as db:
            orchestrator = SyncOrchestrator(db, settings, transport=api.transport())
            await orchestrator.run(["members"])
            del api.members[1]["created_at"]
            return await orchestrator.run(["members"])

    result = asyncio.run(scenario())

    stage = result.stages["members"]
    assert stage.metrics.items_kept == 1
    assert stage.metrics.updated == 1


def test_malformed_member_is_skipped_without_blocking_watermark(api, make_settings, database) -> None:
    settings = make_settings()
    api.members.append({"full_name": "No Id", "chamber": "Senate"})

    async def scenario():
        async with database(settings) as db:
            return await SyncOrchestrator(db, settings, transport=api.transport()).run(["members"])

    result = asyncio.run(scenario())

    stage = result.stages["members"]
    assert stage.status == SyncStatus.SUCCESS
    assert stage.metrics.inserted == 3
    assert stage.errors[0].error_type == "FieldMappingError"
    assert stage.errors[0].fatal is False
    assert stage.watermark_advanced is True
