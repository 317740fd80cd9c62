import asyncio

import pytest

from legisync.db.models import CommitteeInterventionModel, InterventionModel
from legisync.db.repositories import InterventionRepository, SyncCursorRepository
from legisync.models.adapter_models import SyncStatus
from legisync.orchestration import STAGES, SyncOrchestrator, resolve_stages


def test_resolve_stages_orders_selection_and_rejects_unknown_names() -> None:
    assert resolve_stages(None) == list(STAGES)
    assert resolve_stages(["vote_casts", "members", "votes"]) == ["members", "votes", "vote_casts"]

    with pytest.raises(ValueError, match="Unknown sync stage"):
        resolve_stages(["members", "speeches"])


def test_full_run_syncs_every_stage(api, make_settings, database) -> None:
    settings = make_settings()

    async def scenario():
        async with database(settings) as db:
            result = await SyncOrchestrator(db, settings, transport=api.transport()).run()
            async with db.session() as session:
                floor = await InterventionRepository(session, InterventionModel).list_for_member("101", "45", "1")
                committee = await InterventionRepository(
                    session, CommitteeInterventionModel
                ).list_for_member("101", "45", "1")
                cursors = await SyncCursorRepository(session).all()
            return result, floor, committee, cursors

    result, floor, committee, cursors = asyncio.run(scenario())

    assert result.status == SyncStatus.SUCCESS
    assert result.failed_stage is None
    assert set(result.stages) == set(STAGES)
    assert all(stage.status == SyncStatus.SUCCESS for stage in result.stages.values())
    assert set(cursors) == set(STAGES)

    # i-2 belongs to another session; i-3 names no session and defaults to the target
    assert [item.intervention_id for item in floor] == ["i-1", "i-3"]
    assert result.stages["interventions"].metrics.items_skipped == 1

    assert len(committee) == 1
    assert committee[0].intervention_id == "7001"
    assert committee[0].meeting_number == 12
    assert committee[0].is_member is True

    # Nested fetches cover House members only
    assert api.count("/members/201/interventions") == 0
    assert api.count("/members/102/interventions") == 1


def test_nested_member_failure_is_partial_and_holds_watermark(api, make_settings, database) -> None:
    settings = make_settings()
    api.fail("/members/102/interventions", 500)

    async def scenario():
        async with database(settings) as db:
            result = await SyncOrchestrator(db, settings, transport=api.transport()).run(
                ["members", "interventions"]
            )
            async with db.session() as session:
                cursor = await SyncCursorRepository(session).get("interventions")
                stored = await InterventionRepository(session).count_session("45", "1")
            return result, cursor, stored

    result, cursor, stored = asyncio.run(scenario())

    stage = result.stages["interventions"]
    assert stage.status == SyncStatus.PARTIAL_SUCCESS
    assert stage.watermark_advanced is False
    assert stage.errors[0].context["person_id"] == "102"
    assert result.status == SyncStatus.PARTIAL_SUCCESS
    assert result.ok is True
    assert cursor is None
    assert stored == 2


def test_fatal_stage_failure_aborts_run_and_cancels_dependents(api, make_settings, database) -> None:
    settings = make_settings()
    api.fail("/votes", 500)

    async def scenario():
        async with database(settings) as db:
            result = await SyncOrchestrator(db, settings, transport=api.transport()).run()
            async with db.session() as session:
                cursor = await SyncCursorRepository(session).get("votes")
            return result, cursor

    result, cursor = asyncio.run(scenario())

    assert result.status == SyncStatus.FAILURE
    assert result.ok is False
    assert result.failed_stage == "votes"
    assert "500" in result.error
    assert result.stages["votes"].status == SyncStatus.FAILURE
    assert result.stages["votes"].errors[-1].fatal is True
    assert result.stages["vote_casts"].status == SyncStatus.CANCELLED
    assert cursor is None
    assert api.count("/votes/45/1/1/cast") == 0


def test_rate_limit_exhaustion_is_fatal(api, make_settings, database) -> None:
    settings = make_settings(source={"max_rate_limit_retries": 2})
    api.fail("/bills", 429, 429, 429)

    async def scenario():
        async with database(settings) as db:
            return await SyncOrchestrator(db, settings, transport=api.transport()).run(["bills"])

    result = asyncio.run(scenario())

    assert result.status == SyncStatus.FAILURE
    assert result.failed_stage == "bills"
    assert result.stages["bills"].errors[-1].error_type == "RateLimitExhaustedError"
    assert api.count("/bills") == 3


def test_unknown_stage_is_rejected_before_any_request(api, make_settings, database) -> None:
    settings = make_settings()

    async def scenario():
        async with database(settings) as db:
            with pytest.raises(ValueError):
                await SyncOrchestrator(db, settings, transport=api.transport()).run(["nope"])

    asyncio.run(scenario())
    assert api.requests == []


def test_rate_limit_exhaustion_on_a_member_sub_fetch_aborts_the_run(api, make_settings, database) -> None:
    settings = make_settings(source={"max_rate_limit_retries": 1, "member_concurrency": 1})
    api.fail("/members/101/interventions", 429, 429, 429)

    async def scenario():
        async with database(settings) as db:
            result = await SyncOrchestrator(db, settings, transport=api.transport()).run(
                ["members", "interventions"]
            )
            async with db.session() as session:
                cursor = await SyncCursorRepository(session).get("interventions")
            return result, cursor

    result, cursor = asyncio.run(scenario())

    stage = result.stages["interventions"]
    assert result.status == SyncStatus.FAILURE
    assert result.failed_stage == "interventions"
    assert stage.status == SyncStatus.FAILURE
    assert stage.errors[-1].error_type == "RateLimitExhaustedError"
    assert stage.errors[-1].fatal is True
    assert api.count("/members/101/interventions") == 2
    assert cursor is None
