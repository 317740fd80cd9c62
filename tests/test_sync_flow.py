import asyncio

import pytest

from legisync.exceptions import SyncRunFailedError
from legisync.models.adapter_models import SyncStatus
from legisync.orchestration import SyncOrchestrator
from legisync.prefect_flows.sync_flow import check_sync_result


def _run(api, settings, database, stages=None):
    async def scenario():
        async with database(settings) as db:
            return await SyncOrchestrator(db, settings, transport=api.transport()).run(stages)

    return asyncio.run(scenario())


def test_failed_run_raises_so_the_task_is_retried(api, make_settings, database) -> None:
    api.fail("/votes", 500)
    result = _run(api, make_settings(), database, ["votes"])

    with pytest.raises(SyncRunFailedError) as excinfo:
        check_sync_result(result)

    assert excinfo.value.failed_stage == "votes"
    assert excinfo.value.result["status"] == SyncStatus.FAILURE.value
    assert excinfo.value.result["stages"]["votes"]["status"] == "failure"


def test_partial_run_is_returned_as_json(api, make_settings, database) -> None:
    api.fail("/members/102/interventions", 500)
    result = _run(api, make_settings(), database, ["members", "interventions"])

    summary = check_sync_result(result)

    assert summary["status"] == SyncStatus.PARTIAL_SUCCESS.value
    assert summary["stages"]["interventions"]["watermark_advanced"] is False
