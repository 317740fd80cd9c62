import asyncio

import pytest

from legisync.config import DatabaseConfig, Settings, SyncConfig
from legisync.exceptions import FieldMappingError
from legisync.models.field_mapping import SCHEMA_REVISION, get_mapping, redact
from legisync.models.records import Decision, MemberRecord, VoteCastRecord, build_record, canonical_id
from legisync.utils.dedupe import dedupe_by_key
from legisync.utils.rate_limiter import RateLimiter
from legisync.utils.retry import calculate_backoff


def test_force_full_backfill_accepts_lists_json_and_comma_separated() -> None:
    assert SyncConfig(force_full_backfill="members, votes").force_full_backfill == ["members", "votes"]
    assert SyncConfig(force_full_backfill='["bills"]').force_full_backfill == ["bills"]
    assert SyncConfig(force_full_backfill=["interventions"]).forces_full_backfill("interventions")
    assert SyncConfig(force_full_backfill="all").forces_full_backfill("vote_casts")
    assert not SyncConfig().forces_full_backfill("members")


def test_force_full_backfill_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("SYNC_FORCE_FULL_BACKFILL", "members,bills")
    monkeypatch.setenv("SYNC_PARLIAMENT", "44")

    config = SyncConfig()

    assert config.force_full_backfill == ["members", "bills"]
    assert config.parliament == "44"


def test_database_url_is_normalized_to_async_driver() -> None:
    assert DatabaseConfig(database_url="postgresql://u:p@db/xbill").connection_string == "postgresql+asyncpg://u:p@db/xbill"
    sqlite = DatabaseConfig(database_url="sqlite:///local.db")
    assert sqlite.connection_string == "sqlite+aiosqlite:///local.db"
    assert sqlite.is_sqlite


def test_for_run_overrides_sync_target_only() -> None:
    base = Settings(sync=SyncConfig(parliament="45", session="1"))
    run = base.for_run(parliament=44, session="2", force_full_backfill=["votes"])

    assert (run.sync.parliament, run.sync.session) == ("44", "2")
    assert run.sync.force_full_backfill == ["votes"]
    assert base.sync.parliament == "45"
    assert base.for_run() is base


def test_required_field_missing_raises_mapping_error() -> None:
    with pytest.raises(FieldMappingError) as excinfo:
        build_record(MemberRecord, "members", {"full_name": "No Id"})

    assert excinfo.value.field == "person_id"
    assert excinfo.value.revision == SCHEMA_REVISION


def test_first_non_empty_alias_wins() -> None:
    values = get_mapping("members").extract({"person_id": 5, "full_name": "", "name": "Fallback Name"})
    assert values["full_name"] == "Fallback Name"


def test_leftovers_exclude_mapped_redacted_and_bookkeeping_keys() -> None:
    raw = {
        "number": "C-1",
        "title": "An Act",
        "summary": "long",
        "keywords": ["x"],
        "created_at": "2025-01-01",
        "_id": "abc",
        "royal_assent": True,
    }
    assert get_mapping("bills").leftovers(raw) == {"royal_assent": True}
    assert "summary" not in redact(raw)


def test_envelope_items_are_extracted_by_list_key() -> None:
    mapping = get_mapping("vote_casts")
    assert mapping.extract_items({"votes_cast": [{"person_id": 1}, "junk"]}) == [{"person_id": 1}]
    assert mapping.extract_items([{"person_id": 2}]) == [{"person_id": 2}]
    assert mapping.extract_items({"unexpected": []}) == []


def test_unknown_revision_is_rejected() -> None:
    with pytest.raises(KeyError):
        get_mapping("members", "xbill-v0")


def test_decisions_and_ids_are_canonicalized() -> None:
    record = build_record(
        VoteCastRecord, "vote_casts", {"person_id": 101.0, "how": "YEA"},
        parliament=45, session=1, division_number=3,
    )
    assert record.person_id == "101"
    assert record.parliament == "45"
    assert record.decision_value == Decision.YEA.value
    assert Decision.normalize("something else") == Decision.UNKNOWN
    assert canonical_id("  ") is None


def test_dedupe_keeps_last_record_in_first_position() -> None:
    records = [{"k": 1, "v": "old"}, {"k": 2, "v": "x"}, {"k": 1, "v": "new"}, {"k": None, "v": "dropped"}]
    unique, duplicates = dedupe_by_key(records, lambda record: record["k"])

    assert duplicates == 1
    assert unique == [{"k": 1, "v": "new"}, {"k": 2, "v": "x"}]


def test_backoff_is_capped() -> None:
    assert calculate_backoff(0, base_delay=2.0, max_delay=60.0, jitter=False) == 2.0
    assert calculate_backoff(3, base_delay=2.0, max_delay=60.0, jitter=False) == 16.0
    assert calculate_backoff(10, base_delay=2.0, max_delay=60.0, jitter=False) == 60.0
    assert 1.0 <= calculate_backoff(0, base_delay=2.0) <= 2.0


def test_rate_limiter_pause_is_shared_and_resettable() -> None:
    with pytest.raises(ValueError):
        RateLimiter(rate=0)

    async def scenario():
        limiter = RateLimiter(rate=1000, burst=2)
        await limiter.acquire()
        limiter.pause(30)
        limiter.pause(0)
        paused = limiter.is_paused()
        limiter.reset()
        return limiter, paused

    limiter, paused = asyncio.run(scenario())

    assert paused is True
    assert limiter.pause_count == 1
    assert limiter.is_paused() is False
    assert limiter.tokens == 2.0


def test_omitted_columns_are_left_out_of_the_update_set() -> None:
    record = build_record(MemberRecord, "members", {"person_id": 7, "full_name": "Pat"})
    assert {"committees", "from_datetime"} <= set(record.column_values())

    record.omit(*MemberRecord.DETAIL_FIELDS)
    values = record.column_values()

    assert values["full_name"] == "Pat"
    assert not set(MemberRecord.DETAIL_FIELDS) & set(values)
