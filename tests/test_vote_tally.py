from datetime import datetime
from types import SimpleNamespace

from legisync.analytics.member_profiles import build_directory
from legisync.analytics.vote_tally import ABSENT, PAIRED, PRESENT, build_tally, classify_cast, division_label

from test_member_profiles import NOW, member_row


def division(number, **overrides):
    values = {
        "division_number": number,
        "date": datetime(2025, 6, number),
        "bill_number": None,
        "title": None,
        "result": "Agreed To",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def cast(number, person_id, decision):
    return SimpleNamespace(division_number=number, person_id=person_id, decision_value=decision)


def roster():
    return build_directory(
        [
            member_row(person_id="a", caucus_short_name="CPC", party="Conservative"),
            member_row(person_id="b", caucus_short_name="LPC", party="Liberal"),
            member_row(person_id="c", caucus_short_name="CPC", party="Conservative"),
            member_row(person_id="s", chamber="Senate", caucus_short_name=None, party="ISG"),
        ],
        NOW,
    )


def test_classify_cast() -> None:
    assert classify_cast("yea")[0] == PRESENT
    assert classify_cast("NAY")[0] == PRESENT
    assert classify_cast("Abstain")[0] == PRESENT
    assert classify_cast("paired")[0] == PAIRED
    assert classify_cast("Maybe")[0] == ABSENT
    assert classify_cast(None)[0] == ABSENT


def test_division_label_prefers_bill_number_then_title() -> None:
    assert division_label(division(1, bill_number="C-5", title="Motion")) == "C-5"
    assert division_label(division(2, title="Motion")) == "Motion"
    assert division_label(division(3)) == "Division 3"


def test_participation_rates_for_partial_and_full_attendance() -> None:
    tally = build_tally(
        "45",
        "1",
        roster(),
        [division(1), division(2)],
        [
            cast(1, "a", "Yea"),
            cast(1, "b", "Nay"),
            cast(1, "s", "Yea"),
            cast(2, "a", "Yea"),
            cast(2, "b", "Paired"),
            cast(2, "c", "Abstain"),
        ],
        NOW,
    )

    first, second = tally.vote_stats
    assert first["house_roster_size"] == 3
    assert (first["present_count"], first["paired_count"], first["absent_count"]) == (2, 0, 1)
    assert first["participation_rate"] == 66.7
    assert (second["present_count"], second["paired_count"], second["absent_count"]) == (2, 1, 0)
    assert second["participation_rate"] == 100.0

    assert first["by_party"] == {
        "CPC": {"Yea": 1, "Nay": 0, "Paired": 0, "Abstain": 0},
        "LPC": {"Yea": 0, "Nay": 1, "Paired": 0, "Abstain": 0},
    }
    assert second["by_party"]["CPC"] == {"Yea": 1, "Nay": 0, "Paired": 0, "Abstain": 1}


def test_every_roster_member_gets_exactly_one_record_per_division() -> None:
    directory = roster()
    tally = build_tally(
        "45",
        "1",
        directory,
        [division(1), division(2), division(3)],
        [cast(1, "a", "Yea"), cast(3, "b", "Paired"), cast(3, "zz", "Yea")],
        NOW,
    )

    assert len(tally.member_vote_records) == 3 * len(directory)
    keys = {(record["division_number"], record["person_id"]) for record in tally.member_vote_records}
    assert len(keys) == len(tally.member_vote_records)

    for stats in tally.vote_stats:
        assert stats["present_count"] + stats["paired_count"] + stats["absent_count"] == stats["house_roster_size"]


def test_senate_records_are_kept_but_not_counted() -> None:
    tally = build_tally("45", "1", roster(), [division(1)], [cast(1, "s", "Yea")], NOW)

    senate = [record for record in tally.member_vote_records if record["person_id"] == "s"]
    assert senate[0]["status"] == PRESENT
    assert senate[0]["chamber"] == "senate"
    assert senate[0]["party"] == "Senate"

    stats = tally.vote_stats[0]
    assert stats["present_count"] == 0
    assert stats["absent_count"] == 3
    assert stats["by_party"] == {}


def test_unknown_decision_is_absent_and_missing_cast_has_no_decision() -> None:
    tally = build_tally("45", "1", roster(), [division(1)], [cast(1, "a", "Maybe")], NOW)
    records = {record["person_id"]: record for record in tally.member_vote_records}

    assert records["a"]["status"] == ABSENT
    assert records["a"]["decision_value"] == "Unknown"
    assert records["b"]["status"] == ABSENT
    assert records["b"]["decision_value"] is None
    assert tally.vote_stats[0]["by_party"] == {}


def test_empty_roster_has_zero_participation() -> None:
    tally = build_tally("45", "1", {}, [division(1)], [], NOW)
    assert tally.member_vote_records == []
    assert tally.vote_stats[0]["participation_rate"] == 0.0
