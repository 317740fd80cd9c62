"""
Vote tally builder.

For every division of a session, every roster member is placed in
exactly one of present (Yea, Nay or Abstain cast), paired (Paired cast)
or absent (no cast, or a cast whose decision is unknown). Senate members
get per-member records but never count towards the House roster size,
the division counts or the party tallies.

Responsibility: Per-member division records and per-division participation stats
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from ..models.records import Decision, PRESENT_DECISIONS
from .member_profiles import MemberProfile

PRESENT = "present"
PAIRED = "paired"
ABSENT = "absent"

PARTY_DECISIONS = (Decision.YEA, Decision.NAY, Decision.PAIRED, Decision.ABSTAIN)


@dataclass
class TallyResult:
    member_vote_records: List[Dict[str, Any]] = field(default_factory=list)
    vote_stats: List[Dict[str, Any]] = field(default_factory=list)


def classify_cast(decision_value: Any) -> Tuple[str, Decision]:
    """Attendance status for a recorded cast."""
    decision = Decision.normalize(decision_value)
    if decision == Decision.PAIRED:
        return PAIRED, decision
    if decision in PRESENT_DECISIONS:
        return PRESENT, decision
    return ABSENT, decision


def division_label(division: Any) -> str:
    return division.bill_number or division.title or f"Division {division.division_number}"


def participation_rate(present: int, paired: int, roster_size: int) -> float:
    if roster_size <= 0:
        return 0.0
    return round((present + paired) / roster_size * 100, 1)


def build_tally(
    parliament: str,
    session: str,
    directory: Mapping[str, MemberProfile],
    divisions: Iterable[Any],
    casts: Iterable[Any],
    computed_at: datetime,
) -> TallyResult:
    """
    Build member vote records and vote stats for one session.

    Args:
        directory: Member profiles keyed by person id (the roster)
        divisions: Division rows for the session
        casts: Cast rows for the session
        computed_at: Timestamp stamped on every derived row
    """
    casts_by_division: Dict[int, Dict[str, Any]] = defaultdict(dict)
    for cast in casts:
        casts_by_division[cast.division_number][str(cast.person_id)] = cast.decision_value

    roster = sorted(directory.values(), key=lambda profile: profile.person_id)
    house_size = sum(1 for profile in roster if profile.is_house)

    result = TallyResult()
    for division in divisions:
        division_casts = casts_by_division.get(division.division_number, {})
        counts = {PRESENT: 0, PAIRED: 0, ABSENT: 0}
        by_party: Dict[str, Dict[str, int]] = {}

        for profile in roster:
            if profile.person_id in division_casts:
                status, decision = classify_cast(division_casts[profile.person_id])
                decision_value = decision.value
            else:
                status, decision, decision_value = ABSENT, None, None

            result.member_vote_records.append({
                "parliament": parliament,
                "session": session,
                "division_number": division.division_number,
                "person_id": profile.person_id,
                "status": status,
                "decision_value": decision_value,
                "vote_date": division.date,
                "member_name": profile.full_name,
                "party": profile.party,
                "province": profile.province,
                "constituency": profile.constituency,
                "chamber": profile.chamber.value,
                "computed_at": computed_at,
            })

            if not profile.is_house:
                continue
            counts[status] += 1
            if decision in PARTY_DECISIONS:
                tally = by_party.setdefault(
                    profile.caucus, {item.value: 0 for item in PARTY_DECISIONS}
                )
                tally[decision.value] += 1

        result.vote_stats.append({
            "parliament": parliament,
            "session": session,
            "division_number": division.division_number,
            "date": division.date,
            "label": division_label(division),
            "bill_number": division.bill_number,
            "result": division.result,
            "house_roster_size": house_size,
            "present_count": counts[PRESENT],
            "paired_count": counts[PAIRED],
            "absent_count": counts[ABSENT],
            "participation_rate": participation_rate(counts[PRESENT], counts[PAIRED], house_size),
            "by_party": by_party,
            "computed_at": computed_at,
        })

    return result
