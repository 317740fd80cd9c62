"""
Member profile resolver.

Builds the in-memory member directory used by compute: chamber
classification, tenure, display fields and the distinct committee and
association counts, from synchronized member rows.

Responsibility: Derive per-member metadata for analytics
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..models.records import Chamber
from ..utils.timestamps import parse_timestamp, utcnow, whole_months_between

QUALIFYING_RESULTS = ("elected", "acclaimed")


@dataclass
class MemberProfile:
    """Analytics view of one member."""

    person_id: str
    full_name: str
    chamber: Chamber
    party: str
    caucus: str
    province: Optional[str]
    constituency: Optional[str]
    tenure_months: int
    elections_won: int
    committees_count: int
    associations_count: int
    interventions_count: int
    committee_interventions_count: int
    bills_sponsored_current: int
    political_alignment_score: Optional[float] = None

    @property
    def is_house(self) -> bool:
        return self.chamber == Chamber.HOUSE

    @property
    def years_in_house(self) -> int:
        return self.tenure_months // 12


def qualifying_elections(history: Optional[Iterable[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Election events whose result type mentions "elected" or "acclaimed"."""
    events = []
    for event in history or []:
        if not isinstance(event, dict):
            continue
        result_type = event.get("election_result_type")
        if isinstance(result_type, str) and any(word in result_type.lower() for word in QUALIFYING_RESULTS):
            events.append(event)
    return events


def tenure_months(member: Any, now: Optional[datetime] = None) -> int:
    """
    Whole months since the member's earliest qualifying election.

    Falls back to the appointment/start date (``from_datetime``); zero
    when neither is known.
    """
    now = now or utcnow()
    dates = [
        stamp
        for stamp in (parse_timestamp(event.get("election_date")) for event in qualifying_elections(member.election_history))
        if stamp is not None
    ]
    start = min(dates) if dates else parse_timestamp(member.from_datetime)
    if start is None:
        return 0
    return whole_months_between(start, now)


def distinct_names(items: Optional[Iterable[Any]], key: str) -> int:
    names = {item.get(key) for item in items or [] if isinstance(item, dict)}
    names.discard(None)
    names.discard("")
    return len(names)


def resolve_profile(member: Any, now: Optional[datetime] = None) -> MemberProfile:
    """
    Build the analytics profile for one member row.

    Senate members display "Senate" in place of caucus, province and
    constituency.
    """
    chamber = Chamber.classify(member.chamber)
    senate = chamber == Chamber.SENATE
    caucus = member.caucus_short_name or member.party or "Unknown"
    return MemberProfile(
        person_id=str(member.person_id),
        full_name=member.full_name or "Unknown",
        chamber=chamber,
        party="Senate" if senate else (member.caucus_short_name or member.party or "Independent"),
        caucus="Senate" if senate else caucus,
        province="Senate" if senate else member.province,
        constituency="Senate" if senate else member.constituency,
        tenure_months=tenure_months(member, now),
        elections_won=len(qualifying_elections(member.election_history)),
        committees_count=distinct_names(member.committees, "committee_name"),
        associations_count=distinct_names(member.associations, "organization"),
        interventions_count=member.debate_intervention_count or 0,
        committee_interventions_count=member.committee_intervention_count or 0,
        bills_sponsored_current=member.bills_sponsored or 0,
        political_alignment_score=member.political_alignment_score,
    )


def build_directory(members: Iterable[Any], now: Optional[datetime] = None) -> Dict[str, MemberProfile]:
    """Profiles keyed by person id."""
    now = now or utcnow()
    return {str(member.person_id): resolve_profile(member, now) for member in members}
