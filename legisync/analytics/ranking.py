"""
Ranking engine.

Aggregates per-member participation from the member vote records, joins
the member profiles (whose activity counters come straight from the
source), and derives:

- the activity index, a 0-10 composite of five cohort-normalized
  components, each capped at its weight
- a global and a within-caucus rank and percentile for each tracked metric

Ties are ordered by person id so rankings are reproducible.

Responsibility: Activity index, ranks and percentiles per House member
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
import math
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from .member_profiles import MemberProfile
from .vote_tally import ABSENT, PAIRED, PRESENT

ACTIVITY_WEIGHTS: Dict[str, float] = {
    "interventions_count": 1 / 3,
    "committee_interventions_count": 4 / 15,
    "bills_sponsored_current": 1 / 5,
    "committees_count": 2 / 15,
    "associations_count": 1 / 15,
}

RANKED_METRICS: Tuple[str, ...] = (
    "presence_rate",
    "tenure_months",
    "interventions_count",
    "committee_interventions_count",
    "bills_sponsored_current",
    "activity_index_score",
    "committees_count",
    "associations_count",
)


def cohort_means(rows: Sequence[Mapping[str, Any]]) -> Dict[str, float]:
    """Mean of every activity component input over the cohort (0 for an empty cohort)."""
    if not rows:
        return {name: 0.0 for name in ACTIVITY_WEIGHTS}
    return {
        name: sum(row[name] for row in rows) / len(rows)
        for name in ACTIVITY_WEIGHTS
    }


def activity_components(row: Mapping[str, Any], means: Mapping[str, float]) -> Dict[str, float]:
    """``min(value / mean, 1) * weight`` per component; a zero mean contributes 0."""
    components = {}
    for name, weight in ACTIVITY_WEIGHTS.items():
        mean = means.get(name, 0.0)
        components[name] = 0.0 if mean <= 0 else min(row[name] / mean, 1.0) * weight
    return components


def activity_index(components: Mapping[str, float]) -> float:
    return round(min(sum(components.values()) * 10, 10.0), 2)


def percentile(rank: int, total: int) -> int:
    """``round((N - rank + 1) / N * 100)``, halves rounded up."""
    if total <= 0:
        return 0
    return int(math.floor((total - rank + 1) / total * 100 + 0.5))


def rank_by(rows: Sequence[Mapping[str, Any]], metric: str) -> Dict[str, Tuple[int, int]]:
    """
    Rank rows descending by ``metric``, ties broken by person id.

    Returns:
        person_id -> (rank, percentile)
    """
    ordered = sorted(rows, key=lambda row: (-(row.get(metric) or 0), row["person_id"]))
    total = len(ordered)
    return {
        row["person_id"]: (position, percentile(position, total))
        for position, row in enumerate(ordered, start=1)
    }


def participation_by_member(member_vote_records: Iterable[Mapping[str, Any]]) -> Dict[str, Dict[str, int]]:
    totals: Dict[str, Dict[str, int]] = defaultdict(lambda: {PRESENT: 0, PAIRED: 0, ABSENT: 0, "total": 0})
    for record in member_vote_records:
        bucket = totals[record["person_id"]]
        bucket[record["status"]] += 1
        bucket["total"] += 1
    return totals


def compute_member_stats(
    parliament: str,
    session: str,
    directory: Mapping[str, MemberProfile],
    member_vote_records: Iterable[Mapping[str, Any]],
    metrics_version: str,
    computed_at: datetime,
) -> List[Dict[str, Any]]:
    """
    Build member_stats rows for every House member with vote records.

    Returns:
        Rows ordered by person id
    """
    participation = participation_by_member(member_vote_records)

    rows: List[Dict[str, Any]] = []
    for person_id in sorted(participation):
        profile = directory.get(person_id)
        if profile is None or not profile.is_house:
            continue
        counts = participation[person_id]
        total = counts["total"]
        presence = round((counts[PRESENT] + counts[PAIRED]) / total * 100, 1) if total else 0.0
        tenure = profile.tenure_months

        rows.append({
            "parliament": parliament,
            "session": session,
            "person_id": person_id,
            "full_name": profile.full_name,
            "party": profile.party,
            "caucus_short_name": profile.caucus,
            "province": profile.province,
            "constituency": profile.constituency,
            "chamber": profile.chamber.value,
            "present_count": counts[PRESENT],
            "paired_count": counts[PAIRED],
            "absent_count": counts[ABSENT],
            "total_votes": total,
            "presence_rate": presence,
            "tenure_months": tenure,
            "years_in_house": profile.years_in_house,
            "elections_won": profile.elections_won,
            "interventions_count": profile.interventions_count,
            "committee_interventions_count": profile.committee_interventions_count,
            "bills_sponsored_current": profile.bills_sponsored_current,
            "committees_count": profile.committees_count,
            "associations_count": profile.associations_count,
            "interventions_per_month": round(profile.interventions_count / tenure, 2) if tenure else 0.0,
            "committee_per_month": round(profile.committee_interventions_count / tenure, 2) if tenure else 0.0,
            "political_alignment_score": profile.political_alignment_score,
            "metrics_version": metrics_version,
            "computed_at": computed_at,
        })

    means = cohort_means(rows)
    for row in rows:
        components = activity_components(row, means)
        row["activity_components"] = {name: round(value, 4) for name, value in components.items()}
        row["activity_index_score"] = activity_index(components)

    # Within-party rankings partition by caucus first
    groups: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for row in rows:
        groups[row["caucus_short_name"]].append(row)

    rankings: Dict[str, Dict[str, Dict[str, int]]] = {row["person_id"]: {} for row in rows}
    for metric in RANKED_METRICS:
        overall = rank_by(rows, metric)
        in_party: Dict[str, Tuple[int, int]] = {}
        for members in groups.values():
            in_party.update(rank_by(members, metric))
        for person_id, (rank, pct) in overall.items():
            party_rank, party_pct = in_party[person_id]
            rankings[person_id][metric] = {
                "rank": rank,
                "percentile": pct,
                "rank_in_party": party_rank,
                "percentile_in_party": party_pct,
            }

    for row in rows:
        row["rankings"] = rankings[row["person_id"]]
    return rows
