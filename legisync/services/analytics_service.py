"""
Analytics service.

Runs the compute engine over the synchronized store and serves the
derived collections to callers (CLI, Prefect flows, an HTTP layer).

A compute pass reads the roster, divisions and casts, builds the tally
and the rankings in memory, then deletes the previous snapshot and
writes the new one inside one transaction. Passes for the same
(parliament, session) are serialized twice: by an in-process lock shared
by every service instance on the event loop, and by a store-level lock
taken at the start of the compute transaction (PostgreSQL advisory lock).

Responsibility: Trigger compute and read derived analytics
"""

import asyncio
from typing import Any, Dict, List, Optional, Tuple
import logging
import weakref

from ..analytics.member_profiles import build_directory
from ..analytics.ranking import compute_member_stats
from ..analytics.vote_tally import build_tally
from ..db.models import MemberStatModel, MemberVoteRecordModel, VoteStatModel
from ..db.repositories.member_repository import MemberRepository
from ..db.repositories.session_repository import SessionRepository
from ..db.repositories.stats_repository import StatsRepository
from ..db.repositories.vote_repository import VoteCastRepository, VoteRepository
from ..db.session import Database
from ..models.adapter_models import ComputeResult
from ..utils.timestamps import utcnow

logger = logging.getLogger(__name__)

MAX_MEMBER_STATS_LIMIT = 500

MEMBER_STATS_SORT_FIELDS = frozenset({
    "activity_index_score",
    "presence_rate",
    "tenure_months",
    "years_in_house",
    "elections_won",
    "interventions_count",
    "committee_interventions_count",
    "bills_sponsored_current",
    "committees_count",
    "associations_count",
    "interventions_per_month",
    "committee_per_month",
    "political_alignment_score",
    "present_count",
    "paired_count",
    "absent_count",
    "total_votes",
    "full_name",
    "party",
    "province",
})


def _as_dict(row: Any) -> Dict[str, Any]:
    return {column.name: getattr(row, column.name) for column in row.__table__.columns if column.name != "id"}


def _mean(values: List[float]) -> float:
    return sum(values) / len(values) if values else 0.0


# Compute locks per event loop, then per (parliament, session)
_COMPUTE_LOCKS: "weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Dict[Tuple[str, str], asyncio.Lock]]" = (
    weakref.WeakKeyDictionary()
)


def compute_lock(parliament: str, session: str) -> asyncio.Lock:
    """In-process lock for one session snapshot, shared by all AnalyticsService instances."""
    locks = _COMPUTE_LOCKS.setdefault(asyncio.get_running_loop(), {})
    key = (str(parliament), str(session))
    if key not in locks:
        locks[key] = asyncio.Lock()
    return locks[key]


class AnalyticsService:
    """
    Compute trigger and read surface for derived analytics.

    Example:
        service = AnalyticsService(db, metrics_version="v3")
        result = await service.run_compute("45", "1")
        top = await service.member_stats("45", "1", limit=10)
    """

    def __init__(self, database: Database, metrics_version: str = "v3"):
        self.database = database
        self.metrics_version = metrics_version

    async def run_compute(self, parliament: str, session: str) -> ComputeResult:
        """
        Rebuild every derived collection for one session.

        Returns:
            ComputeResult with the number of rows written per collection
        """
        parliament, session = str(parliament), str(session)
        async with compute_lock(parliament, session):
            logger.info(f"Computing analytics for {parliament}-{session}")
            computed_at = utcnow()

            async with self.database.session() as db_session:
                stats_repository = StatsRepository(db_session)
                await stats_repository.lock_snapshot(parliament, session)

                members = await MemberRepository(db_session).list_all()
                divisions = await VoteRepository(db_session).list_session(parliament, session)
                casts = await VoteCastRepository(db_session).list_session(parliament, session)

                directory = build_directory(members, computed_at)
                tally = build_tally(parliament, session, directory, divisions, casts, computed_at)
                member_stats = compute_member_stats(
                    parliament,
                    session,
                    directory,
                    tally.member_vote_records,
                    self.metrics_version,
                    computed_at,
                )
                logger.info(
                    f"Computed {len(tally.vote_stats)} vote stats and "
                    f"{len(member_stats)} member stats from {len(casts)} casts"
                )

                await stats_repository.replace_snapshot(
                    parliament,
                    session,
                    tally.member_vote_records,
                    tally.vote_stats,
                    member_stats,
                )
                await SessionRepository(db_session).record_compute(
                    parliament,
                    session,
                    total_members_computed=len(member_stats),
                    computed_at=computed_at,
                    metrics_version=self.metrics_version,
                )

        logger.info(f"Analytics complete for {parliament}-{session}")
        return ComputeResult(
            parliament=parliament,
            session=session,
            votes_processed=len(divisions),
            member_vote_records_written=len(tally.member_vote_records),
            member_stats_written=len(member_stats),
            vote_stats_written=len(tally.vote_stats),
            metrics_version=self.metrics_version,
            computed_at=computed_at,
        )

    async def vote_stats(self, parliament: str, session: str) -> List[Dict[str, Any]]:
        """Per-division participation, ordered by date then division number."""
        async with self.database.session() as db_session:
            rows: List[VoteStatModel] = await StatsRepository(db_session).list_vote_stats(
                str(parliament), str(session)
            )
        return [_as_dict(row) for row in rows]

    async def member_stats(
        self,
        parliament: str,
        session: str,
        party: Optional[str] = None,
        province: Optional[str] = None,
        sort: str = "activity_index_score",
        order: str = "desc",
        limit: int = MAX_MEMBER_STATS_LIMIT,
    ) -> List[Dict[str, Any]]:
        """
        Member metrics with optional party/province filters.

        Raises:
            ValueError: unknown sort field or order
        """
        if sort not in MEMBER_STATS_SORT_FIELDS:
            raise ValueError(f"Unsupported sort field '{sort}'")
        if order not in ("asc", "desc"):
            raise ValueError(f"Unsupported sort order '{order}'")
        limit = max(1, min(int(limit), MAX_MEMBER_STATS_LIMIT))

        async with self.database.session() as db_session:
            rows: List[MemberStatModel] = await StatsRepository(db_session).list_member_stats(
                str(parliament),
                str(session),
                party=party,
                province=province,
                sort=sort,
                descending=order == "desc",
                limit=limit,
            )
        return [_as_dict(row) for row in rows]

    async def member_vote_records(
        self,
        parliament: str,
        session: str,
        person_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        async with self.database.session() as db_session:
            rows: List[MemberVoteRecordModel] = await StatsRepository(db_session).list_member_vote_records(
                str(parliament), str(session), person_id=person_id
            )
        return [_as_dict(row) for row in rows]

    async def member_profile(
        self,
        person_id: str,
        parliament: str,
        session: str,
    ) -> Optional[Dict[str, Any]]:
        """
        One member's stats with party and province comparisons.

        Returns:
            Profile dict, or None when the member has no stats for the session
        """
        parliament, session = str(parliament), str(session)
        async with self.database.session() as db_session:
            repo = StatsRepository(db_session)
            member = await repo.get_member_stat(str(person_id), parliament, session)
            if member is None:
                return None
            cohort = await repo.list_member_stats(parliament, session, limit=MAX_MEMBER_STATS_LIMIT * 2)

        party_members = [row for row in cohort if row.caucus_short_name == member.caucus_short_name]
        province_members = [row for row in cohort if row.province == member.province]

        party_presence = round(_mean([row.presence_rate for row in party_members]), 1)
        party_activity = round(_mean([row.activity_index_score for row in party_members]), 2)
        province_activity = round(_mean([row.activity_index_score for row in province_members]), 2)

        profile = _as_dict(member)
        profile["party_average"] = {
            "members": len(party_members),
            "presence_rate": party_presence,
            "activity_index_score": party_activity,
        }
        profile["province_average"] = {
            "members": len(province_members),
            "activity_index_score": province_activity,
        }
        profile["comparisons"] = {
            "presence_above_party_average": member.presence_rate > party_presence,
            "activity_above_party_average": member.activity_index_score > party_activity,
            "activity_above_province_average": member.activity_index_score > province_activity,
        }
        return profile
