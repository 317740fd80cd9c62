"""
SQLAlchemy database models for legisync.

Synchronized source tables keyed by their natural keys, sync bookkeeping
(cursors, session summaries, sync logs, dead-lettered writes) and the
derived per-session analytics snapshots.

Responsibility: Define database schema and ORM mappings
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean, DateTime, Float, Index, Integer, JSON, String, Text, UniqueConstraint
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..utils.timestamps import utcnow


class Base(DeclarativeBase):
    """Base class for all ORM models"""
    pass


class SourceColumnsMixin:
    """Columns shared by every table synchronized from the remote source."""

    source_attributes: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    source_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    source_updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    schema_revision: Mapped[str] = mapped_column(String(20), nullable=False, default="xbill-v1")

    # Set on insert only; never overwritten by later upserts
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class MemberModel(SourceColumnsMixin, Base):
    """
    Member of the House or Senate.

    The API-provided activity counters (debate and committee intervention
    counts, bills sponsored) are trusted as-is by the ranking engine.
    """

    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    person_id: Mapped[str] = mapped_column(String(50), nullable=False)

    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    chamber: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    party: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    caucus_short_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    constituency: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    political_alignment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    from_datetime: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    election_history: Mapped[Optional[List[dict]]] = mapped_column(JSON, nullable=True)
    committees: Mapped[Optional[List[dict]]] = mapped_column(JSON, nullable=True)
    associations: Mapped[Optional[List[dict]]] = mapped_column(JSON, nullable=True)

    debate_intervention_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    committee_intervention_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bills_sponsored: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('person_id', name='uq_member_natural_key'),
    )

    def __repr__(self) -> str:
        return f"<MemberModel(person_id={self.person_id}, name={self.full_name})>"


class VoteModel(SourceColumnsMixin, Base):
    """
    Recorded division.

    ``casts_complete`` is owned by the cast synchronizer; ``synced_at`` is
    stamped only by the vote synchronizer, so flipping completion does not
    make a division look freshly synced.
    """

    __tablename__ = "votes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    division_number: Mapped[int] = mapped_column(Integer, nullable=False)

    date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    bill_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    result: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    yea_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    nay_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    paired_total: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    casts_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    casts_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('parliament', 'session', 'division_number', name='uq_vote_natural_key'),
        Index('idx_vote_casts_pending', 'parliament', 'session', 'casts_complete'),
    )

    def __repr__(self) -> str:
        return (
            f"<VoteModel(parliament={self.parliament}, session={self.session}, "
            f"division={self.division_number}, casts_complete={self.casts_complete})>"
        )


class VoteCastModel(SourceColumnsMixin, Base):
    """One member's recorded decision on a division."""

    __tablename__ = "vote_casts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    division_number: Mapped[int] = mapped_column(Integer, nullable=False)
    person_id: Mapped[str] = mapped_column(String(50), nullable=False)

    decision_value: Mapped[str] = mapped_column(String(20), nullable=False, default="Unknown")
    member_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    member_party: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    member_province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    member_constituency: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'parliament', 'session', 'division_number', 'person_id',
            name='uq_vote_cast_natural_key'
        ),
        Index('idx_vote_cast_member', 'person_id', 'parliament', 'session'),
    )

    def __repr__(self) -> str:
        return (
            f"<VoteCastModel(division={self.division_number}, "
            f"person_id={self.person_id}, decision={self.decision_value})>"
        )


class BillModel(SourceColumnsMixin, Base):
    """Bill metadata for one session."""

    __tablename__ = "bills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    number: Mapped[str] = mapped_column(String(20), nullable=False)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)

    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    short_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    sponsor_person_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    sponsor_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    introduced_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    latest_activity: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint('number', 'parliament', 'session', name='uq_bill_natural_key'),
    )

    def __repr__(self) -> str:
        return f"<BillModel(number={self.number}, parliament={self.parliament}, session={self.session})>"


class InterventionModel(SourceColumnsMixin, Base):
    """House floor intervention."""

    __tablename__ = "interventions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    person_id: Mapped[str] = mapped_column(String(50), nullable=False)
    intervention_id: Mapped[str] = mapped_column(String(100), nullable=False)

    intervention_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    intervention_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    subject_of_business: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    publication_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    event_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    bill_mentions: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    hansard_page: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'parliament', 'session', 'person_id', 'intervention_id',
            name='uq_intervention_natural_key'
        ),
    )


class CommitteeInterventionModel(SourceColumnsMixin, Base):
    """Committee meeting intervention."""

    __tablename__ = "committee_interventions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    person_id: Mapped[str] = mapped_column(String(50), nullable=False)
    intervention_id: Mapped[str] = mapped_column(String(100), nullable=False)

    committee_meeting_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    committee_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    committee_name: Mapped[Optional[str]] = mapped_column(String(300), nullable=True)
    meeting_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meeting_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    intervention_time: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    intervention_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    subject_of_business: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_member: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    affiliation_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    person_full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    person_constituency: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    person_caucus: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    person_province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    sequence_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    event_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    video_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'parliament', 'session', 'person_id', 'intervention_id',
            name='uq_committee_intervention_natural_key'
        ),
    )


class SyncCursorModel(Base):
    """Per-entity watermark: start time of the last fully successful pass."""

    __tablename__ = "sync_cursors"

    entity_type: Mapped[str] = mapped_column(String(50), primary_key=True)
    last_successful_timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<SyncCursorModel(entity={self.entity_type}, at={self.last_successful_timestamp})>"


class SessionModel(Base):
    """Summary row per (parliament, session), keyed "P-S"."""

    __tablename__ = "sessions"

    session_key: Mapped[str] = mapped_column(String(25), primary_key=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)

    # Written by the vote synchronizer
    total_votes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    last_sync: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Written by compute
    total_members_computed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    computed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    metrics_version: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class SyncLogModel(Base):
    """
    One row per synchronizer pass.

    Used for monitoring and debugging: what ran, how much it wrote,
    and whether the watermark advanced.
    """

    __tablename__ = "sync_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity: Mapped[str] = mapped_column(String(50), nullable=False)
    parliament: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    session: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    since: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finished_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    duration_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    pages_fetched: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_seen: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    items_kept: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inserted: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    units_deferred: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    dead_lettered: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    watermark_advanced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index('idx_sync_log_entity_status', 'entity', 'status', 'created_at'),
    )

    def __repr__(self) -> str:
        return f"<SyncLogModel(id={self.id}, entity={self.entity}, status={self.status})>"


class FailedWriteModel(Base):
    """Dead-lettered batch whose write retries were exhausted."""

    __tablename__ = "failed_writes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    natural_keys: Mapped[List[Any]] = mapped_column(JSON, nullable=False)
    payload: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    error_type: Mapped[str] = mapped_column(String(100), nullable=False)
    error_message: Mapped[str] = mapped_column(Text, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)


class MemberVoteRecordModel(Base):
    """Derived: one member's status on one division (rebuilt on every compute)."""

    __tablename__ = "member_vote_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    division_number: Mapped[int] = mapped_column(Integer, nullable=False)
    person_id: Mapped[str] = mapped_column(String(50), nullable=False)

    status: Mapped[str] = mapped_column(String(10), nullable=False)
    decision_value: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    vote_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Member snapshot at compute time
    member_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    party: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    constituency: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    chamber: Mapped[str] = mapped_column(String(10), nullable=False)

    computed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            'parliament', 'session', 'division_number', 'person_id',
            name='uq_member_vote_record_natural_key'
        ),
        Index('idx_member_vote_record_member', 'parliament', 'session', 'person_id'),
    )


class VoteStatModel(Base):
    """Derived: participation summary for one division."""

    __tablename__ = "vote_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    division_number: Mapped[int] = mapped_column(Integer, nullable=False)

    date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    bill_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    result: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    house_roster_size: Mapped[int] = mapped_column(Integer, nullable=False)
    present_count: Mapped[int] = mapped_column(Integer, nullable=False)
    paired_count: Mapped[int] = mapped_column(Integer, nullable=False)
    absent_count: Mapped[int] = mapped_column(Integer, nullable=False)
    participation_rate: Mapped[float] = mapped_column(Float, nullable=False)
    by_party: Mapped[Dict[str, Dict[str, int]]] = mapped_column(JSON, nullable=False)

    computed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('parliament', 'session', 'division_number', name='uq_vote_stat_natural_key'),
    )


class MemberStatModel(Base):
    """
    Derived: ranked engagement metrics for one House member in one session.

    ``rankings`` maps each tracked metric to its global and within-party
    rank and percentile. Rows are an immutable snapshot tagged with
    ``metrics_version``.
    """

    __tablename__ = "member_stats"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    parliament: Mapped[str] = mapped_column(String(10), nullable=False)
    session: Mapped[str] = mapped_column(String(10), nullable=False)
    person_id: Mapped[str] = mapped_column(String(50), nullable=False)

    full_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    party: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    caucus_short_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    province: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    constituency: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    chamber: Mapped[str] = mapped_column(String(10), nullable=False)

    present_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    paired_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    absent_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_votes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    presence_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    tenure_months: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    years_in_house: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    elections_won: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interventions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    committee_interventions_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bills_sponsored_current: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    committees_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    associations_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    interventions_per_month: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    committee_per_month: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    political_alignment_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    activity_index_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    activity_components: Mapped[Dict[str, float]] = mapped_column(JSON, nullable=False)
    rankings: Mapped[Dict[str, Dict[str, Any]]] = mapped_column(JSON, nullable=False)

    metrics_version: Mapped[str] = mapped_column(String(20), nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    __table_args__ = (
        UniqueConstraint('parliament', 'session', 'person_id', name='uq_member_stat_natural_key'),
    )

    def __repr__(self) -> str:
        return (
            f"<MemberStatModel(person_id={self.person_id}, "
            f"activity={self.activity_index_score}, version={self.metrics_version})>"
        )
