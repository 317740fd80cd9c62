"""
Normalized source records.

Each model enumerates exactly the columns its synchronizer is allowed
to write. Raw source payloads are resolved through the versioned field
mapping, coerced to canonical types, and redacted before a record is
built, so anything that reaches the store has passed validation.

Responsibility: Typed write patches for every synchronized entity
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Dict, FrozenSet, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from ..utils.timestamps import parse_timestamp
from .field_mapping import SCHEMA_REVISION, get_mapping


class Chamber(str, Enum):
    """Chamber classification used by analytics."""
    HOUSE = "house"
    SENATE = "senate"

    @classmethod
    def classify(cls, value: Any) -> "Chamber":
        """Only an explicit "senate" is Senate; absent or ambiguous values are House."""
        if isinstance(value, str) and value.strip().lower() == "senate":
            return cls.SENATE
        return cls.HOUSE


class Decision(str, Enum):
    """Recorded decision on a division."""
    YEA = "Yea"
    NAY = "Nay"
    ABSTAIN = "Abstain"
    PAIRED = "Paired"
    UNKNOWN = "Unknown"

    @classmethod
    def normalize(cls, value: Any) -> "Decision":
        if isinstance(value, str):
            lookup = value.strip().lower()
            for decision in cls:
                if decision.value.lower() == lookup:
                    return decision
        return cls.UNKNOWN


PRESENT_DECISIONS = frozenset({Decision.YEA, Decision.NAY, Decision.ABSTAIN})


def canonical_id(value: Any) -> Optional[str]:
    """Coerce identifiers (ints, integral floats, padded strings) to canonical strings."""
    if value is None:
        return None
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None


def _as_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


class SourceRecord(BaseModel):
    """Fields shared by every synchronized record."""

    model_config = ConfigDict(use_enum_values=True)

    source_attributes: Dict[str, Any] = Field(default_factory=dict)
    source_created_at: Optional[datetime] = None
    source_updated_at: Optional[datetime] = None
    schema_revision: str = SCHEMA_REVISION

    # Columns this write must leave untouched on an existing row
    _omitted: FrozenSet[str] = PrivateAttr(default_factory=frozenset)

    @field_validator("source_created_at", "source_updated_at", mode="before")
    @classmethod
    def _parse_source_timestamps(cls, v):
        return parse_timestamp(v)

    def omit(self, *fields: str) -> "SourceRecord":
        """Drop ``fields`` from the update set so stored values survive this write."""
        self._omitted = self._omitted | frozenset(fields)
        return self

    def column_values(self) -> Dict[str, Any]:
        """Column/value mapping for an upsert, without omitted columns."""
        return self.model_dump(exclude=set(self._omitted) or None)


R = TypeVar("R", bound=SourceRecord)


def build_record(
    model: Type[R],
    entity: str,
    raw: Dict[str, Any],
    revision: str = SCHEMA_REVISION,
    **overrides: Any
) -> R:
    """
    Resolve a raw payload through the field mapping and build a record.

    Overrides win over mapped values (e.g. the target parliament/session
    stamped onto nested items).

    Raises:
        FieldMappingError: required field missing
        pydantic.ValidationError: value cannot be coerced
    """
    mapping = get_mapping(entity, revision)
    values = mapping.extract(raw)
    values.update(overrides)
    return model(
        **values,
        source_attributes=mapping.leftovers(raw),
        source_created_at=raw.get("created_at"),
        source_updated_at=raw.get("updated_at"),
        schema_revision=revision,
    )


class MemberRecord(SourceRecord):
    """Member write patch (owned by the member synchronizer)."""

    # Only the detail endpoint is guaranteed to carry these
    DETAIL_FIELDS: ClassVar[Tuple[str, ...]] = ("from_datetime", "election_history", "committees", "associations")

    person_id: str
    full_name: Optional[str] = None
    chamber: Optional[str] = None
    party: Optional[str] = None
    caucus_short_name: Optional[str] = None
    province: Optional[str] = None
    constituency: Optional[str] = None
    political_alignment_score: Optional[float] = None
    from_datetime: Optional[datetime] = None
    election_history: List[Dict[str, Any]] = Field(default_factory=list)
    committees: List[Dict[str, Any]] = Field(default_factory=list)
    associations: List[Dict[str, Any]] = Field(default_factory=list)
    debate_intervention_count: int = 0
    committee_intervention_count: int = 0
    bills_sponsored: int = 0

    @field_validator("person_id", mode="before")
    @classmethod
    def _person_id(cls, v):
        return canonical_id(v)

    @field_validator("from_datetime", mode="before")
    @classmethod
    def _from_datetime(cls, v):
        return parse_timestamp(v)

    @field_validator("political_alignment_score", mode="before")
    @classmethod
    def _alignment(cls, v):
        try:
            return float(v) if v is not None else None
        except (TypeError, ValueError):
            return None

    @field_validator("election_history", "committees", "associations", mode="before")
    @classmethod
    def _dict_lists(cls, v):
        return [item for item in _as_list(v) if isinstance(item, dict)]

    @field_validator("debate_intervention_count", "committee_intervention_count", "bills_sponsored", mode="before")
    @classmethod
    def _counters(cls, v):
        return _as_int(v) or 0


class DivisionRecord(SourceRecord):
    """Vote (division) metadata write patch; casts_complete is owned separately."""
    parliament: str
    session: str
    division_number: int
    date: Optional[datetime] = None
    title: Optional[str] = None
    bill_number: Optional[str] = None
    result: Optional[str] = None
    yea_total: Optional[int] = None
    nay_total: Optional[int] = None
    paired_total: Optional[int] = None

    @field_validator("parliament", "session", mode="before")
    @classmethod
    def _session_ids(cls, v):
        return canonical_id(v)

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, v):
        return parse_timestamp(v)

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, v):
        if isinstance(v, dict):
            return v.get("en") or v.get("fr")
        return v

    @field_validator("yea_total", "nay_total", "paired_total", mode="before")
    @classmethod
    def _totals(cls, v):
        return _as_int(v)


class VoteCastRecord(SourceRecord):
    """One member's recorded decision on a division."""
    parliament: str
    session: str
    division_number: int
    person_id: str
    decision_value: Decision = Decision.UNKNOWN
    member_name: Optional[str] = None
    member_party: Optional[str] = None
    member_province: Optional[str] = None
    member_constituency: Optional[str] = None

    @field_validator("parliament", "session", "person_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return canonical_id(v)

    @field_validator("decision_value", mode="before")
    @classmethod
    def _decision(cls, v):
        return Decision.normalize(v)


class BillRecord(SourceRecord):
    """Bill metadata write patch."""
    number: str
    parliament: str
    session: str
    title: Optional[str] = None
    short_title: Optional[str] = None
    status: Optional[str] = None
    sponsor_person_id: Optional[str] = None
    sponsor_name: Optional[str] = None
    introduced_date: Optional[datetime] = None
    latest_activity: Optional[datetime] = None

    @field_validator("number", "parliament", "session", "sponsor_person_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return canonical_id(v)

    @field_validator("title", "short_title", "status", mode="before")
    @classmethod
    def _localized(cls, v):
        if isinstance(v, dict):
            return v.get("en") or v.get("fr")
        return v

    @field_validator("introduced_date", "latest_activity", mode="before")
    @classmethod
    def _dates(cls, v):
        return parse_timestamp(v)


class InterventionRecord(SourceRecord):
    """House floor intervention by one member."""
    parliament: str
    session: str
    person_id: str
    intervention_id: str
    intervention_time: Optional[datetime] = None
    intervention_type: Optional[str] = None
    subject_of_business: Optional[str] = None
    publication_title: Optional[str] = None
    event_id: Optional[str] = None
    video_url: Optional[str] = None
    bill_mentions: List[str] = Field(default_factory=list)
    hansard_page: Optional[str] = None

    @field_validator("parliament", "session", "person_id", "intervention_id", "event_id", "hansard_page", mode="before")
    @classmethod
    def _ids(cls, v):
        return canonical_id(v)

    @field_validator("intervention_time", mode="before")
    @classmethod
    def _time(cls, v):
        return parse_timestamp(v)

    @field_validator("bill_mentions", mode="before")
    @classmethod
    def _mentions(cls, v):
        return [str(item) for item in _as_list(v) if item]


class CommitteeInterventionRecord(SourceRecord):
    """Committee intervention by one member."""
    parliament: str
    session: str
    person_id: str
    intervention_id: str
    committee_meeting_id: Optional[str] = None
    committee_code: Optional[str] = None
    committee_name: Optional[str] = None
    meeting_number: Optional[int] = None
    meeting_date: Optional[datetime] = None
    intervention_time: Optional[datetime] = None
    intervention_type: Optional[str] = None
    subject_of_business: Optional[str] = None
    is_member: bool = False
    affiliation_type: Optional[str] = None
    person_full_name: Optional[str] = None
    person_constituency: Optional[str] = None
    person_caucus: Optional[str] = None
    person_province: Optional[str] = None
    sequence_number: Optional[int] = None
    event_id: Optional[str] = None
    video_url: Optional[str] = None

    @field_validator("parliament", "session", "person_id", "intervention_id", "committee_meeting_id", "event_id", mode="before")
    @classmethod
    def _ids(cls, v):
        return canonical_id(v)

    @field_validator("meeting_date", "intervention_time", mode="before")
    @classmethod
    def _times(cls, v):
        return parse_timestamp(v)

    @field_validator("meeting_number", "sequence_number", mode="before")
    @classmethod
    def _ints(cls, v):
        return _as_int(v)

    @field_validator("is_member", mode="before")
    @classmethod
    def _is_member(cls, v):
        return v is True
