"""
Versioned field mapping for the xBill source schema.

Each entity has one explicit table mapping canonical field names to the
ordered source keys that may carry them. Records are resolved against
the table once, at ingestion; nothing downstream tries alternative
field names.

Responsibility: Source schema revisions, envelope keys, field resolution and redaction
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Tuple

from ..exceptions import FieldMappingError

SCHEMA_REVISION = "xbill-v1"

# Narrative and keyword fields are served by the source but never stored.
REDACTED_FIELDS: FrozenSet[str] = frozenset({
    "short_summary",
    "long_summary",
    "summary",
    "summary_data",
    "keywords",
})

# Bookkeeping keys handled outside the mapping
RESERVED_FIELDS: FrozenSet[str] = frozenset({"_id", "created_at", "updated_at"})


@dataclass(frozen=True)
class FieldSpec:
    """Canonical field and the source keys that may hold it, in priority order."""
    name: str
    sources: Tuple[str, ...]
    required: bool = False


@dataclass(frozen=True)
class EntityMapping:
    """Field table and list-envelope keys for one entity in one schema revision."""
    entity: str
    revision: str
    list_keys: Tuple[str, ...]
    fields: Tuple[FieldSpec, ...]

    @property
    def source_keys(self) -> FrozenSet[str]:
        return frozenset(key for spec in self.fields for key in spec.sources)

    def extract(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """
        Resolve canonical fields from a raw source record.

        The first source key holding a non-empty value wins.

        Raises:
            FieldMappingError: if a required field has no value
        """
        resolved: Dict[str, Any] = {}
        for spec in self.fields:
            value = None
            for key in spec.sources:
                candidate = raw.get(key)
                if candidate is not None and candidate != "":
                    value = candidate
                    break
            if value is None and spec.required:
                raise FieldMappingError(self.entity, spec.name, self.revision)
            resolved[spec.name] = value
        return resolved

    def leftovers(self, raw: Dict[str, Any]) -> Dict[str, Any]:
        """Unmapped source attributes, with redacted and reserved keys removed."""
        consumed = self.source_keys | REDACTED_FIELDS | RESERVED_FIELDS
        return {key: value for key, value in raw.items() if key not in consumed}

    def extract_items(self, body: Any) -> List[Dict[str, Any]]:
        """Pull the item list out of a listing response envelope."""
        if isinstance(body, list):
            return [item for item in body if isinstance(item, dict)]
        if not isinstance(body, dict):
            return []
        for key in self.list_keys:
            items = body.get(key)
            if isinstance(items, list):
                return [item for item in items if isinstance(item, dict)]
        return []


def _fields(*specs: FieldSpec) -> Tuple[FieldSpec, ...]:
    return tuple(specs)


_INTERVENTION_FIELDS = (
    FieldSpec("intervention_id", ("intervention_id", "id"), required=True),
    FieldSpec("parliament", ("parliament_number", "parliament")),
    FieldSpec("session", ("session_number", "session")),
    FieldSpec("intervention_time", ("intervention_time",)),
    FieldSpec("intervention_type", ("intervention_type",)),
    FieldSpec("subject_of_business", ("subject_of_business",)),
    FieldSpec("event_id", ("event_id",)),
    FieldSpec("video_url", ("video_url",)),
)

XBILL_V1: Dict[str, EntityMapping] = {
    "members": EntityMapping(
        entity="members",
        revision=SCHEMA_REVISION,
        list_keys=("members", "data", "results"),
        fields=_fields(
            FieldSpec("person_id", ("person_id",), required=True),
            FieldSpec("full_name", ("full_name", "name", "person_name", "member_name")),
            FieldSpec("chamber", ("chamber", "house", "chamber_name")),
            FieldSpec("party", ("party", "party_name", "member_party")),
            FieldSpec("caucus_short_name", ("caucus_short_name", "caucus_short")),
            FieldSpec("province", ("constituency_province_territory", "province", "province_name", "member_province")),
            FieldSpec("constituency", ("constituency_name", "constituency", "riding", "district", "member_constituency")),
            FieldSpec("political_alignment_score", ("political_alignment_score",)),
            FieldSpec("from_datetime", ("from_datetime",)),
            FieldSpec("election_history", ("election_history",)),
            FieldSpec("committees", ("committees",)),
            FieldSpec("associations", ("associations",)),
            FieldSpec("debate_intervention_count", ("debate_intervention_count",)),
            FieldSpec("committee_intervention_count", ("committee_intervention_count",)),
            FieldSpec("bills_sponsored", ("bills_sponsored_current", "bills_sponsored")),
        ),
    ),
    "votes": EntityMapping(
        entity="votes",
        revision=SCHEMA_REVISION,
        list_keys=("votes", "results"),
        fields=_fields(
            FieldSpec("parliament", ("parliament", "parliament_number"), required=True),
            FieldSpec("session", ("session", "session_number"), required=True),
            FieldSpec("division_number", ("division_number", "decision_division_number"), required=True),
            FieldSpec("date", ("decision_event_datetime", "date", "voted_at", "timestamp")),
            FieldSpec("title", ("title", "question", "decision_division_subject")),
            FieldSpec("bill_number", ("bill_number", "bill_number_code")),
            FieldSpec("result", ("decision_result_name", "result")),
            FieldSpec("yea_total", ("yea_total", "decision_division_number_of_yeas")),
            FieldSpec("nay_total", ("nay_total", "decision_division_number_of_nays")),
            FieldSpec("paired_total", ("paired_total", "decision_division_number_of_paired")),
        ),
    ),
    "vote_casts": EntityMapping(
        entity="vote_casts",
        revision=SCHEMA_REVISION,
        list_keys=("votes_cast", "results", "casts"),
        fields=_fields(
            FieldSpec("person_id", ("person_id",), required=True),
            FieldSpec("decision_value", ("decision_value", "how", "vote", "decision")),
            FieldSpec("member_name", ("member_name", "person_name", "person_full_name")),
            FieldSpec("member_party", ("member_party", "caucus_short_name", "party")),
            FieldSpec("member_province", ("member_province", "province")),
            FieldSpec("member_constituency", ("member_constituency", "constituency_name", "constituency")),
        ),
    ),
    "bills": EntityMapping(
        entity="bills",
        revision=SCHEMA_REVISION,
        list_keys=("bills", "results"),
        fields=_fields(
            FieldSpec("number", ("number", "bill_number"), required=True),
            FieldSpec("title", ("long_title", "title", "name")),
            FieldSpec("short_title", ("short_title",)),
            FieldSpec("status", ("status", "status_name", "latest_completed_major_stage_name")),
            FieldSpec("sponsor_person_id", ("sponsor_person_id", "sponsor_id")),
            FieldSpec("sponsor_name", ("sponsor_name", "sponsor")),
            FieldSpec("introduced_date", ("introduced_date", "introduced_at")),
            FieldSpec("latest_activity", ("latest_activity_datetime", "latest_activity")),
        ),
    ),
    "interventions": EntityMapping(
        entity="interventions",
        revision=SCHEMA_REVISION,
        list_keys=("interventions", "results"),
        fields=_INTERVENTION_FIELDS + (
            FieldSpec("publication_title", ("publication_title",)),
            FieldSpec("bill_mentions", ("bill_mentions",)),
            FieldSpec("hansard_page", ("hansard_page",)),
        ),
    ),
    "committee_interventions": EntityMapping(
        entity="committee_interventions",
        revision=SCHEMA_REVISION,
        list_keys=("interventions", "results"),
        fields=_INTERVENTION_FIELDS + (
            FieldSpec("committee_meeting_id", ("committee_meeting_id",)),
            FieldSpec("committee_code", ("committee_code",)),
            FieldSpec("committee_name", ("committee_name",)),
            FieldSpec("meeting_number", ("meeting_number",)),
            FieldSpec("meeting_date", ("meeting_date",)),
            FieldSpec("is_member", ("is_member",)),
            FieldSpec("affiliation_type", ("affiliation_type",)),
            FieldSpec("person_full_name", ("person_full_name",)),
            FieldSpec("person_constituency", ("person_constituency",)),
            FieldSpec("person_caucus", ("person_caucus",)),
            FieldSpec("person_province", ("person_province",)),
            FieldSpec("sequence_number", ("sequence_number",)),
        ),
    ),
}

FIELD_MAPPINGS: Dict[str, Dict[str, EntityMapping]] = {
    SCHEMA_REVISION: XBILL_V1,
}


def get_mapping(entity: str, revision: str = SCHEMA_REVISION) -> EntityMapping:
    """Look up the mapping for an entity; unknown revisions or entities raise KeyError."""
    try:
        return FIELD_MAPPINGS[revision][entity]
    except KeyError:
        raise KeyError(f"No field mapping for entity '{entity}' in revision '{revision}'") from None


def redact(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Copy of ``raw`` without long free-text fields."""
    return {key: value for key, value in raw.items() if key not in REDACTED_FIELDS}
