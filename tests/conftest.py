"""Shared fixtures: an in-process fake of the xBill API and test settings."""

from __future__ import annotations

import copy
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import httpx
import pytest

from legisync.config import DatabaseConfig, Settings, SourceConfig, SyncConfig
from legisync.db.session import Database

API_PREFIX = "/api"
BASE_URL = "https://xbill.test/api"

OLD_STAMP = "2024-01-10T12:00:00Z"

MEMBERS: List[Dict[str, Any]] = [
    {
        "person_id": 101,
        "full_name": "Alice Able",
        "chamber": "House",
        "party": "Conservative",
        "caucus_short_name": "CPC",
        "constituency_province_territory": "Ontario",
        "constituency_name": "Ottawa Centre",
        "election_history": [
            {"election_date": "2015-10-19", "election_result_type": "Elected"},
            {"election_date": "2019-10-21", "election_result_type": "Re-elected"},
            {"election_date": "2011-05-02", "election_result_type": "Defeated"},
        ],
        "debate_intervention_count": 30,
        "committee_intervention_count": 10,
        "bills_sponsored_current": 2,
        "short_summary": "A very long biography that is never stored.",
        "website": "https://example.test/alice",
        "created_at": OLD_STAMP,
        "updated_at": OLD_STAMP,
    },
    {
        "person_id": "102",
        "full_name": "Bob Brown",
        "chamber": "House",
        "party": "Liberal",
        "caucus_short_name": "LPC",
        "constituency_province_territory": "Quebec",
        "constituency_name": "Laurier",
        "from_datetime": "2021-09-20T00:00:00Z",
        "debate_intervention_count": 10,
        "committee_intervention_count": 0,
        "bills_sponsored_current": 0,
        "created_at": OLD_STAMP,
        "updated_at": OLD_STAMP,
    },
    {
        "person_id": 201,
        "full_name": "Sam Senator",
        "chamber": "Senate",
        "party": "ISG",
        "created_at": OLD_STAMP,
        "updated_at": OLD_STAMP,
    },
]

MEMBER_DETAILS: Dict[str, Dict[str, Any]] = {
    "101": {
        "member": {
            "person_id": 101,
            "committees": [
                {"committee_name": "Finance"},
                {"committee_name": "Finance"},
                {"committee_name": "Ethics"},
            ],
            "associations": [{"organization": "Canada-France"}],
            "keywords": ["budget", "transit"],
        }
    },
    "102": {
        "member": {
            "person_id": 102,
            "committees": [{"committee_name": "Health"}],
        }
    },
}

VOTES: List[Dict[str, Any]] = [
    {
        "parliament": 45,
        "session": 1,
        "division_number": 1,
        "decision_event_datetime": "2025-06-01T15:00:00Z",
        "bill_number": "C-2",
        "decision_result_name": "Agreed To",
        "updated_at": OLD_STAMP,
    },
    {
        "parliament": 45,
        "session": 1,
        "division_number": 2,
        "decision_event_datetime": "2025-06-02T15:00:00Z",
        "title": "Opposition motion",
        "decision_result_name": "Negatived",
        "updated_at": OLD_STAMP,
    },
    {
        "parliament": 44,
        "session": 1,
        "division_number": 900,
        "decision_event_datetime": "2024-02-02T15:00:00Z",
        "updated_at": OLD_STAMP,
    },
]

CASTS: Dict[int, List[Dict[str, Any]]] = {
    1: [
        {"person_id": 101, "decision_value": "yea"},
        {"person_id": 102, "decision_value": "Paired"},
        {"person_id": 201, "decision_value": "Nay"},
    ],
    2: [
        {"person_id": 101, "decision_value": "Nay"},
    ],
}

BILLS: List[Dict[str, Any]] = [
    {"number": "C-2", "long_title": {"en": "An Act respecting budgets"}, "updated_at": OLD_STAMP},
    {"number": "C-3", "title": "An Act respecting transit", "summary": "long text", "updated_at": OLD_STAMP},
    {"number": "S-201", "title": "An Act respecting senators", "updated_at": OLD_STAMP},
]

INTERVENTIONS: Dict[str, List[Dict[str, Any]]] = {
    "101": [
        {"intervention_id": "i-1", "parliament_number": 45, "session_number": 1, "intervention_type": "Statement"},
        {"intervention_id": "i-2", "parliament_number": 44, "session_number": 1, "intervention_type": "Question"},
        {"intervention_id": "i-3", "intervention_type": "Question"},
    ],
}

COMMITTEE_INTERVENTIONS: Dict[str, List[Dict[str, Any]]] = {
    "101": [
        {
            "intervention_id": 7001,
            "parliament_number": 45,
            "session_number": 1,
            "committee_code": "FINA",
            "committee_name": "Finance",
            "meeting_number": "12",
            "is_member": True,
        },
    ],
}


class FakeXBill:
    """
    In-process stand-in for the xBill API, served through httpx.MockTransport.

    ``fail(path, *codes)`` queues error responses that are returned (in
    order) before the path answers normally again.
    """

    def __init__(self) -> None:
        self.members = copy.deepcopy(MEMBERS)
        self.member_details = copy.deepcopy(MEMBER_DETAILS)
        self.votes = copy.deepcopy(VOTES)
        self.casts: Dict[int, Optional[List[Dict[str, Any]]]] = copy.deepcopy(CASTS)
        self.bills = copy.deepcopy(BILLS)
        self.interventions = copy.deepcopy(INTERVENTIONS)
        self.committee_interventions = copy.deepcopy(COMMITTEE_INTERVENTIONS)
        self.failures: Dict[str, List[int]] = {}
        self.requests: List[httpx.Request] = []

    def fail(self, path: str, *status_codes: int) -> None:
        self.failures.setdefault(path, []).extend(status_codes)

    def count(self, path: str) -> int:
        return sum(1 for request in self.requests if _api_path(request) == path)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = _api_path(request)
        params = request.url.params

        queued = self.failures.get(path)
        if queued:
            return httpx.Response(queued.pop(0), json={"error": "injected failure"})

        if path == "/members":
            return _listing("members", self.members, params)
        if path == "/votes":
            return _listing("votes", self.votes, params)
        if path == "/bills":
            return _listing("bills", self.bills, params)

        parts = path.strip("/").split("/")
        if parts[0] == "members" and len(parts) == 2:
            detail = self.member_details.get(parts[1])
            if detail is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=detail)
        if parts[0] == "members" and len(parts) == 3 and parts[2] == "interventions":
            return _listing("interventions", self.interventions.get(parts[1], []), params)
        if parts[:2] == ["committee-interventions", "member"] and len(parts) == 3:
            return _listing("interventions", self.committee_interventions.get(parts[2], []), params)
        if parts[0] == "votes" and len(parts) == 5 and parts[4] == "cast":
            casts = self.casts.get(int(parts[3]))
            if casts is None:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"votes_cast": casts})

        return httpx.Response(404, json={"error": "not found"})


def _api_path(request: httpx.Request) -> str:
    path = request.url.path
    return path[len(API_PREFIX):] if path.startswith(API_PREFIX) else path


def _listing(key: str, items: List[Dict[str, Any]], params: httpx.QueryParams) -> httpx.Response:
    limit = int(params.get("limit", 100))
    if "page" in params:
        start = (int(params["page"]) - 1) * limit
    else:
        start = int(params.get("offset", 0))
    chunk = items[start:start + limit]
    return httpx.Response(
        200,
        json={
            key: chunk,
            "pagination": {"has_next": start + limit < len(items), "total": len(items)},
        },
    )


def build_settings(source: Optional[Dict[str, Any]] = None, sync: Optional[Dict[str, Any]] = None) -> Settings:
    source_values: Dict[str, Any] = {
        "base_url": BASE_URL,
        "page_size": 2,
        "page_delay_seconds": 0,
        "detail_delay_seconds": 0,
        "rate_limit_per_second": 10000,
        "rate_limit_burst": 10000,
        "rate_limit_backoff_seconds": 0,
        "max_backoff_seconds": 0,
        "detail_backoff_seconds": 0,
    }
    source_values.update(source or {})
    sync_values: Dict[str, Any] = {
        "parliament": "45",
        "session": "1",
        "write_retry_max_wait_seconds": 0,
    }
    sync_values.update(sync or {})
    return Settings(
        db=DatabaseConfig(database_url="sqlite+aiosqlite:///:memory:"),
        source=SourceConfig(**source_values),
        sync=SyncConfig(**sync_values),
    )


@asynccontextmanager
async def open_database(settings: Settings):
    db = Database(settings.db)
    await db.initialize()
    await db.create_tables()
    try:
        yield db
        await db.drop_tables()
    finally:
        await db.close()


@pytest.fixture
def api() -> FakeXBill:
    return FakeXBill()


@pytest.fixture
def make_settings():
    return build_settings


@pytest.fixture
def database():
    return open_database
