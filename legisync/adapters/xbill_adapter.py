"""
xBill API adapter.

Wraps the paginated xBill listing endpoints (members, votes, bills,
per-member interventions and committee interventions) and the detail
endpoints (member detail, per-division cast lists).

Listing responses are envelopes holding an item list plus a pagination
descriptor, e.g. ``{"members": [...], "pagination": {"has_next": true,
"total": 343}}``. Bills page by page number; everything else pages by
offset.

Responsibility: Fetch xBill pages and detail resources
"""

from __future__ import annotations

from typing import Any, AsyncIterator, Dict, List, Optional

from .base_adapter import BaseAdapter
from ..models.adapter_models import Page
from ..models.field_mapping import get_mapping


class XBillAdapter(BaseAdapter):
    """Adapter for xBill endpoints."""

    def __init__(self, config, rate_limiter=None, client=None, transport=None) -> None:
        super().__init__(
            source_name="xbill",
            config=config,
            rate_limiter=rate_limiter,
            client=client,
            transport=transport,
        )

    async def fetch_page(
        self,
        path: str,
        entity: str,
        offset: Optional[int] = None,
        page: Optional[int] = None,
        filters: Optional[Dict[str, Any]] = None,
    ) -> Page:
        """
        Fetch one listing page.

        Args:
            path: Endpoint path relative to the base URL
            entity: Field-mapping entity, selects the envelope list keys
            offset: Offset for offset-paged endpoints
            page: 1-based page number for page-paged endpoints
            filters: Extra query parameters

        Returns:
            Page with the items and the continuation signal
        """
        params: Dict[str, Any] = {"limit": self.config.page_size}
        if offset is not None:
            params["offset"] = offset
        if page is not None:
            params["page"] = page
        if filters:
            params.update(filters)

        body = await self._get_primary(path, params=params)
        items = get_mapping(entity).extract_items(body)

        pagination = body.get("pagination", {}) if isinstance(body, dict) else {}
        has_next = bool(pagination.get("has_next") or pagination.get("has_more"))
        total = pagination.get("total")

        return Page(items=items, has_next=has_next, total=total if isinstance(total, int) else None)

    async def iter_pages(
        self,
        path: str,
        entity: str,
        filters: Optional[Dict[str, Any]] = None,
        paged_by: str = "offset",
    ) -> AsyncIterator[Page]:
        """
        Walk a listing endpoint until the source reports no further pages.

        A short delay separates successive pages. An empty page also ends
        the walk.
        """
        offset = 0
        page_number = 1
        while True:
            if paged_by == "page":
                page = await self.fetch_page(path, entity, page=page_number, filters=filters)
            else:
                page = await self.fetch_page(path, entity, offset=offset, filters=filters)

            if not page.items:
                break

            yield page

            if not page.has_next:
                break
            offset += len(page.items)
            page_number += 1
            await self.throttle(self.config.page_delay_seconds)

    def member_pages(self) -> AsyncIterator[Page]:
        return self.iter_pages("/members", "members", filters={"current": "true"})

    def vote_pages(self, parliament: str, session: str) -> AsyncIterator[Page]:
        return self.iter_pages(
            "/votes",
            "votes",
            filters={"parliament": parliament, "session": session, "sort": "date_asc"},
        )

    def bill_pages(self, parliament: str, session: str) -> AsyncIterator[Page]:
        return self.iter_pages(
            "/bills",
            "bills",
            filters={"session": f"{parliament}-{session}"},
            paged_by="page",
        )

    def member_intervention_pages(self, person_id: str) -> AsyncIterator[Page]:
        return self.iter_pages(f"/members/{person_id}/interventions", "interventions")

    def member_committee_intervention_pages(self, person_id: str) -> AsyncIterator[Page]:
        return self.iter_pages(
            f"/committee-interventions/member/{person_id}",
            "committee_interventions",
        )

    async def fetch_member_detail(self, person_id: str) -> Optional[Dict[str, Any]]:
        """Full member record (roles, committees, associations), or None."""
        await self.throttle(self.config.detail_delay_seconds)
        body = await self._get_secondary(f"/members/{person_id}")
        if isinstance(body, dict):
            member = body.get("member")
            return member if isinstance(member, dict) else body
        return None

    async def fetch_vote_casts(
        self,
        parliament: str,
        session: str,
        division_number: int,
    ) -> Optional[List[Dict[str, Any]]]:
        """Cast list for one division, or None if it could not be fetched."""
        body = await self._get_secondary(f"/votes/{parliament}/{session}/{division_number}/cast")
        if body is None:
            return None
        return get_mapping("vote_casts").extract_items(body)
