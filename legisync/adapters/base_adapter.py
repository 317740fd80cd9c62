"""
Base adapter for the remote data source.

Owns the HTTP client and the process-wide rate limiter, and implements
the two request policies every synchronizer relies on:

- primary listing pages: HTTP 429 is retried with capped exponential
  backoff; exhausting the retries or any other non-OK status raises,
  which is fatal for the owning synchronizer
- secondary detail lookups: HTTP 429 is retried a small fixed number of
  times; any failure returns None so callers fall back to base data

Responsibility: HTTP transport, shared rate limiting and 429 policy
"""

from typing import Any, Dict, Optional
import asyncio
import logging

import httpx

from ..config import SourceConfig
from ..exceptions import RateLimitExhaustedError, SourceError
from ..utils.rate_limiter import RateLimiter
from ..utils.retry import calculate_backoff


class BaseAdapter:
    """
    Base class for remote source adapters.

    Every request goes through ``self.rate_limiter``. Pass the same
    limiter to every adapter used in one run so that a 429 seen by one
    synchronizer backs off all of them.

    Subclasses should NOT:
    - Bypass ``_get_primary`` / ``_get_secondary`` for requests
    - Store paging state between calls (each walk owns its own cursor)
    """

    def __init__(
        self,
        source_name: str,
        config: SourceConfig,
        rate_limiter: Optional[RateLimiter] = None,
        client: Optional[httpx.AsyncClient] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize base adapter.

        Args:
            source_name: Identifier for this adapter (e.g., "xbill")
            config: Remote source settings
            rate_limiter: Shared limiter; a private one is created if omitted
            client: Pre-built HTTP client (closed by its owner, not here)
            transport: Custom transport for a client built here (tests use MockTransport)
        """
        self.source_name = source_name
        self.config = config
        self.rate_limiter = rate_limiter or RateLimiter(
            rate=config.rate_limit_per_second,
            burst=config.rate_limit_burst,
        )

        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers={
                "User-Agent": config.user_agent,
                "Accept": "application/json",
            },
            follow_redirects=True,
            transport=transport,
        )

        self.rate_limit_hits = 0
        self.logger = logging.getLogger(f"adapter.{source_name}")

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "BaseAdapter":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def _get_primary(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a primary listing page and return its decoded JSON body.

        Raises:
            RateLimitExhaustedError: 429 retries exhausted
            SourceError: any other non-OK status, transport error or bad JSON
        """
        attempt = 0
        while True:
            await self.rate_limiter.acquire()
            try:
                response = await self.client.get(path, params=params)
            except httpx.HTTPError as exc:
                raise SourceError(f"Request to {path} failed: {exc}", url=path) from exc

            if response.status_code == 429:
                self.rate_limit_hits += 1
                if attempt >= self.config.max_rate_limit_retries:
                    raise RateLimitExhaustedError(
                        f"Rate limited on {path} after {attempt} retries",
                        status_code=429,
                        url=str(response.url),
                    )
                delay = calculate_backoff(
                    attempt,
                    base_delay=self.config.rate_limit_backoff_seconds,
                    max_delay=self.config.max_backoff_seconds,
                )
                self.logger.warning(
                    f"Rate limited on {path}; backing off {delay:.1f}s "
                    f"(attempt {attempt + 1}/{self.config.max_rate_limit_retries})"
                )
                self.rate_limiter.pause(delay)
                attempt += 1
                continue

            if not response.is_success:
                raise SourceError(
                    f"{self.source_name} API error: {response.status_code} for {path}",
                    status_code=response.status_code,
                    url=str(response.url),
                )

            try:
                return response.json()
            except ValueError as exc:
                raise SourceError(f"Invalid JSON from {path}", url=str(response.url)) from exc

    async def _get_secondary(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """
        GET a secondary detail resource, or None if it cannot be fetched.

        Never raises for HTTP-level failures.
        """
        retries_left = self.config.detail_max_retries
        while True:
            await self.rate_limiter.acquire()
            try:
                response = await self.client.get(path, params=params)
            except httpx.HTTPError as exc:
                self.logger.warning(f"Detail request to {path} failed: {exc}")
                return None

            if response.status_code == 429:
                self.rate_limit_hits += 1
                if retries_left <= 0:
                    self.logger.warning(f"Rate limited on {path}; giving up, using base data")
                    return None
                retries_left -= 1
                self.logger.warning(f"Rate limited on {path}; backing off {self.config.detail_backoff_seconds}s")
                self.rate_limiter.pause(self.config.detail_backoff_seconds)
                continue

            if not response.is_success:
                self.logger.warning(f"Detail fetch {response.status_code} for {path}")
                return None

            try:
                return response.json()
            except ValueError:
                self.logger.warning(f"Invalid JSON from {path}")
                return None

    async def throttle(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)
