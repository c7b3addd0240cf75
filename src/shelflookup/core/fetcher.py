"""Bounded-retry HTTP access for catalog and cover services."""

from __future__ import annotations

import asyncio
import os
import time

import httpx
import structlog

from .errors import HttpStatusError, TransportError
from .models import RetryPolicy

log = structlog.get_logger()

FETCH_TIMEOUT = float(os.environ.get("LOOKUP_TIMEOUT", "10"))
PROBE_TIMEOUT = float(os.environ.get("PROBE_TIMEOUT", "6"))
MAX_RETRIES = int(os.environ.get("LOOKUP_MAX_RETRIES", "2"))
BACKOFF_BASE = float(os.environ.get("LOOKUP_BACKOFF", "0.5"))

DEFAULT_POLICY = RetryPolicy(
    max_attempts=MAX_RETRIES + 1, timeout=FETCH_TIMEOUT, backoff_base=BACKOFF_BASE
)

# Open Library API compliance (https://openlibrary.org/developers/api)
# Identified requests get 3 req/s; unidentified get 1 req/s.
_OL_CONTACT = os.environ.get("OL_CONTACT_EMAIL", "")
OL_USER_AGENT = f"ShelfLookup/0.1.0 ({_OL_CONTACT})" if _OL_CONTACT else "ShelfLookup/0.1.0"
OL_MIN_INTERVAL = float(os.environ.get("OL_MIN_INTERVAL", "0.35"))

NO_CACHE_HEADERS = {"Cache-Control": "no-cache", "Pragma": "no-cache"}


def _is_open_library(url: httpx.URL) -> bool:
    host = url.host or ""
    return host == "openlibrary.org" or host.endswith(".openlibrary.org")


def _classify_transport_error(e: httpx.TransportError) -> TransportError:
    # Timeouts and network-level failures are worth another attempt; protocol
    # and proxy misconfiguration are not.
    retryable = isinstance(e, (httpx.TimeoutException, httpx.NetworkError))
    return TransportError(f"{type(e).__name__}: {e}", retryable=retryable)


class RetryingFetcher:
    """GET with bounded linear-backoff retries, plus single-shot HEAD probes.

    All requests go through one shared httpx.AsyncClient. Requests to Open
    Library hosts are identified with a User-Agent and spaced by
    ``ol_min_interval`` seconds.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy = DEFAULT_POLICY,
        probe_timeout: float = PROBE_TIMEOUT,
        ol_min_interval: float = OL_MIN_INTERVAL,
    ) -> None:
        self.client = client
        self.policy = policy
        self.probe_timeout = probe_timeout
        self.ol_min_interval = ol_min_interval
        self._ol_last_request: float = 0.0  # monotonic timestamp of last OL request
        self._ol_lock = asyncio.Lock()

    async def _throttle(self, url: httpx.URL, headers: dict[str, str]) -> None:
        if not _is_open_library(url):
            return
        headers["User-Agent"] = OL_USER_AGENT
        if self.ol_min_interval <= 0:
            return
        async with self._ol_lock:
            elapsed = time.monotonic() - self._ol_last_request
            if elapsed < self.ol_min_interval:
                await asyncio.sleep(self.ol_min_interval - elapsed)
            self._ol_last_request = time.monotonic()

    async def _get_once(self, url: str) -> bytes:
        target = httpx.URL(url)
        headers: dict[str, str] = {}
        await self._throttle(target, headers)
        try:
            resp = await self.client.get(
                target,
                headers=headers,
                timeout=self.policy.timeout,
                follow_redirects=True,
            )
        except httpx.TransportError as e:
            raise _classify_transport_error(e) from e

        if not 200 <= resp.status_code <= 299:
            raise HttpStatusError(resp.status_code, url)
        return resp.content

    async def fetch(self, url: str, max_retries: int | None = None) -> bytes:
        """GET ``url`` and return the body.

        Retries transport failures, 429 and 5xx up to ``max_retries`` times
        (default from the policy), sleeping ``(attempt + 1) * backoff_base``
        between attempts. Anything else is raised immediately.
        """
        attempts = self.policy.max_attempts if max_retries is None else max(max_retries, 0) + 1
        for attempt in range(attempts):
            try:
                return await self._get_once(url)
            except (TransportError, HttpStatusError) as e:
                if not e.retryable or attempt + 1 >= attempts:
                    raise
                delay = self.policy.backoff(attempt)
                log.info(
                    "fetch_retry",
                    url=url,
                    attempt=attempt + 1,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
        # attempts is always >= 1, so the loop returns or raises
        raise AssertionError("unreachable")

    async def head(self, url: str) -> httpx.Response:
        """Issue one HEAD request with the probe timeout, bypassing caches."""
        target = httpx.URL(url)
        headers = dict(NO_CACHE_HEADERS)
        await self._throttle(target, headers)
        try:
            return await self.client.head(
                target,
                headers=headers,
                timeout=self.probe_timeout,
                follow_redirects=True,
            )
        except httpx.TransportError as e:
            raise _classify_transport_error(e) from e
