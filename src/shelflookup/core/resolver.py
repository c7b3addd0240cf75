"""Phased fallback resolution of scanned codes and titles to books."""

from __future__ import annotations

import asyncio

import httpx
import structlog

from .catalogs import ClassifyClient, GoogleBooksClient, OpenLibraryClient, cover_url_for_isbn
from .covers import CoverResolver, append_unique
from .errors import best_effort
from .fetcher import DEFAULT_POLICY, OL_MIN_INTERVAL, PROBE_TIMEOUT, RetryingFetcher
from .isbn import digits_only, is_isbn_length, isbn_candidates
from .models import CatalogQuery, LookupResult, RetryPolicy

log = structlog.get_logger()

# Cover hosts trusted without a reachability probe
TRUSTED_COVER_HOSTS = ("googleapis.com", "books.google")


class FallbackResolver:
    """Resolve a barcode or title against several catalogs in priority order.

    Metadata: Google Books (primary) -> Open Library (secondary) -> OCLC
    Classify (tertiary). Within a phase the providers are queried
    concurrently and every branch is awaited before Google's answer is
    preferred over Open Library's. Later phases only start when earlier
    ones found nothing.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: RetryPolicy = DEFAULT_POLICY,
        probe_timeout: float = PROBE_TIMEOUT,
        ol_min_interval: float = OL_MIN_INTERVAL,
    ) -> None:
        self.fetcher = RetryingFetcher(
            client, policy=policy, probe_timeout=probe_timeout, ol_min_interval=ol_min_interval
        )
        self.google = GoogleBooksClient(self.fetcher)
        self.openlibrary = OpenLibraryClient(self.fetcher)
        self.classify = ClassifyClient(self.fetcher)
        self.covers = CoverResolver(self.fetcher, self.google, self.openlibrary)

    async def _google(self, query: str) -> LookupResult | None:
        return await best_effort(self.google.query(query), CatalogQuery("google", query))

    async def _openlibrary_isbn(self, isbn: str) -> LookupResult | None:
        return await best_effort(self.openlibrary.by_isbn(isbn), CatalogQuery("openlibrary", f"ISBN:{isbn}"))

    async def _openlibrary_search(
        self, query: str, preferred_isbn: str | None = None
    ) -> LookupResult | None:
        return await best_effort(
            self.openlibrary.search(query, preferred_isbn=preferred_isbn),
            CatalogQuery("openlibrary", query),
        )

    async def _classify(self, isbn: str) -> LookupResult | None:
        return await best_effort(self.classify.by_isbn(isbn), CatalogQuery("classify", isbn))

    async def _isbn_phase(self, isbn: str) -> LookupResult | None:
        """Query Google and (for 10/13-digit codes) Open Library concurrently."""
        async with asyncio.TaskGroup() as tg:
            google = tg.create_task(self._google(f"isbn:{isbn}"))
            openlibrary = tg.create_task(self._openlibrary_isbn(isbn)) if is_isbn_length(isbn) else None

        if google.result():
            return google.result()
        if openlibrary is not None:
            return openlibrary.result()
        return None

    async def _search_phase(self, query: str, preferred_isbn: str | None) -> LookupResult | None:
        async with asyncio.TaskGroup() as tg:
            google = tg.create_task(self._google(query))
            openlibrary = tg.create_task(self._openlibrary_search(query, preferred_isbn))
        return google.result() or openlibrary.result()

    async def lookup(self, raw_code: str) -> LookupResult | None:
        """Resolve a scanned barcode or typed code to a book.

        Returns None when no catalog knows the code; never raises for a miss.
        """
        digits = digits_only(raw_code)
        candidates = isbn_candidates(digits)
        if not candidates:
            return None
        log.debug("lookup_start", code=digits, candidates=candidates)

        # Phase 1: ISBN lookups, candidate by candidate
        for candidate in candidates:
            result = await self._isbn_phase(candidate)
            if result:
                log.info("lookup_resolved", code=digits, phase="isbn", isbn=candidate, title=result.title)
                return await self.enrich_and_validate_cover(result, candidates)

        # Phase 2: broad search on the raw digits
        preferred = next((c for c in candidates if is_isbn_length(c)), None)
        result = await self._search_phase(digits, preferred)
        if result:
            log.info("lookup_resolved", code=digits, phase="search", title=result.title)
            return await self.enrich_and_validate_cover(result, candidates)

        # Phase 3: Classify, one ISBN at a time
        for candidate in candidates:
            if not is_isbn_length(candidate):
                continue
            result = await self._classify(candidate)
            if result:
                log.info("lookup_resolved", code=digits, phase="classify", title=result.title)
                return await self.enrich_and_validate_cover(result, candidates)

        log.info("lookup_not_found", code=digits)
        return None

    async def lookup_by_title(self, query: str) -> LookupResult | None:
        """Resolve a free-text title (e.g. from text capture) to a book."""
        trimmed = (query or "").strip()
        if not trimmed:
            return None

        async with asyncio.TaskGroup() as tg:
            google = tg.create_task(self._google(f"intitle:{trimmed}"))
            openlibrary = tg.create_task(self._openlibrary_search(trimmed))

        result = google.result() or openlibrary.result()
        if result is None:
            log.info("title_not_found", query=trimmed)
            return None
        log.info("title_resolved", query=trimmed, title=result.title)
        return await self.enrich_and_validate_cover(result, [])

    async def lookup_cover(self, title: str, author: str, isbn: str) -> str | None:
        return await self.covers.lookup_cover(title, author, isbn)

    async def enrich_and_validate_cover(
        self, result: LookupResult, isbn_candidates: list[str]
    ) -> LookupResult:
        """Settle the cover of a resolved result.

        Google-hosted covers are kept as-is. Anything else is replaced by a
        Google metadata cover when one exists, or else by the first candidate
        that passes a HEAD probe; with no valid candidate the cover is cleared.
        """
        current = result.cover_url.strip()
        if current and any(host in current for host in TRUSTED_COVER_HOSTS):
            return result

        candidates: list[str] = []
        append_unique(candidates, current)

        seen: set[str] = set()
        for raw in [digits_only(result.isbn), *isbn_candidates]:
            normalized = "".join(ch for ch in raw if ch.isdigit() or ch in "xX").upper()
            if not is_isbn_length(normalized) or normalized in seen:
                continue
            seen.add(normalized)
            append_unique(candidates, cover_url_for_isbn(normalized))

        query = f"intitle:{result.title} inauthor:{result.author}"
        google_cover = await best_effort(self.google.cover(query), CatalogQuery("google", query))
        if google_cover:
            log.debug("cover_from_google_metadata", title=result.title)
            return result.with_cover(google_cover)

        append_unique(
            candidates,
            await best_effort(
                self.openlibrary.cover_by_metadata(result.title, result.author),
                CatalogQuery("openlibrary", f"title={result.title} author={result.author}"),
            ),
        )

        validated = await best_effort(self.covers.first_reachable_cover_url(candidates))
        if validated:
            return result.with_cover(validated)

        log.debug("cover_not_found", title=result.title, candidates=len(candidates))
        return result.with_cover("")
