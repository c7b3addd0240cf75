"""Cover image candidates and reachability probing."""

from __future__ import annotations

import httpx
import structlog

from .catalogs import GoogleBooksClient, OpenLibraryClient, cover_url_for_isbn
from .errors import ResolverError, best_effort
from .fetcher import RetryingFetcher
from .isbn import digits_only, is_isbn_length
from .models import CatalogQuery

log = structlog.get_logger()

IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")


def append_unique(candidates: list[str], value: str | None) -> None:
    """Append a trimmed, non-empty value unless it is already present."""
    trimmed = (value or "").strip()
    if trimmed and trimmed not in candidates:
        candidates.append(trimmed)


class CoverResolver:
    """Validates cover URLs with HEAD probes and finds covers from metadata."""

    def __init__(
        self,
        fetcher: RetryingFetcher,
        google: GoogleBooksClient,
        openlibrary: OpenLibraryClient,
    ) -> None:
        self.fetcher = fetcher
        self.google = google
        self.openlibrary = openlibrary

    async def _is_reachable(self, candidate: str) -> bool:
        try:
            resp = await self.fetcher.head(candidate)
        except (ResolverError, httpx.HTTPError, httpx.InvalidURL) as e:
            log.debug("cover_probe_error", url=candidate, error=str(e))
            return False

        if not 200 <= resp.status_code <= 299:
            log.debug("cover_probe_status", url=candidate, status=resp.status_code)
            return False

        content_type = resp.headers.get("content-type")
        if content_type is not None:
            return "image" in content_type.lower()
        # Some servers omit Content-Type on HEAD; fall back to the path
        return httpx.URL(candidate).path.lower().endswith(IMAGE_EXTENSIONS)

    async def first_reachable_cover_url(self, candidates: list[str]) -> str | None:
        """Return the first candidate that answers a HEAD probe with an image."""
        for candidate in candidates:
            if await self._is_reachable(candidate):
                log.debug("cover_probe_hit", url=candidate)
                return candidate
        return None

    async def lookup_cover(self, title: str, author: str, isbn: str) -> str | None:
        """Find a cover URL from loose metadata when no lookup result exists.

        Candidates are probed in order; if none validates, the first
        candidate is returned rather than nothing.
        """
        candidates: list[str] = []

        normalized_isbn = digits_only(isbn)
        if is_isbn_length(normalized_isbn):
            isbn_query = f"isbn:{normalized_isbn}"
            by_isbn = await best_effort(
                self.google.query(isbn_query), CatalogQuery("google", isbn_query)
            )
            if by_isbn:
                append_unique(candidates, by_isbn.cover_url)
            append_unique(
                candidates,
                await best_effort(self.google.cover(isbn_query), CatalogQuery("google", isbn_query)),
            )
            append_unique(candidates, cover_url_for_isbn(normalized_isbn))

        title = (title or "").strip()
        author = (author or "").strip()

        if title and author:
            exact = f"intitle:{title} inauthor:{author}"
            append_unique(
                candidates,
                await best_effort(self.google.cover(exact), CatalogQuery("google", exact)),
            )

        if title and author:
            broad = f"{title} {author}"
        elif title:
            broad = f"intitle:{title}"
        elif author:
            broad = author
        else:
            return None

        append_unique(
            candidates,
            await best_effort(self.google.cover(broad), CatalogQuery("google", broad)),
        )

        if title:
            append_unique(
                candidates,
                await best_effort(
                    self.openlibrary.cover_by_metadata(title, author),
                    CatalogQuery("openlibrary", f"title={title} author={author}"),
                ),
            )

        reachable = await best_effort(self.first_reachable_cover_url(candidates))
        if reachable:
            return reachable

        log.debug("cover_unverified", candidates=len(candidates))
        return candidates[0] if candidates else None
