"""Shared fixtures: an in-memory catalog network behind httpx.MockTransport."""

import asyncio
from collections.abc import Callable

import httpx
import pytest

from shelflookup.core.fetcher import RetryingFetcher
from shelflookup.core.models import RetryPolicy
from shelflookup.core.resolver import FallbackResolver

GOOGLE_HOST = "www.googleapis.com"
OPEN_LIBRARY_HOST = "openlibrary.org"
CLASSIFY_HOST = "classify.oclc.org"

FAST_POLICY = RetryPolicy(max_attempts=3, timeout=1.0, backoff_base=0.0)


class CatalogRouter:
    """Routes mocked requests to canned responses; anything unmatched gets a 404.

    A route registered with several responses hands them out in order and
    keeps repeating the last one.
    """

    def __init__(self) -> None:
        self.routes: list[tuple[Callable[[httpx.Request], bool], list]] = []
        self.requests: list[httpx.Request] = []

    def on(self, predicate: Callable[[httpx.Request], bool], *responses) -> "CatalogRouter":
        self.routes.append((predicate, list(responses)))
        return self

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for predicate, responses in self.routes:
            if predicate(request):
                canned = responses.pop(0) if len(responses) > 1 else responses[0]
                if isinstance(canned, Exception):
                    raise canned
                if callable(canned):
                    return canned(request)
                status, kwargs = canned
                return httpx.Response(status, **kwargs)
        return httpx.Response(404)

    # -- route helpers --

    def google(self, query: str, payload: dict, status: int = 200) -> "CatalogRouter":
        return self.on(
            lambda r: r.method == "GET" and r.url.host == GOOGLE_HOST and r.url.params.get("q") == query,
            (status, {"json": payload}),
        )

    def openlibrary_isbn(self, isbn: str, payload: dict) -> "CatalogRouter":
        return self.on(
            lambda r: r.url.host == OPEN_LIBRARY_HOST
            and r.url.path == "/api/books"
            and r.url.params.get("bibkeys") == f"ISBN:{isbn}",
            (200, {"json": payload}),
        )

    def openlibrary_search(self, payload: dict, **params: str) -> "CatalogRouter":
        return self.on(
            lambda r: r.url.host == OPEN_LIBRARY_HOST
            and r.url.path == "/search.json"
            and all(r.url.params.get(k) == v for k, v in params.items()),
            (200, {"json": payload}),
        )

    def classify(self, isbn: str, xml: str) -> "CatalogRouter":
        return self.on(
            lambda r: r.url.host == CLASSIFY_HOST and r.url.params.get("isbn") == isbn,
            (200, {"text": xml}),
        )

    def head(self, url: str, status: int = 200, headers: dict | None = None) -> "CatalogRouter":
        return self.on(
            lambda r: r.method == "HEAD" and str(r.url) == url,
            (status, {"headers": headers or {}}),
        )

    # -- inspection --

    def to_host(self, host: str, method: str = "GET") -> list[httpx.Request]:
        return [r for r in self.requests if r.url.host == host and r.method == method]


def google_volume(
    title: str,
    authors: list[str] | None = None,
    isbn13: str | None = None,
    isbn10: str | None = None,
    categories: list[str] | None = None,
    image_links: dict | None = None,
) -> dict:
    identifiers = []
    if isbn13:
        identifiers.append({"type": "ISBN_13", "identifier": isbn13})
    if isbn10:
        identifiers.append({"type": "ISBN_10", "identifier": isbn10})
    info: dict = {"title": title, "industryIdentifiers": identifiers}
    if authors is not None:
        info["authors"] = authors
    if categories is not None:
        info["categories"] = categories
    if image_links is not None:
        info["imageLinks"] = image_links
    return {"volumeInfo": info}


@pytest.fixture
def router() -> CatalogRouter:
    return CatalogRouter()


@pytest.fixture
def run_resolver(router):
    """Run ``fn(resolver)`` against the mocked catalogs and return its result."""

    def _run(fn):
        async def _main():
            async with httpx.AsyncClient(transport=httpx.MockTransport(router)) as client:
                resolver = FallbackResolver(client, policy=FAST_POLICY, ol_min_interval=0)
                return await fn(resolver)

        return asyncio.run(_main())

    return _run


@pytest.fixture
def run_fetcher(router):
    """Run ``fn(fetcher)`` with a RetryingFetcher over the mocked transport."""

    def _run(fn, policy: RetryPolicy = FAST_POLICY):
        async def _main():
            async with httpx.AsyncClient(transport=httpx.MockTransport(router)) as client:
                return await fn(RetryingFetcher(client, policy=policy, ol_min_interval=0))

        return asyncio.run(_main())

    return _run
