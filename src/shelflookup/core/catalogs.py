"""Clients for the external book catalogs.

Each client turns one raw catalog response into a normalized LookupResult
(or a cover URL) and returns None when the catalog has nothing usable.
Fetch and decode failures are raised; callers wrap them with best_effort.

    GoogleBooksClient -- primary metadata source (Google Books volumes API)
    OpenLibraryClient -- secondary source: bibkey lookup, search, cover search
    ClassifyClient    -- tertiary fallback (OCLC Classify XML)
"""

from __future__ import annotations

import json
import re
from urllib.parse import quote, urlencode

import structlog

from .errors import DecodeError
from .fetcher import RetryingFetcher
from .isbn import clean_isbn, digits_only, is_isbn_length
from .models import UNKNOWN_AUTHOR, LookupResult, classify_genre, https

log = structlog.get_logger()

GOOGLE_VOLUMES_URL = "https://www.googleapis.com/books/v1/volumes"
OPEN_LIBRARY_URL = "https://openlibrary.org"
OPEN_LIBRARY_COVERS_URL = "https://covers.openlibrary.org"
CLASSIFY_URL = "https://classify.oclc.org/classify2/Classify"

MAX_RESULTS = 10

# Characters left unescaped in the Google "q" parameter; field qualifiers
# like isbn: and intitle: must survive intact.
_GOOGLE_QUERY_SAFE = ":/?@!$'()*,;"

# Descending preference for Google imageLinks
_GOOGLE_IMAGE_SIZES = ("extraLarge", "large", "medium", "small", "thumbnail", "smallThumbnail")
_OPEN_LIBRARY_COVER_SIZES = ("large", "medium", "small")


def cover_url_for_id(cover_id: int | str) -> str:
    return f"{OPEN_LIBRARY_COVERS_URL}/b/id/{cover_id}-L.jpg"


def cover_url_for_isbn(isbn: str) -> str:
    # default=false makes Open Library answer 404 instead of a blank placeholder
    return f"{OPEN_LIBRARY_COVERS_URL}/b/isbn/{isbn}-L.jpg?default=false"


def _decode_json(data: bytes) -> dict:
    try:
        payload = json.loads(data)
    except (ValueError, UnicodeDecodeError) as e:
        raise DecodeError(f"Invalid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise DecodeError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def _as_list(value: object) -> list:
    return value if isinstance(value, list) else []


def _as_dict(value: object) -> dict:
    return value if isinstance(value, dict) else {}


def _text(value: object) -> str:
    return value.strip() if isinstance(value, str) else ""


class GoogleBooksClient:
    """Primary metadata source: Google Books volumes search."""

    def __init__(self, fetcher: RetryingFetcher) -> None:
        self.fetcher = fetcher

    @staticmethod
    def volumes_url(query: str) -> str:
        return f"{GOOGLE_VOLUMES_URL}?q={quote(query, safe=_GOOGLE_QUERY_SAFE)}&maxResults={MAX_RESULTS}"

    async def _items(self, query: str) -> list[dict]:
        data = _decode_json(await self.fetcher.fetch(self.volumes_url(query)))
        return [i for i in _as_list(data.get("items")) if isinstance(i, dict)]

    @staticmethod
    def best_image_url(image_links: object) -> str:
        """Pick the largest available image link, upgraded to https."""
        links = _as_dict(image_links)
        for size in _GOOGLE_IMAGE_SIZES:
            value = _text(links.get(size))
            if value:
                return https(value)
        return ""

    @staticmethod
    def _has_isbn(item: dict, target: str) -> bool:
        identifiers = _as_list(_as_dict(item.get("volumeInfo")).get("industryIdentifiers"))
        return any(
            digits_only(_text(_as_dict(ident).get("identifier"))) == target
            for ident in identifiers
        )

    async def query(self, query: str) -> LookupResult | None:
        """Run a volumes search (``isbn:...``, ``intitle:...`` or free text).

        When the query's digits form a 10/13-digit ISBN, items listing that
        ISBN are preferred. Among the preferred items the first one with an
        image wins, else the first one.
        """
        items = await self._items(query)
        valid = [i for i in items if _text(_as_dict(i.get("volumeInfo")).get("title"))]
        if not valid:
            log.debug("google_no_match", query=query)
            return None

        numeric = digits_only(query)
        is_isbn_query = is_isbn_length(numeric)
        matching = [i for i in valid if self._has_isbn(i, numeric)] if is_isbn_query else []
        prioritized = matching or valid

        item = next(
            (
                i
                for i in prioritized
                if self.best_image_url(_as_dict(i.get("volumeInfo")).get("imageLinks"))
            ),
            prioritized[0],
        )
        info = _as_dict(item.get("volumeInfo"))

        authors = _as_list(info.get("authors"))
        author = _text(authors[0]) if authors else ""
        categories = _as_list(info.get("categories"))
        category = _text(categories[0]) if categories else ""

        isbn = ""
        for ident in _as_list(info.get("industryIdentifiers")):
            ident = _as_dict(ident)
            if "ISBN" in _text(ident.get("type")):
                isbn = clean_isbn(_text(ident.get("identifier")))
                break
        if not isbn and is_isbn_query:
            isbn = numeric

        result = LookupResult(
            title=_text(info.get("title")),
            author=author or UNKNOWN_AUTHOR,
            isbn=isbn,
            genre=classify_genre(category),
            cover_url=self.best_image_url(info.get("imageLinks")),
        )
        log.debug(
            "google_hit",
            query=query,
            title=result.title,
            isbn=result.isbn,
            has_cover=bool(result.cover_url),
        )
        return result

    async def cover(self, query: str) -> str | None:
        """Return the first image URL among the search results, if any."""
        for item in await self._items(query):
            cover = self.best_image_url(_as_dict(item.get("volumeInfo")).get("imageLinks"))
            if cover:
                log.debug("google_cover_hit", query=query)
                return cover
        return None


class OpenLibraryClient:
    """Secondary source: Open Library books API, search and covers."""

    def __init__(self, fetcher: RetryingFetcher) -> None:
        self.fetcher = fetcher

    @staticmethod
    def bibkeys_url(isbn: str) -> str:
        return f"{OPEN_LIBRARY_URL}/api/books?bibkeys=ISBN:{isbn}&format=json&jscmd=data"

    @staticmethod
    def search_url(**params: str) -> str:
        params["limit"] = str(MAX_RESULTS)
        return f"{OPEN_LIBRARY_URL}/search.json?{urlencode(params, quote_via=quote)}"

    async def by_isbn(self, isbn: str) -> LookupResult | None:
        """Look up one ISBN through the bibkeys endpoint."""
        data = _decode_json(await self.fetcher.fetch(self.bibkeys_url(isbn)))
        record = _as_dict(next(iter(data.values()), None))
        title = _text(record.get("title"))
        if not title:
            log.debug("openlibrary_no_match", isbn=isbn)
            return None

        authors = _as_list(record.get("authors"))
        author = _text(_as_dict(authors[0]).get("name")) if authors else ""
        subjects = _as_list(record.get("subjects"))
        category = _text(_as_dict(subjects[0]).get("name")) if subjects else ""

        cover = _as_dict(record.get("cover"))
        cover_url = next(
            (_text(cover.get(s)) for s in _OPEN_LIBRARY_COVER_SIZES if _text(cover.get(s))),
            "",
        )

        log.debug("openlibrary_hit", isbn=isbn, title=title, has_cover=bool(cover_url))
        return LookupResult(
            title=title,
            author=author or UNKNOWN_AUTHOR,
            isbn=clean_isbn(isbn),
            genre=classify_genre(category),
            cover_url=cover_url,
        )

    async def _docs(self, **params: str) -> list[dict]:
        data = _decode_json(await self.fetcher.fetch(self.search_url(**params)))
        return [d for d in _as_list(data.get("docs")) if isinstance(d, dict)]

    @staticmethod
    def _doc_isbns(doc: dict) -> list[str]:
        return [digits_only(v) for v in _as_list(doc.get("isbn")) if isinstance(v, str)]

    async def search(self, query: str, preferred_isbn: str | None = None) -> LookupResult | None:
        """Full-text search; prefer the document listing ``preferred_isbn``."""
        docs = await self._docs(q=query)
        if not docs:
            log.debug("openlibrary_search_no_match", query=query)
            return None

        preferred = digits_only(preferred_isbn) if preferred_isbn else ""
        doc = docs[0]
        if preferred:
            doc = next((d for d in docs if preferred in self._doc_isbns(d)), docs[0])

        title = _text(doc.get("title"))
        if not title:
            return None

        authors = _as_list(doc.get("author_name"))
        author = _text(authors[0]) if authors else ""
        subjects = _as_list(doc.get("subject"))
        category = _text(subjects[0]) if subjects else ""

        if is_isbn_length(preferred):
            isbn = preferred
        else:
            isbn = next((i for i in self._doc_isbns(doc) if is_isbn_length(i)), "")

        cover_id = doc.get("cover_i")
        if isinstance(cover_id, int) and not isinstance(cover_id, bool):
            cover_url = cover_url_for_id(cover_id)
        elif isbn:
            cover_url = cover_url_for_isbn(isbn)
        else:
            cover_url = ""

        log.debug("openlibrary_search_hit", query=query, title=title, isbn=isbn)
        return LookupResult(
            title=title,
            author=author or UNKNOWN_AUTHOR,
            isbn=isbn,
            genre=classify_genre(category),
            cover_url=cover_url,
        )

    async def cover_by_metadata(self, title: str, author: str) -> str | None:
        """Find a cover for a title/author pair via field-scoped search."""
        docs = await self._docs(title=title, author=author)
        for doc in docs:
            cover_id = doc.get("cover_i")
            if isinstance(cover_id, int) and not isinstance(cover_id, bool):
                return cover_url_for_id(cover_id)
        for doc in docs:
            for isbn in self._doc_isbns(doc):
                if is_isbn_length(isbn):
                    return cover_url_for_isbn(isbn)
        return None


_WORK_TAG_RE = re.compile(r"<work\b[^>]*>")


def first_work_tag(xml: str) -> str | None:
    match = _WORK_TAG_RE.search(xml)
    return match.group(0) if match else None


def xml_attribute(name: str, tag: str) -> str | None:
    """Extract the literal value of ``name="..."`` from a single tag."""
    match = re.search(rf'{re.escape(name)}\s*=\s*"([^"]+)"', tag)
    return match.group(1) if match else None


class ClassifyClient:
    """Tertiary fallback: OCLC Classify summary by ISBN."""

    def __init__(self, fetcher: RetryingFetcher) -> None:
        self.fetcher = fetcher

    @staticmethod
    def classify_url(isbn: str) -> str:
        return f"{CLASSIFY_URL}?isbn={isbn}&summary=true"

    async def by_isbn(self, isbn: str) -> LookupResult | None:
        data = await self.fetcher.fetch(self.classify_url(isbn))
        try:
            xml = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(f"Classify response is not UTF-8: {e}") from e

        tag = first_work_tag(xml)
        if tag is None:
            log.debug("classify_no_match", isbn=isbn)
            return None

        title = (xml_attribute("title", tag) or "").strip()
        if not title:
            return None
        author = (xml_attribute("author", tag) or "").strip()

        log.debug("classify_hit", isbn=isbn, title=title)
        return LookupResult(
            title=title,
            author=author or UNKNOWN_AUTHOR,
            isbn=clean_isbn(isbn),
        )
