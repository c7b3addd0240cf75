"""Data models for book lookup results."""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import Enum

UNKNOWN_AUTHOR = "Unknown Author"

_ISBN_RE = re.compile(r"^(\d{9}[\dX]|\d{12}[\dX])$")


class Genre(str, Enum):
    FICTION = "Fiction"
    FANTASY = "Fantasy"
    MYSTERY = "Mystery"
    THRILLER = "Thriller"
    SCIENCE_FICTION = "Science Fiction"
    ROMANCE = "Romance"
    HISTORICAL = "Historical"
    BIOGRAPHY = "Biography"
    SELF_HELP = "Self Help"
    CHILDREN = "Children"
    NON_FICTION = "Nonfiction"
    OTHER = "Other"


# Checked in order; the first keyword found in the lowercased category wins.
_GENRE_KEYWORDS: list[tuple[tuple[str, ...], Genre]] = [
    (("fantasy",), Genre.FANTASY),
    (("mystery",), Genre.MYSTERY),
    (("thriller",), Genre.THRILLER),
    (("science", "sci-fi"), Genre.SCIENCE_FICTION),
    (("romance",), Genre.ROMANCE),
    (("history",), Genre.HISTORICAL),
    (("biography", "memoir"), Genre.BIOGRAPHY),
    (("self",), Genre.SELF_HELP),
    (("juvenile", "children"), Genre.CHILDREN),
    (("fiction",), Genre.FICTION),
    (("nonfiction",), Genre.NON_FICTION),
]


def classify_genre(category: str | None) -> Genre:
    """Map a free-text catalog category onto a Genre (case-insensitive substring match).

    "Nonfiction" contains "fiction" and therefore maps to FICTION.
    """
    normalized = (category or "").lower()
    for keywords, genre in _GENRE_KEYWORDS:
        if any(k in normalized for k in keywords):
            return genre
    return Genre.OTHER


def https(url: str) -> str:
    return url.replace("http://", "https://")


@dataclass(frozen=True)
class LookupResult:
    title: str
    author: str = UNKNOWN_AUTHOR
    isbn: str = ""
    genre: Genre = Genre.OTHER
    cover_url: str = ""

    def __post_init__(self) -> None:
        title = (self.title or "").strip()
        if not title:
            raise ValueError("LookupResult requires a non-empty title")
        author = (self.author or "").strip() or UNKNOWN_AUTHOR
        isbn = (self.isbn or "").strip().upper()
        if isbn and not _ISBN_RE.match(isbn):
            raise ValueError(f"Invalid ISBN for LookupResult: {self.isbn!r}")
        object.__setattr__(self, "title", title)
        object.__setattr__(self, "author", author)
        object.__setattr__(self, "isbn", isbn)
        object.__setattr__(self, "cover_url", https((self.cover_url or "").strip()))

    def with_cover(self, cover_url: str) -> LookupResult:
        """Return a copy of this result with a different cover URL."""
        return replace(self, cover_url=cover_url)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "isbn": self.isbn,
            "genre": self.genre.value,
            "cover_url": self.cover_url,
        }


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry settings for catalog fetches.

    Backoff before the next attempt is linear: (attempt + 1) * backoff_base.
    """

    max_attempts: int = 3
    timeout: float = 10.0
    backoff_base: float = 0.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def backoff(self, attempt: int) -> float:
        return (attempt + 1) * self.backoff_base


@dataclass(frozen=True)
class CatalogQuery:
    """One outbound catalog request, used as logging context."""

    provider: str
    query: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.query}"
