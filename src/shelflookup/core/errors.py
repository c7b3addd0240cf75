"""Failure taxonomy for catalog fetches and the best-effort boundary."""

from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

import structlog

from .models import CatalogQuery

log = structlog.get_logger()

T = TypeVar("T")


class ResolverError(Exception):
    """Base exception for all lookup failures."""

    retryable = False


class TransportError(ResolverError):
    """Timeout, DNS failure, refused or dropped connection."""

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class HttpStatusError(ResolverError):
    """A response arrived with a status outside 200-299."""

    def __init__(self, status_code: int, url: str = "") -> None:
        super().__init__(f"HTTP {status_code} for {url}" if url else f"HTTP {status_code}")
        self.status_code = status_code
        self.url = url

    @property
    def retryable(self) -> bool:  # type: ignore[override]
        return self.status_code == 429 or 500 <= self.status_code <= 599


class DecodeError(ResolverError):
    """The response body was not in the expected shape."""


async def best_effort(operation: Awaitable[T | None], query: CatalogQuery | None = None) -> T | None:
    """Await a catalog or probe call, turning any failure into None.

    Catalog lookups must never abort a resolution; errors are logged and the
    caller sees the same "no result" it would for a miss.
    """
    try:
        return await operation
    except Exception as e:
        log.debug(
            "best_effort_failure",
            provider=query.provider if query else None,
            query=query.query if query else None,
            error_type=type(e).__name__,
            error=str(e),
        )
        return None
