"""FastAPI web application exposing the book lookup resolver."""

from __future__ import annotations

import logging
import os
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import httpx
import structlog
import uvicorn
from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.resolver import FallbackResolver

load_dotenv()

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
structlog.configure(
    wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, LOG_LEVEL, logging.INFO)),
)

log = structlog.get_logger()

MAX_BODY_BYTES = 10_000  # lookups carry a code or a title, nothing larger

# Rate limiting: per-IP, requests to /api/*
RATE_LIMIT = int(os.environ.get("RATE_LIMIT", "10"))  # requests per window
RATE_LIMIT_WINDOW = int(os.environ.get("RATE_LIMIT_WINDOW", "60"))  # seconds

# Rate limit tracking: IP -> list of timestamps
_rate_log: dict[str, list[float]] = defaultdict(list)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _is_rate_limited(ip: str) -> bool:
    now = time.time()
    window_start = now - RATE_LIMIT_WINDOW
    # Trim old entries; idle clients are forgotten entirely
    recent = [t for t in _rate_log.get(ip, ()) if t > window_start]
    if recent:
        _rate_log[ip] = recent
    else:
        _rate_log.pop(ip, None)
    return len(recent) >= RATE_LIMIT


def _record_request(ip: str) -> None:
    _rate_log[ip].append(time.time())


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with httpx.AsyncClient() as client:
        app.state.resolver = FallbackResolver(client)
        yield


app = FastAPI(title="Shelf Lookup", docs_url=None, redoc_url=None, lifespan=lifespan)


def get_resolver(request: Request) -> FallbackResolver:
    return request.app.state.resolver


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


async def _read_body(request: Request) -> dict | JSONResponse:
    """Apply rate limit and size guards, then parse the JSON body.

    Returns the body dict, or the error response to send instead.
    """
    ip = _client_ip(request)
    if _is_rate_limited(ip):
        log.warning("rate_limited", ip=ip)
        return JSONResponse(
            {"error": "Too many requests. Please wait a minute and try again."},
            status_code=429,
        )

    content_length = request.headers.get("content-length")
    if content_length:
        try:
            declared = int(content_length)
        except ValueError:
            return JSONResponse({"error": "Invalid Content-Length header."}, status_code=400)
        if declared > MAX_BODY_BYTES:
            return JSONResponse({"error": "Request too large."}, status_code=413)

    try:
        body = await request.json()
    except ValueError:
        return JSONResponse({"error": "Request body must be JSON."}, status_code=400)
    if not isinstance(body, dict):
        return JSONResponse({"error": "Request body must be a JSON object."}, status_code=400)

    _record_request(ip)
    return body


def _field(body: dict, name: str) -> str:
    value = body.get(name, "")
    return value.strip() if isinstance(value, str) else ""


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": os.environ.get("ENV", "dev"),
    }


@app.post("/api/lookup")
async def lookup(request: Request, resolver: FallbackResolver = Depends(get_resolver)):
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    code = _field(body, "code")
    if not code:
        return JSONResponse({"error": "A barcode or ISBN is required."}, status_code=400)

    book = await resolver.lookup(code)
    log.info("api_lookup", code=code, found=book is not None)
    return {"book": book.to_dict() if book else None}


@app.post("/api/lookup/title")
async def lookup_title(request: Request, resolver: FallbackResolver = Depends(get_resolver)):
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    query = _field(body, "query")
    if not query:
        return JSONResponse({"error": "A title is required."}, status_code=400)

    book = await resolver.lookup_by_title(query)
    log.info("api_lookup_title", query=query, found=book is not None)
    return {"book": book.to_dict() if book else None}


@app.post("/api/cover")
async def lookup_cover(request: Request, resolver: FallbackResolver = Depends(get_resolver)):
    """Find a cover image URL. The ISBN only adds candidates, so a title or
    author is required."""
    body = await _read_body(request)
    if isinstance(body, JSONResponse):
        return body

    title = _field(body, "title")
    author = _field(body, "author")
    isbn = _field(body, "isbn")
    if not (title or author):
        return JSONResponse({"error": "A title or author is required."}, status_code=400)

    cover_url = await resolver.lookup_cover(title, author, isbn)
    log.info("api_lookup_cover", title=title, isbn=isbn, found=cover_url is not None)
    return {"cover_url": cover_url}


def main():
    port = int(os.environ.get("PORT", "8000"))
    is_dev = os.environ.get("ENV", "dev") == "dev"
    uvicorn.run(
        "shelflookup.web.app:app",
        host="0.0.0.0",
        port=port,
        reload=is_dev,
    )
