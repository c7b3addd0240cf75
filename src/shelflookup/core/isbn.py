"""ISBN-10 / ISBN-13 / UPC normalization for scanned codes."""

from __future__ import annotations

import re


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def is_isbn_length(value: str) -> bool:
    return len(value) in (10, 13)


def clean_isbn(value: str | None) -> str:
    """Keep digits and X, uppercased. Returns "" unless the result is 10 or 13 long."""
    normalized = re.sub(r"[^0-9X]", "", (value or "").upper())
    return normalized if is_isbn_length(normalized) else ""


def to_isbn13(isbn10: str) -> str | None:
    """Convert an ISBN-10 to its 978-prefixed ISBN-13, or None if not convertible."""
    upper = isbn10.upper()
    if len(upper) != 10:
        return None

    prefix = "978" + upper[:9]
    if not prefix.isdigit():
        return None

    total = sum(int(ch) * (1 if i % 2 == 0 else 3) for i, ch in enumerate(prefix))
    check = (10 - total % 10) % 10
    return f"{prefix}{check}"


def to_isbn10(isbn13: str) -> str | None:
    """Convert a 978-prefixed ISBN-13 back to ISBN-10, or None."""
    if len(isbn13) != 13 or not isbn13.startswith("978"):
        return None

    core = isbn13[3:12]
    if not core.isdigit():
        return None

    total = sum(int(ch) * (10 - i) for i, ch in enumerate(core))
    remainder = 11 - total % 11
    if remainder == 10:
        check = "X"
    elif remainder == 11:
        check = "0"
    else:
        check = str(remainder)
    return core + check


def isbn_candidates(raw: str) -> list[str]:
    """Build the ordered, deduplicated candidate list for a scanned code.

    Order defines search priority: the raw digits, the UPC-A -> EAN-13
    variant for 12-digit scans, the ISBN-13 derived from an ISBN-10, and the
    ISBN-10 derived from a 978 ISBN-13.
    """
    digits = digits_only(raw)
    candidates: list[str] = []

    def append_unique(value: str | None) -> None:
        if value and value not in candidates:
            candidates.append(value)

    append_unique(digits)
    if not digits:
        return candidates

    # Some scanners emit UPC-A for book codes
    if len(digits) == 12:
        append_unique("0" + digits)

    append_unique(to_isbn13(digits))
    append_unique(to_isbn10(digits))
    return candidates
