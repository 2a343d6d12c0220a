"""Date parsing for structured feed fields and free text."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

from dateutil import parser as date_parser

_MONTHS = (
    "January|February|March|April|May|June|July|August|September|October|November|December"
)

# Ordered by preference: ISO first, then long month names, then slash dates.
_TEXT_DATE_PATTERNS = (
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
    re.compile(rf"\b(?:{_MONTHS})\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(rf"\b\d{{1,2}}\s+(?:{_MONTHS}),?\s+\d{{4}}\b", re.IGNORECASE),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{4}\b"),
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: datetime) -> str:
    """Format *dt* as an ISO-8601 UTC string (naive values are taken as UTC)."""
    return _as_utc(dt).isoformat(timespec="seconds")


def parse_structured_date(value: str | None) -> datetime | None:
    """Parse an explicit date field (RFC 2822 or ISO 8601). Returns None if unusable."""
    if not value or not value.strip():
        return None
    value = value.strip()
    try:
        return _as_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError, IndexError):
        pass
    try:
        return _as_utc(date_parser.isoparse(value))
    except (ValueError, OverflowError):
        pass
    try:
        return _as_utc(date_parser.parse(value))
    except (ValueError, OverflowError):
        return None


def find_date_in_text(text: str | None) -> datetime | None:
    """Recover a date from free text: ISO date, long month name, or slash date."""
    if not text:
        return None
    for pattern in _TEXT_DATE_PATTERNS:
        for match in pattern.finditer(text):
            try:
                return _as_utc(date_parser.parse(match.group(0)))
            except (ValueError, OverflowError):
                continue
    return None


def parse_iso(value: str | None) -> datetime:
    """Parse a stored ISO timestamp for sorting. Unparseable values sort last."""
    if not value:
        return _EPOCH
    try:
        return _as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        parsed = parse_structured_date(value)
        return parsed if parsed is not None else _EPOCH
