"""Per-source watermark comparison for snowflake-style identifiers."""

from __future__ import annotations


def _as_int(value: str) -> int | None:
    value = value.strip()
    if not value.isascii() or not value.isdigit():
        return None
    return int(value)


def compare_ids(a: str, b: str) -> int:
    """Compare two external ids. Returns -1, 0, or 1.

    Decimal ids are compared as arbitrary-precision integers. If either side
    is not a decimal integer, the longer id wins, then the lexicographically
    greater one.
    """
    int_a = _as_int(a)
    int_b = _as_int(b)
    if int_a is not None and int_b is not None:
        return (int_a > int_b) - (int_a < int_b)
    if len(a) != len(b):
        return 1 if len(a) > len(b) else -1
    return (a > b) - (a < b)


def snowflake_max(a: str | None, b: str | None) -> str | None:
    """Return the greater of two cursors; None means "no cursor yet"."""
    if not a:
        return b or None
    if not b:
        return a
    return a if compare_ids(a, b) >= 0 else b
