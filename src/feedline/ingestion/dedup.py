"""Identifier derivation and the merge-and-dedup step."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from typing import TYPE_CHECKING

from feedline.ingestion.dates import parse_iso

if TYPE_CHECKING:
    from feedline.ingestion.normalize import TimelineItem


def compute_item_id(source_id: str, canonical_url: str) -> str:
    """Compute a SHA-256 item id from the source id and the canonical URL.

    Re-ingesting the same link from the same source always yields the same id.
    """
    combined = f"{source_id}|{canonical_url}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


def sort_newest_first(items: Iterable[TimelineItem]) -> list[TimelineItem]:
    """Stable sort by date, newest first. Ties keep their input order."""
    return sorted(items, key=lambda item: parse_iso(item.date), reverse=True)


def merge_items(
    existing: Iterable[TimelineItem],
    incoming: Iterable[TimelineItem],
    max_items: int,
) -> list[TimelineItem]:
    """Merge stored and freshly fetched items into a bounded, deduplicated list.

    Items are sorted newest first; walking that order, an item is dropped if
    its id or url was already seen, so the instance that sorts first wins.
    The result is truncated to *max_items*.
    """
    if max_items < 1:
        raise ValueError(f"max_items must be >= 1, got {max_items}")

    seen_ids: set[str] = set()
    seen_urls: set[str] = set()
    merged: list[TimelineItem] = []
    for item in sort_newest_first([*existing, *incoming]):
        if item.id in seen_ids or item.url in seen_urls:
            continue
        seen_ids.add(item.id)
        seen_urls.add(item.url)
        merged.append(item)
        if len(merged) >= max_items:
            break
    return merged
