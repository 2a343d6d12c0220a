"""Tests for feedline.ingestion.dedup — item ids and merge_items."""

from __future__ import annotations

import pytest

from feedline.ingestion.dedup import compute_item_id, merge_items, sort_newest_first
from feedline.ingestion.normalize import TimelineItem


def _item(n: int, date: str, *, url: str | None = None, item_id: str | None = None) -> TimelineItem:
    url = url or f"https://example.com/{n}"
    return TimelineItem(
        id=item_id or compute_item_id("src", url),
        source_id="src",
        source_name="Source",
        title=f"Item {n}",
        summary="",
        url=url,
        date=date,
        tags=[],
    )


class TestComputeItemId:
    def test_deterministic(self):
        assert compute_item_id("a", "https://x.com/") == compute_item_id("a", "https://x.com/")

    def test_sha256_hex(self):
        value = compute_item_id("a", "https://x.com/")
        assert len(value) == 64
        int(value, 16)

    def test_source_scoped(self):
        assert compute_item_id("a", "https://x.com/") != compute_item_id("b", "https://x.com/")


class TestMergeItems:
    def test_sorted_newest_first(self):
        items = [
            _item(1, "2025-06-01T00:00:00+00:00"),
            _item(2, "2025-06-03T00:00:00+00:00"),
            _item(3, "2025-06-02T00:00:00+00:00"),
        ]
        merged = merge_items([], items, 10)
        assert [i.title for i in merged] == ["Item 2", "Item 3", "Item 1"]

    def test_dedup_by_id(self):
        existing = [_item(1, "2025-06-01T00:00:00+00:00")]
        incoming = [_item(1, "2025-06-01T00:00:00+00:00")]
        assert len(merge_items(existing, incoming, 10)) == 1

    def test_dedup_by_url_across_sources(self):
        a = _item(1, "2025-06-01T00:00:00+00:00", item_id="id-a")
        b = _item(1, "2025-06-02T00:00:00+00:00", item_id="id-b")
        merged = merge_items([a], [b], 10)
        assert [i.id for i in merged] == ["id-b"]

    def test_equal_dates_existing_wins(self):
        existing = _item(1, "2025-06-01T00:00:00+00:00", item_id="same")
        incoming = TimelineItem(**{**existing.to_dict(), "title": "Changed"})
        merged = merge_items([existing], [incoming], 10)
        assert merged[0].title == "Item 1"

    def test_retention_bound(self):
        incoming = [_item(n, f"2025-06-{n:02d}T00:00:00+00:00") for n in range(1, 21)]
        merged = merge_items([], incoming, 5)
        assert len(merged) == 5
        assert merged[0].title == "Item 20"

    def test_idempotent(self):
        items = [_item(n, f"2025-06-{n:02d}T00:00:00+00:00") for n in range(1, 6)]
        once = merge_items([], items, 10)
        assert merge_items(once, items, 10) == once

    def test_unparseable_dates_sort_last(self):
        items = [_item(1, "not a date"), _item(2, "2025-06-01T00:00:00+00:00")]
        assert [i.title for i in merge_items([], items, 10)] == ["Item 2", "Item 1"]

    def test_invalid_max_items(self):
        with pytest.raises(ValueError):
            merge_items([], [], 0)

    def test_empty(self):
        assert merge_items([], [], 5) == []


class TestSortNewestFirst:
    def test_stable_for_ties(self):
        a = _item(1, "2025-06-01T00:00:00+00:00")
        b = _item(2, "2025-06-01T00:00:00+00:00")
        assert sort_newest_first([a, b]) == [a, b]
