"""Candidate extraction from HTML pages: JSON-LD blocks and anchor scraping."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Union
from urllib.parse import urljoin

from selectolax.parser import HTMLParser, Node

from feedline.errors import ParseError
from feedline.ingestion.normalize import RawCandidate, clean_text

logger = logging.getLogger(__name__)

JSON_LD_SELECTOR = 'script[type="application/ld+json"]'
MIN_ANCHOR_TEXT = 24
_MAX_CONTEXT_CHARS = 1000
_MAX_JSON_DEPTH = 16

_BLOCK_TAGS = frozenset({
    "article", "section", "li", "p", "div", "td", "dd", "figure", "main", "header", "footer",
})

# Schema.org node types that describe page furniture rather than content.
_NON_CONTENT_TYPES = frozenset({
    "person", "organization", "imageobject", "website", "searchaction", "entrypoint",
    "breadcrumblist", "postaladdress", "place", "brand", "rating", "aggregaterating",
    "offer", "contactpoint",
})


@dataclass(frozen=True)
class Parsed:
    """A block that parsed; may still contain zero candidates."""

    candidates: tuple[RawCandidate, ...]


@dataclass(frozen=True)
class ParseFailure:
    """A block that could not be parsed."""

    error: ParseError


ParseResult = Union[Parsed, ParseFailure]


def _first_str(value) -> str | None:
    if isinstance(value, str):
        return value.strip() or None
    if isinstance(value, list):
        for entry in value:
            found = _first_str(entry)
            if found:
                return found
    if isinstance(value, dict):
        return _first_str(value.get("@id") or value.get("url"))
    return None


def _node_types(node: dict) -> set[str]:
    raw = node.get("@type")
    if isinstance(raw, str):
        return {raw.lower()}
    if isinstance(raw, list):
        return {t.lower() for t in raw if isinstance(t, str)}
    return set()


def _node_to_candidate(node: dict) -> RawCandidate | None:
    if _node_types(node) & _NON_CONTENT_TYPES:
        return None

    url = _first_str(node.get("url")) or _first_str(node.get("mainEntityOfPage"))
    if url is None:
        node_id = node.get("@id")
        if isinstance(node_id, str) and node_id.startswith(("http://", "https://")):
            url = node_id
    if not url:
        return None

    title = _first_str(node.get("headline")) or _first_str(node.get("name"))
    description = _first_str(node.get("description")) or ""
    if not title and not description:
        return None

    date_text = None
    for key in ("datePublished", "dateCreated", "uploadDate", "dateModified", "startDate"):
        date_text = _first_str(node.get(key))
        if date_text:
            break

    return RawCandidate(
        title=title or description,
        url=url,
        summary=description,
        date_text=date_text,
    )


def _walk(node, out: list[RawCandidate], depth: int = 0) -> None:
    if depth > _MAX_JSON_DEPTH:
        return
    if isinstance(node, list):
        for child in node:
            _walk(child, out, depth + 1)
        return
    if not isinstance(node, dict):
        return
    candidate = _node_to_candidate(node)
    if candidate is not None:
        out.append(candidate)
    for value in node.values():
        if isinstance(value, (dict, list)):
            _walk(value, out, depth + 1)


def parse_json_ld_block(text: str, index: int = 0) -> ParseResult:
    """Parse one JSON-LD script body and collect candidates from its object graph."""
    text = (text or "").strip()
    if not text:
        return ParseFailure(ParseError(f"JSON-LD block #{index} is empty"))
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        return ParseFailure(ParseError(f"JSON-LD block #{index} is not valid JSON: {exc}"))
    candidates: list[RawCandidate] = []
    _walk(payload, candidates)
    return Parsed(tuple(candidates))


def extract_json_ld(html_text: str) -> list[ParseResult]:
    """Return one ParseResult per ``application/ld+json`` script block."""
    tree = HTMLParser(html_text)
    return [
        parse_json_ld_block(node.text() or "", i)
        for i, node in enumerate(tree.css(JSON_LD_SELECTOR))
    ]


def collect_candidates(results: list[ParseResult]) -> list[RawCandidate]:
    """Flatten successful results; failures are logged and skipped."""
    candidates: list[RawCandidate] = []
    for result in results:
        if isinstance(result, Parsed):
            candidates.extend(result.candidates)
        else:
            logger.warning("Skipping JSON-LD block: %s", result.error)
    return candidates


def _context_text(node: Node) -> str:
    parent = node.parent
    while parent is not None and parent.tag not in _BLOCK_TAGS:
        parent = parent.parent
    if parent is None:
        return ""
    return clean_text(parent.text(separator=" "))[:_MAX_CONTEXT_CHARS]


def extract_anchors(
    html_text: str,
    page_url: str,
    min_text: int = MIN_ANCHOR_TEXT,
    max_items: int = 50,
) -> list[RawCandidate]:
    """Scrape anchors whose link text is longer than *min_text* characters.

    Short link texts are navigation chrome. The summary is the text of the
    nearest block-level ancestor, which is also where a date is looked for.
    """
    tree = HTMLParser(html_text)
    tree.strip_tags(["script", "style", "noscript"])

    candidates: list[RawCandidate] = []
    seen: set[str] = set()
    for node in tree.css("a[href]"):
        href = (node.attributes.get("href") or "").strip()
        if not href or href.startswith(("#", "javascript:", "mailto:", "tel:")):
            continue
        text = clean_text(node.text(separator=" "))
        if len(text) <= min_text:
            continue
        try:
            url = urljoin(page_url, href)
        except ValueError:
            logger.debug("Skipping malformed href on %s: %r", page_url, href)
            continue
        if url in seen:
            continue
        seen.add(url)

        context = _context_text(node)
        candidates.append(
            RawCandidate(
                title=text,
                url=url,
                summary=context if context and context != text else "",
                context_text=context or None,
            )
        )
        if len(candidates) >= max_items:
            break
    return candidates
