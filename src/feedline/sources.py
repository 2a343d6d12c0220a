"""Source and feed descriptors loaded from the sources config file."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from feedline.errors import ConfigError

logger = logging.getLogger(__name__)

# (keyword, tag) pairs matched case-insensitively against title + summary + url
DEFAULT_TAG_RULES: tuple[tuple[str, str], ...] = (
    ("agents", "agents"),
    ("agent", "agents"),
    ("reasoning", "reasoning"),
    ("benchmark", "eval"),
    ("evaluation", "eval"),
    ("safety", "safety"),
    ("alignment", "safety"),
    ("policy", "policy"),
    ("regulation", "policy"),
    ("governance", "policy"),
    ("compute", "compute"),
    ("gpu", "compute"),
    ("inference", "inference"),
    ("training", "training"),
    ("model", "model"),
    ("release", "release"),
    ("launch", "release"),
    ("paper", "papers"),
    ("arxiv", "papers"),
    ("dataset", "data"),
)

DEFAULT_MAX_ITEMS = 600
DEFAULT_CACHE_MAX_AGE = 300

_SOURCE_ID_RE = re.compile(r"[^a-z0-9]+")
_TRUTHY = frozenset({"1", "true", "yes", "on"})


def normalize_source_id(value: str) -> str:
    """Lowercase, drop a leading '@', and collapse non-alphanumerics to '_'."""
    cleaned = value.strip().lstrip("@").lower()
    return _SOURCE_ID_RE.sub("_", cleaned).strip("_")


@dataclass(frozen=True)
class SourceDescriptor:
    """One external content source."""

    id: str
    name: str
    type: str
    url: str | None = None
    rss_url: str | None = None
    handle: str | None = None
    tags: tuple[str, ...] = ()
    enabled: bool = True
    options: Mapping = field(default_factory=dict)


@dataclass(frozen=True)
class FeedDescriptor:
    """A logical feed: one persisted collection built from several sources."""

    name: str
    sources: tuple[SourceDescriptor, ...]
    max_items: int = DEFAULT_MAX_ITEMS
    cache_max_age: int = DEFAULT_CACHE_MAX_AGE
    enabled: bool = True
    tag_rules: tuple[tuple[str, str], ...] = DEFAULT_TAG_RULES


@dataclass(frozen=True)
class SocialProfile:
    """A social profile exposed through the live RSS preview endpoint."""

    slug: str
    mode: str = "manual"
    rss_url: str | None = None


@dataclass(frozen=True)
class SourcesConfig:
    feeds: tuple[FeedDescriptor, ...]
    social: tuple[SocialProfile, ...] = ()

    def get_feed(self, name: str) -> FeedDescriptor | None:
        for feed in self.feeds:
            if feed.name == name:
                return feed
        return None

    def get_social(self, slug: str) -> SocialProfile | None:
        slug = slug.strip().lower()
        for profile in self.social:
            if profile.slug == slug:
                return profile
        return None


def _parse_tag_rules(raw, where: str) -> tuple[tuple[str, str], ...]:
    if not isinstance(raw, list):
        raise ConfigError(f"{where}: tag_rules must be a list of [keyword, tag] pairs")
    rules: list[tuple[str, str]] = []
    for entry in raw:
        if (
            not isinstance(entry, (list, tuple))
            or len(entry) != 2
            or not all(isinstance(part, str) and part.strip() for part in entry)
        ):
            raise ConfigError(f"{where}: invalid tag rule {entry!r}")
        rules.append((entry[0].strip().lower(), entry[1].strip()))
    return tuple(rules)


def _parse_source(raw, feed_name: str, index: int) -> SourceDescriptor:
    where = f"feed '{feed_name}' source #{index}"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object")

    source_type = raw.get("type")
    if not isinstance(source_type, str) or not source_type.strip():
        raise ConfigError(f"{where}: 'type' is required")

    name = raw.get("name") or raw.get("handle") or raw.get("id")
    if not isinstance(name, str) or not name.strip():
        raise ConfigError(f"{where}: one of 'name', 'handle' or 'id' is required")

    source_id = normalize_source_id(str(raw.get("id") or raw.get("handle") or name))
    if not source_id:
        raise ConfigError(f"{where}: could not derive a source id from {name!r}")

    tags = raw.get("tags", [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise ConfigError(f"{where}: 'tags' must be a list of strings")

    options = raw.get("options", {})
    if not isinstance(options, dict):
        raise ConfigError(f"{where}: 'options' must be an object")

    return SourceDescriptor(
        id=source_id,
        name=name.strip(),
        type=source_type.strip().lower(),
        url=raw.get("url"),
        rss_url=raw.get("rss_url"),
        handle=raw.get("handle"),
        tags=tuple(t.strip() for t in tags if t.strip()),
        enabled=bool(raw.get("enabled", True)),
        options=options,
    )


def _flag_enabled(raw: dict, environ: Mapping[str, str]) -> bool:
    enabled = bool(raw.get("enabled", True))
    flag = raw.get("enabled_env")
    if flag:
        enabled = enabled and environ.get(flag, "").strip().lower() in _TRUTHY
    return enabled


def parse_sources(data: dict, environ: Mapping[str, str] | None = None) -> SourcesConfig:
    """Build a SourcesConfig from the decoded JSON document.

    Raises ConfigError on structurally invalid entries.
    """
    if environ is None:
        environ = os.environ
    if not isinstance(data, dict):
        raise ConfigError("sources config must be a JSON object")

    default_rules = DEFAULT_TAG_RULES
    if "tag_rules" in data:
        default_rules = _parse_tag_rules(data["tag_rules"], "sources config")

    feeds: list[FeedDescriptor] = []
    seen_names: set[str] = set()
    for raw_feed in data.get("feeds", []):
        if not isinstance(raw_feed, dict):
            raise ConfigError(f"feed entry must be an object, got {raw_feed!r}")
        name = raw_feed.get("name")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("every feed needs a non-empty 'name'")
        name = name.strip()
        if name in seen_names:
            raise ConfigError(f"duplicate feed name '{name}'")
        seen_names.add(name)

        max_items = raw_feed.get("max_items", DEFAULT_MAX_ITEMS)
        if not isinstance(max_items, int) or max_items < 1:
            raise ConfigError(f"feed '{name}': max_items must be a positive integer")
        cache_max_age = raw_feed.get("cache_max_age", DEFAULT_CACHE_MAX_AGE)
        if not isinstance(cache_max_age, int) or cache_max_age < 0:
            raise ConfigError(f"feed '{name}': cache_max_age must be a non-negative integer")

        rules = default_rules
        if "tag_rules" in raw_feed:
            rules = _parse_tag_rules(raw_feed["tag_rules"], f"feed '{name}'")

        sources = tuple(
            _parse_source(raw, name, i)
            for i, raw in enumerate(raw_feed.get("sources", []))
        )
        ids = [s.id for s in sources]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ConfigError(f"feed '{name}': duplicate source ids {', '.join(duplicates)}")

        feeds.append(
            FeedDescriptor(
                name=name,
                sources=sources,
                max_items=max_items,
                cache_max_age=cache_max_age,
                enabled=_flag_enabled(raw_feed, environ),
                tag_rules=rules,
            )
        )

    social: list[SocialProfile] = []
    for raw in data.get("social", []):
        if not isinstance(raw, dict) or not str(raw.get("slug", "")).strip():
            raise ConfigError(f"social entry needs a 'slug': {raw!r}")
        social.append(
            SocialProfile(
                slug=str(raw["slug"]).strip().lower(),
                mode=raw.get("mode", "manual"),
                rss_url=raw.get("rss_url"),
            )
        )

    return SourcesConfig(feeds=tuple(feeds), social=tuple(social))


def load_sources(path: str | Path, environ: Mapping[str, str] | None = None) -> SourcesConfig:
    """Read and parse the sources config file at *path*."""
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"sources config not found: {path}") from None
    except json.JSONDecodeError as exc:
        raise ConfigError(f"sources config is not valid JSON: {exc}") from exc
    config = parse_sources(data, environ)
    logger.info(
        "Loaded %d feed(s) with %d source(s) from %s",
        len(config.feeds),
        sum(len(f.sources) for f in config.feeds),
        path,
    )
    return config
