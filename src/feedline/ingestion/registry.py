"""Adapter registry — maps source type strings to adapter classes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from feedline.config import Config
    from feedline.ingestion.adapter import SourceAdapter
    from feedline.storage.feed_store import FeedStore

_REGISTRY: dict[str, type[SourceAdapter]] = {}


def register_adapter(type_name: str, cls: type[SourceAdapter]) -> None:
    """Register an adapter class for a given source type."""
    _REGISTRY[type_name] = cls


def get_adapter_class(type_name: str) -> type[SourceAdapter] | None:
    """Look up an adapter class by source type. Returns None if not found."""
    return _REGISTRY.get(type_name)


def create_adapter(
    type_name: str, config: Config, store: FeedStore | None = None
) -> SourceAdapter | None:
    """Instantiate the adapter registered for *type_name*, or None if unknown."""
    cls = get_adapter_class(type_name)
    if cls is None:
        return None
    return cls(config, store)


def registered_types() -> list[str]:
    """Return a sorted list of all registered source types."""
    return sorted(_REGISTRY)
