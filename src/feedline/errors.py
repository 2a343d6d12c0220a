"""Error taxonomy for the aggregation pipeline."""

from __future__ import annotations


class FeedlineError(Exception):
    """Base class for all pipeline errors."""


class FetchError(FeedlineError):
    """Network, timeout, or non-2xx failure while fetching a source."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.message = message


class ParseError(FeedlineError):
    """Malformed XML, JSON, or HTML structure."""


class ConfigError(FeedlineError):
    """Missing or invalid configuration for a source or feed."""


class PersistenceReadError(FeedlineError):
    """Stored document is corrupt or does not match the item shape."""
