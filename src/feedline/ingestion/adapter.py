"""Source adapter interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from feedline.ingestion.normalize import RawCandidate

if TYPE_CHECKING:
    from feedline.config import Config
    from feedline.sources import SourceDescriptor
    from feedline.storage.feed_store import FeedStore


class SourceAdapter(ABC):
    """Abstract base class for source adapters.

    An adapter turns one source descriptor into raw candidates. It raises
    FetchError for network problems, ParseError when nothing usable could be
    parsed, and ConfigError when a required secret is missing. Everything
    downstream (normalization, merging, persistence) is source-agnostic.
    """

    def __init__(self, config: Config, store: FeedStore | None = None) -> None:
        self._config = config
        self._store = store

    @property
    @abstractmethod
    def name(self) -> str:
        """Adapter type name."""

    def check_config(self) -> None:
        """Raise ConfigError if the adapter cannot run with the current config."""

    @abstractmethod
    def fetch(self, source: SourceDescriptor, cursor: str | None = None) -> list[RawCandidate]:
        """Fetch candidates for *source*.

        *cursor* is the highest external id seen on a previous run; adapters
        whose upstream supports incremental queries request only newer items.
        """

    @property
    def _timeout(self) -> float:
        return self._config.request_timeout_seconds

    @property
    def _user_agent(self) -> str:
        return self._config.user_agent
