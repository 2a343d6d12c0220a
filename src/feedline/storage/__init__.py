"""Storage layer — SQLite-backed key-value documents and run tracking."""

from feedline.storage.connection import get_connection
from feedline.storage.feed_store import FeedStore, seed_item
from feedline.storage.kv import KeyValueStore
from feedline.storage.schema import init_db

__all__ = ["FeedStore", "KeyValueStore", "get_connection", "init_db", "seed_item"]
