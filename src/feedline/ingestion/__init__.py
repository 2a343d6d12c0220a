"""Ingestion pipeline — source fetching, normalization, and deduplication."""

from feedline.ingestion.registry import register_adapter
from feedline.ingestion.rss_adapter import RSSAdapter
from feedline.ingestion.web_adapter import WebAdapter
from feedline.ingestion.x_adapter import XAdapter

register_adapter("rss", RSSAdapter)
register_adapter("web", WebAdapter)
register_adapter("x", XAdapter)
