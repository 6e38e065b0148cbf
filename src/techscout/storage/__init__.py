"""Storage layer — SQLite feed item store and run bookkeeping."""

from techscout.storage.connection import get_connection
from techscout.storage.feed_items import FeedItemStore
from techscout.storage.schema import init_db

__all__ = ["FeedItemStore", "get_connection", "init_db"]
