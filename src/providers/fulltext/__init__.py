"""Full-text index provider implementations.

Two implementations of IFullTextIndexProvider, selected by FULLTEXT_BACKEND:
    1. SQLiteFTSIndex   -- SQLite FTS5 with bm25 ranking.  Local default.
    2. OpenSearchIndex  -- OpenSearch over its REST API via httpx.
"""

from src.providers.fulltext.opensearch_provider import OpenSearchIndex
from src.providers.fulltext.sqlite_fts_provider import SQLiteFTSIndex

__all__ = ["OpenSearchIndex", "SQLiteFTSIndex"]
