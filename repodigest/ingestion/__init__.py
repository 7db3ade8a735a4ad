"""
Repository ingestion module.

Filters repository trees, fetches file contents through a provider and
renders the resulting digest.
"""

from repodigest.ingestion.engine import IngestionEngine, ingest_repository
from repodigest.ingestion.filters import PathFilter, is_binary, match_path, split_patterns
from repodigest.ingestion.formatter import (
    JSONSummaryFormatter,
    TextDigestFormatter,
    TreeFormatter,
    fence_content,
    render_tree,
)

__all__ = [
    "IngestionEngine",
    "ingest_repository",
    "PathFilter",
    "is_binary",
    "match_path",
    "split_patterns",
    "JSONSummaryFormatter",
    "TextDigestFormatter",
    "TreeFormatter",
    "fence_content",
    "render_tree",
]
