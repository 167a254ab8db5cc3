"""Source summary cache."""

from examgen.summary.cache import (
    SummaryCache,
    SummaryExtractionError,
    extract_topics,
    find_similar_summary,
    generate_summary,
)

__all__ = [
    "SummaryCache",
    "SummaryExtractionError",
    "extract_topics",
    "find_similar_summary",
    "generate_summary",
]
