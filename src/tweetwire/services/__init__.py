"""Service layer entry points for tweetwire."""

from __future__ import annotations

from .enricher import Enricher, decode_enrichment  # noqa: F401
from .extractor import canonical_post_url, extract_single, extract_timeline  # noqa: F401
from .ingestor import Ingestor  # noqa: F401
from .store import BlobArticleStore, Deduplicator, MongoArticleStore  # noqa: F401

__all__ = [
    "BlobArticleStore",
    "Deduplicator",
    "Enricher",
    "Ingestor",
    "MongoArticleStore",
    "canonical_post_url",
    "decode_enrichment",
    "extract_single",
    "extract_timeline",
]
