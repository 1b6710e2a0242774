"""Build the ingestion pipeline from an :class:`~tweetwire.config.AppConfig`."""

from __future__ import annotations

from tweetwire.config import AppConfig
from tweetwire.services.enricher import build_enricher
from tweetwire.services.ingestor import Ingestor
from tweetwire.services.snapshots import build_snapshot_provider
from tweetwire.services.store import ArticleStore, build_store

__all__ = ["build_ingestor"]


def build_ingestor(config: AppConfig, *, store: ArticleStore | None = None) -> Ingestor:
    """Return an :class:`Ingestor` wired with the collaborators selected in ``config``."""

    return Ingestor(
        store if store is not None else build_store(config.store),
        build_snapshot_provider(config.renderer),
        build_enricher(config.enrichment),
        base_url=config.base_url,
        max_posts=config.max_posts,
        pacing_interval=config.pacing_interval,
    )
