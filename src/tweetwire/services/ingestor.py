"""Orchestrate extraction, deduplication, enrichment and persistence.

Candidates of one batch are processed strictly one after another in document
order. Each candidate ends in exactly one of: persisted, skipped as duplicate,
skipped as invalid, or recorded as an error. Only an unavailable source aborts
a batch.
"""

from __future__ import annotations

import logging
import time
from datetime import UTC, datetime
from typing import Callable, Iterable, List
from urllib.parse import urlparse

from tweetwire.models import (
    SUMMARY_FALLBACK_LENGTH,
    TITLE_FALLBACK_LENGTH,
    ArticleOrigin,
    BatchReport,
    CandidateError,
    EnrichedContent,
    EnrichmentMode,
    ManualArticle,
    MediaItem,
    PersistedArticle,
    RawCandidate,
    SkippedCandidate,
    SourceDescriptor,
)
from tweetwire.services.enricher import Enricher
from tweetwire.services.extractor import (
    DEFAULT_BASE_URL,
    DEFAULT_MAX_COUNT,
    canonical_post_url,
    extract_single,
    extract_timeline,
    is_post_url,
)
from tweetwire.services.snapshots import SnapshotProvider, SourceUnavailableError, profile_url, search_url
from tweetwire.services.store import ArticleStore, Deduplicator, DuplicateKeyError, StoreError

__all__ = ["DEFAULT_PACING_INTERVAL", "Ingestor", "build_article"]

logger = logging.getLogger(__name__)

DEFAULT_PACING_INTERVAL = 0.2


def _utcnow() -> datetime:
    return datetime.now(UTC)


def build_article(
    candidate: RawCandidate,
    enriched: EnrichedContent | None,
    mode: EnrichmentMode | None,
    *,
    source: str,
    origin: ArticleOrigin,
    ingested_at: datetime,
    title: str | None = None,
    media: Iterable[MediaItem] = (),
) -> PersistedArticle:
    """Combine a candidate and its (optional) enrichment into a durable record."""

    text = candidate.text
    article = PersistedArticle(
        title=text[:TITLE_FALLBACK_LENGTH],
        summary=text[:SUMMARY_FALLBACK_LENGTH],
        body=text,
        natural_key=candidate.natural_key,
        source=source,
        origin=origin,
        published_at=candidate.published_at or ingested_at,
        media=[*media, *candidate.media()],
    )

    if enriched is not None and mode is EnrichmentMode.SUMMARIZE:
        article.title = enriched.title
        article.summary = enriched.body
    elif enriched is not None and mode is EnrichmentMode.TRANSLATE:
        article.localized_title = enriched.title
        article.localized_body = enriched.body

    if title:
        article.title = title
    return article


class _Pacer:
    """Enforce a minimum interval between consecutive commits of one batch."""

    def __init__(self, interval: float, sleep: Callable[[float], None], clock: Callable[[], float]) -> None:
        self.interval = interval
        self._sleep = sleep
        self._clock = clock
        self._last: float | None = None

    def wait(self) -> None:
        if self._last is None or self.interval <= 0:
            return
        remaining = self.interval - (self._clock() - self._last)
        if remaining > 0:
            self._sleep(remaining)

    def mark(self) -> None:
        self._last = self._clock()


class Ingestor:
    """Run ingestion batches against a store.

    Collaborators are injected so tests can substitute fakes: ``snapshots``
    renders pages, ``enricher`` (optional) rewrites text, ``store`` persists.
    """

    def __init__(
        self,
        store: ArticleStore,
        snapshots: SnapshotProvider,
        enricher: Enricher | None = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        max_posts: int = DEFAULT_MAX_COUNT,
        pacing_interval: float = DEFAULT_PACING_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.deduplicator = Deduplicator(store)
        self.snapshots = snapshots
        self.enricher = enricher
        self.base_url = base_url
        self.max_posts = max_posts
        self.pacing_interval = pacing_interval
        self._sleep = sleep
        self._clock = clock
        self._now = now

    # ------------------------------------------------------------------
    def ingest(self, source: SourceDescriptor, mode: EnrichmentMode | None = None) -> BatchReport:
        """Ingest a timeline, search results or a single post depending on ``source``."""

        if source.url:
            return self.ingest_post(source.url, mode)
        if source.query:
            return self.ingest_search(source.query, mode)
        if source.username:
            return self.ingest_user(source.username, mode)
        raise ValueError("A source needs a username, a search query or a post url")

    def ingest_user(self, username: str, mode: EnrichmentMode | None = None) -> BatchReport:
        """Ingest the most recent original posts of ``username``."""

        handle = username.strip().lstrip("@")
        url = profile_url(handle, self.base_url)

        try:
            snapshot = self.snapshots.fetch(url)
        except SourceUnavailableError as exc:
            logger.error("Timeline of %s unavailable: %s", handle, exc)
            return BatchReport(source=handle, origin=ArticleOrigin.SCRAPE_USER, mode=mode, error=str(exc))

        candidates = extract_timeline(snapshot, self.max_posts, base_url=self.base_url)
        logger.info("Extracted %d candidate posts from %s", len(candidates), url)

        return self.ingest_candidates(candidates, source=handle, origin=ArticleOrigin.SCRAPE_USER, mode=mode)

    def ingest_search(self, query: str, mode: EnrichmentMode | None = None) -> BatchReport:
        """Ingest the latest original posts matching a search ``query``."""

        query = query.strip()
        url = search_url(query, self.base_url)

        try:
            snapshot = self.snapshots.fetch(url)
        except SourceUnavailableError as exc:
            logger.error("Search results for %r unavailable: %s", query, exc)
            return BatchReport(source=query, origin=ArticleOrigin.SCRAPE_SEARCH, mode=mode, error=str(exc))

        candidates = extract_timeline(snapshot, self.max_posts, base_url=self.base_url)
        logger.info("Extracted %d candidate posts for search %r", len(candidates), query)

        return self.ingest_candidates(candidates, source=query, origin=ArticleOrigin.SCRAPE_SEARCH, mode=mode)

    def ingest_post(self, url: str, mode: EnrichmentMode | None = None) -> BatchReport:
        """Ingest a single post, skipping extraction entirely when it is already stored."""

        natural_key = canonical_post_url(url, self.base_url)
        report = BatchReport(source=natural_key, origin=ArticleOrigin.SCRAPE_POST, mode=mode, is_new=False)

        try:
            if self.deduplicator.exists(natural_key):
                logger.info("Post %s already stored", natural_key)
                report.skipped_duplicate.append(natural_key)
                return report
        except StoreError as exc:
            logger.warning("Lookup failed for %s: %s", natural_key, exc)
            report.errors.append(CandidateError(natural_key=natural_key, error=str(exc)))
            return report

        try:
            snapshot = self.snapshots.fetch(natural_key)
        except SourceUnavailableError as exc:
            logger.error("Post %s unavailable: %s", natural_key, exc)
            report.error = str(exc)
            return report

        candidate = extract_single(snapshot, base_url=self.base_url, natural_key=natural_key)
        if candidate is None:
            logger.error("No post found at %s", natural_key)
            report.error = f"No post found at {natural_key}"
            return report

        handle, _, post_id = urlparse(natural_key).path.strip("/").partition("/status/")
        if candidate.natural_key.lower() != natural_key.lower():
            # No container carried the requested permalink; attribute the post to the URL.
            candidate = candidate.model_copy(update={"author": handle or None, "post_id": post_id or None})
        candidate = candidate.model_copy(update={"natural_key": natural_key})
        source = candidate.author or handle

        self._process(candidate, report, _Pacer(0, self._sleep, self._clock), source=source, mode=mode)
        report.is_new = natural_key in report.persisted
        return report

    def ingest_manual(self, article: ManualArticle, mode: EnrichmentMode | None = None) -> BatchReport:
        """Store a hand-submitted article through the same pipeline as scraped posts."""

        url = article.url.strip()
        natural_key = canonical_post_url(url, self.base_url) if is_post_url(url, self.base_url) else url
        candidate = RawCandidate(natural_key=natural_key, text=article.text, published_at=article.published_at)

        report = BatchReport(source=article.source, origin=ArticleOrigin.MANUAL, mode=mode)
        self._process(
            candidate,
            report,
            _Pacer(0, self._sleep, self._clock),
            source=article.source,
            mode=mode,
            title=article.title,
            media=article.media,
        )
        report.is_new = natural_key in report.persisted
        return report

    def ingest_candidates(
        self,
        candidates: Iterable[RawCandidate],
        *,
        source: str,
        origin: ArticleOrigin,
        mode: EnrichmentMode | None = None,
    ) -> BatchReport:
        """Run every candidate through the dedup/enrich/persist sequence in order."""

        report = BatchReport(source=source, origin=origin, mode=mode)
        pacer = _Pacer(self.pacing_interval, self._sleep, self._clock)
        for candidate in candidates:
            self._process(candidate, report, pacer, source=source, mode=mode, origin=origin)

        logger.info(
            "Batch %s finished: %d persisted, %d duplicate, %d invalid, %d errors",
            source,
            report.persisted_count,
            report.duplicate_count,
            report.invalid_count,
            report.error_count,
        )
        return report

    # ------------------------------------------------------------------
    def _enrich(self, text: str, mode: EnrichmentMode | None) -> EnrichedContent | None:
        if self.enricher is None or mode is None:
            return None
        return self.enricher.enrich(text, mode)

    def _process(
        self,
        candidate: RawCandidate,
        report: BatchReport,
        pacer: _Pacer,
        *,
        source: str,
        mode: EnrichmentMode | None,
        origin: ArticleOrigin | None = None,
        title: str | None = None,
        media: List[MediaItem] | None = None,
    ) -> None:
        origin = origin or report.origin

        reason = candidate.invalid_reason()
        if reason is not None:
            logger.info("Skipping invalid candidate %r: %s", candidate.natural_key, reason)
            report.skipped_invalid.append(SkippedCandidate(natural_key=candidate.natural_key, reason=reason))
            return

        natural_key = candidate.natural_key
        try:
            if self.deduplicator.exists(natural_key):
                logger.debug("Skipping known post %s", natural_key)
                report.skipped_duplicate.append(natural_key)
                return
        except StoreError as exc:
            logger.warning("Lookup failed for %s: %s", natural_key, exc)
            report.errors.append(CandidateError(natural_key=natural_key, error=str(exc)))
            return

        enriched = self._enrich(candidate.text, mode)
        if enriched is None and mode is not None and self.enricher is not None:
            logger.info("Using raw text fallback for %s", natural_key)

        article = build_article(
            candidate,
            enriched,
            mode,
            source=candidate.author or source,
            origin=origin,
            ingested_at=self._now(),
            title=title,
            media=media or (),
        )

        pacer.wait()
        try:
            stored = self.store.insert(article)
        except DuplicateKeyError:
            logger.info("Post %s was stored concurrently", natural_key)
            report.skipped_duplicate.append(natural_key)
            return
        except StoreError as exc:
            logger.warning("Failed to store %s: %s", natural_key, exc)
            report.errors.append(CandidateError(natural_key=natural_key, error=str(exc)))
            return
        finally:
            pacer.mark()

        logger.info("Stored %s", natural_key)
        report.persisted.append(natural_key)
        report.articles.append(stored)
