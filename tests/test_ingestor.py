from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import pytest

from pages import REPLY_BANNER, REPOST_BANNER, SCENARIO, post_html, timeline
from tweetwire.models import (
    ArticleOrigin,
    EnrichedContent,
    EnrichmentMode,
    ManualArticle,
    MediaItem,
    MediaKind,
    PersistedArticle,
    SourceDescriptor,
)
from tweetwire.services.enricher import Enricher
from tweetwire.services.ingestor import Ingestor
from tweetwire.services.snapshots import SourceUnavailableError, search_url
from tweetwire.services.store import BlobArticleStore, DuplicateKeyError, MongoArticleStore, StoreError

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


class FakeSnapshots:
    def __init__(self, pages: dict[str, str] | None = None) -> None:
        self.pages = pages or {}
        self.requested: list[str] = []

    def fetch(self, url: str) -> str:
        self.requested.append(url)
        if url not in self.pages:
            raise SourceUnavailableError(f"timeout rendering {url}")
        return self.pages[url]


class FakeEnricher:
    def __init__(self, result: EnrichedContent | None = None) -> None:
        self.result = result
        self.calls: list[tuple[str, EnrichmentMode]] = []

    def enrich(self, text: str, mode: EnrichmentMode) -> EnrichedContent | None:
        self.calls.append((text, mode))
        return self.result


class MemoryStore:
    def __init__(self) -> None:
        self.articles: dict[str, PersistedArticle] = {}
        self.inserts: list[str] = []

    def find_by_natural_key(self, natural_key: str) -> PersistedArticle | None:
        return self.articles.get(natural_key)

    def insert(self, article: PersistedArticle) -> PersistedArticle:
        self.inserts.append(article.natural_key)
        if article.natural_key in self.articles:
            raise DuplicateKeyError(article.natural_key)
        self.articles[article.natural_key] = article
        return article

    def list_articles(self, limit: int = 50) -> list[PersistedArticle]:
        return list(self.articles.values())[:limit]


class RacingStore(MemoryStore):
    """A store whose lookups never see records written by a concurrent batch."""

    def find_by_natural_key(self, natural_key: str) -> PersistedArticle | None:
        return None


class FailingStore(MemoryStore):
    def __init__(self, failing_keys: set[str]) -> None:
        super().__init__()
        self.failing_keys = failing_keys

    def insert(self, article: PersistedArticle) -> PersistedArticle:
        if article.natural_key in self.failing_keys:
            raise StoreError("disk full")
        return super().insert(article)


PROFILE = "https://twitter.com/isro"


def make_ingestor(store=None, pages=None, enricher=None, sleeps=None) -> Ingestor:
    recorded = sleeps if sleeps is not None else []
    return Ingestor(
        store if store is not None else MemoryStore(),
        FakeSnapshots(pages if pages is not None else {PROFILE: SCENARIO}),
        enricher,
        sleep=recorded.append,
        clock=lambda: 100.0,
        now=lambda: NOW,
    )


def test_scenario_timeline_report() -> None:
    store = MemoryStore()
    ingestor = make_ingestor(store)

    report = ingestor.ingest(SourceDescriptor(username="isro"))

    assert report.persisted == ["https://twitter.com/isro/status/101", "https://twitter.com/isro/status/105"]
    assert report.invalid_count == 1
    assert report.skipped_invalid[0].reason == "missing permalink"
    assert report.duplicate_count == 0
    assert report.error is None
    assert report.origin is ArticleOrigin.SCRAPE_USER
    assert set(store.articles) == set(report.persisted)


def test_second_run_is_idempotent() -> None:
    store = MemoryStore()
    ingestor = make_ingestor(store)

    first = ingestor.ingest_user("@isro")
    second = ingestor.ingest_user("isro")

    assert second.persisted == []
    assert second.duplicate_count == first.persisted_count
    assert store.inserts == first.persisted


def test_uniqueness_with_blob_store(tmp_path: Path) -> None:
    store = BlobArticleStore(tmp_path)
    ingestor = make_ingestor(store)

    ingestor.ingest_user("isro")
    ingestor.ingest_user("isro")

    keys = [article.natural_key for article in store.list_articles()]
    assert sorted(keys) == ["https://twitter.com/isro/status/101", "https://twitter.com/isro/status/105"]


def test_invalid_candidates_are_never_persisted() -> None:
    page = timeline(post_html("isro", "1", ""), post_html("isro", None, "no link"))
    store = MemoryStore()
    enricher = FakeEnricher(EnrichedContent("T", "S"))

    report = make_ingestor(store, {PROFILE: page}, enricher).ingest_user("isro", EnrichmentMode.SUMMARIZE)

    assert [entry.reason for entry in report.skipped_invalid] == ["missing text", "missing permalink"]
    assert store.inserts == []
    assert enricher.calls == []


def test_fallback_is_deterministic_truncation() -> None:
    text = "x" * 90 + "y" * 150
    page = timeline(post_html("isro", "1", text))
    store = MemoryStore()

    make_ingestor(store, {PROFILE: page}, FakeEnricher(None)).ingest_user("isro", EnrichmentMode.SUMMARIZE)

    article = store.articles["https://twitter.com/isro/status/1"]
    assert article.title == text[:100]
    assert article.summary == text[:200]
    assert article.body == text
    assert article.localized_title is None


def test_summarize_mode_uses_enriched_title_and_summary() -> None:
    store = MemoryStore()
    enricher = FakeEnricher(EnrichedContent(title="Launch set", body="ISRO confirmed a Friday launch."))

    make_ingestor(store, enricher=enricher).ingest_user("isro", EnrichmentMode.SUMMARIZE)

    article = store.articles["https://twitter.com/isro/status/101"]
    assert (article.title, article.summary) == ("Launch set", "ISRO confirmed a Friday launch.")
    assert article.body == "Launch window confirmed for Friday"
    assert [mode for _, mode in enricher.calls] == [EnrichmentMode.SUMMARIZE, EnrichmentMode.SUMMARIZE]


def test_translate_mode_fills_localized_fields() -> None:
    store = MemoryStore()
    enricher = FakeEnricher(EnrichedContent(title="ప్రయోగం", body="శ్రీహరికోట: ..."))

    make_ingestor(store, enricher=enricher).ingest_user("isro", EnrichmentMode.TRANSLATE)

    article = store.articles["https://twitter.com/isro/status/105"]
    assert article.localized_title == "ప్రయోగం"
    assert article.localized_body == "శ్రీహరికోట: ..."
    assert article.title == "Satellite placed in orbit"
    assert article.media == [MediaItem(kind=MediaKind.IMAGE, url="https://pbs.twimg.com/media/abc.jpg")]


def test_no_mode_skips_enrichment() -> None:
    enricher = FakeEnricher(EnrichedContent("T", "S"))

    report = make_ingestor(enricher=enricher).ingest_user("isro")

    assert report.persisted_count == 2
    assert enricher.calls == []


def test_published_at_defaults_to_ingestion_time() -> None:
    page = timeline(post_html("isro", "1", "text", timestamp=None))
    store = MemoryStore()

    make_ingestor(store, {PROFILE: page}).ingest_user("isro")

    assert store.articles["https://twitter.com/isro/status/1"].published_at == NOW


def test_commit_time_duplicate_is_reclassified() -> None:
    store = RacingStore()
    store.articles["https://twitter.com/isro/status/101"] = PersistedArticle(
        title="t",
        summary="s",
        body="b",
        natural_key="https://twitter.com/isro/status/101",
        source="isro",
        origin=ArticleOrigin.SCRAPE_USER,
        published_at=NOW,
    )

    report = make_ingestor(store).ingest_user("isro")

    assert report.skipped_duplicate == ["https://twitter.com/isro/status/101"]
    assert report.persisted == ["https://twitter.com/isro/status/105"]
    assert report.errors == []


def test_store_failure_is_recorded_and_batch_continues() -> None:
    store = FailingStore({"https://twitter.com/isro/status/101"})

    report = make_ingestor(store).ingest_user("isro")

    assert report.errors[0].natural_key == "https://twitter.com/isro/status/101"
    assert report.errors[0].error == "disk full"
    assert report.persisted == ["https://twitter.com/isro/status/105"]
    assert report.failed is False


def test_total_store_failure_marks_report_failed() -> None:
    store = FailingStore({"https://twitter.com/isro/status/101", "https://twitter.com/isro/status/105"})

    report = make_ingestor(store).ingest_user("isro")

    assert report.persisted_count == 0
    assert report.error_count == 2
    assert report.failed is True


def test_unavailable_source_aborts_batch() -> None:
    report = make_ingestor(pages={}).ingest_user("isro")

    assert report.error == "timeout rendering https://twitter.com/isro"
    assert report.persisted == [] and report.skipped_invalid == [] and report.skipped_duplicate == []
    assert report.failed is True


def test_pacing_between_commits_only() -> None:
    page = timeline(
        post_html("isro", "1", "one"),
        post_html("isro", "2", "two"),
        post_html("isro", None, "invalid"),
        post_html("isro", "3", "three"),
    )
    store = MemoryStore()
    sleeps: list[float] = []
    ingestor = make_ingestor(store, {PROFILE: page}, sleeps=sleeps)

    ingestor.ingest_user("isro")
    assert sleeps == pytest.approx([0.2, 0.2])

    sleeps.clear()
    ingestor.ingest_user("isro")
    assert sleeps == []


def test_excluded_posts_never_reach_the_store() -> None:
    page = timeline(
        post_html("someone", "1", "repost", banner=REPOST_BANNER),
        post_html("isro", "2", "reply", banner=REPLY_BANNER),
    )
    store = MemoryStore()

    report = make_ingestor(store, {PROFILE: page}).ingest_user("isro")

    assert store.inserts == []
    assert report.persisted_count == report.invalid_count == report.duplicate_count == 0


SINGLE_URL = "https://twitter.com/isro/status/777"


def test_single_post_already_stored_short_circuits() -> None:
    store = MemoryStore()
    store.articles[SINGLE_URL] = PersistedArticle(
        title="t",
        summary="s",
        body="b",
        natural_key=SINGLE_URL,
        source="isro",
        origin=ArticleOrigin.SCRAPE_POST,
        published_at=NOW,
    )
    enricher = FakeEnricher(EnrichedContent("T", "S"))
    ingestor = make_ingestor(store, {}, enricher)

    report = ingestor.ingest(SourceDescriptor(url="https://x.com/isro/status/777?s=20"), EnrichmentMode.SUMMARIZE)

    assert report.is_new is False
    assert report.skipped_duplicate == [SINGLE_URL]
    assert enricher.calls == []
    assert store.inserts == []
    assert ingestor.snapshots.requested == []


def test_single_post_new_uses_input_url_as_key() -> None:
    page = timeline(post_html("isro", "777", "Chandrayaan update", banner=REPLY_BANNER))
    store = MemoryStore()
    ingestor = make_ingestor(store, {SINGLE_URL: page})

    report = ingestor.ingest_post("https://mobile.twitter.com/isro/status/777/photo/1")

    assert report.is_new is True
    assert report.persisted == [SINGLE_URL]
    article = store.articles[SINGLE_URL]
    assert article.origin is ArticleOrigin.SCRAPE_POST
    assert article.source == "isro"
    assert report.articles == [article]


def test_single_post_without_content_reports_error() -> None:
    ingestor = make_ingestor(pages={SINGLE_URL: "<html><body>Hmm...this page doesn't exist.</body></html>"})

    report = ingestor.ingest_post(SINGLE_URL)

    assert report.error == f"No post found at {SINGLE_URL}"
    assert report.is_new is False


def test_single_post_unavailable() -> None:
    report = make_ingestor(pages={}).ingest_post(SINGLE_URL)

    assert report.error is not None
    assert report.is_new is False


def test_manual_article_keeps_title_and_media() -> None:
    store = MemoryStore()
    enricher = FakeEnricher(EnrichedContent("Generated", "Generated summary"))
    video = MediaItem(kind=MediaKind.EXTERNAL_VIDEO, url="https://www.youtube.com/watch?v=abc")
    manual = ManualArticle(
        text="Press release body",
        url="https://www.youtube.com/watch?v=abc",
        title="Editor's title",
        source="desk",
        media=[video],
    )

    report = make_ingestor(store, enricher=enricher).ingest_manual(manual, EnrichmentMode.SUMMARIZE)

    assert report.is_new is True
    article = store.articles["https://www.youtube.com/watch?v=abc"]
    assert article.title == "Editor's title"
    assert article.summary == "Generated summary"
    assert article.origin is ArticleOrigin.MANUAL
    assert article.source == "desk"
    assert article.media == [video]


def test_manual_article_with_post_url_is_canonicalised() -> None:
    store = MemoryStore()
    manual = ManualArticle(text="text", url="https://x.com/isro/status/5?s=1")

    report = make_ingestor(store).ingest_manual(manual)

    assert report.persisted == ["https://twitter.com/isro/status/5"]


def test_source_descriptor_must_name_a_source() -> None:
    with pytest.raises(ValueError):
        make_ingestor().ingest(SourceDescriptor())


def test_single_post_reply_stores_focal_post_not_parent() -> None:
    page = timeline(
        post_html("nasa", "500", "Parent post text"),
        post_html("isro", "777", "Focal reply text", banner=REPLY_BANNER),
    )
    store = MemoryStore()

    report = make_ingestor(store, {SINGLE_URL: page}).ingest_post(SINGLE_URL)

    assert report.persisted == [SINGLE_URL]
    article = store.articles[SINGLE_URL]
    assert article.body == "Focal reply text"
    assert article.source == "isro"


def test_single_post_without_matching_permalink_is_attributed_to_url() -> None:
    page = timeline(post_html("nasa", "500", "Only the conversation rendered"))
    store = MemoryStore()

    make_ingestor(store, {SINGLE_URL: page}).ingest_post(SINGLE_URL)

    assert store.articles[SINGLE_URL].source == "isro"


def test_empty_enrichment_reply_falls_back_to_raw_text() -> None:
    completions = SimpleNamespace(create=lambda **kwargs: SimpleNamespace(choices=[]))
    enricher = Enricher(SimpleNamespace(chat=SimpleNamespace(completions=completions)))
    store = MemoryStore()

    report = make_ingestor(store, enricher=enricher).ingest_user("isro", EnrichmentMode.SUMMARIZE)

    assert report.persisted_count == 2
    assert store.articles["https://twitter.com/isro/status/105"].title == "Satellite placed in orbit"


class StaleCollection:
    """A collection whose documents predate the current article schema."""

    def create_index(self, key, unique=False):
        pass

    def find_one(self, query, projection=None):
        return {"natural_key": query["natural_key"], "title": "old"}

    def insert_one(self, document):
        raise AssertionError("insert must not be reached")


def test_unreadable_stored_document_is_recorded_per_candidate() -> None:
    report = make_ingestor(MongoArticleStore(StaleCollection())).ingest_user("isro")

    assert report.error is None
    assert report.error_count == 2
    assert report.invalid_count == 1
    assert report.persisted == []


SEARCH = search_url("isro launch", "https://twitter.com")


def test_search_results_run_through_the_same_pipeline() -> None:
    store = MemoryStore()
    ingestor = make_ingestor(store, {SEARCH: SCENARIO})

    report = ingestor.ingest(SourceDescriptor(query=" isro launch "), EnrichmentMode.SUMMARIZE)

    assert ingestor.snapshots.requested == [SEARCH]
    assert report.origin is ArticleOrigin.SCRAPE_SEARCH
    assert report.source == "isro launch"
    assert report.persisted == ["https://twitter.com/isro/status/101", "https://twitter.com/isro/status/105"]
    assert report.invalid_count == 1
    article = store.articles["https://twitter.com/isro/status/101"]
    assert article.origin is ArticleOrigin.SCRAPE_SEARCH
    assert article.source == "isro"


def test_search_results_unavailable() -> None:
    report = make_ingestor(pages={}).ingest_search("isro launch")

    assert report.error is not None
    assert report.origin is ArticleOrigin.SCRAPE_SEARCH
    assert report.persisted == []
