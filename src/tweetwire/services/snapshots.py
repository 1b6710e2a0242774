"""Acquire rendered page snapshots for the extractor."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import requests
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from tweetwire.config import RendererConfig

__all__ = [
    "DEFAULT_HEADERS",
    "HttpSnapshotProvider",
    "PlaywrightSnapshotProvider",
    "SnapshotProvider",
    "SourceUnavailableError",
    "build_snapshot_provider",
    "profile_url",
    "search_url",
]

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/129.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,*/*;q=0.8"
    ),
    "Accept-Language": "en-US,en;q=0.9",
}

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]

HTTP_REQUEST_TIMEOUT = (10, 60)


class SourceUnavailableError(Exception):
    """Raised when a page could not be rendered or downloaded at all."""


class SnapshotProvider(Protocol):
    def fetch(self, url: str) -> str:
        """Return the rendered markup for ``url``."""


def profile_url(username: str, base_url: str) -> str:
    """Return the timeline URL of ``username``."""

    return f"{base_url.rstrip('/')}/{username.lstrip('@')}"


def search_url(query: str, base_url: str) -> str:
    """Return the live search results URL for ``query``."""

    return f"{base_url.rstrip('/')}/search?q={quote(query.strip(), safe='')}&src=typed_query&f=live"


class PlaywrightSnapshotProvider:
    """Render pages in headless Chromium, scrolling to load more posts."""

    def __init__(
        self,
        *,
        scrolls: int = 3,
        scroll_wait_ms: int = 1500,
        timeout_ms: int = 60_000,
        storage_state: Path | str | None = None,
        headless: bool = True,
        wait_selector: str = "article",
    ) -> None:
        self.scrolls = scrolls
        self.scroll_wait_ms = scroll_wait_ms
        self.timeout_ms = timeout_ms
        self.storage_state = Path(storage_state) if storage_state else None
        self.headless = headless
        self.wait_selector = wait_selector

    def _context_options(self) -> dict:
        options: dict = {"extra_http_headers": {"Accept-Language": DEFAULT_HEADERS["Accept-Language"]}}
        if self.storage_state is not None:
            if self.storage_state.exists():
                options["storage_state"] = str(self.storage_state)
            else:
                logger.warning("Storage state %s not found; continuing without a session", self.storage_state)
        return options

    def fetch(self, url: str) -> str:
        try:
            with sync_playwright() as playwright:
                browser = playwright.chromium.launch(headless=self.headless, args=CHROMIUM_ARGS)
                context = browser.new_context(**self._context_options())
                try:
                    page = context.new_page()
                    page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
                    page.wait_for_selector(self.wait_selector, timeout=self.timeout_ms)
                    for _ in range(self.scrolls):
                        page.evaluate("() => window.scrollBy(0, window.innerHeight)")
                        page.wait_for_timeout(self.scroll_wait_ms)
                    return page.content()
                finally:
                    context.close()
                    browser.close()
        except PlaywrightError as exc:
            raise SourceUnavailableError(f"Could not render {url}: {exc}") from exc


class HttpSnapshotProvider:
    """Download already rendered markup over plain HTTP."""

    def __init__(self, session: requests.Session | None = None, *, retries: int = 3) -> None:
        if session is None:
            retry = Retry(
                total=retries,
                connect=retries,
                read=retries,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods={"GET"},
            )
            session = requests.Session()
            session.mount("https://", HTTPAdapter(max_retries=retry))
            session.mount("http://", HTTPAdapter(max_retries=retry))
        self._session = session
        self._session.headers.update(DEFAULT_HEADERS)

    def fetch(self, url: str) -> str:
        try:
            response = self._session.get(url, timeout=HTTP_REQUEST_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise SourceUnavailableError(f"Could not download {url}: {exc}") from exc
        return response.text


def build_snapshot_provider(config: RendererConfig) -> SnapshotProvider:
    """Instantiate the snapshot provider selected in ``config``."""

    if config.backend == "http":
        return HttpSnapshotProvider()
    return PlaywrightSnapshotProvider(
        scrolls=config.scrolls,
        scroll_wait_ms=config.scroll_wait_ms,
        timeout_ms=config.timeout_ms,
        storage_state=config.storage_state,
        headless=config.headless,
    )
