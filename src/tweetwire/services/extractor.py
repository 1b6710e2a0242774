"""Turn rendered timeline and post pages into :class:`RawCandidate` records.

Everything in this module is a pure function of the markup it is given. The
page has already been rendered (and scrolled) by a snapshot provider, see
:mod:`tweetwire.services.snapshots`.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from tweetwire.models import RawCandidate

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_MAX_COUNT",
    "canonical_post_url",
    "extract_single",
    "extract_timeline",
    "is_excluded",
    "is_post_url",
]

DEFAULT_BASE_URL = "https://twitter.com"
DEFAULT_MAX_COUNT = 20

#: Hosts that serve the same posts as the canonical base URL.
_KNOWN_HOSTS = {
    "twitter.com",
    "www.twitter.com",
    "mobile.twitter.com",
    "x.com",
    "www.x.com",
    "mobile.x.com",
}

_STATUS_PATH_RE = re.compile(r"^/(?P<handle>[A-Za-z0-9_]+)/status(?:es)?/(?P<id>\d+)")

CONTAINER_SELECTOR = "article"
TEXT_SELECTOR = "div[lang]"
PERMALINK_SELECTOR = "a[href*='/status/']"
PHOTO_SELECTOR = "[data-testid='tweetPhoto'] img[src]"
FALLBACK_IMAGE_SELECTOR = "img[src*='twimg']"
REPOST_SELECTORS = ("svg[aria-label='Retweeted']", "svg[aria-label='Reposted']")
SOCIAL_CONTEXT_SELECTOR = "[data-testid='socialContext']"
REPLY_BANNER_SELECTOR = "[aria-label*='Replying to']"

Snapshot = str | BeautifulSoup


def _as_soup(snapshot: Snapshot) -> BeautifulSoup:
    if isinstance(snapshot, BeautifulSoup):
        return snapshot
    return BeautifulSoup(snapshot or "", "lxml")


def canonical_post_url(url: str, base_url: str = DEFAULT_BASE_URL) -> str:
    """Return the canonical absolute permalink for ``url``.

    Relative links are resolved against ``base_url``; mirror hosts (``x.com``,
    ``mobile.twitter.com``...) are mapped onto it. Status links are cut down
    to ``/<handle>/status/<id>`` so photo and analytics sub-pages share the
    post's key. Query strings and fragments are always dropped.
    """

    if not url or not url.strip():
        return ""

    absolute = urljoin(base_url.rstrip("/") + "/", url.strip())
    parsed = urlparse(absolute)
    base = urlparse(base_url)

    netloc = parsed.netloc.lower()
    if netloc in _KNOWN_HOSTS:
        scheme, netloc = base.scheme or "https", base.netloc
    else:
        scheme = parsed.scheme

    match = _STATUS_PATH_RE.match(parsed.path)
    if match:
        path = f"/{match.group('handle')}/status/{match.group('id')}"
    else:
        path = parsed.path.rstrip("/") or "/"

    return f"{scheme}://{netloc}{path}"


def is_post_url(url: str, base_url: str = DEFAULT_BASE_URL) -> bool:
    """Return ``True`` when ``url`` points at a single post on the source platform."""

    if not url or not url.strip():
        return False
    parsed = urlparse(urljoin(base_url.rstrip("/") + "/", url.strip()))
    hosts = _KNOWN_HOSTS | {urlparse(base_url).netloc.lower()}
    return parsed.netloc.lower() in hosts and _STATUS_PATH_RE.match(parsed.path) is not None


def _parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _has_repost_indicator(container: Tag) -> bool:
    if any(container.select_one(selector) is not None for selector in REPOST_SELECTORS):
        return True
    for context in container.select(SOCIAL_CONTEXT_SELECTOR):
        label = context.get_text(" ", strip=True).lower()
        if "reposted" in label or "retweeted" in label:
            return True
    return False


def _is_reply_banner(tag: Tag) -> bool:
    if tag.name != "div" or tag.has_attr("lang"):
        return False
    # Wrappers around (or inside) the post text are not banners.
    if tag.select_one(TEXT_SELECTOR) is not None or tag.find_parent("div", attrs={"lang": True}) is not None:
        return False
    return tag.get_text(" ", strip=True).startswith("Replying to")


def _has_reply_context(container: Tag) -> bool:
    if container.select_one(REPLY_BANNER_SELECTOR) is not None:
        return True
    return container.find(_is_reply_banner) is not None


def is_excluded(container: Tag) -> bool:
    """Return ``True`` for reposts and replies, which never yield a candidate."""

    return _has_repost_indicator(container) or _has_reply_context(container)


def _extract_text(container: Tag) -> str:
    node = container.select_one(TEXT_SELECTOR)
    if node is None:
        return ""
    return node.get_text("").strip()


def _extract_image(container: Tag) -> str | None:
    photo = container.select_one(PHOTO_SELECTOR)
    if photo is not None:
        return photo["src"]
    for image in container.select(FALLBACK_IMAGE_SELECTOR):
        src = image.get("src", "")
        # Avatars and emoji glyphs are served from twimg too.
        if "profile_images" in src or "/emoji/" in src:
            continue
        return src
    return None


def _extract_video(container: Tag) -> str | None:
    video = container.find("video")
    if video is None:
        return None
    candidates = [video.get("src")]
    candidates.extend(source.get("src") for source in video.find_all("source"))
    for src in candidates:
        if src and urlparse(src).scheme in {"http", "https"}:
            return src
    return None


def _extract_candidate(container: Tag, base_url: str) -> RawCandidate:
    anchor = container.select_one(PERMALINK_SELECTOR)
    natural_key = canonical_post_url(anchor.get("href", ""), base_url) if anchor else ""

    post_id = author = None
    if natural_key:
        match = _STATUS_PATH_RE.match(urlparse(natural_key).path)
        if match:
            author, post_id = match.group("handle"), match.group("id")

    time_node = container.select_one("time[datetime]")

    return RawCandidate(
        natural_key=natural_key,
        text=_extract_text(container),
        post_id=post_id,
        author=author,
        image_url=_extract_image(container),
        video_url=_extract_video(container),
        published_at=_parse_datetime(time_node.get("datetime") if time_node else None),
    )


def extract_timeline(
    snapshot: Snapshot,
    max_count: int = DEFAULT_MAX_COUNT,
    *,
    base_url: str = DEFAULT_BASE_URL,
) -> List[RawCandidate]:
    """Extract up to ``max_count`` original posts in document order."""

    if max_count <= 0:
        return []

    soup = _as_soup(snapshot)
    candidates: List[RawCandidate] = []
    for container in soup.find_all(CONTAINER_SELECTOR):
        if is_excluded(container):
            continue
        candidates.append(_extract_candidate(container, base_url))
        if len(candidates) >= max_count:
            break
    return candidates


def extract_single(
    snapshot: Snapshot,
    *,
    base_url: str = DEFAULT_BASE_URL,
    natural_key: str | None = None,
) -> RawCandidate | None:
    """Extract the focal post of a status page, without exclusion rules.

    A reply's status page renders the conversation above the reply, so when
    ``natural_key`` is given the container carrying that permalink wins. The
    first container is used when none matches.
    """

    containers = _as_soup(snapshot).find_all(CONTAINER_SELECTOR)
    if not containers:
        return None

    if natural_key:
        wanted = canonical_post_url(natural_key, base_url)
        for container in containers:
            candidate = _extract_candidate(container, base_url)
            if candidate.natural_key.lower() == wanted.lower():
                return candidate
    return _extract_candidate(containers[0], base_url)
