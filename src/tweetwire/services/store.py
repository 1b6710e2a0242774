"""Article persistence backends and the natural-key deduplicator.

Both backends enforce uniqueness of ``natural_key`` themselves: the blob store
publishes documents with an atomic hard link that fails when the target
exists, the MongoDB store relies on a unique index. Concurrent ingestion runs
therefore need no in-process locking.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import List, Protocol
from urllib.parse import urlparse

from pydantic import ValidationError
from pymongo import DESCENDING, MongoClient
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pymongo.errors import PyMongoError

from tweetwire.blobstore import ARTICLES_SUBDIR, ensure_blob_root, resolve_blob_root
from tweetwire.config import StoreConfig
from tweetwire.models import PersistedArticle

__all__ = [
    "ArticleStore",
    "BlobArticleStore",
    "Deduplicator",
    "DuplicateKeyError",
    "MongoArticleStore",
    "StoreError",
    "build_store",
]

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A persistence operation failed."""


class DuplicateKeyError(StoreError):
    """An article with the same natural key already exists."""

    def __init__(self, natural_key: str) -> None:
        super().__init__(f"Article already stored: {natural_key}")
        self.natural_key = natural_key


class ArticleStore(Protocol):
    def find_by_natural_key(self, natural_key: str) -> PersistedArticle | None:
        ...

    def insert(self, article: PersistedArticle) -> PersistedArticle:
        ...

    def list_articles(self, limit: int = 50) -> List[PersistedArticle]:
        ...


def _stamp(article: PersistedArticle) -> PersistedArticle:
    now = datetime.now(UTC)
    return article.model_copy(update={"created_at": now, "updated_at": now})


class BlobArticleStore:
    """Store each article as a JSON document inside the blobstore."""

    def __init__(self, blob_root: Path | str | None = None) -> None:
        self.root = resolve_blob_root(blob_root)

    def article_path(self, natural_key: str) -> Path:
        """Return the document path for ``natural_key``."""

        host = urlparse(natural_key).netloc or "unknown"
        key_hash = hashlib.sha1(natural_key.encode("utf-8")).hexdigest()
        return self.root / ARTICLES_SUBDIR / f"site={host}" / f"{key_hash}.json"

    @staticmethod
    def _load(path: Path) -> PersistedArticle:
        try:
            with path.open("r", encoding="utf-8") as file:
                return PersistedArticle.model_validate(json.load(file))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise StoreError(f"Could not read {path}: {exc}") from exc

    def find_by_natural_key(self, natural_key: str) -> PersistedArticle | None:
        path = self.article_path(natural_key)
        if not path.exists():
            return None
        return self._load(path)

    def insert(self, article: PersistedArticle) -> PersistedArticle:
        stored = _stamp(article)
        path = self.article_path(article.natural_key)
        temp_path: Path | None = None
        try:
            ensure_blob_root(self.root)
            path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent, suffix=".tmp", delete=False
            ) as file:
                temp_path = Path(file.name)
                file.write(stored.model_dump_json(indent=2))
            try:
                os.link(temp_path, path)
            except FileExistsError as exc:
                raise DuplicateKeyError(article.natural_key) from exc
        except OSError as exc:
            raise StoreError(f"Could not write {path}: {exc}") from exc
        finally:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)

        return stored

    def list_articles(self, limit: int = 50) -> List[PersistedArticle]:
        directory = self.root / ARTICLES_SUBDIR
        if not directory.exists():
            return []

        articles: List[PersistedArticle] = []
        for json_path in directory.rglob("*.json"):
            try:
                articles.append(self._load(json_path))
            except StoreError as exc:
                logger.warning("Skipping unreadable article: %s", exc)

        articles.sort(key=lambda item: item.created_at or item.published_at, reverse=True)
        return articles[:limit]


class MongoArticleStore:
    """Store articles in a MongoDB collection with a unique natural-key index."""

    def __init__(self, collection) -> None:
        self.collection = collection
        try:
            self.collection.create_index("natural_key", unique=True)
        except PyMongoError as exc:
            raise StoreError(f"Could not create natural_key index: {exc}") from exc

    @classmethod
    def from_uri(cls, uri: str, database: str, collection: str) -> "MongoArticleStore":
        client = MongoClient(uri, tz_aware=True)
        return cls(client[database][collection])

    @staticmethod
    def _to_document(article: PersistedArticle) -> dict:
        document = article.model_dump()
        document["origin"] = article.origin.value
        document["media"] = [{"kind": item.kind.value, "url": item.url} for item in article.media]
        return document

    @staticmethod
    def _from_document(document: dict) -> PersistedArticle:
        try:
            return PersistedArticle.model_validate(document)
        except ValidationError as exc:
            raise StoreError(f"Unreadable document {document.get('natural_key')!r}: {exc}") from exc

    def find_by_natural_key(self, natural_key: str) -> PersistedArticle | None:
        try:
            document = self.collection.find_one({"natural_key": natural_key}, {"_id": 0})
        except PyMongoError as exc:
            raise StoreError(f"Lookup failed for {natural_key}: {exc}") from exc
        if document is None:
            return None
        return self._from_document(document)

    def insert(self, article: PersistedArticle) -> PersistedArticle:
        stored = _stamp(article)
        try:
            self.collection.insert_one(self._to_document(stored))
        except MongoDuplicateKeyError as exc:
            raise DuplicateKeyError(article.natural_key) from exc
        except PyMongoError as exc:
            raise StoreError(f"Insert failed for {article.natural_key}: {exc}") from exc
        return stored

    def list_articles(self, limit: int = 50) -> List[PersistedArticle]:
        articles: List[PersistedArticle] = []
        try:
            cursor = self.collection.find({}, {"_id": 0}).sort("created_at", DESCENDING).limit(limit)
            for document in cursor:
                try:
                    articles.append(self._from_document(document))
                except StoreError as exc:
                    logger.warning("Skipping unreadable article: %s", exc)
        except PyMongoError as exc:
            raise StoreError(f"Listing articles failed: {exc}") from exc
        return articles


class Deduplicator:
    """Answer whether a natural key has already been persisted."""

    def __init__(self, store: ArticleStore) -> None:
        self.store = store

    def exists(self, natural_key: str) -> bool:
        return self.store.find_by_natural_key(natural_key) is not None


def build_store(config: StoreConfig) -> ArticleStore:
    """Instantiate the store backend selected in ``config``."""

    if config.backend == "mongo":
        if not config.mongo_uri:
            raise ValueError("mongo_uri (or MONGODB_URI) must be set for the mongo store backend")
        return MongoArticleStore.from_uri(config.mongo_uri, config.database, config.collection)
    return BlobArticleStore(config.blob_root)
