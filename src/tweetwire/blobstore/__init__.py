"""Locations used by the filesystem article store."""

from __future__ import annotations

from pathlib import Path
from typing import Union

_PACKAGE_DIR = Path(__file__).resolve().parent

#: Name of the directory under :mod:`tweetwire.blobstore` that contains the data.
DEFAULT_BLOB_SUBDIR = "data"

#: Default location where ingested articles are stored.
DEFAULT_BLOB_ROOT = _PACKAGE_DIR / DEFAULT_BLOB_SUBDIR

#: Sub-directory of the blob root holding one JSON document per article.
ARTICLES_SUBDIR = "articles"


_Pathish = Union[str, Path]


def resolve_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Return a :class:`Path` pointing at the blob root.

    When ``blob_root`` is ``None`` the packaged :data:`DEFAULT_BLOB_ROOT` is
    returned. Nothing is created on disk; use :func:`ensure_blob_root` for that.
    """

    if blob_root is None:
        return DEFAULT_BLOB_ROOT
    return Path(blob_root)


def ensure_blob_root(blob_root: _Pathish | None = None) -> Path:
    """Ensure the blob root and its articles directory exist and return the root."""

    root = resolve_blob_root(blob_root)
    (root / ARTICLES_SUBDIR).mkdir(parents=True, exist_ok=True)
    return root


__all__ = [
    "ARTICLES_SUBDIR",
    "DEFAULT_BLOB_ROOT",
    "DEFAULT_BLOB_SUBDIR",
    "ensure_blob_root",
    "resolve_blob_root",
]
