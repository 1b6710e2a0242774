"""API routes exposing the ingestion pipeline."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import List

from fastapi import APIRouter, HTTPException, Query
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from tweetwire.config import AppConfig
from tweetwire.factory import build_ingestor
from tweetwire.models import BatchReport, EnrichmentMode, ManualArticle, PersistedArticle
from tweetwire.services.ingestor import Ingestor
from tweetwire.services.store import StoreError

logger = logging.getLogger(__name__)

router = APIRouter()

USERNAME_RE = re.compile(r"^@?[A-Za-z0-9_]{1,15}$")
POST_URL_RE = re.compile(r"^https?://(?:www\.|mobile\.)?(?:twitter|x)\.com/[A-Za-z0-9_]+/status(?:es)?/\d+")
MAX_QUERY_LENGTH = 500


class ArticlesResponse(BaseModel):
    articles: List[PersistedArticle] = Field(default_factory=list)


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Return the application configuration, falling back to defaults."""

    return AppConfig.load()


@lru_cache(maxsize=1)
def get_ingestor() -> Ingestor:
    """Return the process-wide ingestor; the store handle is shared between requests."""

    return build_ingestor(get_config())


def _report_response(report: BatchReport, success_status: int = 200) -> JSONResponse:
    if report.error is not None:
        status_code = 502
    elif report.failed:
        status_code = 500
    else:
        status_code = success_status
    return JSONResponse(status_code=status_code, content=report.model_dump(mode="json"))


def _resolve_mode(mode: EnrichmentMode | None) -> EnrichmentMode:
    return mode or get_config().default_mode


@router.get("/scrape/user", response_model=BatchReport)
async def scrape_user(
    username: str = Query(..., description="Account handle, with or without @"),
    mode: EnrichmentMode | None = None,
) -> JSONResponse:
    """Ingest the latest original posts of an account."""

    if not USERNAME_RE.match(username.strip()):
        raise HTTPException(status_code=400, detail=f"Invalid username: {username!r}")

    report = await run_in_threadpool(get_ingestor().ingest_user, username.strip(), _resolve_mode(mode))
    return _report_response(report)


@router.get("/scrape/search", response_model=BatchReport)
async def scrape_search(
    q: str = Query(..., description="Search query"),
    mode: EnrichmentMode | None = None,
) -> JSONResponse:
    """Ingest the latest original posts matching a search query."""

    query = q.strip()
    if not query or len(query) > MAX_QUERY_LENGTH:
        raise HTTPException(status_code=400, detail=f"Invalid search query: {q!r}")

    report = await run_in_threadpool(get_ingestor().ingest_search, query, _resolve_mode(mode))
    return _report_response(report)


@router.get("/scrape/post", response_model=BatchReport)
async def scrape_post(
    url: str = Query(..., description="Permalink of a single post"),
    mode: EnrichmentMode | None = None,
) -> JSONResponse:
    """Ingest a single post unless it is already stored."""

    if not POST_URL_RE.match(url.strip()):
        raise HTTPException(status_code=400, detail=f"Not a post URL: {url!r}")

    report = await run_in_threadpool(get_ingestor().ingest_post, url.strip(), _resolve_mode(mode))
    return _report_response(report)


@router.post("/articles", response_model=BatchReport)
async def create_article(payload: ManualArticle, mode: EnrichmentMode | None = None) -> JSONResponse:
    """Store a manually submitted article."""

    report = await run_in_threadpool(get_ingestor().ingest_manual, payload, _resolve_mode(mode))
    if report.skipped_invalid:
        raise HTTPException(status_code=400, detail=report.skipped_invalid[0].reason)
    return _report_response(report, success_status=201 if report.is_new else 200)


@router.get("/articles", response_model=ArticlesResponse)
async def list_articles(limit: int = Query(50, ge=1, le=500)) -> ArticlesResponse:
    """Return stored articles, newest first."""

    try:
        articles = await run_in_threadpool(get_ingestor().store.list_articles, limit)
    except StoreError as exc:
        logger.exception("Listing articles failed")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return ArticlesResponse(articles=articles)
