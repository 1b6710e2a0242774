"""FastAPI application entrypoint."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from tweetwire.api.routes import router


def create_app() -> FastAPI:
    app = FastAPI(title="tweetwire", description="Social post ingestion and enrichment API")
    app.include_router(router, prefix="/api")

    @app.get("/", response_class=PlainTextResponse)
    async def index() -> str:
        return "tweetwire ingestion API running"

    return app


app = create_app()
