"""Configuration models and helpers for the tweetwire ingestion pipeline."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Iterable, List, Literal

from pydantic import BaseModel, Field, ValidationError

from tweetwire.models import EnrichmentMode

__all__ = [
    "AccountConfig",
    "AppConfig",
    "DEFAULT_CONFIG_PATH",
    "EnrichmentConfig",
    "RendererConfig",
    "StoreConfig",
]

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "data" / "settings.json"


class AccountConfig(BaseModel):
    """A timeline that should be ingested by the batch runner."""

    username: str = Field(..., description="Account handle without the leading @")
    mode: EnrichmentMode | None = Field(
        default=None,
        description="Enrichment mode for this account. Falls back to the global default.",
    )


class RendererConfig(BaseModel):
    """How rendered page snapshots are acquired."""

    backend: Literal["playwright", "http"] = Field(
        default="playwright",
        description=(
            "Use a headless browser to render the page, or fetch already rendered markup "
            "over plain HTTP (e.g. from a pre-rendering proxy)."
        ),
    )
    scrolls: int = Field(default=3, ge=0, description="Number of viewport scrolls before capture")
    scroll_wait_ms: int = Field(default=1500, ge=0)
    timeout_ms: int = Field(default=60_000, gt=0)
    storage_state: Path | None = Field(
        default=None,
        description="Optional saved browser storage state (cookies, local storage) to reuse",
    )
    headless: bool = True


class StoreConfig(BaseModel):
    """Persistence backend settings."""

    backend: Literal["blob", "mongo"] = "blob"
    blob_root: Path | None = Field(
        default=None,
        description="Directory for the JSON blob store. Defaults to the packaged blobstore.",
    )
    mongo_uri: str | None = Field(default_factory=lambda: os.environ.get("MONGODB_URI"))
    database: str = "tweetwire"
    collection: str = "articles"


class EnrichmentConfig(BaseModel):
    """Settings for the generative-text enrichment step."""

    enabled: bool = True
    model: str = "gpt-4o-mini"
    target_language: str = Field(
        default="Telugu",
        description="Language used by the translate-and-narrativize mode",
    )
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)


class AppConfig(BaseModel):
    """Top level configuration for ingestion runs and the API."""

    base_url: str = Field(default="https://twitter.com", description="Canonical site root")
    max_posts: int = Field(default=20, ge=1)
    pacing_ms: int = Field(default=200, ge=0, description="Minimum delay between commits")
    default_mode: EnrichmentMode = EnrichmentMode.SUMMARIZE
    renderer: RendererConfig = Field(default_factory=RendererConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    enrichment: EnrichmentConfig = Field(default_factory=EnrichmentConfig)
    accounts: List[AccountConfig] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: Path | str | None = None) -> "AppConfig":
        """Load configuration data from a JSON file."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except FileNotFoundError as exc:
            raise FileNotFoundError(f"Configuration file not found: {config_path}") from exc
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON in configuration file: {config_path}") from exc

        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ValueError(f"Configuration file is invalid: {config_path}\n{exc}") from exc

    @classmethod
    def load(cls, path: Path | str | None = None) -> "AppConfig":
        """Like :meth:`from_file` but return the defaults when the file is missing."""

        try:
            return cls.from_file(path)
        except FileNotFoundError:
            return cls()

    def dump(self, path: Path | str | None = None) -> None:
        """Persist the configuration back to disk as JSON."""

        config_path = Path(path) if path else DEFAULT_CONFIG_PATH
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(self.model_dump_json(indent=2), encoding="utf-8")

    def iter_accounts(self) -> Iterable[AccountConfig]:
        """Iterate over configured accounts."""

        return iter(self.accounts)

    def mode_for(self, account: AccountConfig) -> EnrichmentMode:
        """Return the enrichment mode to use for ``account``."""

        return account.mode or self.default_mode

    @property
    def pacing_interval(self) -> float:
        """Pacing delay in seconds."""

        return self.pacing_ms / 1000
