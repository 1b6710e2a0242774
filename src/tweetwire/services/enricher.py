"""Best-effort rewriting of post text through the OpenAI chat API.

The model is asked for a small JSON object but nothing guarantees it answers
with one. :func:`decode_enrichment` is the boundary that imposes structure;
whatever it cannot make sense of becomes ``None`` and the ingestor falls back
to truncating the raw text.
"""

from __future__ import annotations

import json
import logging
import os
import re

from openai import OpenAI, OpenAIError

from tweetwire.config import EnrichmentConfig
from tweetwire.models import EnrichedContent, EnrichmentMode
from tweetwire.services.prompts import build_narrative_prompt, build_summary_prompt

__all__ = [
    "Enricher",
    "build_enricher",
    "decode_enrichment",
    "strip_formatting",
]

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")

#: Accepted keys for the body field per mode, in order of preference.
_BODY_KEYS = {
    EnrichmentMode.SUMMARIZE: ("summary",),
    EnrichmentMode.TRANSLATE: ("body", "news"),
}


def strip_formatting(raw: str) -> str:
    """Remove code fences and surrounding whitespace from a model reply."""

    return _FENCE_RE.sub("", raw or "").strip()


def decode_enrichment(raw: str, mode: EnrichmentMode) -> EnrichedContent | None:
    """Decode a model reply into :class:`EnrichedContent`.

    Returns ``None`` when the reply is not a JSON object or lacks a non-empty
    title or body.
    """

    cleaned = strip_formatting(raw)
    if not cleaned:
        return None

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            payload = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError:
            return None

    if not isinstance(payload, dict):
        return None

    title = payload.get("title")
    body = next((payload[key] for key in _BODY_KEYS[mode] if key in payload), None)
    if not isinstance(title, str) or not isinstance(body, str):
        return None
    if not title.strip() or not body.strip():
        return None

    return EnrichedContent(title=title.strip(), body=body.strip())


class Enricher:
    """Produce a title/summary or a localized narrative for a post."""

    def __init__(
        self,
        client: OpenAI | None = None,
        *,
        model: str = "gpt-4o-mini",
        target_language: str = "Telugu",
        temperature: float = 0.3,
    ) -> None:
        self._client = client
        self.model = model
        self.target_language = target_language
        self.temperature = temperature

    def _get_client(self) -> OpenAI:
        if self._client is None:
            # The package __init__ has already merged the project .env into os.environ.
            api_key = os.environ.get("OPENAI_API_KEY")
            if not api_key:
                raise RuntimeError(
                    "OPENAI_API_KEY is not configured. Set it in the environment or in a .env file."
                )
            # One request per post; the SDK would otherwise retry twice on its own.
            self._client = OpenAI(api_key=api_key, max_retries=0)
        return self._client

    def _messages(self, text: str, mode: EnrichmentMode) -> list[dict]:
        if mode is EnrichmentMode.TRANSLATE:
            return build_narrative_prompt(text, self.target_language)
        return build_summary_prompt(text)

    def complete(self, messages: list[dict]) -> str:
        """Send ``messages`` and return the raw reply text, empty when there is none."""

        response = self._get_client().chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=self.temperature,
        )
        choices = getattr(response, "choices", None)
        if not choices:
            return ""
        message = getattr(choices[0], "message", None)
        return getattr(message, "content", None) or ""

    def enrich(self, text: str, mode: EnrichmentMode) -> EnrichedContent | None:
        """Return enriched content for ``text`` or ``None`` when unavailable.

        Exactly one request is made; failures are logged and never raised.
        """

        if not text or not text.strip():
            return None

        try:
            raw = self.complete(self._messages(text, mode))
        except (OpenAIError, RuntimeError) as exc:
            logger.warning("Enrichment unavailable (%s): %s", mode.value, exc)
            return None

        result = decode_enrichment(raw, mode)
        if result is None:
            logger.warning("Enrichment reply could not be decoded (%s): %.200r", mode.value, raw)
        return result


def build_enricher(config: EnrichmentConfig) -> Enricher | None:
    """Return an :class:`Enricher` for ``config`` or ``None`` when disabled."""

    if not config.enabled:
        return None
    return Enricher(
        model=config.model,
        target_language=config.target_language,
        temperature=config.temperature,
    )
