"""Prompt templates for the enrichment service."""

from __future__ import annotations

__all__ = [
    "BRIEF_SOURCE_WORDS",
    "NARRATIVE_SYSTEM_PROMPT",
    "SUMMARY_SYSTEM_PROMPT",
    "build_narrative_prompt",
    "build_summary_prompt",
    "word_count",
]

#: Sources shorter than this are elaborated before drafting a narrative.
BRIEF_SOURCE_WORDS = 15

SUMMARY_SYSTEM_PROMPT = (
    "You are a news desk assistant that condenses social media posts into short, neutral news items. "
    "You always answer with a single JSON object and nothing else."
)

NARRATIVE_SYSTEM_PROMPT = (
    "You are a senior journalist and editor for a leading {language} daily. You do not merely translate: "
    "you turn the source text into a complete, publish-ready {language} news report. You always answer "
    "with a single JSON object and nothing else."
)

_SUMMARY_TEMPLATE = """Summarize the following post as a news item.

Rules:
* Write in the same language as the post.
* "title": a factual headline of at most 12 words.
* "summary": 40-50 words covering who, what, where and why it matters.
* Return only a JSON object with exactly two keys: "title" and "summary". No markdown, no notes.

Post:
{text}
"""

_NARRATIVE_TEMPLATE = """Write a {language} news report from the source text below by following this protocol.

Core principles: report the facts objectively, keep the report clear and cohesive, and convey why the news matters.

Step 1 - Analysis
* Categorize the news: Political, Sports, Movie, Accident, Business or Human Interest.
* Elaboration mandate: if the source has fewer than {brief_words} words, use general knowledge to add the context, \
background and plausible details (key figures, significance of the location, public sentiment) needed for a complete report.
{brief_note}
Step 2 - Writing
* Title, chosen by category: direct and factual for official or political news; intriguing and evocative for sports \
and movies; impact-oriented for accidents and tragedies; quote-based when one quote defines the story.
* Lede: a direct lede for breaking news, a contextual lede for complex stories, a creative lede for human interest \
and entertainment.
* Conclusion: end with the next steps, the broader impact or public reaction, or a relevant official statement.

Step 3 - Output
* The body MUST begin with a dateline in {language} followed by a colon, naming the city where the news happened. \
If the location is unclear, infer the most plausible city.
* The body must be approximately 65-70 words.
* Return only a JSON object with exactly two keys: "title" and "body". No extra text, notes or markdown.

Source text:
---
{text}
---
"""


def word_count(text: str) -> int:
    return len(text.split())


def build_summary_prompt(text: str) -> list[dict]:
    """Return chat messages asking for a ``{"title", "summary"}`` object."""

    return [
        {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
        {"role": "user", "content": _SUMMARY_TEMPLATE.format(text=text.strip())},
    ]


def build_narrative_prompt(text: str, language: str) -> list[dict]:
    """Return chat messages asking for a ``{"title", "body"}`` narrative in ``language``."""

    source = text.strip()
    brief_note = ""
    if word_count(source) < BRIEF_SOURCE_WORDS:
        brief_note = (
            f"* This source is brief ({word_count(source)} words): the elaboration mandate applies.\n"
        )

    return [
        {"role": "system", "content": NARRATIVE_SYSTEM_PROMPT.format(language=language)},
        {
            "role": "user",
            "content": _NARRATIVE_TEMPLATE.format(
                language=language,
                brief_words=BRIEF_SOURCE_WORDS,
                brief_note=brief_note,
                text=source,
            ),
        },
    ]
