"""
Week Title Generator
====================

Short (3-5 word) labels for the 16 weeks of a roadmap.

One batched completion request covers all weeks. Whenever the completion
service is unconfigured, fails, or answers with something unusable, the
titles are derived locally from each week's first bullet instead.
"""

import json
from typing import Any, Optional, Sequence

import httpx
import structlog

from roadmap_sync.core.exceptions import UpstreamError
from roadmap_sync.core.roadmap.parsers import ELLIPSIS, bullet_items

logger = structlog.get_logger()

FALLBACK_TITLE_WORDS = 5

TITLE_PROMPT = (
    "Tu es un assistant de coaching business. Pour chaque semaine ci-dessous, "
    "génère un titre très court (3-5 mots en français) qui résume l'ensemble des "
    "tâches de la semaine. Réponds UNIQUEMENT avec un JSON objet "
    '{{"titles": ["titre S1", "titre S2", ...]}}, exactement {count} titres.\n\n{weeks}'
)


def fallback_week_title(week_actions: str) -> str:
    """First five words of the week's first bullet, or ``""``."""
    items = bullet_items(week_actions)
    if not items:
        return ""
    words = items[0].split()
    title = " ".join(words[:FALLBACK_TITLE_WORDS])
    if len(words) > FALLBACK_TITLE_WORDS:
        title += ELLIPSIS
    return title


def build_prompt(weeks: Sequence[str]) -> str:
    lines = []
    for index, actions in enumerate(weeks, start=1):
        bullets = ", ".join(line.strip() for line in actions.split("\n") if line.strip().startswith("-"))
        lines.append(f"S{index}: {bullets or 'vide'}")
    return TITLE_PROMPT.format(count=len(weeks), weeks="\n".join(lines))


def parse_titles(body: Any) -> list[Optional[str]]:
    """
    Extract ``titles`` from a chat completion response.

    Raises:
        UpstreamError: the response does not carry a non-empty title list
    """
    try:
        content = body["choices"][0]["message"]["content"]
        titles = json.loads(content.strip())["titles"]
    except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
        raise UpstreamError(f"Malformed completion payload: {e!r}") from e

    if not isinstance(titles, list) or not titles:
        raise UpstreamError("Completion returned no titles")

    return [
        title.strip() if isinstance(title, str) and title.strip() else None
        for title in titles
    ]


class WeekTitleGenerator:
    """Week titles from an OpenAI-compatible chat completion endpoint."""

    def __init__(
        self,
        api_key: Optional[str],
        api_url: str,
        model: str,
        max_tokens: int = 600,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key
        self.api_url = api_url
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or httpx.AsyncClient(timeout=timeout)

        if self.enabled:
            logger.info("title_generator_initialized", mode="completion", model=self.model)
        else:
            logger.info("title_generator_initialized", mode="fallback_only")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def generate(self, weeks: Sequence[str]) -> list[str]:
        """
        One title per entry of ``weeks``. Never raises; any failure of the
        completion call falls back to locally derived titles.
        """
        fallback = [fallback_week_title(actions) for actions in weeks]
        if not self.enabled:
            return fallback

        try:
            generated = await self._request_titles(weeks)
        except Exception as e:
            logger.warning("week_titles_fallback", reason=str(e))
            return fallback

        titles = [
            generated[index] if index < len(generated) and generated[index] else fallback[index]
            for index in range(len(weeks))
        ]
        logger.info("week_titles_generated", titles=titles)
        return titles

    async def _request_titles(self, weeks: Sequence[str]) -> list[Optional[str]]:
        response = await self._client.post(
            self.api_url,
            json={
                "model": self.model,
                "max_tokens": self.max_tokens,
                "response_format": {"type": "json_object"},
                "messages": [{"role": "user", "content": build_prompt(weeks)}],
            },
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        if response.status_code != 200:
            raise UpstreamError(f"Completion HTTP {response.status_code}: {response.text[:200]}")
        return parse_titles(response.json())

    async def close(self) -> None:
        await self._client.aclose()
