"""Rate-limited, retried web-grounded generation."""

from __future__ import annotations

from typing import List, Optional, Sequence

import structlog
from tenacity import AsyncRetrying

from answering.composer.prompts import NOT_FOUND_PHRASES, WEB_SEARCH_SYSTEM_PROMPT
from answering.llm.provider import ContentTurn, GenerativeProvider, WebSearchTool, history_to_turns
from answering.llm.response_parsing import extract_text, extract_web_sources
from answering.llm.retry import as_upstream_error, web_search_retrying
from answering.middleware.rate_limiter import SlidingWindowRateLimiter
from answering.models import Message, WebSearchResult, WebSource

logger = structlog.get_logger(__name__)


def score_confidence(answer: str, sources: List[WebSource]) -> float:
    """Heuristic confidence of a web answer.

    Up to 0.6 from sources (0.2 each), +0.1 past 200 chars, +0.1 past 500
    chars; capped at 0.3 when the answer says nothing was found.
    """
    confidence = min(len(sources) * 0.2, 0.6)
    if len(answer) > 200:
        confidence += 0.1
    if len(answer) > 500:
        confidence += 0.1

    lowered = answer.lower()
    if any(phrase in lowered for phrase in NOT_FOUND_PHRASES):
        confidence = min(confidence, 0.3)

    return max(0.0, min(round(confidence, 4), 1.0))


class WebAugmentationAdapter:
    """Single web-search-enabled provider call per query."""

    def __init__(
        self,
        provider: GenerativeProvider,
        model: str = "gemini-2.0-flash",
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        retry_policy: Optional[AsyncRetrying] = None,
    ):
        self._provider = provider
        self.model = model
        self._rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self._retry_policy = retry_policy or web_search_retrying()

    async def search(
        self,
        query: str,
        system_instruction: Optional[str] = None,
        history: Sequence[Message] = (),
    ) -> WebSearchResult:
        contents = [*history_to_turns(history), ContentTurn(role="user", text=query)]
        try:
            response = await self._retry_policy.copy()(self._execute, contents, system_instruction)
        except Exception as e:
            raise as_upstream_error(e, "Web search") from e

        answer = extract_text(response)
        sources = extract_web_sources(response)
        confidence = score_confidence(answer, sources)
        logger.info(
            "Web search completed",
            query_length=len(query),
            answer_length=len(answer),
            sources=len(sources),
            confidence=confidence,
        )
        return WebSearchResult(answer=answer, sources=sources, confidence=confidence)

    async def _execute(self, contents: List[ContentTurn], system_instruction: Optional[str]):
        # Every attempt, retries included, counts against the rate limit
        await self._rate_limiter.acquire()
        return await self._provider.generate_content(
            model=self.model,
            contents=contents,
            system_instruction=system_instruction or WEB_SEARCH_SYSTEM_PROMPT,
            tools=[WebSearchTool()],
        )
