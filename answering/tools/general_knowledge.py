"""Ungrounded generation and the two cheap classifiers."""

from __future__ import annotations

import json
from typing import Optional, Sequence

import structlog

from answering.composer.prompts import RETRIEVAL_CLASSIFIER_PROMPT, SUFFICIENCY_CLASSIFIER_PROMPT
from answering.llm.provider import ContentTurn, GenerativeProvider, history_to_turns
from answering.llm.response_parsing import cached_token_count, extract_text, first_json_object
from answering.models import AnswerResult, Message, RetrievalDecision, SufficiencyJudgment

logger = structlog.get_logger(__name__)


class GeneralKnowledgeAssistant:
    """Answers from the model's own knowledge, with no grounding tool."""

    def __init__(self, provider: GenerativeProvider, model: str = "gemini-2.0-flash"):
        self._provider = provider
        self.model = model

    async def answer(
        self,
        prompt: str,
        conversation_id: Optional[str] = None,
        history: Sequence[Message] = (),
        system_instruction: Optional[str] = None,
        cached_context_handle: Optional[str] = None,
    ) -> AnswerResult:
        """Generate an answer.

        With a cached context handle the system instruction is already part of
        the upstream cache, so it is left out of the request.
        """
        response = await self._provider.generate_content(
            model=self.model,
            contents=[*history_to_turns(history), ContentTurn(role="user", text=prompt)],
            system_instruction=None if cached_context_handle else system_instruction,
            cached_context=cached_context_handle,
        )

        answer = extract_text(response)
        cached_tokens = cached_token_count(response)
        if cached_tokens:
            logger.info("Served from context cache", conversation_id=conversation_id, cached_tokens=cached_tokens)
        logger.info("General knowledge answered", conversation_id=conversation_id, answer_length=len(answer))
        return AnswerResult(answer=answer)

    async def _classify(self, prompt: str) -> dict:
        response = await self._provider.generate_content(
            model=self.model,
            contents=[ContentTurn(role="user", text=prompt)],
        )
        payload = first_json_object(extract_text(response))
        if payload is None:
            raise ValueError("Classifier reply contained no JSON object")
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Classifier reply was not a JSON object")
        return data

    async def needs_document_retrieval(self, question: str) -> RetrievalDecision:
        """Whether ``question`` needs the knowledge stores. Defaults to yes on any failure."""
        try:
            data = await self._classify(RETRIEVAL_CLASSIFIER_PROMPT.format(question=question))
            needs = data.get("needs_retrieval")
            if not isinstance(needs, bool):
                raise ValueError("needs_retrieval missing")
            return RetrievalDecision(needs_retrieval=needs, reason=str(data.get("reason") or ""))
        except Exception as e:
            logger.warning("Retrieval classification failed, assuming retrieval needed", error=str(e))
            return RetrievalDecision(needs_retrieval=True, reason="Classification failed; using retrieval")

    async def judge_answer_sufficiency(self, question: str, answer: str) -> SufficiencyJudgment:
        """Whether a retrieval answer is good enough. Defaults to insufficient on any failure."""
        try:
            data = await self._classify(SUFFICIENCY_CLASSIFIER_PROMPT.format(question=question, answer=answer))
            sufficient = data.get("is_sufficient")
            if not isinstance(sufficient, bool):
                raise ValueError("is_sufficient missing")
            return SufficiencyJudgment(is_sufficient=sufficient, reason=str(data.get("reason") or ""))
        except Exception as e:
            logger.warning("Sufficiency judgement failed, assuming insufficient", error=str(e))
            return SufficiencyJudgment(is_sufficient=False, reason="Judgement failed; trying web augmentation")
