"""Hybrid answering orchestrator built on LangGraph.

Every question goes through document retrieval first (falling back to general
knowledge when retrieval fails), and optionally through a web augmentation
pass that fuses live search results into the answer. Each stage has its own
timeout budget and failures degrade instead of propagating:

- retrieval failure -> general-knowledge answer
- total failure -> fixed apology
- web failure -> retrieval answer plus a notice
- weak web result -> retrieval answer unchanged
"""

import hashlib
import time
from datetime import date
from typing import Any, Callable, Dict, Literal, Optional, Sequence

import structlog
from langgraph.graph import END, StateGraph

from answering.composer.prompts import APOLOGY_MESSAGE, WEB_AUGMENTATION_FAILED_NOTICE, build_enhancement_prompt
from answering.models import AnswerResult, Message, SourceBundle, WebSearchResult
from answering.schemas.hybrid_state import HybridState, record_timing
from answering.timeouts import with_timeout
from answering.tools.document_retrieval import DocumentRetrievalAdapter
from answering.tools.general_knowledge import GeneralKnowledgeAssistant
from answering.tools.web_augmentation import WebAugmentationAdapter
from libs.caching.answer_cache import AnswerCache

logger = structlog.get_logger(__name__)

ENHANCEMENT_KEY_ANSWER_CHARS = 200


def enhancement_cache_key(question: str, retrieval_answer: str) -> str:
    material = f"{question}::{retrieval_answer[:ENHANCEMENT_KEY_ANSWER_CHARS]}"
    return "web_search_" + hashlib.sha256(material.encode("utf-8")).hexdigest()[:32]


class HybridOrchestrator:
    """Sequences retrieval, fallback and web augmentation for one question."""

    def __init__(
        self,
        document_retrieval: DocumentRetrievalAdapter,
        general_knowledge: GeneralKnowledgeAssistant,
        web_augmentation: WebAugmentationAdapter,
        answer_cache: AnswerCache,
        document_retrieval_timeout: float = 60.0,
        web_augmentation_timeout: float = 60.0,
        general_fallback_timeout: float = 30.0,
        min_web_confidence: float = 0.3,
        min_web_answer_length: int = 100,
        today: Callable[[], date] = date.today,
    ):
        self._document_retrieval = document_retrieval
        self._general_knowledge = general_knowledge
        self._web_augmentation = web_augmentation
        self._answer_cache = answer_cache
        self.document_retrieval_timeout = document_retrieval_timeout
        self.web_augmentation_timeout = web_augmentation_timeout
        self.general_fallback_timeout = general_fallback_timeout
        self.min_web_confidence = min_web_confidence
        self.min_web_answer_length = min_web_answer_length
        self._today = today
        self.graph = self._build_graph()

    @classmethod
    def from_settings(cls, settings, **components) -> "HybridOrchestrator":
        return cls(
            **components,
            document_retrieval_timeout=settings.document_retrieval_timeout,
            web_augmentation_timeout=settings.web_augmentation_timeout,
            general_fallback_timeout=settings.general_fallback_timeout,
            min_web_confidence=settings.min_web_confidence,
            min_web_answer_length=settings.min_web_answer_length,
        )

    def _build_graph(self):
        """Build and compile the LangGraph state machine."""
        graph = StateGraph(HybridState)

        graph.add_node("01_document_retrieval", self._document_retrieval_node)
        graph.add_node("02_web_augmentation", self._web_augmentation_node)

        graph.set_entry_point("01_document_retrieval")
        graph.add_conditional_edges(
            "01_document_retrieval",
            self._decide_web_augmentation,
            {
                "augment": "02_web_augmentation",
                "done": END,
            },
        )
        graph.add_edge("02_web_augmentation", END)

        compiled_graph = graph.compile()
        logger.info("Hybrid orchestrator graph compiled")
        return compiled_graph

    async def answer(
        self,
        question: str,
        conversation_id: str,
        require_web_augmentation: bool = False,
        history: Sequence[Message] = (),
        system_instruction: Optional[str] = None,
        cached_context_handle: Optional[str] = None,
    ) -> AnswerResult:
        """Answer one question. Never raises; the worst case is the apology."""
        state = HybridState(
            question=question,
            conversation_id=conversation_id,
            require_web_augmentation=require_web_augmentation,
            history=list(history),
            system_instruction=system_instruction,
            cached_context_handle=cached_context_handle,
        )
        logger.info(
            "Starting hybrid answering",
            trace_id=state.trace_id,
            conversation_id=conversation_id,
            require_web_augmentation=require_web_augmentation,
            history_turns=len(state.history),
        )

        try:
            result = await self.graph.ainvoke(state)
        except Exception as e:
            logger.error("Hybrid answering failed", trace_id=state.trace_id, error=str(e), exc_info=True)
            return AnswerResult(answer=APOLOGY_MESSAGE)

        if isinstance(result, dict):
            state = state.model_copy(update=result)

        logger.info(
            "Hybrid answering completed",
            trace_id=state.trace_id,
            answer_path=state.answer_path,
            web_outcome=state.web_outcome,
            timings_ms=state.stage_timings_ms,
        )
        return state.final_result or AnswerResult(answer=APOLOGY_MESSAGE)

    # ------------------------------------------------------------------
    # Nodes
    # ------------------------------------------------------------------

    async def _document_retrieval_node(self, state: HybridState) -> Dict[str, Any]:
        """01_document_retrieval: grounded answer, else general knowledge, else apology."""
        start_time = time.time()
        answer_path = "document_retrieval"
        try:
            result = await with_timeout(
                self._document_retrieval.answer_question(
                    state.question,
                    conversation_id=state.conversation_id,
                    history=state.history,
                    system_instruction=state.system_instruction,
                ),
                self.document_retrieval_timeout,
                "document_retrieval",
            )
        except Exception as e:
            logger.warning(
                "Document retrieval failed, using general knowledge",
                trace_id=state.trace_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            result = await self._general_fallback(state)
            answer_path = "general_knowledge"
            if result is None:
                result = AnswerResult(answer=APOLOGY_MESSAGE)
                answer_path = "apology"

        return {
            "retrieval_result": result,
            "final_result": result,
            "answer_path": answer_path,
            "stage_timings_ms": record_timing(state, "01_document_retrieval", (time.time() - start_time) * 1000),
        }

    async def _general_fallback(self, state: HybridState) -> Optional[AnswerResult]:
        try:
            return await with_timeout(
                self._general_knowledge.answer(
                    state.question,
                    conversation_id=state.conversation_id,
                    history=state.history,
                    system_instruction=state.system_instruction,
                    cached_context_handle=state.cached_context_handle,
                ),
                self.general_fallback_timeout,
                "general_fallback",
            )
        except Exception as e:
            logger.error(
                "General knowledge fallback failed",
                trace_id=state.trace_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            return None

    def _decide_web_augmentation(self, state: HybridState) -> Literal["augment", "done"]:
        if state.require_web_augmentation and state.answer_path != "apology":
            return "augment"
        return "done"

    async def _web_augmentation_node(self, state: HybridState) -> Dict[str, Any]:
        """02_web_augmentation: fuse live web results into the base answer."""
        start_time = time.time()
        base = state.retrieval_result
        key = enhancement_cache_key(state.question, base.answer)

        async def run_web_search() -> WebSearchResult:
            prompt = build_enhancement_prompt(state.question, base.answer, today=self._today())
            return await self._web_augmentation.search(prompt, system_instruction=state.system_instruction)

        try:
            web_result = await with_timeout(
                self._answer_cache.get_or_create_enhancement(key, run_web_search),
                self.web_augmentation_timeout,
                "web_augmentation",
            )
        except Exception as e:
            logger.error(
                "Web augmentation failed, keeping retrieval answer",
                trace_id=state.trace_id,
                error_type=type(e).__name__,
                error=str(e),
            )
            final_result, outcome = self._with_failure_notice(base), "failed"
        else:
            if self._passes_quality_gate(web_result):
                final_result, outcome = self._merge(base, web_result), "enhanced"
            else:
                logger.info(
                    "Web enhancement discarded",
                    trace_id=state.trace_id,
                    confidence=web_result.confidence,
                    answer_length=len(web_result.answer),
                )
                final_result, outcome = base, "discarded"

        return {
            "final_result": final_result,
            "web_outcome": outcome,
            "stage_timings_ms": record_timing(state, "02_web_augmentation", (time.time() - start_time) * 1000),
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _passes_quality_gate(self, web_result: WebSearchResult) -> bool:
        answer = web_result.answer or ""
        return (
            bool(answer.strip())
            and len(answer) >= self.min_web_answer_length
            and web_result.confidence >= self.min_web_confidence
        )

    @staticmethod
    def _merge(base: AnswerResult, web_result: WebSearchResult) -> AnswerResult:
        document_sources = base.sources.document_sources if base.sources else []
        return AnswerResult(
            answer=web_result.answer,
            sources=SourceBundle(document_sources=list(document_sources), web_sources=list(web_result.sources)),
        )

    @staticmethod
    def _with_failure_notice(base: AnswerResult) -> AnswerResult:
        return base.model_copy(update={"answer": f"{base.answer}\n\n{WEB_AUGMENTATION_FAILED_NOTICE}"})
