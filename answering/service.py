"""
Answering service facade.

This is the produced interface consumed by the request-handling layer:
``generate(question, conversation_id, require_web_augmentation)``. It resolves
the conversation owner, prepares the per-owner system prompt (and its
upstream context cache), keeps the cached conversation history in order and
delegates the answer itself to the hybrid orchestrator.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Optional

import structlog

from answering.composer.prompts import APOLOGY_MESSAGE, build_system_prompt
from answering.config.seeds import load_store_seeds
from answering.errors import MissingDependencyError
from answering.llm.gemini_provider import GeminiProvider
from answering.llm.provider import GenerativeProvider
from answering.llm.retry import document_retrieval_retrying, web_search_retrying
from answering.middleware.rate_limiter import SlidingWindowRateLimiter
from answering.models import AnswerResult, FileDocument, GenerateResponse, Message
from answering.orchestrators.hybrid_orchestrator import HybridOrchestrator
from answering.ports import ConversationStore, UserProfile
from answering.tools.document_retrieval import DocumentRetrievalAdapter
from answering.tools.general_knowledge import GeneralKnowledgeAssistant
from answering.tools.store_registry import StoreRegistry
from answering.tools.web_augmentation import WebAugmentationAdapter
from libs.caching.answer_cache import AnswerCache
from libs.caching.context_cache import ContextCache
from libs.common.logging import configure_logging
from libs.common.settings import Settings, get_settings

logger = structlog.get_logger(__name__)

MIME_TYPES = {
    ".txt": "text/plain",
    ".pdf": "application/pdf",
    ".md": "text/markdown",
    ".json": "application/json",
}
DEFAULT_MIME_TYPE = "application/octet-stream"


def detect_mime_type(file_path: str) -> str:
    return MIME_TYPES.get(Path(file_path).suffix.lower(), DEFAULT_MIME_TYPE)


class AnswerService:
    """Entry point for generating answers within a conversation."""

    def __init__(
        self,
        orchestrator: HybridOrchestrator,
        document_retrieval: DocumentRetrievalAdapter,
        answer_cache: AnswerCache,
        context_cache: ContextCache,
        conversation_store: ConversationStore,
        user_profile: UserProfile,
        context_cache_model: str = "gemini-2.0-flash",
    ):
        self._orchestrator = orchestrator
        self._document_retrieval = document_retrieval
        self._answer_cache = answer_cache
        self._context_cache = context_cache
        self._conversations = conversation_store
        self._profiles = user_profile
        self._context_cache_model = context_cache_model

    async def start(self) -> None:
        self._answer_cache.start()
        self._context_cache.start()

    async def stop(self) -> None:
        await self._answer_cache.stop()
        await self._context_cache.stop()

    async def generate(
        self,
        question: str,
        conversation_id: str,
        require_web_augmentation: bool = False,
    ) -> GenerateResponse:
        """Answer ``question`` in ``conversation_id``. Never raises."""
        if not question or not question.strip():
            logger.warning("Empty question received", conversation_id=conversation_id)
            return self._apology()

        try:
            owner_id = await self._resolve_owner(conversation_id)
        except MissingDependencyError as e:
            logger.warning("Cannot answer without conversation owner", conversation_id=conversation_id, error=str(e))
            return self._apology()
        except Exception as e:
            logger.error("Owner lookup failed", conversation_id=conversation_id, error=str(e))
            return self._apology()

        try:
            result = await self._answer(question, conversation_id, owner_id, require_web_augmentation)
        except Exception as e:
            logger.error("Answer generation failed", conversation_id=conversation_id, error=str(e), exc_info=True)
            return self._apology()

        return GenerateResponse(answer_kind=result.answer_kind, answer_text=result.answer, sources=result.sources)

    async def _answer(
        self, question: str, conversation_id: str, owner_id: str, require_web_augmentation: bool
    ) -> AnswerResult:
        system_prompt = await self._system_prompt(owner_id)
        cached_context_handle = await self._context_cache.get_or_create(
            owner_id, system_prompt, self._context_cache_model
        )

        async def load_history() -> List[Message]:
            return await self._conversations.fetch_history(conversation_id)

        history = await self._answer_cache.get_or_create_conversation(conversation_id, load_history)

        # The asker's turn is recorded before any stage runs
        user_message = Message(conversation_id=conversation_id, role="asker", content=question)
        await self._answer_cache.append_to_conversation(conversation_id, user_message)

        result = await self._orchestrator.answer(
            question,
            conversation_id,
            require_web_augmentation=require_web_augmentation,
            history=history,
            system_instruction=system_prompt,
            cached_context_handle=cached_context_handle,
        )

        assistant_message = Message(conversation_id=conversation_id, role="assistant", content=result.answer)
        await self._answer_cache.append_to_conversation(conversation_id, assistant_message)
        return result

    async def _resolve_owner(self, conversation_id: str) -> str:
        owner_id = await self._conversations.find_owner(conversation_id)
        if not owner_id:
            raise MissingDependencyError(f"Conversation {conversation_id} has no owner")
        return owner_id

    async def _system_prompt(self, owner_id: str) -> str:
        async def generate() -> str:
            preset_id = await self._profiles.get_personalization_preset(owner_id)
            style_hint = await self._profiles.get_communication_style_hint(owner_id)
            return build_system_prompt(preset_id, style_hint)

        return await self._answer_cache.get_or_create_system_prompt(owner_id, generate)

    async def invalidate_owner(self, owner_id: str) -> None:
        """Forget cached prompts after the owner's personalization settings change."""
        self._answer_cache.invalidate_system_prompt(owner_id)
        await self._context_cache.invalidate_owner(owner_id)

    async def upload_document(
        self,
        file_path: str,
        display_name: Optional[str] = None,
        mime_type: Optional[str] = None,
    ) -> FileDocument:
        document = FileDocument(
            path=file_path,
            display_name=display_name or os.path.basename(file_path),
            mime_type=mime_type or detect_mime_type(file_path),
        )
        await self._document_retrieval.upload_documents([document])
        logger.info("Document uploaded", display_name=document.display_name, path=file_path)
        return document

    @staticmethod
    def _apology() -> GenerateResponse:
        return GenerateResponse(answer_text=APOLOGY_MESSAGE)


def build_document_retrieval(
    settings: Settings, provider: GenerativeProvider
) -> DocumentRetrievalAdapter:
    return DocumentRetrievalAdapter(
        provider,
        load_store_seeds(settings.store_seeds_path),
        StoreRegistry(settings.store_registry_path),
        model=settings.retrieval_model,
        retry_policy=document_retrieval_retrying(
            max_retries=settings.retrieval_max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            retryable_status_codes=settings.retryable_status_codes,
        ),
        poll_interval=settings.import_poll_interval,
    )


def create_answer_service(
    conversation_store: ConversationStore,
    user_profile: UserProfile,
    settings: Optional[Settings] = None,
    provider: Optional[GenerativeProvider] = None,
) -> AnswerService:
    """Wire the full pipeline from settings."""
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.json_logs)
    provider = provider or GeminiProvider(api_key=settings.google_api_key)

    answer_cache = AnswerCache.from_settings(settings)
    context_cache = ContextCache(
        provider,
        ttl_seconds=settings.context_cache_ttl,
        sweep_interval=settings.context_cache_sweep_interval,
        maxsize=settings.context_cache_max_entries,
    )
    document_retrieval = build_document_retrieval(settings, provider)
    web_augmentation = WebAugmentationAdapter(
        provider,
        model=settings.web_search_model,
        rate_limiter=SlidingWindowRateLimiter(
            max_requests=settings.web_requests_per_minute,
            window_seconds=60.0,
            min_interval=settings.web_min_interval,
        ),
        retry_policy=web_search_retrying(
            max_attempts=settings.web_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        ),
    )
    orchestrator = HybridOrchestrator.from_settings(
        settings,
        document_retrieval=document_retrieval,
        general_knowledge=GeneralKnowledgeAssistant(provider, model=settings.general_model),
        web_augmentation=web_augmentation,
        answer_cache=answer_cache,
    )

    logger.info("Answer service created", app_env=settings.app_env, retrieval_model=settings.retrieval_model)
    return AnswerService(
        orchestrator=orchestrator,
        document_retrieval=document_retrieval,
        answer_cache=answer_cache,
        context_cache=context_cache,
        conversation_store=conversation_store,
        user_profile=user_profile,
        context_cache_model=settings.general_model,
    )
