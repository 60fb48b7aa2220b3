"""State object that flows through the hybrid answering graph."""

from __future__ import annotations

import uuid
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from answering.models import AnswerResult, Message


class HybridState(BaseModel):
    """Lifecycle of one question from input to final answer."""

    trace_id: str = Field(default_factory=lambda: uuid.uuid4().hex, description="Unique trace identifier")

    # Input
    question: str = Field(description="Question as asked")
    conversation_id: str = Field(description="Conversation the question belongs to")
    require_web_augmentation: bool = Field(default=False, description="Enhance the answer with live web search")
    history: List[Message] = Field(default_factory=list, description="Prior turns, oldest first")
    system_instruction: Optional[str] = Field(default=None, description="Per-owner system prompt")
    cached_context_handle: Optional[str] = Field(default=None, description="Upstream cached context for the system prompt")

    # Retrieval stage
    retrieval_result: Optional[AnswerResult] = Field(default=None, description="Retrieval or fallback answer")
    answer_path: Optional[Literal["document_retrieval", "general_knowledge", "apology"]] = Field(
        default=None, description="Which stage produced the base answer"
    )

    # Web stage
    web_outcome: Optional[Literal["enhanced", "discarded", "failed"]] = Field(
        default=None, description="What happened to the web enhancement"
    )

    # Output
    final_result: Optional[AnswerResult] = Field(default=None, description="Answer returned to the caller")
    stage_timings_ms: Dict[str, float] = Field(default_factory=dict, description="Per-stage wall time")


def record_timing(state: HybridState, stage: str, duration_ms: float) -> Dict[str, float]:
    return {**state.stage_timings_ms, stage: round(duration_ms, 1)}
