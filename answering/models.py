"""Data model shared by the answering stages."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Message(BaseModel):
    """One turn of a conversation. Immutable once created."""

    model_config = ConfigDict(frozen=True)

    message_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    conversation_id: str
    role: Literal["asker", "assistant"]
    content: str
    created_at: datetime = Field(default_factory=_utcnow)


class Chunk(BaseModel):
    """A cited snippet of a knowledge-store file."""

    chunk_id: str
    text: str = ""
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class DocumentSource(BaseModel):
    """One cited file with its chunks, in citation order."""

    file_name: str
    document_id: Optional[str] = None
    chunks: List[Chunk] = Field(default_factory=list)


class WebSource(BaseModel):
    title: str
    url: str
    snippet: Optional[str] = None


class SourceBundle(BaseModel):
    document_sources: List[DocumentSource] = Field(default_factory=list)
    web_sources: List[WebSource] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.document_sources and not self.web_sources


class AnswerResult(BaseModel):
    """Output of any answering stage."""

    answer_kind: Literal["answer"] = "answer"
    answer: str
    sources: Optional[SourceBundle] = None


class WebSearchResult(BaseModel):
    answer: str
    sources: List[WebSource] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class RetrievalDecision(BaseModel):
    """Outcome of the "does this need the knowledge store?" classifier."""

    needs_retrieval: bool
    reason: str


class SufficiencyJudgment(BaseModel):
    """Outcome of the "is this retrieval answer good enough?" classifier."""

    is_sufficient: bool
    reason: str


class FileDocument(BaseModel):
    """A local file to upload into a knowledge store."""

    path: str
    display_name: Optional[str] = None
    mime_type: Optional[str] = None


class StoreSeed(BaseModel):
    """A named knowledge store and the files that must be present in it."""

    model_config = ConfigDict(frozen=True)

    display_name: str
    files: List[FileDocument] = Field(default_factory=list)
    existing_name: Optional[str] = None
    sample_questions: List[str] = Field(default_factory=list)


class GenerateResponse(BaseModel):
    """What the request-handling layer receives for one question."""

    answer_kind: Literal["answer"] = "answer"
    answer_text: str
    sources: Optional[SourceBundle] = None
