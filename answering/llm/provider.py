"""
Provider-neutral contract for the generative-AI backend.

Adapters speak in these request types; only the concrete provider knows the
wire format. Responses are returned as the provider's own objects and are
read through :mod:`answering.llm.response_parsing`.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Literal, Optional, Sequence, Union


@dataclass(frozen=True)
class ContentTurn:
    """A role-tagged piece of conversation sent to the model."""

    role: Literal["user", "model"]
    text: str


@dataclass(frozen=True)
class FileSearchTool:
    """Ground the answer on the given knowledge stores."""

    store_names: Sequence[str] = field(default_factory=tuple)


@dataclass(frozen=True)
class WebSearchTool:
    """Ground the answer on live web search results."""


Tool = Union[FileSearchTool, WebSearchTool]


@dataclass(frozen=True)
class StoreInfo:
    name: str
    display_name: Optional[str] = None


@dataclass(frozen=True)
class CachedContextInfo:
    name: str
    expire_time: Optional[datetime] = None
    token_count: Optional[int] = None


class GenerativeProvider(abc.ABC):
    """Everything the answering stages need from the provider."""

    @abc.abstractmethod
    async def generate_content(
        self,
        *,
        model: str,
        contents: List[ContentTurn],
        system_instruction: Optional[str] = None,
        tools: Optional[List[Tool]] = None,
        cached_context: Optional[str] = None,
    ) -> Any:
        """Generate a reply. Returns the raw provider response."""

    @abc.abstractmethod
    async def create_store(self, display_name: str) -> str:
        """Create a knowledge store and return its provider name."""

    @abc.abstractmethod
    async def list_stores(self) -> List[StoreInfo]:
        ...

    @abc.abstractmethod
    async def upload_file(self, path: str, display_name: str, mime_type: Optional[str] = None) -> str:
        """Upload a local file and return its provider file name."""

    @abc.abstractmethod
    async def import_file(self, store_name: str, file_name: str) -> Any:
        """Start importing an uploaded file into a store. Returns a pollable operation."""

    @abc.abstractmethod
    async def get_operation(self, operation: Any) -> Any:
        """Refresh a long-running operation."""

    @abc.abstractmethod
    async def create_cached_context(
        self, *, model: str, system_instruction: str, display_name: str, ttl_seconds: int
    ) -> CachedContextInfo:
        ...

    @abc.abstractmethod
    async def delete_cached_context(self, name: str) -> None:
        ...


def history_to_turns(history: Sequence[Any]) -> List[ContentTurn]:
    """Map conversation messages onto provider roles (asker -> user, else model)."""
    return [
        ContentTurn(role="user" if message.role == "asker" else "model", text=message.content)
        for message in history
    ]
