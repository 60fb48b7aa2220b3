"""Gemini implementation of :class:`GenerativeProvider` over the google-genai SDK."""

from __future__ import annotations

from typing import Any, List, Optional

import structlog
from google import genai
from google.genai import types

from answering.errors import ProviderNotConfiguredError
from answering.llm.provider import (
    CachedContextInfo,
    ContentTurn,
    FileSearchTool,
    GenerativeProvider,
    StoreInfo,
    Tool,
    WebSearchTool,
)

logger = structlog.get_logger(__name__)


def _to_sdk_tool(tool: Tool) -> types.Tool:
    if isinstance(tool, FileSearchTool):
        return types.Tool(file_search=types.FileSearch(file_search_store_names=list(tool.store_names)))
    if isinstance(tool, WebSearchTool):
        return types.Tool(google_search=types.GoogleSearch())
    raise TypeError(f"Unsupported tool: {tool!r}")


def _to_sdk_contents(contents: List[ContentTurn]) -> List[types.Content]:
    return [types.Content(role=turn.role, parts=[types.Part(text=turn.text)]) for turn in contents]


class GeminiProvider(GenerativeProvider):
    """Async Gemini client wrapper.

    All calls go through ``client.aio`` so they never block the event loop.
    """

    def __init__(self, api_key: Optional[str] = None, client: Optional[genai.Client] = None):
        if client is None:
            if not api_key:
                raise ProviderNotConfiguredError("GOOGLE_API_KEY is not set")
            client = genai.Client(api_key=api_key)
        self._client = client

    @property
    def _aio(self):
        return self._client.aio

    async def generate_content(
        self,
        *,
        model: str,
        contents: List[ContentTurn],
        system_instruction: Optional[str] = None,
        tools: Optional[List[Tool]] = None,
        cached_context: Optional[str] = None,
    ) -> Any:
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            tools=[_to_sdk_tool(tool) for tool in tools] if tools else None,
            cached_content=cached_context,
        )
        return await self._aio.models.generate_content(
            model=model,
            contents=_to_sdk_contents(contents),
            config=config,
        )

    async def create_store(self, display_name: str) -> str:
        store = await self._aio.file_search_stores.create(
            config=types.CreateFileSearchStoreConfig(display_name=display_name)
        )
        logger.info("Knowledge store created", display_name=display_name, store_name=store.name)
        return store.name

    async def list_stores(self) -> List[StoreInfo]:
        stores = []
        async for store in await self._aio.file_search_stores.list():
            stores.append(StoreInfo(name=store.name, display_name=store.display_name))
        return stores

    async def upload_file(self, path: str, display_name: str, mime_type: Optional[str] = None) -> str:
        uploaded = await self._aio.files.upload(
            file=path,
            config=types.UploadFileConfig(display_name=display_name, mime_type=mime_type),
        )
        return uploaded.name

    async def import_file(self, store_name: str, file_name: str) -> Any:
        return await self._aio.file_search_stores.import_file(
            file_search_store_name=store_name,
            file_name=file_name,
        )

    async def get_operation(self, operation: Any) -> Any:
        return await self._aio.operations.get(operation)

    async def create_cached_context(
        self, *, model: str, system_instruction: str, display_name: str, ttl_seconds: int
    ) -> CachedContextInfo:
        cached = await self._aio.caches.create(
            model=model,
            config=types.CreateCachedContentConfig(
                display_name=display_name,
                system_instruction=system_instruction,
                ttl=f"{ttl_seconds}s",
            ),
        )
        usage = getattr(cached, "usage_metadata", None)
        return CachedContextInfo(
            name=cached.name,
            expire_time=getattr(cached, "expire_time", None),
            token_count=getattr(usage, "total_token_count", None),
        )

    async def delete_cached_context(self, name: str) -> None:
        await self._aio.caches.delete(name=name)
