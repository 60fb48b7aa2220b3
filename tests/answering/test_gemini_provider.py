"""Tests for the Gemini provider's translation onto the SDK client."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from answering.errors import ProviderNotConfiguredError
from answering.llm.gemini_provider import GeminiProvider
from answering.llm.provider import ContentTurn, FileSearchTool, StoreInfo, WebSearchTool


class _Pager:
    def __init__(self, items):
        self._items = list(items)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for item in self._items:
            yield item


@pytest.fixture
def client():
    client = MagicMock()
    aio = client.aio
    aio.models.generate_content = AsyncMock(return_value={"text": "ok"})
    aio.file_search_stores.create = AsyncMock(return_value=SimpleNamespace(name="fileSearchStores/abc"))
    aio.file_search_stores.list = AsyncMock(
        return_value=_Pager([SimpleNamespace(name="fileSearchStores/abc", display_name="Onboarding")])
    )
    aio.file_search_stores.import_file = AsyncMock(return_value={"name": "operations/1", "done": False})
    aio.files.upload = AsyncMock(return_value=SimpleNamespace(name="files/xyz"))
    aio.operations.get = AsyncMock(return_value={"name": "operations/1", "done": True})
    aio.caches.create = AsyncMock(
        return_value=SimpleNamespace(
            name="cachedContents/c1",
            expire_time=None,
            usage_metadata=SimpleNamespace(total_token_count=2048),
        )
    )
    aio.caches.delete = AsyncMock()
    return client


@pytest.fixture
def gemini(client):
    return GeminiProvider(client=client)


def test_requires_api_key_without_client():
    with pytest.raises(ProviderNotConfiguredError):
        GeminiProvider(api_key=None)


@pytest.mark.asyncio
async def test_generate_content_with_file_search(gemini, client):
    await gemini.generate_content(
        model="gemini-2.5-pro",
        contents=[ContentTurn(role="user", text="What is the leave policy?")],
        system_instruction="Be brief.",
        tools=[FileSearchTool(store_names=("fileSearchStores/abc",))],
    )

    kwargs = client.aio.models.generate_content.call_args.kwargs
    assert kwargs["model"] == "gemini-2.5-pro"
    assert kwargs["contents"][0].role == "user"
    assert kwargs["contents"][0].parts[0].text == "What is the leave policy?"
    config = kwargs["config"]
    assert config.system_instruction == "Be brief."
    assert config.tools[0].file_search.file_search_store_names == ["fileSearchStores/abc"]
    assert config.cached_content is None


@pytest.mark.asyncio
async def test_generate_content_with_web_search_and_cache(gemini, client):
    await gemini.generate_content(
        model="gemini-2.0-flash",
        contents=[ContentTurn(role="user", text="News?")],
        tools=[WebSearchTool()],
        cached_context="cachedContents/c1",
    )

    config = client.aio.models.generate_content.call_args.kwargs["config"]
    assert config.tools[0].google_search is not None
    assert config.cached_content == "cachedContents/c1"


@pytest.mark.asyncio
async def test_store_management(gemini, client):
    assert await gemini.create_store("Onboarding") == "fileSearchStores/abc"
    assert client.aio.file_search_stores.create.call_args.kwargs["config"].display_name == "Onboarding"

    stores = await gemini.list_stores()
    assert stores == [StoreInfo(name="fileSearchStores/abc", display_name="Onboarding")]


@pytest.mark.asyncio
async def test_upload_and_import(gemini, client):
    file_name = await gemini.upload_file("/tmp/policy.txt", "policy.txt", "text/plain")
    operation = await gemini.import_file("fileSearchStores/abc", file_name)
    finished = await gemini.get_operation(operation)

    assert file_name == "files/xyz"
    upload_config = client.aio.files.upload.call_args.kwargs["config"]
    assert upload_config.display_name == "policy.txt"
    assert upload_config.mime_type == "text/plain"
    client.aio.file_search_stores.import_file.assert_awaited_once_with(
        file_search_store_name="fileSearchStores/abc", file_name="files/xyz"
    )
    assert finished["done"] is True


@pytest.mark.asyncio
async def test_cached_context_lifecycle(gemini, client):
    info = await gemini.create_cached_context(
        model="gemini-2.0-flash",
        system_instruction="You are helpful.",
        display_name="system_prompt:owner-1",
        ttl_seconds=3600,
    )

    assert info.name == "cachedContents/c1"
    assert info.token_count == 2048
    config = client.aio.caches.create.call_args.kwargs["config"]
    assert config.ttl == "3600s"
    assert config.display_name == "system_prompt:owner-1"

    await gemini.delete_cached_context("cachedContents/c1")
    client.aio.caches.delete.assert_awaited_once_with(name="cachedContents/c1")
