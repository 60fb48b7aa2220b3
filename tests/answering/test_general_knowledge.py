"""Tests for the general-knowledge assistant and its classifiers."""

import pytest

from answering.models import Message
from answering.tools.general_knowledge import GeneralKnowledgeAssistant
from tests.fakes import ProviderError, text_response


@pytest.fixture
def assistant(provider):
    return GeneralKnowledgeAssistant(provider)


@pytest.mark.asyncio
async def test_answer_sends_system_instruction_without_cache(assistant, provider):
    provider.script("plain", text_response("Paris."))
    history = [Message(conversation_id="c", role="asker", content="Hi")]

    result = await assistant.answer("Capital of France?", history=history, system_instruction="Be brief.")

    call = provider.calls_of("plain")[0]
    assert call["system_instruction"] == "Be brief."
    assert call["cached_context"] is None
    assert call["tools"] is None
    assert [t.text for t in call["contents"]] == ["Hi", "Capital of France?"]
    assert result.answer == "Paris."
    assert result.sources is None


@pytest.mark.asyncio
async def test_cached_context_replaces_system_instruction(assistant, provider):
    response = text_response("Cached answer.")
    response["usageMetadata"] = {"cachedContentTokenCount": 2048}
    provider.script("plain", response)

    await assistant.answer("q", system_instruction="Long prompt", cached_context_handle="cachedContents/abc")

    call = provider.calls_of("plain")[0]
    assert call["system_instruction"] is None
    assert call["cached_context"] == "cachedContents/abc"


@pytest.mark.asyncio
async def test_needs_retrieval_parses_json(assistant, provider):
    provider.script("plain", text_response('Here you go: {"needs_retrieval": false, "reason": "Greeting"}'))

    decision = await assistant.needs_document_retrieval("Hello!")

    assert decision.needs_retrieval is False
    assert decision.reason == "Greeting"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "outcome",
    [
        ProviderError("boom", code=500),
        text_response("not json at all"),
        text_response('{"needs_retrieval": "maybe"}'),
    ],
)
async def test_needs_retrieval_defaults_to_true(assistant, provider, outcome):
    provider.script("plain", outcome)

    decision = await assistant.needs_document_retrieval("What is the leave policy?")

    assert decision.needs_retrieval is True
    assert decision.reason


@pytest.mark.asyncio
async def test_sufficiency_parses_json(assistant, provider):
    provider.script("plain", text_response('{"is_sufficient": true, "reason": "Complete"}'))

    judgment = await assistant.judge_answer_sufficiency("q", "a")

    assert judgment.is_sufficient is True


@pytest.mark.asyncio
@pytest.mark.parametrize("outcome", [ProviderError("timeout"), text_response("{broken json")])
async def test_sufficiency_defaults_to_insufficient(assistant, provider, outcome):
    provider.script("plain", outcome)

    judgment = await assistant.judge_answer_sufficiency("q", "a")

    assert judgment.is_sufficient is False
