"""Tests for projectbrain.llm — mocked LiteLLM calls."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import litellm
import pytest

from projectbrain.errors import RateLimited
from projectbrain.llm import (
    complete,
    embed,
    embedding_available,
    generate,
    parse_json_response,
    transcribe_image,
)


def _completion_response(content: str) -> MagicMock:
    choice = MagicMock()
    choice.message.content = content
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def mock_completion():
    """Mock litellm.acompletion to return a fake response."""
    with patch("projectbrain.llm.litellm.acompletion", new_callable=AsyncMock) as mock:
        mock.return_value = _completion_response("Hello from mock")
        yield mock


@pytest.fixture
def mock_embedding():
    """Mock litellm.aembedding to return fake vectors."""
    response = MagicMock()
    response.data = [
        {"embedding": [0.1, 0.2, 0.3]},
        {"embedding": [0.4, 0.5, 0.6]},
    ]

    with patch("projectbrain.llm.litellm.aembedding", new_callable=AsyncMock) as mock:
        mock.return_value = response
        yield mock


@pytest.mark.asyncio
async def test_complete_uses_config_model(mock_completion):
    result = await complete([{"role": "user", "content": "hi"}])
    assert result == "Hello from mock"
    assert "anthropic" in mock_completion.call_args.kwargs["model"]


@pytest.mark.asyncio
async def test_complete_allows_model_override(mock_completion):
    await complete([{"role": "user", "content": "hi"}], model="openai/gpt-4o")
    assert mock_completion.call_args.kwargs["model"] == "openai/gpt-4o"


@pytest.mark.asyncio
async def test_complete_translates_rate_limit(mock_completion):
    mock_completion.side_effect = litellm.RateLimitError(
        message="too many", llm_provider="openai", model="gpt-4o"
    )
    with pytest.raises(RateLimited):
        await complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_embed_returns_vectors(mock_embedding):
    vectors = await embed(["hello", "world"])
    assert vectors == [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]
    assert mock_embedding.call_args.kwargs["model"] == "openai/text-embedding-3-small"


@pytest.mark.asyncio
async def test_generate_with_schema_parses_json(mock_completion):
    mock_completion.return_value = _completion_response('{"ok": true}')
    schema = {"type": "object", "properties": {"ok": {"type": "boolean"}}}

    result = await generate("check", system_prompt="Be precise.", response_schema=schema)

    assert result == {"ok": True}
    kwargs = mock_completion.call_args.kwargs
    assert kwargs["response_format"] == {"type": "json_object"}
    system = kwargs["messages"][0]
    assert system["role"] == "system"
    assert system["content"].startswith("Be precise.")
    assert json.dumps(schema) in system["content"]


@pytest.mark.asyncio
async def test_generate_without_schema_returns_text(mock_completion):
    result = await generate("say hi")
    assert result == "Hello from mock"
    assert mock_completion.call_args.kwargs["messages"] == [
        {"role": "user", "content": "say hi"}
    ]


def test_parse_json_response_extracts_embedded_object():
    raw = 'Sure! Here it is:\n{"proposedChanges": []}\nThanks.'
    assert parse_json_response(raw) == {"proposedChanges": []}


def test_parse_json_response_returns_raw_on_garbage():
    assert parse_json_response("not json at all") == "not json at all"


def test_embedding_available_reads_validate_environment():
    with patch(
        "projectbrain.llm.litellm.validate_environment",
        return_value={"keys_in_environment": True, "missing_keys": []},
    ):
        assert embedding_available("openai/text-embedding-3-small")
    with patch(
        "projectbrain.llm.litellm.validate_environment",
        return_value={"keys_in_environment": False, "missing_keys": ["OPENAI_API_KEY"]},
    ):
        assert not embedding_available("openai/text-embedding-3-small")


@pytest.mark.asyncio
async def test_transcribe_image_formats_base64(mock_completion):
    result = await transcribe_image(b"\x89PNG\r\n\x1a\n")
    assert result == "Hello from mock"

    messages = mock_completion.call_args.kwargs["messages"]
    assert messages[0]["content"][1]["type"] == "image_url"
    assert "base64" in messages[0]["content"][1]["image_url"]["url"]
