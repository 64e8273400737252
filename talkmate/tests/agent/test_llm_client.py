from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import BaseModel

from talkmate.agent.llm_client import LLMClient, _json_candidates, _strip_code_fences


class DummyModel(BaseModel):
    name: str
    age: int


def _response(content: str | None) -> MagicMock:
    mock_message = MagicMock()
    mock_message.content = content

    mock_choice = MagicMock()
    mock_choice.message = mock_message

    mock_response = MagicMock()
    mock_response.choices = [mock_choice]
    return mock_response


def _client_with(*contents: str | None) -> tuple[MagicMock, MagicMock]:
    mock_completions = MagicMock()
    mock_completions.create = AsyncMock(side_effect=[_response(c) for c in contents])

    mock_chat = MagicMock()
    mock_chat.completions = mock_completions

    mock_client_instance = AsyncMock()
    mock_client_instance.chat = mock_chat
    return mock_client_instance, mock_completions


@pytest.mark.asyncio
async def test_llm_client_json_parsing():
    mock_client_instance, mock_completions = _client_with('{"name": "Alice", "age": 30}')

    with patch("talkmate.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        with patch("talkmate.agent.llm_client.settings.LLM_API_KEY", "dummy_key"):
            client = LLMClient(model_name="test-model")

            result = await client.generate_structured(
                system_prompt="You are a helpful assistant.",
                user_prompt="Give me Alice's details",
                response_schema=DummyModel,
            )

            assert isinstance(result, DummyModel)
            assert result.name == "Alice"
            assert result.age == 30
            mock_completions.create.assert_called_once()
            assert mock_completions.create.call_args.kwargs["temperature"] == 0.2


@pytest.mark.asyncio
async def test_structured_retry_runs_at_zero_temperature_with_retry_instructions():
    mock_client_instance, mock_completions = _client_with(
        "Sure! Here you go.", 'Result:\n```json\n{"name": "Bo", "age": 7}\n```'
    )

    with patch("talkmate.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        result = await client.generate_structured("sys", "user", DummyModel)

    assert result == DummyModel(name="Bo", age=7)
    assert mock_completions.create.call_count == 2
    second = mock_completions.create.call_args_list[1].kwargs
    assert second["temperature"] == 0
    assert "RETRY INSTRUCTIONS" in second["messages"][0]["content"]


@pytest.mark.asyncio
async def test_structured_gives_up_after_two_attempts():
    mock_client_instance, mock_completions = _client_with("nope", "still nope")

    with patch("talkmate.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        with pytest.raises(ValueError):
            await client.generate_structured("sys", "user", DummyModel)

    assert mock_completions.create.call_count == 2


@pytest.mark.asyncio
async def test_gpt5_models_are_called_without_temperature():
    mock_client_instance, mock_completions = _client_with("Hola")

    with patch("talkmate.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="gpt-5.1", api_key="dummy_key")
        reply = await client.generate_chat([{"role": "user", "content": "hola"}])

    assert reply == "Hola"
    assert "temperature" not in mock_completions.create.call_args.kwargs


@pytest.mark.asyncio
async def test_chat_retries_an_empty_reply():
    mock_client_instance, mock_completions = _client_with("", "  Buenas  ")
    messages = [
        {"role": "system", "content": "Be a friend."},
        {"role": "user", "content": "hola"},
    ]

    with patch("talkmate.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        reply = await client.generate_chat(messages, temperature=0.7)

    assert reply == "Buenas"
    first, second = (c.kwargs for c in mock_completions.create.call_args_list)
    assert first["temperature"] == 0.7
    assert second["temperature"] == 0
    assert second["messages"][0]["content"].startswith("Be a friend.")
    assert "RETRY INSTRUCTIONS" in second["messages"][0]["content"]
    # The caller's list is left as it was.
    assert messages[0]["content"] == "Be a friend."


@pytest.mark.asyncio
async def test_chat_raises_when_both_attempts_are_empty():
    mock_client_instance, _ = _client_with(None, "")

    with patch("talkmate.agent.llm_client.AsyncOpenAI", return_value=mock_client_instance):
        client = LLMClient(model_name="test-model", api_key="dummy_key")
        with pytest.raises(ValueError):
            await client.generate_chat([{"role": "user", "content": "hola"}])


def test_json_candidates_find_object_inside_prose():
    candidates = _json_candidates('Here it is: {"a": "}"} thanks')
    assert '{"a": "}"}' in candidates


def test_strip_code_fences():
    assert _strip_code_fences("```text\n¡Hola!\n```") == "¡Hola!"
    assert _strip_code_fences("  plain  ") == "plain"
