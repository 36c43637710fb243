"""Tests for model_provider module."""

import json
import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import anthropic
import httpx
import openai
import pytest

from bedtime.pipeline.errors import GenerationTransportError
from bedtime.story.model_provider import (
    ClaudeProvider,
    GenerationResult,
    ModelInfo,
    OllamaProvider,
    OpenAIProvider,
    get_model_info,
    get_provider,
    parse_model_spec,
)


def _openai_completion(content, usage=True):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=120, completion_tokens=800, total_tokens=920) if usage else None,
    )


def _mock_openai_client(create):
    client = MagicMock()
    client.chat.completions.create = create
    return client


def _ollama_client_factory(handler):
    """AsyncClient factory routing every request to handler."""
    real_client = httpx.AsyncClient

    def factory(*args, **kwargs):
        return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

    return factory


class TestModelInfo:
    """Tests for ModelInfo dataclass."""

    def test_model_info_creation(self):
        info = ModelInfo(provider="openai", model_name="gpt-4o", full_spec="gpt-4o")
        assert info.provider == "openai"
        assert info.model_name == "gpt-4o"


class TestGenerationResult:
    """Tests for GenerationResult dataclass."""

    def test_generation_result_creation(self):
        result = GenerationResult(
            text="{}",
            usage={"input_tokens": 100, "output_tokens": 50, "total_tokens": 150},
            provider="openai",
            model="gpt-4o",
        )
        assert result.usage["total_tokens"] == 150


class TestParseModelSpec:
    """Tests for parse_model_spec function."""

    def test_parse_none_uses_story_model_env(self):
        with patch.dict(os.environ, {"STORY_MODEL": "gpt-4o-mini"}, clear=False):
            info = parse_model_spec(None)
        assert info.provider == "openai"
        assert info.model_name == "gpt-4o-mini"

    def test_parse_none_defaults_to_gpt_4o(self, monkeypatch):
        monkeypatch.delenv("STORY_MODEL", raising=False)
        info = parse_model_spec(None)
        assert info.provider == "openai"
        assert info.model_name == "gpt-4o"

    def test_parse_ollama_spec(self):
        info = parse_model_spec("ollama:llama3")
        assert info.provider == "ollama"
        assert info.model_name == "llama3"
        assert info.full_spec == "ollama:llama3"

    def test_parse_ollama_spec_with_tag(self):
        info = parse_model_spec("ollama:qwen3:30b")
        assert info.provider == "ollama"
        assert info.model_name == "qwen3:30b"

    def test_parse_openai_prefix(self):
        info = parse_model_spec("openai:gpt-4o")
        assert info.provider == "openai"
        assert info.model_name == "gpt-4o"

    def test_parse_claude_model(self):
        info = parse_model_spec("claude-sonnet-4-5-20250929")
        assert info.provider == "anthropic"
        assert info.model_name == "claude-sonnet-4-5-20250929"

    def test_unknown_name_goes_to_openai(self):
        assert parse_model_spec("o3-mini").provider == "openai"


class TestGetProvider:
    """Tests for get_provider and get_model_info."""

    def test_openai(self):
        provider = get_provider("gpt-4o")
        assert isinstance(provider, OpenAIProvider)
        assert provider.provider_name == "openai"

    def test_claude(self):
        provider = get_provider("claude-sonnet-4-5-20250929")
        assert isinstance(provider, ClaudeProvider)
        assert provider.provider_name == "anthropic"

    def test_ollama(self):
        provider = get_provider("ollama:llama3")
        assert isinstance(provider, OllamaProvider)
        assert provider.model_name == "llama3"

    def test_get_model_info_does_not_build_provider(self):
        assert get_model_info("ollama:llama3").provider == "ollama"


class TestOpenAIProvider:
    """Tests for OpenAIProvider with a mocked client."""

    @pytest.mark.asyncio
    async def test_request_uses_json_mode_and_seed(self):
        create = AsyncMock(return_value=_openai_completion('{"title": "x"}'))
        with patch(
            "bedtime.story.model_provider.get_openai_client",
            return_value=_mock_openai_client(create),
        ):
            result = await OpenAIProvider("gpt-4o").generate(
                "system", [{"role": "user", "content": "a fox"}], {"seed": 1717171717000}
            )

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["seed"] == 1717171717000
        assert kwargs["messages"][0] == {"role": "system", "content": "system"}
        assert kwargs["messages"][1] == {"role": "user", "content": "a fox"}
        assert result.text == '{"title": "x"}'
        assert result.usage == {"input_tokens": 120, "output_tokens": 800, "total_tokens": 920}

    @pytest.mark.asyncio
    async def test_user_forwarded_when_given(self):
        create = AsyncMock(return_value=_openai_completion('{"title": "x"}'))
        with patch(
            "bedtime.story.model_provider.get_openai_client",
            return_value=_mock_openai_client(create),
        ):
            await OpenAIProvider("gpt-4o").generate("s", [], {"seed": 1, "user": "alice"})
            await OpenAIProvider("gpt-4o").generate("s", [], {"seed": 1})

        assert create.call_args_list[0].kwargs["user"] == "alice"
        assert "user" not in create.call_args_list[1].kwargs

    @pytest.mark.asyncio
    async def test_api_error_becomes_transport_error(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))
        create = AsyncMock(side_effect=error)
        with patch(
            "bedtime.story.model_provider.get_openai_client",
            return_value=_mock_openai_client(create),
        ):
            with pytest.raises(GenerationTransportError):
                await OpenAIProvider("gpt-4o").generate("s", [], {})

    @pytest.mark.asyncio
    async def test_empty_choice_is_transport_error(self):
        create = AsyncMock(return_value=_openai_completion(None, usage=False))
        with patch(
            "bedtime.story.model_provider.get_openai_client",
            return_value=_mock_openai_client(create),
        ):
            with pytest.raises(GenerationTransportError, match="no response"):
                await OpenAIProvider("gpt-4o").generate("s", [], {})


class TestClaudeProvider:
    """Tests for ClaudeProvider with a mocked client."""

    @pytest.mark.asyncio
    async def test_seeded_request_pins_temperature(self):
        message = SimpleNamespace(
            content=[SimpleNamespace(text='{"title": "x"}')],
            usage=SimpleNamespace(input_tokens=10, output_tokens=20),
        )
        client = MagicMock()
        client.messages.create = AsyncMock(return_value=message)

        with patch("bedtime.story.model_provider.anthropic.AsyncAnthropic", return_value=client):
            result = await ClaudeProvider("claude-sonnet-4-5-20250929").generate(
                "system", [{"role": "user", "content": "a fox"}], {"seed": 42}
            )

        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["system"] == "system"
        assert result.usage["total_tokens"] == 30

    @pytest.mark.asyncio
    async def test_api_error_becomes_transport_error(self):
        client = MagicMock()
        client.messages.create = AsyncMock(
            side_effect=anthropic.APIConnectionError(
                request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
            )
        )
        with patch("bedtime.story.model_provider.anthropic.AsyncAnthropic", return_value=client):
            with pytest.raises(GenerationTransportError):
                await ClaudeProvider("claude-sonnet-4-5-20250929").generate("s", [], {})


class TestOllamaProvider:
    """Tests for OllamaProvider over a mock transport."""

    @pytest.mark.asyncio
    async def test_generate_passes_seed_and_json_format(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "message": {"content": '{"title": "x"}'},
                "prompt_eval_count": 50,
                "eval_count": 100,
            })

        with patch(
            "bedtime.story.model_provider.httpx.AsyncClient",
            side_effect=_ollama_client_factory(handler),
        ):
            result = await OllamaProvider("llama3").generate("system", [], {"seed": 7})

        assert seen["url"].endswith("/api/chat")
        assert seen["body"]["format"] == "json"
        assert seen["body"]["options"]["seed"] == 7
        assert seen["body"]["stream"] is False
        assert result.text == '{"title": "x"}'
        assert result.usage["total_tokens"] == 150

    @pytest.mark.asyncio
    async def test_http_error_becomes_transport_error(self):
        def handler(request):
            return httpx.Response(500, json={"error": "model crashed"})

        with patch(
            "bedtime.story.model_provider.httpx.AsyncClient",
            side_effect=_ollama_client_factory(handler),
        ):
            with pytest.raises(GenerationTransportError):
                await OllamaProvider("llama3").generate("s", [], {})

    @pytest.mark.asyncio
    async def test_error_field_becomes_transport_error(self):
        def handler(request):
            return httpx.Response(200, json={"error": "model not found"})

        with patch(
            "bedtime.story.model_provider.httpx.AsyncClient",
            side_effect=_ollama_client_factory(handler),
        ):
            with pytest.raises(GenerationTransportError, match="model not found"):
                await OllamaProvider("llama3").generate("s", [], {})
