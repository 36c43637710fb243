"""
Tests for story embedders with mocked providers.
"""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from bedtime.pipeline.errors import GenerationTransportError, MissingInputError
from bedtime.similarity.embedder import (
    OllamaEmbedder,
    OpenAIEmbedder,
    create_story_text_for_embedding,
    get_embedder,
)


def _embedding_response(*vectors):
    # Returned out of order to check index-based ordering
    items = [SimpleNamespace(index=i, embedding=v) for i, v in enumerate(vectors)]
    return SimpleNamespace(data=list(reversed(items)))


class TestStoryText:

    def test_uses_story_text(self, story_factory):
        story = story_factory(text="  Once upon a time.  ")
        assert create_story_text_for_embedding(story) == "Once upon a time."

    def test_truncates_long_text(self, story_factory):
        story = story_factory(text="z" * 100)
        assert create_story_text_for_embedding(story, max_chars=10) == "z" * 10

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_missing_text_raises(self, story_factory, text):
        with pytest.raises(MissingInputError):
            create_story_text_for_embedding(story_factory(text=text))


class TestOpenAIEmbedder:

    @pytest.mark.asyncio
    async def test_embed_requests_dimensions(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(return_value=_embedding_response([0.1, 0.2]))

        with patch("bedtime.similarity.embedder.get_openai_client", return_value=client):
            vector = await OpenAIEmbedder("text-embedding-3-small", dimensions=512).embed("hello")

        assert vector == [0.1, 0.2]
        kwargs = client.embeddings.create.call_args.kwargs
        assert kwargs["model"] == "text-embedding-3-small"
        assert kwargs["dimensions"] == 512
        assert kwargs["input"] == ["hello"]

    @pytest.mark.asyncio
    async def test_batch_preserves_input_order(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            return_value=_embedding_response([1.0, 0.0], [0.0, 1.0])
        )

        with patch("bedtime.similarity.embedder.get_openai_client", return_value=client):
            vectors = await OpenAIEmbedder().embed_batch(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]

    @pytest.mark.asyncio
    async def test_api_error_becomes_transport_error(self):
        client = MagicMock()
        client.embeddings.create = AsyncMock(
            side_effect=openai.APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))
        )

        with patch("bedtime.similarity.embedder.get_openai_client", return_value=client):
            with pytest.raises(GenerationTransportError):
                await OpenAIEmbedder().embed("hello")


class TestOllamaEmbedder:

    @staticmethod
    def _client_factory(handler):
        real_client = httpx.AsyncClient

        def factory(*args, **kwargs):
            return real_client(*args, transport=httpx.MockTransport(handler), **kwargs)

        return factory

    @pytest.mark.asyncio
    async def test_embed(self):
        def handler(request):
            body = json.loads(request.content)
            assert body["model"] == "nomic-embed-text"
            assert body["input"] == ["hello"]
            return httpx.Response(200, json={"embeddings": [[0.5, 0.5]]})

        with patch(
            "bedtime.similarity.embedder.httpx.AsyncClient",
            side_effect=self._client_factory(handler),
        ):
            vector = await OllamaEmbedder(base_url="http://ollama:11434").embed("hello")

        assert vector == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_legacy_single_embedding_field(self):
        def handler(request):
            return httpx.Response(200, json={"embedding": [0.1, 0.9]})

        with patch(
            "bedtime.similarity.embedder.httpx.AsyncClient",
            side_effect=self._client_factory(handler),
        ):
            assert await OllamaEmbedder().embed("hello") == [0.1, 0.9]

    @pytest.mark.asyncio
    async def test_empty_response_raises(self):
        def handler(request):
            return httpx.Response(200, json={})

        with patch(
            "bedtime.similarity.embedder.httpx.AsyncClient",
            side_effect=self._client_factory(handler),
        ):
            with pytest.raises(GenerationTransportError):
                await OllamaEmbedder().embed("hello")

    @pytest.mark.asyncio
    async def test_http_error_raises(self):
        def handler(request):
            return httpx.Response(503)

        with patch(
            "bedtime.similarity.embedder.httpx.AsyncClient",
            side_effect=self._client_factory(handler),
        ):
            with pytest.raises(GenerationTransportError):
                await OllamaEmbedder().embed("hello")


class TestGetEmbedder:

    def test_default_is_openai(self, monkeypatch):
        monkeypatch.delenv("EMBED_PROVIDER", raising=False)
        monkeypatch.delenv("EMBED_DIMENSIONS", raising=False)
        embedder = get_embedder()
        assert isinstance(embedder, OpenAIEmbedder)
        assert embedder.dimensions == 512

    def test_ollama_selected(self, monkeypatch):
        monkeypatch.setenv("EMBED_PROVIDER", "ollama")
        monkeypatch.delenv("EMBED_MODEL", raising=False)
        embedder = get_embedder()
        assert isinstance(embedder, OllamaEmbedder)
        assert embedder.model == "nomic-embed-text"
