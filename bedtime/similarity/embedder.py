"""
Story text embedding generation.

Two backends:
- OpenAIEmbedder: OpenAI embeddings API (default)
- OllamaEmbedder: local Ollama /api/embed over httpx

Selected by EMBED_PROVIDER. Both raise on failure instead of returning
None, so callers see one error path.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

import httpx
import openai

from bedtime.infra.clients import get_openai_client
from bedtime.infra.config import get_embedding_settings
from bedtime.pipeline.entities import Story
from bedtime.pipeline.errors import GenerationTransportError, MissingInputError

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_BASE_URL = "http://localhost:11434"
OLLAMA_EMBED_ENDPOINT = "/api/embed"
DEFAULT_OLLAMA_EMBED_MODEL = "nomic-embed-text"

# Stories are a few thousand characters; this bounds request size
MAX_EMBED_CHARS = 8000


def create_story_text_for_embedding(story: Story, max_chars: int = MAX_EMBED_CHARS) -> str:
    """
    Text used to embed a story.

    Raises:
        MissingInputError: If the story has no generated text
    """
    if not story.text or not story.text.strip():
        raise MissingInputError(f"story {story.id} has no text to embed")
    return story.text.strip()[:max_chars]


class Embedder(ABC):
    """Abstract base class for embedding backends."""

    model: str

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text."""
        ...

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts. Backends override when the API batches."""
        return [await self.embed(text) for text in texts]


class OpenAIEmbedder(Embedder):
    """Embedder using the OpenAI embeddings API."""

    def __init__(self, model: str = "text-embedding-3-small", dimensions: Optional[int] = 512):
        self.model = model
        self.dimensions = dimensions

    async def _create(self, inputs: List[str]) -> List[List[float]]:
        kwargs = {"model": self.model, "input": inputs}
        if self.dimensions:
            kwargs["dimensions"] = self.dimensions

        client = get_openai_client()
        try:
            response = await client.embeddings.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"[Embedder] OpenAI embedding failed: {e}")
            raise GenerationTransportError(f"embedding failed: {e}") from e

        ordered = sorted(response.data, key=lambda item: item.index)
        if len(ordered) != len(inputs):
            raise GenerationTransportError(
                f"embedding returned {len(ordered)} vectors for {len(inputs)} inputs"
            )
        return [list(item.embedding) for item in ordered]

    async def embed(self, text: str) -> List[float]:
        vectors = await self._create([text])
        logger.debug(f"[Embedder] Generated embedding: dim={len(vectors[0])}")
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return await self._create(list(texts))


class OllamaEmbedder(Embedder):
    """
    Embedder using Ollama local models.

    Ollama returns vectors in 'embeddings' (array of arrays); older
    servers return a single 'embedding'.
    """

    def __init__(
        self,
        model: str = DEFAULT_OLLAMA_EMBED_MODEL,
        base_url: Optional[str] = None,
        timeout: int = 120,
    ):
        self.model = model
        self.base_url = (base_url or os.getenv("OLLAMA_BASE_URL", DEFAULT_OLLAMA_BASE_URL)).rstrip("/")
        self.timeout = timeout

    async def _post(self, inputs: List[str]) -> List[List[float]]:
        url = f"{self.base_url}{OLLAMA_EMBED_ENDPOINT}"
        payload = {"model": self.model, "input": inputs}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                result = response.json()
        except httpx.HTTPError as e:
            logger.error(f"[Embedder] Ollama request failed: {e}")
            raise GenerationTransportError(f"embedding failed: {e}") from e
        except ValueError as e:
            raise GenerationTransportError(f"invalid embedding response: {e}") from e

        embeddings = result.get("embeddings") or []
        if not embeddings and result.get("embedding"):
            embeddings = [result["embedding"]]

        if len(embeddings) != len(inputs):
            logger.error(f"[Embedder] No embedding in response: {result}")
            raise GenerationTransportError("no embedding in Ollama response")
        return embeddings

    async def embed(self, text: str) -> List[float]:
        vectors = await self._post([text])
        logger.debug(f"[Embedder] Generated embedding: dim={len(vectors[0])}")
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        return await self._post(list(texts))


def get_embedder() -> Embedder:
    """Build the embedder selected by EMBED_PROVIDER."""
    settings = get_embedding_settings()
    if settings["provider"] == "ollama":
        model = os.getenv("EMBED_MODEL", DEFAULT_OLLAMA_EMBED_MODEL)
        return OllamaEmbedder(model=model)
    if settings["provider"] != "openai":
        logger.warning(f"[Embedder] Unknown EMBED_PROVIDER '{settings['provider']}', using openai")
    return OpenAIEmbedder(model=settings["model"], dimensions=settings["dimensions"])
