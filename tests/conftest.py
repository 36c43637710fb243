"""
Pytest configuration and shared fixtures.

Fakes stand in for every network collaborator:
- FakeBackend: text/image/audio generation with scripted failures
- FakeEmbedder: deterministic vectors keyed by text
"""

import asyncio
import os
from datetime import datetime
from typing import Dict, List, Optional, Type

import pytest

from bedtime.pipeline.backend import GenerationBackend
from bedtime.pipeline.entities import Story, StoryState
from bedtime.pipeline.errors import (
    GenerationError,
    GenerationTransportError,
    MissingInputError,
)
from bedtime.pipeline.persistence import StoryStore
from bedtime.similarity.embedder import Embedder
from bedtime.similarity.index import StoryVectorIndex
from bedtime.story.generator import StoryOutput


FIXED_DATETIME = datetime(2026, 1, 1, 0, 0, 0)


@pytest.fixture(autouse=True, scope="function")
def reset_auth_env():
    """Run every test with API auth disabled unless it opts in."""
    original_auth_enabled = os.environ.get("API_AUTH_ENABLED")
    original_api_key = os.environ.get("API_KEY")

    os.environ["API_AUTH_ENABLED"] = "false"

    yield

    if original_auth_enabled is not None:
        os.environ["API_AUTH_ENABLED"] = original_auth_enabled
    elif "API_AUTH_ENABLED" in os.environ:
        del os.environ["API_AUTH_ENABLED"]

    if original_api_key is not None:
        os.environ["API_KEY"] = original_api_key
    elif "API_KEY" in os.environ:
        del os.environ["API_KEY"]


class MockClock:
    """Clock that only moves when told to."""

    def __init__(self, start_time: datetime = FIXED_DATETIME):
        self._current = start_time

    def now(self) -> datetime:
        return self._current

    def __call__(self) -> datetime:
        return self._current


class FakeBackend(GenerationBackend):
    """
    Scriptable generation backend.

    Failure scripts are lists of booleans consumed per call: True means
    that call raises. Text failures raise story_failure_kind, media
    failures raise GenerationTransportError.
    """

    def __init__(
        self,
        story_failures: Optional[List[bool]] = None,
        image_failures: Optional[List[bool]] = None,
        audio_failures: Optional[List[bool]] = None,
        story_failure_kind: Type[GenerationError] = GenerationTransportError,
    ):
        self.story_failure_kind = story_failure_kind
        self.story_failures = list(story_failures or [])
        self.image_failures = list(image_failures or [])
        self.audio_failures = list(audio_failures or [])
        self.story_calls: List[dict] = []
        self.image_calls: List[str] = []
        self.audio_calls: List[str] = []

    @staticmethod
    def _should_fail(script: List[bool]) -> bool:
        return script.pop(0) if script else False

    async def generate_story(self, prompt, ancestor_context, seed, user_id=None) -> StoryOutput:
        self.story_calls.append({
            "prompt": prompt,
            "ancestor_context": ancestor_context,
            "seed": seed,
            "user_id": user_id,
        })
        await asyncio.sleep(0)
        if self._should_fail(self.story_failures):
            raise self.story_failure_kind("text provider unavailable")
        return StoryOutput(
            title=f"Tale of {prompt}",
            story=f"Once upon a time, {prompt}. The end.",
            summary=f"A story about {prompt}",
            image_prompt=f"An illustration of {prompt}",
        )

    async def generate_image(self, story: Story) -> dict:
        self.image_calls.append(story.id)
        await asyncio.sleep(0)
        if not story.image_prompt:
            raise MissingInputError("story does not yet have an image prompt")
        if self._should_fail(self.image_failures):
            raise GenerationTransportError("image provider unavailable")
        return {"path": f"images/{story.id}-cover.png", "width": 1792, "height": 1024, "format": "png"}

    async def generate_audio(self, story: Story) -> str:
        self.audio_calls.append(story.id)
        await asyncio.sleep(0)
        if not story.text:
            raise MissingInputError("story does not yet have generated text")
        if self._should_fail(self.audio_failures):
            raise GenerationTransportError("tts provider unavailable")
        return f"audio/{story.id}.mp3"


class FakeEmbedder(Embedder):
    """
    Embedder returning fixed vectors.

    Texts registered in `vectors` get that vector; anything else gets a
    vector orthogonal to the registered axes.
    """

    model = "fake-embed"

    def __init__(self, vectors: Optional[Dict[str, List[float]]] = None, dimension: int = 4):
        self.vectors = dict(vectors or {})
        self.dimension = dimension
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.vectors:
            return list(self.vectors[text])
        fallback = [0.0] * self.dimension
        fallback[-1] = 1.0
        return fallback


@pytest.fixture
def store(tmp_path):
    """Empty story store in a temporary SQLite file."""
    return StoryStore(tmp_path / "stories.db")


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def vector_index():
    return StoryVectorIndex("bedtime-ai-test")


@pytest.fixture
def mock_clock():
    return MockClock()


def make_story(
    prompt: str = "a sleepy dragon",
    state: StoryState = StoryState.READY,
    created_at: Optional[datetime] = None,
    **fields,
) -> Story:
    """Build a Story with explicit fields; ready by default so no hook acts on it."""
    story = Story.create(prompt)
    story.state = state
    if created_at is not None:
        story.created_at = created_at
        story.updated_at = created_at
    for name, value in fields.items():
        setattr(story, name, value)
    return story


@pytest.fixture
def story_factory():
    """Factory fixture for Story records (see make_story)."""
    return make_story


@pytest.fixture
def backend_factory():
    """Factory fixture for FakeBackend with failure scripts."""
    return FakeBackend


@pytest.fixture
def embedder_factory():
    """Factory fixture for FakeEmbedder with registered vectors."""
    return FakeEmbedder
