"""
Generation backend for the story pipeline.

Bundles the three collaborators a story needs:
- generate_story: text, title, summary and image prompt
- generate_image: cover art stored as a file
- generate_audio: narration stored as a file

Each method raises on failure (a GenerationError subclass) and never
returns a sentinel, so the driver has a single retry chokepoint.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from .entities import Story
from bedtime.media.audio import generate_audio
from bedtime.media.image import generate_image
from bedtime.media.storage import FileStorage
from bedtime.story.generator import StoryOutput, generate_story
from bedtime.story.prompt_builder import AncestorContext


logger = logging.getLogger(__name__)


class GenerationBackend(ABC):
    """
    Abstract base class for generation collaborators.

    Tests substitute a fake; production uses LiveGenerationBackend.
    """

    @abstractmethod
    async def generate_story(
        self,
        prompt: str,
        ancestor_context: Optional[AncestorContext],
        seed: int,
        user_id: Optional[str] = None,
    ) -> StoryOutput:
        """
        Generate story text and its companions.

        Args:
            prompt: The user's request
            ancestor_context: Parent story used as a few-shot example (remix)
            seed: Determinism seed
            user_id: Story owner, forwarded to providers that accept it

        Returns:
            StoryOutput with title, story, summary and image_prompt
        """
        ...

    @abstractmethod
    async def generate_image(self, story: Story) -> dict:
        """
        Generate and store the cover image.

        Returns:
            Dict with path plus image metadata (width, height, format)
        """
        ...

    @abstractmethod
    async def generate_audio(self, story: Story) -> str:
        """
        Generate and store the narration.

        Returns:
            Relative path of the stored audio file
        """
        ...


class LiveGenerationBackend(GenerationBackend):
    """Backend that calls the configured model providers."""

    def __init__(
        self,
        storage: FileStorage,
        model_spec: Optional[str] = None,
    ):
        """
        Initialize the live backend.

        Args:
            storage: Where generated media is written
            model_spec: Text model (e.g. "gpt-4o", "ollama:llama3", "claude-...")
        """
        self.storage = storage
        self.model_spec = model_spec

    async def generate_story(
        self,
        prompt: str,
        ancestor_context: Optional[AncestorContext],
        seed: int,
        user_id: Optional[str] = None,
    ) -> StoryOutput:
        return await generate_story(
            prompt,
            ancestor_context=ancestor_context,
            seed=seed,
            model_spec=self.model_spec,
            config={"user": user_id} if user_id else None,
        )

    async def generate_image(self, story: Story) -> dict:
        return await generate_image(story, self.storage)

    async def generate_audio(self, story: Story) -> str:
        return await generate_audio(story, self.storage)
