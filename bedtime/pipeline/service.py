"""
Story service: the wired-up application core.

Owns the store, the pipeline and the similarity index, and keeps the
index in sync with story text. The API and CLI both go through here.
"""

import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from .backend import GenerationBackend, LiveGenerationBackend
from .driver import StoryPipeline
from .entities import Story, StoryState
from .errors import InvalidOperationError, MissingInputError, StoryNotFoundError
from .persistence import StoryStore
from .retry_controller import RetryController
from bedtime.infra.config import (
    ensure_data_directories,
    get_daily_story_user_id,
    get_max_attempts,
    get_story_db_path,
    get_story_model,
    is_embedding_sync_enabled,
)
from bedtime.media.storage import FileStorage
from bedtime.similarity.embedder import Embedder, get_embedder
from bedtime.similarity.index import StoryVectorIndex, get_story_index
from bedtime.similarity.related import (
    batch_embeddings_for_stories,
    find_similar_stories,
    update_embedding_for_story,
)
from bedtime.story.prompt_builder import DAILY_HISTORY_COUNT, build_daily_prompt

logger = logging.getLogger(__name__)

# Fields that change what the index holds for a story
_INDEXED_FIELDS = frozenset({"text", "is_public"})


class StoryService:
    """Application facade over the pipeline and similarity lookup."""

    def __init__(
        self,
        store: StoryStore,
        backend: GenerationBackend,
        index: StoryVectorIndex,
        embedder: Embedder,
        storage: Optional[FileStorage] = None,
        max_attempts: Optional[int] = None,
        sync_embeddings: bool = True,
    ):
        self.store = store
        self.index = index
        self.embedder = embedder
        self.storage = storage or FileStorage()
        self.pipeline = StoryPipeline(
            store,
            backend,
            retry_controller=RetryController(max_attempts or get_max_attempts()),
        )
        self.pipeline.attach()

        self._sync_tasks: set[asyncio.Task] = set()
        if sync_embeddings:
            store.register_after_update(self._on_story_updated)

    @classmethod
    def from_environment(
        cls,
        db_path: Optional[Path] = None,
        model_spec: Optional[str] = None,
    ) -> "StoryService":
        """Build a service from environment configuration."""
        ensure_data_directories()
        storage = FileStorage()
        return cls(
            store=StoryStore(db_path or get_story_db_path()),
            backend=LiveGenerationBackend(storage, model_spec=model_spec or get_story_model()),
            index=get_story_index(),
            embedder=get_embedder(),
            storage=storage,
            sync_embeddings=is_embedding_sync_enabled(),
        )

    # =========================================================================
    # Stories
    # =========================================================================

    def create_story(
        self,
        prompt: str,
        user_id: Optional[str] = None,
        parent_story_id: Optional[str] = None,
        is_public: bool = False,
        is_daily_story: bool = False,
    ) -> Story:
        """
        Create a story; its pipeline starts from the store hooks.

        Raises:
            InvalidOperationError: If the prompt is blank
            StoryNotFoundError: If parent_story_id doesn't exist
        """
        if not prompt or not prompt.strip():
            raise InvalidOperationError("prompt must not be empty")
        if parent_story_id is not None and self.store.get(parent_story_id) is None:
            raise StoryNotFoundError(parent_story_id)

        story = Story.create(
            prompt.strip(),
            user_id=user_id,
            parent_story_id=parent_story_id,
            is_public=is_public,
            is_daily_story=is_daily_story,
        )
        self.store.create(story)
        logger.info(f"[StoryService] Created story {story.id} (remix of {parent_story_id})")
        return self.store.get(story.id)

    def create_daily_story(self, user_id: Optional[str] = None) -> Story:
        """
        Create the daily public story.

        The prompt lists the most recent daily stories so the model avoids
        their characters, themes and storylines.

        Args:
            user_id: Owner; defaults to DAILY_STORY_USER_ID
        """
        recent = self.store.find(
            {"is_daily_story": True, "is_public": True},
            sort="-created_at",
            limit=DAILY_HISTORY_COUNT,
        )
        prompt = build_daily_prompt([s.text for s in recent if s.text])
        logger.info(f"[StoryService] Creating daily story ({len(recent)} recent stories in prompt)")
        return self.create_story(
            prompt,
            user_id=user_id or get_daily_story_user_id(),
            is_public=True,
            is_daily_story=True,
        )

    def get_story(self, story_id: str) -> Story:
        story = self.store.get(story_id)
        if story is None:
            raise StoryNotFoundError(story_id)
        return story

    def list_stories(self, user_id: Optional[str] = None, limit: int = 50) -> List[Story]:
        """Ready stories visible to user_id, newest first."""
        if user_id is None:
            return self.store.find(
                {"state": StoryState.READY, "is_public": True}, limit=limit
            )
        return self.store.find(
            {"state": StoryState.READY}, limit=limit, visible_to=user_id
        )

    def report_duration(self, story_id: str, duration: float) -> Story:
        """Record the playback duration a client measured."""
        if duration <= 0:
            raise InvalidOperationError("duration must be positive")
        return self.store.update(story_id, {"duration": duration})

    async def run_story(self, story_id: str) -> Story:
        """Drive a story to a terminal state in the current task."""
        return await self.pipeline.run(story_id)

    # =========================================================================
    # Similarity
    # =========================================================================

    async def related(self, story_id: str) -> Tuple[Story, List[Optional[Story]]]:
        """
        A story and the stories most similar to it.

        Raises:
            StoryNotFoundError: If story_id doesn't exist
        """
        story = self.get_story(story_id)
        try:
            related = await find_similar_stories(story, self.store, self.index, self.embedder)
        except MissingInputError:
            logger.info(f"[StoryService] Story {story_id} has no text yet, no related stories")
            related = []
        return story, related

    async def reindex(self, batch_size: int = 64) -> int:
        """Re-embed every story that has text. Returns the number indexed."""
        stories = [s for s in self.store.find(sort="created_at") if s.text]
        total = 0
        for start in range(0, len(stories), batch_size):
            total += await batch_embeddings_for_stories(
                stories[start:start + batch_size], self.index, self.embedder, save=False
            )
        self.index.save()
        logger.info(f"[StoryService] Reindexed {total} stories into {self.index.namespace}")
        return total

    def _on_story_updated(self, story: Story, changed_fields: frozenset) -> None:
        if not (changed_fields & _INDEXED_FIELDS) or not story.text:
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[StoryService] No running loop, embedding for {story.id} skipped")
            return

        task = loop.create_task(self._sync_embedding(story), name=f"story-embed-{story.id}")
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)

    async def _sync_embedding(self, story: Story) -> None:
        try:
            await update_embedding_for_story(story, self.index, self.embedder)
        except Exception as e:
            logger.error(f"[StoryService] Embedding sync failed for story {story.id}: {e}")

    async def drain(self) -> None:
        """Wait for in-flight pipelines and embedding syncs."""
        await self.pipeline.drain()
        while self._sync_tasks:
            await asyncio.gather(*list(self._sync_tasks), return_exceptions=True)
