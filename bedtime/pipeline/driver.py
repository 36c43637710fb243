"""
Story pipeline driver.

Moves a Story from creation to a terminal state:
    created -> generating_story -> generating_media -> ready

- on_created: the store's after_create hook, advances out of CREATED
- on_updated: the store's after_update hook, starts the per-story runner
- run: explicit loop; re-read the story, perform one step, repeat
- step: exactly one persisted write for a non-terminal story

What the driver MUST NOT do:
- Decide retry policy (RetryController's responsibility)
- Talk to providers directly (GenerationBackend's responsibility)
"""

import asyncio
import logging
import weakref
from typing import Any, Callable, Optional

from .backend import GenerationBackend
from .entities import Story, StoryState, utcnow
from .errors import (
    ConcurrencyViolationError,
    InvalidOperationError,
    StoryNotFoundError,
)
from .persistence import StoryStore
from .retry_controller import RetryController
from bedtime.story.ancestry import resolve_remix_context


logger = logging.getLogger(__name__)


_TRANSITIONS = {
    StoryState.CREATED: StoryState.GENERATING_STORY,
    StoryState.GENERATING_STORY: StoryState.GENERATING_MEDIA,
    StoryState.GENERATING_MEDIA: StoryState.READY,
}


def next_state(current: StoryState) -> StoryState:
    """
    Return the state that follows current.

    Raises:
        InvalidOperationError: If current is terminal
    """
    current = StoryState(current)
    if current.is_terminal:
        raise InvalidOperationError(
            f"Story in terminal state {current.value} has no next state"
        )
    return _TRANSITIONS[current]


def _owned_fields(story: Story) -> dict:
    """Guard for pipeline writes: the fields only the pipeline changes."""
    return {"state": story.state, "attempt": story.attempt}


class StoryPipeline:
    """
    Drives stories through generation with bounded retry.

    Ordering guarantees:
    - One asyncio.Lock per story id, so at most one step is in flight
    - One runner task per story id; hook re-entry while a runner is
      active is absorbed by that runner's next read
    - Every write is guarded on the state and attempt it read, so
      writes from outside the pipeline (duration, visibility) never
      invalidate a stage result
    """

    def __init__(
        self,
        store: StoryStore,
        backend: GenerationBackend,
        retry_controller: Optional[RetryController] = None,
        clock: Callable[[], Any] = utcnow,
    ):
        """
        Initialize StoryPipeline.

        Args:
            store: StoryStore holding the records
            backend: Text, image and audio collaborators
            retry_controller: Retry policy (default: 3 attempts)
            clock: Source of completed_at timestamps
        """
        self.store = store
        self.backend = backend
        self.retry_controller = retry_controller or RetryController()
        self._clock = clock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )
        self._runners: dict[str, asyncio.Task] = {}

    def attach(self) -> None:
        """Register this pipeline's lifecycle hooks on the store."""
        self.store.register_after_create(self.on_created)
        self.store.register_after_update(self.on_updated)

    # =========================================================================
    # Lifecycle Hooks
    # =========================================================================

    def on_created(self, story: Story) -> None:
        """Advance a freshly created story; the write fires on_updated."""
        if story.is_terminal():
            return
        self.store.update(
            story.id,
            {"state": next_state(story.state)},
            expected=_owned_fields(story),
        )

    def on_updated(self, story: Story, changed_fields: frozenset) -> None:
        """Start the runner for a non-terminal story."""
        if story.is_terminal():
            return
        self.schedule(story.id)

    # =========================================================================
    # Runner Management
    # =========================================================================

    def schedule(self, story_id: str) -> Optional[asyncio.Task]:
        """
        Ensure a runner task exists for story_id.

        Returns the active task, or None when called outside an event loop
        (callers in synchronous code drive the story with run() instead).
        """
        runner = self._runners.get(story_id)
        if runner is not None and not runner.done():
            return runner

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(
                f"[StoryPipeline] No running loop, story {story_id} left for run()"
            )
            return None

        task = loop.create_task(self.run(story_id), name=f"story-pipeline-{story_id}")
        self._runners[story_id] = task
        task.add_done_callback(lambda t: self._on_runner_done(story_id, t))
        return task

    def _on_runner_done(self, story_id: str, task: asyncio.Task) -> None:
        if self._runners.get(story_id) is task:
            del self._runners[story_id]
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(
                f"[StoryPipeline] Runner for story {story_id} crashed: {error}",
                exc_info=error,
            )

    @property
    def active_story_ids(self) -> list[str]:
        """Story ids with a runner in flight."""
        return [sid for sid, task in self._runners.items() if not task.done()]

    async def drain(self) -> None:
        """Wait until no runner is in flight."""
        while self._runners:
            await asyncio.gather(*list(self._runners.values()), return_exceptions=True)

    # =========================================================================
    # Execution
    # =========================================================================

    def _lock_for(self, story_id: str) -> asyncio.Lock:
        lock = self._locks.get(story_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[story_id] = lock
        return lock

    async def run(self, story_id: str) -> Story:
        """
        Drive a story until it reaches a terminal state.

        Each pass re-reads the persisted record so every step works from
        current state rather than a captured copy.

        Returns:
            The terminal Story

        Raises:
            StoryNotFoundError: If story_id doesn't exist
        """
        lock = self._lock_for(story_id)
        async with lock:
            while True:
                story = self.store.get(story_id)
                if story is None:
                    raise StoryNotFoundError(story_id)

                if story.is_terminal():
                    logger.info(
                        f"[StoryPipeline] Story {story_id} finished: "
                        f"state={story.state.value} attempt={story.attempt}"
                    )
                    return story

                try:
                    await self.step(story)
                except ConcurrencyViolationError as e:
                    logger.warning(f"[StoryPipeline] {e}; re-reading")

    async def step(self, story: Story) -> Story:
        """
        Perform the work for the story's current state and persist it.

        Generation failures are handed to the RetryController; the fields
        it returns are persisted instead of the stage result.

        Returns:
            The Story as persisted after this step
        """
        if story.is_terminal():
            raise InvalidOperationError(
                f"Story {story.id} is {story.state.value}; nothing to do"
            )

        logger.info(
            f"[StoryPipeline] Story {story.id}: {story.state.value} "
            f"(attempt {story.attempt}/{self.retry_controller.max_attempts})"
        )

        try:
            if story.state == StoryState.GENERATING_STORY:
                fields = await self._generate_story_fields(story)
            elif story.state == StoryState.GENERATING_MEDIA:
                fields = await self._generate_media_fields(story)
            else:
                fields = {"state": next_state(story.state)}
        except Exception as e:
            fields = self.retry_controller.on_stage_failed(story, e)

        return self.store.update(story.id, fields, expected=_owned_fields(story))

    async def _generate_story_fields(self, story: Story) -> dict[str, Any]:
        context, seed = resolve_remix_context(story, self.store)
        output = await self.backend.generate_story(
            story.prompt, context, seed, user_id=story.user_id
        )
        return {
            "text": output.story,
            "title": output.title,
            "image_prompt": output.image_prompt,
            "summary": output.summary,
            "state": next_state(story.state),
        }

    async def _generate_media_fields(self, story: Story) -> dict[str, Any]:
        # Both calls run to completion; either failure discards both results.
        image, audio = await asyncio.gather(
            self.backend.generate_image(story),
            self.backend.generate_audio(story),
            return_exceptions=True,
        )
        for result in (image, audio):
            if isinstance(result, BaseException):
                raise result

        return {
            "image": image,
            "audio": audio,
            "state": next_state(story.state),
            "completed_at": self._clock(),
        }
