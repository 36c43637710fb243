"""
Retry Controller for the story pipeline.

- Decides what to persist after a generation stage fails
- Automatic retry up to 3 attempts per story
- A single attempt counter spans both generation stages

What RetryController MUST NOT do:
- Call generation collaborators
- Write to the store (the driver persists what it returns)
"""

import logging
from typing import Any

from .entities import Story, StoryState


logger = logging.getLogger(__name__)


# Default retry configuration
DEFAULT_MAX_ATTEMPTS = 3


class RetryController:
    """
    Turns a stage failure into the partial update to persist.

    Retry chain for one story (counter shared across stages):
        attempt 1 fails -> {attempt: 2}
        attempt 2 fails -> {attempt: 3}
        attempt 3 fails -> {state: failed}   <- ceiling reached

    State is held constant while attempt increments, so the next pass of
    the pipeline loop retries the same stage.
    """

    def __init__(self, max_attempts: int = DEFAULT_MAX_ATTEMPTS):
        """
        Initialize RetryController.

        Args:
            max_attempts: Attempts allowed before the story is marked failed
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts

    def is_max_attempts_reached(self, story: Story) -> bool:
        """Check if the story has used up its attempts."""
        return story.attempt >= self.max_attempts

    def on_stage_failed(self, story: Story, error: Exception) -> dict[str, Any]:
        """
        Handle a failed generation stage.

        Args:
            story: The story as it was read before the stage ran
            error: The collaborator exception

        Returns:
            Fields to persist for this failure
        """
        if self.is_max_attempts_reached(story):
            logger.error(
                f"[RetryController] Error processing story {story.id}, giving up: "
                f"state={story.state.value} error={error}"
            )
            return {"state": StoryState.FAILED}

        logger.warning(
            f"[RetryController] Error processing story {story.id}, retrying: "
            f"state={story.state.value} attempt={story.attempt}/{self.max_attempts} "
            f"error={error}"
        )
        return {"attempt": story.attempt + 1}
