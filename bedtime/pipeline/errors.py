"""
Pipeline-specific exceptions.

Two families:
- Store and state errors (not found, invalid transition, version conflict)
- Generation errors raised by collaborators and caught by the retry policy
"""

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors."""
    pass


class InvalidOperationError(PipelineError):
    """
    Raised when an operation violates pipeline invariants.

    Examples:
    - Asking for the next state of a terminal story
    - Updating a field that is not writable
    """
    pass


class StoryNotFoundError(PipelineError):
    """Raised when a requested story does not exist."""

    def __init__(self, story_id: str):
        self.story_id = story_id
        super().__init__(f"Story not found: {story_id}")


class ConcurrencyViolationError(PipelineError):
    """
    Raised when a concurrent modification is detected.

    Pipeline writes are guarded on the fields the pipeline owns (state
    and attempt); a guarded write is rejected if those moved on after
    the record was read. Version guards compare the whole record.
    """

    def __init__(self, story_id: str, expected_version: Any, actual_version: Any):
        self.story_id = story_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Concurrency violation for story {story_id}: "
            f"expected {expected_version}, got {actual_version}"
        )


class GenerationError(PipelineError):
    """
    Base class for collaborator failures.

    Anything derived from this is retried by the RetryController.
    """
    pass


class GenerationTransportError(GenerationError):
    """Network or provider failure while calling a generation service."""
    pass


class StoryOutputParseError(GenerationError):
    """
    Structured model output could not be decoded.

    Kept distinct from transport failures so malformed replies can be
    told apart from network problems in logs and tests.
    """

    def __init__(self, message: str, raw_output: str | None = None):
        self.raw_output = raw_output
        super().__init__(message)


class MissingInputError(GenerationError):
    """A collaborator precondition is missing (e.g. no text to narrate)."""
    pass
