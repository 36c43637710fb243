r"""
Pipeline module - story lifecycle from request to playable story.

State flow:
    created -> generating_story -> generating_media -> ready
                      \_______________________\_______-> failed

The driver and service are imported from their modules directly
(bedtime.pipeline.driver, bedtime.pipeline.service) since they depend
on the generation packages.
"""

from .entities import (
    Story,
    StoryState,
    GENERATION_STAGES,
    MUTABLE_FIELDS,
    generate_uuid,
    to_millis,
    utcnow,
)

from .errors import (
    PipelineError,
    InvalidOperationError,
    StoryNotFoundError,
    ConcurrencyViolationError,
    GenerationError,
    GenerationTransportError,
    StoryOutputParseError,
    MissingInputError,
)

from .persistence import StoryStore
from .retry_controller import RetryController, DEFAULT_MAX_ATTEMPTS

__all__ = [
    # entities
    "Story",
    "StoryState",
    "GENERATION_STAGES",
    "MUTABLE_FIELDS",
    "generate_uuid",
    "to_millis",
    "utcnow",
    # errors
    "PipelineError",
    "InvalidOperationError",
    "StoryNotFoundError",
    "ConcurrencyViolationError",
    "GenerationError",
    "GenerationTransportError",
    "StoryOutputParseError",
    "MissingInputError",
    # persistence
    "StoryStore",
    # retry
    "RetryController",
    "DEFAULT_MAX_ATTEMPTS",
]
