"""
Story domain entity.

A Story is the single persisted record the generation pipeline drives:
- Input: prompt, optional parent_story_id (remix)
- Derived content: title, summary, text, image_prompt, image, audio
- Control: state, attempt, completed_at

State values follow the pipeline order:
    created -> generating_story -> generating_media -> ready
with failed reachable from either generation stage.
"""

from dataclasses import dataclass, field, fields as dataclass_fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
import uuid


class StoryState(str, Enum):
    """
    Story lifecycle states.

    - CREATED: Record persisted, pipeline not started
    - GENERATING_STORY: Waiting on text generation
    - GENERATING_MEDIA: Waiting on image and audio generation
    - READY: All content generated (terminal)
    - FAILED: Retry ceiling reached (terminal)
    """

    CREATED = "created"
    GENERATING_STORY = "generating_story"
    GENERATING_MEDIA = "generating_media"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StoryState.READY, StoryState.FAILED)


# Stages that perform collaborator work
GENERATION_STAGES = (StoryState.GENERATING_STORY, StoryState.GENERATING_MEDIA)


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what SQLite stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_millis(value: datetime) -> int:
    """Milliseconds since the epoch for a naive UTC datetime."""
    epoch = datetime(1970, 1, 1)
    return int((value - epoch).total_seconds() * 1000)


@dataclass
class Story:
    """
    One generated bedtime tale and its lifecycle state.

    Mutability rules:
    - id, prompt, parent_story_id, user_id, created_at: Immutable
    - content fields: written by the pipeline only
    - duration: reported by clients after playback metadata loads
    - version: incremented by the store on every write
    """

    id: str
    prompt: str
    state: StoryState = StoryState.CREATED
    attempt: int = 1
    parent_story_id: Optional[str] = None
    user_id: Optional[str] = None
    is_public: bool = False
    is_daily_story: bool = False
    title: Optional[str] = None
    summary: Optional[str] = None
    text: Optional[str] = None
    image_prompt: Optional[str] = None
    image: Optional[dict] = None
    audio: Optional[str] = None
    duration: Optional[float] = None
    completed_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    version: int = 1

    @classmethod
    def create(
        cls,
        prompt: str,
        user_id: Optional[str] = None,
        parent_story_id: Optional[str] = None,
        is_public: bool = False,
        is_daily_story: bool = False,
    ) -> "Story":
        """Create a new Story with generated ID and CREATED state."""
        now = utcnow()
        return cls(
            id=generate_uuid(),
            prompt=prompt,
            user_id=user_id,
            parent_story_id=parent_story_id,
            is_public=is_public,
            is_daily_story=is_daily_story,
            created_at=now,
            updated_at=now,
        )

    def is_terminal(self) -> bool:
        """Check if story is in a terminal state."""
        return self.state.is_terminal

    @property
    def seed(self) -> int:
        """Determinism seed derived from this story's creation time."""
        return to_millis(self.created_at)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = {}
        for f in dataclass_fields(self):
            value = getattr(self, f.name)
            if isinstance(value, StoryState):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat() + "Z"
            data[f.name] = value
        return data


# Fields the pipeline and clients may write through a partial update
MUTABLE_FIELDS = frozenset({
    "state",
    "attempt",
    "title",
    "summary",
    "text",
    "image_prompt",
    "image",
    "audio",
    "duration",
    "completed_at",
    "is_public",
})
