"""
Story request and response schemas.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from bedtime.media.storage import FileStorage
from bedtime.pipeline.entities import Story


class StoryCreateRequest(BaseModel):
    """Request to create a story."""

    prompt: str = Field(
        min_length=1,
        max_length=2000,
        description="What the story should be about",
        json_schema_extra={"examples": ["A sleepy dragon who is afraid of the dark"]},
    )
    user_id: Optional[str] = Field(default=None, description="Owner of the story")
    parent_story_id: Optional[str] = Field(
        default=None,
        description="Story to remix. Its text is given to the model as an example.",
    )
    is_public: bool = Field(default=False, description="Visible to other users")


class DurationUpdateRequest(BaseModel):
    """Playback duration measured by a client."""

    duration: float = Field(gt=0, description="Audio duration in seconds")


class ImageInfo(BaseModel):
    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None


class StoryResponse(BaseModel):
    """A story as returned by the API."""

    id: str
    prompt: str
    state: str
    attempt: int
    parent_story_id: Optional[str] = None
    user_id: Optional[str] = None
    is_public: bool
    is_daily_story: bool
    title: Optional[str] = None
    summary: Optional[str] = None
    text: Optional[str] = None
    image: Optional[ImageInfo] = None
    audio_url: Optional[str] = None
    duration: Optional[float] = None
    completed_at: Optional[str] = None
    created_at: str

    @classmethod
    def from_story(cls, story: Story, storage: FileStorage) -> "StoryResponse":
        data = story.to_dict()
        image = None
        if story.image:
            image = ImageInfo(
                url=storage.public_url(story.image.get("path")),
                width=story.image.get("width"),
                height=story.image.get("height"),
                format=story.image.get("format"),
            )
        return cls(
            id=data["id"],
            prompt=data["prompt"],
            state=data["state"],
            attempt=data["attempt"],
            parent_story_id=data["parent_story_id"],
            user_id=data["user_id"],
            is_public=data["is_public"],
            is_daily_story=data["is_daily_story"],
            title=data["title"],
            summary=data["summary"],
            text=data["text"],
            image=image,
            audio_url=storage.public_url(story.audio),
            duration=data["duration"],
            completed_at=data["completed_at"],
            created_at=data["created_at"],
        )


class StoryListResponse(BaseModel):
    stories: List[StoryResponse]
    count: int


class RelatedStoriesResponse(BaseModel):
    """
    A story and its related stories in rank order.

    A null entry marks a related id that no longer resolves.
    """

    story: StoryResponse
    related_stories: List[Optional[StoryResponse]] = Field(serialization_alias="relatedStories")
