"""
API Schemas package.

Pydantic models for request/response validation.
"""

from .story import (
    StoryCreateRequest,
    DurationUpdateRequest,
    ImageInfo,
    StoryResponse,
    StoryListResponse,
    RelatedStoriesResponse,
)

__all__ = [
    "StoryCreateRequest",
    "DurationUpdateRequest",
    "ImageInfo",
    "StoryResponse",
    "StoryListResponse",
    "RelatedStoriesResponse",
]
