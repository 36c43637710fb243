"""
Story router.

Endpoints:
- POST /stories - Create a story; generation runs in the background
- GET /stories - List ready stories visible to a user
- GET /stories/{story_id} - Story detail
- PATCH /stories/{story_id}/duration - Report playback duration
- GET /stories/{story_id}/related - Story plus related stories
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from bedtime.pipeline.errors import (
    GenerationError,
    InvalidOperationError,
    StoryNotFoundError,
)
from bedtime.pipeline.service import StoryService
from ..dependencies.service import get_service
from ..schemas.story import (
    DurationUpdateRequest,
    RelatedStoriesResponse,
    StoryCreateRequest,
    StoryListResponse,
    StoryResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _not_found(story_id: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=f"Story not found: {story_id}",
    )


@router.post("", response_model=StoryResponse, status_code=status.HTTP_201_CREATED)
async def create_story(
    request: StoryCreateRequest,
    service: StoryService = Depends(get_service),
):
    """
    Create a story.

    The pipeline is started by the store's create hook and keeps running
    after the response is sent. Poll GET /stories/{id} for its state.
    """
    try:
        story = service.create_story(
            request.prompt,
            user_id=request.user_id,
            parent_story_id=request.parent_story_id,
            is_public=request.is_public,
        )
    except StoryNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Parent story not found: {e.story_id}",
        )
    except InvalidOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return StoryResponse.from_story(story, service.storage)


@router.get("", response_model=StoryListResponse)
async def list_stories(
    user_id: Optional[str] = Query(default=None, description="Include this user's private stories"),
    limit: int = Query(default=50, ge=1, le=500, description="Maximum stories to return"),
    service: StoryService = Depends(get_service),
):
    """List ready stories, newest first."""
    stories = service.list_stories(user_id=user_id, limit=limit)
    return StoryListResponse(
        stories=[StoryResponse.from_story(s, service.storage) for s in stories],
        count=len(stories),
    )


@router.get("/{story_id}", response_model=StoryResponse)
async def get_story(story_id: str, service: StoryService = Depends(get_service)):
    """Get one story, including its pipeline state."""
    try:
        story = service.get_story(story_id)
    except StoryNotFoundError:
        raise _not_found(story_id)
    return StoryResponse.from_story(story, service.storage)


@router.patch("/{story_id}/duration", response_model=StoryResponse)
async def update_duration(
    story_id: str,
    request: DurationUpdateRequest,
    service: StoryService = Depends(get_service),
):
    """Record the audio duration measured by the client."""
    try:
        story = service.report_duration(story_id, request.duration)
    except StoryNotFoundError:
        raise _not_found(story_id)
    return StoryResponse.from_story(story, service.storage)


@router.get("/{story_id}/related", response_model=RelatedStoriesResponse)
async def related_stories(story_id: str, service: StoryService = Depends(get_service)):
    """
    Get a story with its most similar stories.

    Returns 404 {"error": "not found"} when the story doesn't exist.
    """
    try:
        story, related = await service.related(story_id)
    except StoryNotFoundError:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "not found"})
    except GenerationError as e:
        logger.error(f"[StoryAPI] Related lookup failed for {story_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Related story lookup failed",
        )

    return RelatedStoriesResponse(
        story=StoryResponse.from_story(story, service.storage),
        related_stories=[
            StoryResponse.from_story(s, service.storage) if s is not None else None
            for s in related
        ],
    )
