"""
StoryService dependency.

The service is built once in the application lifespan and stored on
app.state; tests replace it through dependency_overrides.
"""

from fastapi import HTTPException, Request, status

from bedtime.pipeline.service import StoryService


def get_service(request: Request) -> StoryService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Story service not initialized",
        )
    return service
