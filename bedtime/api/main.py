"""
FastAPI application entry point.

Serves story creation, lookup and related-story queries. Generated media
is served from MEDIA_DIR under /media.

Authentication: when API_AUTH_ENABLED=true, every endpoint except
/health requires an X-API-Key header matching API_KEY.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import Depends, FastAPI
from fastapi.staticfiles import StaticFiles

from bedtime import __version__
from bedtime.infra.config import get_log_level, get_logs_dir, get_media_dir
from bedtime.infra.logging_config import setup_logging
from bedtime.pipeline.service import StoryService
from .dependencies.auth import verify_api_key
from .routers import stories

logger = logging.getLogger(__name__)

tags_metadata = [
    {
        "name": "stories",
        "description": "Create stories, follow their generation state and find related stories",
    },
]


def create_app(service: Optional[StoryService] = None) -> FastAPI:
    """
    Build the application.

    Args:
        service: Pre-built service (tests); otherwise one is built from
            the environment at startup
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.service is None:
            load_dotenv()
            setup_logging(log_level=get_log_level(), log_dir=str(get_logs_dir()))
            app.state.service = StoryService.from_environment()
            logger.info("[API] Story service started")

        yield

        active = app.state.service.pipeline.active_story_ids
        if active:
            logger.warning(f"[API] Shutting down with {len(active)} stories in flight: {active}")

    app = FastAPI(
        title="Bedtime Story API",
        lifespan=lifespan,
        description="""
## Bedtime Story API

Create illustrated, narrated bedtime stories from a prompt.

A new story moves through `created -> generating_story -> generating_media -> ready`
(or `failed` after three unsuccessful attempts). Poll `GET /stories/{id}` to follow it.

### Usage
```bash
uvicorn bedtime.api.main:app --host 127.0.0.1 --port 8000

curl -X POST http://localhost:8000/stories \\
  -H "Content-Type: application/json" \\
  -d '{"prompt": "A sleepy dragon who is afraid of the dark"}'
```
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_tags=tags_metadata,
    )
    app.state.service = service

    @app.get("/health")
    async def health_check():
        """Health check endpoint. Not authenticated."""
        return {"status": "ok", "version": __version__}

    app.include_router(
        stories.router,
        prefix="/stories",
        tags=["stories"],
        dependencies=[Depends(verify_api_key)],
    )

    app.mount(
        "/media",
        StaticFiles(directory=str(get_media_dir()), check_dir=False),
        name="media",
    )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8000)
