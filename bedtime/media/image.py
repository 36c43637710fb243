"""
Cover image generation.

Generates an image from the story's image prompt, downloads it and
writes it to storage.
"""

import logging

import httpx
import openai

from bedtime.infra.clients import get_openai_client
from bedtime.infra.config import get_image_settings
from bedtime.pipeline.entities import Story
from bedtime.pipeline.errors import GenerationTransportError, MissingInputError
from .storage import FileStorage

logger = logging.getLogger(__name__)

IMAGE_STYLE_PREFIX = "In a vibrant, colorful, cinematic illustration style: "
IMAGE_FETCH_TIMEOUT_SECONDS = 60


async def fetch_image_bytes(url: str, timeout: float = IMAGE_FETCH_TIMEOUT_SECONDS) -> bytes:
    """
    Download a generated image.

    Raises:
        GenerationTransportError: On HTTP failure or empty body
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            response = await client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error(f"[ImageGenerator] Fetching image failed: {e}")
        raise GenerationTransportError(f"error fetching image: {e}") from e

    if not response.content:
        raise GenerationTransportError("error fetching image: empty body")

    return response.content


async def generate_image(story: Story, storage: FileStorage) -> dict:
    """
    Generate and store the cover image for a story.

    Args:
        story: Story with image_prompt set
        storage: Destination for the image file

    Returns:
        Dict with path, width, height, format

    Raises:
        MissingInputError: If the story has no image prompt yet
        GenerationTransportError: On provider, download or storage failure
    """
    if not story.image_prompt:
        raise MissingInputError("story does not yet have an image prompt")

    settings = get_image_settings()
    logger.info(f"[ImageGenerator] Generating cover for story {story.id} with {settings['model']}")

    client = get_openai_client()
    try:
        result = await client.images.generate(
            model=settings["model"],
            prompt=f"{IMAGE_STYLE_PREFIX}{story.image_prompt}",
            size=settings["size"],
            n=1,
        )
    except openai.OpenAIError as e:
        logger.error(f"[ImageGenerator] Generation failed: {e}")
        raise GenerationTransportError(f"image generation failed: {e}") from e

    url = result.data[0].url if result.data else None
    if not url:
        raise GenerationTransportError("error generating image: no URL in response")

    data = await fetch_image_bytes(url)
    image = storage.write_image("cover.png", data)

    logger.info(
        f"[ImageGenerator] Stored cover for story {story.id}: "
        f"{image['path']} ({image['width']}x{image['height']})"
    )
    return image
