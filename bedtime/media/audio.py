"""
Narration audio generation.

Synthesizes the story text to speech and writes it to storage as
<story_id>.mp3.
"""

import logging

import openai

from bedtime.infra.clients import get_openai_client
from bedtime.infra.config import get_tts_settings
from bedtime.pipeline.entities import Story
from bedtime.pipeline.errors import GenerationTransportError, MissingInputError
from .storage import FileStorage

logger = logging.getLogger(__name__)


async def generate_audio(story: Story, storage: FileStorage) -> str:
    """
    Generate and store narration for a story.

    Args:
        story: Story with text set
        storage: Destination for the audio file

    Returns:
        Relative path of the stored mp3

    Raises:
        MissingInputError: If the story has no text yet
        GenerationTransportError: On provider or storage failure
    """
    if not story.text:
        raise MissingInputError("story does not yet have generated text")

    settings = get_tts_settings()
    logger.info(
        f"[AudioGenerator] Narrating story {story.id} "
        f"({len(story.text)} chars, model={settings['model']}, voice={settings['voice']})"
    )

    client = get_openai_client()
    try:
        response = await client.audio.speech.create(
            model=settings["model"],
            voice=settings["voice"],
            input=story.text,
            response_format="mp3",
        )
    except openai.OpenAIError as e:
        logger.error(f"[AudioGenerator] Synthesis failed: {e}")
        raise GenerationTransportError(f"audio generation failed: {e}") from e

    data = response.content
    if not data:
        raise GenerationTransportError("audio generation returned no content")

    path = storage.write_file(f"{story.id}.mp3", data)
    logger.info(f"[AudioGenerator] Stored narration for story {story.id}: {path}")
    return path
