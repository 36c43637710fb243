"""
Story text generation.

generate_story() is the text collaborator of the pipeline:
1. Build the conversation (system prompt, remix context, user prompt)
2. Call the configured model provider with a determinism seed
3. Decode the JSON reply into a StoryOutput

Decoding is its own fallible step: a reply that is not valid JSON, or
that is missing fields, raises StoryOutputParseError rather than a
transport error.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel, ValidationError, field_validator

from bedtime.pipeline.errors import StoryOutputParseError
from .model_provider import get_provider, get_model_info
from .prompt_builder import AncestorContext, build_messages, build_system_prompt

logger = logging.getLogger("bedtime_story_generator")

# Some models wrap JSON in markdown fences despite instructions
_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class StoryOutput(BaseModel):
    """Structured reply expected from the text model."""

    title: str
    story: str
    summary: str
    image_prompt: str

    @field_validator("title", "story", "image_prompt")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("summary")
    @classmethod
    def strip_summary(cls, value: str) -> str:
        return value.strip()


def parse_story_output(raw: str) -> StoryOutput:
    """
    Decode a model reply into a StoryOutput.

    Args:
        raw: Text returned by the model

    Returns:
        Validated StoryOutput

    Raises:
        StoryOutputParseError: If the reply is not the expected JSON object
    """
    if raw is None or not raw.strip():
        raise StoryOutputParseError("empty response from model", raw_output=raw)

    text = raw.strip()
    match = _FENCE_PATTERN.match(text)
    if match:
        text = match.group(1)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning(f"[StoryGenerator] Parsing JSON from model failed: {e}")
        raise StoryOutputParseError(f"reply is not valid JSON: {e}", raw_output=raw) from e

    if not isinstance(data, dict):
        raise StoryOutputParseError(
            f"expected a JSON object, got {type(data).__name__}", raw_output=raw
        )

    try:
        return StoryOutput.model_validate(data)
    except ValidationError as e:
        logger.warning(f"[StoryGenerator] Reply failed validation: {e}")
        raise StoryOutputParseError(f"reply failed validation: {e}", raw_output=raw) from e


async def generate_story(
    prompt: str,
    ancestor_context: Optional[AncestorContext] = None,
    seed: Optional[int] = None,
    model_spec: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
) -> StoryOutput:
    """
    Generate a bedtime story for a prompt.

    Args:
        prompt: The user's story request
        ancestor_context: Parent story replayed as a prior exchange (remix)
        seed: Determinism seed; remixes pass the root ancestor's
            creation time so regenerating a chain stays reproducible
        model_spec: Provider/model selection, see model_provider.parse_model_spec
        config: Extra provider options (temperature, max_tokens, user)

    Returns:
        StoryOutput with title, story, summary and image_prompt

    Raises:
        GenerationTransportError: Provider call failed
        StoryOutputParseError: Reply could not be decoded
    """
    model_info = get_model_info(model_spec)
    logger.info(
        f"[StoryGenerator] provider={model_info.provider}, model={model_info.model_name}, "
        f"seed={seed}, remix={ancestor_context is not None}"
    )

    provider = get_provider(model_spec)
    request_config = dict(config or {})
    request_config["seed"] = seed

    result = await provider.generate(
        build_system_prompt(),
        build_messages(prompt, ancestor_context),
        request_config,
    )

    if result.usage:
        logger.info(
            f"[StoryGenerator] Token usage - Input: {result.usage['input_tokens']}, "
            f"Output: {result.usage['output_tokens']}, Total: {result.usage['total_tokens']}"
        )

    output = parse_story_output(result.text)
    word_count = len(output.story.split())
    logger.info(f"[StoryGenerator] Generated \"{output.title}\" ({word_count} words)")

    return output
