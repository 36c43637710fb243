"""
Story module - text generation for the pipeline.

- Prompt and conversation building
- Model provider selection (OpenAI, Claude, Ollama)
- Structured output decoding
- Remix ancestry resolution
"""

from .prompt_builder import (
    AncestorContext,
    build_system_prompt,
    build_messages,
    build_daily_prompt,
    DAILY_HISTORY_COUNT,
)

from .model_provider import (
    ModelProvider,
    GenerationResult,
    get_provider,
    get_model_info,
    parse_model_spec,
)

from .generator import (
    StoryOutput,
    generate_story,
    parse_story_output,
)

from .ancestry import (
    find_root_ancestor,
    resolve_remix_context,
)

__all__ = [
    # prompt_builder
    "AncestorContext",
    "build_system_prompt",
    "build_messages",
    "build_daily_prompt",
    "DAILY_HISTORY_COUNT",
    # model_provider
    "ModelProvider",
    "GenerationResult",
    "get_provider",
    "get_model_info",
    "parse_model_spec",
    # generator
    "StoryOutput",
    "generate_story",
    "parse_story_output",
    # ancestry
    "find_root_ancestor",
    "resolve_remix_context",
]
