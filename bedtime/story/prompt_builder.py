"""
Prompt Builder - System prompt and conversation construction.

The conversation is the system prompt, an optional few-shot exchange
taken from the parent story (remix), then the user's prompt.
"""

import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

# Soft length policy communicated to the model; not enforced here
STORY_MIN_WORDS = 500
STORY_MAX_WORDS = 750
TITLE_MAX_CHARS = 100


SYSTEM_PROMPT = f"""You are a creative storyteller who works with parents to create unique, engaging, age-appropriate bedtime stories that help a child relax and fall asleep.

When given a prompt, you will create the story, generate a title for the story, generate a short summary, and generate an image prompt that will later be used to create a unique cover image for the story.

When creating the story, follow these rules:
- it should be a soothing, uplifting tale appropriate to children of all ages.
- it should have a main character that the reader can relate to.
- this story should be between {STORY_MIN_WORDS} and {STORY_MAX_WORDS} words long, DO NOT return stories outside of these boundaries.
- If at all possible, write the story in the same language as the prompt. If you are unsure or do not support that language, default to English.

The title must be less than {TITLE_MAX_CHARS} characters. Write only the title, without any explanation or surrounding punctuation.

The summary is a 1-2 sentence overview that draws the reader in without giving away the entire story.

The image prompt should describe a simple cover image in a modern cartoon style similar to other children's books. It must be appropriate for children. Return ONLY the prompt.

Respond with a single JSON object with the keys: title, story, summary, image_prompt. Do NOT wrap the JSON in markdown fences."""


@dataclass
class AncestorContext:
    """
    A previous story used as a worked example for a remix.

    The fields mirror what the model returns, so the parent reads as an
    earlier answer in the same conversation.
    """

    prompt: str
    title: Optional[str] = None
    summary: Optional[str] = None
    image_prompt: Optional[str] = None
    text: Optional[str] = None

    def to_assistant_reply(self) -> str:
        """Render the parent story as the JSON reply the model would give."""
        return json.dumps(
            {
                "title": self.title,
                "summary": self.summary,
                "image_prompt": self.image_prompt,
                "story": self.text,
            },
            ensure_ascii=False,
        )


def build_system_prompt() -> str:
    """Return the storyteller system prompt."""
    return SYSTEM_PROMPT


def build_messages(
    prompt: str,
    ancestor_context: Optional[AncestorContext] = None,
) -> List[Dict[str, str]]:
    """
    Build the user/assistant conversation for a generation request.

    Args:
        prompt: The user's story request
        ancestor_context: Parent story to replay as a prior exchange

    Returns:
        List of {"role", "content"} messages, without the system prompt
    """
    messages: List[Dict[str, str]] = []

    if ancestor_context is not None:
        messages.append({"role": "user", "content": ancestor_context.prompt})
        messages.append({
            "role": "assistant",
            "content": ancestor_context.to_assistant_reply(),
        })
        logger.debug("[PromptBuilder] Added remix context from parent story")

    messages.append({"role": "user", "content": prompt})
    return messages


# Recent daily stories the model is asked not to repeat
DAILY_HISTORY_COUNT = 5


def build_daily_prompt(history: List[str]) -> str:
    """
    Prompt for the daily public story.

    Args:
        history: Texts of the most recent daily stories, newest first

    Returns:
        A request for a new story that avoids the characters, themes and
        storylines in history
    """
    recent = "\n".join(text for text in history if text)
    return (
        "write a unique bedtime story. "
        f"Here are the last {DAILY_HISTORY_COUNT} stories you created, the new story "
        f"should not use the same characters, themes, or storylines: {recent}"
    )
