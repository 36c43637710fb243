"""
Remix ancestry resolution.

A remix replays its direct parent as few-shot context and takes its
determinism seed from the earliest ancestor it can resolve, so every
story in a remix chain is generated with the same seed.
"""

import logging
from typing import Optional, Tuple

from bedtime.pipeline.entities import Story
from bedtime.pipeline.persistence import StoryStore
from .prompt_builder import AncestorContext

logger = logging.getLogger(__name__)

# Guards against cycles and runaway chains
MAX_ANCESTRY_DEPTH = 32


def find_root_ancestor(story: Story, store: StoryStore) -> Story:
    """
    Walk parent_story_id links to the earliest resolvable ancestor.

    A missing parent ends the walk at the last story found. Returns the
    story itself when it has no parent.
    """
    current = story
    seen = {story.id}

    for _ in range(MAX_ANCESTRY_DEPTH):
        if current.parent_story_id is None:
            break

        if current.parent_story_id in seen:
            logger.warning(
                f"[Ancestry] Cycle detected at {current.parent_story_id}, stopping walk"
            )
            break

        parent = store.get(current.parent_story_id)
        if parent is None:
            logger.warning(
                f"[Ancestry] Parent story {current.parent_story_id} of {current.id} not found"
            )
            break

        seen.add(parent.id)
        current = parent

    return current


def resolve_remix_context(
    story: Story,
    store: StoryStore,
) -> Tuple[Optional[AncestorContext], int]:
    """
    Build the generation context for a story.

    Args:
        story: Story about to be generated
        store: Store used to look up ancestors

    Returns:
        (ancestor_context, seed); context is None for stories that are not
        remixes or whose parent no longer exists
    """
    if story.parent_story_id is None:
        return None, story.seed

    parent = store.get(story.parent_story_id)
    if parent is None:
        logger.warning(
            f"[Ancestry] Parent story {story.parent_story_id} not found; "
            f"generating {story.id} without remix context"
        )
        return None, story.seed

    context = AncestorContext(
        prompt=parent.prompt,
        title=parent.title,
        summary=parent.summary,
        image_prompt=parent.image_prompt,
        text=parent.text,
    )
    root = find_root_ancestor(parent, store)

    logger.debug(f"[Ancestry] Story {story.id} seeded from root ancestor {root.id}")
    return context, root.seed
