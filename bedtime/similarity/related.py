"""
Related-story lookup and embedding sync.

find_similar_stories returns up to top_k slots in rank order. A slot is
None when the index holds an id the store can no longer resolve; later
ranks keep their positions.
"""

import logging
from typing import Iterable, List, Optional

from bedtime.pipeline.entities import Story
from bedtime.pipeline.persistence import StoryStore
from .embedder import Embedder, create_story_text_for_embedding
from .index import MetadataFilter, StoryVectorIndex

logger = logging.getLogger(__name__)

DEFAULT_RELATED_COUNT = 5


def story_metadata(story: Story) -> dict:
    """Filterable attributes stored next to a story's vector."""
    return {"is_public": bool(story.is_public), "user_id": story.user_id}


def visible_to(user_id: Optional[str]) -> MetadataFilter:
    """Entries that are public or owned by user_id."""
    def _predicate(metadata: dict) -> bool:
        if metadata.get("is_public"):
            return True
        return user_id is not None and metadata.get("user_id") == user_id
    return _predicate


async def update_embedding_for_story(
    story: Story,
    index: StoryVectorIndex,
    embedder: Embedder,
    save: bool = True,
) -> List[float]:
    """
    Embed one story and upsert it into the index.

    Raises:
        MissingInputError: If the story has no text
        GenerationTransportError: If the embedding call fails
    """
    text = create_story_text_for_embedding(story)
    vector = await embedder.embed(text)
    index.upsert(story.id, vector, story_metadata(story))
    if save:
        index.save()

    logger.info(f"[Similarity] Indexed story {story.id} in {index.namespace}")
    return vector


async def batch_embeddings_for_stories(
    stories: Iterable[Story],
    index: StoryVectorIndex,
    embedder: Embedder,
    save: bool = True,
) -> int:
    """
    Embed many stories in one call and upsert them.

    Stories without text are skipped with a warning.

    Returns:
        Number of stories indexed
    """
    embeddable = []
    for story in stories:
        if story.text and story.text.strip():
            embeddable.append(story)
        else:
            logger.warning(f"[Similarity] Skipping story {story.id}: no text")

    if not embeddable:
        return 0

    texts = [create_story_text_for_embedding(story) for story in embeddable]
    vectors = await embedder.embed_batch(texts)

    for story, vector in zip(embeddable, vectors):
        index.upsert(story.id, vector, story_metadata(story))
    if save:
        index.save()

    logger.info(f"[Similarity] Indexed {len(embeddable)} stories in {index.namespace}")
    return len(embeddable)


async def find_similar_stories(
    story: Story,
    store: StoryStore,
    index: StoryVectorIndex,
    embedder: Embedder,
    top_k: int = DEFAULT_RELATED_COUNT,
) -> List[Optional[Story]]:
    """
    Stories most similar to the given one.

    Candidates are limited to public stories and the story owner's own
    stories. The story itself is excluded.

    Raises:
        MissingInputError: If the story has no text
        GenerationTransportError: If the embedding call fails
    """
    vector = await embedder.embed(create_story_text_for_embedding(story))
    matches = index.query(
        vector,
        top_k=top_k,
        exclude_story_id=story.id,
        where=visible_to(story.user_id),
    )

    by_id = {s.id: s for s in store.find_by_ids([story_id for story_id, _ in matches])}
    results = [by_id.get(story_id) for story_id, _ in matches]

    missing = sum(1 for s in results if s is None)
    if missing:
        logger.warning(f"[Similarity] {missing} related ids for story {story.id} did not resolve")

    return results
