"""
Similarity module - embeddings and related-story lookup.
"""

from .embedder import (
    Embedder,
    OpenAIEmbedder,
    OllamaEmbedder,
    create_story_text_for_embedding,
    get_embedder,
)

from .index import (
    StoryVectorIndex,
    get_story_index,
    reset_story_indexes,
)

from .related import (
    DEFAULT_RELATED_COUNT,
    batch_embeddings_for_stories,
    find_similar_stories,
    story_metadata,
    update_embedding_for_story,
    visible_to,
)

__all__ = [
    # embedder
    "Embedder",
    "OpenAIEmbedder",
    "OllamaEmbedder",
    "create_story_text_for_embedding",
    "get_embedder",
    # index
    "StoryVectorIndex",
    "get_story_index",
    "reset_story_indexes",
    # related
    "DEFAULT_RELATED_COUNT",
    "batch_embeddings_for_stories",
    "find_similar_stories",
    "story_metadata",
    "update_embedding_for_story",
    "visible_to",
]
