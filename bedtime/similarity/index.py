"""
FAISS index management for story vectors.

One index per namespace. Vectors are L2 normalised and stored in an
IndexIDMap2 over IndexFlatIP, so inner product is cosine similarity and
entries can be replaced in place.
"""

import json
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import faiss
import numpy as np

from bedtime.infra.config import get_story_vectors_dir, get_vector_namespace

logger = logging.getLogger(__name__)

MetadataFilter = Callable[[dict], bool]


class StoryVectorIndex:
    """
    FAISS-based vector index for stories.

    Each entry holds a story id, its vector and a small metadata dict
    (is_public, user_id) used for filtering at query time.
    """

    def __init__(
        self,
        namespace: str,
        index_path: Optional[Path] = None,
        metadata_path: Optional[Path] = None,
    ):
        """
        Initialize the index.

        Args:
            namespace: Logical partition, e.g. "bedtime-ai"
            index_path: Path to save/load the FAISS index
            metadata_path: Path to save/load the metadata JSON
        """
        self.namespace = namespace
        self.index_path = index_path
        self.metadata_path = metadata_path
        self.dimension: Optional[int] = None

        self._index: Optional[faiss.IndexIDMap2] = None
        self._next_id = 0
        self._id_to_story: Dict[int, str] = {}
        self._story_to_id: Dict[str, int] = {}
        self._metadata: Dict[str, dict] = {}

        if index_path and metadata_path:
            self._load()

    def _ensure_index(self, dim: int) -> None:
        if self._index is None:
            self._index = faiss.IndexIDMap2(faiss.IndexFlatIP(dim))
            self.dimension = dim
            logger.debug(f"[StoryVectorIndex] Initialized {self.namespace} with dimension {dim}")
        elif dim != self.dimension:
            raise ValueError(
                f"embedding dimension {dim} does not match index dimension {self.dimension}"
            )

    @staticmethod
    def _normalize(embedding: List[float]) -> np.ndarray:
        vec = np.array([embedding], dtype=np.float32)
        faiss.normalize_L2(vec)
        return vec

    def upsert(self, story_id: str, embedding: List[float], metadata: Optional[dict] = None) -> None:
        """
        Insert or replace a story vector.

        Args:
            story_id: Story identifier
            embedding: Embedding vector
            metadata: Filterable attributes (is_public, user_id)

        Raises:
            ValueError: On empty vector or dimension mismatch
        """
        if not embedding:
            raise ValueError(f"empty embedding for {story_id}")

        self._ensure_index(len(embedding))

        vector_id = self._story_to_id.get(story_id)
        if vector_id is not None:
            self._index.remove_ids(np.array([vector_id], dtype=np.int64))
        else:
            vector_id = self._next_id
            self._next_id += 1

        self._index.add_with_ids(self._normalize(embedding), np.array([vector_id], dtype=np.int64))
        self._id_to_story[vector_id] = story_id
        self._story_to_id[story_id] = vector_id
        self._metadata[story_id] = dict(metadata or {})

        logger.debug(f"[StoryVectorIndex] Upserted story {story_id} at id {vector_id}")

    def query(
        self,
        embedding: List[float],
        top_k: int = 5,
        exclude_story_id: Optional[str] = None,
        where: Optional[MetadataFilter] = None,
    ) -> List[Tuple[str, float]]:
        """
        Search for similar stories.

        Filtering happens after scoring, so the whole (flat) index is
        scanned and the best top_k survivors are kept.

        Args:
            embedding: Query vector
            top_k: Maximum number of results
            exclude_story_id: Story to leave out (the query story itself)
            where: Predicate over an entry's metadata

        Returns:
            List of (story_id, score), best first
        """
        if self._index is None or self._index.ntotal == 0 or top_k <= 0:
            return []

        scores, ids = self._index.search(self._normalize(embedding), self._index.ntotal)

        results = []
        for score, vector_id in zip(scores[0], ids[0]):
            if vector_id == -1:
                continue
            story_id = self._id_to_story.get(int(vector_id))
            if story_id is None or story_id == exclude_story_id:
                continue
            if where is not None and not where(self._metadata.get(story_id, {})):
                continue

            results.append((story_id, float(score)))
            if len(results) >= top_k:
                break

        return results

    def remove(self, story_id: str) -> bool:
        """Remove a story. Returns False if it was not indexed."""
        vector_id = self._story_to_id.pop(story_id, None)
        if vector_id is None:
            return False

        self._index.remove_ids(np.array([vector_id], dtype=np.int64))
        self._id_to_story.pop(vector_id, None)
        self._metadata.pop(story_id, None)
        return True

    def contains(self, story_id: str) -> bool:
        """Check if a story is already indexed."""
        return story_id in self._story_to_id

    def get_metadata(self, story_id: str) -> Optional[dict]:
        return self._metadata.get(story_id)

    @property
    def size(self) -> int:
        """Number of indexed stories."""
        return len(self._story_to_id)

    def save(self) -> bool:
        """
        Save index and metadata to disk.

        Returns:
            True if saved, False if there is nothing to save or no paths
        """
        if self._index is None:
            return False

        if not self.index_path or not self.metadata_path:
            logger.warning("[StoryVectorIndex] No paths configured for saving")
            return False

        self.index_path.parent.mkdir(parents=True, exist_ok=True)
        faiss.write_index(self._index, str(self.index_path))

        metadata = {
            "namespace": self.namespace,
            "dimension": self.dimension,
            "next_id": self._next_id,
            "id_to_story": {str(k): v for k, v in self._id_to_story.items()},
            "metadata": self._metadata,
        }
        with open(self.metadata_path, "w", encoding="utf-8") as f:
            json.dump(metadata, f, indent=2, ensure_ascii=False)

        logger.info(f"[StoryVectorIndex] Saved {self.size} vectors to {self.index_path}")
        return True

    def _load(self) -> bool:
        if not self.index_path.exists() or not self.metadata_path.exists():
            logger.debug(f"[StoryVectorIndex] No existing index for {self.namespace}")
            return False

        try:
            index = faiss.read_index(str(self.index_path))
            with open(self.metadata_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
        except (OSError, RuntimeError, ValueError) as e:
            logger.error(f"[StoryVectorIndex] Load failed, starting empty: {e}")
            return False

        self._index = index
        self.dimension = metadata.get("dimension")
        self._next_id = metadata.get("next_id", 0)
        self._id_to_story = {int(k): v for k, v in metadata.get("id_to_story", {}).items()}
        self._story_to_id = {v: k for k, v in self._id_to_story.items()}
        self._metadata = metadata.get("metadata", {})

        logger.info(f"[StoryVectorIndex] Loaded {self.size} vectors from {self.index_path}")
        return True

    def clear(self) -> None:
        """Clear all indexed data."""
        self._index = None
        self.dimension = None
        self._next_id = 0
        self._id_to_story = {}
        self._story_to_id = {}
        self._metadata = {}


_indexes: Dict[str, StoryVectorIndex] = {}


def get_story_index(namespace: Optional[str] = None) -> StoryVectorIndex:
    """
    Get or create the index for a namespace.

    Defaults to the namespace of the current APP_ENV and persists under
    data/story_vectors/<namespace>.faiss|.json.
    """
    namespace = namespace or get_vector_namespace()
    if namespace not in _indexes:
        vectors_dir = get_story_vectors_dir()
        _indexes[namespace] = StoryVectorIndex(
            namespace,
            index_path=vectors_dir / f"{namespace}.faiss",
            metadata_path=vectors_dir / f"{namespace}.json",
        )
    return _indexes[namespace]


def reset_story_indexes() -> None:
    """Forget cached indexes (tests, namespace switches)."""
    _indexes.clear()
