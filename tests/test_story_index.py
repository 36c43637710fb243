"""
Tests for the FAISS story vector index.
"""

import pytest

from bedtime.similarity.index import StoryVectorIndex, get_story_index, reset_story_indexes


class TestUpsertAndQuery:

    def test_empty_index_returns_nothing(self):
        index = StoryVectorIndex("test")
        assert index.query([1.0, 0.0, 0.0]) == []
        assert index.size == 0

    def test_nearest_first(self):
        index = StoryVectorIndex("test")
        index.upsert("far", [0.0, 1.0, 0.0])
        index.upsert("near", [0.9, 0.1, 0.0])
        index.upsert("exact", [2.0, 0.0, 0.0])

        results = index.query([1.0, 0.0, 0.0], top_k=3)

        assert [story_id for story_id, _ in results] == ["exact", "near", "far"]
        # Normalised vectors: identical direction scores 1.0
        assert results[0][1] == pytest.approx(1.0, abs=1e-5)

    def test_top_k_limits_results(self):
        index = StoryVectorIndex("test")
        for i in range(10):
            index.upsert(f"s{i}", [1.0, i / 10.0])

        assert len(index.query([1.0, 0.0], top_k=5)) == 5

    def test_exclude_story(self):
        index = StoryVectorIndex("test")
        index.upsert("self", [1.0, 0.0])
        index.upsert("other", [0.5, 0.5])

        results = index.query([1.0, 0.0], top_k=5, exclude_story_id="self")

        assert [story_id for story_id, _ in results] == ["other"]

    def test_upsert_replaces_vector(self):
        index = StoryVectorIndex("test")
        index.upsert("a", [1.0, 0.0])
        index.upsert("b", [0.0, 1.0])

        index.upsert("a", [0.0, 1.0], {"is_public": True})

        assert index.size == 2
        results = index.query([0.0, 1.0], top_k=2)
        assert {story_id for story_id, _ in results} == {"a", "b"}
        assert results[0][1] == pytest.approx(1.0, abs=1e-5)
        assert results[1][1] == pytest.approx(1.0, abs=1e-5)
        assert index.get_metadata("a") == {"is_public": True}

    def test_metadata_filter(self):
        index = StoryVectorIndex("test")
        index.upsert("public", [0.8, 0.2], {"is_public": True})
        index.upsert("private", [1.0, 0.0], {"is_public": False})

        results = index.query([1.0, 0.0], where=lambda m: m.get("is_public"))

        assert [story_id for story_id, _ in results] == ["public"]

    def test_remove(self):
        index = StoryVectorIndex("test")
        index.upsert("a", [1.0, 0.0])

        assert index.remove("a") is True
        assert index.remove("a") is False
        assert not index.contains("a")
        assert index.query([1.0, 0.0]) == []

    def test_empty_vector_rejected(self):
        with pytest.raises(ValueError):
            StoryVectorIndex("test").upsert("a", [])

    def test_dimension_mismatch_rejected(self):
        index = StoryVectorIndex("test")
        index.upsert("a", [1.0, 0.0])
        with pytest.raises(ValueError):
            index.upsert("b", [1.0, 0.0, 0.0])


class TestPersistence:

    def test_save_and_load(self, tmp_path):
        index_path = tmp_path / "bedtime-ai-dev.faiss"
        metadata_path = tmp_path / "bedtime-ai-dev.json"

        index = StoryVectorIndex("bedtime-ai-dev", index_path, metadata_path)
        index.upsert("a", [1.0, 0.0], {"is_public": True, "user_id": "alice"})
        index.upsert("b", [0.0, 1.0], {"is_public": False, "user_id": "bob"})
        assert index.save() is True

        loaded = StoryVectorIndex("bedtime-ai-dev", index_path, metadata_path)

        assert loaded.size == 2
        assert loaded.get_metadata("b") == {"is_public": False, "user_id": "bob"}
        assert loaded.query([1.0, 0.0], top_k=1)[0][0] == "a"

        # New ids continue after the loaded ones
        loaded.upsert("c", [0.7, 0.7])
        assert loaded.size == 3

    def test_save_without_paths(self):
        index = StoryVectorIndex("test")
        index.upsert("a", [1.0, 0.0])
        assert index.save() is False

    def test_save_empty_index(self, tmp_path):
        index = StoryVectorIndex("test", tmp_path / "x.faiss", tmp_path / "x.json")
        assert index.save() is False

    def test_corrupt_files_start_empty(self, tmp_path):
        index_path = tmp_path / "x.faiss"
        metadata_path = tmp_path / "x.json"
        index_path.write_bytes(b"not an index")
        metadata_path.write_text("{}")

        index = StoryVectorIndex("test", index_path, metadata_path)

        assert index.size == 0


class TestNamespaceRegistry:

    @pytest.fixture(autouse=True)
    def isolated_registry(self, tmp_path, monkeypatch):
        monkeypatch.setenv("BEDTIME_DATA_DIR", str(tmp_path))
        reset_story_indexes()
        yield
        reset_story_indexes()

    def test_development_namespace_by_default(self, monkeypatch):
        monkeypatch.delenv("APP_ENV", raising=False)
        assert get_story_index().namespace == "bedtime-ai-dev"

    def test_production_namespace(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "production")
        index = get_story_index()
        assert index.namespace == "bedtime-ai"
        assert index.index_path.name == "bedtime-ai.faiss"

    def test_same_namespace_same_instance(self):
        assert get_story_index("bedtime-ai-dev") is get_story_index("bedtime-ai-dev")
        assert get_story_index("bedtime-ai") is not get_story_index("bedtime-ai-dev")
