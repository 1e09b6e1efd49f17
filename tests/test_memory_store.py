"""Tests for the memory store."""

import math
import threading
import uuid
from typing import List
from unittest.mock import patch

import pytest

from engram.config import StoreConfig
from engram.exceptions import ConfigurationError, EmbeddingFailure, NotFoundError, PersistenceError, ValidationError
from engram.memory import MemoryStore
from engram.memory.embeddings import EmbeddingProvider, normalize_vector


class FixedEmbedder(EmbeddingProvider):
    """Maps known texts to fixed vectors; everything else to the first axis."""

    name = "fixed"

    def __init__(self, vectors=None, dims: int = 3):
        self.vectors = vectors or {}
        self.dims = dims
        self.calls: List[str] = []
        self.closed = False

    @property
    def dimensions(self) -> int:
        return self.dims

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return normalize_vector(self.vectors.get(text, [1.0] + [0.0] * (self.dims - 1)))

    def close(self) -> None:
        self.closed = True


class FailingEmbedder(FixedEmbedder):
    name = "failing"

    def embed(self, text: str) -> List[float]:
        raise EmbeddingFailure("backend unavailable")


@pytest.fixture
def fixed_store(store_config):
    vectors = {
        "north": [0.0, 1.0, 0.0],
        "mostly north": [0.3, 0.95, 0.0],
        "east": [1.0, 0.0, 0.0],
        "down": [0.0, 0.0, 1.0],
        "south": [0.0, -1.0, 0.0],
    }
    memory_store = MemoryStore(store_config, embedder=FixedEmbedder(vectors))
    yield memory_store
    memory_store.close()


class TestStoreLifecycle:
    """Tests for opening and closing the store."""

    def test_creates_database_file(self, store, db_path):
        assert db_path.exists()
        assert store.count() == 0

    def test_default_path_under_xdg_data(self, isolated_home):
        with MemoryStore(StoreConfig()) as memory_store:
            assert memory_store.db_path == isolated_home / ".local" / "share" / "engram" / "memory" / "vector.duckdb"

    def test_entries_survive_reopen(self, store_config):
        with MemoryStore(store_config) as memory_store:
            entry = memory_store.store("I always use Python for data work", 0.7, "preference")

        with MemoryStore(store_config) as memory_store:
            assert memory_store.count() == 1
            loaded = memory_store.get(entry.id)
            assert loaded.text == entry.text
            assert loaded.category == "preference"

    def test_refuses_different_embedder(self, store_config):
        MemoryStore(store_config).close()

        with pytest.raises(ConfigurationError, match="refusing to open"):
            MemoryStore(store_config, embedder=FixedEmbedder())

    def test_refuses_different_dimensions(self, store_config):
        MemoryStore(store_config, embedder=FixedEmbedder(dims=3)).close()

        with pytest.raises(ConfigurationError, match="3 dims"):
            MemoryStore(store_config, embedder=FixedEmbedder(dims=4))

    def test_failed_open_releases_configured_embedder(self, store_config):
        MemoryStore(store_config).close()
        embedder = FixedEmbedder()

        with patch("engram.memory.manager.create_embedder", return_value=embedder):
            with pytest.raises(ConfigurationError):
                MemoryStore(store_config)

        assert embedder.closed is True

    def test_failed_open_leaves_injected_embedder_open(self, store_config):
        MemoryStore(store_config).close()
        embedder = FixedEmbedder()

        with pytest.raises(ConfigurationError):
            MemoryStore(store_config, embedder=embedder)

        assert embedder.closed is False

    def test_unopenable_path_releases_embedder(self, temp_dir):
        blocker = temp_dir / "not-a-dir"
        blocker.write_text("")
        embedder = FixedEmbedder()

        with patch("engram.memory.manager.create_embedder", return_value=embedder):
            with pytest.raises(PersistenceError):
                MemoryStore(StoreConfig(db_path=blocker / "vector.duckdb"))

        assert embedder.closed is True


class TestStore:
    """Tests for writing memories."""

    def test_store_returns_entry(self, store):
        entry = store.store("User prefers dark roast coffee", 0.6, "preference", "s1")

        assert uuid.UUID(entry.id).version == 4
        assert entry.text == "User prefers dark roast coffee"
        assert entry.importance == pytest.approx(0.6)
        assert entry.category == "preference"
        assert entry.session_key == "s1"
        assert entry.created_at is not None
        assert store.count() == 1

    def test_persisted_vector_is_normalized(self, store):
        entry = store.store("The project uses docker and kubernetes in the cloud")
        loaded = store.get(entry.id)

        assert len(loaded.vector) == store.dimensions
        assert math.sqrt(sum(x * x for x in loaded.vector)) == pytest.approx(1.0, abs=1e-5)

    def test_invalid_category_coerced_to_other(self, store):
        entry = store.store("Some fact about the user", 0.5, "bogus-category", "key")

        assert entry.category == "other"
        assert store.get(entry.id).category == "other"

    def test_embedding_failure_writes_nothing(self, store_config):
        with MemoryStore(store_config, embedder=FailingEmbedder()) as memory_store:
            with pytest.raises(EmbeddingFailure):
                memory_store.store("anything")
            assert memory_store.count() == 0

    def test_zero_vector_is_rejected(self, store):
        # No word of this text is in the built-in vocabulary
        with pytest.raises(EmbeddingFailure, match="zero vector"):
            store.store("Zapamatuj si, že mám rád kávu")
        assert store.count() == 0

    def test_ids_are_unique(self, store):
        ids = {store.store("remember the same text").id for _ in range(5)}
        assert len(ids) == 5

    def test_duplicates_are_kept(self, store):
        store.store("User likes tea")
        store.store("User likes tea")
        assert store.count() == 2

    def test_timestamps_strictly_increase(self, store):
        entries = [store.store(f"memory {i}") for i in range(10)]
        stamps = [e.created_at for e in entries]
        assert stamps == sorted(stamps)
        assert len(set(stamps)) == len(stamps)


class TestSearch:
    """Tests for similarity search."""

    def test_end_to_end_coffee(self, store):
        entry = store.store("User prefers dark roast coffee over light roast", 0.5, "preference", "s1")

        results = store.search("what coffee does the user like", 5, 0.3)

        assert len(results) == 1
        assert results[0].entry.id == entry.id
        assert results[0].score > 0.3

    def test_unreachable_threshold_returns_empty(self, store):
        store.store("User prefers dark roast coffee over light roast")
        assert store.search("User prefers dark roast coffee over light roast", 5, 1.1) == []

    def test_empty_store(self, store):
        assert store.search("anything at all", 5, 0.1) == []

    def test_identical_text_equal_scores_most_recent_first(self, store):
        first = store.store("remember the user email address")
        second = store.store("remember the user email address")
        assert first.vector == second.vector

        results = store.search("remember the user email address", 5, 0.5)

        assert [r.entry.id for r in results] == [second.id, first.id]
        assert results[0].score == results[1].score
        assert results[0].score == pytest.approx(1.0, abs=1e-5)

    def test_ranked_by_score(self, fixed_store):
        fixed_store.store("east")
        mostly = fixed_store.store("mostly north")
        north = fixed_store.store("north")

        results = fixed_store.search("north", 5, 0.1)

        assert [r.entry.id for r in results] == [north.id, mostly.id]
        assert results[0].score > results[1].score

    def test_min_score_filters(self, fixed_store):
        fixed_store.store("north")
        fixed_store.store("south")
        fixed_store.store("down")

        results = fixed_store.search("north", 5, 0.01)
        assert [r.entry.text for r in results] == ["north"]

    def test_limit_truncates(self, fixed_store):
        for _ in range(4):
            fixed_store.store("north")
        assert len(fixed_store.search("north", 2, 0.5)) == 2

    def test_defaults_from_config(self, store_config):
        config = store_config.model_copy(update={"max_results": 2, "min_score": 0.9})
        with MemoryStore(config, embedder=FixedEmbedder({"north": [0, 1, 0], "mostly north": [0.3, 0.95, 0]})) as s:
            for _ in range(3):
                s.store("north")
            s.store("mostly north")

            results = s.search("north", 0, 0)

        assert len(results) == 2
        assert all(r.entry.text == "north" for r in results)

    def test_candidate_window_bounds_search(self, store_config):
        config = store_config.model_copy(update={"candidate_window": 2})
        with MemoryStore(config, embedder=FixedEmbedder({"north": [0, 1, 0], "east": [1, 0, 0]})) as s:
            old = s.store("north")
            s.store("east")
            s.store("east")

            # The old match falls outside the two most recent candidates
            assert s.search("north", 5, 0.5) == []
            assert s.count() == 3
            assert s.get(old.id) is not None

    def test_category_filter(self, fixed_store):
        fixed_store.store("north", category="fact")
        preference = fixed_store.store("north", category="preference")

        results = fixed_store.search("north", 5, 0.5, category="preference")
        assert [r.entry.id for r in results] == [preference.id]

    def test_query_embedding_failure(self, store_config):
        with MemoryStore(store_config, embedder=FailingEmbedder()) as memory_store:
            with pytest.raises(EmbeddingFailure):
                memory_store.search("anything")


class TestDelete:
    """Tests for deleting memories."""

    def test_malformed_id(self, store):
        with pytest.raises(ValidationError):
            store.delete("not-a-uuid")

    def test_absent_id(self, store):
        with pytest.raises(NotFoundError):
            store.delete(str(uuid.uuid4()))

    def test_delete_removes_from_search_and_count(self, store):
        entry = store.store("remember the user email address")
        keep = store.store("remember the user email address")

        store.delete(entry.id)

        assert store.count() == 1
        results = store.search("remember the user email address", 5, 0.1)
        assert [r.entry.id for r in results] == [keep.id]
        assert store.get(entry.id) is None

    def test_delete_is_case_insensitive(self, store):
        entry = store.store("User likes tea")
        store.delete(entry.id.upper())
        assert store.count() == 0

    def test_delete_twice(self, store):
        entry = store.store("User likes tea")
        store.delete(entry.id)
        with pytest.raises(NotFoundError):
            store.delete(entry.id)


class TestListRecent:
    """Tests for listing memories."""

    def test_newest_first_with_filters(self, store):
        a = store.store("first memory", category="fact", session_key="s1")
        b = store.store("second memory", category="decision", session_key="s2")
        c = store.store("third memory", category="fact", session_key="s1")

        assert [e.id for e in store.list_recent()] == [c.id, b.id, a.id]
        assert [e.id for e in store.list_recent(category="fact")] == [c.id, a.id]
        assert [e.id for e in store.list_recent(session_key="s2")] == [b.id]
        assert len(store.list_recent(limit=1)) == 1


class TestConcurrency:
    """Tests for sharing one store between threads."""

    def test_concurrent_writes_and_searches(self, store):
        errors = []

        def worker(n):
            try:
                for i in range(5):
                    store.store(f"user {n} wants python project {i}")
                    store.search("python project", 3, 0.1)
            except Exception as e:  # pragma: no cover - surfaced below
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert store.count() == 20
