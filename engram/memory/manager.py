"""Memory store with DuckDB backend and semantic search."""

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

import duckdb

from engram.config import StoreConfig
from engram.exceptions import ConfigurationError, EmbeddingFailure, NotFoundError, PersistenceError, ValidationError
from engram.memory.embeddings import EmbeddingProvider, create_embedder
from engram.memory.schema import MemoryEntry, MemorySearchResult, coerce_category, is_valid_memory_id

logger = logging.getLogger(__name__)

_COLUMNS = "id, text, vector, importance, category, session_key, created_at"

# Singleton instance
_memory_store: Optional["MemoryStore"] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _row_to_entry(row) -> MemoryEntry:
    return MemoryEntry(
        id=row[0],
        text=row[1],
        vector=list(row[2]),
        importance=row[3],
        category=row[4],
        session_key=row[5],
        created_at=row[6],
    )


class MemoryStore:
    """Persistent vector memory in a single DuckDB file.

    One store owns one embedding provider for its whole lifetime; every
    stored vector shares that provider's dimensionality. The store can be
    shared between threads. Using it after ``close()`` is a caller error and
    is not guarded against.
    """

    def __init__(self, config: Optional[StoreConfig] = None, embedder: Optional[EmbeddingProvider] = None):
        """Open (or create) the memory database.

        Args:
            config: Store configuration (defaults if None)
            embedder: Embedding provider to use instead of the configured one

        Raises:
            ConfigurationError: If the embedder can't be set up or doesn't match the database
            PersistenceError: If the database can't be opened
        """
        self.config = config or StoreConfig()
        self.embedder = embedder or create_embedder(self.config)
        self._owns_embedder = embedder is None
        self.db_path = self.config.resolved_db_path()
        self._lock = threading.Lock()
        self.conn = None

        try:
            self._open()
        except Exception:
            if self.conn is not None:
                self.conn.close()
                self.conn = None
            if self._owns_embedder:
                self.embedder.close()
            raise

        self._last_created_at = self._latest_timestamp()

        logger.info(
            f"Memory store initialized: db_path={self.db_path} provider={self.embedder.identity} "
            f"dimensions={self.embedder.dimensions}"
        )

    @property
    def dimensions(self) -> int:
        return self.embedder.dimensions

    def _open(self) -> None:
        try:
            # Ensure directory exists
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = duckdb.connect(str(self.db_path))
        except (OSError, duckdb.Error) as e:
            raise PersistenceError(f"Failed to open memory database {self.db_path}: {e}") from e

        self._init_schema()

    def _init_schema(self) -> None:
        """Create tables and indexes, and pin the embedder identity."""
        try:
            self.conn.execute("""
                CREATE TABLE IF NOT EXISTS memory_meta (
                    key VARCHAR PRIMARY KEY,
                    value VARCHAR NOT NULL
                )
            """)
            self._check_embedder_identity()

            self.conn.execute(f"""
                CREATE TABLE IF NOT EXISTS memories (
                    id VARCHAR PRIMARY KEY,
                    text VARCHAR NOT NULL,
                    vector FLOAT[{self.dimensions}] NOT NULL,
                    importance FLOAT DEFAULT 0.5,
                    category VARCHAR DEFAULT 'other',
                    session_key VARCHAR,
                    created_at TIMESTAMP NOT NULL
                )
            """)
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_category ON memories(category)")
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_session ON memories(session_key)")
            self.conn.execute("CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created_at)")
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to initialize memory schema: {e}") from e

    def _check_embedder_identity(self) -> None:
        """Refuse to mix embedders within one database."""
        stored = dict(self.conn.execute("SELECT key, value FROM memory_meta").fetchall())
        expected = {"provider": self.embedder.identity, "dimensions": str(self.dimensions)}

        mismatched = [key for key, value in expected.items() if key in stored and stored[key] != value]
        if mismatched:
            raise ConfigurationError(
                f"Memory database {self.db_path} was created with provider {stored.get('provider')} "
                f"({stored.get('dimensions')} dims); refusing to open it with {expected['provider']} "
                f"({expected['dimensions']} dims)"
            )

        for key, value in expected.items():
            if key not in stored:
                self.conn.execute("INSERT INTO memory_meta VALUES (?, ?)", [key, value])

    def _latest_timestamp(self) -> Optional[datetime]:
        with self._lock:
            result = self.conn.execute("SELECT MAX(created_at) FROM memories").fetchone()
        return result[0] if result else None

    def _next_timestamp(self) -> datetime:
        # Strictly increasing so that recency order never ties. Caller holds the lock.
        now = _utcnow()
        if self._last_created_at is not None and now <= self._last_created_at:
            now = self._last_created_at + timedelta(microseconds=1)
        self._last_created_at = now
        return now

    def store(
        self,
        text: str,
        importance: float = 0.5,
        category: str = "other",
        session_key: Optional[str] = None,
    ) -> MemoryEntry:
        """Embed and persist a new memory.

        Args:
            text: The information to remember
            importance: Advisory weight in [0, 1]
            category: Memory category; unknown values are stored as "other"
            session_key: Optional conversation/session the memory came from

        Returns:
            The stored entry

        Raises:
            EmbeddingFailure: If the text can't be embedded or embeds to a zero
                vector (nothing is written)
            PersistenceError: If the insert fails
        """
        vector = self.embedder.embed(text)
        # Zero vectors score 0 against every query
        if not any(vector):
            raise EmbeddingFailure(f"Embedding provider {self.embedder.identity} produced a zero vector for {text!r}")

        with self._lock:
            entry = MemoryEntry(
                id=str(uuid.uuid4()),
                text=text,
                vector=vector,
                importance=float(importance),
                category=coerce_category(category),
                session_key=session_key,
                created_at=self._next_timestamp(),
            )
            try:
                self.conn.execute(
                    f"INSERT INTO memories ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    [
                        entry.id,
                        entry.text,
                        entry.vector,
                        entry.importance,
                        entry.category,
                        entry.session_key,
                        entry.created_at,
                    ],
                )
            except duckdb.Error as e:
                raise PersistenceError(f"Failed to store memory: {e}") from e

        logger.debug(f"Stored memory {entry.id} [{entry.category}] ({len(entry.text)} chars)")
        return entry

    def search(
        self,
        query: str,
        limit: int = 0,
        min_score: float = 0.0,
        category: Optional[str] = None,
    ) -> List[MemorySearchResult]:
        """Search memories by cosine similarity.

        Only the most recent ``candidate_window`` memories are scored. Results
        are ordered by score, with more recent memories first on equal score.

        Args:
            query: Natural language query
            limit: Maximum results; <= 0 uses the configured max_results
            min_score: Minimum similarity; <= 0 uses the configured min_score
            category: Only return memories of this category

        Returns:
            Matching memories with scores (empty when nothing qualifies)

        Raises:
            EmbeddingFailure: If the query can't be embedded
            PersistenceError: If the query fails
        """
        if limit <= 0:
            limit = self.config.max_results
        if min_score <= 0:
            min_score = self.config.min_score

        query_vector = self.embedder.embed(query)

        category_sql = ""
        params = [query_vector, self.config.candidate_window, min_score]
        if category is not None:
            category_sql = "AND category = ?"
            params.append(getattr(category, "value", category))
        params.append(limit)

        sql = f"""
            SELECT {_COLUMNS}, score
            FROM (
                SELECT *, array_inner_product(vector, ?::FLOAT[{self.dimensions}]) AS score
                FROM (
                    SELECT {_COLUMNS} FROM memories
                    ORDER BY created_at DESC
                    LIMIT ?
                ) AS candidates
            ) AS scored
            WHERE score >= ? {category_sql}
            ORDER BY score DESC, created_at DESC
            LIMIT ?
        """
        try:
            with self._lock:
                rows = self.conn.execute(sql, params).fetchall()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to search memories: {e}") from e

        results = [MemorySearchResult(entry=_row_to_entry(row), score=row[7]) for row in rows]

        logger.debug(f"Memory search completed: query={query!r} results={len(results)} min_score={min_score}")
        return results

    def get(self, memory_id: str) -> Optional[MemoryEntry]:
        """Get a memory by ID, or None if it doesn't exist."""
        if not is_valid_memory_id(memory_id):
            raise ValidationError(f"Invalid memory ID format: {memory_id}")

        try:
            with self._lock:
                row = self.conn.execute(
                    f"SELECT {_COLUMNS} FROM memories WHERE id = ?", [memory_id.lower()]
                ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to read memory: {e}") from e

        return _row_to_entry(row) if row else None

    def list_recent(
        self,
        limit: int = 20,
        category: Optional[str] = None,
        session_key: Optional[str] = None,
    ) -> List[MemoryEntry]:
        """List memories newest first.

        Args:
            limit: Maximum results
            category: Filter by category
            session_key: Filter by session

        Returns:
            List of memories ordered by creation time
        """
        where_clauses = []
        params = []

        if category is not None:
            where_clauses.append("category = ?")
            params.append(getattr(category, "value", category))

        if session_key is not None:
            where_clauses.append("session_key = ?")
            params.append(session_key)

        where_sql = ""
        if where_clauses:
            where_sql = "WHERE " + " AND ".join(where_clauses)

        params.append(limit)
        sql = f"SELECT {_COLUMNS} FROM memories {where_sql} ORDER BY created_at DESC LIMIT ?"

        try:
            with self._lock:
                rows = self.conn.execute(sql, params).fetchall()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to list memories: {e}") from e

        return [_row_to_entry(row) for row in rows]

    def delete(self, memory_id: str) -> None:
        """Delete a memory by ID.

        Raises:
            ValidationError: If the ID is not a canonical UUID
            NotFoundError: If no memory has this ID
            PersistenceError: If the delete fails
        """
        if not is_valid_memory_id(memory_id):
            raise ValidationError(f"Invalid memory ID format: {memory_id}")

        try:
            with self._lock:
                result = self.conn.execute(
                    "DELETE FROM memories WHERE id = ? RETURNING id", [memory_id.lower()]
                ).fetchone()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to delete memory: {e}") from e

        if result is None:
            raise NotFoundError(memory_id)
        logger.debug(f"Deleted memory {memory_id}")

    def count(self) -> int:
        """Count total memories."""
        try:
            with self._lock:
                result = self.conn.execute("SELECT COUNT(*) FROM memories").fetchone()
        except duckdb.Error as e:
            raise PersistenceError(f"Failed to count memories: {e}") from e

        return result[0] if result else 0

    def close(self) -> None:
        """Close database connection and release the embedder."""
        if self.conn:
            self.conn.close()
            self.conn = None
        self.embedder.close()

    def __enter__(self) -> "MemoryStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def get_memory_store() -> MemoryStore:
    """Get the singleton MemoryStore instance, built from the user config."""
    global _memory_store

    if _memory_store is None:
        from engram.config import load_config

        config = load_config()
        _memory_store = MemoryStore(config.memory)

    return _memory_store


def reset_memory_store() -> None:
    """Reset the singleton (for testing or reconfiguration)."""
    global _memory_store
    if _memory_store is not None:
        _memory_store.close()
        _memory_store = None


def open_store(db_path: Optional[Path] = None, config: Optional[StoreConfig] = None) -> MemoryStore:
    """Open a store from config, optionally overriding the database path."""
    if config is None:
        from engram.config import load_config

        config = load_config().memory
    if db_path is not None:
        config = config.model_copy(update={"db_path": db_path})
    return MemoryStore(config)
