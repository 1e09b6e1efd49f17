"""Memory system for persistent semantic search."""

from engram.memory.capture import MEMORY_MARKER, AutoCapture, CaptureRules
from engram.memory.embeddings import (
    EmbeddingProvider,
    FastEmbedEmbedder,
    LocalEmbedder,
    OpenAIEmbedder,
    SimpleEmbedder,
    cosine_similarity,
    create_embedder,
    normalize_vector,
)
from engram.memory.integration import MemoryAugmenter, format_memory_context
from engram.memory.manager import MemoryStore, get_memory_store, open_store, reset_memory_store
from engram.memory.schema import MemoryCategory, MemoryEntry, MemorySearchResult

__all__ = [
    "MEMORY_MARKER",
    "AutoCapture",
    "CaptureRules",
    "EmbeddingProvider",
    "FastEmbedEmbedder",
    "LocalEmbedder",
    "MemoryAugmenter",
    "MemoryCategory",
    "MemoryEntry",
    "MemorySearchResult",
    "MemoryStore",
    "OpenAIEmbedder",
    "SimpleEmbedder",
    "cosine_similarity",
    "create_embedder",
    "format_memory_context",
    "get_memory_store",
    "normalize_vector",
    "open_store",
    "reset_memory_store",
]
