"""Custom exception classes for Engram."""


class MemoryStoreError(RuntimeError):
    """Base class for all memory subsystem errors.

    None of these are retried internally. Callers at the tool boundary turn
    them into user-facing messages instead of aborting the conversation.
    """


class ConfigurationError(MemoryStoreError):
    """Embedding provider or store setup is missing or invalid.

    Raised for a missing API credential, a missing local model file, an
    unknown provider selector, or a store reopened with a different embedder.
    """


class EmbeddingFailure(MemoryStoreError):
    """Turning text into a vector failed (network, subprocess, or parse error)."""


class PersistenceError(MemoryStoreError):
    """Opening, reading, or writing the backing database failed."""


class ValidationError(MemoryStoreError, ValueError):
    """Caller input is malformed (bad memory id, missing text or query)."""


class NotFoundError(MemoryStoreError, LookupError):
    """The requested memory does not exist."""

    def __init__(self, memory_id: str):
        super().__init__(f"Memory not found: {memory_id}")
        self.memory_id = memory_id
