"""Memory data structures."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class MemoryCategory(str, Enum):
    """Fixed set of memory categories."""

    PREFERENCE = "preference"  # likes, dislikes
    DECISION = "decision"
    ENTITY = "entity"  # people, places, contact details
    FACT = "fact"
    OTHER = "other"


CATEGORY_VALUES = tuple(c.value for c in MemoryCategory)

UUID_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$")


def coerce_category(value) -> str:
    """Return the category value, or ``other`` for anything outside the set."""
    if isinstance(value, MemoryCategory):
        return value.value
    if isinstance(value, str) and value in CATEGORY_VALUES:
        return value
    return MemoryCategory.OTHER.value


def is_valid_memory_id(memory_id: str) -> bool:
    """Check for canonical UUID text form, ignoring case."""
    return isinstance(memory_id, str) and UUID_PATTERN.match(memory_id.lower()) is not None


@dataclass
class MemoryEntry:
    """A single remembered fact with its embedding."""

    id: str
    text: str
    vector: List[float] = field(default_factory=list, repr=False)
    importance: float = 0.5
    category: str = MemoryCategory.OTHER.value
    session_key: Optional[str] = None
    created_at: Optional[datetime] = None

    def to_dict(self, include_vector: bool = False) -> dict:
        data = {
            "id": self.id,
            "text": self.text,
            "importance": round(self.importance, 4),
            "category": self.category,
            "session_key": self.session_key,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_vector:
            data["vector"] = list(self.vector)
        return data


@dataclass
class MemorySearchResult:
    """A memory returned by search, with its cosine similarity to the query."""

    entry: MemoryEntry
    score: float

    def to_dict(self) -> dict:
        return {**self.entry.to_dict(), "score": round(self.score, 4)}
