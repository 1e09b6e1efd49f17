"""Heuristic auto-capture: decide which conversation text is worth remembering."""

import logging
import re
from typing import TYPE_CHECKING, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from engram.memory.schema import MemoryCategory, MemoryEntry

if TYPE_CHECKING:
    from engram.memory.manager import MemoryStore

logger = logging.getLogger(__name__)

# Wraps recalled memories injected into a prompt; never re-captured
MEMORY_MARKER = "<relevant-memories>"

PHONE_PATTERN = r"\+\d{10,}"
EMAIL_PATTERN = r"[\w.-]+@[\w.-]+\.\w+"
PREFERENCE_PATTERN = r"prefer|radši|like|love|hate|want"
DECISION_PATTERN = r"decided|rozhodli|will use|budeme"

DEFAULT_TRIGGERS = (
    r"remember|zapamatuj|pamatuj",
    PREFERENCE_PATTERN + r"|need",
    DECISION_PATTERN,
    PHONE_PATTERN,
    EMAIL_PATTERN,
    r"můj\s+\w+\s+je|je\s+můj",
    r"my\s+\w+\s+is|is\s+my",
    r"always|never|important",
)

# Order is priority: the first matching pattern decides the category
DEFAULT_CATEGORY_RULES = (
    (PREFERENCE_PATTERN, MemoryCategory.PREFERENCE),
    (DECISION_PATTERN, MemoryCategory.DECISION),
    (PHONE_PATTERN + r"|@[\w.-]+\.\w+|is called|jmenuje se", MemoryCategory.ENTITY),
    (r"\b(?:is|are|has|have|je|má|jsou)\b", MemoryCategory.FACT),
)

DEFAULT_IMPORTANCE_RULES = (
    (r"important", 0.8),
    (r"always|never", 0.7),
)


class CaptureRules(BaseModel):
    """Tunable rule tables for auto-capture.

    All patterns are matched case-insensitively. Adding a trigger or a
    category is a data change here, not a code change in AutoCapture.
    """

    model_config = ConfigDict(frozen=True)

    min_length: int = 10
    max_length: int = 500
    memory_marker: str = MEMORY_MARKER
    max_emoji: int = 3
    emoji_range: Tuple[int, int] = (0x1F300, 0x1F9FF)
    triggers: List[str] = Field(default_factory=lambda: list(DEFAULT_TRIGGERS))
    category_rules: List[Tuple[str, MemoryCategory]] = Field(default_factory=lambda: list(DEFAULT_CATEGORY_RULES))
    importance_rules: List[Tuple[str, float]] = Field(default_factory=lambda: list(DEFAULT_IMPORTANCE_RULES))
    base_importance: float = 0.5


class AutoCapture:
    """Rule-based gate that turns conversation text into categorized memories.

    Keeps no state between calls: each decision depends only on the text and
    the rules.
    """

    def __init__(
        self,
        store: Optional["MemoryStore"],
        rules: Optional[CaptureRules] = None,
        enabled: Optional[bool] = None,
    ):
        """Initialize auto-capture.

        Args:
            store: Store that accepted memories are written to (None for classify-only use)
            rules: Rule tables (defaults if None)
            enabled: Override the store's ``auto_capture`` setting
        """
        if enabled is None:
            enabled = store.config.auto_capture if store is not None else True

        self.store = store
        self.rules = rules or CaptureRules()
        self.enabled = enabled

        self._triggers = [re.compile(p, re.IGNORECASE) for p in self.rules.triggers]
        self._category_rules = [(re.compile(p, re.IGNORECASE), c) for p, c in self.rules.category_rules]
        self._importance_rules = [(re.compile(p, re.IGNORECASE), v) for p, v in self.rules.importance_rules]

    def _count_emoji(self, text: str) -> int:
        low, high = self.rules.emoji_range
        return sum(1 for ch in text if low <= ord(ch) <= high)

    def should_capture(self, text: str) -> bool:
        """Decide whether text is worth remembering.

        Rules are checked in order and the first failing one rejects: length
        window, injected-memory marker, markup wrapper, emoji noise, and
        finally at least one trigger pattern must match.
        """
        if not (self.rules.min_length <= len(text) <= self.rules.max_length):
            return False

        if self.rules.memory_marker in text:
            return False

        if text.startswith("<") and "</" in text:
            return False

        if self._count_emoji(text) > self.rules.max_emoji:
            return False

        return any(trigger.search(text) for trigger in self._triggers)

    def detect_category(self, text: str) -> MemoryCategory:
        for pattern, category in self._category_rules:
            if pattern.search(text):
                return category
        return MemoryCategory.OTHER

    def importance(self, text: str) -> float:
        """Highest applicable importance bump; bumps never add up."""
        bumps = [value for pattern, value in self._importance_rules if pattern.search(text)]
        return max([self.rules.base_importance] + bumps)

    def capture(self, text: str, session_key: Optional[str] = None) -> Optional[MemoryEntry]:
        """Store text as a memory if the rules accept it.

        Returns:
            The stored entry, or None if capture is disabled or the text was rejected

        Raises:
            EmbeddingFailure: If embedding fails
            PersistenceError: If the write fails
        """
        if not self.enabled or not self.should_capture(text):
            return None

        category = self.detect_category(text)
        entry = self.store.store(text, self.importance(text), category.value, session_key)
        logger.debug(f"Auto-captured memory {entry.id} [{entry.category}] importance={entry.importance}")
        return entry
