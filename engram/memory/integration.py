"""Hooks for wiring memory into an agent turn.

Memory is best-effort: failures here are logged and never break the turn.
"""

import logging
from typing import List, Optional

from engram.exceptions import MemoryStoreError
from engram.memory.capture import MEMORY_MARKER, AutoCapture
from engram.memory.manager import MemoryStore
from engram.memory.schema import MemoryEntry, MemorySearchResult

logger = logging.getLogger(__name__)

MEMORY_MARKER_END = "</relevant-memories>"


def format_memory_context(results: List[MemorySearchResult]) -> str:
    """Render recalled memories as a block to prepend to a prompt."""
    if not results:
        return ""

    lines = [MEMORY_MARKER, "The following information from previous conversations may be relevant:", ""]
    for i, result in enumerate(results, 1):
        lines.append(f"{i}. [{result.entry.category}] {result.entry.text}")
    lines.append(MEMORY_MARKER_END)
    return "\n".join(lines) + "\n\n"


class MemoryAugmenter:
    """Recall memories before a turn and auto-capture after it."""

    def __init__(
        self,
        store: MemoryStore,
        auto_capture: Optional[AutoCapture] = None,
        limit: int = 3,
        min_score: float = 0.6,
    ):
        self.store = store
        self.auto_capture = auto_capture or AutoCapture(store)
        self.limit = limit
        self.min_score = min_score

    def augment(self, content: str) -> str:
        """Prepend relevant memories to the user's message, if any."""
        try:
            results = self.store.search(content, self.limit, self.min_score)
        except MemoryStoreError as e:
            logger.warning(f"Failed to search memories: {e}")
            return content

        return format_memory_context(results) + content

    def observe(self, user_text: str, response: str, session_key: Optional[str] = None) -> List[MemoryEntry]:
        """Offer both sides of a finished turn to auto-capture.

        Returns:
            Entries that were captured
        """
        captured = []
        for text in (user_text, response):
            if not text:
                continue
            try:
                entry = self.auto_capture.capture(text, session_key)
            except MemoryStoreError as e:
                logger.warning(f"Failed to auto-capture memory: {e}")
                continue
            if entry is not None:
                captured.append(entry)
        return captured
