"""Memory tools for recalling and capturing long-term memories."""

import logging
from typing import Optional

from engram.exceptions import MemoryStoreError
from engram.memory.schema import MemoryCategory, coerce_category

from . import tool

logger = logging.getLogger(__name__)

NO_MEMORIES_MESSAGE = "No relevant memories found."


def _get_store():
    from engram.memory import get_memory_store

    return get_memory_store()


def _category_value(category) -> Optional[str]:
    if category is None or category == "":
        return None
    return getattr(category, "value", category)


@tool
def memory_recall(query: str, limit: float = 5, category: Optional[MemoryCategory] = None) -> str:
    """Search through long-term memories. Use when you need context about user preferences, past decisions, or previously discussed topics.

    Args:
        query: Search query to find relevant memories
        limit: Maximum number of results (default: 5)
        category: Filter by memory category (optional)

    Returns:
        Ranked list of memories, or a message saying none were found
    """
    if not isinstance(query, str) or not query.strip():
        return "Memory search failed: query parameter is required"

    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return f"Memory search failed: limit must be a number, got {limit!r}"

    try:
        results = _get_store().search(query, limit=limit, category=_category_value(category))
    except MemoryStoreError as e:
        logger.warning(f"memory_recall failed: {e}")
        return f"Memory search failed: {e}"

    if not results:
        return NO_MEMORIES_MESSAGE

    lines = [f"Found {len(results)} relevant memories:", ""]
    for i, result in enumerate(results, 1):
        lines.append(f"{i}. [{result.entry.category}] (score: {result.score:.2f}) {result.entry.text}")
    return "\n".join(lines)


@tool
def memory_capture(text: str, category: MemoryCategory = MemoryCategory.OTHER, importance: float = 0.5) -> str:
    """Store important information in long-term memory. Use for user preferences, decisions, or facts that should be remembered.

    Args:
        text: The information to remember
        category: Category of the memory
        importance: Importance level 0-1 (default: 0.5)

    Returns:
        Confirmation with the new memory ID, or an error message
    """
    if not isinstance(text, str) or not text.strip():
        return "Failed to store memory: text parameter is required"

    try:
        importance = float(importance)
    except (TypeError, ValueError):
        return f"Failed to store memory: importance must be a number, got {importance!r}"
    if not 0.0 <= importance <= 1.0:
        return f"Failed to store memory: importance must be between 0 and 1, got {importance}"

    try:
        entry = _get_store().store(text, importance, coerce_category(_category_value(category)))
    except MemoryStoreError as e:
        logger.warning(f"memory_capture failed: {e}")
        return f"Failed to store memory: {e}"

    return f"Memory stored successfully (ID: {entry.id})"
