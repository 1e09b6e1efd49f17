"""Test configuration and fixtures."""

import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config, data and model lookups out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(home / ".config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(home / ".local" / "share"))
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    return home


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture(autouse=True)
def reset_tool_registry():
    """Restore the tool registry after each test."""
    from engram.tools import _tools

    original_tools = _tools.copy()
    yield
    _tools.clear()
    _tools.update(original_tools)


@pytest.fixture
def empty_tool_registry(reset_tool_registry):
    """Start a test with no registered tools."""
    from engram.tools import _tools

    _tools.clear()


@pytest.fixture(autouse=True)
def reset_memory_singleton():
    """Make sure no test leaks the process-wide store."""
    from engram.memory import reset_memory_store

    reset_memory_store()
    yield
    reset_memory_store()


@pytest.fixture
def db_path(temp_dir: Path) -> Path:
    return temp_dir / "memory" / "vector.duckdb"


@pytest.fixture
def store_config(db_path: Path):
    from engram.config import StoreConfig

    return StoreConfig(db_path=db_path)


@pytest.fixture
def store(store_config):
    """A memory store using the default vocabulary embedder."""
    from engram.memory import MemoryStore

    memory_store = MemoryStore(store_config)
    yield memory_store
    memory_store.close()
