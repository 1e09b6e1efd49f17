"""Engram configuration management."""

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .xdg import find_config_file, get_default_db_path

logger = logging.getLogger(__name__)


class StoreConfig(BaseModel):
    """Memory store configuration.

    Immutable once built; derive variants with ``model_copy(update=...)``.
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
    )

    db_path: Optional[Path] = None
    embedding_provider: str = "simple"  # simple, openai, local, fastembed
    embedding_model: Optional[str] = None
    api_key: Optional[str] = Field(default=None, repr=False)
    api_base_url: str = "https://api.openai.com/v1"
    local_model_path: Optional[Path] = None
    min_score: float = 0.5
    max_results: int = Field(default=5, gt=0)
    auto_capture: bool = True
    candidate_window: int = Field(default=1000, gt=0)
    request_timeout: float = Field(default=30.0, gt=0)

    def resolved_db_path(self) -> Path:
        """Database file path, falling back to the XDG data directory."""
        if self.db_path is not None:
            return Path(self.db_path).expanduser()
        return get_default_db_path()


class Config(BaseModel):
    """Engram configuration."""

    model_config = ConfigDict(extra="allow")

    memory: StoreConfig = Field(default_factory=StoreConfig)


def get_config_path() -> Path:
    return find_config_file("config.json")


def load_config(path: Optional[Path] = None) -> Config:
    """Load Engram configuration from JSON file.

    Args:
        path: Path to config.json file. If None, uses default path

    Returns:
        Config object with loaded settings. Returns default config if the file
        doesn't exist or can't be parsed.
    """
    if path is None:
        path = get_config_path()

    if not path.exists():
        return Config()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return Config.model_validate(data)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse config at {path}: {e}")
        return Config()
    except Exception as e:
        logger.warning(f"Failed to load config from {path}: {e}")
        return Config()


def save_config(config: Config, path: Optional[Path] = None) -> None:
    """Save Engram configuration to JSON file.

    Args:
        config: Config object to save
        path: Path to config.json file. If None, uses default path

    Raises:
        IOError: If file cannot be written
    """
    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    # Use Pydantic's model_dump to serialize, excluding None values for cleaner output
    config_data = config.model_dump(exclude_none=True, mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(config_data, f, indent=2)
