"""Where engram keeps its files: config, the memory database, local models.

Follows the XDG base directory layout, with ``~/.engram`` as a legacy home
that also holds locally downloaded embedding models.
"""

import os
from pathlib import Path
from typing import List

APP_DIR = "engram"
DB_FILENAME = "vector.duckdb"


def _legacy_dir() -> Path:
    return Path.home() / f".{APP_DIR}"


def _base_dir(env_var: str, *default: str) -> Path:
    value = os.environ.get(env_var)
    return Path(value) if value else Path.home().joinpath(*default)


def config_candidates(filename: str) -> List[Path]:
    """Config file locations, highest precedence first.

    ``~/.engram``, then ``$XDG_CONFIG_HOME/engram`` when set, then
    ``~/.config/engram``.
    """
    candidates = [_legacy_dir() / filename]
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        candidates.append(Path(xdg_config) / APP_DIR / filename)
    candidates.append(Path.home() / ".config" / APP_DIR / filename)
    return candidates


def find_config_file(filename: str = "config.json") -> Path:
    """First existing config file, or where a new one should be written.

    New files never go to the legacy directory.
    """
    candidates = config_candidates(filename)
    for path in candidates:
        if path.exists():
            return path
    return candidates[1]


def get_data_dir(subdir: str = "") -> Path:
    data_path = _base_dir("XDG_DATA_HOME", ".local", "share") / APP_DIR
    return data_path / subdir if subdir else data_path


def get_default_db_path() -> Path:
    """Memory database used when the config names none."""
    return get_data_dir("memory") / DB_FILENAME


def get_models_dir() -> Path:
    """Directory searched for local embedding models when none is configured."""
    return _legacy_dir() / "models" / "embeddings"
