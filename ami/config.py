"""AMI configuration management."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from .xdg import get_xdg_config_path, get_xdg_data_path

logger = logging.getLogger(__name__)

DEFAULT_PAIRING_SOCKET = "/tmp/ami-pairing.sock"


class Config(BaseModel):
    """AMI configuration."""

    model_config = ConfigDict(
        extra="allow",
        str_strip_whitespace=True,
    )

    db_path: Optional[Path] = None
    global_db_path: Optional[Path] = None
    default_owner: str = "system"
    default_team: str = "system"
    embedding_model: Optional[str] = "openai:text-embedding-3-small"
    reflection_model: str = "ollama:qwen2.5-coder:1.5b"
    token_model: str = "gpt-4"
    context_token_budget: int = 4000
    semantic_candidate_pool: int = 100
    promote_min_access_count: int = 5
    promote_min_outcome: float = 0.8
    clamp_reinforced_priority: bool = False
    pairing_socket: Path = Field(default_factory=lambda: Path(DEFAULT_PAIRING_SOCKET))
    mattermost_url: Optional[str] = None


def get_config_path() -> Path:
    return get_xdg_config_path("config.json")


def resolve_db_path(config: Config) -> Path:
    """Resolve the local memory database path (env > config > XDG data dir)."""
    env_path = os.environ.get("AMI_DB_PATH")
    if env_path:
        return Path(env_path)
    if config.db_path:
        return Path(config.db_path)
    return get_xdg_data_path() / "memories.duckdb"


def resolve_global_db_path(config: Config) -> Path:
    """Resolve the shared (global) memory database used as the promotion target."""
    env_path = os.environ.get("AMI_GLOBAL_DB_PATH")
    if env_path:
        return Path(env_path)
    if config.global_db_path:
        return Path(config.global_db_path)
    return get_xdg_data_path("global") / "memories.duckdb"


def load_config(path: Optional[Path] = None) -> Config:
    """Load AMI configuration from JSON file.

    Args:
        path: Path to config.json file. If None, uses default path

    Returns:
        Config object with loaded settings. Returns default config if file doesn't exist.
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
        logger.warning("Failed to parse config at %s: %s", path, e)
        return Config()
    except Exception as e:
        logger.warning("Failed to load config from %s: %s", path, e)
        return Config()


def save_config(config: Config, path: Optional[Path] = None) -> None:
    """Save AMI configuration to JSON file.

    Args:
        config: Config object to save
        path: Path to config.json file. If None, uses default path

    Raises:
        IOError: If file cannot be written
    """
    if path is None:
        path = get_config_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    # mode="json" turns Path values into strings
    config_data = config.model_dump(exclude_none=True, mode="json")

    with open(path, "w", encoding="utf-8") as f:
        json.dump(config_data, f, indent=2)


def set_config_value(key: str, value: Any, path: Optional[Path] = None) -> Config:
    """Set a single configuration key and persist it.

    The value is validated through the Config model, so "0.9" becomes a float
    for numeric fields and unknown keys are kept as extras.

    Returns:
        The updated Config
    """
    config = load_config(path)
    data = config.model_dump()
    data[key] = value
    updated = Config.model_validate(data)
    save_config(updated, path)
    return updated
