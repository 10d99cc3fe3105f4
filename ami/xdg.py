"""XDG Base Directory utilities for config and data paths."""

import os
from pathlib import Path


def get_xdg_config_path(filename: str, legacy_dir: bool = True) -> Path:
    """Get XDG-compliant config file path.

    Checks locations in order of precedence:
    1. ~/.ami/{filename} (if legacy_dir is True)
    2. $XDG_CONFIG_HOME/ami/{filename} (if XDG_CONFIG_HOME is set)
    3. ~/.config/ami/{filename} (XDG default)

    Returns the first existing file, or the preferred location for new files.

    Args:
        filename: Name of the config file (e.g., "config.json")
        legacy_dir: Whether to check ~/.ami first

    Returns:
        Path to config file
    """
    if legacy_dir:
        home_path = Path.home() / ".ami" / filename
        if home_path.exists():
            return home_path

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        xdg_path = Path(xdg_config) / "ami" / filename
        if xdg_path.exists():
            return xdg_path

    default_path = Path.home() / ".config" / "ami" / filename
    if default_path.exists():
        return default_path

    if xdg_config:
        return Path(xdg_config) / "ami" / filename
    return default_path


def get_xdg_data_path(subdir: str = "") -> Path:
    """Get XDG-compliant data directory path.

    Uses XDG Base Directory specification for data:
    - $XDG_DATA_HOME/ami/{subdir} (if XDG_DATA_HOME is set)
    - ~/.local/share/ami/{subdir} (XDG default)

    Args:
        subdir: Optional subdirectory within the ami data dir (e.g., "global")

    Returns:
        Path to data directory
    """
    xdg_data = os.environ.get("XDG_DATA_HOME", str(Path.home() / ".local" / "share"))
    data_path = Path(xdg_data) / "ami"
    if subdir:
        data_path = data_path / subdir
    return data_path
