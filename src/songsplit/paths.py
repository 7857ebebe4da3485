"""Cross-platform path resolution for songsplit data directories."""

import os
from pathlib import Path

from platformdirs import user_data_dir

from songsplit.constants import APP_NAME


def get_data_dir(config_override: str = "") -> Path:
    """Resolve the songsplit data directory.

    Priority: config_override > SONGSPLIT_DATA_DIR env var > platform default.
    """
    if config_override:
        return Path(config_override).expanduser()

    env_dir = os.environ.get("SONGSPLIT_DATA_DIR")
    if env_dir:
        return Path(env_dir)

    return Path(user_data_dir(APP_NAME))


def get_sessions_dir(data_dir: Path) -> Path:
    return data_dir / "sessions"


def get_music_dir(data_dir: Path, config_override: str = "") -> Path:
    """Where cut songs land; storage.music_dir wins over the data dir."""
    if config_override:
        return Path(config_override).expanduser()
    return data_dir / "music"


def get_config_path(data_dir: Path) -> Path:
    return data_dir / "config.toml"


def ensure_dirs(data_dir: Path) -> None:
    """Create all required subdirectories if they don't exist."""
    get_sessions_dir(data_dir).mkdir(parents=True, exist_ok=True)
