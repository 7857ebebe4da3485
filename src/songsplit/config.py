"""Configuration loading, saving, and management."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from songsplit.constants import (
    DEFAULT_BITRATE,
    DEFAULT_CHANNELS,
    DEFAULT_EXTENSION,
    DEFAULT_LEAD_IN_SECONDS,
    DEFAULT_MAX_OFFSET,
    DEFAULT_MIN_OFFSET,
    DEFAULT_NO_NEW_SONG_TIMEOUT,
    DEFAULT_NUM_OFFSETS,
    DEFAULT_PLAYER,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_QUALITY_THRESHOLD,
    DEFAULT_READ_BUFFER,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TAIL_SECONDS,
    DEFAULT_VOLUME_WINDOW,
    DEFAULT_WAIT_BEFORE_FIRST_SONG,
    VALID_EXTENSIONS,
)


@dataclass
class RecordingDefaults:
    player: str = DEFAULT_PLAYER
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    no_new_song_timeout: float = DEFAULT_NO_NEW_SONG_TIMEOUT
    lead_in_seconds: float = DEFAULT_LEAD_IN_SECONDS
    wait_before_first_song: float = DEFAULT_WAIT_BEFORE_FIRST_SONG
    tail_seconds: float = DEFAULT_TAIL_SECONDS
    control_playback: bool = True


@dataclass
class CuttingDefaults:
    min_offset: float = DEFAULT_MIN_OFFSET
    max_offset: float = DEFAULT_MAX_OFFSET
    num_offsets: int = DEFAULT_NUM_OFFSETS
    read_buffer: float = DEFAULT_READ_BUFFER
    volume_window: int = DEFAULT_VOLUME_WINDOW
    chunk_size: int = 0
    bitrate: int = DEFAULT_BITRATE
    extension: str = DEFAULT_EXTENSION
    quality_threshold: float = DEFAULT_QUALITY_THRESHOLD


@dataclass
class StorageDefaults:
    data_dir: str = ""
    music_dir: str = ""


@dataclass
class SongsplitConfig:
    recording: RecordingDefaults = field(default_factory=RecordingDefaults)
    cutting: CuttingDefaults = field(default_factory=CuttingDefaults)
    storage: StorageDefaults = field(default_factory=StorageDefaults)

    @classmethod
    def load(cls, config_path: Path | None = None) -> SongsplitConfig:
        """Load config from TOML file, falling back to defaults for missing keys."""
        config = cls()
        if config_path is None or not config_path.exists():
            return config

        with open(config_path, "rb") as f:
            data = tomllib.load(f)

        for section_field in fields(config):
            section = getattr(config, section_field.name)
            for k, v in data.get(section_field.name, {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

        return config

    def save(self, config_path: Path) -> None:
        """Write current config to TOML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        data = self._to_dict()
        with open(config_path, "wb") as f:
            tomli_w.dump(data, f)

    def get(self, key: str) -> Any:
        """Get a config value by dotted key (e.g., 'cutting.max_offset')."""
        obj, name = self._resolve(key)
        return getattr(obj, name)

    def set(self, key: str, value: Any) -> None:
        """Set a config value by dotted key."""
        obj, name = self._resolve(key)

        current = getattr(obj, name)
        coerced = _coerce_value(value, current, key)
        _validate_value(key, coerced, self)
        setattr(obj, name, coerced)

    def _resolve(self, key: str) -> tuple[Any, str]:
        section, _, name = key.partition(".")
        if not name:
            raise KeyError(f"Invalid key format: {key!r}. Use 'section.key' (e.g., 'cutting.max_offset')")
        obj = getattr(self, section, None)
        if obj is None or section not in {f.name for f in fields(self)}:
            raise KeyError(f"Unknown config section: {section!r}")
        if not hasattr(obj, name):
            raise KeyError(f"Unknown config key: {key!r}")
        return obj, name

    def _to_dict(self) -> dict:
        """Convert config to a nested dict for TOML serialization."""
        result = {}
        for section_field in fields(self):
            section_obj = getattr(self, section_field.name)
            result[section_field.name] = {
                f.name: getattr(section_obj, f.name) for f in fields(section_obj)
            }
        return result


def _coerce_value(value: Any, current: Any, key: str) -> Any:
    """Coerce a string value to match the type of the current value."""
    if isinstance(value, str) and not isinstance(current, str):
        if isinstance(current, bool):
            if value.lower() in ("true", "1", "yes"):
                return True
            elif value.lower() in ("false", "0", "no"):
                return False
            raise ValueError(f"Cannot convert {value!r} to bool for key {key!r}")
        if isinstance(current, int):
            return int(value)
        if isinstance(current, float):
            return float(value)
    if isinstance(current, float) and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


def _validate_value(key: str, value: Any, config: SongsplitConfig) -> None:
    """Validate a config value, including its relation to sibling keys."""
    positive = (
        "recording.sample_rate",
        "recording.channels",
        "recording.poll_timeout",
        "recording.no_new_song_timeout",
        "cutting.num_offsets",
        "cutting.volume_window",
        "cutting.bitrate",
    )
    non_negative = (
        "recording.lead_in_seconds",
        "recording.wait_before_first_song",
        "recording.tail_seconds",
        "cutting.read_buffer",
        "cutting.chunk_size",
        "cutting.quality_threshold",
    )
    name = key.partition(".")[2]
    if key in positive and value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    if key in non_negative and value < 0:
        raise ValueError(f"{name} must be >= 0, got {value}")
    if key == "cutting.min_offset" and value >= config.cutting.max_offset:
        raise ValueError(f"min_offset must be below max_offset ({config.cutting.max_offset}), got {value}")
    if key == "cutting.max_offset" and value <= config.cutting.min_offset:
        raise ValueError(f"max_offset must be above min_offset ({config.cutting.min_offset}), got {value}")
    if key == "cutting.extension" and value not in VALID_EXTENSIONS:
        raise ValueError(f"Invalid extension: {value!r}. Choose from: {', '.join(VALID_EXTENSIONS)}")
