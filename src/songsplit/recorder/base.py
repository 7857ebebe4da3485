"""Abstract capture interface and shared data types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from songsplit.constants import DEFAULT_CHANNELS, DEFAULT_SAMPLE_RATE


@dataclass
class RecordingConfig:
    """How to capture the buffer."""
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    player: Optional[str] = None  # capture this player's stream if found
    target: Optional[str] = None  # explicit sink name, wins over player


@dataclass
class RecordingResult:
    """Result of a completed capture."""
    path: Path
    duration_seconds: float
    sample_rate: int
    channels: int
    target_name: str


class Recorder(ABC):
    """Writes captured audio into a WAV buffer that stays readable while growing."""

    @abstractmethod
    def start(self, output_path: Path, config: RecordingConfig) -> None:
        """Begin recording to the given path."""
        ...

    @abstractmethod
    def stop(self) -> RecordingResult:
        """Stop recording and finalize the file. Returns result metadata."""
        ...

    @abstractmethod
    def is_recording(self) -> bool:
        """Whether a recording is currently active."""
        ...

    @property
    @abstractmethod
    def elapsed_seconds(self) -> float:
        """Seconds elapsed since recording started."""
        ...
