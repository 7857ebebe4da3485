"""Sample-accurate time model tying seconds to PCM frame and sample indices."""

from __future__ import annotations

import math
import wave
from dataclasses import dataclass
from pathlib import Path


class AudioFormatMismatch(AssertionError):
    """Two AudioTime values from different formats were combined.

    A single session never produces two formats, so this is a bug, not a
    condition to recover from.
    """


@dataclass(frozen=True)
class AudioFormat:
    """PCM layout of a buffer file."""
    sample_rate: int
    channels: int
    sample_width: int = 2  # bytes per sample

    @property
    def full_scale(self) -> int:
        """Magnitude of the most negative sample value (32768 for 16-bit)."""
        return 2 ** (8 * self.sample_width - 1)

    @property
    def bytes_per_frame(self) -> int:
        return self.sample_width * self.channels

    @classmethod
    def from_wave(cls, path: Path) -> AudioFormat:
        with wave.open(str(path), "rb") as wf:
            return cls(
                sample_rate=wf.getframerate(),
                channels=wf.getnchannels(),
                sample_width=wf.getsampwidth(),
            )


@dataclass(frozen=True)
class AudioTime:
    """A point in a recording, in seconds and in frames of a given format.

    ``frame_index`` is ``floor(seconds * sample_rate)``; ``sample_index`` is
    the matching position in the interleaved sample stream and is always a
    multiple of the channel count. Ordering looks at ``seconds`` only.
    """
    seconds: float
    frame_index: int
    sample_index: int
    format: AudioFormat

    @classmethod
    def from_seconds(cls, seconds: float, fmt: AudioFormat) -> AudioTime:
        frame_index = math.floor(seconds * fmt.sample_rate)
        return cls(
            seconds=seconds,
            frame_index=frame_index,
            sample_index=frame_index * fmt.channels,
            format=fmt,
        )

    @classmethod
    def same_format(cls, seconds: float, other: AudioTime) -> AudioTime:
        return cls.from_seconds(seconds, other.format)

    def _check_format(self, other: AudioTime) -> None:
        if self.format != other.format:
            raise AudioFormatMismatch(
                f"Cannot combine audio times of different formats: {self.format} vs {other.format}"
            )

    def __add__(self, other: AudioTime) -> AudioTime:
        if not isinstance(other, AudioTime):
            return NotImplemented
        self._check_format(other)
        return AudioTime.same_format(self.seconds + other.seconds, self)

    def __sub__(self, other: AudioTime) -> AudioTime:
        if not isinstance(other, AudioTime):
            return NotImplemented
        self._check_format(other)
        return AudioTime.same_format(self.seconds - other.seconds, self)

    def __lt__(self, other: AudioTime) -> bool:
        if not isinstance(other, AudioTime):
            return NotImplemented
        return self.seconds < other.seconds

    def __le__(self, other: AudioTime) -> bool:
        if not isinstance(other, AudioTime):
            return NotImplemented
        return self.seconds <= other.seconds

    def __gt__(self, other: AudioTime) -> bool:
        if not isinstance(other, AudioTime):
            return NotImplemented
        return self.seconds > other.seconds

    def __ge__(self, other: AudioTime) -> bool:
        if not isinstance(other, AudioTime):
            return NotImplemented
        return self.seconds >= other.seconds
