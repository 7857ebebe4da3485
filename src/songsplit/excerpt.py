"""Short in-memory PCM windows read from the capture buffer.

An excerpt is taken around each inferred song boundary. Its windowed
volume is the silence detector the offset search runs against: digital
silence reads as ~0, music reads well above it.
"""

from __future__ import annotations

import logging
import wave
from pathlib import Path

import numpy as np

from songsplit.audio_time import AudioFormat, AudioTime
from songsplit.constants import DEFAULT_VOLUME_WINDOW

logger = logging.getLogger(__name__)


class InsufficientDataError(Exception):
    """The requested window runs past what has been captured so far."""

    def __init__(self, path: Path, requested: int, available: int):
        super().__init__(
            f"{path}: requested {requested} frames, only {available} available"
        )
        self.path = path
        self.requested = requested
        self.available = available


class AudioExcerpt:
    """A window of interleaved 16-bit PCM with its position in the buffer.

    Parameters
    ----------
    samples : np.ndarray
        int16 samples shaped ``(frames, channels)``. The excerpt takes
        ownership; callers should not keep mutating the array.
    start, end : AudioTime
        Time of the first frame and of the end of the window.
    fmt : AudioFormat
        Format the samples were read under.
    volume_window : int
        Number of frames averaged by :meth:`volume_at`.
    """

    def __init__(
        self,
        samples: np.ndarray,
        start: AudioTime,
        end: AudioTime,
        fmt: AudioFormat,
        volume_window: int = DEFAULT_VOLUME_WINDOW,
    ):
        if samples.ndim == 1:
            samples = samples.reshape(-1, fmt.channels)
        if len(samples) == 0:
            raise ValueError("An audio excerpt needs at least one frame")
        if volume_window <= 0:
            raise ValueError(f"volume_window must be positive, got {volume_window}")
        self.samples = samples
        self.start = start
        self.end = end
        self.format = fmt
        self.volume_window = volume_window

        # Channel-averaged absolute level per frame, normalised to [0, 1].
        levels = np.abs(samples.astype(np.float64).mean(axis=1)) / fmt.full_scale
        self._cumulative = np.concatenate(([0.0], np.cumsum(levels)))

    def volume_at(self, seconds: float) -> float:
        """Mean normalised amplitude over ``volume_window`` frames centred on *seconds*."""
        return float(self.volumes_at(np.array([seconds]))[0])

    def volumes_at(self, times: np.ndarray) -> np.ndarray:
        """Vectorised :meth:`volume_at` over an array of times."""
        n = len(self.samples)
        width = min(self.volume_window, n)
        frames = np.floor(np.asarray(times, dtype=np.float64) * self.format.sample_rate)
        index = frames.astype(np.int64) - self.start.frame_index
        index = np.clip(index, 0, n - 1)
        lo = np.clip(index - width // 2, 0, n - width)
        hi = lo + width
        return (self._cumulative[hi] - self._cumulative[lo]) / width

    def volume_profile(self, n: int) -> list[tuple[float, float]]:
        """*n* evenly spaced ``(seconds, volume)`` pairs across the excerpt."""
        if n <= 0:
            return []
        times = np.linspace(self.start.seconds, self.end.seconds, n, endpoint=False)
        volumes = self.volumes_at(times)
        return [(float(t), float(v)) for t, v in zip(times, volumes)]


def extract_excerpt(
    buffer_file: Path,
    start_seconds: float,
    end_seconds: float,
    volume_window: int = DEFAULT_VOLUME_WINDOW,
) -> AudioExcerpt:
    """Read the frames spanning ``[start_seconds, end_seconds)`` from a WAV buffer.

    Raises InsufficientDataError when the buffer does not (yet) hold the
    whole window. A window starting before the recording is clamped to 0.
    """
    if end_seconds <= start_seconds:
        raise ValueError(f"Empty excerpt window: {start_seconds} .. {end_seconds}")

    with wave.open(str(buffer_file), "rb") as wf:
        fmt = AudioFormat(
            sample_rate=wf.getframerate(),
            channels=wf.getnchannels(),
            sample_width=wf.getsampwidth(),
        )
        if fmt.sample_width != 2:
            raise ValueError(
                f"Only 16-bit PCM buffers are supported, got {8 * fmt.sample_width}-bit"
            )

        start = AudioTime.from_seconds(max(start_seconds, 0.0), fmt)
        end = AudioTime.from_seconds(end_seconds, fmt)
        num_frames = (end - start).frame_index
        if num_frames <= 0:
            raise ValueError(f"Excerpt window ends before the recording: {end_seconds}")
        available = wf.getnframes()
        if start.frame_index + num_frames > available:
            raise InsufficientDataError(
                buffer_file, num_frames, max(available - start.frame_index, 0)
            )

        wf.setpos(start.frame_index)
        raw = wf.readframes(num_frames)

    samples = np.frombuffer(raw, dtype="<i2").reshape(-1, fmt.channels).copy()
    if len(samples) != num_frames:
        raise InsufficientDataError(buffer_file, num_frames, len(samples))

    logger.debug(
        "Read %d frames from %s at %.3fs", num_frames, buffer_file.name, start.seconds
    )
    return AudioExcerpt(samples, start, end, fmt, volume_window=volume_window)
