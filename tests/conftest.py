"""Shared test fixtures."""

import time
import wave
from pathlib import Path

import numpy as np
import pytest

from songsplit.session import RecordingSession
from songsplit.song import Song

BUFFER_RATE = 8000
SILENCE_OFFSET = 1.2
SILENCE_HALF_WIDTH = 0.01


def write_wav(path: Path, samples: np.ndarray, sample_rate: int = BUFFER_RATE, channels: int = 1):
    """Write interleaved int16 samples as a WAV file."""
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(samples.astype("<i2").tobytes())


def tone(duration: float, sample_rate: int = BUFFER_RATE, freq: float = 440.0) -> np.ndarray:
    t = np.arange(int(duration * sample_rate)) / sample_rate
    return (np.sin(2 * np.pi * freq * t) * 16000).astype(np.int16)


def make_song(title: str, length: float, track: int = 1) -> Song:
    return Song(artist="Artist", album="Album", title=title, track_number=track, length=length)


def make_session(lengths, first: float = 4.0) -> RecordingSession:
    songs = [make_song(f"Song {i + 1}", length, track=i + 1) for i, length in enumerate(lengths)]
    return RecordingSession(estimated_time_first_song=first, songs=songs)


class FakeSource:
    """Event source replaying a list of player events, then reporting nothing."""

    def __init__(self, events, log=None):
        self.events = list(events)
        self.log = log if log is not None else []
        self.closed = False

    def start(self):
        self.log.append("start")

    def poll(self, timeout):
        if self.events:
            return self.events.pop(0)
        time.sleep(min(timeout, 0.01))
        return None

    def close(self):
        self.closed = True


class FakeControl:
    def __init__(self, log=None):
        self.log = log if log is not None else []

    def play(self):
        self.log.append("play")

    def pause(self):
        self.log.append("pause")

    def previous(self):
        self.log.append("previous")


@pytest.fixture
def make_wav(tmp_path):
    """Factory writing a WAV into tmp_path; returns its path."""

    def _create(samples, name="buffer.wav", sample_rate=BUFFER_RATE, channels=1):
        path = tmp_path / name
        write_wav(path, samples, sample_rate, channels)
        return path

    return _create


@pytest.fixture
def boundary_buffer(tmp_path):
    """Factory for a tone buffer that is silent only around drifted boundaries.

    Every boundary ``b`` of the session gets 20ms of digital silence centred
    on ``b + offset``; everything else is a 440 Hz tone.
    """

    def _create(session, duration, offset=SILENCE_OFFSET, name="buffer.wav"):
        samples = tone(duration)
        for boundary in session.nominal_boundaries():
            lo = int(round((boundary + offset - SILENCE_HALF_WIDTH) * BUFFER_RATE))
            hi = int(round((boundary + offset + SILENCE_HALF_WIDTH) * BUFFER_RATE))
            samples[max(lo, 0):max(hi, 0)] = 0
        path = tmp_path / name
        write_wav(path, samples)
        return path

    return _create
