"""Capture of the continuous audio buffer."""

from songsplit.recorder.base import Recorder, RecordingConfig, RecordingResult
from songsplit.recorder.mock_recorder import MockRecorder

__all__ = [
    "Recorder",
    "RecordingConfig",
    "RecordingResult",
    "MockRecorder",
]
