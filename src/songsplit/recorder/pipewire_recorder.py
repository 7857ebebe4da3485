"""PipeWire capture using a pw-record subprocess.

pw-record writes raw PCM to stdout; Python writes the WAV. The wave writer
patches the header after every chunk and the file is flushed, so the
buffer on disk is a valid, growing WAV that excerpts can be read from
while the capture is still running.
"""

from __future__ import annotations

import logging
import signal
import subprocess
import threading
import wave
from pathlib import Path
from typing import BinaryIO

from songsplit.recorder.base import Recorder, RecordingConfig, RecordingResult

logger = logging.getLogger(__name__)


class PipewireRecorder(Recorder):
    """Records the player's output (or the default sink monitor) via pw-record."""

    def __init__(self):
        self._process: subprocess.Popen | None = None
        self._config: RecordingConfig | None = None
        self._output_path: Path | None = None
        self._recording = False
        self._lock = threading.Lock()
        self._reader_thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._raw_file: BinaryIO | None = None
        self._wav_file: wave.Wave_write | None = None
        self._frames_written: int = 0
        self._target_name: str = "default"

    def start(self, output_path: Path, config: RecordingConfig) -> None:
        if self._recording:
            raise RuntimeError("Already recording")

        from songsplit.pipewire_devices import resolve_capture_target

        self._config = config
        self._output_path = output_path
        self._frames_written = 0

        target = resolve_capture_target(player=config.player, target=config.target)

        cmd = [
            "pw-record",
            "--format", "s16",
            "--rate", str(config.sample_rate),
            "--channels", str(config.channels),
        ]
        if target is not None:
            if target.is_sink:
                cmd.extend(["-P", "{ stream.capture.sink=true }"])
            cmd.extend(["--target", target.name])
            self._target_name = target.description or target.name
        cmd.append("-")  # raw PCM to stdout
        logger.debug("Running %s", " ".join(cmd))

        self._process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        self._raw_file = open(output_path, "wb")
        self._wav_file = wave.open(self._raw_file, "wb")
        self._wav_file.setnchannels(config.channels)
        self._wav_file.setsampwidth(2)  # 16-bit
        self._wav_file.setframerate(config.sample_rate)

        self._recording = True
        self._stop_event.clear()

        self._reader_thread = threading.Thread(
            target=self._pipe_reader, daemon=True
        )
        self._reader_thread.start()

    def stop(self) -> RecordingResult:
        if not self._recording:
            raise RuntimeError("Not recording")

        self._recording = False
        self._stop_event.set()

        # Gracefully stop pw-record with SIGINT
        if self._process and self._process.poll() is None:
            self._process.send_signal(signal.SIGINT)
            try:
                self._process.wait(timeout=3)
            except subprocess.TimeoutExpired:
                self._process.terminate()
                try:
                    self._process.wait(timeout=2)
                except subprocess.TimeoutExpired:
                    self._process.kill()
                    self._process.wait()

        if self._reader_thread is not None:
            self._reader_thread.join(timeout=2)

        with self._lock:
            if self._wav_file is not None:
                self._wav_file.close()
                self._wav_file = None
            if self._raw_file is not None:
                self._raw_file.close()
                self._raw_file = None

        duration = self._frames_written / self._config.sample_rate

        return RecordingResult(
            path=self._output_path,
            duration_seconds=duration,
            sample_rate=self._config.sample_rate,
            channels=self._config.channels,
            target_name=self._target_name,
        )

    def is_recording(self) -> bool:
        return self._recording

    @property
    def elapsed_seconds(self) -> float:
        """Seconds of audio captured so far.

        Counted in frames rather than wall time, so it lines up with
        positions in the buffer file.
        """
        return self._frames_written / self._config.sample_rate if self._config else 0.0

    def _pipe_reader(self) -> None:
        """Read raw PCM from pw-record stdout, append it to the WAV."""
        chunk_bytes = 4096
        bytes_per_frame = 2 * self._config.channels
        pending = b""

        while not self._stop_event.is_set():
            try:
                data = self._process.stdout.read1(chunk_bytes)
            except (OSError, ValueError):
                break
            if not data:
                break

            # Keep partial frames for the next read
            data = pending + data
            remainder = len(data) % bytes_per_frame
            pending = data[len(data) - remainder:] if remainder else b""
            data = data[:len(data) - remainder]
            if not data:
                continue

            with self._lock:
                if self._wav_file is not None:
                    self._wav_file.writeframes(data)
                    self._raw_file.flush()
                    self._frames_written += len(data) // bytes_per_frame
