"""Background recording: capture the buffer while following the player.

Usage::

    cancel = threading.Event()
    handle = start_recording(source, control, buffer_file, settings, cancel,
                             recorder=PipewireRecorder(), persist=save)
    while handle.is_alive():
        for song in handle.drain_songs():
            print(song)
        time.sleep(0.25)
    outcome = handle.result()

The worker owns the recorder and the event source for its whole lifetime
and talks to the caller only through the outbound song queue, the
cancellation event and the final outcome.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from songsplit.constants import (
    DEFAULT_CHANNELS,
    DEFAULT_LEAD_IN_SECONDS,
    DEFAULT_NO_NEW_SONG_TIMEOUT,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_SAMPLE_RATE,
    DEFAULT_TAIL_SECONDS,
    DEFAULT_WAIT_BEFORE_FIRST_SONG,
)
from songsplit.events import PlayerEvent
from songsplit.recorder.base import Recorder, RecordingConfig
from songsplit.session import RecordingSession
from songsplit.song import Song
from songsplit.timeline import RecordingExitStatus, TimelineReconstructor

logger = logging.getLogger(__name__)

SONG_QUEUE_SIZE = 64


class EventSource(Protocol):
    def start(self) -> None: ...

    def poll(self, timeout: float) -> Optional[PlayerEvent]: ...

    def close(self) -> None: ...


class PlaybackControl(Protocol):
    def play(self) -> None: ...

    def pause(self) -> None: ...

    def previous(self) -> None: ...


@dataclass
class RecordingSettings:
    """Timing of one recording run."""
    sample_rate: int = DEFAULT_SAMPLE_RATE
    channels: int = DEFAULT_CHANNELS
    player: Optional[str] = None
    poll_timeout: float = DEFAULT_POLL_TIMEOUT
    no_new_song_timeout: float = DEFAULT_NO_NEW_SONG_TIMEOUT
    lead_in_seconds: float = DEFAULT_LEAD_IN_SECONDS
    wait_before_first_song: float = DEFAULT_WAIT_BEFORE_FIRST_SONG
    tail_seconds: float = DEFAULT_TAIL_SECONDS

    @classmethod
    def from_config(cls, recording) -> RecordingSettings:
        """Build from the ``recording`` section of a SongsplitConfig."""
        return cls(
            sample_rate=recording.sample_rate,
            channels=recording.channels,
            player=recording.player,
            poll_timeout=recording.poll_timeout,
            no_new_song_timeout=recording.no_new_song_timeout,
            lead_in_seconds=recording.lead_in_seconds,
            wait_before_first_song=recording.wait_before_first_song,
            tail_seconds=recording.tail_seconds,
        )


@dataclass
class RecordingOutcome:
    session: RecordingSession
    status: RecordingExitStatus
    duration: float  # seconds of buffer captured


class RecordingThread:
    """Worker that records one session.

    Parameters
    ----------
    source : EventSource
        Player events; started once the lead-in is over.
    control : PlaybackControl
        Used for the lead-in and to start the first song.
    buffer_file : Path
        Where the capture is written (or being written, without a recorder).
    settings : RecordingSettings
    cancel : threading.Event
        Set by the caller to stop early. The tail is cut short too.
    recorder : Recorder, optional
        Capture to run. Without one the buffer is assumed to be written by
        another process and the time base is read from its header.
    session : RecordingSession, optional
        A session to resume. It keeps its first-song estimate and no
        lead-in is played.
    persist : callable, optional
        Called with the session after every new song and at the end.
    clock : callable
        Time source for the no-new-song watchdog.
    """

    def __init__(
        self,
        source: EventSource,
        control: PlaybackControl,
        buffer_file: Path,
        settings: RecordingSettings,
        cancel: threading.Event,
        recorder: Optional[Recorder] = None,
        session: Optional[RecordingSession] = None,
        persist: Optional[Callable[[RecordingSession], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._source = source
        self._control = control
        self._buffer_file = buffer_file
        self._settings = settings
        self._cancel = cancel
        self._recorder = recorder
        self._session = session
        self._persist = persist
        self._clock = clock
        self._songs: queue.Queue = queue.Queue(maxsize=SONG_QUEUE_SIZE)
        self._outcome: RecordingOutcome | None = None
        self._error: Exception | None = None
        self._worker: threading.Thread | None = None

    # -- public API --

    def start(self) -> None:
        """Start the background worker thread."""
        self._worker = threading.Thread(target=self._run, daemon=True)
        self._worker.start()

    def is_alive(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    def drain_songs(self) -> list[Song]:
        """Songs recorded since the last call, without blocking."""
        songs = []
        while True:
            try:
                songs.append(self._songs.get_nowait())
            except queue.Empty:
                return songs

    def result(self, timeout: float | None = None) -> RecordingOutcome:
        """Wait for the worker and return its outcome.

        Raises the worker's error, if any, or TimeoutError if it is still
        running after *timeout* seconds.
        """
        if self._worker is not None:
            self._worker.join(timeout=timeout)
            if self._worker.is_alive():
                raise TimeoutError("Recording is still running")
        if self._error is not None:
            raise self._error
        return self._outcome

    # -- internal --

    def _run(self) -> None:
        try:
            self._outcome = self._record()
        except Exception as exc:
            logger.exception("Recording failed")
            self._error = exc

    def _record(self) -> RecordingOutcome:
        try:
            try:
                if self._recorder is not None:
                    self._recorder.start(self._buffer_file, RecordingConfig(
                        sample_rate=self._settings.sample_rate,
                        channels=self._settings.channels,
                        player=self._settings.player,
                    ))
                if self._session is None:
                    self._session = self._start_new_session()
                else:
                    self._source.start()
                status = self._follow(TimelineReconstructor(self._session))
            finally:
                self._source.close()

            if self._settings.tail_seconds > 0 and not self._cancel.is_set():
                logger.info("Recording %.1fs tail", self._settings.tail_seconds)
                self._cancel.wait(self._settings.tail_seconds)
        finally:
            duration = self._stop_capture()

        self._save()
        return RecordingOutcome(session=self._session, status=status, duration=duration)

    def _start_new_session(self) -> RecordingSession:
        # Rewinding after a short lead-in guarantees audio before the
        # first song starts, so its start boundary can be searched too.
        if self._settings.lead_in_seconds > 0:
            self._control.play()
            self._cancel.wait(self._settings.lead_in_seconds)
            self._control.pause()
            self._control.previous()
            self._cancel.wait(self._settings.wait_before_first_song)

        self._source.start()
        session = RecordingSession(estimated_time_first_song=self._elapsed())
        logger.info("First song expected at %.3fs", session.estimated_time_first_song)
        self._control.play()
        return session

    def _follow(self, reconstructor: TimelineReconstructor) -> RecordingExitStatus:
        last_new_song = self._clock()
        while not self._cancel.is_set():
            if self._clock() - last_new_song > self._settings.no_new_song_timeout:
                logger.warning(
                    "No new song for %.0fs, stopping", self._settings.no_new_song_timeout
                )
                return RecordingExitStatus.NO_NEW_SONG_FOR_TOO_LONG

            event = self._source.poll(self._settings.poll_timeout)
            if event is None:
                continue
            song = reconstructor.feed(event)
            if song is not None:
                last_new_song = self._clock()
                self._save()
                self._publish(song)
            if reconstructor.finished:
                break
        return RecordingExitStatus.FINISHED_OR_INTERRUPTED

    def _publish(self, song: Song) -> None:
        while not self._cancel.is_set():
            try:
                self._songs.put(song, timeout=self._settings.poll_timeout)
                return
            except queue.Full:
                continue

    def _save(self) -> None:
        if self._persist is not None:
            self._persist(self._session)

    def _elapsed(self) -> float:
        if self._recorder is not None:
            return self._recorder.elapsed_seconds
        return buffer_seconds(self._buffer_file)

    def _stop_capture(self) -> float:
        if self._recorder is None:
            return buffer_seconds(self._buffer_file)
        if not self._recorder.is_recording():
            # start() failed
            return 0.0
        return self._recorder.stop().duration_seconds


def buffer_seconds(buffer_file: Path) -> float:
    """Seconds currently held by a (possibly growing) WAV buffer."""
    with wave.open(str(buffer_file), "rb") as wf:
        return wf.getnframes() / wf.getframerate()


def start_recording(
    source: EventSource,
    control: PlaybackControl,
    buffer_file: Path,
    settings: RecordingSettings,
    cancel: threading.Event,
    recorder: Optional[Recorder] = None,
    session: Optional[RecordingSession] = None,
    persist: Optional[Callable[[RecordingSession], None]] = None,
    clock: Callable[[], float] = time.monotonic,
) -> RecordingThread:
    """Create and start a recording worker. Returns its handle."""
    thread = RecordingThread(
        source,
        control,
        buffer_file,
        settings,
        cancel,
        recorder=recorder,
        session=session,
        persist=persist,
        clock=clock,
    )
    thread.start()
    return thread

