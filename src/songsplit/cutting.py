"""Background cutting: run the external cutter over a plan, in order.

Usage::

    cutter = start_cutting(bitrate=320, extension="opus")
    cutter.submit(plan.entries)
    # ... poll cutter.drain_results() for progress ...
    results = cutter.finish()  # blocks until every song is processed
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from songsplit.constants import DEFAULT_BITRATE, DEFAULT_EXTENSION
from songsplit.cut import CutError, CutInfo, cut_song

logger = logging.getLogger(__name__)

QUEUE_SIZE = 256
PUT_INTERVAL = 0.1  # seconds between retries while the inbox is full


@dataclass(frozen=True)
class CutResult:
    info: CutInfo
    error: Optional[CutError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CuttingThread:
    """Cuts songs one at a time on a worker thread.

    A failing song is reported as a CutResult carrying its CutError and the
    worker moves on to the next one. Any other exception stops the worker
    and is raised from :meth:`finish`.

    Parameters
    ----------
    bitrate : int
        Output bitrate in kbit/s.
    extension : str
        Output container, which also picks the codec.
    cutter : callable
        ``cutter(info, bitrate, extension)``; defaults to ffmpeg.
    """

    def __init__(
        self,
        bitrate: int = DEFAULT_BITRATE,
        extension: str = DEFAULT_EXTENSION,
        cutter: Callable[..., object] = cut_song,
    ):
        self._bitrate = bitrate
        self._extension = extension
        self._cutter = cutter
        self._inbox: queue.Queue = queue.Queue(maxsize=QUEUE_SIZE)
        self._outbox: queue.Queue = queue.Queue(maxsize=QUEUE_SIZE)
        self._results: list[CutResult] = []
        self._undrained: list[CutResult] = []
        self._worker: threading.Thread | None = None
        self._error: Exception | None = None
        self._lock = threading.Lock()

    # -- public API --

    def start(self) -> None:
        """Start the background worker thread."""
        self._worker = threading.Thread(target=self._run, daemon=True)
        self._worker.start()

    def submit(self, entries: Iterable[CutInfo]) -> None:
        """Enqueue songs to cut, in order. Returns before they are cut.

        Plans longer than the inbox are accepted: while waiting for room,
        finished results are set aside for the next :meth:`drain_results`.
        """
        for info in entries:
            if not self._put(info):
                # The worker stopped; finish() raises its error.
                return

    def is_alive(self) -> bool:
        return self._worker is not None and self._worker.is_alive()

    @property
    def songs_done(self) -> int:
        with self._lock:
            return len(self._results)

    def drain_results(self) -> list[CutResult]:
        """Results finished since the last call, without blocking."""
        drained, self._undrained = self._undrained, []
        while True:
            try:
                drained.append(self._outbox.get_nowait())
            except queue.Empty:
                return drained

    def finish(self, timeout: float = 3600) -> list[CutResult]:
        """Send sentinel, wait for the worker, return every result in order.

        Raises the error that stopped the worker, if any.
        """
        self._put(None)  # sentinel
        if self._worker is not None:
            deadline = time.monotonic() + timeout
            while self._worker.is_alive() and time.monotonic() < deadline:
                # Keep the outbox from filling up and blocking the worker.
                self.drain_results()
                self._worker.join(timeout=0.1)
            if self._worker.is_alive():
                raise TimeoutError("Cutting is still running")
        if self._error is not None:
            raise self._error
        with self._lock:
            return list(self._results)

    # -- internal --

    def _put(self, item: Optional[CutInfo]) -> bool:
        """Put *item* on the inbox. Returns False if the worker has stopped."""
        while True:
            try:
                self._inbox.put(item, timeout=PUT_INTERVAL)
                return True
            except queue.Full:
                if self._worker is not None and not self._worker.is_alive():
                    return False
                # The worker may be blocked on a full outbox.
                while True:
                    try:
                        self._undrained.append(self._outbox.get_nowait())
                    except queue.Empty:
                        break

    def _run(self) -> None:
        while True:
            info = self._inbox.get()
            if info is None:
                break
            try:
                result = self._cut(info)
            except Exception as exc:
                self._error = exc
                break
            with self._lock:
                self._results.append(result)
            self._outbox.put(result)

    def _cut(self, info: CutInfo) -> CutResult:
        try:
            self._cutter(info, self._bitrate, self._extension)
        except CutError as e:
            logger.error("%s", e)
            return CutResult(info, e)
        return CutResult(info)


def start_cutting(
    bitrate: int = DEFAULT_BITRATE,
    extension: str = DEFAULT_EXTENSION,
    cutter: Callable[..., object] = cut_song,
) -> CuttingThread:
    """Create and start a cutting worker. Returns its handle."""
    thread = CuttingThread(bitrate=bitrate, extension=extension, cutter=cutter)
    thread.start()
    return thread
