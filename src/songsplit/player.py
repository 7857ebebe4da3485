"""Talking to the media player through playerctl.

``playerctl --follow`` prints one line whenever the player's status or
metadata changes. A reader thread turns those lines into player events
and queues them for :meth:`PlayerctlEventSource.poll`.
"""

from __future__ import annotations

import logging
import queue
import subprocess
import threading
import time
from typing import Callable, Optional

from songsplit.events import (
    PlaybackStatus,
    PlaybackStatusChanged,
    PlayerEvent,
    event_from_properties,
)

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "\t"
FIELDS = (
    "status",
    "mpris:length",
    "xesam:artist",
    "xesam:album",
    "xesam:title",
    "xesam:trackNumber",
)
FORMAT = FIELD_SEPARATOR.join("{{%s}}" % name for name in FIELDS)


def parse_playerctl_line(line: str) -> dict:
    """Split one ``--follow`` line into MPRIS-style property dicts.

    Returns ``{"PlaybackStatus": ..., "Metadata": {...}}``; fields playerctl
    left empty are omitted from the metadata.
    """
    values = line.rstrip("\r\n").split(FIELD_SEPARATOR)
    if len(values) != len(FIELDS):
        raise ValueError(f"Expected {len(FIELDS)} fields from playerctl, got {len(values)}: {line!r}")
    status, *metadata_values = values
    metadata = {
        name: value
        for name, value in zip(FIELDS[1:], metadata_values)
        if value != ""
    }
    return {"PlaybackStatus": status, "Metadata": metadata}


class PlayerctlEventSource:
    """Live player events from a ``playerctl --follow`` subprocess.

    Usage::

        source = PlayerctlEventSource("spotify")
        source.start()
        event = source.poll(timeout=0.1)  # None if nothing happened
        source.close()
    """

    def __init__(self, player: str, clock: Callable[[], float] = time.monotonic):
        self.player = player
        self._clock = clock
        self._queue: queue.Queue = queue.Queue()
        self._process: subprocess.Popen | None = None
        self._reader: threading.Thread | None = None
        self._last_status: Optional[str] = None
        self._last_metadata: Optional[dict] = None

    def command(self) -> list[str]:
        return [
            "playerctl",
            f"--player={self.player}",
            "--follow",
            "metadata",
            "--format", FORMAT,
        ]

    def start(self) -> None:
        if self._process is not None:
            raise RuntimeError("Already following the player")
        self._process = subprocess.Popen(
            self.command(),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
        )
        self._reader = threading.Thread(target=self._read_lines, daemon=True)
        self._reader.start()

    def poll(self, timeout: float) -> Optional[PlayerEvent]:
        """Next event, or None if none arrived within *timeout* seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if self._process is not None and self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._process.kill()
                self._process.wait()
        if self._reader is not None:
            self._reader.join(timeout=2)

    def handle_line(self, line: str) -> list[PlayerEvent]:
        """Events for one output line: status first, then metadata, each only on change.

        playerctl starts by printing the current state. Its status is not a
        change and only seeds the comparison; its metadata is the song about
        to be recorded and is reported.
        """
        try:
            properties = parse_playerctl_line(line)
        except ValueError as e:
            logger.warning("%s", e)
            return []

        timestamp = self._clock()
        events = []
        status = properties["PlaybackStatus"]
        if status and status != self._last_status:
            if self._last_status is not None:
                events.append(event_from_properties({"PlaybackStatus": status}, timestamp))
            self._last_status = status
        metadata = properties["Metadata"]
        if metadata and metadata != self._last_metadata:
            self._last_metadata = metadata
            try:
                events.append(event_from_properties({"Metadata": metadata}, timestamp))
            except ValueError as e:
                logger.warning("Dropping malformed metadata %r: %s", metadata, e)
        return events

    def _read_lines(self) -> None:
        for line in self._process.stdout:
            for event in self.handle_line(line):
                self._queue.put(event)
        # playerctl exits when the player goes away.
        logger.info("playerctl stopped following %s", self.player)
        self._queue.put(PlaybackStatusChanged(PlaybackStatus.STOPPED, self._clock()))


class PlayerctlControl:
    """Playback control for the lead-in: play, pause and previous."""

    def __init__(self, player: str):
        self.player = player

    def play(self) -> None:
        self._run("play")

    def pause(self) -> None:
        self._run("pause")

    def previous(self) -> None:
        self._run("previous")

    def _run(self, action: str) -> None:
        cmd = ["playerctl", f"--player={self.player}", action]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=5)
        except (FileNotFoundError, subprocess.TimeoutExpired) as e:
            raise RuntimeError(f"playerctl {action} failed: {e}") from e
        if result.returncode != 0:
            raise RuntimeError(
                f"playerctl {action} failed: {result.stderr.strip() or result.returncode}"
            )
        logger.debug("playerctl %s", action)


class NullControl:
    """For when something else drives the player."""

    def play(self) -> None:
        pass

    def pause(self) -> None:
        pass

    def previous(self) -> None:
        pass
