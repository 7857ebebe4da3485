"""Reconstruct the ordered song list of a session from player events.

Reconstruction depends only on the events fed in, so a recorded event
sequence always rebuilds the same session.
"""

from __future__ import annotations

import enum
import logging
from typing import Iterable, Optional

from songsplit.events import (
    CapabilityNotice,
    NewSong,
    PlaybackStatus,
    PlaybackStatusChanged,
    PlayerEvent,
)
from songsplit.session import RecordingSession
from songsplit.song import Song

logger = logging.getLogger(__name__)

_TERMINATING_STATUSES = (PlaybackStatus.PAUSED, PlaybackStatus.STOPPED)


class RecordingExitStatus(enum.Enum):
    FINISHED_OR_INTERRUPTED = "finished_or_interrupted"
    NO_NEW_SONG_FOR_TOO_LONG = "no_new_song_for_too_long"


class TimelineReconstructor:
    """Feeds player events into a session, one at a time."""

    def __init__(self, session: RecordingSession):
        self.session = session
        self.finished = False

    def feed(self, event: PlayerEvent) -> Optional[Song]:
        """Apply one event. Returns the song appended, if any."""
        if self.finished:
            raise RuntimeError("Reconstruction already finished")

        if isinstance(event, PlaybackStatusChanged):
            if event.status in _TERMINATING_STATUSES:
                logger.info("Playback %s, session finished", event.status.value.lower())
                self.finished = True
            return None
        if isinstance(event, NewSong):
            return self._add_song(event.song)
        if isinstance(event, CapabilityNotice):
            return None
        raise TypeError(f"Unknown player event: {event!r}")

    def _add_song(self, song: Song) -> Optional[Song]:
        if not song.is_valid:
            logger.debug("Dropping malformed song report: %s", song)
            return None
        # The player re-sends the current track whenever any property changes.
        if song == self.session.last_song:
            return None
        self.session.append(song)
        logger.info("Now recording song: %s", song)
        return song


def reconstruct(
    events: Iterable[PlayerEvent],
    session: RecordingSession | None = None,
) -> tuple[RecordingSession, Optional[RecordingExitStatus]]:
    """Consume *events* until playback pauses.

    Returns the session and ``FINISHED_OR_INTERRUPTED``, or ``None`` as the
    status if the events ran out first. Events after the pause are never
    pulled from the iterable.
    """
    if session is None:
        session = RecordingSession(estimated_time_first_song=0.0)
    reconstructor = TimelineReconstructor(session)
    for event in events:
        reconstructor.feed(event)
        if reconstructor.finished:
            return reconstructor.session, RecordingExitStatus.FINISHED_OR_INTERRUPTED
    return reconstructor.session, None
