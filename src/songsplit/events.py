"""Player events and normalisation of MPRIS-style property dicts.

The event vocabulary is closed: a new song, a playback status change, or
a capability notice that the timeline ignores.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional, Union

from songsplit.song import Song

logger = logging.getLogger(__name__)

MICROSECONDS_PER_SECOND = 1_000_000


class PlaybackStatus(enum.Enum):
    PLAYING = "Playing"
    PAUSED = "Paused"
    STOPPED = "Stopped"


@dataclass(frozen=True)
class NewSong:
    song: Song
    timestamp: float = 0.0


@dataclass(frozen=True)
class PlaybackStatusChanged:
    status: PlaybackStatus
    timestamp: float = 0.0


@dataclass(frozen=True)
class CapabilityNotice:
    properties: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0


PlayerEvent = Union[NewSong, PlaybackStatusChanged, CapabilityNotice]


def event_from_properties(properties: Mapping[str, Any], timestamp: float = 0.0) -> PlayerEvent:
    """Classify one "properties changed" notification."""
    if "PlaybackStatus" in properties:
        raw = properties["PlaybackStatus"]
        try:
            return PlaybackStatusChanged(PlaybackStatus(raw), timestamp)
        except ValueError:
            logger.error("Unknown playback status variant: %r", raw)
    if "Metadata" in properties:
        return NewSong(song_from_metadata(properties["Metadata"]), timestamp)
    return CapabilityNotice(dict(properties), timestamp)


def song_from_metadata(metadata: Mapping[str, Any]) -> Song:
    """Build a Song from an ``xesam:``/``mpris:`` metadata dict.

    Length is left at 0 when missing; the timeline drops such songs.
    """
    return Song(
        artist=_first_string(metadata.get("xesam:artist")),
        album=_first_string(metadata.get("xesam:album")),
        title=_first_string(metadata.get("xesam:title")),
        track_number=_optional_int(metadata.get("xesam:trackNumber")),
        length=parse_length(metadata.get("mpris:length")),
    )


def parse_length(value: Any) -> float:
    """Microseconds (unsigned, signed, or a decimal string) to seconds."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, str):
        value = int(value.strip())
    micros = int(value)
    if micros < 0:
        # Signed encodings of unsigned values wrap around.
        micros += 1 << 64
    return micros / MICROSECONDS_PER_SECOND


def _first_string(value: Any) -> Optional[str]:
    # Spotify sends its artist as a list nested in a list.
    while isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    if value is None:
        return None
    value = str(value)
    return value or None


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)
