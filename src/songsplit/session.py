"""Recording sessions: the reconstructed song list, its persistence, and listing."""

from __future__ import annotations

import sys
import wave
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from songsplit.constants import BUFFER_SUFFIX, SESSION_SUFFIX
from songsplit.song import Song


def cumulative_boundaries(songs: Sequence[Song], first: float) -> list[float]:
    """*first*, then the running sum of song lengths after it (len(songs) + 1 times)."""
    boundaries = [first]
    for song in songs:
        boundaries.append(boundaries[-1] + song.length)
    return boundaries


@dataclass
class RecordingSession:
    """Songs in play order plus the buffer time at which the first one starts.

    Songs are only ever appended; existing entries stay untouched.
    """
    estimated_time_first_song: float
    songs: list[Song] = field(default_factory=list)

    def append(self, song: Song) -> None:
        self.songs.append(song)

    @property
    def last_song(self) -> Optional[Song]:
        return self.songs[-1] if self.songs else None

    def nominal_boundaries(self) -> list[float]:
        """Start of every song plus the end of the last, from summed lengths."""
        return cumulative_boundaries(self.songs, self.estimated_time_first_song)

    def to_dict(self) -> dict:
        return {
            "estimated_time_first_song": self.estimated_time_first_song,
            "songs": [song.to_dict() for song in self.songs],
        }

    @classmethod
    def from_dict(cls, data: dict) -> RecordingSession:
        return cls(
            estimated_time_first_song=float(data["estimated_time_first_song"]),
            songs=[Song.from_dict(s) for s in data.get("songs", [])],
        )


def save_session(session: RecordingSession, path: Path) -> None:
    """Write the session as TOML, replacing the file atomically."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, "wb") as f:
        tomli_w.dump(session.to_dict(), f)
    tmp_path.replace(path)


def load_session(path: Path) -> RecordingSession:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    try:
        return RecordingSession.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError(f"Malformed session file {path}: {e}") from e


@dataclass
class SessionInfo:
    """A session on disk with its associated files."""
    stem: str
    session_path: Path
    buffer_path: Optional[Path]
    num_songs: int
    duration_seconds: Optional[float]


class SessionManager:
    """Session files live side by side: ``<stem>.toml`` and ``<stem>.wav``."""

    def __init__(self, sessions_dir: Path):
        self.sessions_dir = sessions_dir
        self.sessions_dir.mkdir(parents=True, exist_ok=True)

    def generate_session_stem(self) -> str:
        """Generate a timestamp-based session name: YYYY-MM-DD-HHMMSS."""
        return datetime.now().strftime("%Y-%m-%d-%H%M%S")

    def session_path(self, stem: str) -> Path:
        return self.sessions_dir / f"{stem}{SESSION_SUFFIX}"

    def buffer_path(self, stem: str) -> Path:
        return self.sessions_dir / f"{stem}{BUFFER_SUFFIX}"

    def save(self, stem: str, session: RecordingSession) -> Path:
        path = self.session_path(stem)
        save_session(session, path)
        return path

    def load(self, stem: str) -> RecordingSession:
        path = self.session_path(stem)
        if not path.exists():
            raise KeyError(f"Session not found: {stem}")
        return load_session(path)

    def list_sessions(
        self,
        limit: Optional[int] = 20,
        sort_by: str = "date",
    ) -> list[SessionInfo]:
        """List sessions, newest first by default."""
        sessions = [
            self._build_session_info(path.stem, path)
            for path in self.sessions_dir.glob(f"*{SESSION_SUFFIX}")
        ]
        sessions.sort(key=lambda s: self._sort_key(s, sort_by), reverse=(sort_by == "date"))
        return sessions[:limit] if limit else sessions

    def get_session(self, stem: str) -> Optional[SessionInfo]:
        path = self.session_path(stem)
        if not path.exists():
            return None
        return self._build_session_info(stem, path)

    def resolve(self, ref: str) -> SessionInfo:
        """Resolve HEAD, HEAD~N (Nth previous) or a stem to a session."""
        if ref in ("HEAD", "last"):
            index = 0
        elif ref.startswith("HEAD~"):
            try:
                index = int(ref[5:])
            except ValueError:
                raise KeyError(f"Invalid ref: {ref}")
            if index < 0:
                raise KeyError(f"Invalid ref: {ref}")
        else:
            info = self.get_session(ref)
            if info is None:
                raise KeyError(f"Session not found: {ref}")
            return info

        sessions = self.list_sessions(limit=None, sort_by="date")
        if index >= len(sessions):
            raise KeyError(
                f"Session {ref} not found (only {len(sessions)} session(s) exist)."
            )
        return sessions[index]

    def _build_session_info(self, stem: str, session_path: Path) -> SessionInfo:
        buffer_path = self.buffer_path(stem)
        try:
            num_songs = len(load_session(session_path).songs)
        except (OSError, ValueError, tomllib.TOMLDecodeError):
            num_songs = 0

        return SessionInfo(
            stem=stem,
            session_path=session_path,
            buffer_path=buffer_path if buffer_path.exists() else None,
            num_songs=num_songs,
            duration_seconds=_buffer_duration(buffer_path),
        )

    def _sort_key(self, session: SessionInfo, sort_by: str):
        if sort_by == "duration":
            return session.duration_seconds or 0.0
        if sort_by == "songs":
            return session.num_songs
        return session.stem


def _buffer_duration(path: Path) -> Optional[float]:
    if not path.exists():
        return None
    try:
        with wave.open(str(path), "rb") as wf:
            return wf.getnframes() / wf.getframerate()
    except (wave.Error, EOFError, OSError):
        return None
