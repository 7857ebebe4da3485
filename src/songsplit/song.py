"""Song metadata as reported by the player."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_UNKNOWN_ARTIST = "Unknown Artist"
_UNKNOWN_ALBUM = "Unknown Album"
_UNKNOWN_TITLE = "Untitled"


@dataclass(frozen=True)
class Song:
    """One track of a session. Equal songs are treated as the same report."""
    artist: Optional[str]
    album: Optional[str]
    title: Optional[str]
    track_number: Optional[int]
    length: float  # seconds

    @property
    def is_valid(self) -> bool:
        return self.length > 0

    def __str__(self) -> str:
        return f"{self.artist} - {self.album} - {self.title} ({round(self.length)}s)"

    def album_folder(self, music_dir: Path) -> Path:
        return (
            music_dir
            / _sanitize(self.artist, _UNKNOWN_ARTIST)
            / _sanitize(self.album, _UNKNOWN_ALBUM)
        )

    def target_file(self, music_dir: Path, extension: str = "opus") -> Path:
        """Output path: ``<artist>/<album>/<NN>_<title>.<ext>``."""
        name = f"{self.track_number or 0:02d}_{_sanitize(self.title, _UNKNOWN_TITLE)}.{extension}"
        return self.album_folder(music_dir) / name

    def to_dict(self) -> dict:
        """Persisted form; missing fields are left out."""
        data = {
            "artist": self.artist,
            "album": self.album,
            "title": self.title,
            "track_number": self.track_number,
            "length": self.length,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> Song:
        track_number = data.get("track_number")
        return cls(
            artist=data.get("artist"),
            album=data.get("album"),
            title=data.get("title"),
            track_number=int(track_number) if track_number is not None else None,
            length=float(data["length"]),
        )


def _sanitize(value: Optional[str], fallback: str) -> str:
    """Make a metadata string safe to use as a single path component."""
    if not value:
        return fallback
    cleaned = value.replace("/", "").replace("\\", "")
    cleaned = re.sub(r"\s+", "_", cleaned.strip()).strip(".")
    return cleaned or fallback
