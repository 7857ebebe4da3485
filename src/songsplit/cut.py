"""Turn a session and its buffer into per-song cut intervals, and cut them.

Planning reads excerpts around the nominal boundaries, searches for the
drift offset (once for the whole session, or per chunk of songs) and lays
out contiguous intervals. Cutting hands each interval to ffmpeg.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from songsplit.audio_time import AudioFormat, AudioTime
from songsplit.constants import (
    DEFAULT_BITRATE,
    DEFAULT_EXTENSION,
    DEFAULT_MAX_OFFSET,
    DEFAULT_MIN_OFFSET,
    DEFAULT_NUM_OFFSETS,
    DEFAULT_READ_BUFFER,
    DEFAULT_VOLUME_WINDOW,
)
from songsplit.excerpt import AudioExcerpt, InsufficientDataError, extract_excerpt
from songsplit.search import OffsetEstimate, find_cut_offset
from songsplit.session import RecordingSession, cumulative_boundaries
from songsplit.song import Song

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchSettings:
    """Search range and resolution plus how much audio to read around boundaries."""
    min_offset: float = DEFAULT_MIN_OFFSET
    max_offset: float = DEFAULT_MAX_OFFSET
    num_offsets: int = DEFAULT_NUM_OFFSETS
    read_buffer: float = DEFAULT_READ_BUFFER
    volume_window: int = DEFAULT_VOLUME_WINDOW

    @classmethod
    def from_config(cls, cutting) -> SearchSettings:
        """Build from the ``cutting`` section of a SongsplitConfig."""
        return cls(
            min_offset=cutting.min_offset,
            max_offset=cutting.max_offset,
            num_offsets=cutting.num_offsets,
            read_buffer=cutting.read_buffer,
            volume_window=cutting.volume_window,
        )


class CutError(RuntimeError):
    """The external cutter failed for one song."""

    def __init__(self, song: Song, start: float, end: float, cause: str):
        super().__init__(f"Failed to cut {song} [{start:.3f}s, {end:.3f}s]: {cause}")
        self.song = song
        self.start = start
        self.end = end
        self.cause = cause


@dataclass(frozen=True)
class CutInfo:
    """Everything needed to cut one song out of the buffer."""
    song: Song
    buffer_file: Path
    music_dir: Path
    start: AudioTime
    end: AudioTime

    @property
    def duration(self) -> float:
        return self.end.seconds - self.start.seconds

    def target_file(self, extension: str = DEFAULT_EXTENSION) -> Path:
        return self.song.target_file(self.music_dir, extension)


@dataclass
class CutPlan:
    """Cut intervals in song order plus the offset estimate(s) behind them."""
    entries: list[CutInfo] = field(default_factory=list)
    estimates: list[OffsetEstimate] = field(default_factory=list)


def collect_excerpts(
    buffer_file: Path,
    boundaries: Sequence[float],
    settings: SearchSettings,
) -> list[AudioExcerpt]:
    """Read one excerpt per boundary, stopping at the first one not yet captured.

    The result covers a prefix of *boundaries*; everything after it cannot
    be cut yet.
    """
    excerpts = []
    for boundary in boundaries:
        try:
            excerpts.append(extract_excerpt(
                buffer_file,
                boundary + settings.min_offset - settings.read_buffer,
                boundary + settings.max_offset + settings.read_buffer,
                volume_window=settings.volume_window,
            ))
        except InsufficientDataError as e:
            logger.info("No audio around %.3fs yet (%s), stopping", boundary, e)
            break
    return excerpts


def build_cut_plan_from_boundaries(
    songs: Sequence[Song],
    starts: Sequence[float],
    last_end: float,
    fmt: AudioFormat,
    buffer_file: Path,
    music_dir: Path,
) -> list[CutInfo]:
    """Song *i* runs from ``starts[i]`` to ``starts[i + 1]``, the last one to *last_end*."""
    if len(songs) != len(starts):
        raise ValueError(f"Need one start per song, got {len(starts)} for {len(songs)}")
    ends = list(starts[1:]) + [last_end]
    return [
        CutInfo(
            song=song,
            buffer_file=buffer_file,
            music_dir=music_dir,
            start=AudioTime.from_seconds(start, fmt),
            end=AudioTime.from_seconds(end, fmt),
        )
        for song, start, end in zip(songs, starts, ends)
    ]


def build_cut_plan(
    songs: Sequence[Song],
    estimated_time_first_song: float,
    offset: float,
    fmt: AudioFormat,
    buffer_file: Path,
    music_dir: Path,
) -> list[CutInfo]:
    """Apply one global offset to the nominal boundaries."""
    boundaries = [b + offset for b in cumulative_boundaries(songs, estimated_time_first_song)]
    return build_cut_plan_from_boundaries(
        songs, boundaries[:-1], boundaries[-1], fmt, buffer_file, music_dir
    )


def plan_session(
    session: RecordingSession,
    buffer_file: Path,
    music_dir: Path,
    settings: SearchSettings = SearchSettings(),
    chunk_size: int = 0,
) -> CutPlan:
    """Plan the cuts for every song whose boundaries are both in the buffer.

    With ``chunk_size > 0`` the offset is searched per chunk of songs, each
    chunk starting from where the previous chunk's corrected boundaries
    ended, so drift never accumulates over more than one chunk.
    """
    if chunk_size < 0:
        raise ValueError(f"chunk_size must be >= 0, got {chunk_size}")
    fmt = AudioFormat.from_wave(buffer_file)
    songs = session.songs
    if chunk_size == 0 or chunk_size >= len(songs):
        chunk_size = max(len(songs), 1)

    plan = CutPlan()
    cut_songs: list[Song] = []
    starts: list[float] = []
    last_end = 0.0
    seed = session.estimated_time_first_song

    for chunk_start in range(0, len(songs), chunk_size):
        chunk = songs[chunk_start:chunk_start + chunk_size]
        nominal = cumulative_boundaries(chunk, seed)
        excerpts = collect_excerpts(buffer_file, nominal, settings)
        if not excerpts:
            break

        estimate = find_cut_offset(
            excerpts,
            nominal[:len(excerpts)],
            min_offset=settings.min_offset,
            max_offset=settings.max_offset,
            num_offsets=settings.num_offsets,
        )
        plan.estimates.append(estimate)
        corrected = [b + estimate.offset for b in nominal]

        usable = len(excerpts) - 1
        cut_songs.extend(chunk[:usable])
        starts.extend(corrected[:usable])
        # With usable == 0 this ends the previous chunk's last song at the
        # corrected start of this chunk.
        last_end = corrected[usable]

        if len(excerpts) < len(nominal):
            break
        seed = corrected[-1]

    if cut_songs:
        plan.entries = build_cut_plan_from_boundaries(
            cut_songs, starts, last_end, fmt, buffer_file, music_dir
        )
    logger.info(
        "Planned %d of %d songs using %d offset estimate(s)",
        len(plan.entries), len(songs), len(plan.estimates),
    )
    return plan


def cut_command(
    info: CutInfo,
    bitrate: int = DEFAULT_BITRATE,
    extension: str = DEFAULT_EXTENSION,
) -> list[str]:
    """The ffmpeg invocation that cuts *info* into its target file."""
    song = info.song
    cmd = [
        "ffmpeg",
        "-ss", f"{info.start.seconds:.6f}",
        "-t", f"{info.duration:.6f}",
        "-i", str(info.buffer_file),
    ]
    tags = {
        "title": song.title,
        "album": song.album,
        "artist": song.artist,
        "albumartist": song.artist,
        "track": song.track_number,
    }
    for key, value in tags.items():
        if value is not None:
            cmd.extend(["-metadata", f"{key}={value}"])
    cmd.extend(["-b:a", f"{bitrate}k", "-y", str(info.target_file(extension))])
    return cmd


def cut_song(
    info: CutInfo,
    bitrate: int = DEFAULT_BITRATE,
    extension: str = DEFAULT_EXTENSION,
) -> Path:
    """Cut one song with ffmpeg. Raises CutError on failure."""
    target = info.target_file(extension)
    target.parent.mkdir(parents=True, exist_ok=True)
    cmd = cut_command(info, bitrate, extension)
    logger.debug("Running %s", " ".join(cmd))

    try:
        result = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as e:
        raise CutError(info.song, info.start.seconds, info.end.seconds, str(e)) from e

    if result.returncode != 0:
        stderr = result.stderr.strip().splitlines()
        detail = stderr[-1] if stderr else "no output"
        raise CutError(
            info.song,
            info.start.seconds,
            info.end.seconds,
            f"ffmpeg exited with code {result.returncode}: {detail}",
        )

    logger.info("Cut %s to %s", info.song, target)
    return target
