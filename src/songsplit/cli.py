"""CLI entry point for songsplit."""

import logging
import signal
import sys
import threading
import time

import click

from songsplit import __version__
from songsplit.constants import VALID_SORT_FIELDS


def _load_config():
    """Load config and resolve the data directory it points at."""
    from songsplit.config import SongsplitConfig
    from songsplit.paths import get_config_path, get_data_dir

    cfg = SongsplitConfig.load(get_config_path(get_data_dir()))
    data_dir = get_data_dir(cfg.storage.data_dir)
    cfg = SongsplitConfig.load(get_config_path(data_dir))
    return cfg, data_dir


def _session_manager(data_dir):
    from songsplit.paths import ensure_dirs, get_sessions_dir
    from songsplit.session import SessionManager

    ensure_dirs(data_dir)
    return SessionManager(get_sessions_dir(data_dir))


def _resolve_session(ref, mgr):
    """Resolve a HEAD/HEAD~N/stem reference to a SessionInfo."""
    try:
        return mgr.resolve(ref)
    except KeyError as e:
        raise click.ClickException(e.args[0])


def _create_recorder():
    from songsplit.pipewire_devices import is_pipewire_available

    if not is_pipewire_available():
        raise click.ClickException(
            "PipeWire is not available. Capture the audio yourself and use "
            "--external-capture --buffer FILE."
        )
    from songsplit.recorder.pipewire_recorder import PipewireRecorder

    return PipewireRecorder()


def _format_duration(seconds) -> str:
    if seconds is None:
        return "---"
    m, sec = divmod(int(seconds), 60)
    h, m = divmod(m, 60)
    return f"{h:02d}:{m:02d}:{sec:02d}"


@click.group()
@click.version_option(version=__version__, prog_name="songsplit")
@click.option("--verbose", "-v", count=True, help="Log progress (-v) or debug output (-vv).")
def main(verbose):
    """Record a music player's output and cut it into songs."""
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.option("--player", "-p", default=None, help="playerctl player name (default: config).")
@click.option("--no-control", is_flag=True, help="Don't drive playback; only follow the player.")
@click.option("--external-capture", is_flag=True,
              help="Another process writes the buffer (see --buffer).")
@click.option("--buffer", "buffer_file", type=click.Path(exists=True, dir_okay=False), default=None,
              help="WAV buffer written by another process.")
@click.option("--resume", "resume_ref", default=None,
              help="Keep appending to an interrupted session (HEAD, HEAD~N or stem).")
def record(player, no_control, external_capture, buffer_file, resume_ref):
    """Record songs until playback pauses.

    The player is rewound to the start of the current song after a short
    lead-in, then played through. Every song reported by the player is
    saved as it starts, so an interrupted session can be resumed.
    """
    from pathlib import Path

    from songsplit.player import NullControl, PlayerctlControl, PlayerctlEventSource
    from songsplit.recording import RecordingSettings, start_recording
    from songsplit.timeline import RecordingExitStatus

    cfg, data_dir = _load_config()
    mgr = _session_manager(data_dir)
    settings = RecordingSettings.from_config(cfg.recording)
    if player:
        settings.player = player

    session = None
    if resume_ref:
        info = _resolve_session(resume_ref, mgr)
        if info.buffer_path is None:
            raise click.ClickException(f"Session {info.stem} has no buffer to resume.")
        stem = info.stem
        session = mgr.load(stem)
        external_capture = True
        click.echo(f"Resuming {stem} after {len(session.songs)} song(s).")
    else:
        stem = mgr.generate_session_stem()
        if external_capture:
            if buffer_file is None:
                raise click.ClickException("--external-capture needs --buffer FILE.")
            mgr.buffer_path(stem).symlink_to(Path(buffer_file).resolve())

    buffer_path = mgr.buffer_path(stem)
    recorder = None if external_capture else _create_recorder()
    use_control = cfg.recording.control_playback and not no_control and session is None
    control = PlayerctlControl(settings.player) if use_control else NullControl()
    if not use_control:
        settings.lead_in_seconds = 0.0

    cancel = threading.Event()
    interrupt_count = 0
    original_handler = signal.getsignal(signal.SIGINT)

    def handle_sigint(sig, frame):
        nonlocal interrupt_count
        interrupt_count += 1
        if interrupt_count >= 2:
            click.echo("\nForced exit.")
            sys.exit(1)
        click.echo("\nStopping recording...")
        cancel.set()

    signal.signal(signal.SIGINT, handle_sigint)

    try:
        handle = start_recording(
            PlayerctlEventSource(settings.player),
            control,
            buffer_path,
            settings,
            cancel,
            recorder=recorder,
            session=session,
            persist=lambda s: mgr.save(stem, s),
        )
        click.echo(f"Recording {settings.player} to {buffer_path} (Ctrl+C to stop)...")

        count = len(session.songs) if session else 0
        while handle.is_alive():
            for song in handle.drain_songs():
                count += 1
                click.echo(f"  {count:>3}. {song}")
            time.sleep(0.25)
        for song in handle.drain_songs():
            count += 1
            click.echo(f"  {count:>3}. {song}")

        try:
            outcome = handle.result()
        except Exception as e:
            raise click.ClickException(f"Recording failed: {e}")
    finally:
        signal.signal(signal.SIGINT, original_handler)

    if outcome.status is RecordingExitStatus.NO_NEW_SONG_FOR_TOO_LONG:
        click.echo("Stopped: no new song for too long.")
    click.echo(
        f"Session {stem}: {len(outcome.session.songs)} song(s), "
        f"{_format_duration(outcome.duration)} of audio."
    )
    click.echo(f"Cut it with: songsplit cut {stem}")


def _stem_date_str(stem: str) -> str:
    """Format a session stem with a two-char day-of-week suffix."""
    from datetime import datetime

    try:
        dt = datetime.strptime(stem, "%Y-%m-%d-%H%M%S")
        day = dt.strftime("%a")[:2]
        return f"{stem} {day}"
    except ValueError:
        return stem


@main.command(name="list")
@click.option("--limit", "-n", default=20, help="Number of entries to show.")
@click.option("--sort", "sort_by", default="date", type=click.Choice(VALID_SORT_FIELDS),
              help="Sort field.")
@click.option("--no-header", is_flag=True, help="Omit table header.")
def list_sessions(limit, sort_by, no_header):
    """List recorded sessions."""
    _, data_dir = _load_config()
    mgr = _session_manager(data_dir)

    # Build stem→ref map from date-sorted order
    all_by_date = mgr.list_sessions(limit=None, sort_by="date")
    ref_map = {s.stem: (f"HEAD~{i}" if i else "HEAD") for i, s in enumerate(all_by_date)}

    sessions = mgr.list_sessions(limit=limit, sort_by=sort_by)
    if not sessions:
        click.echo("No sessions found.")
        return

    if not no_header:
        click.echo(f"{'REF':<9} {'Date':<25} {'Songs':>5}  {'Duration':>9}  {'Buffer'}")
        click.echo("-" * 72)

    for s in sessions:
        ref = ref_map.get(s.stem, "?")
        buffer_name = s.buffer_path.name if s.buffer_path else "(missing)"
        click.echo(
            f"{ref:<9} {_stem_date_str(s.stem):<25} {s.num_songs:>5}  "
            f"{_format_duration(s.duration_seconds):>9}  {buffer_name}"
        )


def _load_for_cutting(ref, mgr):
    info = _resolve_session(ref, mgr)
    if info.buffer_path is None:
        raise click.ClickException(f"Session {info.stem} has no buffer file.")
    try:
        session = mgr.load(info.stem)
    except ValueError as e:
        raise click.ClickException(str(e))
    return info, session


@main.command()
@click.argument("ref", default="HEAD")
@click.option("--chunk-size", type=int, default=None,
              help="Search the offset per N songs (0: once for the whole session).")
@click.option("--dry-run", is_flag=True, help="Print the plan without cutting.")
@click.option("--music-dir", type=click.Path(file_okay=False), default=None,
              help="Where to put the songs (default: config).")
def cut(ref, chunk_size, dry_run, music_dir):
    """Cut a session's buffer into songs.

    REF can be HEAD (most recent), HEAD~N (Nth previous), or a session stem.

    \b
    Examples:
      songsplit cut                  Cut the most recent session
      songsplit cut HEAD~1 --dry-run Show where the previous one would be cut
    """
    from pathlib import Path

    from songsplit.cut import SearchSettings, plan_session
    from songsplit.cutting import start_cutting
    from songsplit.paths import get_music_dir

    cfg, data_dir = _load_config()
    mgr = _session_manager(data_dir)
    info, session = _load_for_cutting(ref, mgr)
    target_dir = Path(music_dir) if music_dir else get_music_dir(data_dir, cfg.storage.music_dir)
    if chunk_size is None:
        chunk_size = cfg.cutting.chunk_size

    try:
        plan = plan_session(
            session,
            info.buffer_path,
            target_dir,
            SearchSettings.from_config(cfg.cutting),
            chunk_size=chunk_size,
        )
    except ValueError as e:
        raise click.ClickException(str(e))

    for estimate in plan.estimates:
        click.echo(f"Offset: {estimate.offset:+.3f}s  (av. volume at cuts: {estimate.quality:.4f})")
        if not estimate.is_confident(cfg.cutting.quality_threshold):
            click.echo(click.style(
                "  Warning: no silent cut points found, cuts may be off.", fg="yellow"
            ))

    if not plan.entries:
        click.echo("No songs can be cut yet.")
        return
    skipped = len(session.songs) - len(plan.entries)
    if skipped:
        click.echo(f"{skipped} song(s) are not fully recorded yet and will be skipped.")

    extension = cfg.cutting.extension
    if dry_run:
        for entry in plan.entries:
            click.echo(
                f"  {entry.start.seconds:>9.3f} {entry.end.seconds:>9.3f}  "
                f"{entry.target_file(extension)}"
            )
        return

    cutter = start_cutting(bitrate=cfg.cutting.bitrate, extension=extension)
    cutter.submit(plan.entries)

    total = len(plan.entries)
    shown = 0

    def show(result):
        nonlocal shown
        shown += 1
        mark = click.style("✓", fg="green") if result.ok else click.style("✗", fg="red")
        click.echo(f"  [{shown}/{total}] {mark} {result.info.song}")

    try:
        while cutter.is_alive() and cutter.songs_done < total:
            for result in cutter.drain_results():
                show(result)
            time.sleep(0.1)
        for result in cutter.drain_results():
            show(result)
        results = cutter.finish()
    except KeyboardInterrupt:
        raise click.ClickException("Interrupted.")
    for result in results[shown:]:
        show(result)

    failed = [r for r in results if not r.ok]
    click.echo(f"Cut {total - len(failed)} of {total} song(s) into {target_dir}")
    for result in failed:
        click.echo(f"  Failed: {result.error}", err=True)
    if failed:
        sys.exit(1)


@main.command()
@click.argument("ref", default="HEAD")
@click.option("--points", "-n", default=200, help="Volume samples per boundary.")
def inspect(ref, points):
    """Print volume profiles around every song boundary as JSON."""
    import json

    from songsplit.cut import SearchSettings, collect_excerpts
    from songsplit.search import find_cut_offset

    cfg, data_dir = _load_config()
    mgr = _session_manager(data_dir)
    info, session = _load_for_cutting(ref, mgr)
    settings = SearchSettings.from_config(cfg.cutting)

    boundaries = session.nominal_boundaries()
    excerpts = collect_excerpts(info.buffer_path, boundaries, settings)
    estimate = None
    if excerpts:
        estimate = find_cut_offset(
            excerpts,
            boundaries[:len(excerpts)],
            min_offset=settings.min_offset,
            max_offset=settings.max_offset,
            num_offsets=settings.num_offsets,
        )

    songs = session.songs
    report = {
        "session": info.stem,
        "offset": estimate.offset if estimate else None,
        "quality": estimate.quality if estimate else None,
        "boundaries": [
            {
                "index": i,
                "nominal": boundaries[i],
                "before": str(songs[i - 1]) if i > 0 else None,
                "after": str(songs[i]) if i < len(songs) else None,
                "profile": excerpt.volume_profile(points),
            }
            for i, excerpt in enumerate(excerpts)
        ],
    }
    click.echo(json.dumps(report, indent=2))


@main.command()
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--list", "list_all", is_flag=True, help="Show all configuration values.")
def config(key, value, list_all):
    """View or set configuration."""
    from songsplit.config import SongsplitConfig
    from songsplit.paths import get_config_path, get_data_dir

    cfg = SongsplitConfig.load(get_config_path(get_data_dir()))
    config_path = get_config_path(get_data_dir(cfg.storage.data_dir))
    cfg = SongsplitConfig.load(config_path)

    if list_all or (key is None and value is None):
        for section_name, section_dict in cfg._to_dict().items():
            for k, v in section_dict.items():
                click.echo(f"{section_name}.{k} = {v!r}")
        return

    if value is None:
        try:
            click.echo(cfg.get(key))
        except KeyError as e:
            raise click.ClickException(str(e))
        return

    try:
        cfg.set(key, value)
    except (KeyError, ValueError) as e:
        raise click.ClickException(str(e))
    cfg.save(config_path)
    click.echo(f"Set {key} = {cfg.get(key)!r}")
