"""PipeWire node lookup and capture target resolution."""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

_STREAM_CLASS = "Stream/Output/Audio"
_SINK_CLASS = "Audio/Sink"


@dataclass
class CaptureTarget:
    """What pw-record should link to.

    ``is_sink`` targets need ``stream.capture.sink`` so pw-record captures
    the sink's monitor instead of trying to play into it.
    """

    name: str
    is_sink: bool
    description: str = ""


def is_pipewire_available() -> bool:
    """Check if PipeWire daemon is running and accessible."""
    try:
        result = subprocess.run(
            ["pw-cli", "info", "0"],
            capture_output=True,
            timeout=2,
        )
        return result.returncode == 0
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False


def _run_pw_dump() -> list[dict]:
    """Run pw-dump and return parsed JSON objects."""
    try:
        result = subprocess.run(
            ["pw-dump"],
            capture_output=True,
            text=True,
            timeout=3,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired) as e:
        logger.warning("pw-dump failed: %s", e)
        return []
    if result.returncode != 0:
        return []
    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError:
        # pw-dump may output incomplete JSON if killed early
        text = result.stdout.rstrip().rstrip(",")
        if not text.endswith("]"):
            text += "]"
        try:
            return json.loads(text)
        except json.JSONDecodeError:
            return []


def _node_props(obj: dict) -> dict:
    return obj.get("info", {}).get("props", {}) or {}


def find_player_stream(player: str, data: Optional[list[dict]] = None) -> Optional[CaptureTarget]:
    """Find the output stream a player plays into, by application name.

    Matches ``application.name``, ``application.process.binary`` and
    ``node.name`` case-insensitively. Returns None when the player has no
    live stream (e.g. it has not started playing yet).
    """
    if data is None:
        data = _run_pw_dump()
    needle = player.lower()

    for obj in data:
        props = _node_props(obj)
        if props.get("media.class") != _STREAM_CLASS:
            continue
        names = (
            props.get("application.name", ""),
            props.get("application.process.binary", ""),
            props.get("node.name", ""),
        )
        if any(needle in str(name).lower() for name in names if name):
            serial = props.get("object.serial", obj.get("id"))
            return CaptureTarget(
                name=str(serial),
                is_sink=False,
                description=props.get("application.name", "") or props.get("node.name", ""),
            )
    return None


def get_default_sink_name(data: Optional[list[dict]] = None) -> str | None:
    """Get the node name of the default audio sink.

    Reads PipeWire metadata to find the default.audio.sink entry.
    Returns the node name, or None if not found.
    """
    if data is None:
        data = _run_pw_dump()

    for obj in data:
        metadata = obj.get("metadata", [])
        for entry in metadata:
            if entry.get("key") == "default.audio.sink":
                value = entry.get("value", {})
                if isinstance(value, dict):
                    return value.get("name")
                # value might be a JSON string
                if isinstance(value, str):
                    try:
                        parsed = json.loads(value)
                        return parsed.get("name")
                    except (json.JSONDecodeError, AttributeError):
                        pass
    return None


def resolve_capture_target(player: Optional[str] = None, target: Optional[str] = None) -> Optional[CaptureTarget]:
    """Resolve the --target argument for pw-record.

    Priority: an explicit *target* (treated as a sink), the player's own
    output stream, then the default sink's monitor. Returns None when
    nothing is found and pw-record should use its default source.
    """
    if target:
        return CaptureTarget(name=target, is_sink=True, description=target)

    data = _run_pw_dump()
    if player:
        stream = find_player_stream(player, data)
        if stream is not None:
            logger.info("Capturing %s stream %s", stream.description, stream.name)
            return stream
        logger.warning("No PipeWire stream found for %r, capturing the default sink", player)

    sink = get_default_sink_name(data)
    if sink is None:
        return None
    return CaptureTarget(name=sink, is_sink=True, description=sink)
