"""Tests for the playerctl adapters."""

import io
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from songsplit.events import NewSong, PlaybackStatus, PlaybackStatusChanged
from songsplit.player import (
    FORMAT,
    NullControl,
    PlayerctlControl,
    PlayerctlEventSource,
    parse_playerctl_line,
)


def _line(status="Playing", length="180000000", artist="Artist", album="Album",
          title="Title", track="3"):
    return "\t".join([status, length, artist, album, title, track]) + "\n"


class TestParseLine:
    def test_fields(self):
        props = parse_playerctl_line(_line())
        assert props["PlaybackStatus"] == "Playing"
        assert props["Metadata"] == {
            "mpris:length": "180000000",
            "xesam:artist": "Artist",
            "xesam:album": "Album",
            "xesam:title": "Title",
            "xesam:trackNumber": "3",
        }

    def test_empty_fields_omitted(self):
        props = parse_playerctl_line(_line(length="", track=""))
        assert "mpris:length" not in props["Metadata"]
        assert "xesam:trackNumber" not in props["Metadata"]

    def test_wrong_field_count(self):
        with pytest.raises(ValueError):
            parse_playerctl_line("Playing\tonly two\n")

    def test_format_lists_every_field(self):
        assert FORMAT.count("{{") == 6
        assert "{{status}}" in FORMAT


class TestHandleLine:
    def test_first_line_seeds_status_and_reports_song(self):
        source = PlayerctlEventSource("spotify", clock=lambda: 7.0)
        events = source.handle_line(_line(status="Paused"))
        assert len(events) == 1
        assert isinstance(events[0], NewSong)
        assert events[0].song.length == pytest.approx(180.0)
        assert events[0].song.track_number == 3
        assert events[0].timestamp == 7.0

    def test_status_change_reported_before_metadata(self):
        source = PlayerctlEventSource("spotify")
        source.handle_line(_line(status="Playing", title="A"))
        events = source.handle_line(_line(status="Paused", title="B"))
        assert events[0] == PlaybackStatusChanged(PlaybackStatus.PAUSED, events[0].timestamp)
        assert isinstance(events[1], NewSong)
        assert events[1].song.title == "B"

    def test_unchanged_line_gives_nothing(self):
        source = PlayerctlEventSource("spotify")
        source.handle_line(_line())
        assert source.handle_line(_line()) == []

    @pytest.mark.parametrize("length", ["1:23", "2.4e8"])
    def test_malformed_length_dropped(self, length):
        source = PlayerctlEventSource("spotify")
        source.handle_line(_line(status="Playing", title="A"))
        events = source.handle_line(_line(status="Paused", length=length, title="B"))
        assert events == [PlaybackStatusChanged(PlaybackStatus.PAUSED, events[0].timestamp)]

    def test_reader_survives_malformed_length(self):
        text = _line(status="Playing", title="A") + _line(length="1:23", title="B") + \
            _line(status="Paused", length="1:23", title="B")
        proc = MagicMock()
        proc.stdout = io.StringIO(text)
        proc.poll.return_value = 0
        with patch("songsplit.player.subprocess.Popen", return_value=proc):
            source = PlayerctlEventSource("spotify")
            source.start()
        events = [source.poll(timeout=2) for _ in range(3)]
        source.close()
        assert isinstance(events[0], NewSong)
        assert events[1].status is PlaybackStatus.PAUSED
        assert events[2].status is PlaybackStatus.STOPPED

    def test_garbage_line_skipped(self):
        source = PlayerctlEventSource("spotify")
        assert source.handle_line("No players found\n") == []


class TestEventSource:
    def _popen(self, text):
        proc = MagicMock()
        proc.stdout = io.StringIO(text)
        proc.poll.return_value = 0
        return proc

    def test_command(self):
        cmd = PlayerctlEventSource("spotify").command()
        assert cmd[:4] == ["playerctl", "--player=spotify", "--follow", "metadata"]
        assert cmd[cmd.index("--format") + 1] == FORMAT

    def test_events_then_stopped_at_eof(self):
        text = _line(status="Paused", title="A") + _line(status="Playing", title="A") + \
            _line(status="Playing", title="B")
        with patch("songsplit.player.subprocess.Popen", return_value=self._popen(text)):
            source = PlayerctlEventSource("spotify")
            source.start()

        events = []
        while True:
            event = source.poll(timeout=2)
            assert event is not None
            events.append(event)
            if isinstance(event, PlaybackStatusChanged) and event.status is PlaybackStatus.STOPPED:
                break
        source.close()

        assert [type(e).__name__ for e in events] == [
            "NewSong", "PlaybackStatusChanged", "NewSong", "PlaybackStatusChanged",
        ]
        assert events[0].song.title == "A"
        assert events[1].status is PlaybackStatus.PLAYING
        assert events[2].song.title == "B"

    def test_poll_timeout(self):
        source = PlayerctlEventSource("spotify")
        assert source.poll(timeout=0.01) is None

    def test_double_start_raises(self):
        with patch("songsplit.player.subprocess.Popen", return_value=self._popen("")):
            source = PlayerctlEventSource("spotify")
            source.start()
            with pytest.raises(RuntimeError):
                source.start()
        source.close()

    def test_close_terminates_running_process(self):
        proc = self._popen("")
        proc.poll.return_value = None
        with patch("songsplit.player.subprocess.Popen", return_value=proc):
            source = PlayerctlEventSource("spotify")
            source.start()
        source.close()
        proc.terminate.assert_called_once()


class TestControl:
    @pytest.mark.parametrize("action", ["play", "pause", "previous"])
    def test_actions(self, action):
        ok = subprocess.CompletedProcess([], 0, stdout="", stderr="")
        with patch("songsplit.player.subprocess.run", return_value=ok) as run:
            getattr(PlayerctlControl("spotify"), action)()
        assert run.call_args[0][0] == ["playerctl", "--player=spotify", action]

    def test_failure_raises(self):
        failed = subprocess.CompletedProcess([], 1, stdout="", stderr="No players found")
        with patch("songsplit.player.subprocess.run", return_value=failed):
            with pytest.raises(RuntimeError, match="No players found"):
                PlayerctlControl("spotify").play()

    def test_missing_playerctl(self):
        with patch("songsplit.player.subprocess.run", side_effect=FileNotFoundError("playerctl")):
            with pytest.raises(RuntimeError, match="playerctl play failed"):
                PlayerctlControl("spotify").play()

    def test_null_control_does_nothing(self):
        control = NullControl()
        control.play()
        control.pause()
        control.previous()
