"""Tests for the background recording worker."""

import threading
import time

import numpy as np
import pytest

from conftest import FakeControl, FakeSource, make_session, make_song, write_wav
from songsplit.events import NewSong, PlaybackStatus, PlaybackStatusChanged
from songsplit.recorder.mock_recorder import MockRecorder
from songsplit.recording import RecordingSettings, buffer_seconds, start_recording
from songsplit.timeline import RecordingExitStatus


def _settings(**overrides):
    values = dict(
        sample_rate=8000,
        channels=1,
        poll_timeout=0.01,
        no_new_song_timeout=60.0,
        lead_in_seconds=0.0,
        wait_before_first_song=0.0,
        tail_seconds=0.0,
    )
    values.update(overrides)
    return RecordingSettings(**values)


def _events(*titles, end=PlaybackStatus.PAUSED):
    events = [NewSong(make_song(title, 10.0)) for title in titles]
    if end is not None:
        events.append(PlaybackStatusChanged(end))
    return events


class TestNewSession:
    def test_songs_until_pause(self, tmp_path):
        saved = []
        source = FakeSource(_events("a", "b"))
        handle = start_recording(
            source, FakeControl(), tmp_path / "buf.wav", _settings(), threading.Event(),
            recorder=MockRecorder(duration=1.0), persist=lambda s: saved.append(len(s.songs)),
        )
        outcome = handle.result(timeout=5)

        assert outcome.status is RecordingExitStatus.FINISHED_OR_INTERRUPTED
        assert [s.title for s in outcome.session.songs] == ["a", "b"]
        assert outcome.duration == pytest.approx(1.0)
        assert saved == [1, 2, 2]
        assert source.closed
        assert [s.title for s in handle.drain_songs()] == ["a", "b"]
        assert handle.drain_songs() == []

    def test_lead_in_order(self, tmp_path):
        log = []
        handle = start_recording(
            FakeSource(_events("a"), log), FakeControl(log), tmp_path / "buf.wav",
            _settings(lead_in_seconds=0.01, wait_before_first_song=0.01), threading.Event(),
            recorder=MockRecorder(),
        )
        handle.result(timeout=5)
        assert log == ["play", "pause", "previous", "start", "play"]

    def test_no_lead_in(self, tmp_path):
        log = []
        handle = start_recording(
            FakeSource(_events("a"), log), FakeControl(log), tmp_path / "buf.wav",
            _settings(), threading.Event(), recorder=MockRecorder(),
        )
        handle.result(timeout=5)
        assert log == ["start", "play"]

    def test_first_song_estimate_from_recorder(self, tmp_path):
        ticks = iter([100.0, 103.5])
        recorder = MockRecorder(clock=lambda: next(ticks))
        handle = start_recording(
            FakeSource(_events("a")), FakeControl(), tmp_path / "buf.wav",
            _settings(), threading.Event(), recorder=recorder,
        )
        outcome = handle.result(timeout=5)
        assert outcome.session.estimated_time_first_song == pytest.approx(3.5)

    def test_invalid_and_repeated_songs_dropped(self, tmp_path):
        events = [
            NewSong(make_song("a", 10.0)),
            NewSong(make_song("a", 10.0)),
            NewSong(make_song("broken", 0.0)),
            NewSong(make_song("b", 10.0)),
            PlaybackStatusChanged(PlaybackStatus.STOPPED),
        ]
        handle = start_recording(
            FakeSource(events), FakeControl(), tmp_path / "buf.wav",
            _settings(), threading.Event(), recorder=MockRecorder(),
        )
        assert [s.title for s in handle.result(timeout=5).session.songs] == ["a", "b"]


class TestStopping:
    def test_cancel(self, tmp_path):
        cancel = threading.Event()
        recorder = MockRecorder()
        handle = start_recording(
            FakeSource([]), FakeControl(), tmp_path / "buf.wav",
            _settings(tail_seconds=30.0), cancel, recorder=recorder,
        )
        cancel.set()
        outcome = handle.result(timeout=5)
        assert outcome.status is RecordingExitStatus.FINISHED_OR_INTERRUPTED
        assert outcome.session.songs == []
        assert not recorder.is_recording()

    def test_no_new_song_watchdog(self, tmp_path):
        now = [0.0]

        def clock():
            now[0] += 10.0
            return now[0]

        handle = start_recording(
            FakeSource([NewSong(make_song("a", 10.0))]), FakeControl(), tmp_path / "buf.wav",
            _settings(no_new_song_timeout=25.0), threading.Event(),
            recorder=MockRecorder(), clock=clock,
        )
        outcome = handle.result(timeout=5)
        assert outcome.status is RecordingExitStatus.NO_NEW_SONG_FOR_TOO_LONG
        assert [s.title for s in outcome.session.songs] == ["a"]

    def test_tail_recorded_after_pause(self, tmp_path):
        handle = start_recording(
            FakeSource(_events("a")), FakeControl(), tmp_path / "buf.wav",
            _settings(tail_seconds=0.05), threading.Event(), recorder=MockRecorder(),
        )
        started = time.monotonic()
        handle.result(timeout=5)
        assert time.monotonic() - started >= 0.04

    def test_result_timeout(self, tmp_path):
        cancel = threading.Event()
        handle = start_recording(
            FakeSource([]), FakeControl(), tmp_path / "buf.wav",
            _settings(), cancel, recorder=MockRecorder(),
        )
        with pytest.raises(TimeoutError):
            handle.result(timeout=0.05)
        cancel.set()
        handle.result(timeout=5)


class TestResume:
    def test_appends_to_existing_session(self, tmp_path):
        log = []
        session = make_session([10.0, 20.0], first=3.0)
        handle = start_recording(
            FakeSource(_events("c"), log), FakeControl(log), tmp_path / "buf.wav",
            _settings(lead_in_seconds=1.0), threading.Event(),
            recorder=MockRecorder(), session=session,
        )
        outcome = handle.result(timeout=5)
        assert log == ["start"]
        assert outcome.session is session
        assert outcome.session.estimated_time_first_song == 3.0
        assert [s.title for s in outcome.session.songs] == ["Song 1", "Song 2", "c"]


class TestExternalCapture:
    def test_time_base_from_buffer_header(self, tmp_path):
        buffer_file = tmp_path / "external.wav"
        write_wav(buffer_file, np.zeros(8000 * 2, dtype=np.int16), sample_rate=8000)
        handle = start_recording(
            FakeSource(_events("a")), FakeControl(), buffer_file,
            _settings(), threading.Event(),
        )
        outcome = handle.result(timeout=5)
        assert outcome.session.estimated_time_first_song == pytest.approx(2.0)
        assert outcome.duration == pytest.approx(2.0)

    def test_buffer_seconds(self, tmp_path):
        path = tmp_path / "b.wav"
        write_wav(path, np.zeros(4000 * 2, dtype=np.int16), sample_rate=4000, channels=2)
        assert buffer_seconds(path) == pytest.approx(1.0)


class TestErrors:
    def test_worker_error_reraised(self, tmp_path):
        class BrokenSource(FakeSource):
            def start(self):
                raise RuntimeError("playerctl not found")

        recorder = MockRecorder()
        handle = start_recording(
            BrokenSource([]), FakeControl(), tmp_path / "buf.wav",
            _settings(), threading.Event(), recorder=recorder,
        )
        with pytest.raises(RuntimeError, match="playerctl not found"):
            handle.result(timeout=5)
        assert not recorder.is_recording()

    def test_recorder_start_failure_closes_source(self, tmp_path):
        class BrokenRecorder(MockRecorder):
            def start(self, output_path, config):
                raise RuntimeError("pw-record not found")

        source = FakeSource(_events("a"))
        handle = start_recording(
            source, FakeControl(), tmp_path / "buf.wav",
            _settings(), threading.Event(), recorder=BrokenRecorder(),
        )
        with pytest.raises(RuntimeError, match="pw-record not found"):
            handle.result(timeout=5)
        assert source.closed

    def test_missing_external_buffer(self, tmp_path):
        handle = start_recording(
            FakeSource(_events("a")), FakeControl(), tmp_path / "missing.wav",
            _settings(), threading.Event(),
        )
        with pytest.raises(FileNotFoundError):
            handle.result(timeout=5)


def test_settings_from_config():
    from songsplit.config import SongsplitConfig

    config = SongsplitConfig()
    config.recording.tail_seconds = 2.0
    settings = RecordingSettings.from_config(config.recording)
    assert settings.tail_seconds == 2.0
    assert settings.player == "spotify"
