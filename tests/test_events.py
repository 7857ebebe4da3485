"""Tests for player event classification and metadata normalisation."""

import pytest

from songsplit.events import (
    CapabilityNotice,
    NewSong,
    PlaybackStatus,
    PlaybackStatusChanged,
    event_from_properties,
    parse_length,
    song_from_metadata,
)

SPOTIFY_METADATA = {
    "xesam:artist": [["Boards of Canada"]],
    "xesam:album": "Geogaddi",
    "xesam:title": "Music Is Math",
    "xesam:trackNumber": 5,
    "mpris:length": 321_000_000,
}


class TestEventFromProperties:
    def test_status(self):
        event = event_from_properties({"PlaybackStatus": "Paused"}, timestamp=3.0)
        assert event == PlaybackStatusChanged(PlaybackStatus.PAUSED, 3.0)

    def test_metadata(self):
        event = event_from_properties({"Metadata": SPOTIFY_METADATA})
        assert isinstance(event, NewSong)
        assert event.song.title == "Music Is Math"

    def test_other_properties(self):
        event = event_from_properties({"CanGoNext": True})
        assert isinstance(event, CapabilityNotice)
        assert event.properties == {"CanGoNext": True}

    def test_unknown_status_falls_through(self, caplog):
        event = event_from_properties({"PlaybackStatus": "Buffering"})
        assert isinstance(event, CapabilityNotice)
        assert "Unknown playback status" in caplog.text


class TestSongFromMetadata:
    def test_nested_artist(self):
        song = song_from_metadata(SPOTIFY_METADATA)
        assert song.artist == "Boards of Canada"
        assert song.album == "Geogaddi"
        assert song.track_number == 5
        assert song.length == pytest.approx(321.0)

    def test_missing_fields(self):
        song = song_from_metadata({"xesam:title": "Only a title"})
        assert song.artist is None
        assert song.track_number is None
        assert song.length == 0.0
        assert not song.is_valid

    def test_empty_artist_list(self):
        song = song_from_metadata({"xesam:artist": [], "mpris:length": 1})
        assert song.artist is None


class TestParseLength:
    def test_unsigned(self):
        assert parse_length(180_000_000) == pytest.approx(180.0)

    def test_string(self):
        assert parse_length("200000000") == pytest.approx(200.0)

    def test_signed_wraps(self):
        assert parse_length(-1) == pytest.approx((2**64 - 1) / 1_000_000)

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing(self, value):
        assert parse_length(value) == 0.0

    def test_garbage_string(self):
        with pytest.raises(ValueError):
            parse_length("three minutes")
