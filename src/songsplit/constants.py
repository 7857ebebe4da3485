"""Shared constants and defaults."""

APP_NAME = "songsplit"

DEFAULT_PLAYER = "spotify"
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_CHANNELS = 2

# Seconds between event source polls; bounds cancellation latency.
DEFAULT_POLL_TIMEOUT = 0.1
DEFAULT_NO_NEW_SONG_TIMEOUT = 1800.0
DEFAULT_LEAD_IN_SECONDS = 1.0
DEFAULT_WAIT_BEFORE_FIRST_SONG = 0.2
DEFAULT_TAIL_SECONDS = 5.0

DEFAULT_MIN_OFFSET = -5.0
DEFAULT_MAX_OFFSET = 5.0
DEFAULT_NUM_OFFSETS = 1000
DEFAULT_READ_BUFFER = 0.5
DEFAULT_VOLUME_WINDOW = 100
DEFAULT_QUALITY_THRESHOLD = 0.05

DEFAULT_BITRATE = 320
DEFAULT_EXTENSION = "opus"

SESSION_SUFFIX = ".toml"
BUFFER_SUFFIX = ".wav"

VALID_EXTENSIONS = ("opus", "ogg", "mp3", "flac", "m4a")
VALID_SORT_FIELDS = ("date", "duration", "songs")
