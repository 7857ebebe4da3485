"""Tests for path resolution."""

from songsplit.paths import (
    ensure_dirs,
    get_config_path,
    get_data_dir,
    get_music_dir,
    get_sessions_dir,
)


def test_data_dir_default(monkeypatch):
    monkeypatch.delenv("SONGSPLIT_DATA_DIR", raising=False)
    data_dir = get_data_dir()
    assert "songsplit" in str(data_dir)


def test_data_dir_config_override(tmp_path):
    override = str(tmp_path / "custom")
    data_dir = get_data_dir(config_override=override)
    assert data_dir == tmp_path / "custom"


def test_data_dir_env_override(tmp_path, monkeypatch):
    env_path = str(tmp_path / "env_dir")
    monkeypatch.setenv("SONGSPLIT_DATA_DIR", env_path)
    data_dir = get_data_dir()
    assert data_dir == tmp_path / "env_dir"


def test_config_override_takes_precedence_over_env(tmp_path, monkeypatch):
    monkeypatch.setenv("SONGSPLIT_DATA_DIR", str(tmp_path / "env"))
    data_dir = get_data_dir(config_override=str(tmp_path / "config"))
    assert data_dir == tmp_path / "config"


def test_subdirectory_helpers(tmp_path):
    assert get_sessions_dir(tmp_path) == tmp_path / "sessions"
    assert get_config_path(tmp_path) == tmp_path / "config.toml"


def test_music_dir(tmp_path):
    assert get_music_dir(tmp_path) == tmp_path / "music"
    assert get_music_dir(tmp_path, str(tmp_path / "elsewhere")) == tmp_path / "elsewhere"


def test_ensure_dirs(tmp_path):
    ensure_dirs(tmp_path)
    assert (tmp_path / "sessions").is_dir()
    ensure_dirs(tmp_path)  # idempotent
