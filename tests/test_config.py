"""Tests for configuration."""

from __future__ import annotations

from pathlib import Path

import pytest

from readsync.cache.sessions import SessionManager
from readsync.cache.tiered import TieredCache
from readsync.config import AppConfig, load_config

_ENV_VARS = (
    "READSYNC_DATA_DIR",
    "READSYNC_REDIS_URL",
    "READSYNC_API_URL",
    "READSYNC_API_TOKEN",
    "READSYNC_PUSH_THROTTLE",
    "READSYNC_SWEEP_INTERVAL",
    "READSYNC_SESSION_TTL",
    "READSYNC_SESSION_INACTIVE_TTL",
    "READSYNC_HTTP_TIMEOUT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))


class TestAppConfig:
    def test_defaults(self, tmp_path: Path):
        config = AppConfig(data_dir=tmp_path / "data", config_dir=tmp_path / "config")
        assert config.redis_url == "redis://localhost:6379"
        assert config.push_throttle_seconds == 30.0
        assert config.sweep_interval_seconds == 60.0
        assert config.session_active_ttl == 86400
        assert config.session_inactive_ttl == 600
        assert config.db_path == tmp_path / "data" / "readsync.db"
        assert config.is_authenticated is False

    def test_dirs_created(self, tmp_path: Path):
        data = tmp_path / "data"
        conf = tmp_path / "config"
        AppConfig(data_dir=data, config_dir=conf)
        assert data.exists()
        assert conf.exists()

    def test_cache_from_config(self, config: AppConfig):
        cache = TieredCache.from_config(config)
        assert cache.connected is False

    def test_sessions_from_config(self, tmp_path: Path):
        config = AppConfig(
            data_dir=tmp_path / "data",
            config_dir=tmp_path / "config",
            session_active_ttl=3600,
            session_inactive_ttl=120,
        )
        sessions = SessionManager.from_config(TieredCache(), config)
        assert sessions.active_ttl == 3600
        assert sessions.inactive_ttl == 120


class TestLoadConfig:
    def test_load_from_env_file(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"READSYNC_DATA_DIR={tmp_path / 'custom'}\n"
            "READSYNC_REDIS_URL=redis://cache:6380/1\n"
            "READSYNC_API_URL=https://reader.example.com/api\n"
            "READSYNC_API_TOKEN=tok-123\n"
            "READSYNC_PUSH_THROTTLE=5\n"
        )
        config = load_config(env_path=env_file)
        assert config.data_dir == tmp_path / "custom"
        assert config.redis_url == "redis://cache:6380/1"
        assert config.api_base_url == "https://reader.example.com/api"
        assert config.api_token == "tok-123"
        assert config.push_throttle_seconds == 5.0
        assert config.is_authenticated is True

    def test_invalid_number_uses_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("READSYNC_PUSH_THROTTLE", "soon")
        monkeypatch.setenv("READSYNC_DATA_DIR", str(tmp_path / "d"))
        env_file = tmp_path / ".env"
        env_file.write_text("")
        config = load_config(env_path=env_file)
        assert config.push_throttle_seconds == 30.0

    def test_session_ttls_reach_session_manager(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"READSYNC_DATA_DIR={tmp_path / 'd'}\n"
            "READSYNC_SESSION_TTL=7200\n"
            "READSYNC_SESSION_INACTIVE_TTL=300\n"
        )
        config = load_config(env_path=env_file)
        sessions = SessionManager.from_config(TieredCache(), config)
        assert sessions.active_ttl == 7200
        assert sessions.inactive_ttl == 300
