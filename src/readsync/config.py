"""Configuration management via .env file."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _xdg_data_home() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def _xdg_config_home() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))


@dataclass
class AppConfig:
    # Paths
    data_dir: Path = field(default_factory=lambda: _xdg_data_home() / "readsync")
    config_dir: Path = field(default_factory=lambda: _xdg_config_home() / "readsync")
    db_path: Path = field(init=False)
    log_path: Path = field(init=False)

    # Server-side cache
    redis_url: str = "redis://localhost:6379"
    sweep_interval_seconds: float = 60.0
    session_active_ttl: int = 60 * 60 * 24  # 24 hours
    session_inactive_ttl: int = 60 * 10  # 10 minutes

    # Client-side sync
    api_base_url: str = "http://localhost:3001/api"
    api_token: str = ""
    push_throttle_seconds: float = 30.0
    http_timeout: float = 30.0

    def __post_init__(self) -> None:
        self.db_path = self.data_dir / "readsync.db"
        self.log_path = self.data_dir / "readsync.log"
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.api_token)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_config(env_path: Optional[Path] = None) -> AppConfig:
    """Load config from .env file. Searches CWD then config dir."""
    search_paths = [
        env_path,
        Path.cwd() / ".env",
        _xdg_config_home() / "readsync" / ".env",
        Path.home() / ".env",
    ]
    for p in search_paths:
        if p and p.exists():
            load_dotenv(p)
            break

    kwargs = {}
    data_dir = os.getenv("READSYNC_DATA_DIR")
    if data_dir:
        kwargs["data_dir"] = Path(data_dir).expanduser()

    defaults = AppConfig(**kwargs)
    return AppConfig(
        redis_url=os.getenv("READSYNC_REDIS_URL", defaults.redis_url),
        sweep_interval_seconds=_env_float(
            "READSYNC_SWEEP_INTERVAL", defaults.sweep_interval_seconds
        ),
        session_active_ttl=int(
            _env_float("READSYNC_SESSION_TTL", defaults.session_active_ttl)
        ),
        session_inactive_ttl=int(
            _env_float("READSYNC_SESSION_INACTIVE_TTL", defaults.session_inactive_ttl)
        ),
        api_base_url=os.getenv("READSYNC_API_URL", defaults.api_base_url),
        api_token=os.getenv("READSYNC_API_TOKEN", defaults.api_token),
        push_throttle_seconds=_env_float(
            "READSYNC_PUSH_THROTTLE", defaults.push_throttle_seconds
        ),
        http_timeout=_env_float("READSYNC_HTTP_TIMEOUT", defaults.http_timeout),
        **kwargs,
    )
