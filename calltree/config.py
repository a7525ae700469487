"""Runtime settings, read from the environment (and a .env file via main)."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_DATA_DIR = Path("~/.calltree")
DEFAULT_FLUSH_DELAY_MS = 250
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_CORS_ORIGINS = ("http://localhost:5173",)


def _as_int(value: str | None, *, default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _as_str_tuple(value: str | None, *, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


@dataclass(frozen=True)
class Settings:
    data_dir: Path = DEFAULT_DATA_DIR
    flush_delay_ms: int = DEFAULT_FLUSH_DELAY_MS
    log_level: str = DEFAULT_LOG_LEVEL
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS

    @property
    def flush_delay(self) -> float:
        """Debounce window in seconds."""
        return self.flush_delay_ms / 1000

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    @property
    def log_level_value(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from CALLTREE_* variables; bad values fall back to defaults."""
    env = os.environ if environ is None else environ
    data_dir = env.get("CALLTREE_DATA_DIR")
    flush_delay_ms = _as_int(env.get("CALLTREE_FLUSH_DELAY_MS"), default=DEFAULT_FLUSH_DELAY_MS)
    if flush_delay_ms < 0:
        flush_delay_ms = DEFAULT_FLUSH_DELAY_MS
    return Settings(
        data_dir=Path(data_dir or DEFAULT_DATA_DIR).expanduser(),
        flush_delay_ms=flush_delay_ms,
        log_level=(env.get("CALLTREE_LOG_LEVEL") or DEFAULT_LOG_LEVEL).strip().upper(),
        cors_origins=_as_str_tuple(env.get("CALLTREE_CORS_ORIGINS"), default=DEFAULT_CORS_ORIGINS),
    )
