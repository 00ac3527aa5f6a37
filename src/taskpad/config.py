# src/taskpad/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Storage limits are configuration, never derived at runtime.
- Local safe overrides via an optional, gitignored config_local.py.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKPAD"

STORE_BACKENDS = ("sqlite", "memory")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    store_backend: str
    store_path: Path

    # ---- Write scheduling ----
    write_throttle_ms: int
    max_writes_per_minute: int

    # ---- Chunking / quota ----
    target_chunk_bytes: int
    quota_bytes_per_item: int
    quota_bytes: int

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskpad") or "taskpad"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskpad"))
        store_backend = _env(_k("STORE_BACKEND"), "sqlite").strip().lower()
        if store_backend not in STORE_BACKENDS:
            store_backend = "sqlite"
        store_path = _env_path(_k("STORE_PATH"), data_dir / "store.sqlite3")

        write_throttle_ms = _env_int(_k("WRITE_THROTTLE_MS"), 2000)
        max_writes_per_minute = _env_int(_k("MAX_WRITES_PER_MINUTE"), 120)

        target_chunk_bytes = _env_int(_k("TARGET_CHUNK_BYTES"), 7 * 1024)
        quota_bytes_per_item = _env_int(_k("QUOTA_BYTES_PER_ITEM"), 8 * 1024)
        quota_bytes = _env_int(_k("QUOTA_BYTES"), 100 * 1024)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            store_backend=store_backend,
            store_path=store_path,
            write_throttle_ms=write_throttle_ms,
            max_writes_per_minute=max_writes_per_minute,
            target_chunk_bytes=target_chunk_bytes,
            quota_bytes_per_item=quota_bytes_per_item,
            quota_bytes=quota_bytes,
        )


SETTINGS = Settings.from_env()

# ---- Optional local overrides (never committed) ----
# Prefer .env; use config_local.py only for safe overrides.
try:
    import config_local as _config_local  # type: ignore

    if hasattr(_config_local, "CONSOLE_ENABLED"):
        object.__setattr__(SETTINGS, "console_enabled", bool(_config_local.CONSOLE_ENABLED))  # type: ignore[misc]
    if hasattr(_config_local, "WRITE_THROTTLE_MS"):
        object.__setattr__(SETTINGS, "write_throttle_ms", int(_config_local.WRITE_THROTTLE_MS))  # type: ignore[misc]
except ImportError:
    pass


def get_settings() -> Settings:
    return SETTINGS
