# backend/api/archive_api/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


_loaded = False


def load_env_once() -> None:
    """
    Loads .env from:
      1) ENV_PATH if provided
      2) backend/api/.env (project default)
      3) current working directory .env (fallback)
    """
    global _loaded
    if _loaded:
        return
    _loaded = True

    env_path = os.getenv("ENV_PATH")
    if env_path:
        p = Path(env_path)
        if p.exists():
            load_dotenv(p, override=False)
            return

    # this file is backend/api/archive_api/config.py
    backend_api_dir = Path(__file__).resolve().parents[1]
    p2 = backend_api_dir / ".env"
    if p2.exists():
        load_dotenv(p2, override=False)
        return

    p3 = Path.cwd() / ".env"
    if p3.exists():
        load_dotenv(p3, override=False)


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


def _csv_env(name: str) -> tuple[str, ...]:
    raw = os.getenv(name) or ""
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    database_url: str | None
    global_steward_ids: tuple[str, ...] = ()
    max_image_doc_mb: int = 8
    max_video_mb: int = 50
    statement_timeout_ms: int = 15_000
    log_level: str = "INFO"

    @property
    def max_image_doc_bytes(self) -> int:
        return self.max_image_doc_mb * 1024 * 1024

    @property
    def max_video_bytes(self) -> int:
        return self.max_video_mb * 1024 * 1024


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings

    if _settings is not None:
        return _settings

    load_env_once()
    _settings = Settings(
        database_url=os.getenv("DATABASE_URL") or os.getenv("DB_URL"),
        global_steward_ids=_csv_env("GLOBAL_STEWARD_IDS"),
        max_image_doc_mb=_int_env("MAX_IMAGE_DOC_MB", 8),
        max_video_mb=_int_env("MAX_VIDEO_MB", 50),
        statement_timeout_ms=_int_env("STATEMENT_TIMEOUT_MS", 15_000),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
    return _settings


def use_settings(settings: Settings | None) -> None:
    """Replace the process settings (tests, embedded use). None resets to env."""
    global _settings
    _settings = settings
