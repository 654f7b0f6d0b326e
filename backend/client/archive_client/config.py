# backend/client/archive_client/config.py
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
      2) backend/client/.env
      3) current working directory .env (fallback)
    """
    global _loaded
    if _loaded:
        return
    _loaded = True

    env_path = os.getenv("ENV_PATH")
    if env_path and Path(env_path).exists():
        load_dotenv(Path(env_path), override=False)
        return

    client_env = Path(__file__).resolve().parents[1] / ".env"
    if client_env.exists():
        load_dotenv(client_env, override=False)
        return

    cwd_env = Path.cwd() / ".env"
    if cwd_env.exists():
        load_dotenv(cwd_env, override=False)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}")


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class ClientSettings:
    api_url: str = "http://localhost:8000"
    queue_path: str = "archive_queue.sqlite3"
    timeout_seconds: float = 15.0
    poll_seconds: float = 10.0
    max_image_doc_mb: int = 8
    max_video_mb: int = 50
    log_level: str = "INFO"

    @property
    def max_image_doc_bytes(self) -> int:
        return self.max_image_doc_mb * 1024 * 1024

    @property
    def max_video_bytes(self) -> int:
        return self.max_video_mb * 1024 * 1024


def get_client_settings() -> ClientSettings:
    load_env_once()
    return ClientSettings(
        api_url=(os.getenv("ARCHIVE_API_URL") or "http://localhost:8000").rstrip("/"),
        queue_path=os.getenv("ARCHIVE_QUEUE_PATH") or "archive_queue.sqlite3",
        timeout_seconds=_float_env("ARCHIVE_TIMEOUT_SECONDS", 15.0),
        poll_seconds=_float_env("ARCHIVE_POLL_SECONDS", 10.0),
        max_image_doc_mb=_int_env("MAX_IMAGE_DOC_MB", 8),
        max_video_mb=_int_env("MAX_VIDEO_MB", 50),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
