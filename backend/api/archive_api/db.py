# backend/api/archive_api/db.py
from __future__ import annotations

import logging
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

from archive_api.config import get_settings
from archive_api.schema import ddl_statements

log = logging.getLogger("archive_api.db")

_engine: Engine | None = None


def build_engine(db_url: str, statement_timeout_ms: int | None = None) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync endpoints on a threadpool
        connect_args["check_same_thread"] = False
        if statement_timeout_ms:
            connect_args["timeout"] = statement_timeout_ms / 1000
    elif db_url.startswith("postgresql") and statement_timeout_ms:
        connect_args["options"] = f"-c statement_timeout={int(statement_timeout_ms)}"

    return create_engine(db_url, pool_pre_ping=True, future=True, connect_args=connect_args)


def get_engine() -> Engine:
    global _engine

    if _engine is not None:
        return _engine

    settings = get_settings()
    if not settings.database_url:
        backend_api_dir = Path(__file__).resolve().parents[1]
        raise RuntimeError(
            "DATABASE_URL is not set. Ensure it exists in backend/api/.env or set ENV_PATH.\n"
            f"Tried: {backend_api_dir / '.env'}, {Path.cwd() / '.env'}"
        )

    _engine = build_engine(settings.database_url, settings.statement_timeout_ms)
    return _engine


def use_engine(engine: Engine | None) -> None:
    """Pin the process engine (tests, embedded use). None forgets it."""
    global _engine
    _engine = engine


def db_ping(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def create_schema(engine: Engine) -> None:
    """Create all tables. Alembic does this in deployed environments."""
    with engine.begin() as conn:
        for stmt in ddl_statements(engine.dialect.name):
            conn.execute(text(stmt))
    log.info("Schema ensured on %s", engine.dialect.name)
