"""
Durable on-device queue for submissions captured while offline.

Records live in a local SQLite file and survive restarts. Insertion order is
kept by an autoincrement sequence. A record leaves the queue only on
confirmed delivery or explicit user dismissal. The same file holds the drain
lease that keeps two drain passes from overlapping.
"""
from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine

log = logging.getLogger("archive_client.offline_queue")

# automatic drains skip a record after this many failed attempts
MAX_RETRIES = 3

SUBMISSION_KINDS = ("contribution", "contact", "join")

_DDL = """
CREATE TABLE IF NOT EXISTS queued_submissions (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    kind TEXT NOT NULL,
    actor_id TEXT,
    payload TEXT NOT NULL,
    created_at TEXT NOT NULL,
    retry_count INTEGER NOT NULL DEFAULT 0,
    last_error TEXT
)
"""

# one row; whoever holds it is the only drain pass on this queue file,
# whichever process it runs in
_LEASE_DDL = """
CREATE TABLE IF NOT EXISTS drain_lease (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    holder TEXT,
    expires_at REAL
)
"""

# a pass that dies without releasing blocks others for at most this long
LEASE_SECONDS = 300.0

_COLUMNS = "seq, id, kind, actor_id, payload, created_at, retry_count, last_error"


@dataclass(frozen=True)
class QueuedSubmission:
    seq: int
    id: str
    kind: str
    actor_id: Optional[str]
    payload: Dict[str, Any]
    created_at: datetime
    retry_count: int
    last_error: Optional[str]

    @property
    def needs_manual_retry(self) -> bool:
        return self.retry_count >= MAX_RETRIES

    @classmethod
    def from_row(cls, row) -> "QueuedSubmission":
        return cls(
            seq=int(row["seq"]),
            id=str(row["id"]),
            kind=str(row["kind"]),
            actor_id=row["actor_id"],
            payload=json.loads(row["payload"]),
            created_at=datetime.fromisoformat(row["created_at"]),
            retry_count=int(row["retry_count"]),
            last_error=row["last_error"],
        )


class OfflineQueue:
    def __init__(self, path: Optional[str] = None, engine: Optional[Engine] = None):
        if engine is None:
            if not path:
                raise RuntimeError("OfflineQueue needs a file path or an engine")
            engine = create_engine(
                f"sqlite:///{path}",
                future=True,
                connect_args={"check_same_thread": False, "timeout": 30},
            )
        self._engine = engine
        with self._engine.begin() as conn:
            conn.execute(text(_DDL))
            conn.execute(text(_LEASE_DDL))
            conn.execute(text("INSERT OR IGNORE INTO drain_lease (id, holder, expires_at) VALUES (1, NULL, NULL)"))

    def enqueue(self, kind: str, payload: Dict[str, Any], actor_id: Optional[str] = None) -> QueuedSubmission:
        if kind not in SUBMISSION_KINDS:
            raise ValueError(f"kind must be one of {list(SUBMISSION_KINDS)}")
        record_id = uuid.uuid4().hex
        with self._engine.begin() as conn:
            conn.execute(
                text("""
                    INSERT INTO queued_submissions (id, kind, actor_id, payload, created_at, retry_count)
                    VALUES (:id, :kind, :actor_id, :payload, :created_at, 0)
                """),
                {
                    "id": record_id,
                    "kind": kind,
                    "actor_id": actor_id,
                    "payload": json.dumps(payload, sort_keys=True),
                    "created_at": datetime.now(timezone.utc).isoformat(),
                },
            )
        record = self.get(record_id)
        log.info("Queued %s submission %s (%d waiting)", kind, record_id, self.count())
        return record

    def list(self) -> List[QueuedSubmission]:
        with self._engine.begin() as conn:
            rows = conn.execute(
                text(f"SELECT {_COLUMNS} FROM queued_submissions ORDER BY seq ASC")
            ).mappings().all()
        return [QueuedSubmission.from_row(r) for r in rows]

    def pending(self, include_exhausted: bool = False) -> List[QueuedSubmission]:
        records = self.list()
        if include_exhausted:
            return records
        return [r for r in records if not r.needs_manual_retry]

    def get(self, record_id: str) -> Optional[QueuedSubmission]:
        with self._engine.begin() as conn:
            row = conn.execute(
                text(f"SELECT {_COLUMNS} FROM queued_submissions WHERE id = :id"),
                {"id": record_id},
            ).mappings().first()
        return QueuedSubmission.from_row(row) if row else None

    def remove(self, record_id: str) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(
                text("DELETE FROM queued_submissions WHERE id = :id"),
                {"id": record_id},
            )
        return result.rowcount == 1

    def record_failure(self, record_id: str, error: str) -> Optional[QueuedSubmission]:
        with self._engine.begin() as conn:
            conn.execute(
                text("""
                    UPDATE queued_submissions
                    SET retry_count = retry_count + 1,
                        last_error = :error
                    WHERE id = :id
                """),
                {"id": record_id, "error": error},
            )
        return self.get(record_id)

    def count(self) -> int:
        with self._engine.begin() as conn:
            return int(conn.execute(text("SELECT COUNT(*) FROM queued_submissions")).scalar_one())

    def clear(self) -> int:
        with self._engine.begin() as conn:
            result = conn.execute(text("DELETE FROM queued_submissions"))
        return result.rowcount

    # ----------------------------
    # Drain lease
    # ----------------------------

    def claim_drain(self, lease_seconds: float = LEASE_SECONDS) -> Optional[str]:
        """
        Claim the queue for one drain pass.

        Returns a holder token, or None while another pass (in this process or
        any other using the same file) holds an unexpired lease. The claim is a
        single conditional UPDATE, so SQLite's write lock decides the winner.
        """
        holder = uuid.uuid4().hex
        now = time.time()
        with self._engine.begin() as conn:
            result = conn.execute(
                text("""
                    UPDATE drain_lease
                    SET holder = :holder, expires_at = :expires_at
                    WHERE id = 1 AND (holder IS NULL OR expires_at < :now)
                """),
                {"holder": holder, "expires_at": now + lease_seconds, "now": now},
            )
        return holder if result.rowcount == 1 else None

    def renew_drain(self, holder: str, lease_seconds: float = LEASE_SECONDS) -> bool:
        with self._engine.begin() as conn:
            result = conn.execute(
                text("UPDATE drain_lease SET expires_at = :expires_at WHERE id = 1 AND holder = :holder"),
                {"holder": holder, "expires_at": time.time() + lease_seconds},
            )
        return result.rowcount == 1

    def release_drain(self, holder: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(
                text("UPDATE drain_lease SET holder = NULL, expires_at = NULL WHERE id = 1 AND holder = :holder"),
                {"holder": holder},
            )
