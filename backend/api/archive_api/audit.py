"""
Audit Ledger reads.

Entries are written only by repo.append_audit, inside the transaction of the
change they record. This module exposes reads, scoped like the review queue.
"""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy.engine import Engine

from archive_api import authority, repo
from archive_api.models import AuditEntry


def list_entries(
    engine: Engine,
    viewer_id: str,
    *,
    journey_id: Optional[str] = None,
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditEntry]:
    with engine.begin() as conn:
        scope = authority.effective_grants(conn, viewer_id).read_scope()
        if scope.journey_ids is not None and journey_id and journey_id not in scope.journey_ids:
            return []
        return repo.list_audit(
            conn,
            journey_ids=scope.journey_ids,
            owner_id=scope.owner_id,
            journey_id=journey_id,
            target_id=target_id,
            action=action,
            limit=limit,
            offset=offset,
        )
