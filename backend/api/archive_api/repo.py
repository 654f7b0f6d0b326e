from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import bindparam, text
from sqlalchemy.engine import Connection

from archive_api.clock import to_iso, utcnow
from archive_api.models import (
    AuditEntry,
    ContributionItem,
    InboundMessage,
    Journey,
    JourneyViewer,
    StewardGrant,
    dumps,
)


# ----------------------------
# Helpers (safe + deterministic)
# ----------------------------

def new_id() -> str:
    return uuid.uuid4().hex


def _sort_to_order_by(sort: str) -> str:
    """
    Allowed sort values (explicit allow-list to avoid SQL injection):
      - created_at_desc (default)
      - created_at_asc
      - updated_at_desc
      - updated_at_asc
    """
    s = (sort or "").strip().lower()
    if s == "created_at_asc":
        return "created_at ASC"
    if s == "updated_at_desc":
        return "updated_at DESC"
    if s == "updated_at_asc":
        return "updated_at ASC"
    return "created_at DESC"


def _scope_where(
    where_parts: List[str],
    params: Dict[str, Any],
    journey_ids: Optional[Sequence[str]],
    owner_id: Optional[str],
) -> List[str]:
    """
    Appends the read-scope predicate and returns the names of expanding params.

    journey_ids=None and owner_id=None means unrestricted (global steward).
    """
    expanding: List[str] = []
    if journey_ids is not None:
        where_parts.append("journey_id IN :scope_journey_ids")
        params["scope_journey_ids"] = list(journey_ids)
        expanding.append("scope_journey_ids")
    if owner_id is not None:
        where_parts.append("created_by = :scope_owner_id")
        params["scope_owner_id"] = owner_id
    return expanding


def _text(sql: str, expanding: Sequence[str] = ()):
    stmt = text(sql)
    if expanding:
        stmt = stmt.bindparams(*[bindparam(name, expanding=True) for name in expanding])
    return stmt


_ITEM_COLUMNS = """
    id, journey_id, type, status, visibility, payload, attribution,
    credit_line, rights_status, provenance_note, created_by, created_at,
    updated_at, reviewed_by, reviewed_at, rejection_note
"""

_GRANT_COLUMNS = "id, user_id, scope, journey_id, created_at, created_by, revoked_at, revoked_by"

_AUDIT_COLUMNS = """
    id, target_kind, target_id, journey_id, actor_id, action,
    before_snapshot, after_snapshot, note, created_at
"""


# ----------------------------
# Journeys + trusted circle
# ----------------------------

def insert_journey(conn: Connection, title: str, kind: str, owner_id: str) -> Journey:
    journey_id = new_id()
    conn.execute(
        text("""
            INSERT INTO journeys (id, title, kind, owner_id, created_at)
            VALUES (:id, :title, :kind, :owner_id, :created_at)
        """),
        {"id": journey_id, "title": title, "kind": kind, "owner_id": owner_id, "created_at": to_iso(utcnow())},
    )
    journey = get_journey(conn, journey_id)
    assert journey is not None
    return journey


def get_journey(conn: Connection, journey_id: str) -> Optional[Journey]:
    row = conn.execute(
        text("SELECT id, title, kind, owner_id, created_at FROM journeys WHERE id = :id"),
        {"id": journey_id},
    ).mappings().first()
    return Journey.from_row(row) if row else None


def get_viewer(conn: Connection, journey_id: str, user_id: str) -> Optional[JourneyViewer]:
    row = conn.execute(
        text("""
            SELECT journey_id, user_id, tier, can_preview, created_at
            FROM journey_viewers
            WHERE journey_id = :journey_id AND user_id = :user_id
        """),
        {"journey_id": journey_id, "user_id": user_id},
    ).mappings().first()
    return JourneyViewer.from_row(row) if row else None


def list_viewers(conn: Connection, journey_id: str) -> List[JourneyViewer]:
    rows = conn.execute(
        text("""
            SELECT journey_id, user_id, tier, can_preview, created_at
            FROM journey_viewers
            WHERE journey_id = :journey_id
            ORDER BY created_at ASC
        """),
        {"journey_id": journey_id},
    ).mappings().all()
    return [JourneyViewer.from_row(r) for r in rows]


def upsert_viewer(conn: Connection, journey_id: str, user_id: str, tier: str, can_preview: bool) -> JourneyViewer:
    params = {
        "journey_id": journey_id,
        "user_id": user_id,
        "tier": tier,
        "can_preview": 1 if can_preview else 0,
        "created_at": to_iso(utcnow()),
    }
    updated = conn.execute(
        text("""
            UPDATE journey_viewers
            SET tier = :tier, can_preview = :can_preview
            WHERE journey_id = :journey_id AND user_id = :user_id
        """),
        params,
    )
    if updated.rowcount == 0:
        conn.execute(
            text("""
                INSERT INTO journey_viewers (journey_id, user_id, tier, can_preview, created_at)
                VALUES (:journey_id, :user_id, :tier, :can_preview, :created_at)
            """),
            params,
        )
    viewer = get_viewer(conn, journey_id, user_id)
    assert viewer is not None
    return viewer


def delete_viewer(conn: Connection, journey_id: str, user_id: str) -> bool:
    result = conn.execute(
        text("DELETE FROM journey_viewers WHERE journey_id = :journey_id AND user_id = :user_id"),
        {"journey_id": journey_id, "user_id": user_id},
    )
    return result.rowcount > 0


# ----------------------------
# Contribution items
# ----------------------------

def insert_item(
    conn: Connection,
    *,
    journey_id: str,
    type: str,
    status: str,
    visibility: str,
    payload: Dict[str, Any],
    attribution: str,
    credit_line: Optional[str],
    rights_status: Optional[str],
    provenance_note: Optional[str],
    created_by: str,
) -> ContributionItem:
    item_id = new_id()
    now = to_iso(utcnow())
    conn.execute(
        text("""
            INSERT INTO contribution_items
                (id, journey_id, type, status, visibility, payload, attribution,
                 credit_line, rights_status, provenance_note, created_by,
                 created_at, updated_at)
            VALUES
                (:id, :journey_id, :type, :status, :visibility, :payload, :attribution,
                 :credit_line, :rights_status, :provenance_note, :created_by,
                 :now, :now)
        """),
        {
            "id": item_id,
            "journey_id": journey_id,
            "type": type,
            "status": status,
            "visibility": visibility,
            "payload": dumps(payload),
            "attribution": attribution,
            "credit_line": credit_line,
            "rights_status": rights_status,
            "provenance_note": provenance_note,
            "created_by": created_by,
            "now": now,
        },
    )
    item = get_item(conn, item_id)
    assert item is not None
    return item


def get_item(conn: Connection, item_id: str) -> Optional[ContributionItem]:
    row = conn.execute(
        text(f"SELECT {_ITEM_COLUMNS} FROM contribution_items WHERE id = :id"),
        {"id": item_id},
    ).mappings().first()
    return ContributionItem.from_row(row) if row else None


def update_item_status(
    conn: Connection,
    item_id: str,
    *,
    expected_status: str,
    to_status: str,
    reviewed_by: Optional[str],
    reviewed_at: Optional[str],
    rejection_note: Optional[str],
) -> bool:
    """
    Compare-and-set on status. Returns False when another decision committed
    first, so the caller can re-evaluate against the current state.
    """
    result = conn.execute(
        text("""
            UPDATE contribution_items
            SET status = :to_status,
                reviewed_by = :reviewed_by,
                reviewed_at = :reviewed_at,
                rejection_note = :rejection_note,
                updated_at = :updated_at
            WHERE id = :id
              AND status = :expected_status
        """),
        {
            "id": item_id,
            "expected_status": expected_status,
            "to_status": to_status,
            "reviewed_by": reviewed_by,
            "reviewed_at": reviewed_at,
            "rejection_note": rejection_note,
            "updated_at": to_iso(utcnow()),
        },
    )
    return result.rowcount == 1


def list_items(
    conn: Connection,
    *,
    journey_ids: Optional[Sequence[str]] = None,
    owner_id: Optional[str] = None,
    status: Optional[str] = None,
    type: Optional[str] = None,
    journey_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    sort: str = "created_at_desc",
) -> Tuple[List[ContributionItem], int]:
    order_by = _sort_to_order_by(sort)

    where_parts = ["1 = 1"]
    params: Dict[str, Any] = {"limit": int(limit), "offset": int(offset)}
    expanding = _scope_where(where_parts, params, journey_ids, owner_id)

    if status:
        where_parts.append("status = :status")
        params["status"] = status
    if type:
        where_parts.append("type = :type")
        params["type"] = type
    if journey_id:
        where_parts.append("journey_id = :journey_id")
        params["journey_id"] = journey_id

    where_sql = " AND ".join(where_parts)

    sql_items = _text(f"""
        SELECT {_ITEM_COLUMNS}
        FROM contribution_items
        WHERE {where_sql}
        ORDER BY {order_by}, id ASC
        LIMIT :limit OFFSET :offset
    """, expanding)

    sql_total = _text(f"""
        SELECT COUNT(*) AS total
        FROM contribution_items
        WHERE {where_sql}
    """, expanding)

    rows = conn.execute(sql_items, params).mappings().all()
    total = conn.execute(sql_total, params).mappings().one()["total"]

    return [ContributionItem.from_row(r) for r in rows], int(total)


def count_items_by_status(
    conn: Connection,
    *,
    journey_ids: Optional[Sequence[str]] = None,
    owner_id: Optional[str] = None,
    type: Optional[str] = None,
    journey_id: Optional[str] = None,
) -> Dict[str, int]:
    where_parts = ["1 = 1"]
    params: Dict[str, Any] = {}
    expanding = _scope_where(where_parts, params, journey_ids, owner_id)

    if type:
        where_parts.append("type = :type")
        params["type"] = type
    if journey_id:
        where_parts.append("journey_id = :journey_id")
        params["journey_id"] = journey_id

    sql = _text(f"""
        SELECT status, COUNT(*) AS n
        FROM contribution_items
        WHERE {" AND ".join(where_parts)}
        GROUP BY status
    """, expanding)

    return {str(r["status"]): int(r["n"]) for r in conn.execute(sql, params).mappings().all()}


def list_journey_items(conn: Connection, journey_id: str) -> List[ContributionItem]:
    rows = conn.execute(
        text(f"""
            SELECT {_ITEM_COLUMNS}
            FROM contribution_items
            WHERE journey_id = :journey_id
            ORDER BY created_at DESC, id ASC
        """),
        {"journey_id": journey_id},
    ).mappings().all()
    return [ContributionItem.from_row(r) for r in rows]


# ----------------------------
# Steward grants
# ----------------------------

def insert_grant(conn: Connection, *, user_id: str, scope: str, journey_id: Optional[str], created_by: str) -> StewardGrant:
    grant_id = new_id()
    conn.execute(
        text("""
            INSERT INTO steward_grants (id, user_id, scope, journey_id, created_at, created_by)
            VALUES (:id, :user_id, :scope, :journey_id, :created_at, :created_by)
        """),
        {
            "id": grant_id,
            "user_id": user_id,
            "scope": scope,
            "journey_id": journey_id,
            "created_at": to_iso(utcnow()),
            "created_by": created_by,
        },
    )
    grant = get_grant(conn, grant_id)
    assert grant is not None
    return grant


def get_grant(conn: Connection, grant_id: str) -> Optional[StewardGrant]:
    row = conn.execute(
        text(f"SELECT {_GRANT_COLUMNS} FROM steward_grants WHERE id = :id"),
        {"id": grant_id},
    ).mappings().first()
    return StewardGrant.from_row(row) if row else None


def active_grants_for_user(conn: Connection, user_id: str) -> List[StewardGrant]:
    rows = conn.execute(
        text(f"""
            SELECT {_GRANT_COLUMNS}
            FROM steward_grants
            WHERE user_id = :user_id
              AND revoked_at IS NULL
            ORDER BY created_at ASC
        """),
        {"user_id": user_id},
    ).mappings().all()
    return [StewardGrant.from_row(r) for r in rows]


def find_active_grant(conn: Connection, user_id: str, scope: str, journey_id: Optional[str]) -> Optional[StewardGrant]:
    for grant in active_grants_for_user(conn, user_id):
        if grant.scope == scope and grant.journey_id == journey_id:
            return grant
    return None


def mark_grant_revoked(conn: Connection, grant_id: str, revoked_by: str) -> bool:
    result = conn.execute(
        text("""
            UPDATE steward_grants
            SET revoked_at = :revoked_at, revoked_by = :revoked_by
            WHERE id = :id
              AND revoked_at IS NULL
        """),
        {"id": grant_id, "revoked_at": to_iso(utcnow()), "revoked_by": revoked_by},
    )
    return result.rowcount == 1


def list_grants(conn: Connection, *, journey_id: Optional[str] = None, include_revoked: bool = False) -> List[StewardGrant]:
    where_parts = ["1 = 1"]
    params: Dict[str, Any] = {}
    if journey_id:
        where_parts.append("(journey_id = :journey_id OR scope = 'global')")
        params["journey_id"] = journey_id
    if not include_revoked:
        where_parts.append("revoked_at IS NULL")

    rows = conn.execute(
        text(f"""
            SELECT {_GRANT_COLUMNS}
            FROM steward_grants
            WHERE {" AND ".join(where_parts)}
            ORDER BY created_at ASC
        """),
        params,
    ).mappings().all()
    return [StewardGrant.from_row(r) for r in rows]


# ----------------------------
# Audit ledger (append-only)
# ----------------------------

def append_audit(
    conn: Connection,
    *,
    target_kind: str,
    target_id: str,
    journey_id: Optional[str],
    actor_id: str,
    action: str,
    before: Optional[Dict[str, Any]],
    after: Optional[Dict[str, Any]],
    note: Optional[str] = None,
) -> AuditEntry:
    entry_id = new_id()
    conn.execute(
        text("""
            INSERT INTO audit_entries
                (id, target_kind, target_id, journey_id, actor_id, action,
                 before_snapshot, after_snapshot, note, created_at)
            VALUES
                (:id, :target_kind, :target_id, :journey_id, :actor_id, :action,
                 :before_snapshot, :after_snapshot, :note, :created_at)
        """),
        {
            "id": entry_id,
            "target_kind": target_kind,
            "target_id": target_id,
            "journey_id": journey_id,
            "actor_id": actor_id,
            "action": action,
            "before_snapshot": dumps(before) if before is not None else None,
            "after_snapshot": dumps(after) if after is not None else None,
            "note": note,
            "created_at": to_iso(utcnow()),
        },
    )
    entry = get_audit_entry(conn, entry_id)
    assert entry is not None
    return entry


def get_audit_entry(conn: Connection, entry_id: str) -> Optional[AuditEntry]:
    row = conn.execute(
        text(f"SELECT {_AUDIT_COLUMNS} FROM audit_entries WHERE id = :id"),
        {"id": entry_id},
    ).mappings().first()
    return AuditEntry.from_row(row) if row else None


def list_audit(
    conn: Connection,
    *,
    journey_ids: Optional[Sequence[str]] = None,
    owner_id: Optional[str] = None,
    journey_id: Optional[str] = None,
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[AuditEntry]:
    where_parts = ["1 = 1"]
    params: Dict[str, Any] = {"limit": int(limit), "offset": int(offset)}
    expanding: List[str] = []

    if journey_ids is not None:
        where_parts.append("journey_id IN :scope_journey_ids")
        params["scope_journey_ids"] = list(journey_ids)
        expanding.append("scope_journey_ids")
    if owner_id is not None:
        where_parts.append("""
            target_kind = 'item' AND target_id IN (
                SELECT id FROM contribution_items WHERE created_by = :scope_owner_id
            )
        """)
        params["scope_owner_id"] = owner_id

    if journey_id:
        where_parts.append("journey_id = :journey_id")
        params["journey_id"] = journey_id
    if target_id:
        where_parts.append("target_id = :target_id")
        params["target_id"] = target_id
    if action:
        where_parts.append("action = :action")
        params["action"] = action

    sql = _text(f"""
        SELECT {_AUDIT_COLUMNS}
        FROM audit_entries
        WHERE {" AND ".join(where_parts)}
        ORDER BY created_at ASC, id ASC
        LIMIT :limit OFFSET :offset
    """, expanding)

    rows = conn.execute(sql, params).mappings().all()
    return [AuditEntry.from_row(r) for r in rows]


# ----------------------------
# Inbound messages (contact / join)
# ----------------------------

def insert_message(
    conn: Connection,
    *,
    kind: str,
    sender_id: Optional[str],
    name: str,
    email: str,
    body: str,
    journey_id: Optional[str],
) -> InboundMessage:
    message_id = new_id()
    conn.execute(
        text("""
            INSERT INTO inbound_messages (id, kind, sender_id, name, email, body, journey_id, created_at)
            VALUES (:id, :kind, :sender_id, :name, :email, :body, :journey_id, :created_at)
        """),
        {
            "id": message_id,
            "kind": kind,
            "sender_id": sender_id,
            "name": name,
            "email": email,
            "body": body,
            "journey_id": journey_id,
            "created_at": to_iso(utcnow()),
        },
    )
    row = conn.execute(
        text("SELECT id, kind, sender_id, name, email, body, journey_id, created_at FROM inbound_messages WHERE id = :id"),
        {"id": message_id},
    ).mappings().one()
    return InboundMessage.from_row(row)


def list_messages(conn: Connection, *, kind: Optional[str] = None, limit: int = 100) -> List[InboundMessage]:
    where_sql = "1 = 1"
    params: Dict[str, Any] = {"limit": int(limit)}
    if kind:
        where_sql = "kind = :kind"
        params["kind"] = kind
    rows = conn.execute(
        text(f"""
            SELECT id, kind, sender_id, name, email, body, journey_id, created_at
            FROM inbound_messages
            WHERE {where_sql}
            ORDER BY created_at ASC
            LIMIT :limit
        """),
        params,
    ).mappings().all()
    return [InboundMessage.from_row(r) for r in rows]
