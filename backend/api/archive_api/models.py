from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from archive_api.clock import from_iso, to_iso


def dumps(value: Any) -> str:
    """Canonical JSON used for every stored payload and snapshot."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _loads(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    return json.loads(raw)


@dataclass(frozen=True)
class Journey:
    id: str
    title: str
    kind: str
    owner_id: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Journey":
        return cls(
            id=str(row["id"]),
            title=str(row["title"]),
            kind=str(row["kind"]),
            owner_id=str(row["owner_id"]),
            created_at=from_iso(row["created_at"]),
        )


@dataclass(frozen=True)
class JourneyViewer:
    journey_id: str
    user_id: str
    tier: str
    can_preview: bool
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "JourneyViewer":
        return cls(
            journey_id=str(row["journey_id"]),
            user_id=str(row["user_id"]),
            tier=str(row["tier"]),
            can_preview=bool(row["can_preview"]),
            created_at=from_iso(row["created_at"]),
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "journey_id": self.journey_id,
            "user_id": self.user_id,
            "tier": self.tier,
            "can_preview": self.can_preview,
            "created_at": to_iso(self.created_at),
        }


@dataclass(frozen=True)
class ContributionItem:
    id: str
    journey_id: str
    type: str
    status: str
    visibility: str
    payload: dict[str, Any]
    attribution: str
    credit_line: Optional[str]
    rights_status: Optional[str]
    provenance_note: Optional[str]
    created_by: str
    created_at: datetime
    updated_at: datetime
    reviewed_by: Optional[str]
    reviewed_at: Optional[datetime]
    rejection_note: Optional[str]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ContributionItem":
        return cls(
            id=str(row["id"]),
            journey_id=str(row["journey_id"]),
            type=str(row["type"]),
            status=str(row["status"]),
            visibility=str(row["visibility"]),
            payload=_loads(row["payload"]) or {},
            attribution=str(row["attribution"]),
            credit_line=row["credit_line"],
            rights_status=row["rights_status"],
            provenance_note=row["provenance_note"],
            created_by=str(row["created_by"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
            reviewed_by=row["reviewed_by"],
            reviewed_at=from_iso(row["reviewed_at"]),
            rejection_note=row["rejection_note"],
        )

    def snapshot(self) -> dict[str, Any]:
        """Full state as written into audit before/after columns."""
        return {
            "id": self.id,
            "journey_id": self.journey_id,
            "type": self.type,
            "status": self.status,
            "visibility": self.visibility,
            "payload": self.payload,
            "attribution": self.attribution,
            "credit_line": self.credit_line,
            "rights_status": self.rights_status,
            "provenance_note": self.provenance_note,
            "created_by": self.created_by,
            "created_at": to_iso(self.created_at),
            "updated_at": to_iso(self.updated_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": to_iso(self.reviewed_at),
            "rejection_note": self.rejection_note,
        }


@dataclass(frozen=True)
class StewardGrant:
    id: str
    user_id: str
    scope: str
    journey_id: Optional[str]
    created_at: datetime
    created_by: str
    revoked_at: Optional[datetime]
    revoked_by: Optional[str]

    @property
    def active(self) -> bool:
        return self.revoked_at is None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StewardGrant":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            scope=str(row["scope"]),
            journey_id=row["journey_id"],
            created_at=from_iso(row["created_at"]),
            created_by=str(row["created_by"]),
            revoked_at=from_iso(row["revoked_at"]),
            revoked_by=row["revoked_by"],
        )

    def snapshot(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "scope": self.scope,
            "journey_id": self.journey_id,
            "created_at": to_iso(self.created_at),
            "created_by": self.created_by,
            "revoked_at": to_iso(self.revoked_at),
            "revoked_by": self.revoked_by,
        }


@dataclass(frozen=True)
class AuditEntry:
    id: str
    target_kind: str
    target_id: str
    journey_id: Optional[str]
    actor_id: str
    action: str
    before: Optional[dict[str, Any]]
    after: Optional[dict[str, Any]]
    note: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "AuditEntry":
        return cls(
            id=str(row["id"]),
            target_kind=str(row["target_kind"]),
            target_id=str(row["target_id"]),
            journey_id=row["journey_id"],
            actor_id=str(row["actor_id"]),
            action=str(row["action"]),
            before=_loads(row["before_snapshot"]),
            after=_loads(row["after_snapshot"]),
            note=row["note"],
            created_at=from_iso(row["created_at"]),
        )


@dataclass(frozen=True)
class InboundMessage:
    id: str
    kind: str
    sender_id: Optional[str]
    name: str
    email: str
    body: str
    journey_id: Optional[str]
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "InboundMessage":
        return cls(
            id=str(row["id"]),
            kind=str(row["kind"]),
            sender_id=row["sender_id"],
            name=str(row["name"]),
            email=str(row["email"]),
            body=str(row["body"]),
            journey_id=row["journey_id"],
            created_at=from_iso(row["created_at"]),
        )
