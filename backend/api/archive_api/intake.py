"""
Submission Intake.

Validates a new contribution and persists it as a pending item together with
its "item_created" ledger entry. Nothing is written when validation fails.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.engine import Connection

from archive_api import authority, notifications, repo
from archive_api.config import Settings, get_settings
from archive_api.errors import SizeExceeded, ValidationFailed
from archive_api.models import ContributionItem, InboundMessage, Journey
from archive_api.schemas import PAYLOAD_MODELS, ItemCreateIn, MessageIn
from archive_api.workflow import Status

log = logging.getLogger("archive_api.intake")


def _mb(n_bytes: int) -> str:
    return f"{n_bytes / (1024 * 1024):.1f}MB"


def validate_payload(item_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    model = PAYLOAD_MODELS.get(item_type)
    if model is None:
        raise ValidationFailed(f"Unknown item type: {item_type}")
    try:
        parsed = model.model_validate(payload or {})
    except ValidationError as e:
        fields = {".".join(str(p) for p in err["loc"]) or "payload": err["msg"] for err in e.errors()}
        raise ValidationFailed(
            "Please check the highlighted fields and try again.",
            internal=str(e),
            fields=fields,
        )
    return parsed.model_dump(exclude_none=True)


def size_ceiling(item_type: str, settings: Settings) -> Optional[int]:
    if item_type == "video":
        return settings.max_video_bytes
    if item_type in ("image", "document"):
        return settings.max_image_doc_bytes
    return None


def check_size(item_type: str, payload: Dict[str, Any], settings: Settings) -> None:
    ceiling = size_ceiling(item_type, settings)
    if ceiling is None:
        return
    size = int(payload.get("size_bytes") or 0)
    if size > ceiling:
        raise SizeExceeded(
            f"File too large ({_mb(size)}). Maximum size is {_mb(ceiling)}.",
            internal=f"{item_type} of {size} bytes over ceiling {ceiling}",
        )


def _check_commendation_response(conn: Connection, actor_id: str, journey: Journey, commendation_id: str) -> None:
    """A response is allowed only from the journey owner, to an approved commendation of that journey."""
    target = repo.get_item(conn, commendation_id)
    if target is None or target.journey_id != journey.id or target.type != "commendation":
        raise ValidationFailed(
            "The commendation you are responding to could not be found.",
            internal=f"in_response_to={commendation_id} is not a commendation of {journey.id}",
        )
    if target.status != Status.APPROVED.value:
        raise ValidationFailed(
            "Only published commendations can receive a response.",
            internal=f"commendation {commendation_id} is {target.status}",
        )
    if journey.owner_id != actor_id:
        raise ValidationFailed(
            "Only the person this journey belongs to can respond to a commendation.",
            internal=f"{actor_id} is not owner of {journey.id}",
        )


def submit_item(
    engine,
    actor_id: str,
    data: ItemCreateIn,
    settings: Optional[Settings] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> ContributionItem:
    settings = settings or get_settings()

    payload = validate_payload(data.type, data.payload)
    check_size(data.type, payload, settings)

    status = Status.DRAFT if data.as_draft else Status.SUBMITTED_FOR_REVIEW

    with engine.begin() as conn:
        journey = repo.get_journey(conn, data.journey_id)
        if journey is None:
            raise ValidationFailed("Unknown journey", internal=f"journey {data.journey_id} does not exist")

        if data.type == "text" and payload.get("in_response_to"):
            _check_commendation_response(conn, actor_id, journey, payload["in_response_to"])

        item = repo.insert_item(
            conn,
            journey_id=journey.id,
            type=data.type,
            status=status.value,
            visibility=data.visibility,
            payload=payload,
            attribution=data.attribution,
            credit_line=data.credit_line,
            rights_status=data.rights_status,
            provenance_note=data.provenance_note,
            created_by=actor_id,
        )
        repo.append_audit(
            conn,
            target_kind="item",
            target_id=item.id,
            journey_id=item.journey_id,
            actor_id=actor_id,
            action="item_created",
            before=None,
            after=item.snapshot(),
        )
        stewards = [g.user_id for g in repo.list_grants(conn, journey_id=journey.id)]

    log.info("Item %s (%s) created as %s in journey %s by %s", item.id, item.type, item.status, item.journey_id, actor_id)

    if status == Status.SUBMITTED_FOR_REVIEW:
        for steward_id in sorted(set(stewards)):
            notifications.dispatch(
                notifier,
                steward_id,
                "item_pending_review",
                {"item_id": item.id, "journey_id": item.journey_id, "type": item.type},
            )
    return item


def submit_message(
    engine,
    sender_id: Optional[str],
    data: MessageIn,
    notifier: Optional[notifications.Notifier] = None,
) -> InboundMessage:
    """Contact and join requests. Stored as sent; they are not contributions and carry no review state."""
    with engine.begin() as conn:
        if data.journey_id and repo.get_journey(conn, data.journey_id) is None:
            raise ValidationFailed("Unknown journey", internal=f"journey {data.journey_id} does not exist")
        message = repo.insert_message(
            conn,
            kind=data.kind,
            sender_id=sender_id,
            name=data.name.strip(),
            email=data.email,
            body=data.body,
            journey_id=data.journey_id,
        )
        recipients = [
            g.user_id
            for g in repo.list_grants(conn, journey_id=data.journey_id)
            if g.scope == "global" or g.journey_id == data.journey_id
        ]

    log.info("Inbound %s message %s received", message.kind, message.id)
    for steward_id in sorted(set(recipients)):
        notifications.dispatch(notifier, steward_id, f"{message.kind}_received", {"message_id": message.id})
    return message


def list_messages(engine, actor_id: str, kind: Optional[str] = None, limit: int = 100) -> List[InboundMessage]:
    with engine.begin() as conn:
        authority.require_global(conn, actor_id)
        return repo.list_messages(conn, kind=kind, limit=limit)
