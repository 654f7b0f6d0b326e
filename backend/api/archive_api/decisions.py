"""
Decision Engine.

Every transition runs in one transaction: load, re-derive authority, resolve
against the fixed graph, compare-and-set the status, append the ledger entry.
If the ledger write fails the whole transaction rolls back.

Conflicting decisions on the same item are settled by whichever commits
first. The loser's compare-and-set touches no row, so it is re-evaluated
against the now-current status and passes or fails through the same graph.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Connection, Engine

from archive_api import authority, notifications, repo
from archive_api.clock import to_iso, utcnow
from archive_api.errors import InvalidStatus, NotFound, PermissionDenied
from archive_api.models import AuditEntry, ContributionItem
from archive_api.workflow import AUDIT_ACTIONS, Action, Transition, coerce_action, resolve_transition

log = logging.getLogger("archive_api.decisions")

# compare-and-set attempts before giving up on a flapping item
MAX_ATTEMPTS = 3

_NOTIFY_EVENTS = {
    Action.APPROVE: "item_approved",
    Action.REJECT: "item_rejected",
}


@dataclass(frozen=True)
class DecisionResult:
    item: ContributionItem
    changed: bool
    audit_entry: Optional[AuditEntry] = None


def _authorize(conn: Connection, actor_id: str, item: ContributionItem, action: Action) -> None:
    if action == Action.SUBMIT and item.created_by == actor_id:
        return
    try:
        authority.require_authority(conn, actor_id, item.journey_id)
    except PermissionDenied:
        log.warning("Denied %s on item %s (journey %s) for %s", action.value, item.id, item.journey_id, actor_id)
        raise


def _review_fields(transition: Transition, actor_id: str, item: ContributionItem, note: Optional[str]) -> dict:
    if transition.action == Action.APPROVE:
        return {"reviewed_by": actor_id, "reviewed_at": to_iso(utcnow()), "rejection_note": None}
    if transition.action == Action.REJECT:
        return {"reviewed_by": actor_id, "reviewed_at": to_iso(utcnow()), "rejection_note": note}
    if transition.action == Action.RESET_TO_PENDING:
        return {"reviewed_by": None, "reviewed_at": None, "rejection_note": item.rejection_note}
    # submit leaves review metadata untouched
    return {
        "reviewed_by": item.reviewed_by,
        "reviewed_at": to_iso(item.reviewed_at),
        "rejection_note": item.rejection_note,
    }


def apply_action(
    engine: Engine,
    actor_id: str,
    item_id: str,
    action: Action | str,
    note: Optional[str] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> DecisionResult:
    action = coerce_action(action)
    note = (note or "").strip() or None

    for attempt in range(1, MAX_ATTEMPTS + 1):
        with engine.begin() as conn:
            item = repo.get_item(conn, item_id)
            if item is None:
                raise NotFound(internal=f"item {item_id} does not exist")

            _authorize(conn, actor_id, item, action)
            transition = resolve_transition(item.status, action)

            if transition.noop:
                log.info("%s on item %s by %s: already %s, nothing to do", action.value, item_id, actor_id, item.status)
                return DecisionResult(item=item, changed=False)

            fields = _review_fields(transition, actor_id, item, note)
            swapped = repo.update_item_status(
                conn,
                item_id,
                expected_status=transition.from_status.value,
                to_status=transition.to_status.value,
                **fields,
            )
            if not swapped:
                log.info("Item %s changed under %s by %s (attempt %d); re-evaluating", item_id, action.value, actor_id, attempt)
                continue

            after = repo.get_item(conn, item_id)
            entry = repo.append_audit(
                conn,
                target_kind="item",
                target_id=item_id,
                journey_id=item.journey_id,
                actor_id=actor_id,
                action=AUDIT_ACTIONS[action],
                before=item.snapshot(),
                after=after.snapshot(),
                note=note,
            )

        log.info(
            "Item %s %s -> %s by %s",
            item_id,
            transition.from_status.value,
            transition.to_status.value,
            actor_id,
        )
        event = _NOTIFY_EVENTS.get(action)
        if event:
            notifications.dispatch(
                notifier,
                after.created_by,
                event,
                {"item_id": item_id, "journey_id": after.journey_id, "note": after.rejection_note},
            )
        return DecisionResult(item=after, changed=True, audit_entry=entry)

    raise InvalidStatus(
        "This item changed while you were acting on it. Please refresh and try again.",
        internal=f"{action.value} on {item_id} lost {MAX_ATTEMPTS} compare-and-set races",
    )


def submit(engine: Engine, actor_id: str, item_id: str, notifier: Optional[notifications.Notifier] = None) -> DecisionResult:
    return apply_action(engine, actor_id, item_id, Action.SUBMIT, notifier=notifier)


def approve(engine: Engine, actor_id: str, item_id: str, notifier: Optional[notifications.Notifier] = None) -> DecisionResult:
    return apply_action(engine, actor_id, item_id, Action.APPROVE, notifier=notifier)


def reject(
    engine: Engine,
    actor_id: str,
    item_id: str,
    note: Optional[str] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> DecisionResult:
    return apply_action(engine, actor_id, item_id, Action.REJECT, note=note, notifier=notifier)


def reset_to_pending(
    engine: Engine,
    actor_id: str,
    item_id: str,
    note: Optional[str] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> DecisionResult:
    return apply_action(engine, actor_id, item_id, Action.RESET_TO_PENDING, note=note, notifier=notifier)
