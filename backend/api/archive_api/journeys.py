from __future__ import annotations

import logging
from typing import List

from sqlalchemy.engine import Connection, Engine

from archive_api import authority, repo
from archive_api.errors import NotFound, PermissionDenied, ValidationFailed
from archive_api.models import Journey, JourneyViewer

log = logging.getLogger("archive_api.journeys")

JOURNEY_KINDS = ("person", "club", "moment", "organisation")
VIEWER_TIERS = ("family", "connections")


def create_journey(engine: Engine, actor_id: str, title: str, kind: str) -> Journey:
    title = (title or "").strip()
    if not title:
        raise ValidationFailed("title is required")
    if kind not in JOURNEY_KINDS:
        raise ValidationFailed(f"kind must be one of {list(JOURNEY_KINDS)}")

    with engine.begin() as conn:
        journey = repo.insert_journey(conn, title=title, kind=kind, owner_id=actor_id)

    log.info("Journey %s (%s) created by %s", journey.id, kind, actor_id)
    return journey


def get_journey(engine: Engine, journey_id: str) -> Journey:
    with engine.begin() as conn:
        journey = repo.get_journey(conn, journey_id)
    if journey is None:
        raise NotFound(internal=f"journey {journey_id} does not exist")
    return journey


def _require_manager(conn: Connection, actor_id: str, journey_id: str) -> Journey:
    journey = repo.get_journey(conn, journey_id)
    if journey is None:
        raise NotFound(internal=f"journey {journey_id} does not exist")
    if journey.owner_id != actor_id and not authority.effective_grants(conn, actor_id).is_global:
        raise PermissionDenied(internal=f"{actor_id} cannot manage viewers of {journey_id}")
    return journey


def add_viewer(
    engine: Engine,
    actor_id: str,
    journey_id: str,
    user_id: str,
    tier: str,
    can_preview: bool = False,
) -> JourneyViewer:
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValidationFailed("user_id is required")
    if tier not in VIEWER_TIERS:
        raise ValidationFailed(f"tier must be one of {list(VIEWER_TIERS)}")

    with engine.begin() as conn:
        _require_manager(conn, actor_id, journey_id)
        before = repo.get_viewer(conn, journey_id, user_id)
        viewer = repo.upsert_viewer(conn, journey_id, user_id, tier, can_preview)
        repo.append_audit(
            conn,
            target_kind="viewer",
            target_id=f"{journey_id}:{user_id}",
            journey_id=journey_id,
            actor_id=actor_id,
            action="viewer_added",
            before=before.snapshot() if before else None,
            after=viewer.snapshot(),
        )
    return viewer


def remove_viewer(engine: Engine, actor_id: str, journey_id: str, user_id: str) -> None:
    with engine.begin() as conn:
        _require_manager(conn, actor_id, journey_id)
        before = repo.get_viewer(conn, journey_id, user_id)
        if before is None or not repo.delete_viewer(conn, journey_id, user_id):
            raise NotFound(internal=f"{user_id} is not a viewer of {journey_id}")
        repo.append_audit(
            conn,
            target_kind="viewer",
            target_id=f"{journey_id}:{user_id}",
            journey_id=journey_id,
            actor_id=actor_id,
            action="viewer_removed",
            before=before.snapshot(),
            after=None,
        )


def list_viewers(engine: Engine, actor_id: str, journey_id: str) -> List[JourneyViewer]:
    with engine.begin() as conn:
        journey = repo.get_journey(conn, journey_id)
        if journey is None:
            raise NotFound(internal=f"journey {journey_id} does not exist")
        if journey.owner_id != actor_id and not authority.effective_grants(conn, actor_id).covers(journey_id):
            raise PermissionDenied(internal=f"{actor_id} cannot list viewers of {journey_id}")
        return repo.list_viewers(conn, journey_id)
