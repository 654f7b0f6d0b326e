"""
Review Queue and item visibility.

Purely a read view over persisted items. The requester's scope is derived
from the grant store on every call; whatever the client asks for is
narrowed to that scope, never widened.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlalchemy.engine import Connection, Engine

from archive_api import authority, repo
from archive_api.errors import NotFound
from archive_api.models import ContributionItem, Journey, JourneyViewer
from archive_api.workflow import Action, Status, Visibility, allowed_actions as graph_actions

log = logging.getLogger("archive_api.review")


@dataclass(frozen=True)
class QueuePage:
    items: List[ContributionItem]
    counts: Dict[str, int]
    total: int
    limit: int
    offset: int


def list_queue(
    engine: Engine,
    actor_id: str,
    *,
    status: Optional[str] = None,
    type: Optional[str] = None,
    journey_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    sort: str = "created_at_desc",
) -> QueuePage:
    with engine.begin() as conn:
        scope = authority.effective_grants(conn, actor_id).read_scope()

        if scope.journey_ids is not None and journey_id and journey_id not in scope.journey_ids:
            log.info("Queue request by %s for journey %s outside grants; returning nothing", actor_id, journey_id)
            return QueuePage(items=[], counts=_zero_counts(), total=0, limit=limit, offset=offset)

        items, total = repo.list_items(
            conn,
            journey_ids=scope.journey_ids,
            owner_id=scope.owner_id,
            status=status,
            type=type,
            journey_id=journey_id,
            limit=limit,
            offset=offset,
            sort=sort,
        )
        counts = _zero_counts()
        counts.update(
            repo.count_items_by_status(
                conn,
                journey_ids=scope.journey_ids,
                owner_id=scope.owner_id,
                type=type,
                journey_id=journey_id,
            )
        )

    return QueuePage(items=items, counts=counts, total=total, limit=limit, offset=offset)


def _zero_counts() -> Dict[str, int]:
    return {s.value: 0 for s in Status}


# ----------------------------
# Visibility
# ----------------------------

_TIER_REACH = {
    # declared visibility -> viewer tiers that satisfy it
    Visibility.PUBLIC.value: None,
    Visibility.CONNECTIONS.value: ("family", "connections"),
    Visibility.FAMILY.value: ("family",),
    Visibility.PRIVATE_DRAFT.value: (),
}


def can_view(
    item: ContributionItem,
    viewer_id: Optional[str],
    *,
    journey: Journey,
    grants: authority.EffectiveGrants,
    viewer: Optional[JourneyViewer],
) -> bool:
    if viewer_id and viewer_id in (item.created_by, journey.owner_id):
        return True
    if grants.covers(item.journey_id):
        return True

    if item.status != Status.APPROVED.value:
        # explicitly trusted viewers may preview work in progress
        return viewer is not None and viewer.can_preview

    reach = _TIER_REACH.get(item.visibility, ())
    if reach is None:
        return True
    return viewer is not None and viewer.tier in reach


def _load_visible(conn: Connection, viewer_id: Optional[str], item_id: str) -> ContributionItem:
    item = repo.get_item(conn, item_id)
    if item is None:
        raise NotFound(internal=f"item {item_id} does not exist")
    journey = repo.get_journey(conn, item.journey_id)
    grants = authority.effective_grants(conn, viewer_id)
    viewer = repo.get_viewer(conn, item.journey_id, viewer_id) if viewer_id else None
    if not can_view(item, viewer_id, journey=journey, grants=grants, viewer=viewer):
        # same answer as a missing item, so existence does not leak
        raise NotFound(internal=f"item {item_id} outside the scope of {viewer_id or 'anonymous'}")
    return item


def get_visible_item(engine: Engine, viewer_id: Optional[str], item_id: str) -> ContributionItem:
    with engine.begin() as conn:
        return _load_visible(conn, viewer_id, item_id)


def list_journey_items(engine: Engine, viewer_id: Optional[str], journey_id: str) -> List[ContributionItem]:
    with engine.begin() as conn:
        journey = repo.get_journey(conn, journey_id)
        if journey is None:
            raise NotFound(internal=f"journey {journey_id} does not exist")
        grants = authority.effective_grants(conn, viewer_id)
        viewer = repo.get_viewer(conn, journey_id, viewer_id) if viewer_id else None
        return [
            item
            for item in repo.list_journey_items(conn, journey_id)
            if can_view(item, viewer_id, journey=journey, grants=grants, viewer=viewer)
        ]


def allowed_actions(engine: Engine, actor_id: str, item_id: str) -> tuple[ContributionItem, List[str]]:
    """Actions the caller could take on the item right now."""
    with engine.begin() as conn:
        item = _load_visible(conn, actor_id, item_id)
        grants = authority.effective_grants(conn, actor_id)
        allowed: List[str] = []
        for action in graph_actions(item.status):
            if grants.covers(item.journey_id) or (action == Action.SUBMIT and item.created_by == actor_id):
                allowed.append(action.value)
        return item, allowed
