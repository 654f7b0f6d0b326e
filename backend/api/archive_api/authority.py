"""
Moderation Authority.

Grants are read from the store at the moment of every decision. Nothing a
client declares about its own role is trusted, and nothing is cached between
requests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.engine import Connection, Engine

from archive_api import notifications, repo
from archive_api.errors import NotFound, PermissionDenied, ValidationFailed
from archive_api.identity import SYSTEM_ACTOR
from archive_api.models import StewardGrant

log = logging.getLogger("archive_api.authority")

GLOBAL = "global"
JOURNEY = "journey"
SCOPES = (GLOBAL, JOURNEY)


@dataclass(frozen=True)
class ReadScope:
    """What a requester may read: None fields mean unrestricted."""

    journey_ids: Optional[Tuple[str, ...]]
    owner_id: Optional[str]

    @property
    def is_unrestricted(self) -> bool:
        return self.journey_ids is None and self.owner_id is None


@dataclass(frozen=True)
class EffectiveGrants:
    user_id: Optional[str]
    is_global: bool
    journey_ids: frozenset

    @property
    def is_steward(self) -> bool:
        return self.is_global or bool(self.journey_ids)

    def covers(self, journey_id: str) -> bool:
        return self.is_global or journey_id in self.journey_ids

    def read_scope(self) -> ReadScope:
        if self.is_global:
            return ReadScope(journey_ids=None, owner_id=None)
        if self.journey_ids:
            return ReadScope(journey_ids=tuple(sorted(self.journey_ids)), owner_id=None)
        # anonymous callers get an owner nobody can be
        return ReadScope(journey_ids=None, owner_id=self.user_id or "")


def effective_grants(conn: Connection, user_id: Optional[str]) -> EffectiveGrants:
    if not user_id:
        return EffectiveGrants(user_id=None, is_global=False, journey_ids=frozenset())

    grants = repo.active_grants_for_user(conn, user_id)
    return EffectiveGrants(
        user_id=user_id,
        is_global=any(g.scope == GLOBAL for g in grants),
        journey_ids=frozenset(g.journey_id for g in grants if g.scope == JOURNEY and g.journey_id),
    )


def require_authority(conn: Connection, actor_id: str, journey_id: str) -> EffectiveGrants:
    grants = effective_grants(conn, actor_id)
    if not grants.covers(journey_id):
        raise PermissionDenied(internal=f"{actor_id} holds no grant covering journey {journey_id}")
    return grants


def require_global(conn: Connection, actor_id: str) -> EffectiveGrants:
    grants = effective_grants(conn, actor_id)
    if not grants.is_global:
        raise PermissionDenied(internal=f"{actor_id} is not a global steward")
    return grants


# ----------------------------
# Grant changes (audited)
# ----------------------------

def grant_steward(
    engine: Engine,
    actor_id: str,
    user_id: str,
    scope: str,
    journey_id: Optional[str] = None,
    notifier: Optional[notifications.Notifier] = None,
) -> Tuple[StewardGrant, bool]:
    """
    Returns (grant, created). Granting what is already held is a no-op.
    """
    user_id = (user_id or "").strip()
    if not user_id:
        raise ValidationFailed("user_id is required")
    if scope not in SCOPES:
        raise ValidationFailed(f"scope must be one of {list(SCOPES)}")
    if scope == GLOBAL:
        journey_id = None
    elif not journey_id:
        raise ValidationFailed("journey_id is required for a journey-scoped grant")

    with engine.begin() as conn:
        require_global(conn, actor_id)

        if journey_id and repo.get_journey(conn, journey_id) is None:
            raise ValidationFailed("Unknown journey", internal=f"journey {journey_id} does not exist")

        existing = repo.find_active_grant(conn, user_id, scope, journey_id)
        if existing is not None:
            return existing, False

        grant = repo.insert_grant(conn, user_id=user_id, scope=scope, journey_id=journey_id, created_by=actor_id)
        repo.append_audit(
            conn,
            target_kind="grant",
            target_id=grant.id,
            journey_id=journey_id,
            actor_id=actor_id,
            action="steward_added",
            before=None,
            after=grant.snapshot(),
        )

    log.info("Steward grant %s added: user=%s scope=%s journey=%s by=%s", grant.id, user_id, scope, journey_id, actor_id)
    notifications.dispatch(notifier, user_id, "steward_added", {"scope": scope, "journey_id": journey_id})
    return grant, True


def revoke_grant(
    engine: Engine,
    actor_id: str,
    grant_id: str,
    notifier: Optional[notifications.Notifier] = None,
) -> StewardGrant:
    with engine.begin() as conn:
        require_global(conn, actor_id)

        before = repo.get_grant(conn, grant_id)
        if before is None or not before.active:
            raise NotFound(internal=f"grant {grant_id} missing or already revoked")
        if before.scope == GLOBAL:
            # global stewardship is provisioned from configuration only
            raise PermissionDenied(
                "Global steward access cannot be revoked here.",
                internal=f"{actor_id} attempted to revoke global grant {grant_id}",
            )

        if not repo.mark_grant_revoked(conn, grant_id, actor_id):
            raise NotFound(internal=f"grant {grant_id} revoked concurrently")
        after = repo.get_grant(conn, grant_id)

        repo.append_audit(
            conn,
            target_kind="grant",
            target_id=grant_id,
            journey_id=before.journey_id,
            actor_id=actor_id,
            action="steward_removed",
            before=before.snapshot(),
            after=after.snapshot(),
        )

    log.info("Steward grant %s revoked by %s", grant_id, actor_id)
    notifications.dispatch(notifier, before.user_id, "steward_removed", {"journey_id": before.journey_id})
    return after


def list_grants(
    engine: Engine,
    actor_id: str,
    journey_id: Optional[str] = None,
    include_revoked: bool = False,
) -> List[StewardGrant]:
    with engine.begin() as conn:
        grants = effective_grants(conn, actor_id)
        if not grants.is_steward:
            raise PermissionDenied(internal=f"{actor_id} listed grants without stewardship")
        if not grants.is_global:
            if journey_id and journey_id not in grants.journey_ids:
                raise PermissionDenied(internal=f"{actor_id} listed grants of journey {journey_id}")
            rows = repo.list_grants(conn, journey_id=journey_id, include_revoked=include_revoked)
            return [g for g in rows if g.scope == GLOBAL or g.journey_id in grants.journey_ids]
        return repo.list_grants(conn, journey_id=journey_id, include_revoked=include_revoked)


def seed_global_stewards(engine: Engine, user_ids: Iterable[str]) -> List[StewardGrant]:
    """Provision configured global stewards. Idempotent; audited as the system actor."""
    created: List[StewardGrant] = []
    with engine.begin() as conn:
        for user_id in user_ids:
            user_id = user_id.strip()
            if not user_id or repo.find_active_grant(conn, user_id, GLOBAL, None) is not None:
                continue
            grant = repo.insert_grant(conn, user_id=user_id, scope=GLOBAL, journey_id=None, created_by=SYSTEM_ACTOR)
            repo.append_audit(
                conn,
                target_kind="grant",
                target_id=grant.id,
                journey_id=None,
                actor_id=SYSTEM_ACTOR,
                action="steward_added",
                before=None,
                after=grant.snapshot(),
            )
            created.append(grant)

    for grant in created:
        log.info("Provisioned global steward %s", grant.user_id)
    return created
