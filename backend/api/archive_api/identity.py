from __future__ import annotations

from typing import Optional

from archive_api.errors import AuthRequired


SYSTEM_ACTOR = "system"


def optional_actor(x_actor_id: Optional[str]) -> Optional[str]:
    """
    Resolve the caller from the "X-Actor-Id" header value.

    IMPORTANT:
    - This function MUST receive a plain string (or None).
    - Do NOT declare FastAPI Header() here because we call this directly from endpoints.
    - Nothing is cached: every request is resolved on its own.
    """
    actor = (x_actor_id or "").strip()
    if not actor:
        return None
    if actor == SYSTEM_ACTOR:
        # reserved for server-side provisioning
        raise AuthRequired(internal="client attempted to act as the system actor")
    return actor


def require_actor(x_actor_id: Optional[str]) -> str:
    actor = optional_actor(x_actor_id)
    if actor is None:
        raise AuthRequired(internal="missing X-Actor-Id header")
    return actor
