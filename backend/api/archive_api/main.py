from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from archive_api import audit, authority, decisions, intake, journeys, review
from archive_api.config import get_settings
from archive_api.db import db_ping, get_engine
from archive_api.errors import MESSAGES, GovernanceError
from archive_api.identity import optional_actor, require_actor
from archive_api.logging_config import setup_logging
from archive_api.notifications import get_notifier
from archive_api.schemas import (
    AllowedActionsOut,
    AuditEntryOut,
    DecisionIn,
    DecisionOut,
    GrantIn,
    GrantOut,
    ItemCreateIn,
    ItemListOut,
    ItemOut,
    ItemStatus,
    ItemType,
    JourneyCreateIn,
    JourneyOut,
    MessageIn,
    MessageOut,
    ViewerIn,
    ViewerOut,
)
from archive_api.workflow import Action, list_states

log = logging.getLogger("archive_api.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    if settings.global_steward_ids:
        authority.seed_global_stewards(get_engine(), settings.global_steward_ids)
    log.info("Archive governance API %s started", app.version)
    yield


app = FastAPI(title="Archive Governance API", version="1.0.0", lifespan=lifespan)


# -----------------------------
# Error envelope
# -----------------------------
@app.exception_handler(GovernanceError)
async def governance_error_handler(request: Request, exc: GovernanceError):
    if exc.internal:
        log.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.internal)
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    fields = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
        fields[".".join(loc) or "request"] = err.get("msg", "invalid")
    return JSONResponse(
        status_code=422,
        content={
            "success": False,
            "error": "validation_error",
            "detail": MESSAGES["validation_error"],
            "fields": fields,
        },
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "server_error", "detail": MESSAGES["server_error"]},
    )


# -----------------------------
# Health checks
# -----------------------------
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/readyz")
def readyz():
    engine = get_engine()
    db_ping(engine)
    return {"status": "ready", "db": "ok"}


# -----------------------------
# Workflow helpers
# -----------------------------
@app.get("/workflow/states")
def workflow_states():
    return {"states": list_states(), "actions": [a.value for a in Action]}


@app.get("/items/{item_id}/allowed", response_model=AllowedActionsOut)
def item_allowed(
    item_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    item, allowed = review.allowed_actions(engine, actor_id, item_id)
    return {"item_id": item.id, "status": item.status, "allowed": allowed}


# -----------------------------
# Contributions
# -----------------------------
@app.post("/items", response_model=ItemOut, status_code=201)
def create_item(
    body: ItemCreateIn,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    item = intake.submit_item(engine, actor_id, body, notifier=get_notifier())
    return ItemOut.model_validate(item)


@app.get("/items", response_model=ItemListOut)
def list_items(
    status: Optional[ItemStatus] = None,
    item_type: Optional[ItemType] = Query(default=None, alias="type"),
    journey_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    sort: str = "created_at_desc",
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    page = review.list_queue(
        engine,
        actor_id,
        status=status,
        type=item_type,
        journey_id=journey_id,
        limit=limit,
        offset=offset,
        sort=sort,
    )
    return {
        "items": [ItemOut.model_validate(i) for i in page.items],
        "counts": page.counts,
        "limit": page.limit,
        "offset": page.offset,
        "total": page.total,
    }


@app.get("/items/{item_id}", response_model=ItemOut)
def get_item(
    item_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    viewer_id = optional_actor(x_actor_id)

    return ItemOut.model_validate(review.get_visible_item(engine, viewer_id, item_id))


def _decide(item_id: str, action: Action, body: Optional[DecisionIn], x_actor_id: Optional[str]) -> dict:
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    result = decisions.apply_action(
        engine,
        actor_id,
        item_id,
        action,
        note=body.note if body else None,
        notifier=get_notifier(),
    )
    return {"success": True, "changed": result.changed, "item": ItemOut.model_validate(result.item)}


@app.post("/items/{item_id}/submit", response_model=DecisionOut)
def submit_item(
    item_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    return _decide(item_id, Action.SUBMIT, None, x_actor_id)


@app.post("/items/{item_id}/approve", response_model=DecisionOut)
def approve_item(
    item_id: str,
    body: Optional[DecisionIn] = None,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    return _decide(item_id, Action.APPROVE, body, x_actor_id)


@app.post("/items/{item_id}/reject", response_model=DecisionOut)
def reject_item(
    item_id: str,
    body: Optional[DecisionIn] = None,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    return _decide(item_id, Action.REJECT, body, x_actor_id)


@app.post("/items/{item_id}/reset", response_model=DecisionOut)
def reset_item(
    item_id: str,
    body: Optional[DecisionIn] = None,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    return _decide(item_id, Action.RESET_TO_PENDING, body, x_actor_id)


# -----------------------------
# Audit ledger (read only)
# -----------------------------
@app.get("/audit", response_model=List[AuditEntryOut])
def list_audit(
    journey_id: Optional[str] = None,
    target_id: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    viewer_id = require_actor(x_actor_id)

    entries = audit.list_entries(
        engine,
        viewer_id,
        journey_id=journey_id,
        target_id=target_id,
        action=action,
        limit=limit,
        offset=offset,
    )
    return [AuditEntryOut.model_validate(e) for e in entries]


# -----------------------------
# Steward grants
# -----------------------------
@app.get("/grants", response_model=List[GrantOut])
def list_grants(
    journey_id: Optional[str] = None,
    include_revoked: bool = False,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    grants = authority.list_grants(engine, actor_id, journey_id=journey_id, include_revoked=include_revoked)
    return [GrantOut.model_validate(g) for g in grants]


@app.post("/grants", response_model=GrantOut)
def create_grant(
    body: GrantIn,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    grant, created = authority.grant_steward(
        engine,
        actor_id,
        body.user_id,
        body.scope,
        journey_id=body.journey_id,
        notifier=get_notifier(),
    )
    return JSONResponse(
        status_code=201 if created else 200,
        content=GrantOut.model_validate(grant).model_dump(mode="json"),
    )


@app.delete("/grants/{grant_id}", response_model=GrantOut)
def delete_grant(
    grant_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    return GrantOut.model_validate(authority.revoke_grant(engine, actor_id, grant_id, notifier=get_notifier()))


# -----------------------------
# Journeys + trusted circle
# -----------------------------
@app.post("/journeys", response_model=JourneyOut, status_code=201)
def create_journey(
    body: JourneyCreateIn,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    return JourneyOut.model_validate(journeys.create_journey(engine, actor_id, body.title, body.kind))


@app.get("/journeys/{journey_id}", response_model=JourneyOut)
def get_journey(journey_id: str):
    engine = get_engine()
    return JourneyOut.model_validate(journeys.get_journey(engine, journey_id))


@app.get("/journeys/{journey_id}/items", response_model=List[ItemOut])
def get_journey_items(
    journey_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    viewer_id = optional_actor(x_actor_id)

    return [ItemOut.model_validate(i) for i in review.list_journey_items(engine, viewer_id, journey_id)]


@app.get("/journeys/{journey_id}/viewers", response_model=List[ViewerOut])
def get_viewers(
    journey_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    return [ViewerOut.model_validate(v) for v in journeys.list_viewers(engine, actor_id, journey_id)]


@app.post("/journeys/{journey_id}/viewers", response_model=ViewerOut)
def put_viewer(
    journey_id: str,
    body: ViewerIn,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    viewer = journeys.add_viewer(engine, actor_id, journey_id, body.user_id, body.tier, body.can_preview)
    return ViewerOut.model_validate(viewer)


@app.delete("/journeys/{journey_id}/viewers/{user_id}")
def delete_viewer(
    journey_id: str,
    user_id: str,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    journeys.remove_viewer(engine, actor_id, journey_id, user_id)
    return {"success": True}


# -----------------------------
# Contact / join requests
# -----------------------------
@app.post("/messages", response_model=MessageOut, status_code=201)
def create_message(
    body: MessageIn,
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    sender_id = optional_actor(x_actor_id)

    return MessageOut.model_validate(intake.submit_message(engine, sender_id, body, notifier=get_notifier()))


@app.get("/messages", response_model=List[MessageOut])
def get_messages(
    kind: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    x_actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
):
    engine = get_engine()
    actor_id = require_actor(x_actor_id)

    return [MessageOut.model_validate(m) for m in intake.list_messages(engine, actor_id, kind=kind, limit=limit)]
