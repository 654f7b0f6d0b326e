"""
Shared fixtures: a fresh SQLite archive per test, a recording notifier, and a
small world of journeys and stewards most tests start from.
"""
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from archive_api import authority, journeys
from archive_api.config import Settings, use_settings
from archive_api.db import build_engine, create_schema, use_engine
from archive_api.intake import submit_item
from archive_api.notifications import use_notifier
from archive_api.schemas import ItemCreateIn

GLOBAL_STEWARD = "steward-global"


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def send(self, recipient, event_kind, context):
        self.sent.append((recipient, event_kind, dict(context)))

    def events(self, event_kind):
        return [s for s in self.sent if s[1] == event_kind]


@pytest.fixture
def settings(tmp_path):
    s = Settings(
        database_url=f"sqlite:///{tmp_path / 'archive.db'}",
        global_steward_ids=(GLOBAL_STEWARD,),
        statement_timeout_ms=5_000,
    )
    use_settings(s)
    yield s
    use_settings(None)


@pytest.fixture
def engine(settings):
    eng = build_engine(settings.database_url, settings.statement_timeout_ms)
    create_schema(eng)
    use_engine(eng)
    yield eng
    use_engine(None)
    eng.dispose()


@pytest.fixture
def notifier():
    n = RecordingNotifier()
    use_notifier(n)
    yield n
    use_notifier(None)


@pytest.fixture
def world(engine):
    """
    Two journeys, A and B. One global steward, one steward scoped to A.
    """
    authority.seed_global_stewards(engine, [GLOBAL_STEWARD])
    journey_a = journeys.create_journey(engine, "owner-a", "Journey A", "person")
    journey_b = journeys.create_journey(engine, "owner-b", "Journey B", "club")
    authority.grant_steward(engine, GLOBAL_STEWARD, "steward-a", "journey", journey_id=journey_a.id)
    return SimpleNamespace(
        engine=engine,
        journey_a=journey_a,
        journey_b=journey_b,
        global_steward=GLOBAL_STEWARD,
        steward_a="steward-a",
    )


@pytest.fixture
def client(engine, notifier):
    from archive_api.main import app

    with TestClient(app) as c:
        yield c


def text_item(journey_id, title="A memory", body="We met at the club in 1998.", **extra):
    fields = {"type": "text", "journey_id": journey_id, "payload": {"title": title, "body": body}}
    fields.update(extra)
    return ItemCreateIn(**fields)


@pytest.fixture
def make_item(world):
    def _make(journey=None, actor_id="contributor-1", **extra):
        journey = journey or world.journey_a
        return submit_item(world.engine, actor_id, text_item(journey.id, **extra))

    return _make
