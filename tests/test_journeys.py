"""
Journeys and their trusted circle of viewers.
"""
import pytest

from archive_api import audit, journeys
from archive_api.errors import NotFound, PermissionDenied, ValidationFailed


class TestJourneys:
    def test_create_and_get(self, engine):
        journey = journeys.create_journey(engine, "owner-x", "  Harbour Rowing Club ", "club")
        assert journey.title == "Harbour Rowing Club"
        assert journeys.get_journey(engine, journey.id).owner_id == "owner-x"

    def test_kind_is_checked(self, engine):
        with pytest.raises(ValidationFailed):
            journeys.create_journey(engine, "owner-x", "Title", "planet")

    def test_missing(self, engine):
        with pytest.raises(NotFound):
            journeys.get_journey(engine, "nope")


class TestViewers:
    def test_owner_manages_viewers(self, world):
        viewer = journeys.add_viewer(world.engine, world.journey_a.owner_id, world.journey_a.id, "cousin", "family")
        assert viewer.tier == "family"
        assert not viewer.can_preview

        upgraded = journeys.add_viewer(
            world.engine, world.journey_a.owner_id, world.journey_a.id, "cousin", "family", can_preview=True
        )
        assert upgraded.can_preview
        assert [v.user_id for v in journeys.list_viewers(world.engine, world.steward_a, world.journey_a.id)] == ["cousin"]

        journeys.remove_viewer(world.engine, world.journey_a.owner_id, world.journey_a.id, "cousin")
        assert journeys.list_viewers(world.engine, world.journey_a.owner_id, world.journey_a.id) == []

        actions = [e.action for e in audit.list_entries(world.engine, world.global_steward, journey_id=world.journey_a.id)]
        assert actions.count("viewer_added") == 2
        assert actions.count("viewer_removed") == 1

    def test_strangers_cannot_manage(self, world):
        with pytest.raises(PermissionDenied):
            journeys.add_viewer(world.engine, "stranger", world.journey_a.id, "cousin", "family")
        with pytest.raises(PermissionDenied):
            journeys.list_viewers(world.engine, "stranger", world.journey_a.id)

    def test_unknown_tier(self, world):
        with pytest.raises(ValidationFailed):
            journeys.add_viewer(world.engine, world.journey_a.owner_id, world.journey_a.id, "cousin", "colleague")

    def test_removing_non_viewer(self, world):
        with pytest.raises(NotFound):
            journeys.remove_viewer(world.engine, world.journey_a.owner_id, world.journey_a.id, "nobody")
