"""
Steward authority: grants are re-read on every call and every change to
them is itself audited.
"""
import pytest

from archive_api import audit, authority, decisions
from archive_api.errors import NotFound, PermissionDenied, ValidationFailed


class TestEffectiveGrants:
    def test_global_covers_everything(self, world):
        with world.engine.begin() as conn:
            g = authority.effective_grants(conn, world.global_steward)
        assert g.is_global
        assert g.covers(world.journey_b.id)
        assert g.read_scope().is_unrestricted

    def test_journey_steward_covers_only_their_journey(self, world):
        with world.engine.begin() as conn:
            g = authority.effective_grants(conn, world.steward_a)
        assert g.covers(world.journey_a.id)
        assert not g.covers(world.journey_b.id)
        assert g.read_scope().journey_ids == (world.journey_a.id,)

    def test_non_steward_reads_only_own_items(self, world):
        with world.engine.begin() as conn:
            scope = authority.effective_grants(conn, "contributor-1").read_scope()
        assert scope.journey_ids is None
        assert scope.owner_id == "contributor-1"

    def test_anonymous_has_no_authority(self, world):
        with world.engine.begin() as conn:
            g = authority.effective_grants(conn, None)
            with pytest.raises(PermissionDenied):
                authority.require_authority(conn, None, world.journey_a.id)
        assert not g.is_steward


class TestGrantChanges:
    def test_only_global_stewards_grant(self, world):
        with pytest.raises(PermissionDenied):
            authority.grant_steward(world.engine, world.steward_a, "someone", "journey", journey_id=world.journey_a.id)

    def test_grant_is_idempotent(self, world):
        grant, created = authority.grant_steward(
            world.engine, world.global_steward, world.steward_a, "journey", journey_id=world.journey_a.id
        )
        assert not created
        assert grant.user_id == world.steward_a

    def test_journey_grant_needs_a_real_journey(self, world):
        with pytest.raises(ValidationFailed):
            authority.grant_steward(world.engine, world.global_steward, "x", "journey")
        with pytest.raises(ValidationFailed):
            authority.grant_steward(world.engine, world.global_steward, "x", "journey", journey_id="missing")

    def test_revocation_takes_effect_on_next_call(self, world, make_item):
        item = make_item()
        grants = authority.list_grants(world.engine, world.global_steward, journey_id=world.journey_a.id)
        grant = next(g for g in grants if g.user_id == world.steward_a)

        revoked = authority.revoke_grant(world.engine, world.global_steward, grant.id)
        assert revoked.revoked_by == world.global_steward
        assert revoked.revoked_at is not None

        with pytest.raises(PermissionDenied):
            decisions.approve(world.engine, world.steward_a, item.id)

    def test_grant_changes_are_audited(self, world):
        grant, _ = authority.grant_steward(
            world.engine, world.global_steward, "steward-b", "journey", journey_id=world.journey_b.id
        )
        authority.revoke_grant(world.engine, world.global_steward, grant.id)

        entries = audit.list_entries(world.engine, world.global_steward, target_id=grant.id)
        assert [e.action for e in entries] == ["steward_added", "steward_removed"]
        assert entries[1].before["revoked_at"] is None
        assert entries[1].after["revoked_by"] == world.global_steward

    def test_global_grants_cannot_be_revoked(self, world):
        grants = authority.list_grants(world.engine, world.global_steward)
        global_grant = next(g for g in grants if g.scope == "global")
        with pytest.raises(PermissionDenied):
            authority.revoke_grant(world.engine, world.global_steward, global_grant.id)

    def test_revoking_twice_is_not_found(self, world):
        grant, _ = authority.grant_steward(
            world.engine, world.global_steward, "steward-b", "journey", journey_id=world.journey_b.id
        )
        authority.revoke_grant(world.engine, world.global_steward, grant.id)
        with pytest.raises(NotFound):
            authority.revoke_grant(world.engine, world.global_steward, grant.id)


class TestListing:
    def test_journey_steward_sees_grants_for_their_journey(self, world):
        authority.grant_steward(world.engine, world.global_steward, "steward-b", "journey", journey_id=world.journey_b.id)
        users = {g.user_id for g in authority.list_grants(world.engine, world.steward_a)}
        assert "steward-b" not in users
        assert world.steward_a in users

    def test_non_steward_cannot_list(self, world):
        with pytest.raises(PermissionDenied):
            authority.list_grants(world.engine, "contributor-1")

    def test_seeding_is_idempotent(self, world):
        assert authority.seed_global_stewards(world.engine, [world.global_steward]) == []
        entries = audit.list_entries(world.engine, world.global_steward, action="steward_added")
        seeded = [e for e in entries if e.actor_id == "system"]
        assert len(seeded) == 1
