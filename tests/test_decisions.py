"""
Decision engine: authority, the transition graph, compare-and-set, and the
ledger entry written in the same transaction as the change.
"""
import pytest
from sqlalchemy import text

from archive_api import audit, decisions, repo, review
from archive_api.errors import InvalidStatus, NotFound, PermissionDenied


class TestApprove:
    def test_trial_item_approved_and_visible(self, world, make_item, notifier):
        item = make_item(title="Trial", body="x" * 60, visibility="public")

        page = review.list_queue(world.engine, world.global_steward, status="submitted_for_review")
        assert item.id in [i.id for i in page.items]

        result = decisions.approve(world.engine, world.global_steward, item.id)
        assert result.changed
        assert result.item.status == "approved"
        assert result.item.reviewed_by == world.global_steward
        assert result.item.reviewed_at is not None

        approvals = audit.list_entries(world.engine, world.global_steward, target_id=item.id, action="item_approved")
        assert len(approvals) == 1
        assert approvals[0].before["status"] == "submitted_for_review"
        assert approvals[0].after["status"] == "approved"

        # public and approved: anyone, even anonymous
        assert review.get_visible_item(world.engine, None, item.id).id == item.id
        assert notifier.events("item_approved")[0][0] == "contributor-1"

    def test_second_approve_is_noop_without_ledger_entry(self, world, make_item):
        item = make_item()
        decisions.approve(world.engine, world.global_steward, item.id)
        again = decisions.approve(world.engine, world.steward_a, item.id)

        assert not again.changed
        assert again.item.status == "approved"
        approvals = audit.list_entries(world.engine, world.global_steward, target_id=item.id, action="item_approved")
        assert len(approvals) == 1

    def test_steward_of_other_journey_is_denied(self, world, make_item):
        item = make_item(journey=world.journey_b)
        with pytest.raises(PermissionDenied):
            decisions.approve(world.engine, world.steward_a, item.id)

        with world.engine.begin() as conn:
            assert repo.get_item(conn, item.id).status == "submitted_for_review"

    def test_contributor_cannot_approve_own_item(self, world, make_item):
        item = make_item()
        with pytest.raises(PermissionDenied):
            decisions.approve(world.engine, "contributor-1", item.id)

    def test_missing_item(self, world):
        with pytest.raises(NotFound):
            decisions.approve(world.engine, world.global_steward, "does-not-exist")


class TestRejectAndReset:
    def test_reject_records_note(self, world, make_item, notifier):
        item = make_item()
        result = decisions.reject(world.engine, world.steward_a, item.id, note="Please add the year.")
        assert result.item.status == "rejected"
        assert result.item.rejection_note == "Please add the year."
        entry = result.audit_entry
        assert entry.action == "item_rejected"
        assert entry.note == "Please add the year."
        assert notifier.events("item_rejected")[0][2]["note"] == "Please add the year."

    def test_rejected_cannot_be_approved_directly(self, world, make_item):
        item = make_item()
        decisions.reject(world.engine, world.steward_a, item.id)
        with pytest.raises(InvalidStatus):
            decisions.approve(world.engine, world.steward_a, item.id)

    def test_reset_returns_to_queue(self, world, make_item):
        item = make_item()
        decisions.reject(world.engine, world.steward_a, item.id, note="blurry")
        result = decisions.reset_to_pending(world.engine, world.steward_a, item.id)
        assert result.item.status == "submitted_for_review"
        assert result.item.reviewed_by is None
        # the earlier note stays for the next reviewer
        assert result.item.rejection_note == "blurry"

        result = decisions.approve(world.engine, world.steward_a, item.id)
        assert result.item.rejection_note is None

    def test_reset_of_never_reviewed_item_changes_nothing(self, world, make_item):
        item = make_item()
        result = decisions.reset_to_pending(world.engine, world.steward_a, item.id)
        assert not result.changed
        assert result.item.status == "submitted_for_review"

        actions = [e.action for e in audit.list_entries(world.engine, world.global_steward, target_id=item.id)]
        assert actions == ["item_created"]

    def test_reset_of_draft_is_refused(self, world, make_item):
        item = make_item(as_draft=True)
        with pytest.raises(InvalidStatus):
            decisions.reset_to_pending(world.engine, world.steward_a, item.id)

    def test_full_history_in_order(self, world, make_item):
        item = make_item()
        decisions.approve(world.engine, world.steward_a, item.id)
        decisions.reset_to_pending(world.engine, world.global_steward, item.id)
        decisions.reject(world.engine, world.steward_a, item.id)

        actions = [e.action for e in audit.list_entries(world.engine, world.global_steward, target_id=item.id)]
        assert actions == ["item_created", "item_approved", "item_reset_to_pending", "item_rejected"]


class TestSubmit:
    def test_only_creator_or_steward_submits(self, world, make_item):
        item = make_item(as_draft=True)
        with pytest.raises(PermissionDenied):
            decisions.submit(world.engine, "someone-else", item.id)
        assert decisions.submit(world.engine, world.steward_a, item.id).changed


class TestAtomicity:
    def test_ledger_failure_rolls_back_status(self, world, make_item, monkeypatch):
        item = make_item()

        def broken_append(conn, **kwargs):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(repo, "append_audit", broken_append)
        with pytest.raises(RuntimeError):
            decisions.approve(world.engine, world.global_steward, item.id)
        monkeypatch.undo()

        with world.engine.begin() as conn:
            assert repo.get_item(conn, item.id).status == "submitted_for_review"
        assert audit.list_entries(world.engine, world.global_steward, target_id=item.id, action="item_approved") == []

    def test_lost_race_is_reevaluated(self, world, make_item, monkeypatch):
        item = make_item()
        real_update = repo.update_item_status
        calls = []

        def competing_update(conn, item_id, **kwargs):
            calls.append(kwargs["to_status"])
            if len(calls) == 1:
                # another steward rejects it first
                conn.execute(
                    text("UPDATE contribution_items SET status = 'rejected' WHERE id = :id"),
                    {"id": item_id},
                )
                return False
            return real_update(conn, item_id, **kwargs)

        monkeypatch.setattr(repo, "update_item_status", competing_update)
        with pytest.raises(InvalidStatus):
            decisions.approve(world.engine, world.global_steward, item.id)
        assert calls == ["approved"]

    def test_lost_race_to_same_target_is_noop(self, world, make_item, monkeypatch):
        item = make_item()
        calls = []

        def competing_update(conn, item_id, **kwargs):
            calls.append(kwargs["to_status"])
            conn.execute(
                text("UPDATE contribution_items SET status = 'approved' WHERE id = :id"),
                {"id": item_id},
            )
            return False

        monkeypatch.setattr(repo, "update_item_status", competing_update)
        result = decisions.approve(world.engine, world.global_steward, item.id)
        assert not result.changed
        assert result.item.status == "approved"
        assert len(calls) == 1
