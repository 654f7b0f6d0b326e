from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from archive_api.errors import InvalidStatus


class Status(str, Enum):
    DRAFT = "draft"
    SUBMITTED_FOR_REVIEW = "submitted_for_review"
    APPROVED = "approved"
    REJECTED = "rejected"


class Action(str, Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RESET_TO_PENDING = "reset_to_pending"


class Visibility(str, Enum):
    PRIVATE_DRAFT = "private_draft"
    FAMILY = "family"
    CONNECTIONS = "connections"
    PUBLIC = "public"


class WorkflowError(InvalidStatus):
    """Raised when a workflow transition is invalid."""


def list_states() -> list[str]:
    return [s.value for s in Status]


# The one fixed graph: action -> (allowed from-states, target state).
_GRAPH: dict[Action, tuple[frozenset[Status], Status]] = {
    Action.SUBMIT: (frozenset({Status.DRAFT}), Status.SUBMITTED_FOR_REVIEW),
    Action.APPROVE: (frozenset({Status.SUBMITTED_FOR_REVIEW}), Status.APPROVED),
    Action.REJECT: (frozenset({Status.SUBMITTED_FOR_REVIEW}), Status.REJECTED),
    Action.RESET_TO_PENDING: (
        frozenset({Status.APPROVED, Status.REJECTED}),
        Status.SUBMITTED_FOR_REVIEW,
    ),
}

# Audit action kind written for each committed transition.
AUDIT_ACTIONS: dict[Action, str] = {
    Action.SUBMIT: "item_submitted",
    Action.APPROVE: "item_approved",
    Action.REJECT: "item_rejected",
    Action.RESET_TO_PENDING: "item_reset_to_pending",
}


@dataclass(frozen=True)
class Transition:
    action: Action
    from_status: Status
    to_status: Status

    @property
    def noop(self) -> bool:
        return self.from_status == self.to_status


def coerce_status(value: Status | str) -> Status:
    try:
        return Status((value or "").strip().lower() if isinstance(value, str) else value)
    except ValueError:
        raise WorkflowError(f"Unknown status: {value}")


def coerce_action(value: Action | str) -> Action:
    try:
        return Action((value or "").strip().lower() if isinstance(value, str) else value)
    except ValueError:
        raise WorkflowError(f"Unknown action: {value}")


def resolve_transition(current: Status | str, action: Action | str) -> Transition:
    """
    Pure: (current status, action) -> Transition, or WorkflowError.

    Re-applying an action whose target is already the current status is a
    benign no-op (client retries under network uncertainty). Anything else
    outside the graph fails, whatever happened before.
    """
    s = coerce_status(current)
    a = coerce_action(action)
    sources, target = _GRAPH[a]

    if s == target:
        return Transition(action=a, from_status=s, to_status=s)
    if s not in sources:
        allowed = [x.value for x in allowed_actions(s)]
        raise WorkflowError(
            f"Cannot {a.value} an item that is {s.value}. Allowed: {allowed}",
        )
    return Transition(action=a, from_status=s, to_status=target)


def allowed_actions(current: Status | str) -> list[Action]:
    """Actions that would move an item out of `current` (no-ops excluded)."""
    s = coerce_status(current)
    return [a for a, (sources, _) in _GRAPH.items() if s in sources]


def is_publicly_eligible(status: Status | str) -> bool:
    """Only approved items are ever shown to their declared audience."""
    return coerce_status(status) == Status.APPROVED
