"""Task status state machine and the actors allowed to drive each transition."""

from __future__ import annotations

from typing import Any

from settlement_service.errors import Forbidden, InvalidStateTransition

OPEN = "open"
ASSIGNED = "assigned"
TODO = "todo"
COMPLETED = "completed"
CANCELLED = "cancelled"

STATUSES = frozenset({OPEN, ASSIGNED, TODO, COMPLETED, CANCELLED})
TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})

SYSTEM = "system"
POSTER = "poster"
TASKER = "tasker"

# (from, to) -> actor allowed to trigger the change
TRANSITIONS: dict[tuple[str, str], str] = {
    (OPEN, ASSIGNED): SYSTEM,
    (ASSIGNED, TODO): TASKER,
    (TODO, COMPLETED): POSTER,
    (OPEN, CANCELLED): POSTER,
    (ASSIGNED, CANCELLED): POSTER,
}


def can_transition(current: str, target: str) -> bool:
    return (current, target) in TRANSITIONS


def actor_for(task: dict[str, Any], user_id: str) -> str | None:
    """Role the user plays on the task, or None for outsiders."""
    if user_id == task["poster_id"]:
        return POSTER
    if task["assignee_id"] is not None and user_id == task["assignee_id"]:
        return TASKER
    return None


def require_transition(current: str, target: str, actor: str | None) -> None:
    """
    Validate a status change.

    Raises:
        InvalidStateTransition: the pair is not in the transition table
        Forbidden: the transition exists but belongs to another actor
    """
    allowed_actor = TRANSITIONS.get((current, target))
    if allowed_actor is None:
        raise InvalidStateTransition(current, target)
    if actor != allowed_actor:
        raise Forbidden(
            f"Only the {allowed_actor} can move a task from '{current}' to '{target}'",
            {"required_actor": allowed_actor},
        )
