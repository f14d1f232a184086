"""
Task State Machine

Valid states and transitions for a task's status.

States:
    pending <-> in-progress <-> completed -> verified

- pending is the initial state of every task
- verified can only be reached from completed, and only by the project owner
- verified is terminal: no transition leaves it
- requesting the current status is a no-op and always valid

Entering verified stamps verified_by and verified_at in the same write as the
status change.
"""

import logging
from datetime import datetime
from typing import Dict, FrozenSet, Optional, Tuple, Any

from .task_model import Task, TaskStatus, utc_now

logger = logging.getLogger("task_state_machine")

# -----------------------------------------------------------------------------
# Transition Table
# -----------------------------------------------------------------------------
VALID_TRANSITIONS: Dict[TaskStatus, FrozenSet[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED}),
    TaskStatus.IN_PROGRESS: frozenset({TaskStatus.PENDING, TaskStatus.COMPLETED}),
    TaskStatus.COMPLETED: frozenset({TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.VERIFIED}),
    TaskStatus.VERIFIED: frozenset(),  # Terminal state
}

# Targets only the project owner may request
OWNER_ONLY_TARGETS: FrozenSet[TaskStatus] = frozenset({TaskStatus.VERIFIED})

INITIAL_STATUS = TaskStatus.PENDING

TERMINAL_STATUSES: FrozenSet[TaskStatus] = frozenset(
    status for status, targets in VALID_TRANSITIONS.items() if not targets
)


def is_noop(current: TaskStatus, target: TaskStatus) -> bool:
    return current == target


def outgoing_transitions(current: TaskStatus) -> FrozenSet[TaskStatus]:
    """All statuses reachable in one step from current (ignoring who asks)."""
    return VALID_TRANSITIONS.get(current, frozenset())


def can_transition(current: TaskStatus, target: TaskStatus) -> Tuple[bool, str]:
    """
    Check a status change against the transition table.

    Returns (allowed, reason)
    """
    if is_noop(current, target):
        return True, f"No-op: task already {current.value}"

    valid_targets = outgoing_transitions(current)
    if target in valid_targets:
        return True, f"Transition {current.value} -> {target.value} allowed"

    if current in TERMINAL_STATUSES:
        return False, f"Task is {current.value}; no further status changes are allowed"
    return False, (
        f"Invalid transition: {current.value} -> {target.value}. "
        f"Valid targets: {sorted(t.value for t in valid_targets)}"
    )


def transition_fields(
    task: Task,
    target: TaskStatus,
    verifier_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Field values to write for a status change.

    Returns an empty dict for a no-op. Raises ValueError for a transition
    not in the table, or for entering verified without a verifier.
    """
    if is_noop(task.status, target):
        return {}

    allowed, reason = can_transition(task.status, target)
    if not allowed:
        raise ValueError(reason)

    fields: Dict[str, Any] = {"status": target}
    if target == TaskStatus.VERIFIED:
        if not verifier_name:
            raise ValueError("Entering verified requires a verifier")
        fields["verified_by"] = verifier_name
        fields["verified_at"] = now or utc_now()

    logger.debug(f"Task {task.task_id}: {task.status.value} -> {target.value}")
    return fields
