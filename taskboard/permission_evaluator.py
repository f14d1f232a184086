"""
Permission Evaluator

The single source of truth for who may do what to a task.

The actor's role within a project is computed exactly once per request by
resolve_actor() and threaded through as an ActorContext. Every decision
function below is pure: same project snapshot and inputs, same answer.

Rules for mutating an existing task, evaluated in order:
1. A stranger (not owner, authorized personnel or team member) has no permissions
2. The owner may edit any field and request any valid transition
3. Anyone else must be the task's assignee, otherwise the task is read-only
4. Only the owner may move a task into verified
5. Non-owners may change status only; every other field is owner-only
6. The status change itself must be valid in the transition table

Creation and deletion are owner-only with no exceptions. A verified task is
locked: no field may change (a status no-op is still accepted).
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .task_model import ActorIdentity, ActorRole, Project, Task, TaskStatus
from .task_state_machine import OWNER_ONLY_TARGETS, can_transition, is_noop

logger = logging.getLogger("permission_evaluator")


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------
class TaskOperation(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# Maximum operations per role. UPDATE is further narrowed per task and field.
ROLE_ALLOWED_OPERATIONS: Dict[ActorRole, FrozenSet[TaskOperation]] = {
    ActorRole.OWNER: frozenset({
        TaskOperation.READ,
        TaskOperation.CREATE,
        TaskOperation.UPDATE,
        TaskOperation.DELETE,
    }),
    ActorRole.AUTHORIZED: frozenset({
        TaskOperation.READ,
        TaskOperation.UPDATE,
    }),
    ActorRole.TEAM_MEMBER: frozenset({
        TaskOperation.READ,
        TaskOperation.UPDATE,
    }),
    ActorRole.STRANGER: frozenset(),
}

# Fields a PATCH may name
EDITABLE_FIELDS: FrozenSet[str] = frozenset({
    "title",
    "description",
    "priority",
    "due_date",
    "assigned_to",
    "status",
})

# Fields an assignee who is not the owner may change
ASSIGNEE_EDITABLE_FIELDS: FrozenSet[str] = frozenset({"status"})


# -----------------------------------------------------------------------------
# Actor Context
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ActorContext:
    """An authenticated identity together with its role in one project."""
    identity: ActorIdentity
    role: ActorRole
    project_id: str

    @property
    def user_id(self) -> str:
        return self.identity.user_id

    @property
    def email(self) -> str:
        return self.identity.email

    @property
    def display_name(self) -> str:
        return self.identity.display_name

    @property
    def is_owner(self) -> bool:
        return self.role == ActorRole.OWNER

    @property
    def is_authorized_personnel(self) -> bool:
        return self.role == ActorRole.AUTHORIZED

    @property
    def is_team_member(self) -> bool:
        return self.role == ActorRole.TEAM_MEMBER

    @property
    def is_participant(self) -> bool:
        return self.role != ActorRole.STRANGER

    def can(self, operation: TaskOperation) -> bool:
        return operation in ROLE_ALLOWED_OPERATIONS.get(self.role, frozenset())


def resolve_actor(project: Project, identity: ActorIdentity) -> ActorContext:
    """
    Derive the actor's role from the persisted project document.

    Matching is by stable user id only; email is never used for identity.
    """
    if identity.user_id == project.owner_id:
        role = ActorRole.OWNER
    elif project.find_authorized(identity.user_id):
        role = ActorRole.AUTHORIZED
    elif project.find_member(identity.user_id):
        role = ActorRole.TEAM_MEMBER
    else:
        role = ActorRole.STRANGER

    logger.debug(f"Resolved actor {identity.user_id} as {role.value} in project {project.project_id}")
    return ActorContext(identity=identity, role=role, project_id=project.project_id)


# -----------------------------------------------------------------------------
# Decisions
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class PermissionDecision:
    """
    Result of a permission evaluation.

    If allowed is False the whole operation MUST be rejected.
    """
    allowed: bool
    reason: str
    denied_fields: Tuple[str, ...] = field(default_factory=tuple)
    invalid_transition: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "denied_fields": list(self.denied_fields),
            "invalid_transition": self.invalid_transition,
        }


def _allow(reason: str) -> PermissionDecision:
    return PermissionDecision(allowed=True, reason=reason)


def _deny(reason: str, denied_fields=(), invalid_transition: bool = False) -> PermissionDecision:
    return PermissionDecision(
        allowed=False,
        reason=reason,
        denied_fields=tuple(sorted(denied_fields)),
        invalid_transition=invalid_transition,
    )


def can_read_tasks(actor: ActorContext) -> PermissionDecision:
    if not actor.can(TaskOperation.READ):
        return _deny("Not a participant of this project")
    return _allow(f"{actor.role.value} may read tasks")


def can_create_task(actor: ActorContext) -> PermissionDecision:
    if not actor.can(TaskOperation.CREATE):
        return _deny("Only the project owner can create tasks")
    return _allow("Owner may create tasks")


def can_delete_task(actor: ActorContext, task: Optional[Task] = None) -> PermissionDecision:
    """Owner-only. Decided on the role alone, so it can run before the task lookup."""
    if not actor.can(TaskOperation.DELETE):
        return _deny("Only the project owner can delete tasks")
    return _allow(f"Owner may delete task {task.task_id}" if task else "Owner may delete tasks")


def _status_target(value: Any) -> Optional[TaskStatus]:
    if isinstance(value, TaskStatus):
        return value
    try:
        return TaskStatus(value)
    except ValueError:
        return None


def can_edit_task(actor: ActorContext, task: Task, changes: Mapping[str, Any]) -> PermissionDecision:
    """
    Decide on a requested field diff as a whole.

    Either every requested field is allowed or the decision is a denial;
    there is no partial success.
    """
    requested = set(changes)
    unknown = requested - EDITABLE_FIELDS
    if unknown:
        return _deny(f"Fields cannot be edited: {sorted(unknown)}", denied_fields=unknown)

    if not actor.can(TaskOperation.UPDATE):
        return _deny("Not a participant of this project", denied_fields=requested)

    target = None
    if "status" in requested:
        target = _status_target(changes["status"])
        if target is None:
            return _deny(f"Unknown status: {changes['status']}", denied_fields={"status"}, invalid_transition=True)

    if not actor.is_owner:
        if task.assigned_to != actor.user_id:
            return _deny("Task is read-only: not assigned to you", denied_fields=requested)

        if target in OWNER_ONLY_TARGETS:
            return _deny("Only the project owner can verify tasks", denied_fields={"status"})

        owner_only = requested - ASSIGNEE_EDITABLE_FIELDS
        if owner_only:
            return _deny(
                f"Only the project owner can change {sorted(owner_only)}",
                denied_fields=owner_only,
            )

    if task.status == TaskStatus.VERIFIED:
        locked = requested - {"status"}
        if locked or (target is not None and not is_noop(task.status, target)):
            return _deny(
                "Verified tasks are locked",
                denied_fields=locked or {"status"},
                invalid_transition=not locked,
            )

    if target is not None:
        allowed, reason = can_transition(task.status, target)
        if not allowed:
            return _deny(reason, denied_fields={"status"}, invalid_transition=True)

    return _allow(f"{actor.role.value} may change {sorted(requested)}")


def can_change_status(actor: ActorContext, task: Task, target: TaskStatus) -> PermissionDecision:
    return can_edit_task(actor, task, {"status": target})


def allowed_targets(actor: ActorContext, task: Task) -> FrozenSet[TaskStatus]:
    """Statuses, other than the current one, this actor may move the task into."""
    return frozenset(
        status for status in TaskStatus
        if status != task.status and can_change_status(actor, task, status).allowed
    )
