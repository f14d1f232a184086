"""
Task Service

The authoritative enforcement point for task reads and mutations.

Every call:
1. Requires an explicit, server-trusted ActorIdentity (never a client role flag)
2. Re-reads the project document from the store
3. Re-derives the actor's role from that persisted document
4. Evaluates permissions against the persisted task, not client state
5. Writes with a single atomic operation keyed by task id

PATCH semantics are all-or-nothing: if any requested field is denied the whole
request is rejected and nothing is written. Writes are conditional on the task
version that was evaluated, so a concurrent change between read and write is
reported as a conflict instead of being silently overwritten.
"""

import logging
import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

from .audit_log import AuditEvent, TaskAuditLog
from .errors import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    ProjectNotFoundError,
    TaskNotFoundError,
    TransitionError,
    ValidationError,
)
from .permission_evaluator import (
    ActorContext,
    PermissionDecision,
    can_create_task,
    can_delete_task,
    can_edit_task,
    can_read_tasks,
    resolve_actor,
)
from .project_store import ProjectStore
from .task_model import ActorIdentity, Project, Task, TaskPriority, TaskStatus, utc_now
from .task_state_machine import INITIAL_STATUS, transition_fields

logger = logging.getLogger("task_service")

MY_TASKS_LIMIT = 20
ASSIGNEE_FILTER_MINE = "mine"


def _policy_log(operation: str, actor: ActorContext, decision: PermissionDecision, task_id: Optional[str] = None) -> None:
    verdict = "ALLOWED" if decision.allowed else "DENIED"
    line = (
        f"POLICY CHECK: {operation} | project={actor.project_id} | task={task_id or 'N/A'} | "
        f"actor={actor.user_id} ({actor.role.value}) | {verdict}"
    )
    if decision.allowed:
        logger.info(line)
    else:
        logger.warning(f"{line} | {decision.reason}")


class TaskService:
    """Create, read, update and delete tasks on behalf of an authenticated actor."""

    def __init__(self, store: ProjectStore, audit: Optional[TaskAuditLog] = None):
        self._store = store
        self._audit = audit or TaskAuditLog(None)

    # -------------------------------------------------------------------------
    # Request Context
    # -------------------------------------------------------------------------

    def _load(self, project_id: str, identity: Optional[ActorIdentity]) -> Tuple[Project, ActorContext]:
        if identity is None or not identity.user_id:
            raise AuthenticationError("Authentication required")
        project = self._store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project, resolve_actor(project, identity)

    @staticmethod
    def _require_task(project: Project, task_id: str) -> Task:
        if not task_id:
            raise ValidationError("Task ID is required")
        task = project.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(project.project_id, task_id)
        return task

    # -------------------------------------------------------------------------
    # Value Normalization
    # -------------------------------------------------------------------------

    @staticmethod
    def _normalize_title(value: Any) -> str:
        title = value.strip() if isinstance(value, str) else ""
        if not title:
            raise ValidationError("Task title is required", details={"field": "title"})
        return title

    @staticmethod
    def _normalize_priority(value: Any) -> TaskPriority:
        try:
            return TaskPriority(value)
        except ValueError:
            raise ValidationError(
                f"Invalid priority: {value}",
                details={"field": "priority", "allowed": [p.value for p in TaskPriority]},
            )

    @staticmethod
    def _normalize_due_date(value: Any) -> Optional[date]:
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError:
            raise ValidationError(f"Invalid due date: {value}", details={"field": "due_date"})

    @staticmethod
    def _assignment_fields(project: Project, assigned_to: Optional[str]) -> Dict[str, Any]:
        """
        Resolve an assignee id against the current roster.

        The denormalized email and name always come from the roster.
        """
        if not assigned_to:
            return {"assigned_to": None, "assigned_to_email": None, "assigned_to_name": None}
        entry = project.roster_entry(assigned_to)
        if entry is None:
            raise ValidationError(
                f"Cannot assign task to '{assigned_to}': not a participant of this project",
                details={"field": "assigned_to"},
            )
        email, name = entry
        return {"assigned_to": assigned_to, "assigned_to_email": email, "assigned_to_name": name}

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_tasks(
        self,
        project_id: str,
        identity: Optional[ActorIdentity],
        assignee: Optional[str] = None,
    ) -> List[Task]:
        """Tasks of one project, newest first. assignee may be 'mine' or a user id."""
        project, actor = self._load(project_id, identity)
        decision = can_read_tasks(actor)
        if not decision.allowed:
            _policy_log("list_tasks", actor, decision)
            raise AuthorizationError(decision.reason)

        tasks = list(project.tasks)
        if assignee:
            wanted = actor.user_id if assignee == ASSIGNEE_FILTER_MINE else assignee
            tasks = [t for t in tasks if t.assigned_to == wanted]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def get_task(self, project_id: str, task_id: str, identity: Optional[ActorIdentity]) -> Task:
        project, actor = self._load(project_id, identity)
        decision = can_read_tasks(actor)
        if not decision.allowed:
            _policy_log("get_task", actor, decision, task_id)
            raise AuthorizationError(decision.reason)
        return self._require_task(project, task_id)

    def summarize(self, project_id: str, identity: Optional[ActorIdentity]) -> Dict[str, Any]:
        """Per-status counts and completion ratio for one project."""
        tasks = self.list_tasks(project_id, identity)
        counts = {status.value: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status.value] += 1
        done = counts[TaskStatus.COMPLETED.value] + counts[TaskStatus.VERIFIED.value]
        total = len(tasks)
        return {
            "project_id": project_id,
            "total": total,
            "by_status": counts,
            "completion_ratio": round(done / total, 4) if total else 0.0,
        }

    def tasks_for_actor(self, identity: Optional[ActorIdentity], limit: int = MY_TASKS_LIMIT) -> List[Dict[str, Any]]:
        """
        Every task assigned to the actor across all projects.

        Ordered by due date (undated last), then priority high to low.
        """
        if identity is None or not identity.user_id:
            raise AuthenticationError("Authentication required")

        entries = []
        for project in self._store.list_projects():
            if not resolve_actor(project, identity).is_participant:
                continue
            for task in project.tasks:
                if task.assigned_to == identity.user_id:
                    entries.append((project, task))

        entries.sort(key=lambda pt: (
            pt[1].due_date is None,
            pt[1].due_date or date.max,
            pt[1].priority.rank,
        ))

        results = []
        for project, task in entries[:limit]:
            data = task.to_dict()
            data["project_id"] = project.project_id
            data["project_title"] = project.title
            results.append(data)
        return results

    # -------------------------------------------------------------------------
    # Create
    # -------------------------------------------------------------------------

    def create_task(
        self,
        project_id: str,
        identity: Optional[ActorIdentity],
        title: Optional[str],
        description: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Any = None,
        assigned_to: Optional[str] = None,
    ) -> Task:
        project, actor = self._load(project_id, identity)

        decision = can_create_task(actor)
        _policy_log("create_task", actor, decision)
        if not decision.allowed:
            self._audit.record(
                AuditEvent.TASK_CREATE_REJECTED, project_id, actor.user_id, actor.role.value,
                reason=decision.reason,
            )
            raise AuthorizationError(decision.reason)

        now = utc_now()
        task = Task(
            task_id=uuid.uuid4().hex,
            title=self._normalize_title(title),
            created_by=actor.user_id,
            description=description or "",
            priority=self._normalize_priority(priority) if priority else TaskPriority.MEDIUM,
            status=INITIAL_STATUS,
            due_date=self._normalize_due_date(due_date),
            created_at=now,
            updated_at=now,
            **self._assignment_fields(project, assigned_to),
        )

        created = self._store.push_task(project_id, task)
        self._audit.record(
            AuditEvent.TASK_CREATED, project_id, actor.user_id, actor.role.value,
            task_id=created.task_id, to_status=created.status.value,
            metadata={"assigned_to": created.assigned_to},
        )
        logger.info(f"Task {created.task_id} created in project {project_id} by {actor.user_id}")
        return created

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_task(
        self,
        project_id: str,
        identity: Optional[ActorIdentity],
        task_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Task:
        """
        Apply a field diff to one task, all or nothing.

        Verification fields are stamped here from the authenticated actor;
        client-supplied verifier values are never accepted.
        """
        project, actor = self._load(project_id, identity)
        task = self._require_task(project, task_id)

        if not changes:
            raise ValidationError("No fields to update")

        decision = can_edit_task(actor, task, changes)
        _policy_log("update_task", actor, decision, task_id)
        if not decision.allowed:
            self._audit.record(
                AuditEvent.TASK_UPDATE_REJECTED, project_id, actor.user_id, actor.role.value,
                task_id=task_id, from_status=task.status.value,
                to_status=getattr(changes.get("status"), "value", changes.get("status")),
                reason=decision.reason,
                metadata={"denied_fields": list(decision.denied_fields)},
            )
            error_cls = TransitionError if decision.invalid_transition else AuthorizationError
            raise error_cls(decision.reason, details={"denied_fields": list(decision.denied_fields)})

        if expected_version is not None and expected_version != task.version:
            raise ConflictError(
                f"Task '{task_id}' was modified by someone else",
                details={"expected_version": expected_version, "current_version": task.version},
            )

        now = utc_now()
        fields: Dict[str, Any] = {}
        if "title" in changes:
            fields["title"] = self._normalize_title(changes["title"])
        if "description" in changes:
            fields["description"] = changes["description"] or ""
        if "priority" in changes:
            fields["priority"] = self._normalize_priority(changes["priority"])
        if "due_date" in changes:
            fields["due_date"] = self._normalize_due_date(changes["due_date"])
        if "assigned_to" in changes:
            fields.update(self._assignment_fields(project, changes["assigned_to"]))
        if "status" in changes:
            fields.update(transition_fields(
                task, TaskStatus(changes["status"]), verifier_name=actor.display_name, now=now,
            ))

        # Conditional on the version that was evaluated above
        updated = self._store.set_task_fields(
            project_id, task_id, fields, expected_version=task.version, now=now,
        )
        self._audit.record(
            AuditEvent.TASK_UPDATED, project_id, actor.user_id, actor.role.value,
            task_id=task_id, from_status=task.status.value, to_status=updated.status.value,
            metadata={"fields": sorted(fields)},
        )
        logger.info(f"Task {task_id} updated in project {project_id} by {actor.user_id}: {sorted(fields)}")
        return updated

    # -------------------------------------------------------------------------
    # Delete
    # -------------------------------------------------------------------------

    def delete_task(self, project_id: str, identity: Optional[ActorIdentity], task_id: str) -> Task:
        project, actor = self._load(project_id, identity)

        # Role gate precedes the task lookup
        decision = can_delete_task(actor)
        _policy_log("delete_task", actor, decision, task_id)
        if not decision.allowed:
            self._audit.record(
                AuditEvent.TASK_DELETE_REJECTED, project_id, actor.user_id, actor.role.value,
                task_id=task_id, reason=decision.reason,
            )
            raise AuthorizationError(decision.reason)

        self._require_task(project, task_id)
        removed = self._store.pull_task(project_id, task_id)
        self._audit.record(
            AuditEvent.TASK_DELETED, project_id, actor.user_id, actor.role.value,
            task_id=task_id, from_status=removed.status.value,
        )
        logger.info(f"Task {task_id} deleted from project {project_id} by {actor.user_id}")
        return removed
