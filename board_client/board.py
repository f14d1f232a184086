"""
Board Controller

Client-side state of one project's task board.

Responsibilities:
1. Hold the visible task list: the authoritative list plus in-flight
   optimistic changes
2. Gate drag-and-drop with the same permission rules the service enforces
3. Apply status changes optimistically and reconcile with the service reply
4. Roll back on failure and tell the user; never retry on its own

The service remains the enforcement point. Local checks only decide what
the UI offers; a rejection from the service always wins.

Mutations are async and independent per card: while one card's request is
outstanding other cards can still be dragged. A card with a request in
flight cannot be dragged again until that request settles.
"""

import copy
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Set, Union

from taskboard.errors import AuthorizationError, ConflictError, NotFoundError, TaskBoardError, TransitionError
from taskboard.permission_evaluator import (
    ActorContext,
    allowed_targets,
    can_change_status,
    can_create_task,
    can_delete_task,
    can_edit_task,
    resolve_actor,
)
from taskboard.task_model import Project, Task, TaskStatus, utc_now
from taskboard.task_state_machine import is_noop, transition_fields

from .api_client import TaskBoardClient

logger = logging.getLogger("board_controller")

FILTER_ALL = "all"
FILTER_MINE = "mine"

NOTICE_ERROR = "error"
NOTICE_INFO = "info"


@dataclass
class BoardNotice:
    """Message for the user."""
    level: str
    message: str
    task_id: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


def _wire_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


class BoardController:
    """Task board for one project as seen by one actor."""

    def __init__(
        self,
        client: TaskBoardClient,
        project_id: str,
        on_notice: Optional[Callable[[BoardNotice], None]] = None,
    ):
        self._client = client
        self.project_id = project_id
        self.on_notice = on_notice
        self.project: Optional[Project] = None
        self.actor: Optional[ActorContext] = None
        self.tasks: Dict[str, Task] = {}
        self.filter_key = FILTER_ALL
        self.notices: List[BoardNotice] = []
        self._in_flight: Set[str] = set()

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _notify(self, level: str, message: str, task_id: Optional[str] = None) -> None:
        notice = BoardNotice(level=level, message=message, task_id=task_id)
        self.notices.append(notice)
        if level == NOTICE_ERROR:
            logger.warning(f"Board notice for {task_id or self.project_id}: {message}")
        if self.on_notice:
            self.on_notice(notice)

    def _require_actor(self) -> ActorContext:
        if self.actor is None:
            raise RuntimeError("Board not loaded; call load() first")
        return self.actor

    def _drop_stale(self, task_id: str, error: NotFoundError) -> None:
        self.tasks.pop(task_id, None)
        self._notify(NOTICE_ERROR, f"This task no longer exists and was removed from the board ({error.message})", task_id)

    def is_pending(self, task_id: str) -> bool:
        return task_id in self._in_flight

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def load(self) -> None:
        """Fetch the roster and the authoritative task list."""
        try:
            project = await self._client.get_project(self.project_id)
            tasks = await self._client.list_tasks(self.project_id)
        except TaskBoardError as e:
            self._notify(NOTICE_ERROR, f"Could not load board: {e.message}")
            raise

        self.project = project
        self.actor = resolve_actor(project, self._client.identity)
        self.tasks = {t.task_id: t for t in tasks}
        self._in_flight.clear()
        logger.info(
            f"Loaded board {self.project_id}: {len(self.tasks)} tasks as {self.actor.role.value}"
        )

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def filter_by_assignee(self, filter_key: str) -> List[Task]:
        """Set the assignee filter: 'all', 'mine' or a member's user id."""
        self.filter_key = filter_key or FILTER_ALL
        return self.visible_tasks()

    def visible_tasks(self) -> List[Task]:
        tasks = list(self.tasks.values())
        if self.filter_key != FILTER_ALL:
            if self.filter_key == FILTER_MINE:
                wanted = self._require_actor().user_id
            else:
                wanted = self.filter_key
            tasks = [t for t in tasks if t.assigned_to == wanted]
        return sorted(tasks, key=lambda t: t.created_at, reverse=True)

    def columns(self) -> Dict[TaskStatus, List[Task]]:
        """The four board columns after the current filter."""
        columns: Dict[TaskStatus, List[Task]] = {status: [] for status in TaskStatus}
        for task in self.visible_tasks():
            columns[task.status].append(task)
        return columns

    # -------------------------------------------------------------------------
    # Drag and Drop
    # -------------------------------------------------------------------------

    def drag_targets(self, task_id: str) -> List[TaskStatus]:
        """Columns the card may be dropped on, in board order."""
        actor = self._require_actor()
        task = self.tasks.get(task_id)
        if task is None or self.is_pending(task_id):
            return []
        targets = allowed_targets(actor, task)
        return [status for status in TaskStatus if status in targets]

    def begin_drag(self, task_id: str) -> bool:
        """Whether a drag may start: the actor must have an outgoing move."""
        return bool(self.drag_targets(task_id))

    async def complete_drag(self, task_id: str, target: Union[TaskStatus, str]) -> bool:
        """
        Drop a card on a column.

        A drop on the same column, or one the actor may not make, is a silent
        no-op with no request sent. Returns True once the service accepted it.
        """
        return await self._change_status(task_id, TaskStatus(target), silent=True)

    async def verify_task(self, task_id: str) -> bool:
        """Owner's one-click verification of a completed task."""
        return await self._change_status(task_id, TaskStatus.VERIFIED, silent=False)

    async def _change_status(self, task_id: str, target: TaskStatus, silent: bool) -> bool:
        actor = self._require_actor()
        task = self.tasks.get(task_id)
        if task is None or self.is_pending(task_id):
            return False
        if is_noop(task.status, target):
            return False

        decision = can_change_status(actor, task, target)
        if not decision.allowed:
            logger.debug(f"Drop of {task_id} on {target.value} rejected locally: {decision.reason}")
            if not silent:
                self._notify(NOTICE_ERROR, decision.reason, task_id)
            return False

        # Verifier fields are stamped locally for display; the service stamps its own
        optimistic = dataclasses.replace(
            task, **transition_fields(task, target, verifier_name=actor.display_name)
        )
        return await self._send_update(task, optimistic, {"status": target.value})

    async def _send_update(self, original: Task, optimistic: Task, changes: Dict[str, Any]) -> bool:
        task_id = original.task_id
        snapshot = copy.deepcopy(original)
        self.tasks[task_id] = optimistic
        self._in_flight.add(task_id)
        try:
            persisted = await self._client.update_task(
                self.project_id, task_id, changes, expected_version=snapshot.version,
            )
        except NotFoundError as e:
            self._drop_stale(task_id, e)
            return False
        except ConflictError as e:
            self.tasks[task_id] = snapshot
            await self._refresh_task(task_id)
            self._notify(NOTICE_ERROR, f"Could not update task: {e.message}", task_id)
            return False
        except TaskBoardError as e:
            if task_id in self.tasks:
                self.tasks[task_id] = snapshot
            self._notify(NOTICE_ERROR, f"Could not update task: {e.message}", task_id)
            return False
        finally:
            self._in_flight.discard(task_id)

        self.tasks[task_id] = persisted
        return True

    async def _refresh_task(self, task_id: str) -> None:
        """Replace a card with the service's current copy after a version conflict."""
        try:
            current = await self._client.get_task(self.project_id, task_id)
        except NotFoundError:
            self.tasks.pop(task_id, None)
            return
        except TaskBoardError as e:
            logger.warning(f"Could not refresh task {task_id} after conflict: {e.message}")
            return
        self.tasks[task_id] = current

    # -------------------------------------------------------------------------
    # Forms
    # -------------------------------------------------------------------------

    @property
    def can_create(self) -> bool:
        return self.actor is not None and can_create_task(self.actor).allowed

    async def create_task(
        self,
        title: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[Union[date, str]] = None,
        assigned_to: Optional[str] = None,
    ) -> Task:
        """Create a task (owner only). Errors are raised for the form to show."""
        decision = can_create_task(self._require_actor())
        if not decision.allowed:
            raise AuthorizationError(decision.reason)

        try:
            task = await self._client.create_task(
                self.project_id,
                title=title,
                description=description,
                priority=_wire_value(priority),
                due_date=_wire_value(due_date),
                assigned_to=assigned_to,
            )
        except TaskBoardError as e:
            self._notify(NOTICE_ERROR, f"Could not create task: {e.message}")
            raise

        self.tasks[task.task_id] = task
        self._notify(NOTICE_INFO, f"Task '{task.title}' created", task.task_id)
        return task

    def edit_diff(self, task_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Only the fields whose value differs from the current task, in wire form."""
        task = self.tasks.get(task_id)
        if task is None:
            return {}
        current = task.to_dict()
        return {
            name: _wire_value(value)
            for name, value in fields.items()
            if current.get(name) != _wire_value(value)
        }

    async def edit_task(self, task_id: str, **fields: Any) -> Optional[Task]:
        """
        Submit an edit form.

        Sends the minimal diff with the task's version. Returns None when
        nothing changed.
        """
        actor = self._require_actor()
        task = self.tasks.get(task_id)
        if task is None:
            raise NotFoundError(f"Task '{task_id}' is not on this board")

        changes = self.edit_diff(task_id, fields)
        if not changes:
            return None

        decision = can_edit_task(actor, task, changes)
        if not decision.allowed:
            error_cls = TransitionError if decision.invalid_transition else AuthorizationError
            raise error_cls(decision.reason, details={"denied_fields": list(decision.denied_fields)})

        self._in_flight.add(task_id)
        try:
            persisted = await self._client.update_task(
                self.project_id, task_id, changes, expected_version=task.version,
            )
        except NotFoundError as e:
            self._drop_stale(task_id, e)
            raise
        except ConflictError as e:
            await self._refresh_task(task_id)
            self._notify(NOTICE_ERROR, f"Could not save task: {e.message}", task_id)
            raise
        except TaskBoardError as e:
            self._notify(NOTICE_ERROR, f"Could not save task: {e.message}", task_id)
            raise
        finally:
            self._in_flight.discard(task_id)

        self.tasks[task_id] = persisted
        return persisted

    async def delete_task(self, task_id: str, confirm: Callable[[Task], bool]) -> bool:
        """
        Delete a task (owner only) after the user confirmed.

        The card is removed only once the service confirmed the deletion.
        """
        actor = self._require_actor()
        task = self.tasks.get(task_id)
        if task is None:
            return False

        decision = can_delete_task(actor, task)
        if not decision.allowed:
            self._notify(NOTICE_ERROR, decision.reason, task_id)
            raise AuthorizationError(decision.reason)

        if not confirm(task):
            return False

        try:
            await self._client.delete_task(self.project_id, task_id)
        except NotFoundError as e:
            self._drop_stale(task_id, e)
            return False
        except TaskBoardError as e:
            self._notify(NOTICE_ERROR, f"Could not delete task: {e.message}", task_id)
            raise

        self.tasks.pop(task_id, None)
        self._notify(NOTICE_INFO, f"Task '{task.title}' deleted", task_id)
        return True
