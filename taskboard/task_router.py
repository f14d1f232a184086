"""
API Router for the Task Board

This module provides FastAPI routes for:
- Task create / read / update / delete within a project
- Per-project task summary and the cross-project "my tasks" view
- Project creation, deletion and roster management

The acting identity is supplied by the trusted session gateway as
X-User-Id / X-User-Email / X-User-Name headers. It is read once per request
and passed explicitly into the services; no role is ever taken from the client.
"""

import logging
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Query
from pydantic import BaseModel, ConfigDict, Field

from .audit_log import TaskAuditLog
from .config import load_settings
from .errors import AuthenticationError
from .project_service import ProjectService
from .project_store import ProjectStore
from .task_model import ActorIdentity, TaskPriority, TaskStatus
from .task_service import TaskService

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logger = logging.getLogger("task_router")

# -----------------------------------------------------------------------------
# Router Setup
# -----------------------------------------------------------------------------
router = APIRouter(tags=["Task Board"])

# -----------------------------------------------------------------------------
# Service Wiring
# -----------------------------------------------------------------------------
_task_service: Optional[TaskService] = None
_project_service: Optional[ProjectService] = None


def configure_services(store: ProjectStore, audit: Optional[TaskAuditLog] = None) -> None:
    """Bind the router to a store (used at startup and by tests)."""
    global _task_service, _project_service
    _task_service = TaskService(store, audit)
    _project_service = ProjectService(store, audit)


def _configure_from_settings() -> None:
    settings = load_settings()
    data_dir: Optional[Path] = settings.data_dir if settings.persist else None
    configure_services(ProjectStore(data_dir), TaskAuditLog(settings.audit_log))
    logger.info(f"Task board services configured (persist={settings.persist}, data_dir={settings.data_dir})")


def get_task_service() -> TaskService:
    if _task_service is None:
        _configure_from_settings()
    return _task_service


def get_project_service() -> ProjectService:
    if _project_service is None:
        _configure_from_settings()
    return _project_service


def get_actor_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_email: Optional[str] = Header(None, alias="X-User-Email"),
    x_user_name: Optional[str] = Header(None, alias="X-User-Name"),
) -> ActorIdentity:
    """Build the request's identity from the session gateway headers."""
    if not x_user_id or not x_user_email:
        raise AuthenticationError("Authentication required")
    return ActorIdentity(user_id=x_user_id, email=x_user_email, name=x_user_name or "")


# -----------------------------------------------------------------------------
# Request Models
# -----------------------------------------------------------------------------
class TaskCreateRequest(BaseModel):
    """Body for creating a task. Status and audit fields are server-assigned."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None


class TaskUpdateRequest(BaseModel):
    """
    Body for updating a task.

    Only the fields present in the body are changed. Verification fields
    cannot be supplied; they are stamped by the server.
    """
    model_config = ConfigDict(extra="forbid")

    task_id: str
    expected_version: Optional[int] = None
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[TaskPriority] = None
    due_date: Optional[date] = None
    assigned_to: Optional[str] = None
    status: Optional[TaskStatus] = None

    def changes(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_unset=True, exclude={"task_id", "expected_version"})
        # These fields are not nullable; an explicit null means "unchanged"
        for name in ("title", "priority", "status"):
            if name in data and data[name] is None:
                del data[name]
        return data


class RoleSpec(BaseModel):
    role_name: str
    needed: int = Field(default=1, ge=1)
    mandatory_skills: List[str] = Field(default_factory=list)


class ProjectCreateRequest(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    roles: List[RoleSpec] = Field(default_factory=list)


class AuthorizePersonRequest(BaseModel):
    user_id: str
    user_email: str
    user_name: Optional[str] = None


class AcceptMemberRequest(BaseModel):
    user_id: str
    user_email: str
    role_id: str
    user_name: Optional[str] = None


# -----------------------------------------------------------------------------
# Task Endpoints
# -----------------------------------------------------------------------------
@router.get("/projects/{project_id}/tasks")
async def list_tasks(
    project_id: str,
    assignee: Optional[str] = Query(None),
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    """List a project's tasks, newest first. assignee may be 'mine' or a user id."""
    tasks = service.list_tasks(project_id, identity, assignee=assignee)
    return {"project_id": project_id, "tasks": [t.to_dict() for t in tasks]}


@router.get("/projects/{project_id}/tasks/summary")
async def task_summary(
    project_id: str,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    return service.summarize(project_id, identity)


@router.get("/projects/{project_id}/tasks/{task_id}")
async def get_task(
    project_id: str,
    task_id: str,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    return {"task": service.get_task(project_id, task_id, identity).to_dict()}


@router.post("/projects/{project_id}/tasks", status_code=201)
async def create_task(
    project_id: str,
    request: TaskCreateRequest,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    """
    Create a task (owner only).

    - status starts as pending
    - created_by and timestamps are server-assigned
    """
    task = service.create_task(
        project_id,
        identity,
        title=request.title,
        description=request.description,
        priority=request.priority.value if request.priority else None,
        due_date=request.due_date,
        assigned_to=request.assigned_to,
    )
    return {"message": "Task added successfully", "task": task.to_dict()}


@router.patch("/projects/{project_id}/tasks")
async def update_task(
    project_id: str,
    request: TaskUpdateRequest,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    """Apply a field diff to one task. All requested fields are allowed or none are applied."""
    task = service.update_task(
        project_id,
        identity,
        request.task_id,
        request.changes(),
        expected_version=request.expected_version,
    )
    return {"message": "Task updated successfully", "task": task.to_dict()}


@router.delete("/projects/{project_id}/tasks")
async def delete_task(
    project_id: str,
    task_id: Optional[str] = Query(None),
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    removed = service.delete_task(project_id, identity, task_id or "")
    return {"message": "Task deleted successfully", "task_id": removed.task_id}


@router.get("/tasks/mine")
async def my_tasks(
    identity: ActorIdentity = Depends(get_actor_identity),
    service: TaskService = Depends(get_task_service),
):
    """Tasks assigned to the caller across every project."""
    return {"tasks": service.tasks_for_actor(identity)}


# -----------------------------------------------------------------------------
# Project Endpoints
# -----------------------------------------------------------------------------
@router.post("/projects", status_code=201)
async def create_project(
    request: ProjectCreateRequest,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: ProjectService = Depends(get_project_service),
):
    project = service.create_project(
        identity,
        title=request.title,
        description=request.description,
        roles=[r.model_dump() for r in request.roles],
    )
    return {"message": "Project created successfully", "project": project.to_dict(include_tasks=False)}


@router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: ProjectService = Depends(get_project_service),
):
    project = service.get_project(project_id, identity)
    return {"project": project.to_dict(include_tasks=False)}


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: ProjectService = Depends(get_project_service),
):
    """Delete a project and its tasks (owner only)."""
    service.delete_project(project_id, identity)
    return {"message": "Project deleted successfully", "project_id": project_id}


@router.post("/projects/{project_id}/authorized", status_code=201)
async def add_authorized_person(
    project_id: str,
    request: AuthorizePersonRequest,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: ProjectService = Depends(get_project_service),
):
    person = service.add_authorized_person(
        project_id, identity, request.user_id, request.user_email, request.user_name,
    )
    return {"message": "User authorized successfully", "authorized_user": person.to_dict()}


@router.delete("/projects/{project_id}/authorized")
async def remove_authorized_person(
    project_id: str,
    user_id: str = Query(...),
    identity: ActorIdentity = Depends(get_actor_identity),
    service: ProjectService = Depends(get_project_service),
):
    service.remove_authorized_person(project_id, identity, user_id)
    return {"message": "Authorization removed", "user_id": user_id}


@router.post("/projects/{project_id}/members", status_code=201)
async def accept_member(
    project_id: str,
    request: AcceptMemberRequest,
    identity: ActorIdentity = Depends(get_actor_identity),
    service: ProjectService = Depends(get_project_service),
):
    """Accept an application into a role (owner only)."""
    member = service.accept_member(
        project_id, identity, request.user_id, request.user_email, request.role_id, request.user_name,
    )
    return {"message": "Member accepted", "member": member.to_dict()}
