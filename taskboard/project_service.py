"""
Project Service

Project creation and roster management:
1. Create a project; the creator becomes its immutable owner
2. Grant and revoke authorized personnel (owner only)
3. Accept applications into roles under the fill-capacity invariant
4. Delete a project together with its embedded tasks (owner only)

Fill-capacity invariant: a role's filled count never exceeds needed. The
check and the increment happen inside one atomic document update, so two
concurrent acceptances cannot both take the last seat.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from .audit_log import AuditEvent, TaskAuditLog
from .errors import (
    AuthenticationError,
    AuthorizationError,
    NotFoundError,
    ProjectNotFoundError,
    ValidationError,
)
from .permission_evaluator import ActorContext, resolve_actor
from .project_store import ProjectStore
from .task_model import ActorIdentity, AuthorizedPerson, Project, ProjectRole, TeamMember

logger = logging.getLogger("project_service")


class ProjectService:
    """Project documents and their rosters."""

    def __init__(self, store: ProjectStore, audit: Optional[TaskAuditLog] = None):
        self._store = store
        self._audit = audit or TaskAuditLog(None)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _require_identity(identity: Optional[ActorIdentity]) -> ActorIdentity:
        if identity is None or not identity.user_id:
            raise AuthenticationError("Authentication required")
        return identity

    def _owner_context(self, project_id: str, identity: Optional[ActorIdentity], operation: str) -> ActorContext:
        identity = self._require_identity(identity)
        project = self._store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        actor = resolve_actor(project, identity)
        if not actor.is_owner:
            logger.warning(
                f"POLICY CHECK: {operation} | project={project_id} | actor={identity.user_id} "
                f"({actor.role.value}) | DENIED"
            )
            raise AuthorizationError("Only the project owner can manage this project")
        logger.info(f"POLICY CHECK: {operation} | project={project_id} | actor={identity.user_id} (owner) | ALLOWED")
        return actor

    @staticmethod
    def _build_roles(roles: Optional[List[Dict[str, Any]]]) -> List[ProjectRole]:
        built = []
        for role_data in roles or []:
            name = (role_data.get("role_name") or "").strip()
            if not name:
                raise ValidationError("Role name is required", details={"field": "roles"})
            needed = role_data.get("needed", 1)
            if not isinstance(needed, int) or needed < 1:
                raise ValidationError(f"Role '{name}' must need at least one person", details={"field": "roles"})
            built.append(ProjectRole(
                role_id=uuid.uuid4().hex,
                role_name=name,
                needed=needed,
                mandatory_skills=list(role_data.get("mandatory_skills") or []),
            ))
        return built

    # -------------------------------------------------------------------------
    # Project Documents
    # -------------------------------------------------------------------------

    def create_project(
        self,
        identity: Optional[ActorIdentity],
        title: Optional[str],
        description: Optional[str] = None,
        roles: Optional[List[Dict[str, Any]]] = None,
    ) -> Project:
        identity = self._require_identity(identity)
        title = (title or "").strip()
        if not title:
            raise ValidationError("Project title is required", details={"field": "title"})

        project = Project(
            project_id=uuid.uuid4().hex,
            title=title,
            description=description or "",
            owner_id=identity.user_id,
            owner_email=identity.email,
            owner_name=identity.display_name,
            roles=self._build_roles(roles),
        )
        created = self._store.insert_project(project)
        logger.info(f"Created project {created.project_id} '{created.title}' (owner={identity.user_id})")
        return created

    def get_project(self, project_id: str, identity: Optional[ActorIdentity]) -> Project:
        """Project document for any participant."""
        identity = self._require_identity(identity)
        project = self._store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        if not resolve_actor(project, identity).is_participant:
            raise AuthorizationError("Not a participant of this project")
        return project

    def delete_project(self, project_id: str, identity: Optional[ActorIdentity]) -> None:
        """Delete a project and, with it, every task it holds."""
        actor = self._owner_context(project_id, identity, "delete_project")
        if not self._store.delete_project(project_id):
            raise ProjectNotFoundError(project_id)
        self._audit.record(AuditEvent.PROJECT_DELETED, project_id, actor.user_id, actor.role.value)

    # -------------------------------------------------------------------------
    # Authorized Personnel
    # -------------------------------------------------------------------------

    def add_authorized_person(
        self,
        project_id: str,
        identity: Optional[ActorIdentity],
        user_id: str,
        user_email: str,
        user_name: Optional[str] = None,
    ) -> AuthorizedPerson:
        actor = self._owner_context(project_id, identity, "add_authorized_person")
        if not user_id or not user_email:
            raise ValidationError("user_id and user_email are required")

        person = AuthorizedPerson(
            user_id=user_id,
            user_email=user_email,
            user_name=user_name or user_email.split("@")[0],
        )

        def mutate(project: Project) -> None:
            if user_id == project.owner_id:
                raise ValidationError("The owner already has full access")
            if project.find_authorized(user_id):
                raise ValidationError("This user is already authorized")
            project.authorized_personnel.append(person)

        self._store.update_project(project_id, mutate)
        self._audit.record(
            AuditEvent.ROSTER_CHANGED, project_id, actor.user_id, actor.role.value,
            reason="authorized_added", metadata={"user_id": user_id},
        )
        logger.info(f"Authorized {user_id} on project {project_id}")
        return person

    def remove_authorized_person(self, project_id: str, identity: Optional[ActorIdentity], user_id: str) -> None:
        """
        Revoke authorized access.

        Existing task assignments are left untouched; assignment validity is
        only checked when an assignment is made.
        """
        actor = self._owner_context(project_id, identity, "remove_authorized_person")

        def mutate(project: Project) -> None:
            if not project.find_authorized(user_id):
                raise NotFoundError(f"User '{user_id}' is not authorized on this project")
            project.authorized_personnel = [p for p in project.authorized_personnel if p.user_id != user_id]

        self._store.update_project(project_id, mutate)
        self._audit.record(
            AuditEvent.ROSTER_CHANGED, project_id, actor.user_id, actor.role.value,
            reason="authorized_removed", metadata={"user_id": user_id},
        )
        logger.info(f"Revoked authorization of {user_id} on project {project_id}")

    # -------------------------------------------------------------------------
    # Team Members
    # -------------------------------------------------------------------------

    def accept_member(
        self,
        project_id: str,
        identity: Optional[ActorIdentity],
        user_id: str,
        user_email: str,
        role_id: str,
        user_name: Optional[str] = None,
    ) -> TeamMember:
        """
        Accept an application into a role.

        Increments the role's filled count by exactly one and closes the
        project for recruiting once every role is full.
        """
        actor = self._owner_context(project_id, identity, "accept_member")
        if not user_id or not user_email:
            raise ValidationError("user_id and user_email are required")

        member = TeamMember(
            user_id=user_id,
            user_email=user_email,
            user_name=user_name or user_email.split("@")[0],
            role_id=role_id,
        )

        def mutate(project: Project) -> None:
            role = project.find_role(role_id)
            if role is None:
                raise NotFoundError(f"Role '{role_id}' not found", details={"role_id": role_id})
            if role.is_full:
                raise ValidationError("All seats for this role are already filled", details={"role_id": role_id})
            if user_id == project.owner_id or project.find_member(user_id):
                raise ValidationError("User is already part of this project team")
            if project.find_authorized(user_id):
                raise ValidationError("User already has authorized access to this project")
            role.filled += 1
            project.members.append(member)
            if project.all_roles_filled():
                project.is_open = False
                logger.info(f"Project {project_id} closed for recruiting: all roles filled")

        self._store.update_project(project_id, mutate)
        self._audit.record(
            AuditEvent.ROSTER_CHANGED, project_id, actor.user_id, actor.role.value,
            reason="member_accepted", metadata={"user_id": user_id, "role_id": role_id},
        )
        logger.info(f"Accepted {user_id} into role {role_id} on project {project_id}")
        return member
