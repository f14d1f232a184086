"""
Task Board Domain Model

Enums and dataclasses for projects, rosters and tasks.

A Project is a single document: its roster (owner, authorized personnel,
team members), its recruitable roles and its embedded task collection all
live inside it. Tasks reference their assignee by stable user id; email and
name are denormalized display copies filled from the roster.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any, List, Tuple


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value)


# -----------------------------------------------------------------------------
# Enums
# -----------------------------------------------------------------------------
class TaskStatus(str, Enum):
    """Board columns. Exactly one is active per task."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    VERIFIED = "verified"


class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Sort rank, high first."""
        return {TaskPriority.HIGH: 0, TaskPriority.MEDIUM: 1, TaskPriority.LOW: 2}[self]


class ActorRole(str, Enum):
    """
    Role of the acting user within one project.

    Computed once per request from the persisted project document.
    """
    OWNER = "owner"
    AUTHORIZED = "authorized"
    TEAM_MEMBER = "team_member"
    STRANGER = "stranger"


# -----------------------------------------------------------------------------
# Identity
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class ActorIdentity:
    """Authenticated identity as supplied by the session provider."""
    user_id: str
    email: str
    name: str = ""

    @property
    def display_name(self) -> str:
        return self.name or self.email


# -----------------------------------------------------------------------------
# Roster
# -----------------------------------------------------------------------------
@dataclass
class AuthorizedPerson:
    """User granted visibility without filling a role."""
    user_id: str
    user_email: str
    user_name: str
    added_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["added_at"] = self.added_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthorizedPerson":
        return cls(
            user_id=data["user_id"],
            user_email=data["user_email"],
            user_name=data.get("user_name", ""),
            added_at=_parse_datetime(data.get("added_at")) or utc_now(),
        )


@dataclass
class TeamMember:
    """User whose application to a role was accepted."""
    user_id: str
    user_email: str
    user_name: str
    role_id: str
    joined_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["joined_at"] = self.joined_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TeamMember":
        return cls(
            user_id=data["user_id"],
            user_email=data["user_email"],
            user_name=data.get("user_name", ""),
            role_id=data["role_id"],
            joined_at=_parse_datetime(data.get("joined_at")) or utc_now(),
        )


@dataclass
class ProjectRole:
    """A recruitable role. filled never exceeds needed."""
    role_id: str
    role_name: str
    needed: int
    filled: int = 0
    mandatory_skills: List[str] = field(default_factory=list)

    def __post_init__(self):
        if self.needed < 0:
            raise ValueError(f"needed cannot be negative: {self.needed}")
        if self.filled < 0 or self.filled > self.needed:
            raise ValueError(f"filled must be within 0..{self.needed}: {self.filled}")

    @property
    def is_full(self) -> bool:
        return self.filled >= self.needed

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectRole":
        return cls(
            role_id=data["role_id"],
            role_name=data["role_name"],
            needed=data["needed"],
            filled=data.get("filled", 0),
            mandatory_skills=list(data.get("mandatory_skills", [])),
        )


# -----------------------------------------------------------------------------
# Task
# -----------------------------------------------------------------------------
@dataclass
class Task:
    """
    A card on the project board.

    version is incremented on every successful mutation and is used to
    reject stale writes.
    """
    task_id: str
    title: str
    created_by: str
    description: str = ""
    assigned_to: Optional[str] = None
    assigned_to_email: Optional[str] = None
    assigned_to_name: Optional[str] = None
    priority: TaskPriority = TaskPriority.MEDIUM
    status: TaskStatus = TaskStatus.PENDING
    due_date: Optional[date] = None
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "assigned_to_email": self.assigned_to_email,
            "assigned_to_name": self.assigned_to_name,
            "priority": self.priority.value,
            "status": self.status.value,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "verified_by": self.verified_by,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            task_id=data["task_id"],
            title=data["title"],
            created_by=data["created_by"],
            description=data.get("description") or "",
            assigned_to=data.get("assigned_to"),
            assigned_to_email=data.get("assigned_to_email"),
            assigned_to_name=data.get("assigned_to_name"),
            priority=TaskPriority(data.get("priority") or TaskPriority.MEDIUM.value),
            status=TaskStatus(data.get("status") or TaskStatus.PENDING.value),
            due_date=_parse_date(data.get("due_date")),
            verified_by=data.get("verified_by"),
            verified_at=_parse_datetime(data.get("verified_at")),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=_parse_datetime(data.get("updated_at")) or utc_now(),
            version=data.get("version", 1),
        )


# -----------------------------------------------------------------------------
# Project
# -----------------------------------------------------------------------------
@dataclass
class Project:
    """
    The single shared document for one project.

    owner_id is set at creation and never changes.
    """
    project_id: str
    title: str
    owner_id: str
    owner_email: str
    owner_name: str
    description: str = ""
    roles: List[ProjectRole] = field(default_factory=list)
    members: List[TeamMember] = field(default_factory=list)
    authorized_personnel: List[AuthorizedPerson] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    is_open: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find_task(self, task_id: str) -> Optional[Task]:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None

    def find_role(self, role_id: str) -> Optional[ProjectRole]:
        for role in self.roles:
            if role.role_id == role_id:
                return role
        return None

    def find_member(self, user_id: str) -> Optional[TeamMember]:
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def find_authorized(self, user_id: str) -> Optional[AuthorizedPerson]:
        for person in self.authorized_personnel:
            if person.user_id == user_id:
                return person
        return None

    def roster_entry(self, user_id: str) -> Optional[Tuple[str, str]]:
        """
        Return (email, name) for any project participant, or None.

        Participants are the owner, authorized personnel and team members.
        """
        if user_id == self.owner_id:
            return self.owner_email, self.owner_name
        person = self.find_authorized(user_id)
        if person:
            return person.user_email, person.user_name
        member = self.find_member(user_id)
        if member:
            return member.user_email, member.user_name
        return None

    def all_roles_filled(self) -> bool:
        return bool(self.roles) and all(role.is_full for role in self.roles)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self, include_tasks: bool = True) -> Dict[str, Any]:
        data = {
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "owner_id": self.owner_id,
            "owner_email": self.owner_email,
            "owner_name": self.owner_name,
            "roles": [r.to_dict() for r in self.roles],
            "members": [m.to_dict() for m in self.members],
            "authorized_personnel": [p.to_dict() for p in self.authorized_personnel],
            "is_open": self.is_open,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_tasks:
            data["tasks"] = [t.to_dict() for t in self.tasks]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            project_id=data["project_id"],
            title=data["title"],
            owner_id=data["owner_id"],
            owner_email=data["owner_email"],
            owner_name=data.get("owner_name", ""),
            description=data.get("description", ""),
            roles=[ProjectRole.from_dict(r) for r in data.get("roles", [])],
            members=[TeamMember.from_dict(m) for m in data.get("members", [])],
            authorized_personnel=[
                AuthorizedPerson.from_dict(p) for p in data.get("authorized_personnel", [])
            ],
            tasks=[Task.from_dict(t) for t in data.get("tasks", [])],
            is_open=data.get("is_open", True),
            created_at=_parse_datetime(data.get("created_at")) or utc_now(),
            updated_at=_parse_datetime(data.get("updated_at")) or utc_now(),
        )
