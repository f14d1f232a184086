"""
Project Store

Document store for Project records with the nested tasks array.

Provides:
1. Point lookup of a project by id
2. Atomic push / pull / set on the tasks array, keyed by task id
3. Atomic single-document updates for roster changes
4. Optional JSON persistence with crash-safe writes

HARD CONSTRAINTS:
- Every mutation is applied to a copy and only becomes visible after it was
  persisted; a failed write leaves the previous state untouched
- Readers always receive copies, never the stored objects
- No multi-document transactions
"""

import copy
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .errors import ConflictError, ProjectNotFoundError, TaskNotFoundError, TransientIOError, ValidationError
from .task_model import Project, Task, utc_now

logger = logging.getLogger("project_store")

STORE_VERSION = "1.0"
STORE_FILENAME = "projects.json"


class ProjectStore:
    """
    Thread-safe store for project documents.

    When data_dir is None the store is memory-only.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self._lock = threading.Lock()
        self._projects: Dict[str, Project] = {}
        self._store_file: Optional[Path] = data_dir / STORE_FILENAME if data_dir else None
        self._load()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        """Load projects from persistent storage."""
        if self._store_file is None:
            return
        if not self._store_file.exists():
            logger.info("No existing store file, starting fresh")
            return

        with open(self._store_file) as f:
            data = json.load(f)

        for project_id, proj_data in data.get("projects", {}).items():
            try:
                self._projects[project_id] = Project.from_dict(proj_data)
            except (KeyError, ValueError) as e:
                logger.warning(f"Failed to load project {project_id}: {e}")

        logger.info(f"Loaded {len(self._projects)} projects from {self._store_file}")

    def _persist(self, projects: Dict[str, Project]) -> None:
        """Write the given snapshot to disk. Caller holds the lock."""
        if self._store_file is None:
            return
        try:
            self._store_file.parent.mkdir(parents=True, exist_ok=True)
            data = {
                "version": STORE_VERSION,
                "updated_at": utc_now().isoformat(),
                "projects": {pid: proj.to_dict() for pid, proj in projects.items()},
            }

            # Atomic write
            temp_file = self._store_file.with_suffix(".tmp")
            with open(temp_file, "w") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(self._store_file)
        except OSError as e:
            logger.error(f"Failed to save project store: {e}")
            raise TransientIOError("Project store unavailable", details={"error": str(e)})

    def _commit(self, project: Project) -> None:
        """Persist and publish a new version of one project. Caller holds the lock."""
        snapshot = dict(self._projects)
        snapshot[project.project_id] = project
        self._persist(snapshot)
        self._projects = snapshot

    def _require(self, project_id: str) -> Project:
        project = self._projects.get(project_id)
        if project is None:
            raise ProjectNotFoundError(project_id)
        return project

    # -------------------------------------------------------------------------
    # Project Documents
    # -------------------------------------------------------------------------

    def insert_project(self, project: Project) -> Project:
        with self._lock:
            if project.project_id in self._projects:
                raise ValidationError(f"Project '{project.project_id}' already exists")
            self._commit(copy.deepcopy(project))
        logger.info(f"Inserted project {project.project_id} (owner={project.owner_id})")
        return copy.deepcopy(project)

    def get_project(self, project_id: str) -> Optional[Project]:
        with self._lock:
            project = self._projects.get(project_id)
            return copy.deepcopy(project) if project else None

    def list_projects(self) -> List[Project]:
        with self._lock:
            return [copy.deepcopy(p) for p in self._projects.values()]

    def delete_project(self, project_id: str) -> bool:
        """Remove a project together with its embedded tasks."""
        with self._lock:
            if project_id not in self._projects:
                return False
            snapshot = dict(self._projects)
            del snapshot[project_id]
            self._persist(snapshot)
            self._projects = snapshot
        logger.info(f"Deleted project {project_id}")
        return True

    def update_project(self, project_id: str, mutate: Callable[[Project], Any]) -> Project:
        """
        Atomically apply mutate() to one project document.

        mutate receives a private copy; raising from it aborts the update and
        nothing is written.
        """
        with self._lock:
            working = copy.deepcopy(self._require(project_id))
            mutate(working)
            working.updated_at = utc_now()
            self._commit(working)
            return copy.deepcopy(working)

    # -------------------------------------------------------------------------
    # Nested Task Array
    # -------------------------------------------------------------------------

    def push_task(self, project_id: str, task: Task) -> Task:
        with self._lock:
            working = copy.deepcopy(self._require(project_id))
            if working.find_task(task.task_id):
                raise ValidationError(f"Task '{task.task_id}' already exists")
            working.tasks.append(copy.deepcopy(task))
            working.updated_at = utc_now()
            self._commit(working)
        return copy.deepcopy(task)

    def pull_task(self, project_id: str, task_id: str) -> Task:
        """Remove exactly one task. Returns the removed task."""
        with self._lock:
            working = copy.deepcopy(self._require(project_id))
            removed = working.find_task(task_id)
            if removed is None:
                raise TaskNotFoundError(project_id, task_id)
            working.tasks = [t for t in working.tasks if t.task_id != task_id]
            working.updated_at = utc_now()
            self._commit(working)
        return removed

    def set_task_fields(
        self,
        project_id: str,
        task_id: str,
        fields: Dict[str, Any],
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Set exactly the given fields on one task in a single atomic write.

        Refreshes updated_at and, unless fields is empty, increments version.
        When expected_version is given and does not match the stored version
        nothing is written.
        """
        with self._lock:
            working = copy.deepcopy(self._require(project_id))
            task = working.find_task(task_id)
            if task is None:
                raise TaskNotFoundError(project_id, task_id)

            if expected_version is not None and task.version != expected_version:
                raise ConflictError(
                    f"Task '{task_id}' was modified by someone else",
                    details={"expected_version": expected_version, "current_version": task.version},
                )

            for name, value in fields.items():
                if not hasattr(task, name):
                    raise ValidationError(f"Unknown task field: {name}")
                setattr(task, name, value)
            task.updated_at = now or utc_now()
            if fields:
                task.version += 1
            working.updated_at = task.updated_at

            self._commit(working)
            return copy.deepcopy(task)
