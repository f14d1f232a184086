"""
Task Audit Trail

Append-only JSONL log of every task mutation attempt, accepted or rejected.

- APPEND-ONLY: entries are never modified or deleted
- NON-BLOCKING: a failed audit write is logged and never fails the request
"""

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .task_model import utc_now

logger = logging.getLogger("task_audit")


class AuditEvent:
    TASK_CREATED = "task_created"
    TASK_CREATE_REJECTED = "task_create_rejected"
    TASK_UPDATED = "task_updated"
    TASK_UPDATE_REJECTED = "task_update_rejected"
    TASK_DELETED = "task_deleted"
    TASK_DELETE_REJECTED = "task_delete_rejected"
    ROSTER_CHANGED = "roster_changed"
    PROJECT_DELETED = "project_deleted"


class TaskAuditLog:
    """Writer for the task audit trail. path=None disables writing."""

    def __init__(self, path: Optional[Path] = None):
        self._path = path
        self._lock = threading.Lock()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def record(
        self,
        event: str,
        project_id: str,
        actor_id: Optional[str],
        actor_role: Optional[str] = None,
        task_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        reason: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Append one entry."""
        if self._path is None:
            return

        entry = {
            "timestamp": utc_now().isoformat(),
            "event": event,
            "project_id": project_id,
            "task_id": task_id,
            "actor_id": actor_id,
            "actor_role": actor_role,
            "from_status": from_status,
            "to_status": to_status,
            "reason": reason,
            "metadata": metadata or {},
        }

        try:
            with self._lock:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with open(self._path, "a") as f:
                    f.write(json.dumps(entry, default=str) + "\n")
        except OSError as e:
            logger.warning(f"Failed to write audit log: {e}")

    def read_entries(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Return entries oldest first (the last `limit` when given)."""
        if self._path is None or not self._path.exists():
            return []
        with open(self._path) as f:
            entries = [json.loads(line) for line in f if line.strip()]
        return entries[-limit:] if limit else entries
