"""
Task Board API Client

Async HTTP client for the task board service.

- Sends the acting identity as X-User-Id / X-User-Email / X-User-Name headers
- Rebuilds structured errors from error responses (see taskboard.errors)
- Never retries: a timeout, dropped connection or unreadable reply surfaces
  as TransientIOError and the user decides whether to try again
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from taskboard.config import load_settings
from taskboard.errors import TransientIOError, error_from_response
from taskboard.task_model import ActorIdentity, Project, Task

logger = logging.getLogger("board_client")


class TaskBoardClient:
    """HTTP client for the task board API, bound to one identity."""

    def __init__(
        self,
        identity: ActorIdentity,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if base_url is None or timeout is None:
            settings = load_settings()
            base_url = base_url or settings.service_url
            timeout = timeout or settings.http_timeout
        self.identity = identity
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "X-User-Id": self.identity.user_id,
            "X-User-Email": self.identity.email,
        }
        if self.identity.name:
            headers["X-User-Name"] = self.identity.name
        return headers

    async def _request(
        self,
        method: str,
        endpoint: str,
        data: Optional[Dict] = None,
        params: Optional[Dict] = None,
    ) -> Dict[str, Any]:
        """
        Make one HTTP request to the service.

        Raises the matching TaskBoardError subclass for any error response.
        """
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method.upper(), url, json=data, params=params, headers=self._headers(),
                )
                response.raise_for_status()
                try:
                    return response.json()
                except ValueError as e:
                    logger.error(f"Unreadable response body on {method} {url}: {e}")
                    raise TransientIOError("Task board service sent an unreadable reply", details={"url": url})

        except httpx.TimeoutException as e:
            logger.warning(f"Timeout on {method} {url}: {e}")
            raise TransientIOError("Task board service timed out", details={"url": url})

        except httpx.ConnectError as e:
            logger.warning(f"Connection error on {method} {url}: {e}")
            raise TransientIOError("Task board service unreachable", details={"url": url})

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error from task board: {e.response.status_code} on {method} {url}")
            try:
                body = e.response.json()
            except ValueError:
                body = {"message": e.response.text}
            if not isinstance(body, dict):
                body = {"message": str(body)}
            raise error_from_response(e.response.status_code, body)

        except httpx.HTTPError as e:
            logger.error(f"Transport error on {method} {url}: {e!r}")
            raise TransientIOError("Task board service connection failed", details={"url": url})

    # -------------------------------------------------------------------------
    # Projects
    # -------------------------------------------------------------------------

    async def get_project(self, project_id: str) -> Project:
        result = await self._request("GET", f"/projects/{project_id}")
        return Project.from_dict(result["project"])

    # -------------------------------------------------------------------------
    # Tasks
    # -------------------------------------------------------------------------

    async def list_tasks(self, project_id: str, assignee: Optional[str] = None) -> List[Task]:
        params = {"assignee": assignee} if assignee else None
        result = await self._request("GET", f"/projects/{project_id}/tasks", params=params)
        return [Task.from_dict(t) for t in result.get("tasks", [])]

    async def get_task(self, project_id: str, task_id: str) -> Task:
        result = await self._request("GET", f"/projects/{project_id}/tasks/{task_id}")
        return Task.from_dict(result["task"])

    async def my_tasks(self) -> List[Dict[str, Any]]:
        result = await self._request("GET", "/tasks/mine")
        return result.get("tasks", [])

    async def create_task(
        self,
        project_id: str,
        title: str,
        description: Optional[str] = None,
        priority: Optional[str] = None,
        due_date: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> Task:
        data: Dict[str, Any] = {"title": title}
        if description is not None:
            data["description"] = description
        if priority is not None:
            data["priority"] = priority
        if due_date is not None:
            data["due_date"] = due_date
        if assigned_to is not None:
            data["assigned_to"] = assigned_to
        result = await self._request("POST", f"/projects/{project_id}/tasks", data=data)
        return Task.from_dict(result["task"])

    async def update_task(
        self,
        project_id: str,
        task_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Task:
        """Send only the changed fields. Returns the task as persisted."""
        data: Dict[str, Any] = {"task_id": task_id, **changes}
        if expected_version is not None:
            data["expected_version"] = expected_version
        result = await self._request("PATCH", f"/projects/{project_id}/tasks", data=data)
        return Task.from_dict(result["task"])

    async def delete_task(self, project_id: str, task_id: str) -> str:
        result = await self._request("DELETE", f"/projects/{project_id}/tasks", params={"task_id": task_id})
        return result["task_id"]
