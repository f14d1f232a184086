"""
Tests for the Task Board API Client

Runs the client against httpx.MockTransport:
- identity headers and request shapes
- error responses rebuilt as typed errors
- network failures surfaced as TransientIOError without retries
"""

import json

import httpx
import pytest

from board_client.api_client import TaskBoardClient
from taskboard.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    TaskBoardError,
    TransientIOError,
    TransitionError,
    ValidationError,
)
from taskboard.task_model import Task, TaskStatus
from tests.conftest import MEMBER, async_test

BASE_URL = "http://taskboard.test"


def task_payload(**overrides):
    task = Task(task_id="t-1", title="Fix toaster", created_by="u-owner", assigned_to=MEMBER.user_id).to_dict()
    task.update(overrides)
    return task


def make_client(handler):
    return TaskBoardClient(MEMBER, base_url=BASE_URL, timeout=5.0, transport=httpx.MockTransport(handler))


class TestRequests:

    @async_test
    async def test_identity_headers_and_diff_body(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"task": task_payload(status="completed", version=2)})

        task = await make_client(handler).update_task("p-1", "t-1", {"status": "completed"}, expected_version=1)

        assert seen["method"] == "PATCH"
        assert seen["path"] == "/projects/p-1/tasks"
        assert seen["headers"]["X-User-Id"] == MEMBER.user_id
        assert seen["headers"]["X-User-Email"] == MEMBER.email
        assert seen["body"] == {"task_id": "t-1", "status": "completed", "expected_version": 1}
        assert task.status == TaskStatus.COMPLETED
        assert task.version == 2

    @async_test
    async def test_list_tasks_with_filter(self):
        def handler(request):
            assert request.url.params["assignee"] == "mine"
            return httpx.Response(200, json={"tasks": [task_payload(), task_payload(task_id="t-2")]})

        tasks = await make_client(handler).list_tasks("p-1", assignee="mine")
        assert [t.task_id for t in tasks] == ["t-1", "t-2"]

    @async_test
    async def test_delete_uses_query(self):
        def handler(request):
            assert request.method == "DELETE"
            assert request.url.params["task_id"] == "t-1"
            return httpx.Response(200, json={"message": "Task deleted successfully", "task_id": "t-1"})

        assert await make_client(handler).delete_task("p-1", "t-1") == "t-1"

    @async_test
    async def test_create_sends_only_given_fields(self):
        def handler(request):
            assert json.loads(request.content) == {"title": "New", "priority": "low"}
            return httpx.Response(201, json={"task": task_payload(title="New", priority="low")})

        task = await make_client(handler).create_task("p-1", "New", priority="low")
        assert task.title == "New"


class TestErrors:

    @pytest.mark.parametrize("status,body,error_cls", [
        (400, {"code": "VALIDATION_FAILED", "message": "Task title is required"}, ValidationError),
        (403, {"code": "FORBIDDEN", "message": "Task is read-only"}, AuthorizationError),
        (403, {"code": "INVALID_TRANSITION", "message": "Invalid transition"}, TransitionError),
        (404, {"code": "TASK_NOT_FOUND", "message": "gone"}, NotFoundError),
        (409, {"code": "VERSION_CONFLICT", "message": "stale"}, ConflictError),
        (503, {"code": "TRANSIENT_IO", "message": "store down"}, TransientIOError),
    ])
    @async_test
    async def test_error_mapping(self, status, body, error_cls):
        def handler(request):
            return httpx.Response(status, json={"error": True, "details": {}, **body})

        with pytest.raises(error_cls) as exc_info:
            await make_client(handler).update_task("p-1", "t-1", {"status": "completed"})
        assert exc_info.value.message == body["message"]
        assert exc_info.value.code == body["code"]

    @async_test
    async def test_non_json_error_body(self):
        def handler(request):
            return httpx.Response(502, text="Bad gateway")

        with pytest.raises(TaskBoardError) as exc_info:
            await make_client(handler).list_tasks("p-1")
        assert exc_info.value.message == "Bad gateway"

    @async_test
    async def test_connect_error_is_transient_and_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransientIOError):
            await make_client(handler).update_task("p-1", "t-1", {"status": "completed"})
        assert len(calls) == 1

    @async_test
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        with pytest.raises(TransientIOError):
            await make_client(handler).get_task("p-1", "t-1")

    @async_test
    async def test_dropped_connection_is_transient(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadError("connection reset by peer", request=request)

        with pytest.raises(TransientIOError):
            await make_client(handler).update_task("p-1", "t-1", {"status": "in-progress"}, expected_version=1)
        assert len(calls) == 1

    @async_test
    async def test_protocol_error_is_transient(self):
        def handler(request):
            raise httpx.RemoteProtocolError("peer closed connection", request=request)

        with pytest.raises(TransientIOError):
            await make_client(handler).list_tasks("p-1")

    @async_test
    async def test_unreadable_success_body_is_transient(self):
        def handler(request):
            return httpx.Response(200, text="<html>proxy login</html>")

        with pytest.raises(TransientIOError) as exc_info:
            await make_client(handler).get_task("p-1", "t-1")
        assert exc_info.value.code == "TRANSIENT_IO"
