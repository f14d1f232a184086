"""
Pytest configuration for Task Board tests.

This module provides:
1. Async test support without pytest-asyncio
2. Common identities, stores and services
3. A seeded project with an owner, an authorized person and a team member
"""

import asyncio
import functools
import os
import tempfile

import pytest

# Set up test environment before imports
TEST_TEMP_DIR = tempfile.mkdtemp(prefix="taskboard_tests_")
os.environ.setdefault("TASKBOARD_DATA_DIR", TEST_TEMP_DIR)
os.environ.setdefault("TASKBOARD_PERSIST", "false")

from taskboard.audit_log import TaskAuditLog
from taskboard.project_service import ProjectService
from taskboard.project_store import ProjectStore
from taskboard.task_model import ActorIdentity
from taskboard.task_service import TaskService


# -----------------------------------------------------------------------------
# Async Test Support
# -----------------------------------------------------------------------------
def async_test(func):
    """
    Decorator to run async tests without pytest-asyncio.

    Usage:
        @async_test
        async def test_something(self):
            result = await some_async_function()
            assert result is not None
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        return asyncio.run(func(*args, **kwargs))
    return wrapper


# -----------------------------------------------------------------------------
# Test Identities
# -----------------------------------------------------------------------------
OWNER = ActorIdentity(user_id="u-owner", email="olivia@example.com", name="Olivia Owner")
MEMBER = ActorIdentity(user_id="u-member", email="max@example.com", name="Max Member")
OTHER_MEMBER = ActorIdentity(user_id="u-member-2", email="mia@example.com", name="Mia Member")
AUTHORIZED = ActorIdentity(user_id="u-auth", email="ada@example.com", name="Ada Authorized")
STRANGER = ActorIdentity(user_id="u-stranger", email="sam@example.com", name="Sam Stranger")


# -----------------------------------------------------------------------------
# Common Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def store():
    """In-memory project store."""
    return ProjectStore()


@pytest.fixture
def audit(tmp_path):
    return TaskAuditLog(tmp_path / "task_audit.log")


@pytest.fixture
def task_service(store, audit):
    return TaskService(store, audit)


@pytest.fixture
def project_service(store, audit):
    return ProjectService(store, audit)


@pytest.fixture
def seeded_project(project_service):
    """
    Project owned by OWNER with:
    - AUTHORIZED as authorized personnel
    - MEMBER and OTHER_MEMBER accepted into a two-seat developer role
    """
    project = project_service.create_project(
        OWNER,
        title="Community Garden App",
        description="Plot booking for the neighbourhood garden",
        roles=[{"role_name": "Developer", "needed": 2, "mandatory_skills": ["python"]}],
    )
    role_id = project.roles[0].role_id
    project_service.add_authorized_person(project.project_id, OWNER, AUTHORIZED.user_id, AUTHORIZED.email, AUTHORIZED.name)
    project_service.accept_member(project.project_id, OWNER, MEMBER.user_id, MEMBER.email, role_id, MEMBER.name)
    project_service.accept_member(
        project.project_id, OWNER, OTHER_MEMBER.user_id, OTHER_MEMBER.email, role_id, OTHER_MEMBER.name,
    )
    return project.project_id


@pytest.fixture
def member_task(task_service, seeded_project):
    """Pending task assigned to MEMBER."""
    return task_service.create_task(
        seeded_project,
        OWNER,
        title="Build plot calendar",
        description="Weekly view of booked plots",
        priority="high",
        due_date="2026-11-01",
        assigned_to=MEMBER.user_id,
    )


# -----------------------------------------------------------------------------
# Session Configuration
# -----------------------------------------------------------------------------
def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line(
        "markers", "asyncio: mark test as async (custom implementation)"
    )
