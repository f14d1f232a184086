"""
Tests for the Project Service

Tests:
1. Project creation with roles
2. Authorized personnel grant / revoke (owner only)
3. Role acceptance under the fill-capacity invariant
4. Project deletion cascades to tasks
"""

import pytest

from taskboard.audit_log import AuditEvent
from taskboard.errors import (
    AuthorizationError,
    NotFoundError,
    ProjectNotFoundError,
    ValidationError,
)
from tests.conftest import AUTHORIZED, MEMBER, OTHER_MEMBER, OWNER, STRANGER


@pytest.fixture
def one_seat_project(project_service):
    project = project_service.create_project(
        OWNER, title="Seed Library",
        roles=[{"role_name": "Designer", "needed": 1}, {"role_name": "Writer", "needed": 1}],
    )
    return project


class TestCreateProject:

    def test_creator_becomes_owner(self, project_service):
        project = project_service.create_project(OWNER, title="Compost Rota", roles=[{"role_name": "Lead"}])
        assert project.owner_id == OWNER.user_id
        assert project.owner_name == OWNER.name
        assert project.is_open
        assert project.roles[0].needed == 1
        assert project.roles[0].filled == 0

    def test_title_required(self, project_service):
        with pytest.raises(ValidationError):
            project_service.create_project(OWNER, title="")

    @pytest.mark.parametrize("role", [{"role_name": ""}, {"role_name": "Lead", "needed": 0}])
    def test_invalid_roles(self, project_service, role):
        with pytest.raises(ValidationError):
            project_service.create_project(OWNER, title="Bad roles", roles=[role])

    def test_stranger_cannot_read_project(self, project_service, seeded_project):
        with pytest.raises(AuthorizationError):
            project_service.get_project(seeded_project, STRANGER)
        assert project_service.get_project(seeded_project, MEMBER).project_id == seeded_project


class TestAuthorizedPersonnel:

    def test_duplicate_rejected(self, project_service, seeded_project):
        with pytest.raises(ValidationError):
            project_service.add_authorized_person(seeded_project, OWNER, AUTHORIZED.user_id, AUTHORIZED.email)

    def test_owner_cannot_be_authorized(self, project_service, seeded_project):
        with pytest.raises(ValidationError):
            project_service.add_authorized_person(seeded_project, OWNER, OWNER.user_id, OWNER.email)

    def test_default_name_is_email_prefix(self, project_service, seeded_project):
        person = project_service.add_authorized_person(seeded_project, OWNER, STRANGER.user_id, STRANGER.email)
        assert person.user_name == "sam"

    def test_only_owner_manages(self, project_service, seeded_project):
        with pytest.raises(AuthorizationError):
            project_service.add_authorized_person(seeded_project, MEMBER, STRANGER.user_id, STRANGER.email)

    def test_remove_missing(self, project_service, seeded_project):
        with pytest.raises(NotFoundError):
            project_service.remove_authorized_person(seeded_project, OWNER, STRANGER.user_id)

    def test_remove_keeps_assignments(self, project_service, task_service, seeded_project):
        task = task_service.create_task(seeded_project, OWNER, title="Signs", assigned_to=AUTHORIZED.user_id)
        project_service.remove_authorized_person(seeded_project, OWNER, AUTHORIZED.user_id)
        assert task_service.get_task(seeded_project, task.task_id, OWNER).assigned_to == AUTHORIZED.user_id


class TestFillCapacity:

    def test_full_role_rejects(self, project_service, one_seat_project):
        role_id = one_seat_project.roles[0].role_id
        project_service.accept_member(one_seat_project.project_id, OWNER, MEMBER.user_id, MEMBER.email, role_id)
        with pytest.raises(ValidationError) as exc_info:
            project_service.accept_member(
                one_seat_project.project_id, OWNER, OTHER_MEMBER.user_id, OTHER_MEMBER.email, role_id,
            )
        assert "already filled" in exc_info.value.message
        role = project_service.get_project(one_seat_project.project_id, OWNER).find_role(role_id)
        assert role.filled == role.needed == 1

    def test_filled_never_exceeds_needed(self, project_service, seeded_project):
        project = project_service.get_project(seeded_project, OWNER)
        role = project.roles[0]
        assert role.filled == role.needed
        with pytest.raises(ValidationError):
            project_service.accept_member(seeded_project, OWNER, STRANGER.user_id, STRANGER.email, role.role_id)
        assert project_service.get_project(seeded_project, OWNER).roles[0].filled == role.needed

    def test_closes_when_all_roles_full(self, project_service, one_seat_project):
        designer, writer = one_seat_project.roles
        pid = one_seat_project.project_id
        project_service.accept_member(pid, OWNER, MEMBER.user_id, MEMBER.email, designer.role_id)
        assert project_service.get_project(pid, OWNER).is_open
        project_service.accept_member(pid, OWNER, OTHER_MEMBER.user_id, OTHER_MEMBER.email, writer.role_id)
        assert not project_service.get_project(pid, OWNER).is_open

    def test_existing_member_rejected(self, project_service, one_seat_project):
        designer, writer = one_seat_project.roles
        pid = one_seat_project.project_id
        project_service.accept_member(pid, OWNER, MEMBER.user_id, MEMBER.email, designer.role_id)
        with pytest.raises(ValidationError):
            project_service.accept_member(pid, OWNER, MEMBER.user_id, MEMBER.email, writer.role_id)

    def test_authorized_person_cannot_take_a_seat(self, project_service, one_seat_project):
        designer = one_seat_project.roles[0]
        pid = one_seat_project.project_id
        project_service.add_authorized_person(pid, OWNER, AUTHORIZED.user_id, AUTHORIZED.email)
        with pytest.raises(ValidationError) as exc_info:
            project_service.accept_member(pid, OWNER, AUTHORIZED.user_id, AUTHORIZED.email, designer.role_id)
        assert "authorized" in exc_info.value.message
        project = project_service.get_project(pid, OWNER)
        assert project.find_role(designer.role_id).filled == 0
        assert project.find_member(AUTHORIZED.user_id) is None

    def test_unknown_role(self, project_service, one_seat_project):
        with pytest.raises(NotFoundError):
            project_service.accept_member(one_seat_project.project_id, OWNER, MEMBER.user_id, MEMBER.email, "r-404")

    def test_roster_changes_audited(self, project_service, one_seat_project, audit):
        role_id = one_seat_project.roles[0].role_id
        project_service.accept_member(one_seat_project.project_id, OWNER, MEMBER.user_id, MEMBER.email, role_id)
        entry = audit.read_entries(limit=1)[0]
        assert entry["event"] == AuditEvent.ROSTER_CHANGED
        assert entry["reason"] == "member_accepted"


class TestDeleteProject:

    def test_cascades_to_tasks(self, project_service, task_service, seeded_project, member_task):
        project_service.delete_project(seeded_project, OWNER)
        with pytest.raises(ProjectNotFoundError):
            task_service.get_task(seeded_project, member_task.task_id, OWNER)

    def test_only_owner_deletes(self, project_service, seeded_project):
        with pytest.raises(AuthorizationError):
            project_service.delete_project(seeded_project, AUTHORIZED)
