"""
Authorization policy table.
"""
from types import SimpleNamespace

import pytest

from core.exceptions import AuthorizationError
from database.models import UserRole
from services.policy import POLICIES, enforce, is_allowed, can_transition_user, can_review_submission


def principal(id, role, college_id=None):
    return SimpleNamespace(id=id, role=role, college_id=college_id)


SUPER = principal(1, UserRole.SUPER_ADMIN)
ADMIN = principal(2, UserRole.COLLEGE_ADMIN, college_id=10)
PROF = principal(3, UserRole.PROFESSOR, college_id=10)
STUDENT = principal(4, UserRole.STUDENT, college_id=10)
OUTSIDER = principal(5, UserRole.STUDENT, college_id=20)
OTHER_ADMIN = principal(6, UserRole.COLLEGE_ADMIN, college_id=10)


def submission(student):
    return SimpleNamespace(student_id=student.id, student=student)


def test_unknown_pair_is_denied():
    assert ("college", "explode") not in POLICIES
    assert is_allowed("college", "explode", SUPER) is False


def test_enforce_raises_with_message():
    with pytest.raises(AuthorizationError) as exc:
        enforce("college", "delete", ADMIN, message="Only super admins can delete colleges")
    assert exc.value.message == "Only super admins can delete colleges"
    assert exc.value.status_code == 403


def test_enforce_default_message():
    with pytest.raises(AuthorizationError) as exc:
        enforce("ml_model", "delete", STUDENT, SimpleNamespace(created_by=99))
    assert exc.value.message == "Not authorized to delete this ml model"


@pytest.mark.parametrize("actor,target,allowed", [
    (SUPER, ADMIN, True),
    (SUPER, SUPER, False),
    (ADMIN, STUDENT, True),
    (ADMIN, OUTSIDER, False),
    (ADMIN, OTHER_ADMIN, False),
    (ADMIN, ADMIN, False),
    (PROF, STUDENT, False),
])
def test_user_transition_authority(actor, target, allowed):
    assert can_transition_user(actor, target) is allowed


@pytest.mark.parametrize("reviewer,student,allowed", [
    (PROF, STUDENT, True),
    (ADMIN, STUDENT, True),
    (SUPER, OUTSIDER, True),
    (PROF, OUTSIDER, False),
    (STUDENT, OUTSIDER, False),
    (PROF, PROF, False),
])
def test_submission_review_authority(reviewer, student, allowed):
    assert can_review_submission(reviewer, submission(student)) is allowed


def test_owner_or_admin_for_projects():
    project = SimpleNamespace(created_by=STUDENT.id, creator=STUDENT)
    assert is_allowed("project", "update", STUDENT, project)
    assert is_allowed("project", "delete", ADMIN, project)
    assert not is_allowed("project", "update", PROF, project)


def test_submission_read_rules():
    mine = submission(STUDENT)
    assert is_allowed("submission", "read", STUDENT, mine)
    assert is_allowed("submission", "read", PROF, mine)
    assert not is_allowed("submission", "read", OUTSIDER, mine)
    assert not is_allowed("submission", "submit", PROF, mine)


def test_announcement_create_requires_reviewer_role():
    assert is_allowed("announcement", "create", PROF)
    assert not is_allowed("announcement", "create", STUDENT)


def test_college_admin_limited_to_own_college_records():
    outside_admin = principal(7, UserRole.COLLEGE_ADMIN, college_id=20)
    project = SimpleNamespace(created_by=PROF.id, creator=PROF)
    assert is_allowed("project", "delete", ADMIN, project)
    assert not is_allowed("project", "delete", outside_admin, project)
    assert is_allowed("project", "delete", SUPER, project)

    orphaned = SimpleNamespace(created_by=None, creator=None)
    assert not is_allowed("report", "update", ADMIN, orphaned)

    record = SimpleNamespace(user_id=STUDENT.id, owner=STUDENT)
    assert is_allowed("research_data", "delete", ADMIN, record)
    assert not is_allowed("research_data", "delete", outside_admin, record)


def test_sensor_reading_writes_follow_project_tenant():
    unassigned = SimpleNamespace(project=None)
    assigned = SimpleNamespace(project=SimpleNamespace(creator=PROF))
    assert is_allowed("sensor_reading", "write", STUDENT, unassigned)
    assert is_allowed("sensor_reading", "write", STUDENT, assigned)
    assert not is_allowed("sensor_reading", "write", OUTSIDER, assigned)
    assert is_allowed("sensor_reading", "write", SUPER, assigned)
