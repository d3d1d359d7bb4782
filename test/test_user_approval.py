"""
User approval workflow and user management.
"""
from database.models import User, UserRole, ApprovalStatus, Notification

from conftest import auth_headers


def test_college_admin_approves_own_college_student(client, db, factory, college, college_admin):
    pending = factory.user(college=college, status=ApprovalStatus.PENDING)
    response = client.post(f"/api/users/{pending.id}/approve", headers=auth_headers(college_admin))
    assert response.status_code == 200
    assert response.json()["user"]["status"] == "approved"

    with db.get_session() as session:
        notes = session.query(Notification).filter(Notification.user_id == pending.id).all()
        assert len(notes) == 1


def test_second_approval_conflicts(client, factory, college, college_admin):
    pending = factory.user(college=college, status=ApprovalStatus.PENDING)
    first = client.post(f"/api/users/{pending.id}/approve", headers=auth_headers(college_admin))
    second = client.post(f"/api/users/{pending.id}/approve", headers=auth_headers(college_admin))
    assert first.status_code == 200
    assert second.status_code == 409
    assert "approved" in second.json()["detail"]


def test_reject_after_approve_conflicts(client, factory, college, college_admin):
    pending = factory.user(college=college, status=ApprovalStatus.PENDING)
    client.post(f"/api/users/{pending.id}/approve", headers=auth_headers(college_admin))
    response = client.post(f"/api/users/{pending.id}/reject", headers=auth_headers(college_admin))
    assert response.status_code == 409


def test_college_admin_cannot_approve_other_college(client, factory, other_college, college_admin):
    pending = factory.user(college=other_college, status=ApprovalStatus.PENDING)
    response = client.post(f"/api/users/{pending.id}/approve", headers=auth_headers(college_admin))
    assert response.status_code == 403
    assert response.json()["detail"] == "You can only manage users from your own college"


def test_college_admin_cannot_approve_college_admin(client, factory, college, college_admin):
    pending_admin = factory.user(role=UserRole.COLLEGE_ADMIN, college=college, status=ApprovalStatus.PENDING)
    response = client.post(f"/api/users/{pending_admin.id}/approve", headers=auth_headers(college_admin))
    assert response.status_code == 403


def test_super_admin_approves_college_admin(client, factory, college, super_admin):
    pending_admin = factory.user(role=UserRole.COLLEGE_ADMIN, college=college, status=ApprovalStatus.PENDING)
    response = client.post(f"/api/users/{pending_admin.id}/approve", headers=auth_headers(super_admin))
    assert response.status_code == 200


def test_nobody_approves_themselves(client, factory, college):
    admin = factory.user(role=UserRole.SUPER_ADMIN)
    response = client.post(f"/api/users/{admin.id}/approve", headers=auth_headers(admin))
    assert response.status_code == 403


def test_professor_cannot_approve(client, factory, college, professor):
    pending = factory.user(college=college, status=ApprovalStatus.PENDING)
    response = client.post(f"/api/users/{pending.id}/approve", headers=auth_headers(professor))
    assert response.status_code == 403


def test_approve_missing_user(client, super_admin):
    response = client.post("/api/users/9999/approve", headers=auth_headers(super_admin))
    assert response.status_code == 404


def test_reject_with_reason(client, db, factory, college, college_admin):
    pending = factory.user(college=college, status=ApprovalStatus.PENDING)
    response = client.post(
        f"/api/users/{pending.id}/reject",
        json={"reason": "Unknown department"},
        headers=auth_headers(college_admin),
    )
    assert response.status_code == 200
    assert response.json()["user"]["status"] == "rejected"


def test_pending_queue_college_admin(client, factory, college, other_college, college_admin):
    mine = factory.user(college=college, status=ApprovalStatus.PENDING)
    factory.user(college=other_college, status=ApprovalStatus.PENDING)
    factory.user(role=UserRole.COLLEGE_ADMIN, college=college, status=ApprovalStatus.PENDING)

    response = client.get("/api/users/pending", headers=auth_headers(college_admin))
    assert response.status_code == 200
    assert [u["id"] for u in response.json()["data"]] == [mine.id]


def test_pending_queue_super_admin_sees_college_admins(client, factory, college, super_admin):
    admin = factory.user(role=UserRole.COLLEGE_ADMIN, college=college, status=ApprovalStatus.PENDING)
    factory.user(college=college, status=ApprovalStatus.PENDING)

    response = client.get("/api/users/pending", headers=auth_headers(super_admin))
    assert [u["id"] for u in response.json()["data"]] == [admin.id]


def test_list_users_scoped_to_college(client, college_admin, student, other_student):
    response = client.get("/api/users", headers=auth_headers(college_admin))
    assert response.status_code == 200
    ids = {u["id"] for u in response.json()["data"]}
    assert student.id in ids
    assert other_student.id not in ids


def test_list_users_super_admin_sees_all(client, super_admin, student, other_student):
    response = client.get("/api/users", headers=auth_headers(super_admin))
    ids = {u["id"] for u in response.json()["data"]}
    assert {student.id, other_student.id} <= ids


def test_list_users_forbidden_for_students(client, student):
    response = client.get("/api/users", headers=auth_headers(student))
    assert response.status_code == 403


def test_list_users_invalid_role_filter(client, super_admin):
    response = client.get("/api/users", params={"role": "farmer"}, headers=auth_headers(super_admin))
    assert response.status_code == 400


def test_student_reads_self_not_others(client, student, other_student):
    assert client.get(f"/api/users/{student.id}", headers=auth_headers(student)).status_code == 200
    assert client.get(f"/api/users/{other_student.id}", headers=auth_headers(student)).status_code == 403


def test_update_own_profile(client, student):
    response = client.patch(
        f"/api/users/{student.id}",
        json={"bio": "Soil science", "phoneNumber": "555-0100"},
        headers=auth_headers(student),
    )
    assert response.status_code == 200
    assert response.json()["user"]["bio"] == "Soil science"
    assert response.json()["user"]["phone_number"] == "555-0100"


def test_update_ignores_role_field(client, student):
    response = client.patch(
        f"/api/users/{student.id}",
        json={"name": "Renamed", "role": "super_admin"},
        headers=auth_headers(student),
    )
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "student"


def test_deactivate_blocks_access(client, college_admin, student):
    response = client.patch(
        f"/api/users/{student.id}/active", json={"isActive": False}, headers=auth_headers(college_admin)
    )
    assert response.status_code == 200
    assert response.json()["user"]["is_active"] is False

    me = client.get("/api/auth/me", headers=auth_headers(student))
    assert me.status_code == 401


def test_delete_user(client, db, college_admin, student):
    response = client.delete(f"/api/users/{student.id}", headers=auth_headers(college_admin))
    assert response.status_code == 200
    with db.get_session() as session:
        assert session.get(User, student.id) is None
