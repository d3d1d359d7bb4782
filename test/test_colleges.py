"""
College registration, approval and management.
"""
from database.models import ApprovalStatus, College, UserRole

from conftest import auth_headers


def test_public_list_shows_only_approved(client, factory):
    approved = factory.college(name="Green Valley Agricultural College")
    factory.college(status=ApprovalStatus.PENDING, name="Hidden Pending College")

    response = client.get("/api/colleges/public/approved")
    assert response.status_code == 200
    names = [c["name"] for c in response.json()]
    assert approved.name in names
    assert "Hidden Pending College" not in names


def test_super_admin_creates_approved_college(client, super_admin):
    response = client.post("/api/colleges", json={"name": "  Delta Farm School ", "location": "Nashik"},
                           headers=auth_headers(super_admin))
    assert response.status_code == 201
    college = response.json()["college"]
    assert college["name"] == "Delta Farm School"
    assert college["status"] == "approved"
    assert college["created_by"] == super_admin.id


def test_college_admin_cannot_create_college(client, college_admin):
    response = client.post("/api/colleges", json={"name": "Nope"}, headers=auth_headers(college_admin))
    assert response.status_code == 403


def test_approve_then_second_decision_conflicts(client, factory, super_admin):
    pending = factory.college(status=ApprovalStatus.PENDING)
    headers = auth_headers(super_admin)

    first = client.post(f"/api/colleges/{pending.id}/approve", headers=headers)
    assert first.status_code == 200
    assert first.json()["college"]["status"] == "approved"

    again = client.post(f"/api/colleges/{pending.id}/approve", headers=headers)
    assert again.status_code == 409
    assert again.json()["detail"] == "College is not pending approval (status: approved)"

    reject = client.post(f"/api/colleges/{pending.id}/reject", headers=headers)
    assert reject.status_code == 409


def test_reject_pending_college(client, factory, super_admin):
    pending = factory.college(status=ApprovalStatus.PENDING)
    response = client.post(f"/api/colleges/{pending.id}/reject", headers=auth_headers(super_admin))
    assert response.status_code == 200
    assert response.json()["college"]["status"] == "rejected"


def test_approve_missing_college(client, super_admin):
    response = client.post("/api/colleges/9999/approve", headers=auth_headers(super_admin))
    assert response.status_code == 404


def test_college_admin_cannot_approve_colleges(client, factory, college_admin):
    pending = factory.college(status=ApprovalStatus.PENDING)
    response = client.post(f"/api/colleges/{pending.id}/approve", headers=auth_headers(college_admin))
    assert response.status_code == 403


def test_pending_list_includes_admin(client, factory, super_admin):
    pending = factory.college(status=ApprovalStatus.PENDING)
    admin = factory.user(role=UserRole.COLLEGE_ADMIN, college=pending, status=ApprovalStatus.PENDING)

    response = client.get("/api/colleges/pending", headers=auth_headers(super_admin))
    assert response.status_code == 200
    item = next(c for c in response.json()["data"] if c["id"] == pending.id)
    assert item["admin"]["id"] == admin.id


def test_list_scoped_to_own_college(client, college, other_college, professor):
    response = client.get("/api/colleges", headers=auth_headers(professor))
    assert response.status_code == 200
    assert [c["id"] for c in response.json()["data"]] == [college.id]


def test_list_super_admin_sees_all(client, college, other_college, super_admin):
    response = client.get("/api/colleges", headers=auth_headers(super_admin))
    ids = {c["id"] for c in response.json()["data"]}
    assert {college.id, other_college.id} <= ids


def test_get_college_counts_users(client, college, college_admin, student, professor):
    response = client.get(f"/api/colleges/{college.id}", headers=auth_headers(college_admin))
    assert response.status_code == 200
    counts = response.json()["userCounts"]
    assert counts["student"] == 1
    assert counts["professor"] == 1
    assert counts["college_admin"] == 1


def test_get_other_college_forbidden(client, other_college, professor):
    response = client.get(f"/api/colleges/{other_college.id}", headers=auth_headers(professor))
    assert response.status_code == 403


def test_college_admin_updates_own_college(client, college, other_college, college_admin):
    response = client.patch(f"/api/colleges/{college.id}", json={"address": "12 Canal Road"},
                            headers=auth_headers(college_admin))
    assert response.status_code == 200
    assert response.json()["college"]["address"] == "12 Canal Road"

    other = client.patch(f"/api/colleges/{other_college.id}", json={"address": "x"},
                         headers=auth_headers(college_admin))
    assert other.status_code == 403


def test_update_ignores_status(client, factory, super_admin):
    pending = factory.college(status=ApprovalStatus.PENDING)
    response = client.patch(f"/api/colleges/{pending.id}", json={"status": "approved", "location": "Agra"},
                            headers=auth_headers(super_admin))
    assert response.status_code == 200
    assert response.json()["college"]["status"] == "pending"


def test_delete_college_with_users_fails(client, db, college, student, super_admin):
    response = client.delete(f"/api/colleges/{college.id}", headers=auth_headers(super_admin))
    assert response.status_code == 400
    with db.get_session() as session:
        assert session.get(College, college.id) is not None


def test_delete_empty_college(client, db, factory, super_admin):
    empty = factory.college()
    response = client.delete(f"/api/colleges/{empty.id}", headers=auth_headers(super_admin))
    assert response.status_code == 200
    with db.get_session() as session:
        assert session.get(College, empty.id) is None
