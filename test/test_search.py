"""
Global search: validation and tenant scoping.
"""
from database.models import ApprovalStatus

from conftest import auth_headers


def test_query_too_short(client, student):
    for q in ("", "a", "  b  "):
        response = client.get("/api/search", params={"q": q}, headers=auth_headers(student))
        assert response.status_code == 400


def test_invalid_type(client, student):
    response = client.get("/api/search", params={"q": "maize", "type": "sensors"}, headers=auth_headers(student))
    assert response.status_code == 400


def test_projects_scoped_to_tenant(client, factory, professor, other_college):
    mine = factory.project(professor, name="Sorghum drought trial")
    outsider = factory.user(college=other_college)
    factory.project(outsider, name="Sorghum irrigation study")

    response = client.get("/api/search", params={"q": "sorghum", "type": "projects"},
                          headers=auth_headers(professor))
    assert response.status_code == 200
    body = response.json()
    assert body["query"] == "sorghum"
    assert [p["id"] for p in body["results"]["projects"]] == [mine.id]
    assert body["total"] == 1
    assert list(body["results"].keys()) == ["projects"]


def test_super_admin_sees_all_projects(client, factory, professor, other_student, super_admin):
    factory.project(professor, name="Millet yield baseline")
    factory.project(other_student, name="Millet pest survey")
    response = client.get("/api/search", params={"q": "millet", "type": "projects"},
                          headers=auth_headers(super_admin))
    assert len(response.json()["results"]["projects"]) == 2


def test_users_search_only_approved_in_tenant(client, factory, college, other_college, professor):
    visible = factory.user(college=college, department="Agronomy")
    factory.user(college=college, status=ApprovalStatus.PENDING, department="Agronomy")
    factory.user(college=other_college, department="Agronomy")

    response = client.get("/api/search", params={"q": "agronomy", "type": "users"},
                          headers=auth_headers(professor))
    assert [u["id"] for u in response.json()["results"]["users"]] == [visible.id]


def test_colleges_empty_for_non_super_admin(client, factory, college_admin):
    factory.college(name="Riverside Agri College")
    response = client.get("/api/search", params={"q": "riverside"}, headers=auth_headers(college_admin))
    assert response.status_code == 200
    assert response.json()["results"]["colleges"] == []


def test_colleges_visible_to_super_admin(client, factory, super_admin):
    college = factory.college(name="Riverside Agri College")
    response = client.get("/api/search", params={"q": "riverside", "type": "colleges"},
                          headers=auth_headers(super_admin))
    assert [c["id"] for c in response.json()["results"]["colleges"]] == [college.id]


def test_all_sections_present_without_type(client, student):
    response = client.get("/api/search", params={"q": "nothing-matches-this"}, headers=auth_headers(student))
    assert response.status_code == 200
    body = response.json()
    assert set(body["results"]) == {"users", "projects", "colleges", "discussions", "submissions"}
    assert body["total"] == 0
