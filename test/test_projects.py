"""
Projects, sensors and sensor readings.
"""
from datetime import datetime, timedelta

from database.models import UserRole

from conftest import auth_headers


def test_create_and_list_projects_per_tenant(client, professor, other_student, student):
    created = client.post(
        "/api/projects",
        json={"name": " Rice Blast Monitoring ", "type": "field_trial", "teamMembers": [student.id]},
        headers=auth_headers(professor),
    )
    assert created.status_code == 201
    project = created.json()["project"]
    assert project["name"] == "Rice Blast Monitoring"
    assert project["status"] == "PLANNING"
    assert project["team_members"] == [student.id]

    assert client.get("/api/projects", headers=auth_headers(student)).json()["total"] == 1
    assert client.get("/api/projects", headers=auth_headers(other_student)).json()["total"] == 0
    hidden = client.get(f"/api/projects/{project['id']}", headers=auth_headers(other_student))
    assert hidden.status_code == 404


def test_project_dates_validated(client, professor):
    response = client.post(
        "/api/projects",
        json={"name": "Backwards", "startDate": "2024-06-01", "endDate": "2024-05-01"},
        headers=auth_headers(professor),
    )
    assert response.status_code == 400


def test_only_owner_or_admin_updates_project(client, factory, professor, student, college_admin):
    project = factory.project(professor)
    denied = client.patch(f"/api/projects/{project.id}", json={"status": "ACTIVE"}, headers=auth_headers(student))
    assert denied.status_code == 403

    owner = client.patch(f"/api/projects/{project.id}", json={"status": "ACTIVE"}, headers=auth_headers(professor))
    assert owner.json()["project"]["status"] == "ACTIVE"

    admin = client.delete(f"/api/projects/{project.id}", headers=auth_headers(college_admin))
    assert admin.status_code == 200


def test_sensor_requires_existing_project(client, professor):
    response = client.post("/api/sensors", json={"name": "Soil sensor", "type": "soil", "projectId": 9999},
                           headers=auth_headers(professor))
    assert response.status_code == 400


def test_sensor_readings_move_last_reading(client, db, factory, professor):
    project = factory.project(professor)
    headers = auth_headers(professor)
    sensor = client.post("/api/sensors", json={"name": "Soil sensor A", "type": "soil", "projectId": project.id},
                         headers=headers).json()["sensor"]

    older = (datetime.utcnow() - timedelta(hours=2)).isoformat()
    newer = (datetime.utcnow() - timedelta(hours=1)).isoformat()
    client.post(f"/api/sensors/{sensor['id']}/readings",
                json={"timestamp": newer, "soilMoisture": 31.5, "metadata": {"depth_cm": 10}}, headers=headers)
    client.post("/api/sensor-readings",
                json={"sensorId": sensor["id"], "timestamp": older, "soilMoisture": 28.5}, headers=headers)

    detail = client.get(f"/api/sensors/{sensor['id']}", headers=headers).json()
    assert detail["readingCount"] == 2
    assert detail["last_reading"].startswith(newer[:16])

    readings = client.get(f"/api/sensors/{sensor['id']}/readings", headers=headers).json()["data"]
    assert [r["soil_moisture"] for r in readings] == [31.5, 28.5]
    assert readings[0]["metadata"] == {"depth_cm": 10}


def test_reading_for_unknown_sensor(client, professor):
    response = client.post("/api/sensor-readings", json={"sensorId": 9999, "value": 1.0},
                           headers=auth_headers(professor))
    assert response.status_code == 404


def test_reading_stats_ignore_invalid(client, factory, professor):
    headers = auth_headers(professor)
    sensor = client.post("/api/sensors", json={"name": "pH", "type": "ph"}, headers=headers).json()["sensor"]
    for ph, valid in ((6.0, True), (7.0, True), (14.0, False)):
        client.post("/api/sensor-readings", json={"sensorId": sensor["id"], "phLevel": ph, "isValid": valid},
                    headers=headers)

    stats = client.get(f"/api/sensor-readings/stats/{sensor['id']}", headers=headers).json()
    assert stats["count"] == 2
    assert stats["ph_level"] == {"min": 6.0, "max": 7.0, "avg": 6.5}
    assert stats["temperature"]["avg"] is None

    valid = client.get("/api/sensor-readings", params={"sensorId": sensor["id"], "validOnly": True},
                       headers=headers).json()
    assert valid["total"] == 2


def test_update_and_delete_reading(client, professor):
    headers = auth_headers(professor)
    sensor = client.post("/api/sensors", json={"name": "T", "type": "temperature"}, headers=headers).json()["sensor"]
    reading = client.post("/api/sensor-readings", json={"sensorId": sensor["id"], "temperature": 21.0},
                          headers=headers).json()["reading"]

    updated = client.patch(f"/api/sensor-readings/{reading['id']}",
                           json={"isValid": False, "errorMessage": "sensor disconnected"}, headers=headers)
    assert updated.json()["reading"]["is_valid"] is False

    assert client.delete(f"/api/sensor-readings/{reading['id']}", headers=headers).status_code == 200
    assert client.get(f"/api/sensor-readings/{reading['id']}", headers=headers).status_code == 404


def test_other_college_admin_cannot_change_project(client, factory, professor, other_college):
    project = factory.project(professor)
    outsider = factory.user(role=UserRole.COLLEGE_ADMIN, college=other_college)
    headers = auth_headers(outsider)

    assert client.get(f"/api/projects/{project.id}", headers=headers).status_code == 404
    assert client.patch(f"/api/projects/{project.id}", json={"status": "ACTIVE"}, headers=headers).status_code == 404
    assert client.delete(f"/api/projects/{project.id}", headers=headers).status_code == 404

    owner_view = client.get(f"/api/projects/{project.id}", headers=auth_headers(professor)).json()
    assert owner_view["status"] == "PLANNING"


def test_super_admin_manages_any_project(client, factory, professor, super_admin):
    project = factory.project(professor)
    response = client.patch(f"/api/projects/{project.id}", json={"status": "ACTIVE"}, headers=auth_headers(super_admin))
    assert response.json()["project"]["status"] == "ACTIVE"


def test_cannot_attach_to_other_tenant_project(client, factory, professor, other_student):
    project = factory.project(professor)
    headers = auth_headers(other_student)
    sensor = client.post("/api/sensors", json={"name": "Soil sensor", "type": "soil", "projectId": project.id},
                         headers=headers)
    assert sensor.status_code == 400
    draft = client.post("/api/data-submissions/draft", json={"projectId": project.id}, headers=headers)
    assert draft.status_code == 400


def test_sensors_scoped_by_project_tenant(client, factory, professor, other_student):
    project = factory.project(professor)
    headers = auth_headers(professor)
    sensor = client.post("/api/sensors", json={"name": "Soil sensor B", "type": "soil", "projectId": project.id},
                         headers=headers).json()["sensor"]
    reading = client.post(f"/api/sensors/{sensor['id']}/readings", json={"temperature": 24.0},
                          headers=headers).json()["reading"]

    outsider = auth_headers(other_student)
    assert client.get("/api/sensors", headers=outsider).json()["total"] == 0
    assert client.get(f"/api/sensors/{sensor['id']}", headers=outsider).status_code == 404
    assert client.post("/api/sensor-readings", json={"sensorId": sensor["id"], "temperature": 99.0},
                       headers=outsider).status_code == 404
    assert client.get("/api/sensor-readings", headers=outsider).json()["total"] == 0
    assert client.delete(f"/api/sensor-readings/{reading['id']}", headers=outsider).status_code == 404
    assert client.get(f"/api/sensor-readings/{reading['id']}", headers=headers).status_code == 200
