"""
Batch CSV import and export.
"""
import csv
import io

from database.models import DataSubmission, SubmissionStatus, UserRole

from conftest import auth_headers

CSV_BODY = (
    "crop,plot,yield,qualityScore\n"
    "maize,P-01,3.2,80\n"
    "wheat,P-02,2.9,not-a-number\n"
    "rice,P-03,4.1,\n"
    ",,,\n"
)


def import_csv(client, user, project_id, body=CSV_BODY):
    return client.post(
        "/api/batch/import/data",
        files={"file": ("plots.csv", body.encode("utf-8"), "text/csv")},
        data={"projectId": str(project_id)},
        headers=auth_headers(user),
    )


def test_import_reports_bad_rows(client, db, factory, professor):
    project = factory.project(professor)
    response = import_csv(client, professor, project.id)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["imported"] == 2
    assert body["failed"] == 2
    assert [e["row"] for e in body["errors"]] == [2, 4]

    with db.get_session() as session:
        rows = session.query(DataSubmission).filter(DataSubmission.project_id == project.id).all()
        assert len(rows) == 2
        assert all(r.status == SubmissionStatus.APPROVED for r in rows)
        assert all(r.reviewed_by == professor.id for r in rows)
        maize = next(r for r in rows if r.data_content["crop"] == "maize")
        assert maize.quality_score == 80
        assert "qualityScore" not in maize.data_content


def test_import_clean_file_has_no_errors(client, factory, college_admin):
    project = factory.project(college_admin)
    response = import_csv(client, college_admin, project.id, "crop,plot\nmaize,A\nmillet,B\n")
    assert response.json() == {"success": True, "imported": 2, "failed": 0}


def test_import_unknown_project(client, professor):
    response = import_csv(client, professor, 9999)
    assert response.status_code == 404


def test_import_requires_reviewer_role(client, factory, student, professor):
    project = factory.project(professor)
    response = import_csv(client, student, project.id)
    assert response.status_code == 403


def test_import_rejects_non_utf8(client, factory, professor):
    project = factory.project(professor)
    response = client.post(
        "/api/batch/import/data",
        files={"file": ("plots.csv", "crop\nma\xefs\n".encode("latin-1"), "text/csv")},
        data={"projectId": str(project.id)},
        headers=auth_headers(professor),
    )
    assert response.status_code == 400


def test_export_csv(client, factory, student, professor, college):
    project = factory.project(professor)
    factory.submission(student, project=project, data_content={"crop": "maize"})
    factory.submission(student, project=project, status=SubmissionStatus.APPROVED, quality_score=91.0)
    scientist = factory.user(role=UserRole.DATA_SCIENTIST, college=college)

    response = client.get(f"/api/batch/export/data/{project.id}", headers=auth_headers(scientist))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.headers["content-disposition"] == f'attachment; filename="data-export-{project.id}.csv"'

    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert len(rows) == 2
    assert rows[0]["data_content"] == '{"crop": "maize"}'
    assert rows[1]["status"] == "approved"
    assert rows[1]["quality_score"] == "91.0"


def test_export_empty_project(client, factory, professor):
    project = factory.project(professor)
    response = client.get(f"/api/batch/export/data/{project.id}", headers=auth_headers(professor))
    assert response.status_code == 404
    assert response.json()["detail"] == "No data found"


def test_export_forbidden_for_students(client, factory, student, professor):
    project = factory.project(professor)
    response = client.get(f"/api/batch/export/data/{project.id}", headers=auth_headers(student))
    assert response.status_code == 403


def test_export_hidden_from_other_college(client, factory, student, professor, other_college):
    project = factory.project(professor)
    factory.submission(student, project=project)
    outsider = factory.user(role=UserRole.PROFESSOR, college=other_college)

    response = client.get(f"/api/batch/export/data/{project.id}", headers=auth_headers(outsider))
    assert response.status_code == 404
    assert response.json()["detail"] == "Project not found"


def test_import_into_other_college_project(client, db, factory, professor, other_college):
    project = factory.project(professor)
    outsider = factory.user(role=UserRole.COLLEGE_ADMIN, college=other_college)

    response = import_csv(client, outsider, project.id)
    assert response.status_code == 404
    with db.get_session() as session:
        assert session.query(DataSubmission).filter(DataSubmission.project_id == project.id).count() == 0


def test_import_keeps_snake_case_columns_out_of_content(client, db, factory, professor):
    project = factory.project(professor)
    body = "crop,qualityScore,quality_score,submission_type\nsorghum,70,65,field_survey\n"
    assert import_csv(client, professor, project.id, body).json()["imported"] == 1

    with db.get_session() as session:
        row = session.query(DataSubmission).filter(DataSubmission.project_id == project.id).one()
        assert row.data_content == {"crop": "sorghum"}
        assert row.quality_score == 70
        assert row.submission_type == "field_survey"
