"""
Uploads through the blob store, including the S3 -> local fallback.
"""
from botocore.exceptions import ClientError

import config
from storage.s3_client import S3Client, LocalStorage
from storage.s3_paths import get_folder_path, build_object_key

from conftest import auth_headers


class FailingS3:
    """Stands in for the boto3 client; every upload is refused."""

    def __init__(self):
        self.calls = 0

    def upload_fileobj(self, file_obj, bucket, key, ExtraArgs=None):
        self.calls += 1
        raise ClientError({"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject")


class RecordingS3:
    def __init__(self):
        self.uploaded = []

    def upload_fileobj(self, file_obj, bucket, key, ExtraArgs=None):
        self.uploaded.append((bucket, key, file_obj.read(), ExtraArgs))


def make_s3(tmp_path, stub):
    client = S3Client(
        bucket_name="agri-test",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        region_name="ap-south-1",
        fallback=LocalStorage(tmp_path),
    )
    client.s3_client = stub
    return client


def test_folder_layout():
    from datetime import date
    assert get_folder_path("image", 7, today=date(2024, 5, 1)) == "projects/7/images/2024-05-01"
    assert get_folder_path("video", today=date(2024, 5, 1)) == "videos/2024-05-01"
    assert get_folder_path("unknown", today=date(2024, 5, 1)) == "uploads/2024-05-01"
    assert build_object_key("/images/2024-05-01/", "leaf.jpg").startswith("images/2024-05-01/")


def test_upload_single_local_storage(client, student):
    response = client.post(
        "/api/uploads/single",
        files={"file": ("leaf.png", b"\x89PNG fake image bytes", "image/png")},
        headers=auth_headers(student),
    )
    assert response.status_code == 201
    data = response.json()["file"]
    assert data["isFallback"] is True
    assert data["fileType"] == "image"
    assert data["originalName"] == "leaf.png"
    assert data["url"].startswith("/uploads/")
    assert data["key"].startswith("fallback-")


def test_upload_rejects_disallowed_type(client, student):
    response = client.post(
        "/api/uploads/single",
        files={"file": ("tool.exe", b"MZ....", "application/x-msdownload")},
        headers=auth_headers(student),
    )
    assert response.status_code == 400


def test_upload_rejects_oversized_file(client, student, monkeypatch):
    monkeypatch.setattr(config, "MAX_FILE_SIZE", 10)
    response = client.post(
        "/api/uploads/single",
        files={"file": ("notes.txt", b"x" * 11, "text/plain")},
        headers=auth_headers(student),
    )
    assert response.status_code == 400


def test_upload_rejects_empty_file(client, student):
    response = client.post(
        "/api/uploads/single",
        files={"file": ("empty.txt", b"", "text/plain")},
        headers=auth_headers(student),
    )
    assert response.status_code == 400


def test_s3_failure_falls_back_to_local(client, student, tmp_path, monkeypatch):
    stub = FailingS3()
    monkeypatch.setattr(config, "s3_client", make_s3(tmp_path, stub))

    response = client.post(
        "/api/uploads/single",
        files={"file": ("plot.jpg", b"jpeg-bytes", "image/jpeg")},
        data={"projectId": "3"},
        headers=auth_headers(student),
    )
    assert response.status_code == 201
    data = response.json()["file"]
    assert stub.calls == 1
    assert data["isFallback"] is True
    assert data["bucket"] == "local-fallback"
    stored = list(tmp_path.iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == b"jpeg-bytes"


def test_s3_upload_success(client, student, tmp_path, monkeypatch):
    stub = RecordingS3()
    monkeypatch.setattr(config, "s3_client", make_s3(tmp_path, stub))

    response = client.post(
        "/api/uploads/single",
        files={"file": ("plot.jpg", b"jpeg-bytes", "image/jpeg")},
        data={"projectId": "3"},
        headers=auth_headers(student),
    )
    assert response.status_code == 201
    data = response.json()["file"]
    assert data["isFallback"] is False
    assert data["bucket"] == "agri-test"
    assert data["key"].startswith("projects/3/images/")
    assert data["url"] == f"https://agri-test.s3.ap-south-1.amazonaws.com/{data['key']}"

    bucket, key, body, extra = stub.uploaded[0]
    assert (bucket, key, body) == ("agri-test", data["key"], b"jpeg-bytes")
    assert extra == {"ContentType": "image/jpeg"}


def test_upload_multiple_limit(client, student, monkeypatch):
    monkeypatch.setattr(config, "MAX_FILES_PER_UPLOAD", 2)
    files = [("files", (f"f{i}.txt", b"data", "text/plain")) for i in range(3)]
    response = client.post("/api/uploads/multiple", files=files, headers=auth_headers(student))
    assert response.status_code == 400


def test_upload_multiple(client, student):
    files = [("files", (f"f{i}.txt", b"data", "text/plain")) for i in range(2)]
    response = client.post("/api/uploads/multiple", files=files, headers=auth_headers(student))
    assert response.status_code == 201
    assert len(response.json()["files"]) == 2


def test_delete_and_info_local_file(client, student):
    upload = client.post(
        "/api/uploads/single",
        files={"file": ("report.pdf", b"%PDF-1.4", "application/pdf")},
        headers=auth_headers(student),
    ).json()["file"]
    headers = auth_headers(student)

    info = client.get(f"/api/uploads/info/{upload['key']}", headers=headers)
    assert info.status_code == 200
    assert info.json()["size"] == len(b"%PDF-1.4")

    assert client.delete(f"/api/uploads/{upload['key']}", headers=headers).status_code == 200
    assert client.delete(f"/api/uploads/{upload['key']}", headers=headers).status_code == 404


def test_s3_check_requires_super_admin(client, student, super_admin):
    assert client.get("/api/uploads/test-s3", headers=auth_headers(student)).status_code == 403
    response = client.get("/api/uploads/test-s3", headers=auth_headers(super_admin))
    assert response.status_code == 200
    assert response.json()["backend"] == "local"
