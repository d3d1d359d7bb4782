"""
Object key layout for uploaded media.

    projects/{project_id}/images/2024-05-01/<uuid>-field.jpg
    videos/2024-05-01/<uuid>-walkthrough.mp4      (no project)
"""
import uuid
from datetime import date
from typing import Optional

FOLDERS = {
    "image": "images",
    "video": "videos",
    "audio": "audio",
    "document": "documents",
    "attachment": "attachments",
}


def get_folder_path(file_type: str, project_id: Optional[int] = None, today: Optional[date] = None) -> str:
    """Folder for an upload, grouped by type, project and day."""
    day = (today or date.today()).isoformat()
    folder = FOLDERS.get(file_type, "uploads")
    if project_id:
        return f"projects/{project_id}/{folder}/{day}"
    return f"{folder}/{day}"


def build_object_key(folder: str, filename: str) -> str:
    return f"{folder.strip('/')}/{uuid.uuid4().hex}-{filename}"
