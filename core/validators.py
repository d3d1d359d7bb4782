"""
Input validation utilities for uploads and request fields.
"""
import os
from pathlib import Path
from typing import Tuple, Optional


ALLOWED_MIME_TYPES = {
    # Images
    "image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp", "image/bmp",
    # Videos
    "video/mp4", "video/avi", "video/mov", "video/quicktime", "video/x-msvideo", "video/webm",
    # Audio
    "audio/mpeg", "audio/mp3", "audio/wav", "audio/aac", "audio/m4a", "audio/ogg",
    # Documents
    "application/pdf", "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "text/csv", "application/json", "text/plain",
}

ALLOWED_EXTENSIONS = {
    ".jpeg", ".jpg", ".png", ".gif", ".webp", ".bmp",
    ".mp4", ".avi", ".mov",
    ".mp3", ".wav", ".aac", ".m4a", ".ogg",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".csv", ".json", ".txt",
}


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename to prevent path traversal attacks.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for use
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    # Remove directory separators and path components
    filename = os.path.basename(filename.replace("\\", "/"))

    # Keep alphanumeric, dots, dashes, underscores
    sanitized = "".join(
        char if char.isalnum() or char in "._-" else "_"
        for char in filename
    )

    if len(sanitized) > 255:
        sanitized = sanitized[:255]

    if not sanitized.strip("._"):
        raise ValueError("Filename became empty after sanitization")

    return sanitized


def validate_upload_type(filename: str, content_type: Optional[str]) -> bool:
    """
    A file is accepted when either its extension or its MIME type is allowed.
    """
    ext_ok = bool(filename) and Path(filename).suffix.lower() in ALLOWED_EXTENSIONS
    mime_ok = bool(content_type) and content_type.lower() in ALLOWED_MIME_TYPES
    return ext_ok or mime_ok


def validate_file_size(file_size: int, max_size_bytes: int) -> Tuple[bool, Optional[str]]:
    """
    Validate file size.

    Args:
        file_size: File size in bytes
        max_size_bytes: Maximum allowed size in bytes

    Returns:
        Tuple of (is_valid, error_message)
    """
    if file_size <= 0:
        return False, "File is empty"

    if file_size > max_size_bytes:
        max_size_mb = max_size_bytes / (1024 * 1024)
        file_size_mb = file_size / (1024 * 1024)
        return False, f"File size ({file_size_mb:.2f} MB) exceeds maximum allowed size ({max_size_mb:.0f} MB)"

    return True, None


def file_type_from_mime(content_type: Optional[str]) -> str:
    """Map a MIME type onto the upload folder category."""
    if not content_type:
        return "attachment"
    if content_type.startswith("image/"):
        return "image"
    if content_type.startswith("video/"):
        return "video"
    if content_type.startswith("audio/"):
        return "audio"
    if content_type.startswith("application/") or content_type.startswith("text/"):
        return "document"
    return "attachment"
