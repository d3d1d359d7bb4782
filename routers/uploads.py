"""
File upload APIs backed by the blob store (S3 with local fallback).
"""
from io import BytesIO
from fastapi import APIRouter, Depends, HTTPException, status, File, Form, Request, UploadFile
from typing import List, Optional
from botocore.exceptions import ClientError, BotoCoreError

from database.models import User
from auth.dependencies import get_current_user, require_approved, require_super_admin
from core.validators import sanitize_filename, validate_upload_type, validate_file_size, file_type_from_mime
from storage.s3_client import get_blob_store
from storage.s3_paths import get_folder_path
from core.logger import logger
import config


router = APIRouter(prefix="/api/uploads", tags=["uploads"], dependencies=[Depends(require_approved)])


async def store_upload(file: UploadFile, project_id: Optional[int], current_user: User) -> dict:
    """Validate one upload and hand it to the blob store."""
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")
    if not validate_upload_type(file.filename, file.content_type):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type not allowed: {file.content_type or file.filename}"
        )
    content = await file.read()
    ok, error = validate_file_size(len(content), config.MAX_FILE_SIZE)
    if not ok:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)
    try:
        filename = sanitize_filename(file.filename)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    file_type = file_type_from_mime(file.content_type)
    folder = get_folder_path(file_type, project_id)
    result = get_blob_store().upload_fileobj(BytesIO(content), folder, filename, file.content_type)
    logger.info(f"User {current_user.id} uploaded {filename} ({len(content)} bytes) -> {result['key']}")
    return {
        "url": result["url"],
        "key": result["key"],
        "bucket": result["bucket"],
        "isFallback": result["is_fallback"],
        "originalName": file.filename,
        "size": len(content),
        "mimetype": file.content_type,
        "fileType": file_type,
    }


@router.post("/single", status_code=status.HTTP_201_CREATED)
async def upload_single(
    file: UploadFile = File(...),
    project_id: Optional[int] = Form(None, alias="projectId"),
    current_user: User = Depends(get_current_user)
):
    data = await store_upload(file, project_id, current_user)
    return {"message": "File uploaded successfully", "file": data}


@router.post("/multiple", status_code=status.HTTP_201_CREATED)
async def upload_multiple(
    files: List[UploadFile] = File(...),
    project_id: Optional[int] = Form(None, alias="projectId"),
    current_user: User = Depends(get_current_user)
):
    if not files:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No files uploaded")
    if len(files) > config.MAX_FILES_PER_UPLOAD:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Too many files (max {config.MAX_FILES_PER_UPLOAD})"
        )
    uploaded = [await store_upload(f, project_id, current_user) for f in files]
    return {"message": f"{len(uploaded)} files uploaded successfully", "files": uploaded}


@router.get("/test-s3")
async def test_s3(current_user: User = Depends(require_super_admin)):
    return get_blob_store().test_connection()


@router.get("/info/{key:path}")
async def file_info(key: str, current_user: User = Depends(get_current_user)):
    try:
        info = get_blob_store().get_file_info(key)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (ClientError, BotoCoreError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Storage error: {e}")
    if info is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    return info


@router.get("/list/{folder:path}")
async def list_files(folder: str, current_user: User = Depends(get_current_user)):
    try:
        files = get_blob_store().list_files(folder)
    except (ClientError, BotoCoreError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Storage error: {e}")
    return {"data": files, "total": len(files)}


@router.delete("/{key:path}")
async def delete_file(key: str, request: Request, current_user: User = Depends(get_current_user)):
    try:
        deleted = get_blob_store().delete_file(key)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except (ClientError, BotoCoreError) as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Storage error: {e}")
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
    logger.info(f"User {current_user.id} deleted {key}")
    return {"message": "File deleted successfully"}
