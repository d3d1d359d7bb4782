"""
Batch CSV import and export of data submissions.
"""
import csv
import io
import json
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, File, Form, Request, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from database.models import User, UserRole, DataSubmission, SubmissionStatus
from auth.dependencies import get_db_session, require_approved, require_role, REVIEWER_ROLES
from core.utils import model_to_dict
from services.audit_service import AuditService
from services.tenant_scope import scope_to_tenant
from routers.projects import get_project_or_404
from core.logger import logger
import config


router = APIRouter(prefix="/api/batch", tags=["batch"], dependencies=[Depends(require_approved)])

require_importer = require_role(REVIEWER_ROLES)
require_exporter = require_role(REVIEWER_ROLES + [UserRole.DATA_SCIENTIST.value])

EXPORT_COLUMNS = (
    "id", "student_id", "project_id", "submission_type", "status", "quality_score",
    "data_content", "image_urls", "video_urls", "file_urls", "audio_urls",
    "reviewed_by", "reviewed_at", "submitted_at", "created_at",
)


def parse_csv(content: bytes):
    """Decode an uploaded CSV into a list of row dicts keyed by header."""
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV must be UTF-8 encoded")
    reader = csv.DictReader(io.StringIO(text))
    if not reader.fieldnames:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="CSV has no header row")
    return list(reader)


def _row_to_submission(row: dict, project_id: int, importer: User) -> DataSubmission:
    """Raises ValueError for rows that cannot be imported."""
    values = {k.strip(): (v.strip() if isinstance(v, str) else v) for k, v in row.items() if k}
    if not any(values.values()):
        raise ValueError("Empty row")

    camel, snake = values.pop("qualityScore", None), values.pop("quality_score", None)
    quality = camel or snake
    quality_score = None
    if quality:
        quality_score = float(quality)
        if not 0 <= quality_score <= 100:
            raise ValueError("qualityScore must be between 0 and 100")
    camel, snake = values.pop("submissionType", None), values.pop("submission_type", None)
    submission_type = camel or snake or "batch_import"

    now = datetime.utcnow()
    return DataSubmission(
        student_id=importer.id,
        project_id=project_id,
        submission_type=submission_type,
        data_content=values,
        status=SubmissionStatus.APPROVED,
        quality_score=quality_score,
        reviewed_by=importer.id,
        reviewed_at=now,
        submitted_at=now,
    )


@router.post("/import/data")
async def import_data(
    request: Request,
    file: UploadFile = File(...),
    project_id: int = Form(..., alias="projectId"),
    current_user: User = Depends(require_importer),
    db: Session = Depends(get_db_session)
):
    """
    Import CSV rows as approved submissions of a project.

    All rows share one transaction; each row runs in its own SAVEPOINT so a bad
    row is reported and skipped without aborting the rest.
    """
    get_project_or_404(db, project_id, current_user)
    content = await file.read()
    if len(content) > config.MAX_FILE_SIZE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File too large")
    rows = parse_csv(content)

    imported = 0
    errors = []
    for index, row in enumerate(rows, start=1):
        try:
            submission = _row_to_submission(row, project_id, current_user)
        except ValueError as e:
            errors.append({"row": index, "error": str(e)})
            continue
        try:
            with db.begin_nested():
                db.add(submission)
                db.flush()
            imported += 1
        except SQLAlchemyError as e:
            errors.append({"row": index, "error": str(getattr(e, "orig", e))})
    db.commit()

    AuditService.log_from_request(
        db, request, "batch_import", user_id=current_user.id, resource_type="project", resource_id=project_id,
        details={"imported": imported, "failed": len(errors), "filename": file.filename}
    )
    logger.info(f"Batch import into project {project_id}: {imported} imported, {len(errors)} failed")
    result = {"success": True, "imported": imported, "failed": len(errors)}
    if errors:
        result["errors"] = errors
    return result


@router.get("/export/data/{project_id}")
async def export_data(
    project_id: int,
    current_user: User = Depends(require_exporter),
    db: Session = Depends(get_db_session)
):
    get_project_or_404(db, project_id, current_user)
    query = scope_to_tenant(db.query(DataSubmission), current_user, DataSubmission.student_id)
    submissions = query.filter(
        DataSubmission.project_id == project_id
    ).order_by(DataSubmission.id.asc()).all()
    if not submissions:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No data found")

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for submission in submissions:
        data = model_to_dict(submission)
        writer.writerow([
            json.dumps(data[c]) if isinstance(data[c], (dict, list)) else ("" if data[c] is None else data[c])
            for c in EXPORT_COLUMNS
        ])
    buffer.seek(0)
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="data-export-{project_id}.csv"'}
    )
