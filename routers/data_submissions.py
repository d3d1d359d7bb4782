"""
Data submission APIs: drafts, submission, listing and review.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request, Response
from sqlalchemy.orm import Session
from sqlalchemy import func
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any

from database.models import User, UserRole, DataSubmission, SubmissionStatus
from auth.dependencies import get_db_session, get_current_user, require_approved, require_reviewer
from core.utils import model_to_dict
from services.audit_service import AuditService
from services.policy import enforce
from services.tenant_scope import scope_to_tenant
from services.workflow_service import WorkflowService
from routers.projects import check_project_reference
from core.logger import logger


router = APIRouter(prefix="/api/data-submissions", tags=["data-submissions"], dependencies=[Depends(require_approved)])

MEDIA_FIELDS = ("image_urls", "video_urls", "file_urls", "audio_urls")


class SubmissionFields(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    project_id: Optional[int] = Field(None, alias="projectId")
    submission_type: Optional[str] = Field(None, alias="submissionType")
    data_content: Optional[Dict[str, Any]] = Field(None, alias="dataContent")
    image_urls: Optional[List[str]] = Field(None, alias="imageUrls")
    video_urls: Optional[List[str]] = Field(None, alias="videoUrls")
    file_urls: Optional[List[str]] = Field(None, alias="fileUrls")
    audio_urls: Optional[List[str]] = Field(None, alias="audioUrls")


class SubmissionUpdate(SubmissionFields):
    """Content fields only; status and review fields change through the workflow endpoints."""
    quality_score: Optional[float] = Field(None, alias="qualityScore", ge=0, le=100)


class ApproveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quality_score: Optional[float] = Field(None, alias="qualityScore", ge=0, le=100)


class RejectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rejection_reason: Optional[str] = Field(None, alias="rejectionReason")


def _visible_submissions(db: Session, current_user: User):
    """Students see their own submissions; everyone else sees their tenant's."""
    query = db.query(DataSubmission)
    if current_user.role == UserRole.STUDENT:
        return query.filter(DataSubmission.student_id == current_user.id)
    return scope_to_tenant(query, current_user, DataSubmission.student_id)


def _get_submission_or_404(db: Session, submission_id: int) -> DataSubmission:
    submission = db.get(DataSubmission, submission_id)
    if submission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    return submission


def _serialize(submission: DataSubmission) -> dict:
    data = model_to_dict(submission)
    if submission.student is not None:
        data["student_name"] = submission.student.name
    return data


@router.post("/draft")
async def save_draft(
    body: SubmissionFields,
    response: Response,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Create or update the caller's single draft for a project."""
    check_project_reference(db, body.project_id, current_user)
    fields = body.model_dump(exclude={"project_id"}, exclude_none=True)
    draft, created = WorkflowService.save_draft(db, current_user, body.project_id, fields)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return {"message": "Draft saved", "created": created, "submission": _serialize(draft)}


@router.get("")
async def list_submissions(
    status_filter: Optional[str] = Query(None, alias="status"),
    project_id: Optional[int] = Query(None, alias="projectId"),
    student_id: Optional[int] = Query(None, alias="studentId"),
    submission_type: Optional[str] = Query(None, alias="submissionType"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = _visible_submissions(db, current_user)
    if status_filter:
        try:
            query = query.filter(DataSubmission.status == SubmissionStatus(status_filter))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {status_filter}")
    if project_id is not None:
        query = query.filter(DataSubmission.project_id == project_id)
    if student_id is not None:
        query = query.filter(DataSubmission.student_id == student_id)
    if submission_type:
        query = query.filter(DataSubmission.submission_type == submission_type)

    submissions = query.order_by(DataSubmission.created_at.desc(), DataSubmission.id.desc()).all()
    return {"data": [_serialize(s) for s in submissions], "total": len(submissions)}


@router.get("/student/{student_id}")
async def list_student_submissions(
    student_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    if current_user.role == UserRole.STUDENT and current_user.id != student_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only view your own submissions")
    submissions = _visible_submissions(db, current_user).filter(
        DataSubmission.student_id == student_id
    ).order_by(DataSubmission.created_at.desc(), DataSubmission.id.desc()).all()
    return {"data": [_serialize(s) for s in submissions], "total": len(submissions)}


@router.get("/project/{project_id}")
async def list_project_submissions(
    project_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    submissions = _visible_submissions(db, current_user).filter(
        DataSubmission.project_id == project_id
    ).order_by(DataSubmission.created_at.desc(), DataSubmission.id.desc()).all()
    return {"data": [_serialize(s) for s in submissions], "total": len(submissions)}


@router.get("/stats/summary")
async def submission_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Counts per status over the submissions the caller can see."""
    visible_ids = _visible_submissions(db, current_user).with_entities(DataSubmission.id)
    rows = db.query(DataSubmission.status, func.count(DataSubmission.id)).filter(
        DataSubmission.id.in_(visible_ids.scalar_subquery())
    ).group_by(DataSubmission.status).all()

    counts = {s.value: 0 for s in SubmissionStatus}
    for submission_status, count in rows:
        key = submission_status.value if hasattr(submission_status, "value") else submission_status
        counts[key] = count
    return {"total": sum(counts.values()), **counts}


@router.get("/{submission_id}")
async def get_submission(
    submission_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    submission = _get_submission_or_404(db, submission_id)
    enforce("submission", "read", current_user, submission)
    return _serialize(submission)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_submission(
    body: SubmissionFields,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Submit directly for review, skipping the draft stage."""
    check_project_reference(db, body.project_id, current_user)
    fields = body.model_dump(exclude_none=True)
    submission = DataSubmission(
        student_id=current_user.id,
        status=SubmissionStatus.PENDING,
        submitted_at=datetime.utcnow(),
        **fields,
    )
    db.add(submission)
    db.commit()
    db.refresh(submission)
    AuditService.log_from_request(
        db, request, "submission_created", user_id=current_user.id,
        resource_type="data_submission", resource_id=submission.id
    )
    logger.info(f"Submission {submission.id} created by user {current_user.id}")
    return {"message": "Submission created successfully", "submission": _serialize(submission)}


@router.patch("/{submission_id}")
async def update_submission(
    submission_id: int,
    body: SubmissionUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    submission = _get_submission_or_404(db, submission_id)
    enforce("submission", "update", current_user, submission)
    if submission.status in (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Reviewed submissions cannot be edited (status: {submission.status.value})"
        )

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if "quality_score" in updates and current_user.role not in (
        UserRole.SUPER_ADMIN, UserRole.COLLEGE_ADMIN, UserRole.PROFESSOR
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only reviewers can set a quality score")
    if "project_id" in updates:
        check_project_reference(db, updates["project_id"], current_user)

    for field, value in updates.items():
        if field in MEDIA_FIELDS and value is None:
            value = []
        setattr(submission, field, value)
    db.commit()
    db.refresh(submission)
    return {"message": "Submission updated successfully", "submission": _serialize(submission)}


@router.post("/{submission_id}/submit")
async def submit_draft(
    submission_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    submission = WorkflowService.submit_draft(db, submission_id, current_user)
    AuditService.log_from_request(
        db, request, "submission_submitted", user_id=current_user.id,
        resource_type="data_submission", resource_id=submission_id
    )
    return {"message": "Submission sent for review", "submission": _serialize(submission)}


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    submission = _get_submission_or_404(db, submission_id)
    enforce("submission", "delete", current_user, submission)
    db.delete(submission)
    db.commit()
    AuditService.log_from_request(
        db, request, "submission_deleted", user_id=current_user.id,
        resource_type="data_submission", resource_id=submission_id
    )
    return {"message": "Submission deleted successfully"}


@router.patch("/{submission_id}/approve")
async def approve_submission(
    submission_id: int,
    request: Request,
    body: Optional[ApproveRequest] = None,
    current_user: User = Depends(require_reviewer),
    db: Session = Depends(get_db_session)
):
    submission = WorkflowService.review_submission(
        db, submission_id, current_user, approve=True,
        quality_score=body.quality_score if body else None,
    )
    AuditService.log_from_request(
        db, request, "submission_approved", user_id=current_user.id,
        resource_type="data_submission", resource_id=submission_id
    )
    return {"message": "Submission approved", "submission": _serialize(submission)}


@router.patch("/{submission_id}/reject")
async def reject_submission(
    submission_id: int,
    request: Request,
    body: Optional[RejectRequest] = None,
    current_user: User = Depends(require_reviewer),
    db: Session = Depends(get_db_session)
):
    submission = WorkflowService.review_submission(
        db, submission_id, current_user, approve=False,
        rejection_reason=body.rejection_reason if body else None,
    )
    AuditService.log_from_request(
        db, request, "submission_rejected", user_id=current_user.id,
        resource_type="data_submission", resource_id=submission_id,
        details={"reason": submission.rejection_reason}
    )
    return {"message": "Submission rejected", "submission": _serialize(submission)}
