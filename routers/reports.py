"""
Research report APIs.
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy import func
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, Dict, Any

from database.models import User, Report, ReportStatus
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.audit_service import AuditService
from services.policy import enforce
from services.tenant_scope import get_in_tenant, scope_to_tenant
from routers.projects import check_project_reference
from core.logger import logger


router = APIRouter(prefix="/api/reports", tags=["reports"], dependencies=[Depends(require_approved)])


class ReportCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    project_id: Optional[int] = Field(None, alias="projectId")
    content: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    file_url: Optional[str] = Field(None, alias="fileUrl")


class ReportUpdate(BaseModel):
    """Publishing goes through /publish; status here only moves between draft and archived."""
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    content: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    file_url: Optional[str] = Field(None, alias="fileUrl")
    status: Optional[ReportStatus] = None


def _get_report_or_404(db: Session, report_id: int, current_user: User) -> Report:
    report = get_in_tenant(db, Report, report_id, current_user, Report.created_by)
    if report is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found")
    return report


@router.get("")
async def list_reports(
    status_filter: Optional[str] = Query(None, alias="status"),
    type: Optional[str] = Query(None),
    project_id: Optional[int] = Query(None, alias="projectId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(db.query(Report), current_user, Report.created_by)
    if status_filter:
        try:
            query = query.filter(Report.status == ReportStatus(status_filter))
        except ValueError:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status: {status_filter}")
    if type:
        query = query.filter(Report.type == type)
    if project_id is not None:
        query = query.filter(Report.project_id == project_id)
    reports = query.order_by(Report.created_at.desc(), Report.id.desc()).all()
    return {"data": [model_to_dict(r) for r in reports], "total": len(reports)}


@router.get("/stats/summary")
async def report_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    query = scope_to_tenant(
        db.query(Report.status, func.count(Report.id)), current_user, Report.created_by
    ).group_by(Report.status)
    counts = {s.value: 0 for s in ReportStatus}
    for report_status, count in query.all():
        counts[report_status.value if hasattr(report_status, "value") else report_status] = count
    return {"total": sum(counts.values()), **counts}


@router.get("/{report_id}")
async def get_report(
    report_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    return model_to_dict(_get_report_or_404(db, report_id, current_user))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_report(
    body: ReportCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    check_project_reference(db, body.project_id, current_user)
    report = Report(**body.model_dump(), status=ReportStatus.DRAFT, created_by=current_user.id)
    db.add(report)
    db.commit()
    db.refresh(report)
    AuditService.log_from_request(
        db, request, "report_created", user_id=current_user.id, resource_type="report", resource_id=report.id
    )
    return {"message": "Report created successfully", "report": model_to_dict(report)}


@router.patch("/{report_id}")
async def update_report(
    report_id: int,
    body: ReportUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    report = _get_report_or_404(db, report_id, current_user)
    enforce("report", "update", current_user, report)

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    if updates.get("status") == ReportStatus.PUBLISHED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Use the publish endpoint to publish a report")
    for field, value in updates.items():
        setattr(report, field, value)
    db.commit()
    db.refresh(report)
    return {"message": "Report updated successfully", "report": model_to_dict(report)}


@router.post("/{report_id}/publish")
async def publish_report(
    report_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    report = _get_report_or_404(db, report_id, current_user)
    enforce("report", "publish", current_user, report)
    if report.status == ReportStatus.PUBLISHED:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Report is already published")

    report.status = ReportStatus.PUBLISHED
    report.published_at = datetime.utcnow()
    db.commit()
    db.refresh(report)
    AuditService.log_from_request(
        db, request, "report_published", user_id=current_user.id, resource_type="report", resource_id=report_id
    )
    logger.info(f"Report {report_id} published by user {current_user.id}")
    return {"message": "Report published", "report": model_to_dict(report)}


@router.delete("/{report_id}")
async def delete_report(
    report_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    report = _get_report_or_404(db, report_id, current_user)
    enforce("report", "delete", current_user, report)
    db.delete(report)
    db.commit()
    AuditService.log_from_request(
        db, request, "report_deleted", user_id=current_user.id, resource_type="report", resource_id=report_id
    )
    return {"message": "Report deleted successfully"}
