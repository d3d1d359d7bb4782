"""
Research project APIs.
"""
from datetime import date
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any

from database.models import User, Project, DataSubmission, SubmissionStatus
from auth.dependencies import get_db_session, get_current_user, require_approved
from core.utils import model_to_dict
from services.audit_service import AuditService
from services.policy import enforce
from services.tenant_scope import get_in_tenant, scope_to_tenant
from core.logger import logger


router = APIRouter(prefix="/api/projects", tags=["projects"], dependencies=[Depends(require_approved)])


class ProjectCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    status: str = "PLANNING"
    department: Optional[str] = None
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    team_members: List[int] = Field(default_factory=list, alias="teamMembers")
    configuration: Dict[str, Any] = Field(default_factory=dict)


class ProjectUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    department: Optional[str] = None
    start_date: Optional[date] = Field(None, alias="startDate")
    end_date: Optional[date] = Field(None, alias="endDate")
    team_members: Optional[List[int]] = Field(None, alias="teamMembers")
    configuration: Optional[Dict[str, Any]] = None


def get_project_or_404(db: Session, project_id: int, current_user: User) -> Project:
    project = get_in_tenant(db, Project, project_id, current_user, Project.created_by)
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return project


def check_project_reference(db: Session, project_id: Optional[int], current_user: User):
    """400 when a body references a project that is missing or outside the caller's tenant."""
    if project_id is not None and get_in_tenant(db, Project, project_id, current_user, Project.created_by) is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Project not found")


def _validate_dates(start: Optional[date], end: Optional[date]):
    if start and end and end < start:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End date must be after start date")


@router.get("")
async def list_projects(
    status_filter: Optional[str] = Query(None, alias="status"),
    type: Optional[str] = Query(None),
    department: Optional[str] = Query(None),
    user_id: Optional[int] = Query(None, alias="userId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Projects within the caller's tenant."""
    query = scope_to_tenant(db.query(Project), current_user, Project.created_by)
    if status_filter:
        query = query.filter(Project.status == status_filter)
    if type:
        query = query.filter(Project.type == type)
    if department:
        query = query.filter(Project.department == department)
    if user_id is not None:
        query = query.filter(Project.created_by == user_id)

    projects = query.order_by(Project.created_at.desc(), Project.id.desc()).all()
    return {"data": [model_to_dict(p) for p in projects], "total": len(projects)}


@router.get("/{project_id}")
async def get_project(
    project_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    project = get_project_or_404(db, project_id, current_user)
    data = model_to_dict(project)
    data["sensorCount"] = len(project.sensors)
    return data


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_project(
    body: ProjectCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    _validate_dates(body.start_date, body.end_date)
    project = Project(
        name=body.name.strip(),
        description=body.description,
        type=body.type,
        status=body.status,
        department=body.department,
        start_date=body.start_date,
        end_date=body.end_date,
        team_members=body.team_members,
        configuration=body.configuration,
        created_by=current_user.id,
    )
    db.add(project)
    db.commit()
    db.refresh(project)
    AuditService.log_from_request(
        db, request, "project_created", user_id=current_user.id, resource_type="project", resource_id=project.id
    )
    logger.info(f"Project {project.id} created by user {current_user.id}")
    return {"message": "Project created successfully", "project": model_to_dict(project)}


@router.patch("/{project_id}")
async def update_project(
    project_id: int,
    body: ProjectUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    project = get_project_or_404(db, project_id, current_user)
    enforce("project", "update", current_user, project)

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    _validate_dates(updates.get("start_date", project.start_date), updates.get("end_date", project.end_date))
    for field, value in updates.items():
        setattr(project, field, value)
    db.commit()
    db.refresh(project)
    return {"message": "Project updated successfully", "project": model_to_dict(project)}


@router.delete("/{project_id}")
async def delete_project(
    project_id: int,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    project = get_project_or_404(db, project_id, current_user)
    enforce("project", "delete", current_user, project)
    # SET NULL would collide these drafts with the student's project-less draft
    db.query(DataSubmission).filter(
        DataSubmission.project_id == project_id,
        DataSubmission.status == SubmissionStatus.DRAFT
    ).delete(synchronize_session=False)
    db.delete(project)
    db.commit()
    AuditService.log_from_request(
        db, request, "project_deleted", user_id=current_user.id, resource_type="project", resource_id=project_id
    )
    return {"message": "Project deleted successfully"}
