"""
College management APIs.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from sqlalchemy import func
from pydantic import BaseModel, Field
from typing import Optional

from database.models import User, UserRole, College, ApprovalStatus
from auth.dependencies import get_db_session, get_current_user, require_approved, require_super_admin
from core.utils import model_to_dict
from services.audit_service import AuditService
from services.auth_service import generate_college_code
from services.policy import enforce
from services.tenant_scope import scope_colleges
from services.workflow_service import WorkflowService
from core.logger import logger


router = APIRouter(prefix="/api/colleges", tags=["colleges"])


class CollegeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    address: Optional[str] = None
    location: Optional[str] = None


class CollegeUpdate(BaseModel):
    """Status is changed through approve/reject only."""
    name: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = None
    location: Optional[str] = None


def _college_with_counts(db: Session, college: College) -> dict:
    data = model_to_dict(college)
    counts = dict(
        db.query(User.role, func.count(User.id))
        .filter(User.college_id == college.id)
        .group_by(User.role)
        .all()
    )
    data["userCounts"] = {
        (role.value if hasattr(role, "value") else role): count for role, count in counts.items()
    }
    return data


def _get_college_or_404(db: Session, college_id: int) -> College:
    college = db.get(College, college_id)
    if college is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="College not found")
    return college


@router.get("/public/approved")
async def list_public_approved_colleges(db: Session = Depends(get_db_session)):
    """Approved colleges for the registration form. No authentication."""
    colleges = db.query(College).filter(
        College.status == ApprovalStatus.APPROVED
    ).order_by(College.name.asc()).all()
    return [
        {"id": c.id, "name": c.name, "college_code": c.college_code, "location": c.location}
        for c in colleges
    ]


@router.get("", dependencies=[Depends(require_approved)])
async def list_colleges(
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """super_admin: all colleges. Everyone else: their own college."""
    query = scope_colleges(db.query(College), current_user, include_own=True)

    if status_filter:
        try:
            query = query.filter(College.status == ApprovalStatus(status_filter))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Invalid status: {status_filter}"
            )
    if search:
        query = query.filter(
            College.name.ilike(f"%{search}%") | College.college_code.ilike(f"%{search}%")
        )

    colleges = query.order_by(College.created_at.desc(), College.id.desc()).all()
    return {"data": [_college_with_counts(db, c) for c in colleges], "total": len(colleges)}


@router.get("/approved", dependencies=[Depends(require_approved)])
async def list_approved_colleges(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    colleges = db.query(College).filter(
        College.status == ApprovalStatus.APPROVED
    ).order_by(College.name.asc()).all()
    return {"data": [model_to_dict(c) for c in colleges], "total": len(colleges)}


@router.get("/pending", dependencies=[Depends(require_approved)])
async def list_pending_colleges(
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db_session)
):
    colleges = db.query(College).filter(
        College.status == ApprovalStatus.PENDING
    ).order_by(College.created_at.asc(), College.id.asc()).all()

    data = []
    for college in colleges:
        item = model_to_dict(college)
        admin = db.query(User).filter(
            User.college_id == college.id,
            User.role == UserRole.COLLEGE_ADMIN
        ).first()
        item["admin"] = {"id": admin.id, "name": admin.name, "email": admin.email} if admin else None
        data.append(item)
    return {"data": data, "total": len(data)}


@router.get("/{college_id}", dependencies=[Depends(require_approved)])
async def get_college(
    college_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    college = _get_college_or_404(db, college_id)
    if current_user.role != UserRole.SUPER_ADMIN and current_user.college_id != college.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return _college_with_counts(db, college)


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(require_approved)])
async def create_college(
    body: CollegeCreate,
    request: Request,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db_session)
):
    """Colleges created by a super admin are approved immediately."""
    college = College(
        name=body.name.strip(),
        college_code=generate_college_code(),
        address=body.address,
        location=body.location,
        status=ApprovalStatus.APPROVED,
        created_by=current_user.id,
    )
    db.add(college)
    db.commit()
    db.refresh(college)
    AuditService.log_from_request(
        db, request, "college_created", user_id=current_user.id, resource_type="college", resource_id=college.id
    )
    logger.info(f"College {college.college_code} created by super admin {current_user.id}")
    return {"message": "College created successfully", "college": model_to_dict(college)}


@router.patch("/{college_id}", dependencies=[Depends(require_approved)])
async def update_college(
    college_id: int,
    body: CollegeUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    college = _get_college_or_404(db, college_id)
    enforce("college", "update", current_user, college)

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    for field, value in updates.items():
        setattr(college, field, value)
    db.commit()
    db.refresh(college)
    return {"message": "College updated successfully", "college": model_to_dict(college)}


@router.post("/{college_id}/approve", dependencies=[Depends(require_approved)])
async def approve_college(
    college_id: int,
    request: Request,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db_session)
):
    college = WorkflowService.decide_college(db, college_id, current_user, approve=True)
    AuditService.log_from_request(
        db, request, "college_approved", user_id=current_user.id, resource_type="college", resource_id=college_id
    )
    return {"message": "College approved successfully", "college": model_to_dict(college)}


@router.post("/{college_id}/reject", dependencies=[Depends(require_approved)])
async def reject_college(
    college_id: int,
    request: Request,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db_session)
):
    college = WorkflowService.decide_college(db, college_id, current_user, approve=False)
    AuditService.log_from_request(
        db, request, "college_rejected", user_id=current_user.id, resource_type="college", resource_id=college_id
    )
    return {"message": "College rejected", "college": model_to_dict(college)}


@router.delete("/{college_id}", dependencies=[Depends(require_approved)])
async def delete_college(
    college_id: int,
    request: Request,
    current_user: User = Depends(require_super_admin),
    db: Session = Depends(get_db_session)
):
    """
    Delete a college. Fails with 400 while users still reference it
    (foreign-key violation from the database).
    """
    college = _get_college_or_404(db, college_id)
    enforce("college", "delete", current_user, college)
    db.delete(college)
    db.commit()
    AuditService.log_from_request(
        db, request, "college_deleted", user_id=current_user.id, resource_type="college", resource_id=college_id
    )
    return {"message": "College deleted successfully"}
