"""
User management and approval APIs.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from database.models import User, UserRole, ApprovalStatus
from auth.dependencies import get_db_session, get_current_user, require_admin, require_approved
from core.utils import serialize_user
from services.audit_service import AuditService
from services.email_service import EmailService
from services.policy import enforce
from services.tenant_scope import scope_to_tenant
from services.workflow_service import WorkflowService
from core.logger import logger


router = APIRouter(prefix="/api/users", tags=["users"], dependencies=[Depends(require_approved)])


class UserUpdate(BaseModel):
    """Profile fields a user (or their admin) may change. Role and status are not editable here."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = Field(None, min_length=1)
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    bio: Optional[str] = None
    profile_image_url: Optional[str] = Field(None, alias="profileImageUrl")
    department: Optional[str] = None


class RejectUserRequest(BaseModel):
    reason: Optional[str] = None


class ActiveUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(..., alias="isActive")


def _parse_enum(enum_class, value: Optional[str], field: str):
    if value is None:
        return None
    try:
        return enum_class(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid {field}: {value}")


def _ensure_college_visible(current_user: User, college_id: int):
    if current_user.role != UserRole.SUPER_ADMIN and current_user.college_id != college_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You can only view users from your own college"
        )


@router.get("")
async def list_users(
    status_filter: Optional[str] = Query(None, alias="status"),
    role: Optional[str] = Query(None),
    college_id: Optional[int] = Query(None, alias="collegeId"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """List users. super_admin sees everyone; college_admin sees their own college."""
    query = scope_to_tenant(db.query(User), current_user, User.id)

    status_enum = _parse_enum(ApprovalStatus, status_filter, "status")
    if status_enum:
        query = query.filter(User.status == status_enum)
    role_enum = _parse_enum(UserRole, role, "role")
    if role_enum:
        query = query.filter(User.role == role_enum)
    if college_id is not None:
        query = query.filter(User.college_id == college_id)
    if search:
        query = query.filter(User.name.ilike(f"%{search}%") | User.email.ilike(f"%{search}%"))

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"data": [serialize_user(u) for u in users], "total": total, "page": page, "limit": limit}


@router.get("/pending")
async def list_pending_users(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Pending approval queue for the caller.
    college_admin: own college, excluding college admins. super_admin: college admins only.
    """
    users = WorkflowService.pending_users_query(db, current_user).order_by(User.created_at.asc(), User.id.asc()).all()
    return {"data": [serialize_user(u) for u in users], "total": len(users)}


@router.get("/college/{college_id}")
async def list_college_users(
    college_id: int,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """All users of a college, any status."""
    _ensure_college_visible(current_user, college_id)
    users = db.query(User).filter(User.college_id == college_id).order_by(User.name.asc()).all()
    return {"data": [serialize_user(u) for u in users], "total": len(users)}


@router.get("/by-department/{department}")
async def list_users_by_department(
    department: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Approved users of a department, within the caller's tenant."""
    query = db.query(User).filter(
        User.department == department,
        User.status == ApprovalStatus.APPROVED
    )
    users = scope_to_tenant(query, current_user, User.id).order_by(User.name.asc()).all()
    return {"data": [serialize_user(u) for u in users], "total": len(users)}


@router.get("/by-college/{college_id}")
async def list_approved_college_users(
    college_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Approved users of a college."""
    _ensure_college_visible(current_user, college_id)
    users = db.query(User).filter(
        User.college_id == college_id,
        User.status == ApprovalStatus.APPROVED
    ).order_by(User.name.asc()).all()
    return {"data": [serialize_user(u) for u in users], "total": len(users)}


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    enforce("user", "read", current_user, user)
    return serialize_user(user)


@router.patch("/{user_id}")
async def update_user(
    user_id: int,
    body: UserUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    enforce("user", "update", current_user, user)

    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    for field, value in updates.items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    logger.info(f"User {user_id} updated by {current_user.id}: {', '.join(updates)}")
    return {"message": "User updated successfully", "user": serialize_user(user)}


@router.post("/{user_id}/approve")
async def approve_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    user = WorkflowService.decide_user(db, user_id, current_user, approve=True)
    AuditService.log_from_request(db, request, "user_approved", user_id=current_user.id, resource_type="user", resource_id=user_id)
    await EmailService.send_account_status_email(
        getattr(request.app.state, "mail", None), user.email, user.name, "approved"
    )
    return {"message": "User approved successfully", "user": serialize_user(user)}


@router.post("/{user_id}/reject")
async def reject_user(
    user_id: int,
    request: Request,
    body: Optional[RejectUserRequest] = None,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    reason = (body.reason or "").strip() if body else ""
    user = WorkflowService.decide_user(db, user_id, current_user, approve=False, reason=reason or None)
    AuditService.log_from_request(
        db, request, "user_rejected", user_id=current_user.id, resource_type="user", resource_id=user_id,
        details={"reason": reason} if reason else None
    )
    await EmailService.send_account_status_email(
        getattr(request.app.state, "mail", None), user.email, user.name, "rejected", reason or None
    )
    return {"message": "User rejected", "user": serialize_user(user)}


@router.patch("/{user_id}/active")
async def set_user_active(
    user_id: int,
    body: ActiveUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Activate or deactivate an account. Deactivated users can no longer authenticate."""
    user = WorkflowService.check_user_authority(db, user_id, current_user, "set_active")
    user.is_active = body.is_active
    db.commit()
    db.refresh(user)
    AuditService.log_from_request(
        db, request, "user_activated" if body.is_active else "user_deactivated",
        user_id=current_user.id, resource_type="user", resource_id=user_id
    )
    return {"message": "User status updated", "user": serialize_user(user)}


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    user = WorkflowService.check_user_authority(db, user_id, current_user, "delete")
    email = user.email
    db.delete(user)
    db.commit()
    AuditService.log_from_request(
        db, request, "user_deleted", user_id=current_user.id, resource_type="user", resource_id=user_id,
        details={"email": email}
    )
    return {"message": "User deleted successfully"}
