"""
Authentication endpoints: login, registration, token refresh and password flows.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from typing import Optional

from database.models import User, UserRole
from auth.dependencies import get_db_session, get_current_user
from auth.security import (
    decode_token, create_password_reset_token, TOKEN_TYPE_REFRESH, TOKEN_TYPE_PASSWORD_RESET
)
from core.exceptions import InvalidTokenError, TokenExpiredError
from core.utils import serialize_user, model_to_dict
from services.auth_service import AuthService
from services.audit_service import AuditService
from services.email_service import EmailService
from core.logger import logger
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


# Request Models
class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    """Self-registration for professors, students and data scientists."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    role: str
    college_id: int = Field(..., alias="collegeId")
    department: Optional[str] = None
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


class CollegeAdminRegisterRequest(BaseModel):
    """College admin registration; creates the college too."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    college_name: str = Field(..., alias="collegeName", min_length=1)
    college_address: Optional[str] = Field(None, alias="collegeAddress")
    college_location: Optional[str] = Field(None, alias="collegeLocation")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


class SuperAdminRegisterRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str
    phone_number: Optional[str] = Field(None, alias="phoneNumber")


class RefreshRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    refresh_token: str = Field(..., alias="refreshToken")


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    token: str
    new_password: str = Field(..., alias="newPassword")


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: str = Field(..., alias="currentPassword")
    new_password: str = Field(..., alias="newPassword")


def _auth_response(user: User, message: str) -> dict:
    return {"message": message, "user": serialize_user(user), **AuthService.issue_tokens(user)}


@router.post("/login")
async def login(
    body: LoginRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Login with email and password. Pending accounts may log in; guarded routes reject them."""
    user = AuthService.authenticate(db, body.email, body.password)
    AuditService.log_from_request(db, request, "user_login", user_id=user.id, resource_type="user", resource_id=user.id)
    return _auth_response(user, "Login successful")


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Register a professor, student or data scientist under an approved college."""
    try:
        role = UserRole(body.role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role. Must be one of: data_scientist, professor, student"
        )

    user = AuthService.register_member(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        role=role,
        college_id=body.college_id,
        department=body.department,
        phone_number=body.phone_number,
    )
    AuditService.log_from_request(db, request, "user_registered", user_id=user.id, resource_type="user", resource_id=user.id)
    return {
        "message": "Registration successful. Your account is pending approval.",
        "user": serialize_user(user),
    }


@router.post("/register/college-admin", status_code=status.HTTP_201_CREATED)
async def register_college_admin(
    body: CollegeAdminRegisterRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Register a college admin together with a new pending college."""
    user, college = AuthService.register_college_admin(
        db,
        name=body.name,
        email=body.email,
        password=body.password,
        college_name=body.college_name,
        college_address=body.college_address,
        college_location=body.college_location,
        phone_number=body.phone_number,
    )
    AuditService.log_from_request(
        db, request, "college_registered", user_id=user.id,
        resource_type="college", resource_id=college.id,
        details={"college_code": college.college_code}
    )
    return {
        "message": "College registration submitted. Awaiting super admin approval.",
        "user": serialize_user(user),
        "college": model_to_dict(college),
    }


@router.post("/register/super-admin", status_code=status.HTTP_201_CREATED)
async def register_super_admin(
    body: SuperAdminRegisterRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Register a super admin (approved immediately)."""
    user = AuthService.register_super_admin(
        db, name=body.name, email=body.email, password=body.password, phone_number=body.phone_number
    )
    AuditService.log_from_request(db, request, "super_admin_registered", user_id=user.id, resource_type="user", resource_id=user.id)
    return _auth_response(user, "Super admin registered successfully")


@router.post("/refresh")
async def refresh_token(
    body: RefreshRequest,
    db: Session = Depends(get_db_session)
):
    """Exchange a refresh token for a new token pair. Expiry is reported distinctly here."""
    try:
        payload = decode_token(body.refresh_token, TOKEN_TYPE_REFRESH)
    except TokenExpiredError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Refresh token expired")
    except InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token")

    user = db.get(User, int(payload["sub"]))
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found or inactive")

    return {"message": "Token refreshed", **AuthService.issue_tokens(user)}


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    """Current user, including college details."""
    return {
        "user": serialize_user(current_user),
        "college": model_to_dict(current_user.college) if current_user.college else None,
    }


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    """Email a reset link. The response never reveals whether the email exists."""
    message = "If the email exists, a password reset link has been sent"
    user = AuthService.get_by_email(db, body.email)
    if user is None or not user.is_active:
        return {"message": message}

    token = create_password_reset_token(user.id)
    await EmailService.send_password_reset_email(
        getattr(request.app.state, "mail", None), user.email, user.name, token
    )
    logger.info(f"Password reset requested for user {user.id}")

    response = {"message": message}
    if config.ENVIRONMENT == "development":
        response["resetToken"] = token
    return response


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db_session)
):
    try:
        payload = decode_token(body.token, TOKEN_TYPE_PASSWORD_RESET)
    except InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired reset token")

    user = AuthService.reset_password(db, int(payload["sub"]), body.new_password)
    AuditService.log_from_request(db, request, "password_reset", user_id=user.id, resource_type="user", resource_id=user.id)
    return {"message": "Password reset successful"}


@router.post("/change-password")
async def change_password(
    body: ChangePasswordRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    AuthService.change_password(db, current_user, body.current_password, body.new_password)
    AuditService.log_from_request(
        db, request, "password_changed", user_id=current_user.id, resource_type="user", resource_id=current_user.id
    )
    return {"message": "Password changed successfully"}
