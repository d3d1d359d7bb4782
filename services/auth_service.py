"""
Account registration and login.
"""
import secrets
import time
from datetime import datetime
from typing import Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import func

from database.models import User, UserRole, College, ApprovalStatus
from auth.security import (
    verify_password, get_password_hash, validate_password,
    create_access_token, create_refresh_token, token_claims_for
)
from core.exceptions import (
    AuthenticationError, AuthorizationError, ConflictError, ValidationFailedError
)
from core.logger import logger
import config

SELF_REGISTER_ROLES = {UserRole.PROFESSOR, UserRole.STUDENT, UserRole.DATA_SCIENTIST}


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_college_code() -> str:
    return f"CLG{secrets.token_hex(3).upper()}"


def generate_user_code(role: UserRole) -> str:
    return f"{role.value}_{int(time.time() * 1000)}{secrets.randbelow(1000):03d}"


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def get_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(func.lower(User.email) == normalize_email(email)).first()

    @staticmethod
    def _check_password(password: str) -> str:
        is_valid, error_message = validate_password(password)
        if not is_valid:
            raise ValidationFailedError(error_message)
        return get_password_hash(password)

    @staticmethod
    def _ensure_email_free(db: Session, email: str) -> None:
        if AuthService.get_by_email(db, email):
            raise ConflictError("User with this email already exists")

    @staticmethod
    def create_user(
        db: Session,
        name: str,
        email: str,
        password: str,
        role: UserRole,
        status: ApprovalStatus = ApprovalStatus.PENDING,
        college_id: Optional[int] = None,
        department: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> User:
        """
        Create a user row (not committed).

        Raises:
            ValidationFailedError: weak password
            ConflictError: email already registered
        """
        password_hash = AuthService._check_password(password)
        AuthService._ensure_email_free(db, email)

        user = User(
            user_code=generate_user_code(role),
            name=name.strip(),
            email=normalize_email(email),
            password_hash=password_hash,
            role=role,
            status=status,
            is_active=True,
            college_id=college_id,
            department=department,
            phone_number=phone_number,
        )
        db.add(user)
        return user

    @staticmethod
    def register_member(
        db: Session,
        name: str,
        email: str,
        password: str,
        role: UserRole,
        college_id: int,
        department: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> User:
        """Self-registration of a professor, student or data scientist under an approved college."""
        if role not in SELF_REGISTER_ROLES:
            raise ValidationFailedError(
                "Invalid role. Must be one of: " + ", ".join(sorted(r.value for r in SELF_REGISTER_ROLES))
            )

        college = db.query(College).filter(
            College.id == college_id,
            College.status == ApprovalStatus.APPROVED
        ).first()
        if college is None:
            raise ValidationFailedError("College not found or not approved")

        user = AuthService.create_user(
            db, name=name, email=email, password=password, role=role,
            college_id=college.id, department=department, phone_number=phone_number,
        )
        db.commit()
        db.refresh(user)
        logger.info(f"Registered {role.value} {user.email} under college {college.id} (pending approval)")
        return user

    @staticmethod
    def register_college_admin(
        db: Session,
        name: str,
        email: str,
        password: str,
        college_name: str,
        college_address: Optional[str] = None,
        college_location: Optional[str] = None,
        phone_number: Optional[str] = None,
    ) -> Tuple[User, College]:
        """Create a pending college and its pending admin in one transaction."""
        password_hash = AuthService._check_password(password)
        AuthService._ensure_email_free(db, email)

        try:
            college = College(
                name=college_name.strip(),
                college_code=generate_college_code(),
                address=college_address,
                location=college_location,
                status=ApprovalStatus.PENDING,
            )
            db.add(college)
            db.flush()

            user = User(
                user_code=generate_user_code(UserRole.COLLEGE_ADMIN),
                name=name.strip(),
                email=normalize_email(email),
                password_hash=password_hash,
                role=UserRole.COLLEGE_ADMIN,
                status=ApprovalStatus.PENDING,
                is_active=True,
                college_id=college.id,
                phone_number=phone_number,
            )
            db.add(user)
            db.flush()
            college.created_by = user.id
            db.commit()
        except Exception:
            db.rollback()
            raise

        db.refresh(user)
        db.refresh(college)
        logger.info(f"Registered college {college.college_code} with admin {user.email} (pending approval)")
        return user, college

    @staticmethod
    def register_super_admin(db: Session, name: str, email: str, password: str,
                             phone_number: Optional[str] = None) -> User:
        """Super-admin accounts are approved immediately."""
        if not config.ALLOW_MULTIPLE_SUPER_ADMINS:
            exists = db.query(User.id).filter(User.role == UserRole.SUPER_ADMIN).first()
            if exists:
                raise AuthorizationError("A super admin already exists")

        user = AuthService.create_user(
            db, name=name, email=email, password=password,
            role=UserRole.SUPER_ADMIN, status=ApprovalStatus.APPROVED,
            phone_number=phone_number,
        )
        db.commit()
        db.refresh(user)
        logger.info(f"Registered super admin {user.email}")
        return user

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> User:
        """
        Check credentials and stamp last_login.

        Raises:
            AuthenticationError: unknown email or wrong password
            AuthorizationError: account deactivated
        """
        user = AuthService.get_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for {email}")
            raise AuthenticationError("Invalid email or password")
        if not user.is_active:
            raise AuthorizationError("Account is deactivated")

        user.last_login = datetime.utcnow()
        db.commit()
        db.refresh(user)
        logger.info(f"User logged in: {user.email} ({user.role.value})")
        return user

    @staticmethod
    def issue_tokens(user: User) -> dict:
        claims = token_claims_for(user)
        return {
            "token": create_access_token(claims),
            "refreshToken": create_refresh_token(claims),
            "tokenType": "bearer",
        }

    @staticmethod
    def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
        if not verify_password(current_password, user.password_hash):
            raise AuthenticationError("Current password is incorrect")
        user.password_hash = AuthService._check_password(new_password)
        db.commit()
        logger.info(f"Password changed for user {user.id}")

    @staticmethod
    def reset_password(db: Session, user_id: int, new_password: str) -> User:
        user = db.get(User, user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid or expired reset token")
        user.password_hash = AuthService._check_password(new_password)
        db.commit()
        logger.info(f"Password reset for user {user.id}")
        return user
