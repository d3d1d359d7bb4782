"""
Authentication dependencies for FastAPI.

get_current_user resolves the bearer token to an active user; require_role and
require_approved are the two independent guards layered on top of it.
"""
from typing import Optional
from fastapi import Depends, HTTPException, status, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database.models import User, UserRole, ApprovalStatus
from auth.security import security, decode_token, TOKEN_TYPE_ACCESS
from core.exceptions import InvalidTokenError
from core.logger import logger
import config


def get_db_session():
    """Get database session. Shared by every dependency of a request."""
    if not config.db:
        raise HTTPException(status_code=503, detail="Database not initialized")
    with config.db.get_session() as session:
        yield session


def get_cache():
    """Get the cache backend (injected so tests and deployments can swap it)."""
    if config.cache is None:
        raise HTTPException(status_code=503, detail="Cache not initialized")
    return config.cache


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    db: Session = Depends(get_db_session)
) -> User:
    """
    Get current authenticated user from JWT token.

    Invalid and expired tokens are reported the same way.

    Raises:
        HTTPException 401: missing token, bad token, unknown or inactive user
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = decode_token(credentials.credentials, TOKEN_TYPE_ACCESS)
    except InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == int(payload["sub"])).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )

    return user


def require_role(allowed_roles: list[str]):
    """
    Dependency factory for role-based access control.

    Args:
        allowed_roles: List of allowed role values

    Returns:
        Dependency function
    """
    async def role_checker(
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role.value not in allowed_roles:
            logger.warning(
                f"Role check failed for user {current_user.id} ({current_user.role.value}); "
                f"required: {', '.join(allowed_roles)}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_checker


async def require_approved(current_user: User = Depends(get_current_user)) -> User:
    """Reject principals whose account has not been approved yet."""
    if current_user.status != ApprovalStatus.APPROVED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account not approved"
        )
    return current_user


ADMIN_ROLES = [UserRole.SUPER_ADMIN.value, UserRole.COLLEGE_ADMIN.value]
REVIEWER_ROLES = [UserRole.SUPER_ADMIN.value, UserRole.COLLEGE_ADMIN.value, UserRole.PROFESSOR.value]

require_super_admin = require_role([UserRole.SUPER_ADMIN.value])
require_admin = require_role(ADMIN_ROLES)
require_reviewer = require_role(REVIEWER_ROLES)
