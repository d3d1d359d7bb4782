"""
Credential utilities: bcrypt password hashing and signed JWT session tokens.
"""
from datetime import datetime, timedelta
from typing import Optional, Dict, Any, Tuple
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
from fastapi.security import HTTPBearer

from core.exceptions import InvalidTokenError, TokenExpiredError
import config

TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"
TOKEN_TYPE_PASSWORD_RESET = "password_reset"

# Missing credentials are reported by the dependency, not by the scheme
security = HTTPBearer(auto_error=False)


# Password utilities
def validate_password(password: str) -> Tuple[bool, Optional[str]]:
    """
    Validate password strength.

    Requirements:
    - Minimum MIN_PASSWORD_LENGTH characters (8 by default)
    - Maximum 72 bytes (bcrypt limit)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not password:
        return False, "Password is required"

    if len(password) < config.MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {config.MIN_PASSWORD_LENGTH} characters long"

    if len(password.encode('utf-8')) > 72:
        return False, "Password cannot be longer than 72 bytes. Please use a shorter password."

    return True, None


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash. Malformed hashes never verify."""
    if not plain_password or not hashed_password:
        return False
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt.

    Note: Password validation should be done before calling this function.
    Use validate_password() to check password requirements.
    """
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > 72:
        raise ValueError("Password cannot be longer than 72 bytes. Please use a shorter password.")

    salt = bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS)
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


# JWT Token utilities
def _encode(data: Dict[str, Any], token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.utcnow()
    to_encode.update({
        "exp": now + expires_delta,
        "iat": now,
        "type": token_type
    })
    return jwt.encode(to_encode, config.SECRET_KEY, algorithm=config.ALGORITHM)


def token_claims_for(user) -> Dict[str, Any]:
    """Claims embedded in every session token issued for a user."""
    return {"sub": str(user.id), "role": user.role.value, "email": user.email}


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Claims to encode (sub, role, ...)
        expires_delta: Optional expiration time (default ACCESS_TOKEN_EXPIRE_MINUTES)

    Returns:
        Encoded JWT token
    """
    return _encode(
        data,
        TOKEN_TYPE_ACCESS,
        expires_delta or timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    )


def create_refresh_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT refresh token (REFRESH_TOKEN_EXPIRE_DAYS by default)."""
    return _encode(
        data,
        TOKEN_TYPE_REFRESH,
        expires_delta or timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS)
    )


def create_password_reset_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """Create a single-purpose token accepted only by the reset-password endpoint."""
    return _encode(
        {"sub": str(user_id)},
        TOKEN_TYPE_PASSWORD_RESET,
        expires_delta or timedelta(minutes=config.PASSWORD_RESET_EXPIRE_MINUTES)
    )


def decode_token(token: str, expected_type: str = TOKEN_TYPE_ACCESS) -> Dict[str, Any]:
    """
    Decode and verify a JWT.

    Args:
        token: JWT token string
        expected_type: Required value of the "type" claim

    Returns:
        Decoded claims

    Raises:
        TokenExpiredError: Signature is valid but the token has expired
        InvalidTokenError: Bad signature, malformed token, wrong type, or a missing or non-numeric subject
    """
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise InvalidTokenError()

    if payload.get("type") != expected_type:
        raise InvalidTokenError("Invalid token type")
    try:
        int(payload.get("sub"))
    except (TypeError, ValueError):
        raise InvalidTokenError("Invalid token subject")
    return payload
