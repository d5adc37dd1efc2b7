"""
CareAudit - Security Utilities

Password hashing for evidence portals, JWT handling for caller and portal
sessions, and public token generation.
"""

import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from careaudit.config import settings


# Password hashing context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain password against a hashed password."""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password for storing."""
    return pwd_context.hash(password)


def generate_public_token() -> str:
    """
    Generate an unguessable token for unauthenticated evidence submission.

    Returns:
        64 hex characters (32 random bytes)
    """
    return secrets.token_hex(32)


def _encode(data: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    to_encode.update({
        "exp": datetime.now(timezone.utc) + expires_delta,
        "type": token_type,
    })
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Create a JWT access token.

    Tokens are issued by the authentication service; the claims this
    application relies on are ``sub`` (user id), ``company_id`` and ``role``.

    Args:
        data: Dictionary containing token payload
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    return _encode(
        data,
        "access",
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_portal_session_token(
    portal_id: str,
    audit_id: str,
    company_id: str,
    expires_delta: Optional[timedelta] = None
) -> str:
    """Create the session token handed to an external auditor after portal login."""
    return _encode(
        {"portal_id": portal_id, "audit_id": audit_id, "company_id": company_id},
        "portal_session",
        expires_delta or timedelta(minutes=settings.portal_session_expire_minutes),
    )


def decode_token(token: str) -> Optional[dict]:
    """
    Decode and verify a JWT token.

    Args:
        token: JWT token string

    Returns:
        Token payload dict or None if invalid
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
        return payload
    except JWTError:
        return None


def verify_access_token(token: str) -> Optional[dict]:
    """Verify an access token and return payload."""
    payload = decode_token(token)
    if payload and payload.get("type") == "access":
        return payload
    return None


def verify_portal_session_token(token: str) -> Optional[dict]:
    """Verify a portal session token and return payload."""
    payload = decode_token(token)
    if payload and payload.get("type") == "portal_session":
        return payload
    return None
