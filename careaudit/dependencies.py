"""
CareAudit - FastAPI Dependencies

Shared dependencies for:
1. Database sessions
2. Caller authentication (company user JWTs and portal session JWTs)
3. The tenant-bound session every authenticated route works through
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from careaudit.database import get_async_session
from careaudit.models.company import CompanyUser
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.utils.security import verify_access_token, verify_portal_session_token


# HTTP Bearer token security
security = HTTPBearer(auto_error=False)


@dataclass
class RequestContext:
    """The authenticated caller and a session bound to their company."""
    caller: CallerContext
    tenant: TenantSession
    user: CompanyUser


def _bearer_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> str:
    token = None
    if credentials:
        token = credentials.credentials
    else:
        # Fallback to cookie
        token = request.cookies.get("access_token")
        if token and token.startswith("Bearer "):
            token = token[7:]

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token


async def get_request_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_async_session),
) -> RequestContext:
    """
    Authenticate a company user and bind a TenantSession to their company.

    The role is read from the user record, so a role change takes effect
    without reissuing tokens.

    Raises:
        HTTPException: If token is invalid or user not found
    """
    payload = verify_access_token(_bearer_token(request, credentials))
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = uuid.UUID(str(payload.get("sub")))
        company_id = uuid.UUID(str(payload.get("company_id")))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )

    tenant = TenantSession(db, company_id)
    user = await tenant.find(CompanyUser, user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    caller = CallerContext.company_user(company_id, user.id, user.role)
    return RequestContext(caller=caller, tenant=tenant, user=user)


async def get_portal_claims(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    """Claims of a portal session token issued by portal login."""
    payload = verify_portal_session_token(_bearer_token(request, credentials))
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return payload
