"""
CareAudit - Public Router

Unauthenticated evidence submission. Holding a request's public token, or a
portal token plus its password, is the whole authorization model.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from careaudit.database import get_async_session
from careaudit.dependencies import get_portal_claims
from careaudit.schemas.evidence import (
    ExternalEvidenceSubmit,
    PortalLoginRequest,
    PortalRequestList,
    PortalSessionResponse,
    PublicEvidenceRequestResponse,
    PublicSubmitResponse,
)
from careaudit.services.evidence_service import PublicEvidenceService


router = APIRouter()


def _submit_fields(request: ExternalEvidenceSubmit) -> dict:
    return request.model_dump(exclude={"uploader_name", "uploader_email", "kind"})


@router.get(
    "/evidence/{token}",
    response_model=PublicEvidenceRequestResponse,
    summary="View evidence request by token",
)
async def get_public_request(
    token: str,
    db: AsyncSession = Depends(get_async_session),
):
    return await PublicEvidenceService(db).get_request(token)


@router.post(
    "/evidence/{token}",
    response_model=PublicSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit evidence by token",
)
async def submit_public_evidence(
    token: str,
    request: ExternalEvidenceSubmit,
    db: AsyncSession = Depends(get_async_session),
):
    result = await PublicEvidenceService(db).submit_with_token(
        token,
        request.uploader_name,
        request.uploader_email,
        request.kind,
        **_submit_fields(request),
    )
    return PublicSubmitResponse(
        request=PublicEvidenceRequestResponse.model_validate(result.entity),
        item_id=result.derived[0].id,
    )


@router.post(
    "/audit-portal/{token}/auth",
    response_model=PortalSessionResponse,
    summary="Open audit evidence portal",
    description="Exchange the portal password for a short-lived portal session token.",
)
async def open_portal(
    token: str,
    request: PortalLoginRequest,
    db: AsyncSession = Depends(get_async_session),
):
    portal, session_token = await PublicEvidenceService(db).open_portal(token, request.password)
    return PortalSessionResponse(
        session_token=session_token,
        portal_id=portal.id,
        audit_id=portal.audit_id,
        expires_at=portal.expires_at,
    )


@router.get(
    "/audit-portal/evidence-requests",
    response_model=PortalRequestList,
    summary="Open requests for the portal's audit",
)
async def list_portal_requests(
    claims: dict = Depends(get_portal_claims),
    db: AsyncSession = Depends(get_async_session),
):
    requests = await PublicEvidenceService(db).portal_requests(claims)
    return PortalRequestList(
        requests=[PublicEvidenceRequestResponse.model_validate(r) for r in requests],
    )


@router.post(
    "/audit-portal/evidence-requests/{request_id}/submit",
    response_model=PublicSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit evidence through the portal",
)
async def submit_portal_evidence(
    request_id: UUID,
    request: ExternalEvidenceSubmit,
    claims: dict = Depends(get_portal_claims),
    db: AsyncSession = Depends(get_async_session),
):
    result = await PublicEvidenceService(db).portal_submit(
        claims,
        request_id,
        request.uploader_name,
        request.uploader_email,
        request.kind,
        **_submit_fields(request),
    )
    return PublicSubmitResponse(
        request=PublicEvidenceRequestResponse.model_validate(result.entity),
        item_id=result.derived[0].id,
    )
