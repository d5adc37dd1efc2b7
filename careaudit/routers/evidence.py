"""
CareAudit - Evidence Router

Internal endpoints for evidence requests, submitted items, review and
audit evidence portals.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from careaudit.dependencies import RequestContext, get_request_context
from careaudit.models.evidence import EvidenceStatus
from careaudit.schemas.audit import FindingResponse
from careaudit.schemas.evidence import (
    EvidenceItemResponse,
    EvidenceItemSubmit,
    EvidenceRequestCreate,
    EvidenceRequestResponse,
    EvidenceReviewRequest,
    EvidenceReviewResponse,
    EvidenceSubmitResponse,
    PortalCreateRequest,
    PortalResponse,
)
from careaudit.services.evidence_service import EvidenceService


router = APIRouter()


# ===========================================
# REQUESTS
# ===========================================

@router.post(
    "/requests",
    response_model=EvidenceRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request evidence",
)
async def create_evidence_request(
    request: EvidenceRequestCreate,
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).create_request(
        ctx.caller,
        document_type=request.document_type,
        title=request.title,
        request_note=request.request_note,
        due_date=request.due_date,
        audit_id=request.audit_id,
        template_indicator_id=request.template_indicator_id,
        finding_id=request.finding_id,
    )


@router.get("/requests", response_model=List[EvidenceRequestResponse], summary="List evidence requests")
async def list_evidence_requests(
    audit_id: Optional[UUID] = Query(None),
    finding_id: Optional[UUID] = Query(None),
    request_status: Optional[EvidenceStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).list_requests(
        audit_id=audit_id, finding_id=finding_id, status=request_status,
    )


@router.get("/requests/{request_id}", response_model=EvidenceRequestResponse, summary="Get evidence request")
async def get_evidence_request(
    request_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).get_request(request_id)


@router.get("/requests/{request_id}/items", response_model=List[EvidenceItemResponse], summary="List submitted items")
async def list_evidence_items(
    request_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    service = EvidenceService(ctx.tenant)
    await service.get_request(request_id)
    return await service.list_items(request_id)


@router.post(
    "/requests/{request_id}/items",
    response_model=EvidenceSubmitResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit evidence item",
)
async def submit_evidence_item(
    request_id: UUID,
    request: EvidenceItemSubmit,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await EvidenceService(ctx.tenant).submit_item(
        ctx.caller, request_id, **request.model_dump(),
    )
    return EvidenceSubmitResponse(
        request=EvidenceRequestResponse.model_validate(result.entity),
        item=EvidenceItemResponse.model_validate(result.derived[0]),
    )


# ===========================================
# REVIEW
# ===========================================

@router.post("/requests/{request_id}/start-review", response_model=EvidenceRequestResponse, summary="Start review")
async def start_evidence_review(
    request_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).start_review(ctx.caller, request_id)


@router.post(
    "/requests/{request_id}/review",
    response_model=EvidenceReviewResponse,
    summary="Accept or reject evidence",
    description="Accepting a finding-linked request also closes the finding.",
)
async def review_evidence(
    request_id: UUID,
    request: EvidenceReviewRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await EvidenceService(ctx.tenant).review(
        ctx.caller, request_id, request.decision, request.review_note,
    )
    closed = result.derived[0] if result.derived else None
    return EvidenceReviewResponse(
        request=EvidenceRequestResponse.model_validate(result.entity),
        closed_finding=FindingResponse.model_validate(closed) if closed is not None else None,
    )


# ===========================================
# PORTALS
# ===========================================

@router.post(
    "/audits/{audit_id}/portals",
    response_model=PortalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create audit evidence portal",
)
async def create_portal(
    audit_id: UUID,
    request: PortalCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).create_portal(
        ctx.caller, audit_id, request.password, request.expires_at,
    )


@router.get("/audits/{audit_id}/portals", response_model=List[PortalResponse], summary="List audit portals")
async def list_portals(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).list_portals(audit_id)


@router.post("/portals/{portal_id}/revoke", response_model=PortalResponse, summary="Revoke portal")
async def revoke_portal(
    portal_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await EvidenceService(ctx.tenant).revoke_portal(ctx.caller, portal_id)
