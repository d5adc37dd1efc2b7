"""
CareAudit - Audits Router

API endpoints for indicator templates, the audit lifecycle, indicator
responses and findings.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from careaudit.dependencies import RequestContext, get_request_context
from careaudit.models.audit import AuditStatus, FindingStatus
from careaudit.schemas.audit import (
    AuditCreateRequest,
    AuditResponse,
    AuditScopeUpdateRequest,
    AuditSummaryResponse,
    AuditTemplateCreateRequest,
    AuditTemplateDetailResponse,
    AuditTemplateResponse,
    CloseAuditRequest,
    FindingResponse,
    FindingUpdateRequest,
    IndicatorRatingResponse,
    IndicatorResponse,
    IndicatorResponseRequest,
    IndicatorResponseResult,
    SelectTemplateRequest,
)
from careaudit.schemas.common import ChangeLogResponse
from careaudit.services.audit_workflow_service import AuditWorkflowService
from careaudit.services.change_log_service import ChangeLogService
from careaudit.services.results import WorkflowResult


router = APIRouter()


def _rating_result(result: WorkflowResult) -> IndicatorResponseResult:
    findings = result.derived
    return IndicatorResponseResult(
        response=IndicatorRatingResponse.model_validate(result.entity),
        finding_created=FindingResponse.model_validate(findings[0]) if findings else None,
    )


# ===========================================
# TEMPLATES
# ===========================================

@router.post(
    "/audit-templates",
    response_model=AuditTemplateDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create audit template",
)
async def create_audit_template(
    request: AuditTemplateCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    template, indicators = await AuditWorkflowService(ctx.tenant).create_template(
        ctx.caller,
        name=request.name,
        description=request.description,
        indicators=[i.model_dump(exclude_none=True) for i in request.indicators],
    )
    return AuditTemplateDetailResponse(
        template=AuditTemplateResponse.model_validate(template),
        indicators=[IndicatorResponse.model_validate(i) for i in indicators],
    )


@router.get(
    "/audit-templates/{template_id}/indicators",
    response_model=List[IndicatorResponse],
    summary="List template indicators",
)
async def list_template_indicators(
    template_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).list_indicators(template_id)


# ===========================================
# AUDITS
# ===========================================

@router.post(
    "/audits",
    response_model=AuditResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create audit",
    description="Create an audit in DRAFT. External audits need auditor name, organisation and email.",
)
async def create_audit(
    request: AuditCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).create_audit(
        ctx.caller,
        title=request.title,
        audit_type=request.audit_type,
        scope_line_items=request.scope_line_items,
        scope_domains=request.scope_domains,
        service_context=request.service_context,
        external_auditor_name=request.external_auditor_name,
        external_auditor_org=request.external_auditor_org,
        external_auditor_email=request.external_auditor_email,
        template_id=request.template_id,
    )


@router.get("/audits", response_model=List[AuditResponse], summary="List audits")
async def list_audits(
    audit_status: Optional[AuditStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).list_audits(status=audit_status)


@router.get("/audits/{audit_id}", response_model=AuditResponse, summary="Get audit")
async def get_audit(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).get_audit(audit_id)


@router.patch("/audits/{audit_id}/scope", response_model=AuditResponse, summary="Update audit scope")
async def update_audit_scope(
    audit_id: UUID,
    request: AuditScopeUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).update_scope(
        ctx.caller,
        audit_id,
        scope_line_items=request.scope_line_items,
        scope_domains=request.scope_domains,
    )


@router.post("/audits/{audit_id}/template", response_model=AuditResponse, summary="Select audit template")
async def select_audit_template(
    audit_id: UUID,
    request: SelectTemplateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).select_template(ctx.caller, audit_id, request.template_id)


@router.post("/audits/{audit_id}/start", response_model=AuditResponse, summary="Start audit")
async def start_audit(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).start_audit(ctx.caller, audit_id)


@router.post("/audits/{audit_id}/submit", response_model=AuditResponse, summary="Submit audit for review")
async def submit_audit(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).submit_audit(ctx.caller, audit_id)


@router.post("/audits/{audit_id}/close", response_model=AuditResponse, summary="Close audit")
async def close_audit(
    audit_id: UUID,
    request: CloseAuditRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).close_audit(ctx.caller, audit_id, request.close_reason)


@router.get("/audits/{audit_id}/summary", response_model=AuditSummaryResponse, summary="Audit score summary")
async def get_audit_summary(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).get_summary(audit_id)


@router.get("/audits/{audit_id}/history", response_model=List[ChangeLogResponse], summary="Audit change history")
async def get_audit_history(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    await AuditWorkflowService(ctx.tenant).get_audit(audit_id)
    return await ChangeLogService(ctx.tenant).history("audit", audit_id)


# ===========================================
# INDICATOR RESPONSES
# ===========================================

@router.put(
    "/audits/{audit_id}/responses",
    response_model=IndicatorResponseResult,
    summary="Save indicator response",
    description="Upsert the rating of one indicator while the audit is IN_PROGRESS.",
)
async def upsert_indicator_response(
    audit_id: UUID,
    request: IndicatorResponseRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await AuditWorkflowService(ctx.tenant).upsert_indicator_response(
        ctx.caller, audit_id, request.indicator_id, request.rating, request.comment,
    )
    return _rating_result(result)


@router.post(
    "/audits/{audit_id}/in-review/responses",
    response_model=IndicatorResponseResult,
    status_code=status.HTTP_201_CREATED,
    summary="Add late indicator response",
    description="Answer a still-unanswered indicator while the audit is IN_REVIEW.",
)
async def add_in_review_response(
    audit_id: UUID,
    request: IndicatorResponseRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await AuditWorkflowService(ctx.tenant).add_in_review_response(
        ctx.caller, audit_id, request.indicator_id, request.rating, request.comment,
    )
    return _rating_result(result)


@router.get("/audits/{audit_id}/responses", response_model=List[IndicatorRatingResponse], summary="List indicator responses")
async def list_indicator_responses(
    audit_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).list_responses(audit_id)


# ===========================================
# FINDINGS
# ===========================================

@router.get("/findings", response_model=List[FindingResponse], summary="Findings register")
async def list_findings(
    audit_id: Optional[UUID] = Query(None),
    finding_status: Optional[FindingStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).list_findings(audit_id=audit_id, status=finding_status)


@router.patch("/findings/{finding_id}", response_model=FindingResponse, summary="Update finding")
async def update_finding(
    finding_id: UUID,
    request: FindingUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await AuditWorkflowService(ctx.tenant).update_finding(
        ctx.caller,
        finding_id,
        owner_user_id=request.owner_user_id,
        due_date=request.due_date,
        status=request.status,
        closure_note=request.closure_note,
    )
