"""
CareAudit - Document Review Router

Document checklists, checklist reviews of submitted evidence and the
suggested findings they produce.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from careaudit.dependencies import RequestContext, get_request_context
from careaudit.models.audit import Finding
from careaudit.models.document_review import SuggestionStatus
from careaudit.schemas.audit import FindingResponse, IndicatorRatingResponse
from careaudit.schemas.document_review import (
    ChecklistItemResponse,
    ChecklistTemplateCreateRequest,
    ChecklistTemplateDetailResponse,
    ChecklistTemplateResponse,
    ConfirmSuggestionRequest,
    ConfirmSuggestionResult,
    DismissSuggestionRequest,
    DocumentReviewCreateRequest,
    DocumentReviewResponse,
    DocumentReviewResult,
    SuggestedFindingResponse,
)
from careaudit.services.document_review_service import DocumentReviewService


router = APIRouter()


# ===========================================
# CHECKLISTS
# ===========================================

@router.post(
    "/checklists",
    response_model=ChecklistTemplateDetailResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create document checklist",
    description="Replaces the active checklist for the same document type.",
)
async def create_checklist(
    request: ChecklistTemplateCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    template, items = await DocumentReviewService(ctx.tenant).create_checklist_template(
        ctx.caller,
        document_type=request.document_type,
        name=request.name,
        items=[i.model_dump(exclude_none=True) for i in request.items],
    )
    return ChecklistTemplateDetailResponse(
        template=ChecklistTemplateResponse.model_validate(template),
        items=[ChecklistItemResponse.model_validate(i) for i in items],
    )


@router.get(
    "/checklists/{document_type}",
    response_model=ChecklistTemplateDetailResponse,
    summary="Active checklist for a document type",
)
async def get_checklist(
    document_type: str,
    ctx: RequestContext = Depends(get_request_context),
):
    service = DocumentReviewService(ctx.tenant)
    template = await service.checklist_for(document_type)
    items = await service.checklist_items(template.id)
    return ChecklistTemplateDetailResponse(
        template=ChecklistTemplateResponse.model_validate(template),
        items=[ChecklistItemResponse.model_validate(i) for i in items],
    )


# ===========================================
# REVIEWS
# ===========================================

@router.post(
    "/reviews",
    response_model=DocumentReviewResult,
    status_code=status.HTTP_201_CREATED,
    summary="Review evidence item",
    description="Score the item against its checklist; may raise a suggested finding.",
)
async def review_document(
    request: DocumentReviewCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await DocumentReviewService(ctx.tenant).review_document(
        ctx.caller,
        evidence_item_id=request.evidence_item_id,
        responses=request.responses,
        decision=request.decision,
        comments=request.comments,
    )
    suggestion = result.derived[0] if result.derived else None
    return DocumentReviewResult(
        review=DocumentReviewResponse.model_validate(result.entity),
        suggestion=SuggestedFindingResponse.model_validate(suggestion) if suggestion is not None else None,
    )


@router.get("/reviews/{review_id}", response_model=DocumentReviewResponse, summary="Get review")
async def get_review(
    review_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await DocumentReviewService(ctx.tenant).get_review(review_id)


@router.get("/items/{evidence_item_id}/reviews", response_model=List[DocumentReviewResponse], summary="Reviews of an item")
async def list_item_reviews(
    evidence_item_id: UUID,
    ctx: RequestContext = Depends(get_request_context),
):
    return await DocumentReviewService(ctx.tenant).reviews_for_item(evidence_item_id)


# ===========================================
# SUGGESTED FINDINGS
# ===========================================

@router.get("/suggestions", response_model=List[SuggestedFindingResponse], summary="List suggested findings")
async def list_suggestions(
    audit_id: Optional[UUID] = Query(None),
    suggestion_status: Optional[SuggestionStatus] = Query(None, alias="status"),
    ctx: RequestContext = Depends(get_request_context),
):
    return await DocumentReviewService(ctx.tenant).list_suggestions(audit_id=audit_id, status=suggestion_status)


@router.post(
    "/suggestions/{suggestion_id}/confirm",
    response_model=ConfirmSuggestionResult,
    summary="Confirm suggested finding",
    description="Writes the final type as the indicator rating. Non-conformities create a finding.",
)
async def confirm_suggestion(
    suggestion_id: UUID,
    request: ConfirmSuggestionRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    result = await DocumentReviewService(ctx.tenant).confirm_suggestion(
        ctx.caller, suggestion_id, request.justification, request.final_type,
    )
    response = result.derived[0]
    findings = [d for d in result.derived if isinstance(d, Finding)]
    return ConfirmSuggestionResult(
        suggestion=SuggestedFindingResponse.model_validate(result.entity),
        response=IndicatorRatingResponse.model_validate(response),
        finding_created=FindingResponse.model_validate(findings[0]) if findings else None,
    )


@router.post("/suggestions/{suggestion_id}/dismiss", response_model=SuggestedFindingResponse, summary="Dismiss suggested finding")
async def dismiss_suggestion(
    suggestion_id: UUID,
    request: DismissSuggestionRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    return await DocumentReviewService(ctx.tenant).dismiss_suggestion(ctx.caller, suggestion_id, request.reason)
