"""
CareAudit - Document Review Schemas
"""

from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from careaudit.models.document_review import (
    ChecklistAnswer,
    ReviewDecision,
    SuggestedFindingType,
    SuggestionSeverity,
    SuggestionStatus,
)
from careaudit.schemas.audit import FindingResponse, IndicatorRatingResponse
from careaudit.schemas.common import TimestampedResponse


class ChecklistItemCreate(BaseModel):
    item_text: str = Field(..., min_length=1)
    is_critical: bool = False
    sort_order: Optional[int] = None


class ChecklistTemplateCreateRequest(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    items: List[ChecklistItemCreate] = Field(..., min_length=1)


class DocumentReviewCreateRequest(BaseModel):
    evidence_item_id: UUID
    responses: Dict[UUID, ChecklistAnswer] = Field(..., description="Checklist item id -> answer")
    decision: ReviewDecision
    comments: Optional[str] = None


class ConfirmSuggestionRequest(BaseModel):
    justification: str = Field(..., min_length=1)
    final_type: Optional[SuggestedFindingType] = Field(None, description="Overrides the suggested type")


class DismissSuggestionRequest(BaseModel):
    reason: Optional[str] = None


class ChecklistTemplateResponse(TimestampedResponse):
    document_type: str
    name: str
    is_active: bool


class ChecklistItemResponse(TimestampedResponse):
    template_id: UUID
    item_text: str
    is_critical: bool
    sort_order: int


class ChecklistTemplateDetailResponse(BaseModel):
    template: ChecklistTemplateResponse
    items: List[ChecklistItemResponse]


class DocumentReviewResponse(TimestampedResponse):
    evidence_request_id: UUID
    evidence_item_id: UUID
    checklist_template_id: UUID
    responses: List[dict]
    yes_count: int
    partly_count: int
    no_count: int
    na_count: int
    critical_failures_count: int
    dqs_percent: int
    decision: ReviewDecision
    comments: Optional[str] = None
    reviewed_by_id: Optional[UUID] = None


class SuggestedFindingResponse(TimestampedResponse):
    document_review_id: UUID
    evidence_request_id: UUID
    audit_id: UUID
    indicator_id: UUID
    suggested_type: SuggestedFindingType
    severity: SuggestionSeverity
    rationale: str
    status: SuggestionStatus
    final_type: Optional[SuggestedFindingType] = None
    decision_note: Optional[str] = None
    decided_by_id: Optional[UUID] = None
    decided_at: Optional[datetime] = None
    finding_id: Optional[UUID] = None
    indicator_response_id: Optional[UUID] = None


class DocumentReviewResult(BaseModel):
    review: DocumentReviewResponse
    suggestion: Optional[SuggestedFindingResponse] = None


class ConfirmSuggestionResult(BaseModel):
    suggestion: SuggestedFindingResponse
    response: IndicatorRatingResponse
    finding_created: Optional[FindingResponse] = None
