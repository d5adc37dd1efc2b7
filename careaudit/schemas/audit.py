"""
CareAudit - Audit Schemas

Pydantic schemas for audits, indicator templates, responses and findings.
"""

from datetime import date, datetime
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from careaudit.models.audit import (
    AuditStatus,
    AuditType,
    FindingSeverity,
    FindingStatus,
    IndicatorRating,
    RiskLevel,
)
from careaudit.schemas.common import ORMModel, TimestampedResponse


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class IndicatorCreate(BaseModel):
    indicator_text: str = Field(..., min_length=1)
    guidance_text: Optional[str] = None
    evidence_requirements: Optional[str] = None
    risk_level: RiskLevel = RiskLevel.MEDIUM
    is_critical_control: bool = False
    sort_order: Optional[int] = None


class AuditTemplateCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    indicators: List[IndicatorCreate] = Field(..., min_length=1)


class AuditCreateRequest(BaseModel):
    """Schema for creating an audit in DRAFT."""
    title: str = Field(..., min_length=1, max_length=255)
    audit_type: AuditType
    service_context: Optional[str] = Field(None, max_length=100)
    scope_line_items: List[str] = Field(default_factory=list, description="In-scope billable line item codes")
    scope_domains: List[str] = Field(default_factory=list)
    template_id: Optional[UUID] = None

    # Required together for EXTERNAL audits
    external_auditor_name: Optional[str] = Field(None, max_length=255)
    external_auditor_org: Optional[str] = Field(None, max_length=255)
    external_auditor_email: Optional[EmailStr] = None


class AuditScopeUpdateRequest(BaseModel):
    scope_line_items: Optional[List[str]] = None
    scope_domains: Optional[List[str]] = None


class SelectTemplateRequest(BaseModel):
    template_id: UUID


class CloseAuditRequest(BaseModel):
    close_reason: Optional[str] = None


class IndicatorResponseRequest(BaseModel):
    """Rating for one indicator. MINOR_NC and MAJOR_NC need a comment."""
    indicator_id: UUID
    rating: IndicatorRating
    comment: Optional[str] = None


class FindingUpdateRequest(BaseModel):
    owner_user_id: Optional[UUID] = None
    due_date: Optional[date] = None
    status: Optional[FindingStatus] = None
    closure_note: Optional[str] = None


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class IndicatorResponse(TimestampedResponse):
    template_id: UUID
    indicator_text: str
    guidance_text: Optional[str] = None
    evidence_requirements: Optional[str] = None
    risk_level: RiskLevel
    is_critical_control: bool
    sort_order: int


class AuditTemplateResponse(TimestampedResponse):
    name: str
    description: Optional[str] = None
    is_active: bool


class AuditTemplateDetailResponse(BaseModel):
    template: AuditTemplateResponse
    indicators: List[IndicatorResponse]


class AuditResponse(TimestampedResponse):
    """Schema for audit response."""
    title: str
    audit_type: AuditType
    status: AuditStatus
    service_context: Optional[str] = None
    scope_locked: bool
    scope_line_items: List[str]
    scope_domains: List[str]
    external_auditor_name: Optional[str] = None
    external_auditor_org: Optional[str] = None
    external_auditor_email: Optional[str] = None
    template_id: Optional[UUID] = None
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    closed_by_id: Optional[UUID] = None
    close_reason: Optional[str] = None


class IndicatorRatingResponse(TimestampedResponse):
    audit_id: UUID
    indicator_id: UUID
    rating: IndicatorRating
    comment: Optional[str] = None
    score_points: int
    score_version: str
    responded_by_id: Optional[UUID] = None


class FindingResponse(TimestampedResponse):
    audit_id: UUID
    indicator_id: UUID
    severity: FindingSeverity
    status: FindingStatus
    finding_text: str
    owner_user_id: Optional[UUID] = None
    due_date: Optional[date] = None
    closure_note: Optional[str] = None
    closed_by_id: Optional[UUID] = None
    closed_at: Optional[datetime] = None


class IndicatorResponseResult(BaseModel):
    """Saved response plus the finding it created, if any."""
    response: IndicatorRatingResponse
    finding_created: Optional[FindingResponse] = None


class AuditSummaryResponse(ORMModel):
    audit_id: UUID
    template_id: Optional[UUID] = None
    indicator_count: int
    completed_count: int
    score_points_total: int
    score_percent: Optional[int] = Field(None, description="Null until a template is selected")
    rating_counts: Dict[str, int]
    open_findings: int
    open_major_findings: int
