"""
CareAudit - Compliance Schemas

Pydantic schemas for checklist templates, runs, responses and actions.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from careaudit.models.company import ScopeType
from careaudit.models.compliance import (
    ActionSeverity,
    ActionStatus,
    Frequency,
    ResponseType,
    RunStatus,
    TrafficLight,
)
from careaudit.schemas.common import TimestampedResponse


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class TemplateItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)
    guidance_text: Optional[str] = None
    response_type: ResponseType = ResponseType.YES_NO_NA
    is_critical: bool = False
    notes_required_on_fail: bool = False
    sort_order: Optional[int] = None


class ComplianceTemplateCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    scope_type: ScopeType
    frequency: Frequency
    items: List[TemplateItemCreate] = Field(..., min_length=1)


class RunCreateRequest(BaseModel):
    """
    Open a run. DAILY templates use ``run_date`` (today when omitted);
    WEEKLY templates need ``period_start`` and ``period_end``.
    """
    template_id: UUID
    scope_entity_id: UUID = Field(..., description="Site or participant id, per the template scope")
    run_date: Optional[date] = None
    period_start: Optional[date] = None
    period_end: Optional[date] = None


class RunResponseRequest(BaseModel):
    template_item_id: UUID
    response_value: Optional[str] = None
    notes: Optional[str] = None
    attachment_path: Optional[str] = Field(None, max_length=1000)


class ActionUpdateRequest(BaseModel):
    assigned_to_id: Optional[UUID] = None
    status: Optional[ActionStatus] = None
    due_date: Optional[date] = None


class ActionCloseRequest(BaseModel):
    closure_notes: str = Field(..., min_length=1)
    attachment_path: Optional[str] = Field(None, max_length=1000)


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class TemplateItemResponse(TimestampedResponse):
    template_id: UUID
    title: str
    guidance_text: Optional[str] = None
    response_type: ResponseType
    is_critical: bool
    notes_required_on_fail: bool
    sort_order: int


class ComplianceTemplateResponse(TimestampedResponse):
    name: str
    scope_type: ScopeType
    frequency: Frequency
    is_active: bool


class ComplianceTemplateDetailResponse(BaseModel):
    template: ComplianceTemplateResponse
    items: List[TemplateItemResponse]


class RunResponse(TimestampedResponse):
    template_id: UUID
    scope_type: ScopeType
    scope_entity_id: UUID
    site_id: Optional[UUID] = None
    participant_id: Optional[UUID] = None
    frequency: Frequency
    period_start: datetime
    period_end: datetime
    status: RunStatus
    overall_status: Optional[TrafficLight] = None
    created_by_id: Optional[UUID] = None
    submitted_by_id: Optional[UUID] = None
    submitted_at: Optional[datetime] = None


class ComplianceResponseResponse(TimestampedResponse):
    run_id: UUID
    template_item_id: UUID
    response_value: Optional[str] = None
    notes: Optional[str] = None
    attachment_path: Optional[str] = None
    responded_by_id: Optional[UUID] = None


class ActionResponse(TimestampedResponse):
    run_id: UUID
    template_item_id: Optional[UUID] = None
    site_id: Optional[UUID] = None
    participant_id: Optional[UUID] = None
    title: str
    description: str
    severity: ActionSeverity
    status: ActionStatus
    assigned_to_id: Optional[UUID] = None
    due_date: Optional[date] = None
    closure_notes: Optional[str] = None
    closure_attachment_path: Optional[str] = None
    closed_by_id: Optional[UUID] = None
    closed_at: Optional[datetime] = None


class RunSubmitResponse(BaseModel):
    run: RunResponse
    actions: List[ActionResponse]
