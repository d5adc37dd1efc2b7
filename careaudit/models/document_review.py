"""
CareAudit - Document Review Models

Checklist-based quality review of a single evidence item and the
suggested finding it may produce.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, JSON,
    String, Text, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from careaudit.models.base import TenantModel


class ChecklistAnswer(str, enum.Enum):
    YES = "YES"
    NO = "NO"
    PARTLY = "PARTLY"
    NA = "NA"


class ReviewDecision(str, enum.Enum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


class SuggestedFindingType(str, enum.Enum):
    OBSERVATION = "OBSERVATION"
    MINOR_NC = "MINOR_NC"
    MAJOR_NC = "MAJOR_NC"


class SuggestionSeverity(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class SuggestionStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DISMISSED = "DISMISSED"


class DocumentChecklistTemplate(TenantModel):
    """Quality checklist for one document type."""
    
    __tablename__ = "document_checklist_templates"
    
    document_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class DocumentChecklistItem(TenantModel):
    __tablename__ = "document_checklist_items"
    
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_checklist_templates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    item_text: Mapped[str] = mapped_column(Text, nullable=False)
    is_critical: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class DocumentReview(TenantModel):
    """One review event for one evidence item."""
    
    __tablename__ = "document_reviews"
    
    evidence_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_requests.id"), nullable=False, index=True,
    )
    evidence_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_items.id"), nullable=False, index=True,
    )
    checklist_template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_checklist_templates.id"), nullable=False,
    )
    # [{"item_id": "...", "response": "YES"}, ...] as recorded
    responses: Mapped[List[dict]] = mapped_column(JSON, default=list, nullable=False)
    yes_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    partly_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    no_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    na_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    critical_failures_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    dqs_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    decision: Mapped[ReviewDecision] = mapped_column(SQLEnum(ReviewDecision), nullable=False)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)


class SuggestedFinding(TenantModel):
    """A system-proposed finding awaiting confirmation or dismissal."""
    
    __tablename__ = "suggested_findings"
    
    document_review_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("document_reviews.id"), nullable=False, unique=True,
    )
    evidence_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_requests.id"), nullable=False,
    )
    audit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audits.id"), nullable=False, index=True,
    )
    indicator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audit_template_indicators.id"), nullable=False,
    )
    suggested_type: Mapped[SuggestedFindingType] = mapped_column(SQLEnum(SuggestedFindingType), nullable=False)
    severity: Mapped[SuggestionSeverity] = mapped_column(SQLEnum(SuggestionSeverity), nullable=False)
    rationale: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[SuggestionStatus] = mapped_column(
        SQLEnum(SuggestionStatus), default=SuggestionStatus.PENDING, nullable=False, index=True,
    )
    
    final_type: Mapped[Optional[SuggestedFindingType]] = mapped_column(SQLEnum(SuggestedFindingType), nullable=True)
    decision_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    finding_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("findings.id"), nullable=True)
    indicator_response_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("audit_indicator_responses.id"), nullable=True,
    )
