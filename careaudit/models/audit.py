"""
CareAudit - Audit Models

Formal audits run against a template of indicators:
- AuditTemplate / AuditTemplateIndicator: the indicator library
- Audit: one audit with its scope and lifecycle state
- AuditIndicatorResponse: one rating per (audit, indicator)
- Finding: at most one tracked non-conformance per (audit, indicator)
"""

import enum
import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer, JSON,
    String, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from careaudit.models.base import AuditMixin, TenantModel


# ===========================================
# ENUMS
# ===========================================

class AuditType(str, enum.Enum):
    """Who conducts the audit."""
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"


class AuditStatus(str, enum.Enum):
    """Audit lifecycle states."""
    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    IN_REVIEW = "IN_REVIEW"
    CLOSED = "CLOSED"


class IndicatorRating(str, enum.Enum):
    """
    Rating given to an indicator.

    OBSERVATION is only written through a confirmed suggested finding.
    """
    CONFORMITY_BEST_PRACTICE = "CONFORMITY_BEST_PRACTICE"
    CONFORMITY = "CONFORMITY"
    OBSERVATION = "OBSERVATION"
    MINOR_NC = "MINOR_NC"
    MAJOR_NC = "MAJOR_NC"
    
    @property
    def is_nonconformance(self) -> bool:
        return self in (IndicatorRating.MINOR_NC, IndicatorRating.MAJOR_NC)


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class FindingSeverity(str, enum.Enum):
    """Severity of a tracked non-conformance."""
    MINOR_NC = "MINOR_NC"
    MAJOR_NC = "MAJOR_NC"


class FindingStatus(str, enum.Enum):
    OPEN = "OPEN"
    UNDER_REVIEW = "UNDER_REVIEW"
    CLOSED = "CLOSED"


# ===========================================
# INDICATOR LIBRARY
# ===========================================

class AuditTemplate(TenantModel):
    """A named set of indicators an audit is run against."""
    
    __tablename__ = "audit_templates"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class AuditTemplateIndicator(TenantModel):
    """One question of an audit template. Immutable once referenced by a response."""
    
    __tablename__ = "audit_template_indicators"
    
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audit_templates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    indicator_text: Mapped[str] = mapped_column(Text, nullable=False)
    guidance_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evidence_requirements: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    risk_level: Mapped[RiskLevel] = mapped_column(
        SQLEnum(RiskLevel), default=RiskLevel.MEDIUM, nullable=False,
    )
    is_critical_control: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


# ===========================================
# AUDIT
# ===========================================

class Audit(TenantModel, AuditMixin):
    """
    A formal audit. Created in DRAFT and moved through its lifecycle by
    ``AuditWorkflowService``; never deleted.
    """
    
    __tablename__ = "audits"
    
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    audit_type: Mapped[AuditType] = mapped_column(SQLEnum(AuditType), nullable=False)
    status: Mapped[AuditStatus] = mapped_column(
        SQLEnum(AuditStatus), default=AuditStatus.DRAFT, nullable=False, index=True,
    )
    service_context: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    
    # Scope
    scope_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    scope_line_items: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    scope_domains: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)
    
    # External auditor (all three required for EXTERNAL audits)
    external_auditor_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_auditor_org: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_auditor_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    
    template_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("audit_templates.id"), nullable=True,
    )
    
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    close_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class AuditIndicatorResponse(TenantModel):
    """The rating given to one indicator in one audit. Upserted, never deleted."""
    
    __tablename__ = "audit_indicator_responses"
    __table_args__ = (
        UniqueConstraint("audit_id", "indicator_id", name="uq_audit_indicator_responses_audit_indicator"),
    )
    
    audit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    indicator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audit_template_indicators.id"), nullable=False,
    )
    rating: Mapped[IndicatorRating] = mapped_column(SQLEnum(IndicatorRating), nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    score_points: Mapped[int] = mapped_column(Integer, nullable=False)
    score_version: Mapped[str] = mapped_column(String(20), nullable=False)
    responded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)


class Finding(TenantModel):
    """A tracked non-conformance, created on the first NC rating of an (audit, indicator) pair."""
    
    __tablename__ = "findings"
    __table_args__ = (
        UniqueConstraint("audit_id", "indicator_id", name="uq_findings_audit_indicator"),
    )
    
    audit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    indicator_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audit_template_indicators.id"), nullable=False,
    )
    severity: Mapped[FindingSeverity] = mapped_column(SQLEnum(FindingSeverity), nullable=False)
    status: Mapped[FindingStatus] = mapped_column(
        SQLEnum(FindingStatus), default=FindingStatus.OPEN, nullable=False, index=True,
    )
    finding_text: Mapped[str] = mapped_column(Text, nullable=False)
    
    owner_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    
    closure_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
