"""
CareAudit - Compliance Checklist Models

Scheduled daily/weekly checklists for sites and participants:
- ComplianceTemplate / ComplianceTemplateItem: checklist definitions
- ComplianceRun: one template applied to one scope entity for one period
- ComplianceResponse: one answer per (run, item)
- ComplianceAction: corrective action derived on run submission
"""

import enum
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean, Date, DateTime, Enum as SQLEnum, ForeignKey, Integer,
    String, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from careaudit.models.base import TenantModel
from careaudit.models.company import ScopeType


# ===========================================
# ENUMS
# ===========================================

class Frequency(str, enum.Enum):
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"


class ResponseType(str, enum.Enum):
    """How a checklist item is answered."""
    YES_NO_NA = "YES_NO_NA"
    NUMBER = "NUMBER"
    TEXT = "TEXT"
    PHOTO_REQUIRED = "PHOTO_REQUIRED"


class RunStatus(str, enum.Enum):
    OPEN = "OPEN"
    SUBMITTED = "SUBMITTED"


class TrafficLight(str, enum.Enum):
    """Overall outcome of a submitted run or a weekly rollup."""
    GREEN = "GREEN"
    AMBER = "AMBER"
    RED = "RED"


class ActionSeverity(str, enum.Enum):
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"


class ActionStatus(str, enum.Enum):
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    CLOSED = "CLOSED"


# ===========================================
# TEMPLATES
# ===========================================

class ComplianceTemplate(TenantModel):
    """A daily or weekly checklist for sites or participants."""
    
    __tablename__ = "compliance_templates"
    
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    scope_type: Mapped[ScopeType] = mapped_column(SQLEnum(ScopeType), nullable=False)
    frequency: Mapped[Frequency] = mapped_column(SQLEnum(Frequency), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class ComplianceTemplateItem(TenantModel):
    """One checklist question."""
    
    __tablename__ = "compliance_template_items"
    
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("compliance_templates.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    guidance_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_type: Mapped[ResponseType] = mapped_column(SQLEnum(ResponseType), nullable=False)
    is_critical: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes_required_on_fail: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


# ===========================================
# RUNS
# ===========================================

class ComplianceRun(TenantModel):
    """
    One checklist instance.

    ``scope_entity_id`` is the site or participant id the run was resolved
    to; it carries the uniqueness key together with the template and the
    period so two callers cannot both open the same run.
    """
    
    __tablename__ = "compliance_runs"
    __table_args__ = (
        UniqueConstraint(
            "template_id", "scope_entity_id", "period_start", "period_end",
            name="uq_compliance_runs_template_scope_period",
        ),
    )
    
    template_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("compliance_templates.id"), nullable=False, index=True,
    )
    scope_type: Mapped[ScopeType] = mapped_column(SQLEnum(ScopeType), nullable=False)
    scope_entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("work_sites.id"), nullable=True,
    )
    participant_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("participants.id"), nullable=True, index=True,
    )
    frequency: Mapped[Frequency] = mapped_column(SQLEnum(Frequency), nullable=False)
    period_start: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period_end: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[RunStatus] = mapped_column(
        SQLEnum(RunStatus), default=RunStatus.OPEN, nullable=False, index=True,
    )
    overall_status: Mapped[Optional[TrafficLight]] = mapped_column(SQLEnum(TrafficLight), nullable=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    submitted_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    submitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ComplianceResponse(TenantModel):
    """The answer to one item in one run. Immutable once the run is submitted."""
    
    __tablename__ = "compliance_responses"
    __table_args__ = (
        UniqueConstraint("run_id", "template_item_id", name="uq_compliance_responses_run_item"),
    )
    
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("compliance_runs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_item_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("compliance_template_items.id"), nullable=False,
    )
    response_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attachment_path: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    responded_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)


class ComplianceAction(TenantModel):
    """A corrective action raised when a run is submitted with failing items."""
    
    __tablename__ = "compliance_actions"
    
    run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("compliance_runs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    template_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("compliance_template_items.id"), nullable=True,
    )
    site_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    participant_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    title: Mapped[str] = mapped_column(String(600), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[ActionSeverity] = mapped_column(SQLEnum(ActionSeverity), nullable=False)
    status: Mapped[ActionStatus] = mapped_column(
        SQLEnum(ActionStatus), default=ActionStatus.OPEN, nullable=False, index=True,
    )
    assigned_to_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    closure_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closure_attachment_path: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    closed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
