"""
CareAudit - Change Log Model

Append-only record of every workflow transition: who acted, on what,
and the state before and after.

This table should have no UPDATE or DELETE permissions.
"""

import enum
import uuid
from typing import Optional

from sqlalchemy import Enum as SQLEnum, Index, String, JSON, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from careaudit.models.base import TenantModel


class ActorType(str, enum.Enum):
    COMPANY_USER = "COMPANY_USER"
    EXTERNAL = "EXTERNAL"
    SYSTEM = "SYSTEM"


class ChangeAction(str, enum.Enum):
    """Workflow events written to the change log."""
    AUDIT_CREATED = "AUDIT_CREATED"
    AUDIT_SCOPE_UPDATED = "AUDIT_SCOPE_UPDATED"
    AUDIT_TEMPLATE_SELECTED = "AUDIT_TEMPLATE_SELECTED"
    AUDIT_STARTED = "AUDIT_STARTED"
    INDICATOR_RESPONSE_SAVED = "INDICATOR_RESPONSE_SAVED"
    AUDIT_SUBMITTED = "AUDIT_SUBMITTED"
    AUDIT_CLOSED = "AUDIT_CLOSED"
    FINDING_CREATED = "FINDING_CREATED"
    FINDING_UPDATED = "FINDING_UPDATED"
    FINDING_CLOSED = "FINDING_CLOSED"
    COMPLIANCE_RUN_CREATED = "COMPLIANCE_RUN_CREATED"
    COMPLIANCE_RUN_SUBMITTED = "COMPLIANCE_RUN_SUBMITTED"
    COMPLIANCE_ACTION_CREATED = "COMPLIANCE_ACTION_CREATED"
    COMPLIANCE_ACTION_UPDATED = "COMPLIANCE_ACTION_UPDATED"
    COMPLIANCE_ACTION_CLOSED = "COMPLIANCE_ACTION_CLOSED"
    EVIDENCE_REQUESTED = "EVIDENCE_REQUESTED"
    EVIDENCE_SUBMITTED = "EVIDENCE_SUBMITTED"
    EVIDENCE_REVIEW_STARTED = "EVIDENCE_REVIEW_STARTED"
    EVIDENCE_REVIEWED = "EVIDENCE_REVIEWED"
    EVIDENCE_PORTAL_CREATED = "EVIDENCE_PORTAL_CREATED"
    EVIDENCE_PORTAL_REVOKED = "EVIDENCE_PORTAL_REVOKED"
    DOCUMENT_REVIEWED = "DOCUMENT_REVIEWED"
    SUGGESTION_CREATED = "SUGGESTION_CREATED"
    SUGGESTION_CONFIRMED = "SUGGESTION_CONFIRMED"
    SUGGESTION_DISMISSED = "SUGGESTION_DISMISSED"
    WEEKLY_REPORT_GENERATED = "WEEKLY_REPORT_GENERATED"
    WEEKLY_REPORT_UPDATED = "WEEKLY_REPORT_UPDATED"


class ChangeLog(TenantModel):
    """Immutable audit trail entry."""
    
    __tablename__ = "change_logs"
    __table_args__ = (
        Index("ix_change_logs_entity", "entity_type", "entity_id"),
    )
    
    actor_type: Mapped[ActorType] = mapped_column(SQLEnum(ActorType), nullable=False)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    actor_label: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    action: Mapped[ChangeAction] = mapped_column(SQLEnum(ChangeAction), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    before_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    after_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    changes: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
