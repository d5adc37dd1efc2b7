"""
CareAudit - Evidence Models

Evidence requests and the items submitted against them, including the
per-audit evidence portal used by external auditors.

A request may stand alone, be linked to an audit (optionally to one
template indicator), or be linked to a single finding. Only references
(storage paths, external URLs) are stored, never file content.
"""

import enum
import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Date, DateTime, Enum as SQLEnum, ForeignKey, String, Text, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from careaudit.models.base import TenantModel


class EvidenceStatus(str, enum.Enum):
    """Evidence request lifecycle states."""
    REQUESTED = "REQUESTED"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


class EvidenceItemKind(str, enum.Enum):
    UPLOAD = "UPLOAD"
    LINK = "LINK"


class EvidenceRequest(TenantModel):
    """A request for supporting documentation."""
    
    __tablename__ = "evidence_requests"
    
    audit_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("audits.id"), nullable=True, index=True,
    )
    template_indicator_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("audit_template_indicators.id"), nullable=True,
    )
    # One request per finding
    finding_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("findings.id"), nullable=True, unique=True,
    )
    
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    request_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[EvidenceStatus] = mapped_column(
        SQLEnum(EvidenceStatus), default=EvidenceStatus.REQUESTED, nullable=False, index=True,
    )
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    public_token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    
    requested_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    reviewed_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    review_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class EvidenceItem(TenantModel):
    """One uploaded file reference or external link."""
    
    __tablename__ = "evidence_items"
    
    evidence_request_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("evidence_requests.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    kind: Mapped[EvidenceItemKind] = mapped_column(SQLEnum(EvidenceItemKind), nullable=False)
    storage_path: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    external_url: Mapped[Optional[str]] = mapped_column(String(2000), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    
    uploaded_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    external_uploader_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    external_uploader_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)


class AuditEvidencePortal(TenantModel):
    """Password-protected bulk submission portal for one audit."""
    
    __tablename__ = "audit_evidence_portals"
    
    audit_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("audits.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    token: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_accessed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
