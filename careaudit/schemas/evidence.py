"""
CareAudit - Evidence Schemas

Pydantic schemas for evidence requests, items, portals and the public
submission endpoints.
"""

from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from careaudit.models.document_review import ReviewDecision
from careaudit.models.evidence import EvidenceItemKind, EvidenceStatus
from careaudit.schemas.audit import FindingResponse
from careaudit.schemas.common import ORMModel, TimestampedResponse


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class EvidenceRequestCreate(BaseModel):
    """Standalone, audit-linked (optionally to one indicator) or finding-linked."""
    document_type: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=255)
    request_note: Optional[str] = None
    due_date: Optional[date] = None
    audit_id: Optional[UUID] = None
    template_indicator_id: Optional[UUID] = None
    finding_id: Optional[UUID] = None


class EvidenceItemSubmit(BaseModel):
    """UPLOAD needs storage_path and mime_type; LINK needs external_url."""
    kind: EvidenceItemKind
    storage_path: Optional[str] = Field(None, max_length=1000)
    file_name: Optional[str] = Field(None, max_length=255)
    mime_type: Optional[str] = Field(None, max_length=100)
    external_url: Optional[str] = Field(None, max_length=2000)
    note: Optional[str] = None


class ExternalEvidenceSubmit(EvidenceItemSubmit):
    uploader_name: str = Field(..., min_length=1, max_length=255)
    uploader_email: EmailStr


class EvidenceReviewRequest(BaseModel):
    decision: ReviewDecision
    review_note: Optional[str] = None


class PortalCreateRequest(BaseModel):
    password: str = Field(..., min_length=8, max_length=128)
    expires_at: Optional[datetime] = None


class PortalLoginRequest(BaseModel):
    password: str


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class EvidenceRequestResponse(TimestampedResponse):
    audit_id: Optional[UUID] = None
    template_indicator_id: Optional[UUID] = None
    finding_id: Optional[UUID] = None
    document_type: str
    title: str
    request_note: Optional[str] = None
    status: EvidenceStatus
    due_date: Optional[date] = None
    public_token: str
    requested_by_id: Optional[UUID] = None
    reviewed_by_id: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_note: Optional[str] = None


class PublicEvidenceRequestResponse(ORMModel):
    """What a token holder may see: no internal ids beyond the request."""
    id: UUID
    document_type: str
    title: str
    request_note: Optional[str] = None
    status: EvidenceStatus
    due_date: Optional[date] = None


class EvidenceItemResponse(TimestampedResponse):
    evidence_request_id: UUID
    kind: EvidenceItemKind
    storage_path: Optional[str] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    external_url: Optional[str] = None
    note: Optional[str] = None
    uploaded_by_user_id: Optional[UUID] = None
    external_uploader_name: Optional[str] = None
    external_uploader_email: Optional[str] = None


class EvidenceSubmitResponse(BaseModel):
    request: EvidenceRequestResponse
    item: EvidenceItemResponse


class PublicSubmitResponse(BaseModel):
    request: PublicEvidenceRequestResponse
    item_id: UUID


class EvidenceReviewResponse(BaseModel):
    request: EvidenceRequestResponse
    closed_finding: Optional[FindingResponse] = None


class PortalResponse(TimestampedResponse):
    audit_id: UUID
    token: str
    expires_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    last_accessed_at: Optional[datetime] = None


class PortalSessionResponse(BaseModel):
    session_token: str
    token_type: str = "bearer"
    portal_id: UUID
    audit_id: UUID
    expires_at: Optional[datetime] = None


class PortalRequestList(BaseModel):
    requests: List[PublicEvidenceRequestResponse]
