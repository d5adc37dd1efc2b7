"""
CareAudit - Evidence Service

Evidence request lifecycle:
REQUESTED -> SUBMITTED -> UNDER_REVIEW -> ACCEPTED | REJECTED,
with REJECTED requests accepting a fresh submission.

Requests may stand alone, be linked to an audit indicator, or be linked
to one finding. Accepting finding-linked evidence closes the finding.
External submitters never hold an account: the request's public token,
or an audit portal token plus password, is their whole authorization.
"""

import logging
import uuid
from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from careaudit.models.audit import Audit, AuditTemplateIndicator, Finding
from careaudit.models.base import as_utc, utc_now
from careaudit.models.change_log import ActorType, ChangeAction
from careaudit.models.document_review import ReviewDecision
from careaudit.models.evidence import (
    AuditEvidencePortal,
    EvidenceItem,
    EvidenceItemKind,
    EvidenceRequest,
    EvidenceStatus,
)
from careaudit.services.audit_workflow_service import AuditWorkflowService
from careaudit.services.change_log_service import ChangeLogService, snapshot
from careaudit.services.results import WorkflowResult
from careaudit.services.rules.transitions import EVIDENCE_TRANSITIONS, EvidenceAction
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.utils.error_handling import (
    AuthenticationException,
    AuthorizationException,
    DuplicateEntryException,
    NotFoundException,
    ValidationException,
)
from careaudit.utils.permissions import CompanyPermission, require_permission
from careaudit.utils.security import (
    create_portal_session_token,
    generate_public_token,
    get_password_hash,
    verify_password,
)

logger = logging.getLogger(__name__)


REQUEST_FIELDS = ("status", "reviewed_by_id", "reviewed_at", "review_note")
ITEM_FIELDS = ("kind", "storage_path", "file_name", "external_url", "external_uploader_email")
OPEN_REQUEST_STATUSES = (EvidenceStatus.REQUESTED, EvidenceStatus.REJECTED)
MIN_PORTAL_PASSWORD_LENGTH = 8
DEFAULT_ACCEPTANCE_NOTE = "Evidence accepted"


class EvidenceService:
    """Service for evidence requests, submitted items and audit portals."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant
        self.change_log = ChangeLogService(tenant)
        self.audits = AuditWorkflowService(tenant)

    # ===========================================
    # REQUESTS
    # ===========================================

    async def create_request(
        self,
        actor: CallerContext,
        document_type: str,
        title: str,
        request_note: Optional[str] = None,
        due_date: Optional[date] = None,
        audit_id: Optional[uuid.UUID] = None,
        template_indicator_id: Optional[uuid.UUID] = None,
        finding_id: Optional[uuid.UUID] = None,
    ) -> EvidenceRequest:
        """
        Request supporting documentation.

        A finding-linked request inherits the finding's audit and indicator;
        a finding can carry only one request.
        """
        require_permission(actor.role, CompanyPermission.MANAGE_EVIDENCE)

        if finding_id is not None:
            finding = await self.tenant.get(Finding, finding_id, "Finding")
            existing = await self.tenant.first(
                self.tenant.select(EvidenceRequest).where(EvidenceRequest.finding_id == finding.id)
            )
            if existing is not None:
                raise DuplicateEntryException(
                    "Evidence request",
                    existing_id=existing.id,
                    message="An evidence request already exists for this finding",
                )
            audit_id = finding.audit_id
            template_indicator_id = template_indicator_id or finding.indicator_id

        if template_indicator_id is not None and audit_id is None:
            raise ValidationException(
                "An indicator-linked request must also reference the audit",
                field="audit_id",
            )

        if audit_id is not None:
            audit = await self.tenant.get(Audit, audit_id)
            if template_indicator_id is not None:
                indicator = await self.tenant.get(AuditTemplateIndicator, template_indicator_id, "Indicator")
                if indicator.template_id != audit.template_id:
                    raise ValidationException(
                        "Indicator does not belong to this audit's template",
                        field="template_indicator_id",
                    )

        request = EvidenceRequest(
            audit_id=audit_id,
            template_indicator_id=template_indicator_id,
            finding_id=finding_id,
            document_type=document_type,
            title=title,
            request_note=request_note,
            due_date=due_date,
            status=EvidenceStatus.REQUESTED,
            public_token=generate_public_token(),
            requested_by_id=actor.user_id,
        )
        self.tenant.add(request)
        try:
            await self.tenant.flush()
            await self.change_log.record(
                actor, ChangeAction.EVIDENCE_REQUESTED, "evidence_request", request.id,
                after=snapshot(request, ("status", "document_type", "audit_id", "finding_id")),
            )
            await self.tenant.commit()
        except IntegrityError:
            await self.tenant.rollback()
            raise DuplicateEntryException(
                "Evidence request",
                message="An evidence request already exists for this finding",
            )

        logger.info(f"Evidence request {request.id} created ({document_type})")
        return request

    async def get_request(self, request_id: uuid.UUID) -> EvidenceRequest:
        return await self.tenant.get(EvidenceRequest, request_id, "Evidence request")

    async def list_requests(
        self,
        audit_id: Optional[uuid.UUID] = None,
        finding_id: Optional[uuid.UUID] = None,
        status: Optional[EvidenceStatus] = None,
    ) -> List[EvidenceRequest]:
        stmt = self.tenant.select(EvidenceRequest)
        if audit_id:
            stmt = stmt.where(EvidenceRequest.audit_id == audit_id)
        if finding_id:
            stmt = stmt.where(EvidenceRequest.finding_id == finding_id)
        if status:
            stmt = stmt.where(EvidenceRequest.status == status)
        return await self.tenant.all(stmt.order_by(EvidenceRequest.created_at.desc()))

    async def list_items(self, request_id: uuid.UUID) -> List[EvidenceItem]:
        return await self.tenant.all(
            self.tenant.select(EvidenceItem)
            .where(EvidenceItem.evidence_request_id == request_id)
            .order_by(EvidenceItem.created_at.asc())
        )

    # ===========================================
    # SUBMISSION
    # ===========================================

    async def submit_item(
        self,
        actor: CallerContext,
        request_id: uuid.UUID,
        kind: EvidenceItemKind,
        storage_path: Optional[str] = None,
        file_name: Optional[str] = None,
        mime_type: Optional[str] = None,
        external_url: Optional[str] = None,
        note: Optional[str] = None,
        uploader_name: Optional[str] = None,
        uploader_email: Optional[str] = None,
    ) -> WorkflowResult[EvidenceRequest]:
        """
        Attach one item to a request and move it to SUBMITTED.

        Company users need manage_evidence; external actors are already
        authorized by the token they presented and must give a name and
        email.
        """
        if actor.actor_type == ActorType.COMPANY_USER:
            require_permission(actor.role, CompanyPermission.MANAGE_EVIDENCE)
        elif not (uploader_name or "").strip() or not (uploader_email or "").strip():
            raise ValidationException(
                "Uploader name and email are required",
                field="uploader_email",
            )

        request = await self.tenant.get(EvidenceRequest, request_id, "Evidence request", for_update=True)
        next_status = EVIDENCE_TRANSITIONS.next_state(request.status, EvidenceAction.SUBMIT)

        item = self._build_item(kind, storage_path, file_name, mime_type, external_url, note)
        item.evidence_request_id = request.id
        if actor.actor_type == ActorType.COMPANY_USER:
            item.uploaded_by_user_id = actor.user_id
        else:
            item.external_uploader_name = uploader_name.strip()
            item.external_uploader_email = uploader_email.strip().lower()
        self.tenant.add(item)

        before = snapshot(request, REQUEST_FIELDS)
        request.status = next_status
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.EVIDENCE_SUBMITTED, "evidence_request", request.id,
            before=before,
            after={**snapshot(request, REQUEST_FIELDS), "item": snapshot(item, ITEM_FIELDS)},
        )
        await self.tenant.commit()

        logger.info(f"Evidence submitted for request {request.id} by {actor.actor_label or actor.user_id}")
        return WorkflowResult(entity=request, derived=[item])

    @staticmethod
    def _build_item(
        kind: EvidenceItemKind,
        storage_path: Optional[str],
        file_name: Optional[str],
        mime_type: Optional[str],
        external_url: Optional[str],
        note: Optional[str],
    ) -> EvidenceItem:
        kind = EvidenceItemKind(kind)
        if kind == EvidenceItemKind.UPLOAD:
            if not storage_path or not mime_type:
                raise ValidationException(
                    "Uploads need a storage path and a mime type",
                    field="storage_path",
                )
            return EvidenceItem(
                kind=kind,
                storage_path=storage_path,
                file_name=file_name or storage_path.rsplit("/", 1)[-1],
                mime_type=mime_type,
                note=note,
            )

        if not external_url or not external_url.lower().startswith(("http://", "https://")):
            raise ValidationException("Links need an http(s) URL", field="external_url")
        return EvidenceItem(kind=kind, external_url=external_url, note=note)

    # ===========================================
    # REVIEW
    # ===========================================

    async def start_review(self, actor: CallerContext, request_id: uuid.UUID) -> EvidenceRequest:
        """SUBMITTED -> UNDER_REVIEW."""
        require_permission(actor.role, CompanyPermission.MANAGE_EVIDENCE)
        request = await self.tenant.get(EvidenceRequest, request_id, "Evidence request", for_update=True)

        before = snapshot(request, REQUEST_FIELDS)
        request.status = EVIDENCE_TRANSITIONS.next_state(request.status, EvidenceAction.START_REVIEW)
        request.reviewed_by_id = actor.user_id
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.EVIDENCE_REVIEW_STARTED, "evidence_request", request.id,
            before=before, after=snapshot(request, REQUEST_FIELDS),
        )
        await self.tenant.commit()
        return request

    async def review(
        self,
        actor: CallerContext,
        request_id: uuid.UUID,
        decision: ReviewDecision,
        review_note: Optional[str] = None,
    ) -> WorkflowResult[EvidenceRequest]:
        """
        UNDER_REVIEW -> ACCEPTED | REJECTED.

        Accepting a finding-linked request closes the finding in the same
        transaction; the closed finding is returned as derived.
        """
        require_permission(actor.role, CompanyPermission.MANAGE_EVIDENCE)
        request = await self.tenant.get(EvidenceRequest, request_id, "Evidence request", for_update=True)

        decision = ReviewDecision(decision)
        event = EvidenceAction.ACCEPT if decision == ReviewDecision.ACCEPT else EvidenceAction.REJECT
        next_status = EVIDENCE_TRANSITIONS.next_state(request.status, event)
        review_note = (review_note or "").strip() or None

        before = snapshot(request, REQUEST_FIELDS)
        request.status = next_status
        request.reviewed_by_id = actor.user_id
        request.reviewed_at = utc_now()
        request.review_note = review_note
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.EVIDENCE_REVIEWED, "evidence_request", request.id,
            before=before, after=snapshot(request, REQUEST_FIELDS),
        )

        derived = []
        if next_status == EvidenceStatus.ACCEPTED and request.finding_id:
            finding = await self.audits.close_finding_for_evidence(
                actor, request.finding_id, review_note or DEFAULT_ACCEPTANCE_NOTE,
            )
            if finding is not None:
                derived.append(finding)
                logger.info(f"Finding {finding.id} closed by accepted evidence {request.id}")

        await self.tenant.commit()
        return WorkflowResult(entity=request, derived=derived)

    # ===========================================
    # AUDIT PORTALS
    # ===========================================

    async def create_portal(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        password: str,
        expires_at: Optional[datetime] = None,
    ) -> AuditEvidencePortal:
        """Open a password-protected bulk submission portal for one audit."""
        require_permission(actor.role, CompanyPermission.MANAGE_EVIDENCE)
        audit = await self.tenant.get(Audit, audit_id)

        if not password or len(password) < MIN_PORTAL_PASSWORD_LENGTH:
            raise ValidationException(
                f"Portal password must be at least {MIN_PORTAL_PASSWORD_LENGTH} characters",
                field="password",
            )
        if expires_at is not None and as_utc(expires_at) <= utc_now():
            raise ValidationException("Expiry must be in the future", field="expires_at")

        portal = AuditEvidencePortal(
            audit_id=audit.id,
            token=generate_public_token(),
            password_hash=get_password_hash(password),
            expires_at=expires_at,
            created_by_id=actor.user_id,
        )
        self.tenant.add(portal)
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.EVIDENCE_PORTAL_CREATED, "audit_evidence_portal", portal.id,
            after=snapshot(portal, ("audit_id", "expires_at")),
        )
        await self.tenant.commit()
        return portal

    async def revoke_portal(self, actor: CallerContext, portal_id: uuid.UUID) -> AuditEvidencePortal:
        require_permission(actor.role, CompanyPermission.MANAGE_EVIDENCE)
        portal = await self.tenant.get(AuditEvidencePortal, portal_id, "Portal", for_update=True)
        if portal.revoked_at is not None:
            return portal

        portal.revoked_at = utc_now()
        await self.tenant.flush()
        await self.change_log.record(
            actor, ChangeAction.EVIDENCE_PORTAL_REVOKED, "audit_evidence_portal", portal.id,
            before={"revoked_at": None}, after=snapshot(portal, ("revoked_at",)),
        )
        await self.tenant.commit()
        return portal

    async def list_portals(self, audit_id: uuid.UUID) -> List[AuditEvidencePortal]:
        return await self.tenant.all(
            self.tenant.select(AuditEvidencePortal)
            .where(AuditEvidencePortal.audit_id == audit_id)
            .order_by(AuditEvidencePortal.created_at.desc())
        )

    async def open_requests_for_audit(self, audit_id: uuid.UUID) -> List[EvidenceRequest]:
        return await self.tenant.all(
            self.tenant.select(EvidenceRequest)
            .where(
                EvidenceRequest.audit_id == audit_id,
                EvidenceRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .order_by(EvidenceRequest.created_at.asc())
        )


def ensure_portal_usable(portal: AuditEvidencePortal) -> None:
    if portal.revoked_at is not None:
        raise AuthorizationException("This portal link has been revoked")
    if portal.expires_at is not None and as_utc(portal.expires_at) < utc_now():
        raise AuthorizationException("This portal link has expired")


class PublicEvidenceService:
    """
    Token-authorized evidence submission.

    The only lookups that start without a tenant: a public token or portal
    token is resolved to its row, and everything after that runs through a
    TenantSession bound to that row's company.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _request_by_token(self, token: str) -> EvidenceRequest:
        result = await self.session.execute(
            select(EvidenceRequest).where(EvidenceRequest.public_token == token)
        )
        request = result.scalars().first()
        if request is None:
            raise NotFoundException("Evidence request", message="Evidence request not found or link is invalid")
        return request

    async def get_request(self, token: str) -> EvidenceRequest:
        return await self._request_by_token(token)

    async def submit_with_token(
        self,
        token: str,
        uploader_name: str,
        uploader_email: str,
        kind: EvidenceItemKind,
        **item_fields,
    ) -> WorkflowResult[EvidenceRequest]:
        """Submit an item as an external actor holding the request's public token."""
        request = await self._request_by_token(token)
        tenant = TenantSession(self.session, request.company_id)
        actor = CallerContext.external(request.company_id, uploader_email or "")
        return await EvidenceService(tenant).submit_item(
            actor,
            request.id,
            kind,
            uploader_name=uploader_name,
            uploader_email=uploader_email,
            **item_fields,
        )

    async def open_portal(self, token: str, password: str) -> Tuple[AuditEvidencePortal, str]:
        """
        Check a portal password and issue a portal session token.

        Raises:
            NotFoundException: unknown portal token
            AuthorizationException: portal revoked or expired
            AuthenticationException: wrong password
        """
        result = await self.session.execute(
            select(AuditEvidencePortal).where(AuditEvidencePortal.token == token)
        )
        portal = result.scalars().first()
        if portal is None:
            raise NotFoundException("Portal", message="Portal not found or link is invalid")
        ensure_portal_usable(portal)
        if not verify_password(password, portal.password_hash):
            logger.warning(f"Failed portal login for portal {portal.id}")
            raise AuthenticationException("Invalid password")

        portal.last_accessed_at = utc_now()
        await self.session.commit()

        session_token = create_portal_session_token(
            str(portal.id), str(portal.audit_id), str(portal.company_id),
        )
        return portal, session_token

    async def portal_context(self, claims: dict) -> Tuple[TenantSession, AuditEvidencePortal]:
        """Re-check the portal behind a session token on every use."""
        try:
            company_id = uuid.UUID(claims["company_id"])
            portal_id = uuid.UUID(claims["portal_id"])
        except (KeyError, ValueError, TypeError):
            raise AuthenticationException("Invalid portal session")

        tenant = TenantSession(self.session, company_id)
        portal = await tenant.find(AuditEvidencePortal, portal_id)
        if portal is None:
            raise AuthenticationException("Portal not found")
        ensure_portal_usable(portal)
        return tenant, portal

    async def portal_requests(self, claims: dict) -> List[EvidenceRequest]:
        tenant, portal = await self.portal_context(claims)
        return await EvidenceService(tenant).open_requests_for_audit(portal.audit_id)

    async def portal_submit(
        self,
        claims: dict,
        request_id: uuid.UUID,
        uploader_name: str,
        uploader_email: str,
        kind: EvidenceItemKind,
        **item_fields,
    ) -> WorkflowResult[EvidenceRequest]:
        """Submit against one of the portal audit's requests."""
        tenant, portal = await self.portal_context(claims)
        request = await tenant.find(EvidenceRequest, request_id)
        if request is None or request.audit_id != portal.audit_id:
            raise NotFoundException("Evidence request", request_id)

        actor = CallerContext.external(portal.company_id, uploader_email or "")
        return await EvidenceService(tenant).submit_item(
            actor,
            request.id,
            kind,
            uploader_name=uploader_name,
            uploader_email=uploader_email,
            **item_fields,
        )
