"""
CareAudit - Evidence Workflow Tests

Service tests for evidence requests, review, public token submission
and audit portals.
"""

from datetime import timedelta

import pytest
import pytest_asyncio

from careaudit.models.audit import FindingStatus, IndicatorRating
from careaudit.models.base import utc_now
from careaudit.models.change_log import ActorType, ChangeAction
from careaudit.models.document_review import ReviewDecision
from careaudit.models.evidence import EvidenceItemKind, EvidenceStatus
from careaudit.services.audit_workflow_service import AuditWorkflowService
from careaudit.services.change_log_service import ChangeLogService
from careaudit.services.evidence_service import EvidenceService, PublicEvidenceService
from careaudit.utils.error_handling import (
    AuthenticationException,
    AuthorizationException,
    DuplicateEntryException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)
from careaudit.utils.security import verify_portal_session_token


PORTAL_PASSWORD = "harbour-portal-2025"

UPLOAD = {
    "kind": EvidenceItemKind.UPLOAD,
    "storage_path": "evidence/care-plan.pdf",
    "mime_type": "application/pdf",
}


@pytest_asyncio.fixture
async def finding(tenant, auditor, in_progress_audit, audit_template):
    result = await AuditWorkflowService(tenant).upsert_indicator_response(
        auditor,
        in_progress_audit.id,
        audit_template[1][0].id,
        IndicatorRating.MINOR_NC,
        "Consent form missing signature",
    )
    return result.derived[0]


@pytest_asyncio.fixture
async def evidence_request(tenant, auditor):
    return await EvidenceService(tenant).create_request(
        auditor, document_type="CARE_PLAN", title="Current care plan",
    )


async def submit_and_start_review(service, actor, request_id):
    await service.submit_item(actor, request_id, **UPLOAD)
    return await service.start_review(actor, request_id)


class TestRequests:

    @pytest.mark.asyncio
    async def test_new_request_has_public_token(self, evidence_request):
        assert evidence_request.status == EvidenceStatus.REQUESTED
        assert len(evidence_request.public_token) == 64

    @pytest.mark.asyncio
    async def test_finding_request_inherits_audit_and_indicator(self, tenant, auditor, finding):
        request = await EvidenceService(tenant).create_request(
            auditor, document_type="CONSENT", title="Signed consent", finding_id=finding.id,
        )
        assert request.audit_id == finding.audit_id
        assert request.template_indicator_id == finding.indicator_id

    @pytest.mark.asyncio
    async def test_one_request_per_finding(self, tenant, auditor, finding):
        service = EvidenceService(tenant)
        first = await service.create_request(
            auditor, document_type="CONSENT", title="Signed consent", finding_id=finding.id,
        )

        with pytest.raises(DuplicateEntryException) as exc_info:
            await service.create_request(
                auditor, document_type="CONSENT", title="Again", finding_id=finding.id,
            )
        assert exc_info.value.existing_id == str(first.id)

    @pytest.mark.asyncio
    async def test_indicator_link_needs_audit(self, tenant, auditor, audit_template):
        with pytest.raises(ValidationException):
            await EvidenceService(tenant).create_request(
                auditor, document_type="POLICY", title="Policy",
                template_indicator_id=audit_template[1][0].id,
            )

    @pytest.mark.asyncio
    async def test_staff_cannot_request_evidence(self, tenant, staff):
        with pytest.raises(AuthorizationException):
            await EvidenceService(tenant).create_request(staff, document_type="POLICY", title="Policy")


class TestSubmissionAndReview:

    @pytest.mark.asyncio
    async def test_upload_needs_path_and_mime_type(self, tenant, auditor, evidence_request):
        with pytest.raises(ValidationException):
            await EvidenceService(tenant).submit_item(
                auditor, evidence_request.id, EvidenceItemKind.UPLOAD, storage_path="evidence/plan.pdf",
            )

    @pytest.mark.asyncio
    async def test_link_needs_http_url(self, tenant, auditor, evidence_request):
        service = EvidenceService(tenant)
        with pytest.raises(ValidationException):
            await service.submit_item(auditor, evidence_request.id, EvidenceItemKind.LINK, external_url="ftp://x")

        result = await service.submit_item(
            auditor, evidence_request.id, EvidenceItemKind.LINK, external_url="https://docs.example/plan",
        )
        assert result.entity.status == EvidenceStatus.SUBMITTED
        assert result.derived[0].uploaded_by_user_id == auditor.user_id

    @pytest.mark.asyncio
    async def test_rejected_request_takes_a_new_submission(self, tenant, auditor, reviewer, evidence_request):
        service = EvidenceService(tenant)
        await submit_and_start_review(service, auditor, evidence_request.id)

        result = await service.review(reviewer, evidence_request.id, ReviewDecision.REJECT, "Unsigned copy")
        assert result.entity.status == EvidenceStatus.REJECTED
        assert result.entity.review_note == "Unsigned copy"

        result = await service.submit_item(auditor, evidence_request.id, **UPLOAD)
        assert result.entity.status == EvidenceStatus.SUBMITTED
        assert len(await service.list_items(evidence_request.id)) == 2

    @pytest.mark.asyncio
    async def test_accepted_request_is_closed_to_submissions(self, tenant, auditor, reviewer, evidence_request):
        service = EvidenceService(tenant)
        await submit_and_start_review(service, auditor, evidence_request.id)
        await service.review(reviewer, evidence_request.id, ReviewDecision.ACCEPT)

        with pytest.raises(InvalidStateException):
            await service.submit_item(auditor, evidence_request.id, **UPLOAD)

    @pytest.mark.asyncio
    async def test_review_requires_under_review(self, tenant, auditor, reviewer, evidence_request):
        service = EvidenceService(tenant)
        await service.submit_item(auditor, evidence_request.id, **UPLOAD)

        with pytest.raises(InvalidStateException):
            await service.review(reviewer, evidence_request.id, ReviewDecision.ACCEPT)

    @pytest.mark.asyncio
    async def test_accepting_evidence_closes_the_finding(self, tenant, auditor, reviewer, finding):
        service = EvidenceService(tenant)
        request = await service.create_request(
            auditor, document_type="CONSENT", title="Signed consent", finding_id=finding.id,
        )
        await submit_and_start_review(service, auditor, request.id)

        result = await service.review(reviewer, request.id, ReviewDecision.ACCEPT, "Signed form on file")

        assert result.entity.status == EvidenceStatus.ACCEPTED
        closed = result.derived[0]
        assert closed.id == finding.id
        assert closed.status == FindingStatus.CLOSED
        assert closed.closure_note == "Signed form on file"

        history = await ChangeLogService(tenant).history("finding", finding.id)
        assert history[-1].action == ChangeAction.FINDING_CLOSED

    @pytest.mark.asyncio
    async def test_rejecting_evidence_leaves_the_finding_open(self, tenant, auditor, reviewer, finding):
        service = EvidenceService(tenant)
        request = await service.create_request(
            auditor, document_type="CONSENT", title="Signed consent", finding_id=finding.id,
        )
        await submit_and_start_review(service, auditor, request.id)

        result = await service.review(reviewer, request.id, ReviewDecision.REJECT)

        assert result.derived == []
        findings = await AuditWorkflowService(tenant).list_findings(audit_id=finding.audit_id)
        assert findings[0].status == FindingStatus.OPEN


class TestPublicTokenSubmission:

    @pytest.mark.asyncio
    async def test_external_submission_is_attributed(self, db_session, tenant, evidence_request):
        result = await PublicEvidenceService(db_session).submit_with_token(
            evidence_request.public_token, "Casey Contractor", "Casey@Contractor.test", **UPLOAD,
        )

        assert result.entity.status == EvidenceStatus.SUBMITTED
        item = result.derived[0]
        assert item.uploaded_by_user_id is None
        assert item.external_uploader_email == "casey@contractor.test"

        history = await ChangeLogService(tenant).history("evidence_request", evidence_request.id)
        entry = history[-1]
        assert entry.action == ChangeAction.EVIDENCE_SUBMITTED
        assert entry.actor_type == ActorType.EXTERNAL
        assert entry.actor_label == "external:casey@contractor.test"

    @pytest.mark.asyncio
    async def test_external_submitter_must_identify(self, db_session, evidence_request):
        with pytest.raises(ValidationException):
            await PublicEvidenceService(db_session).submit_with_token(
                evidence_request.public_token, "", "casey@contractor.test", **UPLOAD,
            )

    @pytest.mark.asyncio
    async def test_unknown_token(self, db_session, company):
        with pytest.raises(NotFoundException):
            await PublicEvidenceService(db_session).submit_with_token(
                "0" * 64, "Casey", "casey@contractor.test", **UPLOAD,
            )


class TestAuditPortal:

    @pytest_asyncio.fixture
    async def portal(self, tenant, auditor, in_progress_audit):
        return await EvidenceService(tenant).create_portal(auditor, in_progress_audit.id, PORTAL_PASSWORD)

    @pytest.mark.asyncio
    async def test_short_password_rejected(self, tenant, auditor, in_progress_audit):
        with pytest.raises(ValidationException):
            await EvidenceService(tenant).create_portal(auditor, in_progress_audit.id, "short")

    @pytest.mark.asyncio
    async def test_open_with_password(self, db_session, portal):
        opened, session_token = await PublicEvidenceService(db_session).open_portal(portal.token, PORTAL_PASSWORD)

        claims = verify_portal_session_token(session_token)
        assert opened.last_accessed_at is not None
        assert claims["portal_id"] == str(portal.id)
        assert claims["audit_id"] == str(portal.audit_id)

    @pytest.mark.asyncio
    async def test_wrong_password(self, db_session, portal):
        with pytest.raises(AuthenticationException):
            await PublicEvidenceService(db_session).open_portal(portal.token, "not-the-password")

    @pytest.mark.asyncio
    async def test_revoked_portal(self, db_session, tenant, auditor, portal):
        await EvidenceService(tenant).revoke_portal(auditor, portal.id)
        with pytest.raises(AuthorizationException):
            await PublicEvidenceService(db_session).open_portal(portal.token, PORTAL_PASSWORD)

    @pytest.mark.asyncio
    async def test_expired_portal(self, db_session, tenant, auditor, in_progress_audit):
        portal = await EvidenceService(tenant).create_portal(
            auditor, in_progress_audit.id, PORTAL_PASSWORD, expires_at=utc_now() + timedelta(hours=1),
        )
        portal.expires_at = utc_now() - timedelta(minutes=1)
        await db_session.commit()

        with pytest.raises(AuthorizationException):
            await PublicEvidenceService(db_session).open_portal(portal.token, PORTAL_PASSWORD)

    @pytest.mark.asyncio
    async def test_portal_lists_and_submits_within_its_audit(
        self, db_session, tenant, auditor, in_progress_audit, portal, evidence_request,
    ):
        service = EvidenceService(tenant)
        audit_request = await service.create_request(
            auditor, document_type="POLICY", title="Incident policy", audit_id=in_progress_audit.id,
        )
        public = PublicEvidenceService(db_session)
        _, session_token = await public.open_portal(portal.token, PORTAL_PASSWORD)
        claims = verify_portal_session_token(session_token)

        requests = await public.portal_requests(claims)
        assert [r.id for r in requests] == [audit_request.id]

        result = await public.portal_submit(
            claims, audit_request.id, "Pat Certifier", "pat@certify.test", **UPLOAD,
        )
        assert result.entity.status == EvidenceStatus.SUBMITTED
        assert await public.portal_requests(claims) == []

        # Requests outside the portal's audit look like they do not exist
        with pytest.raises(NotFoundException):
            await public.portal_submit(
                claims, evidence_request.id, "Pat Certifier", "pat@certify.test", **UPLOAD,
            )

    @pytest.mark.asyncio
    async def test_revocation_ends_existing_sessions(self, db_session, tenant, auditor, portal):
        public = PublicEvidenceService(db_session)
        _, session_token = await public.open_portal(portal.token, PORTAL_PASSWORD)
        claims = verify_portal_session_token(session_token)

        await EvidenceService(tenant).revoke_portal(auditor, portal.id)

        with pytest.raises(AuthorizationException):
            await public.portal_requests(claims)
