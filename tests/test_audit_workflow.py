"""
CareAudit - Audit Workflow Tests

Service tests for the audit lifecycle, indicator responses and findings.
"""

import pytest

from careaudit.models.audit import (
    AuditStatus,
    AuditTemplateIndicator,
    AuditType,
    FindingSeverity,
    FindingStatus,
    IndicatorRating,
    RiskLevel,
)
from careaudit.models.change_log import ChangeAction
from careaudit.services.audit_workflow_service import AuditWorkflowService
from careaudit.services.change_log_service import ChangeLogService
from careaudit.utils.error_handling import (
    AuthorizationException,
    DuplicateEntryException,
    InvalidStateException,
    ValidationException,
)


NC_COMMENT = "Restrictive practice not authorised"


async def rate_all(service, actor, audit, indicators, rating=IndicatorRating.CONFORMITY):
    for indicator in indicators:
        await service.upsert_indicator_response(actor, audit.id, indicator.id, rating)


class TestAuditCreation:

    @pytest.mark.asyncio
    async def test_create_internal_audit(self, tenant, auditor):
        service = AuditWorkflowService(tenant)

        audit = await service.create_audit(
            auditor,
            title="Quarterly audit",
            audit_type=AuditType.INTERNAL,
            scope_line_items=[" 0104 ", "0104", "", "0107"],
        )

        assert audit.status == AuditStatus.DRAFT
        assert audit.scope_line_items == ["0104", "0107"]
        assert audit.scope_locked is False

        history = await ChangeLogService(tenant).history("audit", audit.id)
        assert [entry.action for entry in history] == [ChangeAction.AUDIT_CREATED]

    @pytest.mark.asyncio
    async def test_external_audit_needs_auditor_details(self, tenant, auditor):
        with pytest.raises(ValidationException):
            await AuditWorkflowService(tenant).create_audit(
                auditor,
                title="Certification audit",
                audit_type=AuditType.EXTERNAL,
                external_auditor_name="Pat Certifier",
            )

    @pytest.mark.asyncio
    async def test_staff_cannot_create_audits(self, tenant, staff):
        with pytest.raises(AuthorizationException):
            await AuditWorkflowService(tenant).create_audit(staff, title="Audit", audit_type=AuditType.INTERNAL)


class TestAuditStart:

    @pytest.mark.asyncio
    async def test_start_requires_scope_and_template(self, tenant, auditor, audit_template):
        service = AuditWorkflowService(tenant)
        audit = await service.create_audit(auditor, title="Audit", audit_type=AuditType.INTERNAL)

        with pytest.raises(ValidationException) as exc_info:
            await service.start_audit(auditor, audit.id)
        assert exc_info.value.field == "scope_line_items"

        await service.update_scope(auditor, audit.id, scope_line_items=["0104"])
        with pytest.raises(ValidationException) as exc_info:
            await service.start_audit(auditor, audit.id)
        assert exc_info.value.field == "template_id"

        await service.select_template(auditor, audit.id, audit_template[0].id)
        audit = await service.start_audit(auditor, audit.id)
        assert audit.status == AuditStatus.IN_PROGRESS
        assert audit.started_at is not None

    @pytest.mark.asyncio
    async def test_external_audit_scope_locks_on_start(self, tenant, auditor, audit_template):
        service = AuditWorkflowService(tenant)
        audit = await service.create_audit(
            auditor,
            title="Certification audit",
            audit_type=AuditType.EXTERNAL,
            scope_line_items=["0104"],
            external_auditor_name="Pat Certifier",
            external_auditor_org="Certify Co",
            external_auditor_email="pat@certify.test",
            template_id=audit_template[0].id,
        )

        audit = await service.start_audit(auditor, audit.id)

        assert audit.scope_locked is True
        with pytest.raises(InvalidStateException):
            await service.update_scope(auditor, audit.id, scope_line_items=["0107"])

    @pytest.mark.asyncio
    async def test_internal_scope_editable_while_in_progress(self, tenant, auditor, in_progress_audit):
        audit = await AuditWorkflowService(tenant).update_scope(
            auditor, in_progress_audit.id, scope_domains=["CORE", "SUPPORT"],
        )
        assert audit.scope_domains == ["CORE", "SUPPORT"]

    @pytest.mark.asyncio
    async def test_template_fixed_after_start(self, tenant, auditor, in_progress_audit, audit_template):
        with pytest.raises(InvalidStateException):
            await AuditWorkflowService(tenant).select_template(auditor, in_progress_audit.id, audit_template[0].id)


class TestIndicatorResponses:

    @pytest.mark.asyncio
    async def test_repeated_nonconformance_creates_one_finding(
        self, tenant, auditor, in_progress_audit, audit_template,
    ):
        service = AuditWorkflowService(tenant)
        indicator = audit_template[1][0]

        first = await service.upsert_indicator_response(
            auditor, in_progress_audit.id, indicator.id, IndicatorRating.MINOR_NC, NC_COMMENT,
        )
        second = await service.upsert_indicator_response(
            auditor, in_progress_audit.id, indicator.id, IndicatorRating.MAJOR_NC, NC_COMMENT,
        )

        assert len(first.derived) == 1
        assert second.derived == []
        assert second.entity.id == first.entity.id
        assert second.entity.score_points == 0

        findings = await service.list_findings(audit_id=in_progress_audit.id)
        assert len(findings) == 1
        assert findings[0].severity == FindingSeverity.MINOR_NC
        assert findings[0].finding_text == f"Indicator: Rights are upheld. Auditor comment: {NC_COMMENT}."

    @pytest.mark.asyncio
    async def test_nonconformance_needs_comment(self, tenant, auditor, in_progress_audit, audit_template):
        with pytest.raises(ValidationException) as exc_info:
            await AuditWorkflowService(tenant).upsert_indicator_response(
                auditor, in_progress_audit.id, audit_template[1][0].id, IndicatorRating.MAJOR_NC, "too short",
            )
        assert exc_info.value.field == "comment"

    @pytest.mark.asyncio
    async def test_observation_not_directly_selectable(self, tenant, auditor, in_progress_audit, audit_template):
        with pytest.raises(ValidationException):
            await AuditWorkflowService(tenant).upsert_indicator_response(
                auditor, in_progress_audit.id, audit_template[1][0].id, IndicatorRating.OBSERVATION,
            )

    @pytest.mark.asyncio
    async def test_indicator_must_belong_to_template(self, tenant, admin, auditor, in_progress_audit):
        _, other_indicators = await AuditWorkflowService(tenant).create_template(
            admin, name="Other", indicators=[{"indicator_text": "Unrelated"}],
        )
        with pytest.raises(ValidationException):
            await AuditWorkflowService(tenant).upsert_indicator_response(
                auditor, in_progress_audit.id, other_indicators[0].id, IndicatorRating.CONFORMITY,
            )

    @pytest.mark.asyncio
    async def test_responses_rejected_in_draft(self, tenant, auditor, audit_template):
        service = AuditWorkflowService(tenant)
        audit = await service.create_audit(
            auditor, title="Draft", audit_type=AuditType.INTERNAL, template_id=audit_template[0].id,
        )
        with pytest.raises(InvalidStateException):
            await service.upsert_indicator_response(
                auditor, audit.id, audit_template[1][0].id, IndicatorRating.CONFORMITY,
            )


class TestSubmitAndClose:

    @pytest.mark.asyncio
    async def test_submit_requires_every_indicator(self, tenant, auditor, in_progress_audit, audit_template):
        service = AuditWorkflowService(tenant)
        indicators = audit_template[1]
        await rate_all(service, auditor, in_progress_audit, indicators[:2])

        with pytest.raises(ValidationException) as exc_info:
            await service.submit_audit(auditor, in_progress_audit.id)
        assert exc_info.value.details == {"missing_count": 1}

        await rate_all(service, auditor, in_progress_audit, indicators[2:])
        audit = await service.submit_audit(auditor, in_progress_audit.id)
        assert audit.status == AuditStatus.IN_REVIEW

    @pytest.mark.asyncio
    async def test_open_major_blocks_close_without_reason(
        self, tenant, auditor, reviewer, in_progress_audit, audit_template,
    ):
        service = AuditWorkflowService(tenant)
        indicators = audit_template[1]
        await service.upsert_indicator_response(
            auditor, in_progress_audit.id, indicators[0].id, IndicatorRating.MAJOR_NC, NC_COMMENT,
        )
        await rate_all(service, auditor, in_progress_audit, indicators[1:])
        await service.submit_audit(auditor, in_progress_audit.id)

        with pytest.raises(ValidationException) as exc_info:
            await service.close_audit(reviewer, in_progress_audit.id)
        assert exc_info.value.details == {"open_major_findings": 1}

        audit = await service.close_audit(reviewer, in_progress_audit.id, "Accepted with follow-up plan")
        assert audit.status == AuditStatus.CLOSED
        assert audit.close_reason == "Accepted with follow-up plan"

    @pytest.mark.asyncio
    async def test_auditor_cannot_close(self, tenant, auditor, in_progress_audit, audit_template):
        service = AuditWorkflowService(tenant)
        await rate_all(service, auditor, in_progress_audit, audit_template[1])
        await service.submit_audit(auditor, in_progress_audit.id)

        with pytest.raises(AuthorizationException):
            await service.close_audit(auditor, in_progress_audit.id)

    @pytest.mark.asyncio
    async def test_late_response_only_for_unanswered(
        self, tenant, auditor, reviewer, in_progress_audit, audit_template,
    ):
        service = AuditWorkflowService(tenant)
        indicators = audit_template[1]
        await rate_all(service, auditor, in_progress_audit, indicators)
        await service.submit_audit(auditor, in_progress_audit.id)

        with pytest.raises(DuplicateEntryException) as exc_info:
            await service.add_in_review_response(
                reviewer, in_progress_audit.id, indicators[0].id, IndicatorRating.CONFORMITY_BEST_PRACTICE,
            )
        assert exc_info.value.existing_id is not None

        with pytest.raises(InvalidStateException):
            await service.upsert_indicator_response(
                auditor, in_progress_audit.id, indicators[0].id, IndicatorRating.CONFORMITY,
            )

    @pytest.mark.asyncio
    async def test_late_major_response_on_new_indicator(
        self, tenant, auditor, reviewer, in_progress_audit, audit_template,
    ):
        service = AuditWorkflowService(tenant)
        await rate_all(service, auditor, in_progress_audit, audit_template[1])
        await service.submit_audit(auditor, in_progress_audit.id)
        added = tenant.add(AuditTemplateIndicator(
            template_id=audit_template[0].id,
            indicator_text="Complaints are resolved",
            risk_level=RiskLevel.MEDIUM,
        ))
        await tenant.commit()

        result = await service.add_in_review_response(
            reviewer, in_progress_audit.id, added.id, IndicatorRating.MAJOR_NC, "Late major finding for complaints",
        )

        assert result.entity.score_points == 0
        assert len(result.derived) == 1
        assert result.derived[0].severity == FindingSeverity.MAJOR_NC
        findings = await service.list_findings(audit_id=in_progress_audit.id)
        assert [f.id for f in findings] == [result.derived[0].id]

        audit = await service.get_audit(in_progress_audit.id)
        assert audit.status == AuditStatus.IN_REVIEW

    @pytest.mark.asyncio
    async def test_auditor_cannot_add_late_response(
        self, tenant, auditor, in_progress_audit, audit_template,
    ):
        service = AuditWorkflowService(tenant)
        await rate_all(service, auditor, in_progress_audit, audit_template[1])
        await service.submit_audit(auditor, in_progress_audit.id)

        with pytest.raises(AuthorizationException):
            await service.add_in_review_response(
                auditor, in_progress_audit.id, audit_template[1][0].id, IndicatorRating.CONFORMITY,
            )


class TestSummaryAndFindings:

    @pytest.mark.asyncio
    async def test_summary_scores(self, tenant, auditor, in_progress_audit, audit_template):
        service = AuditWorkflowService(tenant)
        indicators = audit_template[1]
        await service.upsert_indicator_response(
            auditor, in_progress_audit.id, indicators[0].id, IndicatorRating.CONFORMITY_BEST_PRACTICE,
        )
        await service.upsert_indicator_response(
            auditor, in_progress_audit.id, indicators[1].id, IndicatorRating.CONFORMITY,
        )

        summary = await service.get_summary(in_progress_audit.id)

        assert summary.indicator_count == 3
        assert summary.completed_count == 2
        assert summary.score_points_total == 5
        assert summary.score_percent == 56
        assert summary.rating_counts["CONFORMITY"] == 1

    @pytest.mark.asyncio
    async def test_summary_without_template(self, tenant, auditor):
        service = AuditWorkflowService(tenant)
        audit = await service.create_audit(auditor, title="Draft", audit_type=AuditType.INTERNAL)
        summary = await service.get_summary(audit.id)
        assert summary.score_percent is None

    @pytest.mark.asyncio
    async def test_finding_lifecycle(
        self, tenant, auditor, reviewer, reviewer_user, in_progress_audit, audit_template,
    ):
        service = AuditWorkflowService(tenant)
        result = await service.upsert_indicator_response(
            auditor, in_progress_audit.id, audit_template[1][0].id, IndicatorRating.MINOR_NC, NC_COMMENT,
        )
        finding = result.derived[0]

        finding = await service.update_finding(
            auditor, finding.id, owner_user_id=reviewer_user.id, status=FindingStatus.UNDER_REVIEW,
        )
        assert finding.owner_user_id == reviewer_user.id
        assert finding.status == FindingStatus.UNDER_REVIEW

        with pytest.raises(AuthorizationException):
            await service.update_finding(auditor, finding.id, status=FindingStatus.CLOSED, closure_note="Fixed")

        with pytest.raises(ValidationException):
            await service.update_finding(reviewer, finding.id, status=FindingStatus.CLOSED)

        finding = await service.update_finding(
            reviewer, finding.id, status=FindingStatus.CLOSED, closure_note="Consent form now signed",
        )
        assert finding.status == FindingStatus.CLOSED
        assert finding.closed_by_id == reviewer.user_id

        with pytest.raises(InvalidStateException):
            await service.update_finding(reviewer, finding.id, status=FindingStatus.OPEN)

        history = await ChangeLogService(tenant).history("finding", finding.id)
        assert [entry.action for entry in history] == [
            ChangeAction.FINDING_CREATED,
            ChangeAction.FINDING_UPDATED,
            ChangeAction.FINDING_CLOSED,
        ]
