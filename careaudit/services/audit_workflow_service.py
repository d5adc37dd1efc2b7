"""
CareAudit - Audit Workflow Service

Drives a formal audit through DRAFT -> IN_PROGRESS -> IN_REVIEW -> CLOSED:
- scope and template selection while in draft
- indicator ratings, scored and versioned, with findings derived from
  the first non-conformance of each indicator
- submission completeness and closure rules
- finding ownership, due dates and closure
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError

from careaudit.config import settings
from careaudit.models.audit import (
    Audit,
    AuditIndicatorResponse,
    AuditStatus,
    AuditTemplate,
    AuditTemplateIndicator,
    AuditType,
    Finding,
    FindingSeverity,
    FindingStatus,
    IndicatorRating,
    RiskLevel,
)
from careaudit.models.base import utc_now
from careaudit.models.change_log import ChangeAction
from careaudit.models.company import CompanyUser
from careaudit.services.change_log_service import ChangeLogService, snapshot
from careaudit.services.results import WorkflowResult
from careaudit.services.rules.scoring import CURRENT_SCORE_VERSION, audit_score_percent, score_for_rating
from careaudit.services.rules.transitions import (
    AUDIT_TRANSITIONS,
    FINDING_ACTION_FOR_STATUS,
    FINDING_TRANSITIONS,
    AuditAction,
    FindingAction,
)
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.utils.error_handling import (
    ConflictException,
    DuplicateEntryException,
    InvalidStateException,
    ValidationException,
)
from careaudit.utils.permissions import CompanyPermission, require_permission

logger = logging.getLogger(__name__)


# Ratings an auditor can enter directly; OBSERVATION only arrives through
# a confirmed suggested finding.
AUDITOR_RATINGS = (
    IndicatorRating.CONFORMITY_BEST_PRACTICE,
    IndicatorRating.CONFORMITY,
    IndicatorRating.MINOR_NC,
    IndicatorRating.MAJOR_NC,
)

AUDIT_FIELDS = (
    "status", "scope_locked", "scope_line_items", "scope_domains",
    "template_id", "close_reason",
)
RESPONSE_FIELDS = ("rating", "comment", "score_points", "score_version")
FINDING_FIELDS = ("status", "severity", "owner_user_id", "due_date", "closure_note")


@dataclass
class AuditSummary:
    """Scoring summary of one audit."""
    audit_id: uuid.UUID
    template_id: Optional[uuid.UUID]
    indicator_count: int
    completed_count: int
    score_points_total: int
    score_percent: Optional[int]
    rating_counts: Dict[str, int] = field(default_factory=dict)
    open_findings: int = 0
    open_major_findings: int = 0


def build_finding_text(indicator_text: str, comment: Optional[str]) -> str:
    return f"Indicator: {indicator_text}. Auditor comment: {comment or ''}."


class AuditWorkflowService:
    """Service for the audit lifecycle, indicator responses and findings."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant
        self.change_log = ChangeLogService(tenant)

    # ===========================================
    # CREATION & SCOPE
    # ===========================================

    async def create_audit(
        self,
        actor: CallerContext,
        title: str,
        audit_type: AuditType,
        scope_line_items: Sequence[str] = (),
        scope_domains: Sequence[str] = (),
        service_context: Optional[str] = None,
        external_auditor_name: Optional[str] = None,
        external_auditor_org: Optional[str] = None,
        external_auditor_email: Optional[str] = None,
        template_id: Optional[uuid.UUID] = None,
    ) -> Audit:
        """Create an audit in DRAFT."""
        require_permission(actor.role, CompanyPermission.MANAGE_AUDITS)

        if not title or not title.strip():
            raise ValidationException("Audit title is required", field="title")

        audit_type = AuditType(audit_type)
        external = (external_auditor_name, external_auditor_org, external_auditor_email)
        if audit_type == AuditType.EXTERNAL and not all(v and v.strip() for v in external):
            raise ValidationException(
                "External audits require auditor name, organisation and email",
                field="external_auditor",
            )

        if template_id is not None:
            await self._get_active_template(template_id)

        audit = Audit(
            title=title.strip(),
            audit_type=audit_type,
            status=AuditStatus.DRAFT,
            scope_locked=False,
            scope_line_items=_clean_codes(scope_line_items),
            scope_domains=_clean_codes(scope_domains),
            service_context=service_context,
            external_auditor_name=external_auditor_name if audit_type == AuditType.EXTERNAL else None,
            external_auditor_org=external_auditor_org if audit_type == AuditType.EXTERNAL else None,
            external_auditor_email=external_auditor_email if audit_type == AuditType.EXTERNAL else None,
            template_id=template_id,
            created_by_id=actor.user_id,
        )
        self.tenant.add(audit)
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.AUDIT_CREATED, "audit", audit.id,
            after=snapshot(audit, AUDIT_FIELDS + ("audit_type", "title")),
        )
        await self.tenant.commit()

        logger.info(f"Audit {audit.id} created ({audit_type.value})")
        return audit

    async def update_scope(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        scope_line_items: Optional[Sequence[str]] = None,
        scope_domains: Optional[Sequence[str]] = None,
    ) -> Audit:
        """Replace the in-scope line items and/or domains of an unlocked audit."""
        require_permission(actor.role, CompanyPermission.MANAGE_AUDITS)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)

        AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.EDIT_SCOPE)
        if audit.scope_locked:
            raise InvalidStateException(
                "audit", audit.status.value, "edit scope",
                message="Audit scope is locked and cannot be changed",
            )

        before = snapshot(audit, AUDIT_FIELDS)
        if scope_line_items is not None:
            audit.scope_line_items = _clean_codes(scope_line_items)
        if scope_domains is not None:
            audit.scope_domains = _clean_codes(scope_domains)
        audit.updated_by_id = actor.user_id
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.AUDIT_SCOPE_UPDATED, "audit", audit.id,
            before=before, after=snapshot(audit, AUDIT_FIELDS),
        )
        await self.tenant.commit()
        return audit

    async def select_template(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        template_id: uuid.UUID,
    ) -> Audit:
        """Attach the indicator template. Only possible before the audit starts."""
        require_permission(actor.role, CompanyPermission.MANAGE_AUDITS)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.SELECT_TEMPLATE)

        template = await self._get_active_template(template_id)

        before = snapshot(audit, AUDIT_FIELDS)
        audit.template_id = template.id
        audit.updated_by_id = actor.user_id
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.AUDIT_TEMPLATE_SELECTED, "audit", audit.id,
            before=before, after=snapshot(audit, AUDIT_FIELDS),
        )
        await self.tenant.commit()
        return audit

    # ===========================================
    # LIFECYCLE TRANSITIONS
    # ===========================================

    async def start_audit(self, actor: CallerContext, audit_id: uuid.UUID) -> Audit:
        """
        DRAFT -> IN_PROGRESS.

        Requires at least one scope line item and a selected template.
        External audits have their scope locked permanently.
        """
        require_permission(actor.role, CompanyPermission.MANAGE_AUDITS)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        next_status = AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.START)

        if not audit.scope_line_items:
            raise ValidationException(
                "At least one scope line item is required to start the audit",
                field="scope_line_items",
            )
        if audit.template_id is None:
            raise ValidationException(
                "A template must be selected before the audit can start",
                field="template_id",
            )

        before = snapshot(audit, AUDIT_FIELDS)
        audit.status = next_status
        audit.started_at = utc_now()
        if audit.audit_type == AuditType.EXTERNAL:
            audit.scope_locked = True
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.AUDIT_STARTED, "audit", audit.id,
            before=before, after=snapshot(audit, AUDIT_FIELDS),
        )
        await self.tenant.commit()

        logger.info(f"Audit {audit.id} started (scope locked: {audit.scope_locked})")
        return audit

    async def submit_audit(self, actor: CallerContext, audit_id: uuid.UUID) -> Audit:
        """IN_PROGRESS -> IN_REVIEW once every template indicator has a response."""
        require_permission(actor.role, CompanyPermission.MANAGE_AUDITS)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        next_status = AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.SUBMIT)

        indicator_ids = {i.id for i in await self._template_indicators(audit.template_id)}
        answered = {r.indicator_id for r in await self._responses(audit.id)}
        missing = len(indicator_ids - answered)
        if missing:
            raise ValidationException(
                f"{missing} indicator(s) still need a response before submission",
                field="responses",
                details={"missing_count": missing},
            )

        before = snapshot(audit, AUDIT_FIELDS)
        audit.status = next_status
        audit.submitted_at = utc_now()
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.AUDIT_SUBMITTED, "audit", audit.id,
            before=before, after=snapshot(audit, AUDIT_FIELDS),
        )
        await self.tenant.commit()

        logger.info(f"Audit {audit.id} submitted for review")
        return audit

    async def close_audit(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        close_reason: Optional[str] = None,
    ) -> Audit:
        """
        IN_REVIEW -> CLOSED.

        A close reason is mandatory while any MAJOR_NC finding is still open.
        """
        require_permission(actor.role, CompanyPermission.CLOSE_AUDITS)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        next_status = AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.CLOSE)

        open_major = await self.tenant.count(
            Finding,
            Finding.audit_id == audit.id,
            Finding.severity == FindingSeverity.MAJOR_NC,
            Finding.status == FindingStatus.OPEN,
        )
        reason = (close_reason or "").strip()
        if open_major and not reason:
            raise ValidationException(
                "A close reason is required while major non-conformances remain open",
                field="close_reason",
                details={"open_major_findings": open_major},
            )

        before = snapshot(audit, AUDIT_FIELDS)
        audit.status = next_status
        audit.close_reason = reason or None
        audit.closed_at = utc_now()
        audit.closed_by_id = actor.user_id
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.AUDIT_CLOSED, "audit", audit.id,
            before=before, after=snapshot(audit, AUDIT_FIELDS),
        )
        await self.tenant.commit()

        logger.info(f"Audit {audit.id} closed")
        return audit

    # ===========================================
    # INDICATOR RESPONSES
    # ===========================================

    async def upsert_indicator_response(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        indicator_id: uuid.UUID,
        rating: IndicatorRating,
        comment: Optional[str] = None,
    ) -> WorkflowResult[AuditIndicatorResponse]:
        """
        Save the rating for one indicator of an IN_PROGRESS audit.

        The first non-conformance rating of an indicator derives one Finding;
        later saves never derive another.
        """
        require_permission(actor.role, CompanyPermission.MANAGE_AUDITS)
        rating = _auditor_rating(rating)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.RESPOND)

        result = await self._save_rating(actor, audit, indicator_id, rating, comment)
        await self._commit_rating()
        return result

    async def add_in_review_response(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        indicator_id: uuid.UUID,
        rating: IndicatorRating,
        comment: Optional[str] = None,
    ) -> WorkflowResult[AuditIndicatorResponse]:
        """Answer a still-unanswered indicator of an audit that is IN_REVIEW."""
        require_permission(actor.role, CompanyPermission.REVIEW_AUDITS)
        rating = _auditor_rating(rating)
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.ADD_LATE_RESPONSE)

        result = await self._save_rating(actor, audit, indicator_id, rating, comment, new_only=True)
        await self._commit_rating()
        return result

    async def apply_confirmed_rating(
        self,
        actor: CallerContext,
        audit_id: uuid.UUID,
        indicator_id: uuid.UUID,
        rating: IndicatorRating,
        comment: str,
    ) -> WorkflowResult[AuditIndicatorResponse]:
        """
        Write a rating that comes from a confirmed suggested finding.

        IN_PROGRESS audits take a normal upsert, IN_REVIEW audits the
        constrained late-response path. Flushes but does not commit.
        """
        audit = await self.tenant.get(Audit, audit_id, for_update=True)
        if audit.status == AuditStatus.IN_REVIEW:
            AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.ADD_LATE_RESPONSE)
            return await self._save_rating(actor, audit, indicator_id, rating, comment, new_only=True)

        AUDIT_TRANSITIONS.next_state(audit.status, AuditAction.RESPOND)
        return await self._save_rating(actor, audit, indicator_id, rating, comment)

    async def _save_rating(
        self,
        actor: CallerContext,
        audit: Audit,
        indicator_id: uuid.UUID,
        rating: IndicatorRating,
        comment: Optional[str],
        new_only: bool = False,
    ) -> WorkflowResult[AuditIndicatorResponse]:
        rating = IndicatorRating(rating)
        comment = (comment or "").strip() or None
        if rating.is_nonconformance and len(comment or "") < settings.minimum_comment_length:
            raise ValidationException(
                f"A comment of at least {settings.minimum_comment_length} characters "
                f"is required for {rating.value} ratings",
                field="comment",
            )

        indicator = await self.tenant.get(AuditTemplateIndicator, indicator_id, "Indicator")
        if audit.template_id is None or indicator.template_id != audit.template_id:
            raise ValidationException(
                "Indicator does not belong to this audit's template",
                field="indicator_id",
            )

        response = await self.tenant.first(
            self.tenant.select(AuditIndicatorResponse)
            .where(
                AuditIndicatorResponse.audit_id == audit.id,
                AuditIndicatorResponse.indicator_id == indicator.id,
            )
            .with_for_update()
        )

        if response is not None and new_only:
            raise DuplicateEntryException(
                "Indicator response",
                existing_id=response.id,
                message="This indicator already has a response and cannot be changed while the audit is in review",
            )

        before = snapshot(response, RESPONSE_FIELDS) if response else None
        points = score_for_rating(rating, CURRENT_SCORE_VERSION)
        if response is None:
            response = AuditIndicatorResponse(
                audit_id=audit.id,
                indicator_id=indicator.id,
            )
            self.tenant.add(response)
        response.rating = rating
        response.comment = comment
        response.score_points = points
        response.score_version = CURRENT_SCORE_VERSION
        response.responded_by_id = actor.user_id

        derived = []
        finding = None
        if rating.is_nonconformance:
            finding = await self.finding_for(audit.id, indicator.id)
            if finding is None:
                finding = Finding(
                    audit_id=audit.id,
                    indicator_id=indicator.id,
                    severity=FindingSeverity(rating.value),
                    status=FindingStatus.OPEN,
                    finding_text=build_finding_text(indicator.indicator_text, comment),
                )
                self.tenant.add(finding)
                derived.append(finding)

        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.INDICATOR_RESPONSE_SAVED, "audit_indicator_response", response.id,
            before=before, after=snapshot(response, RESPONSE_FIELDS),
        )
        if derived:
            await self.change_log.record(
                actor, ChangeAction.FINDING_CREATED, "finding", finding.id,
                after=snapshot(finding, FINDING_FIELDS),
            )
            logger.info(f"Finding {finding.id} ({finding.severity.value}) raised on audit {audit.id}")

        return WorkflowResult(entity=response, derived=derived)

    async def _commit_rating(self) -> None:
        try:
            await self.tenant.commit()
        except IntegrityError as e:
            await self.tenant.rollback()
            logger.warning(f"Concurrent indicator response rejected: {e.orig}")
            raise ConflictException(
                "The indicator was answered concurrently; reload and try again",
                resource_type="Indicator response",
            )

    # ===========================================
    # FINDINGS
    # ===========================================

    async def update_finding(
        self,
        actor: CallerContext,
        finding_id: uuid.UUID,
        owner_user_id: Optional[uuid.UUID] = None,
        due_date: Optional[date] = None,
        status: Optional[FindingStatus] = None,
        closure_note: Optional[str] = None,
    ) -> Finding:
        """
        Update owner, due date and/or status of a finding.

        Closing requires the close_findings permission and a closure note.
        Closed findings are terminal.
        """
        require_permission(actor.role, CompanyPermission.UPDATE_FINDINGS)
        finding = await self.tenant.get(Finding, finding_id, for_update=True)

        if finding.status == FindingStatus.CLOSED:
            raise InvalidStateException("finding", finding.status.value, "update")

        before = snapshot(finding, FINDING_FIELDS)

        if owner_user_id is not None:
            owner = await self.tenant.get(CompanyUser, owner_user_id, "User")
            finding.owner_user_id = owner.id
        if due_date is not None:
            finding.due_date = due_date

        action = ChangeAction.FINDING_UPDATED
        if status is not None and FindingStatus(status) != finding.status:
            transition = FINDING_ACTION_FOR_STATUS[FindingStatus(status)]
            next_status = FINDING_TRANSITIONS.next_state(finding.status, transition)
            if transition == FindingAction.CLOSE:
                require_permission(actor.role, CompanyPermission.CLOSE_FINDINGS)
                if not closure_note or not closure_note.strip():
                    raise ValidationException("A closure note is required", field="closure_note")
                self._mark_closed(finding, actor, closure_note.strip())
                action = ChangeAction.FINDING_CLOSED
            finding.status = next_status

        await self.tenant.flush()
        await self.change_log.record(
            actor, action, "finding", finding.id,
            before=before, after=snapshot(finding, FINDING_FIELDS),
        )
        await self.tenant.commit()
        return finding

    async def close_finding_for_evidence(
        self,
        actor: CallerContext,
        finding_id: uuid.UUID,
        note: str,
    ) -> Optional[Finding]:
        """
        Close a finding because its evidence was accepted.

        Already-closed findings are left alone. Flushes but does not commit.
        """
        finding = await self.tenant.get(Finding, finding_id, for_update=True)
        if finding.status == FindingStatus.CLOSED:
            return None

        before = snapshot(finding, FINDING_FIELDS)
        finding.status = FINDING_TRANSITIONS.next_state(finding.status, FindingAction.CLOSE)
        self._mark_closed(finding, actor, note)
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.FINDING_CLOSED, "finding", finding.id,
            before=before, after=snapshot(finding, FINDING_FIELDS),
        )
        return finding

    def _mark_closed(self, finding: Finding, actor: CallerContext, note: str) -> None:
        finding.closure_note = note
        finding.closed_by_id = actor.user_id
        finding.closed_at = utc_now()

    async def list_findings(
        self,
        audit_id: Optional[uuid.UUID] = None,
        status: Optional[FindingStatus] = None,
    ) -> List[Finding]:
        stmt = self.tenant.select(Finding)
        if audit_id:
            stmt = stmt.where(Finding.audit_id == audit_id)
        if status:
            stmt = stmt.where(Finding.status == status)
        return await self.tenant.all(stmt.order_by(Finding.created_at.desc()))

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_audit(self, audit_id: uuid.UUID) -> Audit:
        return await self.tenant.get(Audit, audit_id)

    async def list_audits(self, status: Optional[AuditStatus] = None) -> List[Audit]:
        stmt = self.tenant.select(Audit)
        if status:
            stmt = stmt.where(Audit.status == status)
        return await self.tenant.all(stmt.order_by(Audit.created_at.desc()))

    async def list_responses(self, audit_id: uuid.UUID) -> List[AuditIndicatorResponse]:
        await self.tenant.get(Audit, audit_id)
        return await self._responses(audit_id)

    async def get_summary(self, audit_id: uuid.UUID) -> AuditSummary:
        """Rating counts and score percentage of an audit."""
        audit = await self.tenant.get(Audit, audit_id)
        responses = await self._responses(audit.id)

        rating_counts = {rating.value: 0 for rating in IndicatorRating}
        for response in responses:
            rating_counts[response.rating.value] += 1

        indicator_count = None
        if audit.template_id is not None:
            indicator_count = len(await self._template_indicators(audit.template_id))

        findings = await self.list_findings(audit_id=audit.id)
        open_findings = [f for f in findings if f.status != FindingStatus.CLOSED]

        return AuditSummary(
            audit_id=audit.id,
            template_id=audit.template_id,
            indicator_count=indicator_count or 0,
            completed_count=len(responses),
            score_points_total=sum(r.score_points for r in responses),
            score_percent=audit_score_percent([r.score_points for r in responses], indicator_count),
            rating_counts=rating_counts,
            open_findings=len(open_findings),
            open_major_findings=sum(
                1 for f in open_findings
                if f.severity == FindingSeverity.MAJOR_NC and f.status == FindingStatus.OPEN
            ),
        )

    # ===========================================
    # TEMPLATE CONTENT
    # ===========================================

    async def create_template(
        self,
        actor: CallerContext,
        name: str,
        indicators: Sequence[dict],
        description: Optional[str] = None,
    ) -> Tuple[AuditTemplate, List[AuditTemplateIndicator]]:
        """Create an indicator template with its indicators."""
        require_permission(actor.role, CompanyPermission.MANAGE_TEMPLATES)
        template = AuditTemplate(name=name, description=description, is_active=True)
        self.tenant.add(template)
        await self.tenant.flush()

        created = []
        for position, data in enumerate(indicators):
            indicator = AuditTemplateIndicator(
                template_id=template.id,
                indicator_text=data["indicator_text"],
                guidance_text=data.get("guidance_text"),
                evidence_requirements=data.get("evidence_requirements"),
                risk_level=RiskLevel(data.get("risk_level") or RiskLevel.MEDIUM),
                is_critical_control=bool(data.get("is_critical_control", False)),
                sort_order=data.get("sort_order", position),
            )
            self.tenant.add(indicator)
            created.append(indicator)
        await self.tenant.commit()
        return template, created

    async def list_indicators(self, template_id: uuid.UUID) -> List[AuditTemplateIndicator]:
        await self.tenant.get(AuditTemplate, template_id, "Template")
        return await self._template_indicators(template_id)

    # ===========================================
    # HELPERS
    # ===========================================

    async def _get_active_template(self, template_id: uuid.UUID) -> AuditTemplate:
        template = await self.tenant.get(AuditTemplate, template_id, "Template")
        if not template.is_active:
            raise ValidationException("Template is not active", field="template_id")
        return template

    async def _template_indicators(self, template_id: Optional[uuid.UUID]) -> List[AuditTemplateIndicator]:
        if template_id is None:
            return []
        return await self.tenant.all(
            self.tenant.select(AuditTemplateIndicator)
            .where(AuditTemplateIndicator.template_id == template_id)
            .order_by(AuditTemplateIndicator.sort_order)
        )

    async def _responses(self, audit_id: uuid.UUID) -> List[AuditIndicatorResponse]:
        return await self.tenant.all(
            self.tenant.select(AuditIndicatorResponse)
            .where(AuditIndicatorResponse.audit_id == audit_id)
        )

    async def finding_for(self, audit_id: uuid.UUID, indicator_id: uuid.UUID) -> Optional[Finding]:
        return await self.tenant.first(
            self.tenant.select(Finding).where(
                Finding.audit_id == audit_id,
                Finding.indicator_id == indicator_id,
            )
        )


def _auditor_rating(rating) -> IndicatorRating:
    try:
        rating = IndicatorRating(rating)
    except ValueError:
        raise ValidationException(f"Unknown rating: {rating}", field="rating")
    if rating not in AUDITOR_RATINGS:
        raise ValidationException(
            f"{rating.value} can only be recorded by confirming a suggested finding",
            field="rating",
        )
    return rating


def _clean_codes(codes: Sequence[str]) -> List[str]:
    """Strip, drop blanks and de-duplicate while keeping order."""
    seen = []
    for code in codes or ():
        code = str(code).strip()
        if code and code not in seen:
            seen.append(code)
    return seen
