"""
CareAudit - Document Review Service

Scores one evidence item against its document type's quality checklist
and turns a poor score into a suggested finding. Suggestions are never
binding: a person confirms one (writing the rating into the audit) or
dismisses it.
"""

import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.exc import IntegrityError

from careaudit.config import settings
from careaudit.models.audit import IndicatorRating
from careaudit.models.base import utc_now
from careaudit.models.change_log import ChangeAction
from careaudit.models.document_review import (
    ChecklistAnswer,
    DocumentChecklistItem,
    DocumentChecklistTemplate,
    DocumentReview,
    ReviewDecision,
    SuggestedFinding,
    SuggestedFindingType,
    SuggestionStatus,
)
from careaudit.models.evidence import EvidenceItem, EvidenceRequest
from careaudit.services.audit_workflow_service import AuditWorkflowService
from careaudit.services.change_log_service import ChangeLogService, snapshot
from careaudit.services.results import WorkflowResult
from careaudit.services.rules.document_quality import score_document, suggest_finding
from careaudit.services.rules.transitions import SUGGESTION_TRANSITIONS, SuggestionAction
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.utils.error_handling import (
    AlreadyProcessedException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from careaudit.utils.permissions import CompanyPermission, require_permission

logger = logging.getLogger(__name__)


SUGGESTION_FIELDS = ("status", "suggested_type", "final_type", "decision_note", "finding_id", "indicator_response_id")


def _parse_answers(responses: Mapping[Any, Any]) -> Dict[uuid.UUID, ChecklistAnswer]:
    """Normalize {item id: answer} input, rejecting unknown answers."""
    answers = {}
    for item_id, answer in responses.items():
        try:
            key = item_id if isinstance(item_id, uuid.UUID) else uuid.UUID(str(item_id))
        except ValueError:
            raise ValidationException(f"Invalid checklist item id: {item_id}", field="responses")
        try:
            answers[key] = ChecklistAnswer(str(answer).upper())
        except ValueError:
            raise ValidationException(
                f"Invalid checklist answer '{answer}'",
                field="responses",
                details={"allowed": [a.value for a in ChecklistAnswer]},
            )
    return answers


class DocumentReviewService:
    """Service for document quality reviews and suggested findings."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant
        self.change_log = ChangeLogService(tenant)
        self.audits = AuditWorkflowService(tenant)

    # ===========================================
    # CHECKLISTS
    # ===========================================

    async def create_checklist_template(
        self,
        actor: CallerContext,
        document_type: str,
        name: str,
        items: Sequence[dict],
    ) -> Tuple[DocumentChecklistTemplate, List[DocumentChecklistItem]]:
        """
        Create the checklist for a document type.

        The new checklist replaces any active one for the same type.
        """
        require_permission(actor.role, CompanyPermission.MANAGE_TEMPLATES)
        if not items:
            raise ValidationException("A checklist needs at least one item", field="items")

        for previous in await self._active_templates(document_type):
            previous.is_active = False

        template = DocumentChecklistTemplate(document_type=document_type, name=name, is_active=True)
        self.tenant.add(template)
        await self.tenant.flush()

        created = []
        for position, data in enumerate(items):
            item = DocumentChecklistItem(
                template_id=template.id,
                item_text=data["item_text"],
                is_critical=bool(data.get("is_critical", False)),
                sort_order=data.get("sort_order", position),
            )
            self.tenant.add(item)
            created.append(item)
        await self.tenant.commit()
        return template, created

    async def checklist_for(self, document_type: str) -> DocumentChecklistTemplate:
        templates = await self._active_templates(document_type)
        if not templates:
            raise NotFoundException(
                "Checklist template",
                message=f"No active checklist for document type '{document_type}'",
            )
        return templates[0]

    async def checklist_items(self, template_id: uuid.UUID) -> List[DocumentChecklistItem]:
        return await self.tenant.all(
            self.tenant.select(DocumentChecklistItem)
            .where(DocumentChecklistItem.template_id == template_id)
            .order_by(DocumentChecklistItem.sort_order)
        )

    async def _active_templates(self, document_type: str) -> List[DocumentChecklistTemplate]:
        return await self.tenant.all(
            self.tenant.select(DocumentChecklistTemplate)
            .where(
                DocumentChecklistTemplate.document_type == document_type,
                DocumentChecklistTemplate.is_active.is_(True),
            )
            .order_by(DocumentChecklistTemplate.created_at.desc())
        )

    # ===========================================
    # REVIEWS
    # ===========================================

    async def review_document(
        self,
        actor: CallerContext,
        evidence_item_id: uuid.UUID,
        responses: Mapping[Any, Any],
        decision: ReviewDecision,
        comments: Optional[str] = None,
    ) -> WorkflowResult[DocumentReview]:
        """
        Record a checklist review of one evidence item.

        A suggested finding is stored only when the score calls for one and
        the evidence request is tied to an audit indicator.
        """
        require_permission(actor.role, CompanyPermission.REVIEW_DOCUMENTS)
        item = await self.tenant.get(EvidenceItem, evidence_item_id, "Evidence item")
        request = await self.tenant.get(EvidenceRequest, item.evidence_request_id, "Evidence request")

        checklist = await self.checklist_for(request.document_type)
        checklist_items = await self.checklist_items(checklist.id)
        answers = _parse_answers(responses)
        result = score_document(checklist_items, answers)

        known = {ci.id for ci in checklist_items}
        review = DocumentReview(
            evidence_request_id=request.id,
            evidence_item_id=item.id,
            checklist_template_id=checklist.id,
            responses=[
                {"item_id": str(item_id), "response": answer.value}
                for item_id, answer in answers.items()
                if item_id in known
            ],
            yes_count=result.yes_count,
            partly_count=result.partly_count,
            no_count=result.no_count,
            na_count=result.na_count,
            critical_failures_count=result.critical_failures,
            dqs_percent=result.dqs_percent,
            decision=ReviewDecision(decision),
            comments=comments,
            reviewed_by_id=actor.user_id,
        )
        self.tenant.add(review)
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.DOCUMENT_REVIEWED, "document_review", review.id,
            after=snapshot(review, ("decision", "dqs_percent", "critical_failures_count")),
        )

        derived = []
        suggestion = suggest_finding(result)
        if suggestion is not None and request.audit_id and request.template_indicator_id:
            suggested = SuggestedFinding(
                document_review_id=review.id,
                evidence_request_id=request.id,
                audit_id=request.audit_id,
                indicator_id=request.template_indicator_id,
                suggested_type=suggestion.finding_type,
                severity=suggestion.severity,
                rationale=suggestion.rationale,
                status=SuggestionStatus.PENDING,
            )
            self.tenant.add(suggested)
            await self.tenant.flush()
            await self.change_log.record(
                actor, ChangeAction.SUGGESTION_CREATED, "suggested_finding", suggested.id,
                after=snapshot(suggested, SUGGESTION_FIELDS),
            )
            derived.append(suggested)
        elif suggestion is not None:
            logger.info(
                f"Review {review.id} suggests {suggestion.finding_type.value} but request "
                f"{request.id} is not linked to an audit indicator"
            )

        await self.tenant.commit()
        logger.info(f"Document review {review.id}: DQS {review.dqs_percent}%, {len(derived)} suggestion(s)")
        return WorkflowResult(entity=review, derived=derived)

    async def get_review(self, review_id: uuid.UUID) -> DocumentReview:
        return await self.tenant.get(DocumentReview, review_id, "Document review")

    async def reviews_for_item(self, evidence_item_id: uuid.UUID) -> List[DocumentReview]:
        return await self.tenant.all(
            self.tenant.select(DocumentReview)
            .where(DocumentReview.evidence_item_id == evidence_item_id)
            .order_by(DocumentReview.created_at.desc())
        )

    # ===========================================
    # SUGGESTED FINDINGS
    # ===========================================

    async def list_suggestions(
        self,
        audit_id: Optional[uuid.UUID] = None,
        status: Optional[SuggestionStatus] = None,
    ) -> List[SuggestedFinding]:
        stmt = self.tenant.select(SuggestedFinding)
        if audit_id:
            stmt = stmt.where(SuggestedFinding.audit_id == audit_id)
        if status:
            stmt = stmt.where(SuggestedFinding.status == status)
        return await self.tenant.all(stmt.order_by(SuggestedFinding.created_at.desc()))

    async def confirm_suggestion(
        self,
        actor: CallerContext,
        suggestion_id: uuid.UUID,
        justification: str,
        final_type: Optional[SuggestedFindingType] = None,
    ) -> WorkflowResult[SuggestedFinding]:
        """
        Confirm a PENDING suggestion, optionally overriding its type.

        Writes the final type as the indicator's rating. MINOR_NC and
        MAJOR_NC create a Finding the first time; OBSERVATION never does.
        Derived entities are the indicator response and any new Finding.
        """
        require_permission(actor.role, CompanyPermission.DECIDE_SUGGESTIONS)
        suggestion = await self._pending_suggestion(suggestion_id)

        justification = (justification or "").strip()
        if len(justification) < settings.minimum_comment_length:
            raise ValidationException(
                f"A justification of at least {settings.minimum_comment_length} characters is required",
                field="justification",
            )
        final_type = SuggestedFindingType(final_type or suggestion.suggested_type)

        rating_result = await self.audits.apply_confirmed_rating(
            actor,
            suggestion.audit_id,
            suggestion.indicator_id,
            IndicatorRating(final_type.value),
            justification,
        )
        response = rating_result.entity
        findings = rating_result.derived
        finding = findings[0] if findings else None
        if finding is None and final_type != SuggestedFindingType.OBSERVATION:
            # Non-conformance on an indicator that already had its Finding
            finding = await self.audits.finding_for(suggestion.audit_id, suggestion.indicator_id)

        before = snapshot(suggestion, SUGGESTION_FIELDS)
        suggestion.status = SUGGESTION_TRANSITIONS.next_state(suggestion.status, SuggestionAction.CONFIRM)
        suggestion.final_type = final_type
        suggestion.decision_note = justification
        suggestion.decided_by_id = actor.user_id
        suggestion.decided_at = utc_now()
        suggestion.indicator_response_id = response.id
        suggestion.finding_id = finding.id if finding else None
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.SUGGESTION_CONFIRMED, "suggested_finding", suggestion.id,
            before=before, after=snapshot(suggestion, SUGGESTION_FIELDS),
        )
        await self._commit()

        if final_type != suggestion.suggested_type:
            logger.info(
                f"Suggestion {suggestion.id} confirmed as {final_type.value} "
                f"(suggested {suggestion.suggested_type.value})"
            )
        return WorkflowResult(entity=suggestion, derived=[response, *findings])

    async def dismiss_suggestion(
        self,
        actor: CallerContext,
        suggestion_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> SuggestedFinding:
        require_permission(actor.role, CompanyPermission.DECIDE_SUGGESTIONS)
        suggestion = await self._pending_suggestion(suggestion_id)

        before = snapshot(suggestion, SUGGESTION_FIELDS)
        suggestion.status = SUGGESTION_TRANSITIONS.next_state(suggestion.status, SuggestionAction.DISMISS)
        suggestion.decision_note = (reason or "").strip() or None
        suggestion.decided_by_id = actor.user_id
        suggestion.decided_at = utc_now()
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.SUGGESTION_DISMISSED, "suggested_finding", suggestion.id,
            before=before, after=snapshot(suggestion, SUGGESTION_FIELDS),
        )
        await self._commit()
        return suggestion

    async def _pending_suggestion(self, suggestion_id: uuid.UUID) -> SuggestedFinding:
        suggestion = await self.tenant.get(SuggestedFinding, suggestion_id, "Suggested finding", for_update=True)
        if suggestion.status != SuggestionStatus.PENDING:
            raise AlreadyProcessedException("Suggested finding", suggestion.id, suggestion.status.value)
        return suggestion

    async def _commit(self) -> None:
        try:
            await self.tenant.commit()
        except IntegrityError as e:
            await self.tenant.rollback()
            logger.warning(f"Concurrent suggestion decision rejected: {e.orig}")
            raise ConflictException(
                "The indicator was answered concurrently; reload and try again",
                resource_type="Suggested finding",
            )
