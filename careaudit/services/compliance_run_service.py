"""
CareAudit - Compliance Run Service

Scheduled daily/weekly checklists:
- run creation with period resolution and duplicate prevention
- response upserts with per-type validation
- submission: critical completeness, traffic-light outcome and
  corrective actions, all in one transaction
- corrective action follow-up and closure
"""

import logging
import uuid
from datetime import date, datetime, time, timezone
from typing import List, Optional, Sequence, Tuple, Union

from sqlalchemy.exc import IntegrityError

from careaudit.config import settings
from careaudit.models.base import utc_now
from careaudit.models.change_log import ChangeAction
from careaudit.models.company import CompanyUser, Participant, ScopeType, StaffAssignment, WorkSite
from careaudit.models.compliance import (
    ActionStatus,
    ComplianceAction,
    ComplianceResponse,
    ComplianceRun,
    ComplianceTemplate,
    ComplianceTemplateItem,
    Frequency,
    ResponseType,
    RunStatus,
)
from careaudit.services.change_log_service import ChangeLogService, snapshot
from careaudit.services.results import WorkflowResult
from careaudit.services.rules.compliance_rules import (
    evaluate_run_submission,
    index_responses,
    validate_response_value,
)
from careaudit.services.rules.transitions import (
    ACTION_TRANSITIONS,
    RUN_TRANSITIONS,
    ComplianceActionEvent,
    RunAction,
)
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.utils.error_handling import (
    AuthorizationException,
    DuplicateEntryException,
    InvalidDateRangeException,
    InvalidStateException,
    ValidationException,
)
from careaudit.utils.permissions import CompanyPermission, is_assignment_scoped, require_permission

logger = logging.getLogger(__name__)


RUN_FIELDS = ("status", "overall_status", "submitted_by_id", "submitted_at")
ACTION_FIELDS = ("status", "severity", "assigned_to_id", "due_date", "closure_notes", "closure_attachment_path")

END_OF_DAY = time(23, 59, 59, 999999)


def daily_window(run_date: date) -> Tuple[datetime, datetime]:
    """Midnight-to-midnight window of one day, in UTC."""
    return (
        datetime.combine(run_date, time.min, tzinfo=timezone.utc),
        datetime.combine(run_date, END_OF_DAY, tzinfo=timezone.utc),
    )


def as_period_bound(value: Union[date, datetime], end: bool = False) -> datetime:
    """Dates become the first (or last) instant of that day; datetimes are normalized to UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, END_OF_DAY if end else time.min, tzinfo=timezone.utc)


def resolve_period(
    frequency: Frequency,
    run_date: Optional[date] = None,
    period_start: Optional[Union[date, datetime]] = None,
    period_end: Optional[Union[date, datetime]] = None,
) -> Tuple[datetime, datetime]:
    """
    Period window of a run.

    DAILY runs cover the given date (today when absent). WEEKLY runs need
    an explicit start and end.
    """
    if Frequency(frequency) == Frequency.DAILY:
        return daily_window(run_date or utc_now().date())

    if period_start is None or period_end is None:
        raise ValidationException(
            "period_start and period_end are required for weekly templates",
            field="period_start",
        )
    start = as_period_bound(period_start)
    end = as_period_bound(period_end, end=True)
    if start >= end:
        raise InvalidDateRangeException(start.isoformat(), end.isoformat())
    return start, end


class ComplianceRunService:
    """Service for compliance templates, runs, responses and actions."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant
        self.change_log = ChangeLogService(tenant)

    # ===========================================
    # TEMPLATES
    # ===========================================

    async def create_template(
        self,
        actor: CallerContext,
        name: str,
        scope_type: ScopeType,
        frequency: Frequency,
        items: Sequence[dict],
    ) -> Tuple[ComplianceTemplate, List[ComplianceTemplateItem]]:
        """Create a checklist template with its items."""
        require_permission(actor.role, CompanyPermission.MANAGE_TEMPLATES)
        template = ComplianceTemplate(
            name=name,
            scope_type=ScopeType(scope_type),
            frequency=Frequency(frequency),
            is_active=True,
        )
        self.tenant.add(template)
        await self.tenant.flush()

        created = []
        for position, data in enumerate(items):
            item = ComplianceTemplateItem(
                template_id=template.id,
                title=data["title"],
                guidance_text=data.get("guidance_text"),
                response_type=ResponseType(data.get("response_type", ResponseType.YES_NO_NA)),
                is_critical=bool(data.get("is_critical", False)),
                notes_required_on_fail=bool(data.get("notes_required_on_fail", False)),
                sort_order=data.get("sort_order", position),
            )
            self.tenant.add(item)
            created.append(item)
        await self.tenant.commit()
        return template, created

    async def list_templates(self, active_only: bool = True) -> List[ComplianceTemplate]:
        stmt = self.tenant.select(ComplianceTemplate)
        if active_only:
            stmt = stmt.where(ComplianceTemplate.is_active.is_(True))
        return await self.tenant.all(stmt.order_by(ComplianceTemplate.name))

    async def template_items(self, template_id: uuid.UUID) -> List[ComplianceTemplateItem]:
        return await self.tenant.all(
            self.tenant.select(ComplianceTemplateItem)
            .where(ComplianceTemplateItem.template_id == template_id)
            .order_by(ComplianceTemplateItem.sort_order)
        )

    # ===========================================
    # RUNS
    # ===========================================

    async def create_run(
        self,
        actor: CallerContext,
        template_id: uuid.UUID,
        scope_entity_id: uuid.UUID,
        run_date: Optional[date] = None,
        period_start: Optional[Union[date, datetime]] = None,
        period_end: Optional[Union[date, datetime]] = None,
    ) -> ComplianceRun:
        """
        Open a run of a template for one site or participant and one period.

        Raises:
            DuplicateEntryException: a run already exists for the same
                template, scope entity and period; carries its id
        """
        require_permission(actor.role, CompanyPermission.RUN_COMPLIANCE_CHECKS)

        template = await self.tenant.get(ComplianceTemplate, template_id, "Template")
        if not template.is_active:
            raise ValidationException("Template is not active", field="template_id")

        site_id, participant_id = await self._resolve_scope(template.scope_type, scope_entity_id)
        await self._ensure_scope_access(actor, template.scope_type, scope_entity_id)

        start, end = resolve_period(template.frequency, run_date, period_start, period_end)

        existing = await self._find_run(template.id, scope_entity_id, start, end)
        if existing is not None:
            raise self._duplicate_run(existing.id)

        run = ComplianceRun(
            template_id=template.id,
            scope_type=template.scope_type,
            scope_entity_id=scope_entity_id,
            site_id=site_id,
            participant_id=participant_id,
            frequency=template.frequency,
            period_start=start,
            period_end=end,
            status=RunStatus.OPEN,
            created_by_id=actor.user_id,
        )
        self.tenant.add(run)
        try:
            await self.tenant.flush()
            await self.change_log.record(
                actor, ChangeAction.COMPLIANCE_RUN_CREATED, "compliance_run", run.id,
                after=snapshot(run, RUN_FIELDS + ("period_start", "period_end")),
            )
            await self.tenant.commit()
        except IntegrityError:
            # Lost the race to a concurrent creator
            await self.tenant.rollback()
            winner = await self._find_run(template_id, scope_entity_id, start, end)
            logger.warning(f"Duplicate compliance run rejected for template {template_id}")
            raise self._duplicate_run(winner.id if winner else None)

        logger.info(f"Compliance run {run.id} opened for {template.scope_type.value} {scope_entity_id}")
        return run

    async def upsert_response(
        self,
        actor: CallerContext,
        run_id: uuid.UUID,
        template_item_id: uuid.UUID,
        response_value: Optional[str],
        notes: Optional[str] = None,
        attachment_path: Optional[str] = None,
    ) -> ComplianceResponse:
        """Save the answer to one item of an OPEN run. Last write wins."""
        require_permission(actor.role, CompanyPermission.RUN_COMPLIANCE_CHECKS)
        run = await self.tenant.get(ComplianceRun, run_id, "Compliance run", for_update=True)
        RUN_TRANSITIONS.next_state(run.status, RunAction.RESPOND)
        await self._ensure_scope_access(actor, run.scope_type, run.scope_entity_id)

        item = await self.tenant.get(ComplianceTemplateItem, template_item_id, "Template item")
        if item.template_id != run.template_id:
            raise ValidationException(
                "Item does not belong to this run's template",
                field="template_item_id",
            )

        value = validate_response_value(item.response_type, response_value, attachment_path)

        response = await self.tenant.first(
            self.tenant.select(ComplianceResponse).where(
                ComplianceResponse.run_id == run.id,
                ComplianceResponse.template_item_id == item.id,
            )
        )
        if response is None:
            response = ComplianceResponse(run_id=run.id, template_item_id=item.id)
            self.tenant.add(response)
        response.response_value = value
        response.notes = (notes or "").strip() or None
        response.attachment_path = attachment_path or None
        response.responded_by_id = actor.user_id

        await self.tenant.commit()
        return response

    async def submit_run(
        self,
        actor: CallerContext,
        run_id: uuid.UUID,
    ) -> WorkflowResult[ComplianceRun]:
        """
        OPEN -> SUBMITTED.

        Fails before anything is written when a critical item is
        unanswered. Otherwise stores the outcome and creates one action
        per failing item together with the status change.
        """
        require_permission(actor.role, CompanyPermission.RUN_COMPLIANCE_CHECKS)
        run = await self.tenant.get(ComplianceRun, run_id, "Compliance run", for_update=True)
        next_status = RUN_TRANSITIONS.next_state(run.status, RunAction.SUBMIT)
        await self._ensure_scope_access(actor, run.scope_type, run.scope_entity_id)

        items = await self.template_items(run.template_id)
        responses = index_responses(await self.list_responses(run.id))
        evaluation = evaluate_run_submission(items, responses, settings.incident_keywords)

        before = snapshot(run, RUN_FIELDS)
        actions = []
        for draft in evaluation.actions:
            action = ComplianceAction(
                run_id=run.id,
                template_item_id=draft.template_item_id,
                site_id=run.site_id,
                participant_id=run.participant_id,
                title=draft.title,
                description=draft.description,
                severity=draft.severity,
                status=ActionStatus.OPEN,
            )
            self.tenant.add(action)
            actions.append(action)

        run.status = next_status
        run.overall_status = evaluation.overall_status
        run.submitted_by_id = actor.user_id
        run.submitted_at = utc_now()
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.COMPLIANCE_RUN_SUBMITTED, "compliance_run", run.id,
            before=before, after=snapshot(run, RUN_FIELDS),
        )
        for action in actions:
            await self.change_log.record(
                actor, ChangeAction.COMPLIANCE_ACTION_CREATED, "compliance_action", action.id,
                after=snapshot(action, ACTION_FIELDS + ("title",)),
            )
        await self.tenant.commit()

        logger.info(
            f"Compliance run {run.id} submitted: {run.overall_status.value}, "
            f"{len(actions)} action(s)"
        )
        return WorkflowResult(entity=run, derived=actions)

    async def get_run(self, run_id: uuid.UUID) -> ComplianceRun:
        return await self.tenant.get(ComplianceRun, run_id, "Compliance run")

    async def list_runs(
        self,
        template_id: Optional[uuid.UUID] = None,
        scope_entity_id: Optional[uuid.UUID] = None,
        status: Optional[RunStatus] = None,
    ) -> List[ComplianceRun]:
        stmt = self.tenant.select(ComplianceRun)
        if template_id:
            stmt = stmt.where(ComplianceRun.template_id == template_id)
        if scope_entity_id:
            stmt = stmt.where(ComplianceRun.scope_entity_id == scope_entity_id)
        if status:
            stmt = stmt.where(ComplianceRun.status == status)
        return await self.tenant.all(stmt.order_by(ComplianceRun.period_start.desc()))

    async def list_responses(self, run_id: uuid.UUID) -> List[ComplianceResponse]:
        return await self.tenant.all(
            self.tenant.select(ComplianceResponse).where(ComplianceResponse.run_id == run_id)
        )

    # ===========================================
    # ACTIONS
    # ===========================================

    async def update_action(
        self,
        actor: CallerContext,
        action_id: uuid.UUID,
        assigned_to_id: Optional[uuid.UUID] = None,
        status: Optional[ActionStatus] = None,
        due_date: Optional[date] = None,
    ) -> ComplianceAction:
        """Reassign, reschedule or start work on an action. Closing has its own path."""
        require_permission(actor.role, CompanyPermission.MANAGE_ACTIONS)
        action = await self.tenant.get(ComplianceAction, action_id, "Action", for_update=True)
        await self._ensure_action_access(actor, action)

        if action.status == ActionStatus.CLOSED:
            raise InvalidStateException("compliance action", action.status.value, "update")

        before = snapshot(action, ACTION_FIELDS)
        if assigned_to_id is not None:
            assignee = await self.tenant.get(CompanyUser, assigned_to_id, "User")
            action.assigned_to_id = assignee.id
        if due_date is not None:
            action.due_date = due_date
        if status is not None and ActionStatus(status) != action.status:
            if ActionStatus(status) == ActionStatus.CLOSED:
                raise ValidationException(
                    "Use the close operation to close an action", field="status",
                )
            action.status = ACTION_TRANSITIONS.next_state(action.status, ComplianceActionEvent.START_WORK)

        await self.tenant.flush()
        await self.change_log.record(
            actor, ChangeAction.COMPLIANCE_ACTION_UPDATED, "compliance_action", action.id,
            before=before, after=snapshot(action, ACTION_FIELDS),
        )
        await self.tenant.commit()
        return action

    async def close_action(
        self,
        actor: CallerContext,
        action_id: uuid.UUID,
        closure_notes: str,
        attachment_path: Optional[str] = None,
    ) -> ComplianceAction:
        """Close an action with closure notes and an optional attachment reference."""
        require_permission(actor.role, CompanyPermission.MANAGE_ACTIONS)
        action = await self.tenant.get(ComplianceAction, action_id, "Action", for_update=True)
        await self._ensure_action_access(actor, action)

        next_status = ACTION_TRANSITIONS.next_state(action.status, ComplianceActionEvent.CLOSE)
        if not closure_notes or not closure_notes.strip():
            raise ValidationException("Closure notes are required", field="closure_notes")

        before = snapshot(action, ACTION_FIELDS)
        action.status = next_status
        action.closure_notes = closure_notes.strip()
        action.closure_attachment_path = attachment_path or None
        action.closed_by_id = actor.user_id
        action.closed_at = utc_now()
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.COMPLIANCE_ACTION_CLOSED, "compliance_action", action.id,
            before=before, after=snapshot(action, ACTION_FIELDS),
        )
        await self.tenant.commit()
        return action

    async def list_actions(
        self,
        run_id: Optional[uuid.UUID] = None,
        status: Optional[ActionStatus] = None,
        participant_id: Optional[uuid.UUID] = None,
    ) -> List[ComplianceAction]:
        stmt = self.tenant.select(ComplianceAction)
        if run_id:
            stmt = stmt.where(ComplianceAction.run_id == run_id)
        if status:
            stmt = stmt.where(ComplianceAction.status == status)
        if participant_id:
            stmt = stmt.where(ComplianceAction.participant_id == participant_id)
        return await self.tenant.all(stmt.order_by(ComplianceAction.created_at.desc()))

    # ===========================================
    # HELPERS
    # ===========================================

    async def _resolve_scope(
        self,
        scope_type: ScopeType,
        scope_entity_id: uuid.UUID,
    ) -> Tuple[Optional[uuid.UUID], Optional[uuid.UUID]]:
        """(site_id, participant_id) of the run's scope entity."""
        if scope_type == ScopeType.SITE:
            site = await self.tenant.get(WorkSite, scope_entity_id, "Site")
            return site.id, None
        participant = await self.tenant.get(Participant, scope_entity_id, "Participant")
        return participant.site_id, participant.id

    async def _ensure_scope_access(
        self,
        actor: CallerContext,
        scope_type: ScopeType,
        scope_entity_id: uuid.UUID,
    ) -> None:
        if not is_assignment_scoped(actor.role):
            return
        if not await self._is_assigned(actor, scope_type, scope_entity_id):
            raise AuthorizationException(f"You are not assigned to this {scope_type.value.lower()}")

    async def _ensure_action_access(self, actor: CallerContext, action: ComplianceAction) -> None:
        if not is_assignment_scoped(actor.role):
            return
        if action.assigned_to_id == actor.user_id:
            return
        if action.participant_id and await self._is_assigned(actor, ScopeType.PARTICIPANT, action.participant_id):
            return
        if action.site_id and await self._is_assigned(actor, ScopeType.SITE, action.site_id):
            return
        raise AuthorizationException("You are not assigned to this action")

    async def _is_assigned(self, actor: CallerContext, scope_type: ScopeType, scope_entity_id: uuid.UUID) -> bool:
        assignment = await self.tenant.first(
            self.tenant.select(StaffAssignment).where(
                StaffAssignment.user_id == actor.user_id,
                StaffAssignment.scope_type == scope_type,
                StaffAssignment.scope_entity_id == scope_entity_id,
            )
        )
        return assignment is not None

    async def _find_run(
        self,
        template_id: uuid.UUID,
        scope_entity_id: uuid.UUID,
        start: datetime,
        end: datetime,
    ) -> Optional[ComplianceRun]:
        return await self.tenant.first(
            self.tenant.select(ComplianceRun).where(
                ComplianceRun.template_id == template_id,
                ComplianceRun.scope_entity_id == scope_entity_id,
                ComplianceRun.period_start == start,
                ComplianceRun.period_end == end,
            )
        )

    @staticmethod
    def _duplicate_run(existing_id: Optional[uuid.UUID]) -> DuplicateEntryException:
        return DuplicateEntryException(
            "Compliance run",
            existing_id=existing_id,
            message="A compliance run already exists for this template, scope and period",
        )
