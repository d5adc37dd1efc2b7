"""
CareAudit - Weekly Report Service

Builds a participant's weekly rollup from compliance runs and actions,
hands it to the report text generator and stores the narrative verbatim
together with a hash of the exact input. Every generation attempt is
logged; failures are not retried.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from careaudit.config import settings
from careaudit.models.base import as_utc
from careaudit.models.change_log import ChangeAction
from careaudit.models.company import Participant
from careaudit.models.compliance import (
    ComplianceAction,
    ComplianceResponse,
    ComplianceRun,
    ComplianceTemplate,
    ComplianceTemplateItem,
)
from careaudit.models.report import AiGenerationLog, ReportStatus, WeeklyComplianceReport
from careaudit.services.change_log_service import ChangeLogService, snapshot
from careaudit.services.compliance_run_service import as_period_bound
from careaudit.services.rules.transitions import REPORT_TRANSITIONS, ReportAction
from careaudit.services.rules.weekly_rollup import (
    ActionSnapshot,
    ItemResponseSnapshot,
    RunSnapshot,
    build_report_payload,
    hash_payload,
)
from careaudit.services.tenant import CallerContext, TenantSession
from careaudit.services.text_generation import ReportTextGenerator
from careaudit.utils.error_handling import (
    InvalidDateRangeException,
    TextGenerationException,
    ValidationException,
)
from careaudit.utils.permissions import CompanyPermission, require_permission

logger = logging.getLogger(__name__)


FEATURE_KEY = "WEEKLY_COMPLIANCE_REPORT"
REPORT_FIELDS = ("status", "final_text")


@dataclass
class WeeklyRollup:
    """Payload for the text generator plus the window it covers."""
    participant_id: uuid.UUID
    period_start: datetime
    period_end: datetime
    payload: Dict[str, Any]
    input_hash: str

    @property
    def metrics(self) -> Dict[str, Any]:
        return self.payload["metrics"]


class WeeklyReportService:
    """Service for weekly rollups and generated compliance reports."""

    def __init__(self, tenant: TenantSession):
        self.tenant = tenant
        self.change_log = ChangeLogService(tenant)

    async def compute_rollup(
        self,
        participant_id: uuid.UUID,
        period_start: Union[date, datetime],
        period_end: Union[date, datetime],
    ) -> WeeklyRollup:
        """
        Reduce the participant's runs and actions created within the
        window to the weekly metrics and the verbatim payload.

        Raises:
            ValidationException: no runs were created in the window
        """
        participant = await self.tenant.get(Participant, participant_id, "Participant")
        start = as_period_bound(period_start)
        end = as_period_bound(period_end, end=True)
        if start > end:
            raise InvalidDateRangeException(start.isoformat(), end.isoformat())

        runs = await self.tenant.all(
            self.tenant.select(ComplianceRun)
            .where(
                ComplianceRun.participant_id == participant.id,
                ComplianceRun.created_at >= start,
                ComplianceRun.created_at <= end,
            )
            .order_by(ComplianceRun.created_at.asc())
        )
        if not runs:
            raise ValidationException(
                "No compliance runs found for the specified period",
                field="period_start",
            )

        actions = await self.tenant.all(
            self.tenant.select(ComplianceAction)
            .where(
                ComplianceAction.participant_id == participant.id,
                ComplianceAction.created_at >= start,
                ComplianceAction.created_at <= end,
            )
            .order_by(ComplianceAction.created_at.asc())
        )

        run_snapshots = [await self._snapshot_run(run) for run in runs]
        action_snapshots = [
            ActionSnapshot(
                title=action.title,
                severity=action.severity,
                status=action.status,
                created_on=as_utc(action.created_at).date(),
            )
            for action in actions
        ]

        payload = build_report_payload(
            participant.name, start.date(), end.date(), run_snapshots, action_snapshots,
        )
        return WeeklyRollup(
            participant_id=participant.id,
            period_start=start,
            period_end=end,
            payload=payload,
            input_hash=hash_payload(payload),
        )

    async def _snapshot_run(self, run: ComplianceRun) -> RunSnapshot:
        template = await self.tenant.find(ComplianceTemplate, run.template_id)
        items = {
            item.id: item
            for item in await self.tenant.all(
                self.tenant.select(ComplianceTemplateItem)
                .where(ComplianceTemplateItem.template_id == run.template_id)
            )
        }
        responses = await self.tenant.all(
            self.tenant.select(ComplianceResponse)
            .where(ComplianceResponse.run_id == run.id)
            .order_by(ComplianceResponse.created_at.asc())
        )

        snapshots = []
        for response in responses:
            item = items.get(response.template_item_id)
            if item is None:
                continue
            snapshots.append(ItemResponseSnapshot(
                title=item.title,
                value=response.response_value,
                notes=response.notes,
                is_critical=item.is_critical,
            ))

        return RunSnapshot(
            run_date=as_utc(run.created_at).date(),
            template_name=template.name if template else "Unknown",
            frequency=run.frequency,
            responses=snapshots,
        )

    async def generate_report(
        self,
        actor: CallerContext,
        participant_id: uuid.UUID,
        period_start: Union[date, datetime],
        period_end: Union[date, datetime],
        generator: ReportTextGenerator,
    ) -> WeeklyComplianceReport:
        """
        Generate and store a DRAFT weekly report.

        Raises:
            TextGenerationException: the generator failed or timed out; the
                failed attempt is logged with the input hash and no report
                is stored
        """
        require_permission(actor.role, CompanyPermission.MANAGE_WEEKLY_REPORTS)
        rollup = await self.compute_rollup(participant_id, period_start, period_end)

        try:
            generated = await asyncio.wait_for(
                generator.generate(rollup.payload),
                timeout=settings.openai_timeout_seconds,
            )
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"Report generation failed for participant {participant_id} ({rollup.input_hash}): {message}")
            self.tenant.add(self._generation_log(actor, rollup, generator.model_name, success=False, error=message))
            await self.tenant.commit()
            raise TextGenerationException(message, rollup.input_hash, original_error=e)

        report = WeeklyComplianceReport(
            participant_id=rollup.participant_id,
            period_start=rollup.period_start,
            period_end=rollup.period_end,
            status=ReportStatus.DRAFT,
            metrics=rollup.metrics,
            generated_text=generated.text,
            input_hash=rollup.input_hash,
            model_name=generated.model_name,
            prompt_version=settings.report_prompt_version,
            generated_by_id=actor.user_id,
        )
        self.tenant.add(report)
        self.tenant.add(self._generation_log(actor, rollup, generated.model_name, success=True))
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.WEEKLY_REPORT_GENERATED, "weekly_compliance_report", report.id,
            after={"status": report.status.value, "input_hash": report.input_hash},
        )
        await self.tenant.commit()

        logger.info(f"Weekly report {report.id} generated for participant {participant_id}")
        return report

    def _generation_log(
        self,
        actor: CallerContext,
        rollup: WeeklyRollup,
        model_name: str,
        success: bool,
        error: Optional[str] = None,
    ) -> AiGenerationLog:
        return AiGenerationLog(
            feature_key=FEATURE_KEY,
            user_id=actor.user_id,
            participant_id=rollup.participant_id,
            period_start=rollup.period_start,
            period_end=rollup.period_end,
            input_hash=rollup.input_hash,
            model_name=model_name,
            prompt_version=settings.report_prompt_version,
            success=success,
            error_message=error,
        )

    async def update_report(
        self,
        actor: CallerContext,
        report_id: uuid.UUID,
        final_text: Optional[str] = None,
        status: Optional[ReportStatus] = None,
    ) -> WeeklyComplianceReport:
        """Edit the final text of a DRAFT report and/or finalize it."""
        require_permission(actor.role, CompanyPermission.MANAGE_WEEKLY_REPORTS)
        report = await self.tenant.get(WeeklyComplianceReport, report_id, "Weekly report", for_update=True)
        action = ReportAction.FINALIZE if status == ReportStatus.FINAL else ReportAction.EDIT
        next_status = REPORT_TRANSITIONS.next_state(report.status, action)

        before = snapshot(report, REPORT_FIELDS)
        if final_text is not None:
            report.final_text = final_text
        report.status = next_status
        await self.tenant.flush()

        await self.change_log.record(
            actor, ChangeAction.WEEKLY_REPORT_UPDATED, "weekly_compliance_report", report.id,
            before=before, after=snapshot(report, REPORT_FIELDS),
        )
        await self.tenant.commit()
        return report

    async def get_report(self, report_id: uuid.UUID) -> WeeklyComplianceReport:
        return await self.tenant.get(WeeklyComplianceReport, report_id, "Weekly report")

    async def list_reports(self, participant_id: Optional[uuid.UUID] = None) -> List[WeeklyComplianceReport]:
        stmt = self.tenant.select(WeeklyComplianceReport)
        if participant_id:
            stmt = stmt.where(WeeklyComplianceReport.participant_id == participant_id)
        return await self.tenant.all(stmt.order_by(WeeklyComplianceReport.period_start.desc()))

    async def generation_logs(self, participant_id: Optional[uuid.UUID] = None) -> List[AiGenerationLog]:
        stmt = self.tenant.select(AiGenerationLog)
        if participant_id:
            stmt = stmt.where(AiGenerationLog.participant_id == participant_id)
        return await self.tenant.all(stmt.order_by(AiGenerationLog.created_at.desc()))
