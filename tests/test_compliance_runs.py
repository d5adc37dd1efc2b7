"""
CareAudit - Compliance Run Tests

Service tests for run creation, responses, submission and actions.
"""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from careaudit.models.company import ScopeType
from careaudit.models.compliance import ActionSeverity, ActionStatus, RunStatus, TrafficLight
from careaudit.services.compliance_run_service import ComplianceRunService, as_period_bound
from careaudit.services.reference_data_service import ReferenceDataService
from careaudit.services.tenant import TenantSession
from careaudit.utils.error_handling import (
    AuthorizationException,
    DuplicateEntryException,
    InvalidDateRangeException,
    InvalidResponseValueException,
    InvalidStateException,
    NotFoundException,
    ValidationException,
)


RUN_DATE = date(2025, 3, 3)


def items_by_title(template_and_items):
    return {item.title: item for item in template_and_items[1]}


class TestRunCreation:

    @pytest.mark.asyncio
    async def test_daily_run_covers_the_day(self, tenant, auditor, participant, site, daily_participant_template):
        run = await ComplianceRunService(tenant).create_run(
            auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE,
        )

        assert run.status == RunStatus.OPEN
        assert run.participant_id == participant.id
        assert run.site_id == site.id
        assert run.period_start.date() == RUN_DATE
        assert run.period_end.date() == RUN_DATE

    @pytest.mark.asyncio
    async def test_duplicate_run_reports_existing_id(self, tenant, auditor, participant, daily_participant_template):
        service = ComplianceRunService(tenant)
        run = await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)

        with pytest.raises(DuplicateEntryException) as exc_info:
            await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)

        assert exc_info.value.existing_id == str(run.id)
        assert exc_info.value.status_code == 409

    @pytest.mark.asyncio
    async def test_next_day_is_a_new_run(self, tenant, auditor, participant, daily_participant_template):
        service = ComplianceRunService(tenant)
        await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)
        await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=date(2025, 3, 4))

        runs = await service.list_runs(scope_entity_id=participant.id)
        assert len(runs) == 2

    @pytest.mark.asyncio
    async def test_concurrent_creators_get_one_run(
        self, db_session, session_maker, company, auditor, participant, daily_participant_template,
    ):
        template_id = daily_participant_template[0].id
        participant_id = participant.id
        company_id = company.id
        await db_session.commit()

        async def open_run():
            async with session_maker() as session:
                service = ComplianceRunService(TenantSession(session, company_id))
                return await service.create_run(auditor, template_id, participant_id, run_date=RUN_DATE)

        results = await asyncio.gather(open_run(), open_run(), return_exceptions=True)

        runs = [r for r in results if not isinstance(r, Exception)]
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(runs) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateEntryException)
        assert errors[0].existing_id == str(runs[0].id)

    @pytest.mark.asyncio
    async def test_weekly_run_needs_a_period(self, tenant, auditor, participant, weekly_participant_template):
        service = ComplianceRunService(tenant)
        template_id = weekly_participant_template[0].id

        with pytest.raises(ValidationException):
            await service.create_run(auditor, template_id, participant.id)

        with pytest.raises(InvalidDateRangeException):
            await service.create_run(
                auditor, template_id, participant.id,
                period_start=date(2025, 3, 9), period_end=date(2025, 3, 3),
            )

        run = await service.create_run(
            auditor, template_id, participant.id,
            period_start=date(2025, 3, 3), period_end=date(2025, 3, 9),
        )
        assert run.period_start.date() == date(2025, 3, 3)
        assert run.period_end.date() == date(2025, 3, 9)

    @pytest.mark.asyncio
    async def test_scope_entity_must_match_template_scope(self, tenant, auditor, participant, daily_site_template):
        with pytest.raises(NotFoundException):
            await ComplianceRunService(tenant).create_run(
                auditor, daily_site_template[0].id, participant.id, run_date=RUN_DATE,
            )


class TestPeriodBounds:

    def test_aware_datetime_is_converted_to_utc(self):
        brisbane = timezone(timedelta(hours=10))
        bound = as_period_bound(datetime(2025, 3, 3, 10, 0, tzinfo=brisbane))

        assert bound == datetime(2025, 3, 3, 0, 0, tzinfo=timezone.utc)
        assert bound.utcoffset() == timedelta(0)

    def test_naive_datetime_is_taken_as_utc(self):
        assert as_period_bound(datetime(2025, 3, 3, 8, 30)) == datetime(2025, 3, 3, 8, 30, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_same_instant_in_another_offset_is_a_duplicate(
        self, tenant, auditor, participant, weekly_participant_template,
    ):
        service = ComplianceRunService(tenant)
        template_id = weekly_participant_template[0].id
        brisbane = timezone(timedelta(hours=10))

        run = await service.create_run(
            auditor, template_id, participant.id,
            period_start=datetime(2025, 3, 3, 10, 0, tzinfo=brisbane),
            period_end=datetime(2025, 3, 10, 9, 59, tzinfo=brisbane),
        )

        with pytest.raises(DuplicateEntryException) as exc_info:
            await service.create_run(
                auditor, template_id, participant.id,
                period_start=datetime(2025, 3, 3, 0, 0, tzinfo=timezone.utc),
                period_end=datetime(2025, 3, 9, 23, 59, tzinfo=timezone.utc),
            )
        assert exc_info.value.existing_id == str(run.id)


class TestStaffScoping:

    @pytest.mark.asyncio
    async def test_staff_needs_an_assignment(
        self, tenant, admin, staff, staff_user, participant, daily_participant_template,
    ):
        service = ComplianceRunService(tenant)

        with pytest.raises(AuthorizationException):
            await service.create_run(staff, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)

        await ReferenceDataService(tenant).assign_staff(admin, staff_user.id, ScopeType.PARTICIPANT, participant.id)
        run = await service.create_run(staff, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)
        assert run.created_by_id == staff_user.id

    @pytest.mark.asyncio
    async def test_staff_cannot_create_templates(self, tenant, staff):
        with pytest.raises(AuthorizationException):
            await ComplianceRunService(tenant).create_template(
                staff, name="Mine", scope_type=ScopeType.SITE, frequency="DAILY", items=[],
            )


class TestResponses:

    @pytest.mark.asyncio
    async def test_last_write_wins(self, tenant, auditor, participant, daily_participant_template):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_participant_template)
        run = await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)
        item_id = items["Fluid intake (ml)"].id

        await service.upsert_response(auditor, run.id, item_id, "900")
        await service.upsert_response(auditor, run.id, item_id, "1250", notes="Encouraged at lunch")

        responses = await service.list_responses(run.id)
        assert len(responses) == 1
        assert responses[0].response_value == "1250"
        assert responses[0].notes == "Encouraged at lunch"

    @pytest.mark.asyncio
    async def test_invalid_values_rejected(self, tenant, auditor, participant, daily_participant_template):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_participant_template)
        run = await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)

        with pytest.raises(InvalidResponseValueException):
            await service.upsert_response(auditor, run.id, items["Fluid intake (ml)"].id, "lots")
        with pytest.raises(InvalidResponseValueException):
            await service.upsert_response(auditor, run.id, items["PRN medication given"].id, "sometimes")

    @pytest.mark.asyncio
    async def test_photo_item_needs_attachment(self, tenant, auditor, site, daily_site_template):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_site_template)
        run = await service.create_run(auditor, daily_site_template[0].id, site.id, run_date=RUN_DATE)

        with pytest.raises(ValidationException):
            await service.upsert_response(auditor, run.id, items["Roster displayed"].id, "YES")

        response = await service.upsert_response(
            auditor, run.id, items["Roster displayed"].id, None, attachment_path="photos/roster.jpg",
        )
        assert response.attachment_path == "photos/roster.jpg"

    @pytest.mark.asyncio
    async def test_item_from_another_template_rejected(
        self, tenant, auditor, participant, daily_participant_template, weekly_participant_template,
    ):
        service = ComplianceRunService(tenant)
        run = await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)
        with pytest.raises(ValidationException):
            await service.upsert_response(auditor, run.id, weekly_participant_template[1][0].id, "3")


class TestSubmission:

    @pytest.mark.asyncio
    async def test_unanswered_critical_item_leaves_run_open(
        self, tenant, auditor, participant, daily_participant_template,
    ):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_participant_template)
        run = await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)
        await service.upsert_response(auditor, run.id, items["Incident occurred today"].id, "NO")

        with pytest.raises(ValidationException) as exc_info:
            await service.submit_run(auditor, run.id)

        missing = exc_info.value.details["missing_critical_items"]
        assert [m["title"] for m in missing] == ["Medication administered as prescribed"]

        run = await service.get_run(run.id)
        assert run.status == RunStatus.OPEN
        assert run.overall_status is None
        assert await service.list_actions(run_id=run.id) == []

    @pytest.mark.asyncio
    async def test_failures_derive_actions(self, tenant, auditor, participant, site, daily_participant_template):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_participant_template)
        run = await service.create_run(auditor, daily_participant_template[0].id, participant.id, run_date=RUN_DATE)
        await service.upsert_response(
            auditor, run.id, items["Medication administered as prescribed"].id, "NO", notes="Morning dose missed",
        )
        await service.upsert_response(auditor, run.id, items["Incident occurred today"].id, "YES")
        await service.upsert_response(auditor, run.id, items["PRN medication given"].id, "YES")

        result = await service.submit_run(auditor, run.id)

        assert result.entity.status == RunStatus.SUBMITTED
        assert result.entity.overall_status == TrafficLight.RED
        assert result.entity.submitted_by_id == auditor.user_id

        by_severity = {action.severity: action for action in result.derived}
        assert set(by_severity) == {ActionSeverity.HIGH, ActionSeverity.MEDIUM}
        assert by_severity[ActionSeverity.HIGH].description == "Morning dose missed"
        assert by_severity[ActionSeverity.MEDIUM].title == "Incident occurred today - Missing Details"
        for action in result.derived:
            assert action.status == ActionStatus.OPEN
            assert action.participant_id == participant.id
            assert action.site_id == site.id

    @pytest.mark.asyncio
    async def test_clean_run_is_green(self, tenant, auditor, site, daily_site_template):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_site_template)
        run = await service.create_run(auditor, daily_site_template[0].id, site.id, run_date=RUN_DATE)
        await service.upsert_response(auditor, run.id, items["Fire exits clear"].id, "YES")
        await service.upsert_response(auditor, run.id, items["Kitchen clean"].id, "YES")

        result = await service.submit_run(auditor, run.id)

        assert result.entity.overall_status == TrafficLight.GREEN
        assert result.derived == []

    @pytest.mark.asyncio
    async def test_submitted_run_is_frozen(self, tenant, auditor, site, daily_site_template):
        service = ComplianceRunService(tenant)
        items = items_by_title(daily_site_template)
        run = await service.create_run(auditor, daily_site_template[0].id, site.id, run_date=RUN_DATE)
        await service.upsert_response(auditor, run.id, items["Fire exits clear"].id, "YES")
        await service.submit_run(auditor, run.id)

        with pytest.raises(InvalidStateException):
            await service.submit_run(auditor, run.id)
        with pytest.raises(InvalidStateException):
            await service.upsert_response(auditor, run.id, items["Kitchen clean"].id, "NO")


class TestActions:

    async def _red_site_run(self, service, actor, site, template):
        items = items_by_title(template)
        run = await service.create_run(actor, template[0].id, site.id, run_date=RUN_DATE)
        await service.upsert_response(actor, run.id, items["Fire exits clear"].id, "NO", notes="Boxes in corridor")
        result = await service.submit_run(actor, run.id)
        return result.derived[0]

    @pytest.mark.asyncio
    async def test_action_follow_up_and_close(
        self, tenant, auditor, reviewer_user, site, daily_site_template,
    ):
        service = ComplianceRunService(tenant)
        action = await self._red_site_run(service, auditor, site, daily_site_template)
        assert action.severity == ActionSeverity.HIGH

        action = await service.update_action(
            auditor, action.id, assigned_to_id=reviewer_user.id, status=ActionStatus.IN_PROGRESS,
            due_date=date(2025, 3, 5),
        )
        assert action.status == ActionStatus.IN_PROGRESS
        assert action.assigned_to_id == reviewer_user.id

        with pytest.raises(ValidationException):
            await service.update_action(auditor, action.id, status=ActionStatus.CLOSED)
        with pytest.raises(ValidationException):
            await service.close_action(auditor, action.id, "   ")

        action = await service.close_action(
            auditor, action.id, "Corridor cleared and checked", attachment_path="photos/corridor.jpg",
        )
        assert action.status == ActionStatus.CLOSED
        assert action.closure_attachment_path == "photos/corridor.jpg"
        assert action.closed_at is not None

        with pytest.raises(InvalidStateException):
            await service.close_action(auditor, action.id, "Again")

    @pytest.mark.asyncio
    async def test_staff_closes_only_assigned_actions(
        self, tenant, admin, auditor, staff, staff_user, site, daily_site_template,
    ):
        service = ComplianceRunService(tenant)
        action = await self._red_site_run(service, auditor, site, daily_site_template)

        with pytest.raises(AuthorizationException):
            await service.close_action(staff, action.id, "Cleared the corridor")

        await service.update_action(auditor, action.id, assigned_to_id=staff_user.id)
        action = await service.close_action(staff, action.id, "Cleared the corridor")
        assert action.closed_by_id == staff_user.id
