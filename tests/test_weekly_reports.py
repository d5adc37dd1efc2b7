"""
CareAudit - Weekly Report Tests

Service tests for rollups, report generation and generation logging.
"""

import asyncio
from datetime import timedelta
from types import SimpleNamespace

import pytest
import pytest_asyncio

from careaudit.config import settings
from careaudit.models.base import utc_now
from careaudit.models.report import ReportStatus
from careaudit.services.compliance_run_service import ComplianceRunService
from careaudit.services.text_generation import (
    GeneratedText,
    OpenAIReportTextGenerator,
    ReportTextGenerator,
    build_user_prompt,
)
from careaudit.services.weekly_report_service import FEATURE_KEY, WeeklyReportService
from careaudit.utils.error_handling import (
    AuthorizationException,
    ErrorCode,
    InvalidStateException,
    TextGenerationException,
    ValidationException,
)


def this_week():
    today = utc_now().date()
    return today - timedelta(days=6), today


class SlowTextGenerator(ReportTextGenerator):
    model_name = "slow-writer"

    async def generate(self, payload):
        await asyncio.sleep(1)
        return GeneratedText(text="too late", model_name=self.model_name)


@pytest_asyncio.fixture
async def submitted_run(tenant, auditor, participant, daily_participant_template):
    """Today's daily run with a missed medication and an incident."""
    service = ComplianceRunService(tenant)
    items = {item.title: item for item in daily_participant_template[1]}
    run = await service.create_run(auditor, daily_participant_template[0].id, participant.id)
    await service.upsert_response(
        auditor, run.id, items["Medication administered as prescribed"].id, "NO", notes="Evening dose refused",
    )
    await service.upsert_response(
        auditor, run.id, items["Incident occurred today"].id, "YES", notes="Verbal altercation at dinner",
    )
    await service.upsert_response(auditor, run.id, items["Restrictive practice used"].id, "NO")
    result = await service.submit_run(auditor, run.id)
    return result.entity


class TestRollup:

    @pytest.mark.asyncio
    async def test_empty_window_is_rejected(self, tenant, participant):
        start, end = this_week()
        with pytest.raises(ValidationException):
            await WeeklyReportService(tenant).compute_rollup(participant.id, start, end)

    @pytest.mark.asyncio
    async def test_metrics_from_submitted_runs(self, tenant, participant, submitted_run):
        start, end = this_week()

        rollup = await WeeklyReportService(tenant).compute_rollup(participant.id, start, end)

        metrics = rollup.metrics
        assert rollup.payload["participantName"] == "Jordan Lee"
        assert metrics["dailyRunsCompletedCount"] == 1
        assert metrics["dailyCriticalFailuresCount"] == 1
        assert metrics["incidentDaysCount"] == 1
        assert metrics["medicationNonComplianceDaysCount"] == 1
        assert metrics["prnFlag"] is False
        assert metrics["restrictivePracticesUsed"] is False
        assert metrics["openActionsCountBySeverity"] == {"HIGH": 1, "MEDIUM": 1}
        assert metrics["overallStatus"] == "RED"

    @pytest.mark.asyncio
    async def test_hash_is_stable_for_unchanged_data(self, tenant, participant, submitted_run):
        service = WeeklyReportService(tenant)
        start, end = this_week()

        first = await service.compute_rollup(participant.id, start, end)
        second = await service.compute_rollup(participant.id, start, end)

        assert first.input_hash == second.input_hash
        assert len(first.input_hash) == 64


class TestGenerateReport:

    @pytest.mark.asyncio
    async def test_generated_text_stored_verbatim(self, tenant, auditor, participant, submitted_run, fake_generator):
        service = WeeklyReportService(tenant)
        start, end = this_week()
        rollup = await service.compute_rollup(participant.id, start, end)

        report = await service.generate_report(auditor, participant.id, start, end, fake_generator)

        assert report.status == ReportStatus.DRAFT
        assert report.generated_text == fake_generator.text
        assert report.final_text is None
        assert report.input_hash == rollup.input_hash
        assert report.model_name == "fake-writer"
        assert report.prompt_version == settings.report_prompt_version
        assert fake_generator.payloads == [rollup.payload]

        [log] = await service.generation_logs(participant.id)
        assert log.success is True
        assert log.feature_key == FEATURE_KEY
        assert log.input_hash == rollup.input_hash

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_nothing_stored(
        self, tenant, auditor, participant, submitted_run, failing_generator,
    ):
        service = WeeklyReportService(tenant)
        start, end = this_week()

        with pytest.raises(TextGenerationException) as exc_info:
            await service.generate_report(auditor, participant.id, start, end, failing_generator)

        assert exc_info.value.code == ErrorCode.TEXT_GENERATION_ERROR
        assert exc_info.value.status_code == 502
        assert await service.list_reports(participant.id) == []

        [log] = await service.generation_logs(participant.id)
        assert log.success is False
        assert log.error_message == "upstream unavailable"
        assert exc_info.value.details["input_hash"] == log.input_hash

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failure(
        self, tenant, auditor, participant, submitted_run, monkeypatch,
    ):
        monkeypatch.setattr(settings, "openai_timeout_seconds", 0.05)
        service = WeeklyReportService(tenant)
        start, end = this_week()

        with pytest.raises(TextGenerationException):
            await service.generate_report(auditor, participant.id, start, end, SlowTextGenerator())

        [log] = await service.generation_logs(participant.id)
        assert log.success is False
        assert log.model_name == "slow-writer"

    @pytest.mark.asyncio
    async def test_reviewer_cannot_generate(self, tenant, reviewer, participant, submitted_run, fake_generator):
        start, end = this_week()
        with pytest.raises(AuthorizationException):
            await WeeklyReportService(tenant).generate_report(reviewer, participant.id, start, end, fake_generator)
        assert fake_generator.payloads == []


class TestUpdateReport:

    @pytest.mark.asyncio
    async def test_final_report_is_immutable(self, tenant, auditor, participant, submitted_run, fake_generator):
        service = WeeklyReportService(tenant)
        start, end = this_week()
        report = await service.generate_report(auditor, participant.id, start, end, fake_generator)

        report = await service.update_report(auditor, report.id, final_text="Edited summary")
        assert report.final_text == "Edited summary"
        assert report.generated_text == fake_generator.text

        report = await service.update_report(auditor, report.id, status=ReportStatus.FINAL)
        assert report.status == ReportStatus.FINAL

        with pytest.raises(InvalidStateException):
            await service.update_report(auditor, report.id, final_text="Too late")


class TestReportTextGenerator:

    def test_interface_cannot_be_instantiated(self):
        with pytest.raises(TypeError):
            ReportTextGenerator()

    def test_subclass_must_implement_generate(self):
        class Silent(ReportTextGenerator):
            model_name = "silent"

        with pytest.raises(TypeError):
            Silent()


class TestOpenAIReportTextGenerator:

    def _generator_returning(self, content, model="gpt-test"):
        calls = []

        async def create(**kwargs):
            calls.append(kwargs)
            message = SimpleNamespace(content=content)
            return SimpleNamespace(choices=[SimpleNamespace(message=message)], model=model)

        generator = OpenAIReportTextGenerator(api_key="sk-test", model="gpt-test", max_tokens=800)
        generator._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        return generator, calls

    def _payload(self):
        return {
            "participantName": "Jordan Lee",
            "periodStart": "2025-03-03",
            "periodEnd": "2025-03-09",
            "metrics": {
                "dailyRunsCompletedCount": 1,
                "weeklyRunsCompletedCount": 0,
                "dailyCriticalFailuresCount": 0,
                "incidentDaysCount": 0,
                "weeklyIncidentCount": 0,
                "medicationNonComplianceDaysCount": 0,
                "weeklyMedicationCompliant": "NA",
                "prnFlag": False,
                "restrictivePracticesUsed": False,
                "openActionsCountBySeverity": {"HIGH": 0, "MEDIUM": 0},
                "overallStatus": "GREEN",
            },
            "runSummaries": [{
                "date": "2025-03-03",
                "templateName": "Daily check",
                "frequency": "DAILY",
                "itemResponses": [
                    {"title": "Medication given", "value": "YES", "notes": None, "isCritical": True},
                ],
            }],
            "actions": [],
        }

    def test_prompt_carries_the_payload(self):
        prompt = build_user_prompt(self._payload())
        assert '"Jordan Lee"' in prompt
        assert "Medication given: YES [CRITICAL]" in prompt
        assert "No actions created this period" in prompt

    @pytest.mark.asyncio
    async def test_returns_completion_text(self):
        generator, calls = self._generator_returning("A settled week.")

        generated = await generator.generate(self._payload())

        assert generated == GeneratedText(text="A settled week.", model_name="gpt-test")
        assert calls[0]["model"] == "gpt-test"
        assert calls[0]["max_tokens"] == 800
        assert calls[0]["messages"][0]["role"] == "system"

    @pytest.mark.asyncio
    async def test_empty_completion_is_an_error(self):
        generator, _ = self._generator_returning("")
        with pytest.raises(ValueError):
            await generator.generate(self._payload())
