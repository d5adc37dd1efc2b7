"""
CareAudit - Report Text Generation

Turns a weekly rollup payload into narrative text using OpenAI chat
completions. The generator only ever sees the payload it is given; it
does not read the database.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import openai

from careaudit.config import settings

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You write weekly compliance summaries for a disability support provider.
Use ONLY the data provided. Do not invent or assume anything.

Rules:
1. Summarize only the checklist entries and actions given
2. Never include diagnoses, disability types or other sensitive health details
3. Use factual, neutral, professional language
4. Where something is not recorded, say "Not recorded in checklist entries"
5. Reference dates when describing issues or incidents

Use these headings:
1) Period Overview
2) Support Delivery and Documentation
3) Incidents and Safeguards
4) Medication and Health
5) Actions and Follow-up
6) Overall Compliance Status (GREEN/AMBER/RED with a short justification)

Keep the report between 300 and 500 words."""


def build_user_prompt(payload: Dict[str, Any]) -> str:
    """Render the rollup payload as the user message."""
    metrics = payload["metrics"]
    open_actions = metrics["openActionsCountBySeverity"]

    lines = [
        f'Write the weekly compliance summary for "{payload["participantName"]}" '
        f'covering {payload["periodStart"]} to {payload["periodEnd"]}.',
        "",
        "METRICS:",
        f"- Daily checks completed: {metrics['dailyRunsCompletedCount']}",
        f"- Weekly checks completed: {metrics['weeklyRunsCompletedCount']}",
        f"- Critical failures: {metrics['dailyCriticalFailuresCount']}",
        f"- Days with incidents reported: {metrics['incidentDaysCount']}",
        f"- Weekly incident count: {metrics['weeklyIncidentCount']}",
        f"- Medication non-compliance days: {metrics['medicationNonComplianceDaysCount']}",
        f"- Weekly medication compliance: {metrics['weeklyMedicationCompliant']}",
        f"- PRN usage noted: {'Yes' if metrics['prnFlag'] else 'No'}",
        f"- Restrictive practices used: {'Yes' if metrics['restrictivePracticesUsed'] else 'No'}",
        f"- Open HIGH actions: {open_actions['HIGH']}",
        f"- Open MEDIUM actions: {open_actions['MEDIUM']}",
        f"- Overall status: {metrics['overallStatus']}",
        "",
        "CHECKLIST ENTRIES:",
    ]

    for run in payload["runSummaries"]:
        lines.append(f"{run['date']} - {run['templateName']} ({run['frequency']}):")
        for response in run["itemResponses"]:
            entry = f"  - {response['title']}: {response['value']}"
            if response.get("notes"):
                entry += f" (Notes: {response['notes']})"
            if response.get("isCritical"):
                entry += " [CRITICAL]"
            lines.append(entry)
        lines.append("")

    lines.append("COMPLIANCE ACTIONS CREATED:")
    if payload["actions"]:
        for action in payload["actions"]:
            lines.append(f"- {action['createdAt']}: {action['title']} ({action['severity']}, {action['status']})")
    else:
        lines.append("No actions created this period")

    return "\n".join(lines)


@dataclass
class GeneratedText:
    text: str
    model_name: str


class ReportTextGenerator(ABC):
    """Interface of the narrative writer handed a weekly rollup payload."""

    model_name: str = "unknown"

    @abstractmethod
    async def generate(self, payload: Dict[str, Any]) -> GeneratedText:
        ...


class OpenAIReportTextGenerator(ReportTextGenerator):
    """Chat-completions writer with a bounded request timeout and no retries."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ):
        self.model_name = model or settings.openai_model
        self.max_tokens = max_tokens or settings.openai_max_tokens
        self._api_key = api_key or settings.openai_api_key or None
        self._timeout = timeout or settings.openai_timeout_seconds
        self._client: Optional[openai.AsyncOpenAI] = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        # Built on first use so a missing key fails the generation, not the request
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                api_key=self._api_key,
                timeout=self._timeout,
                max_retries=0,
            )
        return self._client

    async def generate(self, payload: Dict[str, Any]) -> GeneratedText:
        logger.info(f"Requesting report text from {self.model_name}")
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(payload)},
            ],
            max_tokens=self.max_tokens,
            temperature=0.3,
        )

        text = response.choices[0].message.content if response.choices else None
        if not text:
            raise ValueError("Text generation returned an empty response")
        return GeneratedText(text=text, model_name=response.model or self.model_name)


def get_report_text_generator() -> ReportTextGenerator:
    """FastAPI dependency; overridden in tests."""
    return OpenAIReportTextGenerator()
