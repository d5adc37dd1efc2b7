"""
CareAudit - Weekly Rollup

Reduces one participant's compliance runs and actions for a window to the
fixed metrics object handed to the report writer. No narrative is produced
here.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from careaudit.models.compliance import ActionSeverity, ActionStatus, Frequency, TrafficLight


@dataclass
class ItemResponseSnapshot:
    title: str
    value: Optional[str]
    notes: Optional[str]
    is_critical: bool


@dataclass
class RunSnapshot:
    run_date: date
    template_name: str
    frequency: Frequency
    responses: List[ItemResponseSnapshot] = field(default_factory=list)


@dataclass
class ActionSnapshot:
    title: str
    severity: ActionSeverity
    status: ActionStatus
    created_on: date


@dataclass
class WeeklyMetrics:
    daily_runs_completed: int = 0
    weekly_runs_completed: int = 0
    critical_failures: int = 0
    incident_days: int = 0
    weekly_incident_count: int = 0
    medication_non_compliance_days: int = 0
    weekly_medication_compliant: str = "NA"
    prn_used: bool = False
    restrictive_practices_used: bool = False
    open_high_actions: int = 0
    open_medium_actions: int = 0
    overall_status: TrafficLight = TrafficLight.GREEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dailyRunsCompletedCount": self.daily_runs_completed,
            "weeklyRunsCompletedCount": self.weekly_runs_completed,
            "dailyCriticalFailuresCount": self.critical_failures,
            "incidentDaysCount": self.incident_days,
            "weeklyIncidentCount": self.weekly_incident_count,
            "medicationNonComplianceDaysCount": self.medication_non_compliance_days,
            "weeklyMedicationCompliant": self.weekly_medication_compliant,
            "prnFlag": self.prn_used,
            "restrictivePracticesUsed": self.restrictive_practices_used,
            "openActionsCountBySeverity": {
                ActionSeverity.HIGH.value: self.open_high_actions,
                ActionSeverity.MEDIUM.value: self.open_medium_actions,
            },
            "overallStatus": self.overall_status.value,
        }


def _parse_count(value: Optional[str]) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return 0


def compute_weekly_metrics(
    runs: Sequence[RunSnapshot],
    actions: Sequence[ActionSnapshot],
) -> WeeklyMetrics:
    """Reduce a window of runs and actions to the weekly metrics."""
    metrics = WeeklyMetrics(
        daily_runs_completed=sum(1 for run in runs if run.frequency == Frequency.DAILY),
        weekly_runs_completed=sum(1 for run in runs if run.frequency == Frequency.WEEKLY),
    )

    for run in runs:
        for response in run.responses:
            title = response.title.lower()
            value = response.value

            if response.is_critical and value == "NO":
                metrics.critical_failures += 1

            if "incident" in title and value == "YES":
                metrics.incident_days += 1

            if run.frequency == Frequency.WEEKLY and "number of incidents" in title and value:
                metrics.weekly_incident_count = _parse_count(value)

            if "medication" in title:
                if run.frequency == Frequency.DAILY and value == "NO":
                    metrics.medication_non_compliance_days += 1
                if run.frequency == Frequency.WEEKLY:
                    metrics.weekly_medication_compliant = value or "NA"

            if "prn" in title and value == "YES":
                metrics.prn_used = True

            if "restrictive practice" in title and value == "YES":
                metrics.restrictive_practices_used = True

    high = [a for a in actions if a.severity == ActionSeverity.HIGH]
    medium = [a for a in actions if a.severity == ActionSeverity.MEDIUM]
    metrics.open_high_actions = sum(1 for a in high if a.status == ActionStatus.OPEN)
    metrics.open_medium_actions = sum(1 for a in medium if a.status == ActionStatus.OPEN)

    if high or metrics.critical_failures > 0:
        metrics.overall_status = TrafficLight.RED
    elif medium:
        metrics.overall_status = TrafficLight.AMBER
    else:
        metrics.overall_status = TrafficLight.GREEN

    return metrics


def build_report_payload(
    participant_name: str,
    period_start: date,
    period_end: date,
    runs: Sequence[RunSnapshot],
    actions: Sequence[ActionSnapshot],
) -> Dict[str, Any]:
    """The complete, verbatim input handed to the report writer."""
    metrics = compute_weekly_metrics(runs, actions)
    return {
        "participantName": participant_name,
        "periodStart": period_start.isoformat(),
        "periodEnd": period_end.isoformat(),
        "metrics": metrics.to_dict(),
        "runSummaries": [
            {
                "date": run.run_date.isoformat(),
                "templateName": run.template_name,
                "frequency": run.frequency.value,
                "itemResponses": [
                    {
                        "title": r.title,
                        "value": r.value,
                        "notes": r.notes or None,
                        "isCritical": r.is_critical,
                    }
                    for r in run.responses
                ],
            }
            for run in runs
        ],
        "actions": [
            {
                "title": a.title,
                "severity": a.severity.value,
                "status": a.status.value,
                "createdAt": a.created_on.isoformat(),
            }
            for a in actions
        ],
    }


def hash_payload(payload: Dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON form of a payload."""
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
