"""
CareAudit - Workflow Rules Package

Pure, database-free rules used by the workflow services.

Modules:
- scoring: indicator rating points and audit percentage
- transitions: state x action tables for every workflow entity
- compliance_rules: response validation, run outcome, action derivation
- document_quality: DQS and suggested findings
- weekly_rollup: weekly metrics and report payload
"""

from careaudit.services.rules.scoring import (
    CURRENT_SCORE_VERSION,
    audit_score_percent,
    score_for_rating,
)
from careaudit.services.rules.compliance_rules import evaluate_run_submission, validate_response_value
from careaudit.services.rules.document_quality import score_document, suggest_finding
from careaudit.services.rules.weekly_rollup import compute_weekly_metrics, build_report_payload, hash_payload

__all__ = [
    "CURRENT_SCORE_VERSION",
    "audit_score_percent",
    "score_for_rating",
    "evaluate_run_submission",
    "validate_response_value",
    "score_document",
    "suggest_finding",
    "compute_weekly_metrics",
    "build_report_payload",
    "hash_payload",
]
