"""
CareAudit - Document Quality Scoring

Computes the Document Quality Score (DQS) of one evidence item from its
checklist answers, and the non-binding finding it suggests.
"""

import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Mapping, Optional, Sequence

from careaudit.models.document_review import ChecklistAnswer, SuggestedFindingType, SuggestionSeverity
from careaudit.services.rules.scoring import round_half_up


DQS_MINOR_THRESHOLD = 50


@dataclass
class DocumentQualityResult:
    yes_count: int
    partly_count: int
    no_count: int
    na_count: int
    critical_failures: int
    
    @property
    def applicable(self) -> int:
        return self.yes_count + self.partly_count + self.no_count
    
    @property
    def dqs_percent(self) -> int:
        if self.applicable == 0:
            return 0
        earned = Decimal(self.yes_count) + Decimal(self.partly_count) / 2
        return round_half_up(earned / Decimal(self.applicable) * 100)


@dataclass
class FindingSuggestion:
    finding_type: SuggestedFindingType
    severity: SuggestionSeverity
    rationale: str


def score_document(
    items: Sequence[Any],
    answers: Mapping[uuid.UUID, ChecklistAnswer],
) -> DocumentQualityResult:
    """
    Tally checklist answers against the template's items.

    Answers for ids that are not items of the template are ignored.
    """
    counts = {answer: 0 for answer in ChecklistAnswer}
    critical_failures = 0
    
    for item in items:
        if item.id not in answers:
            continue
        answer = ChecklistAnswer(answers[item.id])
        counts[answer] += 1
        if answer == ChecklistAnswer.NO and item.is_critical:
            critical_failures += 1
    
    return DocumentQualityResult(
        yes_count=counts[ChecklistAnswer.YES],
        partly_count=counts[ChecklistAnswer.PARTLY],
        no_count=counts[ChecklistAnswer.NO],
        na_count=counts[ChecklistAnswer.NA],
        critical_failures=critical_failures,
    )


def suggest_finding(result: DocumentQualityResult) -> Optional[FindingSuggestion]:
    """
    Suggested finding for a scored document, first matching rule wins:
    critical failures -> MAJOR_NC/HIGH, DQS below 50 -> MINOR_NC/MEDIUM,
    otherwise nothing.
    """
    if result.critical_failures > 0:
        return FindingSuggestion(
            finding_type=SuggestedFindingType.MAJOR_NC,
            severity=SuggestionSeverity.HIGH,
            rationale=(
                f"{result.critical_failures} critical checklist item(s) failed. "
                f"Document quality score {result.dqs_percent}%."
            ),
        )
    if result.dqs_percent < DQS_MINOR_THRESHOLD:
        return FindingSuggestion(
            finding_type=SuggestedFindingType.MINOR_NC,
            severity=SuggestionSeverity.MEDIUM,
            rationale=(
                f"Document quality score {result.dqs_percent}% is below "
                f"{DQS_MINOR_THRESHOLD}%."
            ),
        )
    return None
