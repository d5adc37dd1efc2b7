"""
CareAudit - Document Quality Tests
"""

import uuid
from types import SimpleNamespace

from careaudit.models.document_review import ChecklistAnswer, SuggestedFindingType, SuggestionSeverity
from careaudit.services.rules.document_quality import score_document, suggest_finding


def checklist(*critical_flags):
    return [SimpleNamespace(id=uuid.uuid4(), is_critical=flag) for flag in critical_flags]


class TestScoreDocument:

    def test_partly_counts_half(self):
        items = checklist(False, False, False, False, False)
        answers = {
            items[0].id: ChecklistAnswer.YES,
            items[1].id: ChecklistAnswer.YES,
            items[2].id: ChecklistAnswer.PARTLY,
            items[3].id: ChecklistAnswer.NO,
            items[4].id: ChecklistAnswer.NA,
        }

        result = score_document(items, answers)

        assert (result.yes_count, result.partly_count, result.no_count, result.na_count) == (2, 1, 1, 1)
        # 2.5 of 4 applicable is 62.5%
        assert result.dqs_percent == 63
        assert suggest_finding(result) is None

    def test_all_na_scores_zero(self):
        items = checklist(False, False)
        result = score_document(items, {i.id: ChecklistAnswer.NA for i in items})
        assert result.dqs_percent == 0

    def test_answers_outside_the_checklist_are_ignored(self):
        items = checklist(False)
        answers = {items[0].id: ChecklistAnswer.YES, uuid.uuid4(): ChecklistAnswer.NO}
        result = score_document(items, answers)
        assert result.no_count == 0
        assert result.dqs_percent == 100


class TestSuggestFinding:

    def test_critical_failure_suggests_major(self):
        items = checklist(True, False, False, False)
        answers = {
            items[0].id: ChecklistAnswer.NO,
            items[1].id: ChecklistAnswer.YES,
            items[2].id: ChecklistAnswer.YES,
            items[3].id: ChecklistAnswer.PARTLY,
        }

        result = score_document(items, answers)
        suggestion = suggest_finding(result)

        assert result.dqs_percent == 63
        assert suggestion.finding_type == SuggestedFindingType.MAJOR_NC
        assert suggestion.severity == SuggestionSeverity.HIGH
        assert "1 critical" in suggestion.rationale

    def test_low_score_suggests_minor(self):
        items = checklist(False, False, False)
        answers = {
            items[0].id: ChecklistAnswer.NO,
            items[1].id: ChecklistAnswer.NO,
            items[2].id: ChecklistAnswer.YES,
        }

        suggestion = suggest_finding(score_document(items, answers))

        assert suggestion.finding_type == SuggestedFindingType.MINOR_NC
        assert suggestion.severity == SuggestionSeverity.MEDIUM
        assert "33%" in suggestion.rationale

    def test_exactly_fifty_suggests_nothing(self):
        items = checklist(False, False)
        answers = {items[0].id: ChecklistAnswer.YES, items[1].id: ChecklistAnswer.NO}
        assert suggest_finding(score_document(items, answers)) is None
