"""
CareAudit - Workflow Transition Tables

Every stateful entity moves through an explicit (state, action) -> state
table. Anything not in the table is an invalid-state error.
"""

import enum
from typing import Dict, Generic, List, Tuple, TypeVar

from careaudit.models.audit import AuditStatus, FindingStatus
from careaudit.models.compliance import ActionStatus, RunStatus
from careaudit.models.document_review import SuggestionStatus
from careaudit.models.evidence import EvidenceStatus
from careaudit.models.report import ReportStatus
from careaudit.utils.error_handling import InvalidStateException


S = TypeVar("S", bound=enum.Enum)
A = TypeVar("A", bound=enum.Enum)


class TransitionTable(Generic[S, A]):
    """Closed transition table for one entity type."""
    
    def __init__(self, entity_type: str, transitions: Dict[Tuple[S, A], S]):
        self.entity_type = entity_type
        self._transitions = dict(transitions)
    
    def can(self, state: S, action: A) -> bool:
        return (state, action) in self._transitions
    
    def next_state(self, state: S, action: A) -> S:
        """
        Resolve the state reached by applying ``action`` in ``state``.

        Raises:
            InvalidStateException: the pair is not in the table
        """
        try:
            return self._transitions[(state, action)]
        except KeyError:
            raise InvalidStateException(
                entity_type=self.entity_type,
                current_state=state.value,
                action=action.value.lower().replace("_", " "),
            )
    
    def allowed_actions(self, state: S) -> List[A]:
        return [action for (current, action) in self._transitions if current == state]


# ===========================================
# AUDITS
# ===========================================

class AuditAction(str, enum.Enum):
    EDIT_SCOPE = "EDIT_SCOPE"
    SELECT_TEMPLATE = "SELECT_TEMPLATE"
    START = "START"
    RESPOND = "RESPOND"
    SUBMIT = "SUBMIT"
    ADD_LATE_RESPONSE = "ADD_LATE_RESPONSE"
    CLOSE = "CLOSE"


AUDIT_TRANSITIONS: TransitionTable[AuditStatus, AuditAction] = TransitionTable("audit", {
    (AuditStatus.DRAFT, AuditAction.EDIT_SCOPE): AuditStatus.DRAFT,
    (AuditStatus.IN_PROGRESS, AuditAction.EDIT_SCOPE): AuditStatus.IN_PROGRESS,
    (AuditStatus.DRAFT, AuditAction.SELECT_TEMPLATE): AuditStatus.DRAFT,
    (AuditStatus.DRAFT, AuditAction.START): AuditStatus.IN_PROGRESS,
    (AuditStatus.IN_PROGRESS, AuditAction.RESPOND): AuditStatus.IN_PROGRESS,
    (AuditStatus.IN_PROGRESS, AuditAction.SUBMIT): AuditStatus.IN_REVIEW,
    (AuditStatus.IN_REVIEW, AuditAction.ADD_LATE_RESPONSE): AuditStatus.IN_REVIEW,
    (AuditStatus.IN_REVIEW, AuditAction.CLOSE): AuditStatus.CLOSED,
})


class FindingAction(str, enum.Enum):
    MARK_UNDER_REVIEW = "MARK_UNDER_REVIEW"
    REOPEN = "REOPEN"
    CLOSE = "CLOSE"


FINDING_TRANSITIONS: TransitionTable[FindingStatus, FindingAction] = TransitionTable("finding", {
    (FindingStatus.OPEN, FindingAction.MARK_UNDER_REVIEW): FindingStatus.UNDER_REVIEW,
    (FindingStatus.UNDER_REVIEW, FindingAction.REOPEN): FindingStatus.OPEN,
    (FindingStatus.OPEN, FindingAction.CLOSE): FindingStatus.CLOSED,
    (FindingStatus.UNDER_REVIEW, FindingAction.CLOSE): FindingStatus.CLOSED,
})

# Target status requested by a caller -> action that reaches it
FINDING_ACTION_FOR_STATUS = {
    FindingStatus.UNDER_REVIEW: FindingAction.MARK_UNDER_REVIEW,
    FindingStatus.OPEN: FindingAction.REOPEN,
    FindingStatus.CLOSED: FindingAction.CLOSE,
}


# ===========================================
# COMPLIANCE RUNS & ACTIONS
# ===========================================

class RunAction(str, enum.Enum):
    RESPOND = "RESPOND"
    SUBMIT = "SUBMIT"


RUN_TRANSITIONS: TransitionTable[RunStatus, RunAction] = TransitionTable("compliance run", {
    (RunStatus.OPEN, RunAction.RESPOND): RunStatus.OPEN,
    (RunStatus.OPEN, RunAction.SUBMIT): RunStatus.SUBMITTED,
})


class ComplianceActionEvent(str, enum.Enum):
    START_WORK = "START_WORK"
    CLOSE = "CLOSE"


ACTION_TRANSITIONS: TransitionTable[ActionStatus, ComplianceActionEvent] = TransitionTable("compliance action", {
    (ActionStatus.OPEN, ComplianceActionEvent.START_WORK): ActionStatus.IN_PROGRESS,
    (ActionStatus.OPEN, ComplianceActionEvent.CLOSE): ActionStatus.CLOSED,
    (ActionStatus.IN_PROGRESS, ComplianceActionEvent.CLOSE): ActionStatus.CLOSED,
})


# ===========================================
# EVIDENCE & SUGGESTIONS
# ===========================================

class EvidenceAction(str, enum.Enum):
    SUBMIT = "SUBMIT"
    START_REVIEW = "START_REVIEW"
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


EVIDENCE_TRANSITIONS: TransitionTable[EvidenceStatus, EvidenceAction] = TransitionTable("evidence request", {
    (EvidenceStatus.REQUESTED, EvidenceAction.SUBMIT): EvidenceStatus.SUBMITTED,
    (EvidenceStatus.REJECTED, EvidenceAction.SUBMIT): EvidenceStatus.SUBMITTED,
    (EvidenceStatus.SUBMITTED, EvidenceAction.START_REVIEW): EvidenceStatus.UNDER_REVIEW,
    (EvidenceStatus.UNDER_REVIEW, EvidenceAction.ACCEPT): EvidenceStatus.ACCEPTED,
    (EvidenceStatus.UNDER_REVIEW, EvidenceAction.REJECT): EvidenceStatus.REJECTED,
})


class SuggestionAction(str, enum.Enum):
    CONFIRM = "CONFIRM"
    DISMISS = "DISMISS"


SUGGESTION_TRANSITIONS: TransitionTable[SuggestionStatus, SuggestionAction] = TransitionTable("suggested finding", {
    (SuggestionStatus.PENDING, SuggestionAction.CONFIRM): SuggestionStatus.CONFIRMED,
    (SuggestionStatus.PENDING, SuggestionAction.DISMISS): SuggestionStatus.DISMISSED,
})


# ===========================================
# WEEKLY REPORTS
# ===========================================

class ReportAction(str, enum.Enum):
    EDIT = "EDIT"
    FINALIZE = "FINALIZE"


REPORT_TRANSITIONS: TransitionTable[ReportStatus, ReportAction] = TransitionTable("weekly report", {
    (ReportStatus.DRAFT, ReportAction.EDIT): ReportStatus.DRAFT,
    (ReportStatus.DRAFT, ReportAction.FINALIZE): ReportStatus.FINAL,
})
