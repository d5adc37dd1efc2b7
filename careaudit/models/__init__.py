"""
CareAudit - SQLAlchemy Models Package

This package contains all database models for the application.
"""

from careaudit.models.base import BaseModel, TenantModel, TimestampMixin, AuditMixin, utc_now
from careaudit.models.company import (
    Company,
    CompanyUser,
    CompanyRole,
    WorkSite,
    Participant,
    StaffAssignment,
    ScopeType,
)
from careaudit.models.audit import (
    Audit,
    AuditType,
    AuditStatus,
    AuditTemplate,
    AuditTemplateIndicator,
    AuditIndicatorResponse,
    IndicatorRating,
    RiskLevel,
    Finding,
    FindingSeverity,
    FindingStatus,
)
from careaudit.models.compliance import (
    ComplianceTemplate,
    ComplianceTemplateItem,
    ComplianceRun,
    ComplianceResponse,
    ComplianceAction,
    Frequency,
    ResponseType,
    RunStatus,
    TrafficLight,
    ActionSeverity,
    ActionStatus,
)
from careaudit.models.evidence import (
    EvidenceRequest,
    EvidenceItem,
    EvidenceStatus,
    EvidenceItemKind,
    AuditEvidencePortal,
)
from careaudit.models.document_review import (
    DocumentChecklistTemplate,
    DocumentChecklistItem,
    DocumentReview,
    SuggestedFinding,
    ChecklistAnswer,
    ReviewDecision,
    SuggestedFindingType,
    SuggestionSeverity,
    SuggestionStatus,
)
from careaudit.models.report import WeeklyComplianceReport, AiGenerationLog, ReportStatus
from careaudit.models.change_log import ChangeLog, ChangeAction, ActorType


__all__ = [
    "BaseModel", "TenantModel", "TimestampMixin", "AuditMixin", "utc_now",
    "Company", "CompanyUser", "CompanyRole", "WorkSite", "Participant", "StaffAssignment", "ScopeType",
    "Audit", "AuditType", "AuditStatus", "AuditTemplate", "AuditTemplateIndicator",
    "AuditIndicatorResponse", "IndicatorRating", "RiskLevel", "Finding", "FindingSeverity", "FindingStatus",
    "ComplianceTemplate", "ComplianceTemplateItem", "ComplianceRun", "ComplianceResponse",
    "ComplianceAction", "Frequency", "ResponseType", "RunStatus", "TrafficLight",
    "ActionSeverity", "ActionStatus",
    "EvidenceRequest", "EvidenceItem", "EvidenceStatus", "EvidenceItemKind", "AuditEvidencePortal",
    "DocumentChecklistTemplate", "DocumentChecklistItem", "DocumentReview", "SuggestedFinding",
    "ChecklistAnswer", "ReviewDecision", "SuggestedFindingType", "SuggestionSeverity", "SuggestionStatus",
    "WeeklyComplianceReport", "AiGenerationLog", "ReportStatus",
    "ChangeLog", "ChangeAction", "ActorType",
]
