"""
CareAudit - Permissions System

Role-based permissions for company users.

Permission Matrix:
==================

| Permission                | CompanyAdmin | Auditor | Reviewer | StaffReadOnly |
|---------------------------|--------------|---------|----------|---------------|
| manage_audits             | X            | X       |          |               |
| close_audits              | X            |         | X        |               |
| review_audits             | X            |         | X        |               |
| update_findings           | X            | X       | X        |               |
| close_findings            | X            |         | X        |               |
| manage_templates          | X            |         |          |               |
| run_compliance_checks     | X            | X       | X        | assigned      |
| manage_actions            | X            | X       | X        | assigned      |
| manage_evidence           | X            | X       | X        |               |
| review_documents          | X            | X       | X        |               |
| decide_suggestions        | X            | X       | X        |               |
| manage_weekly_reports     | X            | X       |          |               |
| manage_reference_data     | X            |         |          |               |

"assigned": StaffReadOnly users hold the permission only for the sites and
participants they are assigned to (see StaffAssignment).
"""

from enum import Enum
from typing import Dict, Optional, Set

from careaudit.models.company import CompanyRole
from careaudit.utils.error_handling import InsufficientPermissionsException


class CompanyPermission(str, Enum):
    """Permissions for company users."""

    MANAGE_AUDITS = "manage_audits"
    CLOSE_AUDITS = "close_audits"
    REVIEW_AUDITS = "review_audits"
    UPDATE_FINDINGS = "update_findings"
    CLOSE_FINDINGS = "close_findings"
    MANAGE_TEMPLATES = "manage_templates"
    RUN_COMPLIANCE_CHECKS = "run_compliance_checks"
    MANAGE_ACTIONS = "manage_actions"
    MANAGE_EVIDENCE = "manage_evidence"
    REVIEW_DOCUMENTS = "review_documents"
    DECIDE_SUGGESTIONS = "decide_suggestions"
    MANAGE_WEEKLY_REPORTS = "manage_weekly_reports"
    MANAGE_REFERENCE_DATA = "manage_reference_data"


ROLE_PERMISSIONS: Dict[CompanyRole, Set[CompanyPermission]] = {
    CompanyRole.COMPANY_ADMIN: set(CompanyPermission),
    CompanyRole.AUDITOR: {
        CompanyPermission.MANAGE_AUDITS,
        CompanyPermission.UPDATE_FINDINGS,
        CompanyPermission.RUN_COMPLIANCE_CHECKS,
        CompanyPermission.MANAGE_ACTIONS,
        CompanyPermission.MANAGE_EVIDENCE,
        CompanyPermission.REVIEW_DOCUMENTS,
        CompanyPermission.DECIDE_SUGGESTIONS,
        CompanyPermission.MANAGE_WEEKLY_REPORTS,
    },
    CompanyRole.REVIEWER: {
        CompanyPermission.CLOSE_AUDITS,
        CompanyPermission.REVIEW_AUDITS,
        CompanyPermission.UPDATE_FINDINGS,
        CompanyPermission.CLOSE_FINDINGS,
        CompanyPermission.RUN_COMPLIANCE_CHECKS,
        CompanyPermission.MANAGE_ACTIONS,
        CompanyPermission.MANAGE_EVIDENCE,
        CompanyPermission.REVIEW_DOCUMENTS,
        CompanyPermission.DECIDE_SUGGESTIONS,
    },
    # Scoped by StaffAssignment at the call site
    CompanyRole.STAFF_READ_ONLY: {
        CompanyPermission.RUN_COMPLIANCE_CHECKS,
        CompanyPermission.MANAGE_ACTIONS,
    },
}

ASSIGNMENT_SCOPED_ROLES = {CompanyRole.STAFF_READ_ONLY}


def get_permissions(role: Optional[CompanyRole]) -> Set[CompanyPermission]:
    """Get all permissions for a role."""
    if role is None:
        return set()
    return ROLE_PERMISSIONS.get(CompanyRole(role), set())


def has_permission(role: Optional[CompanyRole], permission: CompanyPermission) -> bool:
    """Check if a role has a specific permission."""
    return permission in get_permissions(role)


def require_permission(role: Optional[CompanyRole], permission: CompanyPermission) -> None:
    """
    Raise unless the role carries the permission.

    Raises:
        InsufficientPermissionsException
    """
    if not has_permission(role, permission):
        raise InsufficientPermissionsException(
            required_permission=permission.value,
            user_role=role.value if role else None,
        )


def is_assignment_scoped(role: Optional[CompanyRole]) -> bool:
    """Whether the role only acts on assigned sites/participants."""
    return role in ASSIGNMENT_SCOPED_ROLES
