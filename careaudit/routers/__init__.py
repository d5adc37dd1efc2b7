"""
CareAudit - Routers Package

FastAPI route handlers.

Routers:
- reference: Company users, work sites, participants, staff assignments
- audits: Audit templates, audit lifecycle, indicator responses, findings
- compliance: Compliance templates, runs and corrective actions
- evidence: Evidence requests, review and audit portals
- document_reviews: Document checklists, reviews and suggested findings
- weekly_reports: Weekly rollups and generated reports
- public: Token and portal evidence submission (unauthenticated)
"""

from careaudit.routers import (
    reference,
    audits,
    compliance,
    evidence,
    document_reviews,
    weekly_reports,
    public,
)

__all__ = [
    "reference",
    "audits",
    "compliance",
    "evidence",
    "document_reviews",
    "weekly_reports",
    "public",
]
