"""
CareAudit - Compliance & Audit Workflow Engine

Scheduled compliance checklists, formal audits against indicator libraries,
evidence collection and weekly compliance rollups for multi-tenant care providers.
"""

__version__ = "1.0.0"
