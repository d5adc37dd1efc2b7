"""
CareAudit - Services Package

Database-backed workflow services. Every service is constructed with a
TenantSession bound to the caller's company.
"""
