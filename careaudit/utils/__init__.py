"""
CareAudit - Utilities Package

Error handling, role permissions and token helpers.
"""
