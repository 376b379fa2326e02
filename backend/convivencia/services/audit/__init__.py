"""Compliance audit over case files."""

from .compliance_auditor import (
    AuditFilter,
    ComplianceAuditor,
    CHECK_NAMES,
    has_nullity_risk,
)

__all__ = ['AuditFilter', 'ComplianceAuditor', 'CHECK_NAMES', 'has_nullity_risk']
