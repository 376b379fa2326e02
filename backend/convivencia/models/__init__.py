"""Convivencia Escolar - Data Models"""
from .domain import (
    # Enums
    CaseStage, Severity, AuditAction, ActorRole, AuditStatus, DeadlineStatus, LegacyCaseStatus,
    TERMINAL_STAGES,
    # Case file
    Actor, SYSTEM_ACTOR, Milestone, Case,
    # Workflow
    TransitionDefinition, AuditLogEntry,
    # Compliance
    AuditResult, ComplianceKPIs, CaseloadKPIs, DeadlineAlert,
    utcnow,
)

__all__ = [
    "CaseStage", "Severity", "AuditAction", "ActorRole", "AuditStatus", "DeadlineStatus", "LegacyCaseStatus",
    "TERMINAL_STAGES",
    "Actor", "SYSTEM_ACTOR", "Milestone", "Case",
    "TransitionDefinition", "AuditLogEntry",
    "AuditResult", "ComplianceKPIs", "CaseloadKPIs", "DeadlineAlert",
    "utcnow",
]
