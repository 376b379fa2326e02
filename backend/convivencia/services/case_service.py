"""
Case Service

Orchestrates the case engine around one repository:
- intake (folio, deadline, milestone template, opening log entry)
- stage transitions through the state machine
- severity amendments with deadline recalculation
- milestone completion and prior-action records
- compliance and deadline views

Every mutation appends an audit-log entry. Closed cases are read-only.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from ..models.domain import (
    Actor, AuditAction, AuditLogEntry, Case, CaseStage, LegacyCaseStatus,
    Severity, TransitionDefinition, utcnow,
)
from .audit.compliance_auditor import ComplianceAuditor
from .deadlines.deadline_engine import DeadlineEngine
from .errors import CaseNotFound, DuplicateCase, InvalidTransition, MilestoneNotFound
from .repository.base import CaseFilter, CaseRepository
from .workflow.milestones import build_milestones, ensure_council_milestone
from .workflow.state_machine import Acknowledgements, CaseStateMachine

logger = logging.getLogger(__name__)


LEGACY_STATUS_BY_STAGE: Dict[CaseStage, LegacyCaseStatus] = {
    CaseStage.OPENED: LegacyCaseStatus.IDENTIFICADO,
    CaseStage.NOTIFIED: LegacyCaseStatus.EN_TRAMITE,
    CaseStage.REBUTTAL: LegacyCaseStatus.EN_TRAMITE,
    CaseStage.INVESTIGATION: LegacyCaseStatus.EN_TRAMITE,
    CaseStage.RESOLUTION_PENDING: LegacyCaseStatus.EN_TRAMITE,
    CaseStage.RECONSIDERATION: LegacyCaseStatus.EN_TRAMITE,
    CaseStage.CLOSED_MEDIATION: LegacyCaseStatus.DERIVADO,
    CaseStage.CLOSED_SANCTION: LegacyCaseStatus.CERRADO,
}


def legacy_status(case: Case) -> LegacyCaseStatus:
    """Project the lifecycle stage onto the older generic status vocabulary."""
    return LEGACY_STATUS_BY_STAGE[case.stage]


class CaseService:
    """
    Main service for case management.

    The acting user is passed in on every mutation; this service does not
    authenticate anyone.
    """

    def __init__(self, repository: CaseRepository):
        """Initialize with a case repository."""
        self.repository = repository
        self.state_machine = CaseStateMachine(repository)
        self.deadline_engine = DeadlineEngine()
        self.auditor = ComplianceAuditor()

    # =========================================================================
    # READS
    # =========================================================================

    def get_case(self, folio: str) -> Case:
        case = self.repository.get_case(folio)
        if case is None:
            raise CaseNotFound(folio)
        return case

    def list_cases(self, case_filter: Optional[CaseFilter] = None) -> List[Case]:
        return self.repository.list_cases(case_filter)

    def audit_log(self, folio: str) -> List[AuditLogEntry]:
        """Audit entries for a case, oldest first."""
        case = self.get_case(folio)
        entries = self.repository.list_audit_log(case.storage_id)
        return sorted(entries, key=lambda entry: entry.timestamp)

    def available_transitions(self, folio: str) -> List[TransitionDefinition]:
        return self.state_machine.list_available_transitions(self.get_case(folio))

    # =========================================================================
    # INTAKE
    # =========================================================================

    def open_case(
        self,
        folio: str,
        student_name: str,
        severity: Severity,
        actor: Actor,
        student_course: Optional[str] = None,
        prior_actions_on_file: bool = False,
        opened_at: Optional[datetime] = None,
        owner_id: Optional[str] = None,
    ) -> Case:
        """Register a new case in OPENED stage with its legal deadline."""
        if self.repository.get_case(folio) is not None:
            raise DuplicateCase(folio)

        opened_at = opened_at or utcnow()
        deadline = self.deadline_engine.calculate_deadline(opened_at, severity)

        case = Case(
            folio=folio,
            student_name=student_name,
            student_course=student_course,
            severity=severity,
            opened_at=opened_at,
            fatal_deadline=deadline,
            stage=CaseStage.OPENED,
            prior_actions_on_file=prior_actions_on_file,
            milestones=build_milestones(severity == Severity.SEVERE_EXPULSION, opened_at),
            owner_id=owner_id or actor.actor_id,
        )
        self.repository.save_case(case)

        self._log(
            case, AuditAction.CASE_OPENED, actor,
            description=f"Case {folio} opened ({severity.value}). Deadline: {deadline.isoformat()}",
            critical=True,
            payload={
                "severity": severity.value,
                "opened_at": opened_at.isoformat(),
                "fatal_deadline": deadline.isoformat(),
                "prior_actions_on_file": prior_actions_on_file,
            },
        )
        logger.info(f"Opened case {folio} ({severity.value}), deadline {deadline.isoformat()}")
        return case

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def transition(
        self,
        folio: str,
        target: CaseStage,
        acknowledged: Optional[Acknowledgements],
        actor: Actor,
    ) -> Case:
        return self.state_machine.execute_transition_by_folio(folio, target, acknowledged, actor)

    def amend_severity(self, folio: str, severity: Severity, actor: Actor) -> Case:
        """
        Reclassify the offense and recompute the fatal deadline from the
        original opening date. Becoming an expulsion case injects the
        council milestone.
        """
        case = self.get_case(folio)
        if case.is_closed:
            raise InvalidTransition(f"Case {folio} is closed ({case.stage.value})")
        if case.severity == severity:
            return case

        previous_severity = case.severity
        previous_deadline = case.fatal_deadline

        case.severity = severity
        case.fatal_deadline = self.deadline_engine.calculate_deadline(case.opened_at, severity)
        council_added = case.is_expulsion and ensure_council_milestone(case.milestones)

        self.repository.update_case(case, expected_version=case.version)
        self._log(
            case, AuditAction.SEVERITY_AMENDED, actor,
            description=(
                f"Severity amended: {previous_severity.value} → {severity.value}. "
                f"Deadline: {case.fatal_deadline.isoformat()}"
            ),
            critical=True,
            payload={
                "previous_severity": previous_severity.value,
                "new_severity": severity.value,
                "previous_deadline": previous_deadline.isoformat(),
                "new_deadline": case.fatal_deadline.isoformat(),
                "council_milestone_added": council_added,
            },
        )
        return case

    def complete_milestone(
        self,
        folio: str,
        milestone_id: str,
        actor: Actor,
        evidence_url: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> Case:
        case = self.get_case(folio)
        if case.is_closed:
            raise InvalidTransition(f"Case {folio} is closed ({case.stage.value})")

        milestone = case.get_milestone(milestone_id)
        if milestone is None:
            raise MilestoneNotFound(folio, milestone_id)

        milestone.completed = True
        milestone.completed_at = completed_at or utcnow()
        if evidence_url:
            milestone.evidence_url = evidence_url

        self.repository.update_case(case, expected_version=case.version)
        self._log(
            case,
            AuditAction.DOCUMENT_UPLOADED if evidence_url else AuditAction.MILESTONE_COMPLETED,
            actor,
            description=f"Milestone completed: {milestone.title}",
            critical=milestone.mandatory_for_expulsion,
            payload={"milestone_id": milestone_id, "evidence_url": evidence_url},
        )
        return case

    def record_prior_actions(self, folio: str, actor: Actor) -> Case:
        """Mark that escalating measures preceding this case are documented."""
        case = self.get_case(folio)
        if case.prior_actions_on_file:
            return case

        case.prior_actions_on_file = True
        self.repository.update_case(case, expected_version=case.version)
        self._log(
            case, AuditAction.PRIOR_ACTIONS_RECORDED, actor,
            description="Prior escalating measures documented",
            critical=case.is_expulsion,
        )
        return case

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _log(
        self,
        case: Case,
        action: AuditAction,
        actor: Actor,
        description: str,
        critical: bool = False,
        payload: Optional[dict] = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            case_id=case.storage_id,
            action=action,
            description=description,
            actor_id=actor.actor_id,
            actor_name=actor.name,
            actor_role=actor.role,
            critical=critical,
            payload=payload or {},
        )
        self.repository.append_audit_log_entry(entry)
        return entry
