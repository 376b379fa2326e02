"""
Convivencia Escolar - Case Domain Models

These dataclasses are the in-memory shape of a disciplinary case ("expediente")
as seen by the workflow, deadline and compliance services.
Storage rows are mapped into these models before any rule runs.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from uuid import uuid4


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention used for every stored datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================

class CaseStage(str, Enum):
    """Lifecycle stages of a case file (Circular 782 procedure)."""
    OPENED = "OPENED"
    NOTIFIED = "NOTIFIED"
    REBUTTAL = "REBUTTAL"
    INVESTIGATION = "INVESTIGATION"
    RESOLUTION_PENDING = "RESOLUTION_PENDING"
    RECONSIDERATION = "RECONSIDERATION"
    CLOSED_SANCTION = "CLOSED_SANCTION"
    CLOSED_MEDIATION = "CLOSED_MEDIATION"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STAGES


TERMINAL_STAGES = frozenset({CaseStage.CLOSED_SANCTION, CaseStage.CLOSED_MEDIATION})


class Severity(str, Enum):
    """Offense severity. Drives the legal deadline and audit strictness."""
    LOW = "LOW"
    RELEVANT = "RELEVANT"
    SEVERE_EXPULSION = "SEVERE_EXPULSION"


class AuditAction(str, Enum):
    """Action types recorded in the case audit log (bitacora)."""
    CASE_OPENED = "CASE_OPENED"
    STAGE_TRANSITION = "STAGE_TRANSITION"
    DOCUMENT_UPLOADED = "DOCUMENT_UPLOADED"
    MILESTONE_COMPLETED = "MILESTONE_COMPLETED"
    SEVERITY_AMENDED = "SEVERITY_AMENDED"
    PRIOR_ACTIONS_RECORDED = "PRIOR_ACTIONS_RECORDED"
    CASE_CLOSED = "CASE_CLOSED"


class ActorRole(str, Enum):
    """Staff roles that act on a case."""
    DIRECTOR = "DIRECTOR"
    CONVIVENCIA_LEAD = "CONVIVENCIA_LEAD"
    PSYCHOLOGIST = "PSYCHOLOGIST"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class AuditStatus(str, Enum):
    """Compliance classification of a case."""
    READY = "READY"
    INCOMPLETE = "INCOMPLETE"
    RISK = "RISK"


class DeadlineStatus(str, Enum):
    OVERDUE = "OVERDUE"
    URGENT = "URGENT"
    UPCOMING = "UPCOMING"
    NORMAL = "NORMAL"


class LegacyCaseStatus(str, Enum):
    """
    Generic status vocabulary used by older screens and reports.
    Only ever derived from CaseStage, never stored.
    """
    IDENTIFICADO = "identificado"
    EN_TRAMITE = "en_tramite"
    DERIVADO = "derivado"
    CERRADO = "cerrado"
    ARCHIVADO = "archivado"


# =============================================================================
# ACTORS
# =============================================================================

@dataclass(frozen=True)
class Actor:
    """Who performed an action. Identity comes from the caller."""
    actor_id: str
    name: str = "Sistema"
    role: ActorRole = ActorRole.CONVIVENCIA_LEAD


SYSTEM_ACTOR = Actor(actor_id="system", name="Sistema", role=ActorRole.SYSTEM)


# =============================================================================
# CASE FILE
# =============================================================================

@dataclass
class Milestone:
    """One legally required procedural step ("hito")."""
    id: str
    title: str
    description: str
    completed: bool = False
    completed_at: Optional[datetime] = None
    requires_evidence: bool = True
    mandatory_for_expulsion: bool = False
    evidence_url: Optional[str] = None


@dataclass
class Case:
    """
    A disciplinary case file.

    `folio` is the human-readable identifier; `db_id` belongs to the
    persistence layer. `version` is the optimistic-concurrency token compared
    on every stage write.
    """
    folio: str
    student_name: str
    severity: Severity
    opened_at: datetime
    fatal_deadline: datetime
    stage: CaseStage = CaseStage.OPENED
    student_course: Optional[str] = None
    prior_actions_on_file: bool = False
    milestones: List[Milestone] = field(default_factory=list)
    owner_id: Optional[str] = None
    db_id: Optional[str] = None
    version: int = 1
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if self.fatal_deadline <= self.opened_at:
            raise ValueError(
                f"Case {self.folio}: fatal deadline {self.fatal_deadline.isoformat()} "
                f"must be after opening {self.opened_at.isoformat()}"
            )

    @property
    def is_expulsion(self) -> bool:
        return self.severity == Severity.SEVERE_EXPULSION

    @property
    def is_closed(self) -> bool:
        return self.stage.is_terminal

    @property
    def storage_id(self) -> str:
        """Identifier used against the repository."""
        return self.db_id or self.folio

    def get_milestone(self, milestone_id: str) -> Optional[Milestone]:
        for milestone in self.milestones:
            if milestone.id == milestone_id:
                return milestone
        return None


# =============================================================================
# WORKFLOW
# =============================================================================

@dataclass(frozen=True)
class TransitionDefinition:
    """Static definition of an allowed move between stages."""
    sources: FrozenSet[CaseStage]
    target: CaseStage
    label: str
    description: str
    requirements: Tuple[str, ...]


@dataclass
class AuditLogEntry:
    """Append-only record of something that happened to a case."""
    case_id: str
    action: AuditAction
    description: str
    actor_id: str
    actor_name: str
    actor_role: ActorRole
    critical: bool = False
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: str(uuid4()))


# =============================================================================
# COMPLIANCE
# =============================================================================

@dataclass
class AuditResult:
    """Derived compliance view of one case. Never persisted."""
    folio: str
    checks: Dict[str, bool]
    score: float
    status: AuditStatus

    @property
    def passed_checks(self) -> int:
        return sum(1 for passed in self.checks.values() if passed)


@dataclass
class ComplianceKPIs:
    global_health: int = 0
    nullity_alerts: int = 0
    critical_deadlines: int = 0


@dataclass
class CaseloadKPIs:
    active: int = 0
    critical_deadlines: int = 0
    mediation_agreements: int = 0
    total: int = 0


@dataclass
class DeadlineAlert:
    folio: str
    days_remaining: int
    deadline: datetime
    severity: Severity
    status: DeadlineStatus
