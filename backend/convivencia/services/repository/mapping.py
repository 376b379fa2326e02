"""
Row mapping for case records.

Storage rows arrive loosely typed: Spanish column names, several spellings
for the same stage, the student relation as an object or a one-element list.
Everything is normalized here, in pure functions, before any rule runs.

Input row schema (all keys optional except `id`):
    id, folio, tipo_falta, etapa_proceso, estado_legal, fecha_inicio,
    plazo_fatal, creado_por, acciones_previas, version, updated_at,
    estudiantes: {nombre_completo, curso} | [{...}]
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from dateutil.parser import isoparse

from ...models.domain import (
    ActorRole, AuditAction, AuditLogEntry, Case, CaseStage, Milestone, Severity,
    utcnow,
)
from ..deadlines.deadline_engine import compute_legal_deadline
from ..workflow.milestones import build_milestones

logger = logging.getLogger(__name__)


DEFAULT_STUDENT_NAME = "Sin nombre"
DEFAULT_SEVERITY = Severity.RELEVANT
DEFAULT_STAGE = CaseStage.INVESTIGATION

SEVERITY_ALIASES = {
    "leve": Severity.LOW,
    "low": Severity.LOW,
    "relevante": Severity.RELEVANT,
    "relevant": Severity.RELEVANT,
    "grave": Severity.RELEVANT,
    "expulsion": Severity.SEVERE_EXPULSION,
    "gravisima_expulsion": Severity.SEVERE_EXPULSION,
    "severe_expulsion": Severity.SEVERE_EXPULSION,
}

STAGE_ALIASES = {
    "inicio": CaseStage.OPENED,
    "apertura": CaseStage.OPENED,
    "opened": CaseStage.OPENED,
    "notificado": CaseStage.NOTIFIED,
    "notified": CaseStage.NOTIFIED,
    "descargos": CaseStage.REBUTTAL,
    "rebuttal": CaseStage.REBUTTAL,
    "investigacion": CaseStage.INVESTIGATION,
    "investigation": CaseStage.INVESTIGATION,
    "resolucion_pendiente": CaseStage.RESOLUTION_PENDING,
    "resolucion": CaseStage.RESOLUTION_PENDING,
    "resolution_pending": CaseStage.RESOLUTION_PENDING,
    "reconsideracion": CaseStage.RECONSIDERATION,
    "reconsideration": CaseStage.RECONSIDERATION,
    "cerrado_sancion": CaseStage.CLOSED_SANCTION,
    "cerrado": CaseStage.CLOSED_SANCTION,
    "closed_sanction": CaseStage.CLOSED_SANCTION,
    "cerrado_gcc": CaseStage.CLOSED_MEDIATION,
    "closed_mediation": CaseStage.CLOSED_MEDIATION,
}


def map_severity(raw: Optional[str]) -> Severity:
    """Stored offense type to Severity. Unknown values fall back to RELEVANT."""
    return SEVERITY_ALIASES.get((raw or "").strip().lower(), DEFAULT_SEVERITY)


def map_stage(raw: Optional[str]) -> CaseStage:
    """Stored stage to CaseStage. Unknown values fall back to INVESTIGATION."""
    return STAGE_ALIASES.get((raw or "").strip().lower(), DEFAULT_STAGE)


def parse_timestamp(raw: Any) -> Optional[datetime]:
    """ISO string or datetime to a naive UTC datetime. None stays None."""
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        value = raw
    else:
        value = isoparse(str(raw))
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _student(row: Mapping[str, Any]) -> Mapping[str, Any]:
    student = row.get("estudiantes")
    if isinstance(student, list):
        student = student[0] if student else None
    return student or {}


def row_to_case(row: Mapping[str, Any], now: Optional[datetime] = None) -> Case:
    """
    Map a raw `expedientes` row into a Case.

    Defaults: folio falls back to id, opening date to now, missing deadline
    is recomputed from opening date and severity, stage comes from
    `etapa_proceso` and then `estado_legal`. Milestones come from the template.
    """
    now = now or utcnow()
    severity = map_severity(row.get("tipo_falta"))
    opened_at = parse_timestamp(row.get("fecha_inicio")) or now

    fatal_deadline = parse_timestamp(row.get("plazo_fatal"))
    if fatal_deadline is None or fatal_deadline <= opened_at:
        fatal_deadline = compute_legal_deadline(opened_at, severity)

    stage_raw = row.get("etapa_proceso") or row.get("estado_legal")
    student = _student(row)

    return Case(
        folio=row.get("folio") or row["id"],
        db_id=row.get("id"),
        student_name=student.get("nombre_completo") or DEFAULT_STUDENT_NAME,
        student_course=student.get("curso"),
        stage=map_stage(stage_raw),
        severity=severity,
        opened_at=opened_at,
        fatal_deadline=fatal_deadline,
        owner_id=row.get("creado_por") or None,
        prior_actions_on_file=bool(row.get("acciones_previas", False)),
        milestones=build_milestones(severity == Severity.SEVERE_EXPULSION, opened_at),
        version=int(row.get("version") or 1),
        updated_at=parse_timestamp(row.get("updated_at")),
    )


# =============================================================================
# CACHE SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def milestone_to_dict(milestone: Milestone) -> Dict[str, Any]:
    return {
        "id": milestone.id,
        "title": milestone.title,
        "description": milestone.description,
        "completed": milestone.completed,
        "completed_at": _iso(milestone.completed_at),
        "requires_evidence": milestone.requires_evidence,
        "mandatory_for_expulsion": milestone.mandatory_for_expulsion,
        "evidence_url": milestone.evidence_url,
    }


def milestone_from_dict(data: Mapping[str, Any]) -> Milestone:
    return Milestone(
        id=data["id"],
        title=data.get("title", ""),
        description=data.get("description", ""),
        completed=bool(data.get("completed", False)),
        completed_at=parse_timestamp(data.get("completed_at")),
        requires_evidence=bool(data.get("requires_evidence", True)),
        mandatory_for_expulsion=bool(data.get("mandatory_for_expulsion", False)),
        evidence_url=data.get("evidence_url"),
    )


def case_to_dict(case: Case) -> Dict[str, Any]:
    return {
        "folio": case.folio,
        "db_id": case.db_id,
        "student_name": case.student_name,
        "student_course": case.student_course,
        "stage": case.stage.value,
        "severity": case.severity.value,
        "opened_at": _iso(case.opened_at),
        "fatal_deadline": _iso(case.fatal_deadline),
        "prior_actions_on_file": case.prior_actions_on_file,
        "owner_id": case.owner_id,
        "version": case.version,
        "updated_at": _iso(case.updated_at),
        "milestones": [milestone_to_dict(m) for m in case.milestones],
    }


def case_from_dict(data: Mapping[str, Any]) -> Case:
    return Case(
        folio=data["folio"],
        db_id=data.get("db_id"),
        student_name=data.get("student_name") or DEFAULT_STUDENT_NAME,
        student_course=data.get("student_course"),
        stage=CaseStage(data["stage"]),
        severity=Severity(data["severity"]),
        opened_at=parse_timestamp(data["opened_at"]),
        fatal_deadline=parse_timestamp(data["fatal_deadline"]),
        prior_actions_on_file=bool(data.get("prior_actions_on_file", False)),
        owner_id=data.get("owner_id"),
        version=int(data.get("version", 1)),
        updated_at=parse_timestamp(data.get("updated_at")),
        milestones=[milestone_from_dict(m) for m in data.get("milestones", [])],
    )


def entry_to_dict(entry: AuditLogEntry) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "case_id": entry.case_id,
        "action": entry.action.value,
        "description": entry.description,
        "actor_id": entry.actor_id,
        "actor_name": entry.actor_name,
        "actor_role": entry.actor_role.value,
        "critical": entry.critical,
        "payload": dict(entry.payload),
        "timestamp": _iso(entry.timestamp),
    }


def entry_from_dict(data: Mapping[str, Any]) -> AuditLogEntry:
    return AuditLogEntry(
        id=data["id"],
        case_id=data["case_id"],
        action=AuditAction(data["action"]),
        description=data.get("description", ""),
        actor_id=data.get("actor_id", ""),
        actor_name=data.get("actor_name", ""),
        actor_role=ActorRole(data.get("actor_role", ActorRole.SYSTEM.value)),
        critical=bool(data.get("critical", False)),
        payload=dict(data.get("payload") or {}),
        timestamp=parse_timestamp(data["timestamp"]),
    )
