"""
Case API Routes

Endpoints for case intake, lifecycle transitions, milestones and the
audit log. The acting staff member is supplied in each request body.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..dependencies import get_case_service, http_error
from ..models.domain import (
    Actor, ActorRole, AuditLogEntry, Case, CaseStage, Severity, TransitionDefinition,
)
from ..services.case_service import CaseService, legacy_status
from ..services.deadlines.deadline_engine import days_remaining, deadline_status
from ..services.errors import CaseEngineError
from ..services.repository import CaseFilter, DEFAULT_PAGE_SIZE
from ..services.repository.mapping import parse_timestamp


router = APIRouter(prefix="/cases", tags=["cases"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ActorPayload(BaseModel):
    """Staff member performing the action."""
    actor_id: str = Field(..., description="Identifier of the staff member")
    actor_name: str = Field(default="Sistema", description="Display name for the audit log")
    actor_role: ActorRole = Field(default=ActorRole.CONVIVENCIA_LEAD, description="Role of the staff member")

    def to_actor(self) -> Actor:
        return Actor(actor_id=self.actor_id, name=self.actor_name, role=self.actor_role)


class OpenCaseRequest(BaseModel):
    """Request to open a new case."""
    folio: str = Field(..., description="Human-readable case identifier")
    student_name: str = Field(..., description="Student display name")
    student_course: Optional[str] = Field(None, description="Class/section")
    severity: Severity = Field(..., description="LOW, RELEVANT or SEVERE_EXPULSION")
    prior_actions_on_file: bool = Field(default=False, description="Documented escalating measures exist")
    opened_at: Optional[datetime] = Field(None, description="Intake timestamp (defaults to now)")
    owner_id: Optional[str] = Field(None, description="Staff member in charge")
    actor: ActorPayload


class TransitionRequest(BaseModel):
    """Request to move a case to another stage."""
    target: CaseStage = Field(..., description="Destination stage")
    acknowledged: List[bool] = Field(default_factory=list, description="One flag per checklist item, in order")
    actor: ActorPayload


class AmendSeverityRequest(BaseModel):
    severity: Severity
    actor: ActorPayload


class CompleteMilestoneRequest(BaseModel):
    evidence_url: Optional[str] = Field(None, description="Reference to the attached evidence")
    completed_at: Optional[datetime] = None
    actor: ActorPayload


class ActorOnlyRequest(BaseModel):
    actor: ActorPayload


# =============================================================================
# SERIALIZATION
# =============================================================================

def case_to_response(case: Case) -> dict:
    return {
        "folio": case.folio,
        "id": case.db_id,
        "student_name": case.student_name,
        "student_course": case.student_course,
        "stage": case.stage.value,
        "legacy_status": legacy_status(case).value,
        "severity": case.severity.value,
        "opened_at": case.opened_at.isoformat(),
        "fatal_deadline": case.fatal_deadline.isoformat(),
        "days_remaining": days_remaining(case.fatal_deadline),
        "deadline_status": deadline_status(case.fatal_deadline).value,
        "is_expulsion": case.is_expulsion,
        "is_closed": case.is_closed,
        "prior_actions_on_file": case.prior_actions_on_file,
        "owner_id": case.owner_id,
        "version": case.version,
        "milestones": [
            {
                "id": m.id,
                "title": m.title,
                "description": m.description,
                "completed": m.completed,
                "completed_at": m.completed_at.isoformat() if m.completed_at else None,
                "requires_evidence": m.requires_evidence,
                "mandatory_for_expulsion": m.mandatory_for_expulsion,
                "evidence_url": m.evidence_url,
            }
            for m in case.milestones
        ],
    }


def transition_to_response(transition: TransitionDefinition) -> dict:
    return {
        "from": sorted(stage.value for stage in transition.sources),
        "to": transition.target.value,
        "label": transition.label,
        "description": transition.description,
        "requirements": list(transition.requirements),
    }


def entry_to_response(entry: AuditLogEntry) -> dict:
    return {
        "id": entry.id,
        "action": entry.action.value,
        "description": entry.description,
        "actor_id": entry.actor_id,
        "actor_name": entry.actor_name,
        "actor_role": entry.actor_role.value,
        "critical": entry.critical,
        "metadata": entry.payload,
        "timestamp": entry.timestamp.isoformat(),
    }


# =============================================================================
# READ-ONLY ENDPOINTS
# =============================================================================

@router.get("", response_model=List[dict])
async def list_cases(
    stage: Optional[CaseStage] = None,
    severity: Optional[Severity] = None,
    owner_id: Optional[str] = None,
    search: Optional[str] = Query(None, description="Student name, folio, severity or stage"),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=DEFAULT_PAGE_SIZE),
    service: CaseService = Depends(get_case_service),
):
    """
    List cases, most recent activity first.
    """
    case_filter = CaseFilter(stage=stage, severity=severity, owner_id=owner_id, search=search, limit=limit)
    try:
        cases = service.list_cases(case_filter)
    except CaseEngineError as e:
        raise http_error(e) from e
    return [case_to_response(case) for case in cases]


@router.get("/{folio}", response_model=dict)
async def get_case(folio: str, service: CaseService = Depends(get_case_service)):
    try:
        return case_to_response(service.get_case(folio))
    except CaseEngineError as e:
        raise http_error(e) from e


@router.get("/{folio}/audit-log", response_model=List[dict])
async def get_audit_log(folio: str, service: CaseService = Depends(get_case_service)):
    """
    Chronological, append-only record of everything done to the case.
    """
    try:
        entries = service.audit_log(folio)
    except CaseEngineError as e:
        raise http_error(e) from e
    return [entry_to_response(entry) for entry in entries]


@router.get("/{folio}/transitions", response_model=List[dict])
async def get_available_transitions(folio: str, service: CaseService = Depends(get_case_service)):
    """
    Transitions available from the current stage with their checklists.
    Closed cases return an empty list.
    """
    try:
        transitions = service.available_transitions(folio)
    except CaseEngineError as e:
        raise http_error(e) from e
    return [transition_to_response(t) for t in transitions]


# =============================================================================
# MUTATING ENDPOINTS
# =============================================================================

@router.post("", response_model=dict, status_code=201)
async def open_case(request: OpenCaseRequest, service: CaseService = Depends(get_case_service)):
    """
    Open a new case.

    Computes the fatal deadline from severity and creates the milestone template.
    """
    try:
        case = service.open_case(
            folio=request.folio,
            student_name=request.student_name,
            student_course=request.student_course,
            severity=request.severity,
            actor=request.actor.to_actor(),
            prior_actions_on_file=request.prior_actions_on_file,
            opened_at=parse_timestamp(request.opened_at),
            owner_id=request.owner_id,
        )
    except CaseEngineError as e:
        raise http_error(e) from e
    return case_to_response(case)


@router.post("/{folio}/transitions", response_model=dict)
async def execute_transition(
    folio: str,
    request: TransitionRequest,
    service: CaseService = Depends(get_case_service),
):
    """
    Move the case to `target`.

    Every checklist item must be acknowledged; otherwise 422 with the
    pending items and the case is left untouched.
    """
    try:
        case = service.transition(folio, request.target, request.acknowledged, request.actor.to_actor())
    except CaseEngineError as e:
        raise http_error(e) from e
    return case_to_response(case)


@router.post("/{folio}/severity", response_model=dict)
async def amend_severity(
    folio: str,
    request: AmendSeverityRequest,
    service: CaseService = Depends(get_case_service),
):
    try:
        case = service.amend_severity(folio, request.severity, request.actor.to_actor())
    except CaseEngineError as e:
        raise http_error(e) from e
    return case_to_response(case)


@router.post("/{folio}/milestones/{milestone_id}/complete", response_model=dict)
async def complete_milestone(
    folio: str,
    milestone_id: str,
    request: CompleteMilestoneRequest,
    service: CaseService = Depends(get_case_service),
):
    try:
        case = service.complete_milestone(
            folio,
            milestone_id,
            request.actor.to_actor(),
            evidence_url=request.evidence_url,
            completed_at=parse_timestamp(request.completed_at),
        )
    except CaseEngineError as e:
        raise http_error(e) from e
    return case_to_response(case)


@router.post("/{folio}/prior-actions", response_model=dict)
async def record_prior_actions(
    folio: str,
    request: ActorOnlyRequest,
    service: CaseService = Depends(get_case_service),
):
    """
    Record that escalating measures preceding this case are documented.
    """
    try:
        case = service.record_prior_actions(folio, request.actor.to_actor())
    except CaseEngineError as e:
        raise http_error(e) from e
    return case_to_response(case)
