"""
Compliance API Routes

Read-only SIE audit views: per-case procedural checks, dashboard KPIs and
deadline alerts. Nothing here mutates a case.
"""
from typing import List

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_case_service, http_error
from ..models.domain import AuditResult, DeadlineAlert
from ..services.audit import AuditFilter
from ..services.case_service import CaseService
from ..services.errors import CaseEngineError


router = APIRouter(prefix="/compliance", tags=["compliance"])


def result_to_response(result: AuditResult) -> dict:
    return {
        "folio": result.folio,
        "checks": result.checks,
        "score": result.score,
        "status": result.status.value,
    }


def alert_to_response(alert: DeadlineAlert) -> dict:
    return {
        "folio": alert.folio,
        "days_remaining": alert.days_remaining,
        "deadline": alert.deadline.isoformat(),
        "severity": alert.severity.value,
        "status": alert.status.value,
    }


@router.get("/audit", response_model=List[dict])
async def get_audit_report(
    audit_filter: AuditFilter = Query(AuditFilter.ALL, alias="filter"),
    service: CaseService = Depends(get_case_service),
):
    """
    Per-case audit results.

    NULLITY keeps expulsion cases without prior actions on file;
    LOW_HEALTH keeps cases pending resolution scoring below 0.8.
    """
    try:
        cases = service.list_cases()
    except CaseEngineError as e:
        raise http_error(e) from e
    return [result_to_response(r) for r in service.auditor.filter_results(cases, audit_filter)]


@router.get("/kpis", response_model=dict)
async def get_compliance_kpis(service: CaseService = Depends(get_case_service)):
    """Global legal health, nullity alerts and deadlines due within 48 hours."""
    try:
        cases = service.list_cases()
    except CaseEngineError as e:
        raise http_error(e) from e
    kpis = service.auditor.compute_kpis(cases)
    return {
        "global_health": kpis.global_health,
        "nullity_alerts": kpis.nullity_alerts,
        "critical_deadlines": kpis.critical_deadlines,
    }


@router.get("/caseload", response_model=dict)
async def get_caseload_kpis(service: CaseService = Depends(get_case_service)):
    try:
        cases = service.list_cases()
    except CaseEngineError as e:
        raise http_error(e) from e
    kpis = service.auditor.compute_caseload_kpis(cases)
    return {
        "active": kpis.active,
        "critical_deadlines": kpis.critical_deadlines,
        "mediation_agreements": kpis.mediation_agreements,
        "total": kpis.total,
    }


@router.get("/deadline-alerts", response_model=List[dict])
async def get_deadline_alerts(
    days_ahead: int = Query(7, ge=0, le=60),
    service: CaseService = Depends(get_case_service),
):
    """Open cases due within `days_ahead` days, overdue ones first."""
    try:
        cases = service.list_cases()
    except CaseEngineError as e:
        raise http_error(e) from e
    return [alert_to_response(a) for a in service.deadline_engine.upcoming_alerts(cases, days_ahead)]
