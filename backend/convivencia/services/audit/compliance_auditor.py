"""
Convivencia Escolar - Compliance Auditor (SIE audit)

Checks each case against the procedural requirements of Circulars 781/782
and aggregates the results into dashboard KPIs.

The auditor is a read-only projection: it never mutates a case and an
empty case set yields zero-valued aggregates.
"""
from __future__ import annotations
import logging
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ...models.domain import (
    AuditResult, AuditStatus, Case, CaseStage, CaseloadKPIs, ComplianceKPIs,
    utcnow,
)
from ..deadlines.deadline_engine import is_within_critical_window

logger = logging.getLogger(__name__)


INCOMPLETE_THRESHOLD = 0.6
LOW_HEALTH_THRESHOLD = 0.8

CHECK_NAMES = (
    "notified",
    "rebuttal_handled",
    "evidence_complete",
    "resolution_issued",
    "reconsideration_handled",
    "gradation_verified",
)


class AuditFilter(str, Enum):
    ALL = "ALL"
    NULLITY = "NULLITY"
    LOW_HEALTH = "LOW_HEALTH"


def has_nullity_risk(case: Case) -> bool:
    """Expulsion without documented prior escalating measures."""
    return case.is_expulsion and not case.prior_actions_on_file


class ComplianceAuditor:
    """
    Scores cases against the six procedural checks.

    Status priority:
    1. RISK when an expulsion case lacks gradation (overrides the score)
    2. INCOMPLETE when fewer than 60% of the checks pass
    3. READY otherwise
    """

    def run_checks(self, case: Case) -> Dict[str, bool]:
        stage = case.stage
        return {
            "notified": stage != CaseStage.OPENED,
            "rebuttal_handled": stage not in (CaseStage.OPENED, CaseStage.NOTIFIED),
            "evidence_complete": all(
                m.completed for m in case.milestones if m.requires_evidence
            ),
            "resolution_issued": stage == CaseStage.RESOLUTION_PENDING or case.is_closed,
            "reconsideration_handled": stage == CaseStage.RECONSIDERATION or case.is_closed,
            "gradation_verified": not has_nullity_risk(case),
        }

    def audit_case(self, case: Case) -> AuditResult:
        checks = self.run_checks(case)
        score = sum(1 for passed in checks.values() if passed) / len(checks)

        if case.is_expulsion and not checks["gradation_verified"]:
            status = AuditStatus.RISK
        elif score < INCOMPLETE_THRESHOLD:
            status = AuditStatus.INCOMPLETE
        else:
            status = AuditStatus.READY

        return AuditResult(folio=case.folio, checks=checks, score=score, status=status)

    def audit_cases(self, cases: Iterable[Case]) -> List[AuditResult]:
        return [self.audit_case(case) for case in cases]

    def compute_kpis(self, cases: Iterable[Case], now: Optional[datetime] = None) -> ComplianceKPIs:
        cases = list(cases)
        if not cases:
            return ComplianceKPIs()

        now = now or utcnow()
        results = self.audit_cases(cases)
        average = sum(r.score for r in results) / len(results)

        kpis = ComplianceKPIs(
            global_health=round(average * 100),
            nullity_alerts=sum(1 for case in cases if has_nullity_risk(case)),
            critical_deadlines=self._count_critical(cases, now),
        )

        logger.info(
            f"Compliance audit: {len(cases)} cases, health {kpis.global_health}%, "
            f"{kpis.nullity_alerts} nullity alerts, {kpis.critical_deadlines} critical deadlines"
        )
        return kpis

    def compute_caseload_kpis(self, cases: Iterable[Case], now: Optional[datetime] = None) -> CaseloadKPIs:
        """Operational counters shown on the case list."""
        cases = list(cases)
        now = now or utcnow()
        return CaseloadKPIs(
            active=sum(1 for case in cases if not case.is_closed),
            critical_deadlines=self._count_critical(cases, now),
            mediation_agreements=sum(1 for case in cases if case.stage == CaseStage.CLOSED_MEDIATION),
            total=len(cases),
        )

    def filter_results(
        self,
        cases: Iterable[Case],
        audit_filter: AuditFilter = AuditFilter.ALL,
    ) -> List[AuditResult]:
        """Audit results narrowed by one of the dashboard filters. Scoring is unchanged."""
        selected = []
        for case in cases:
            result = self.audit_case(case)
            if audit_filter == AuditFilter.NULLITY and not has_nullity_risk(case):
                continue
            if audit_filter == AuditFilter.LOW_HEALTH and not (
                case.stage == CaseStage.RESOLUTION_PENDING and result.score < LOW_HEALTH_THRESHOLD
            ):
                continue
            selected.append(result)
        return selected

    @staticmethod
    def _count_critical(cases: List[Case], now: datetime) -> int:
        return sum(
            1 for case in cases
            if not case.is_closed and is_within_critical_window(case.fatal_deadline, now)
        )
