"""
Deadline Engine

Computes the legal due date ("plazo fatal") for resolving a case and the
day-counting helpers used by dashboards and the compliance auditor.

Key behaviors:
- LOW offenses must be resolved within 24 calendar hours
- SEVERE_EXPULSION (Aula Segura) cases within 10 business days
- RELEVANT offenses within 45 business days
- Business days skip Saturdays and Sundays; holidays are not modeled

All functions are pure. Unparseable or missing dates are the caller's problem.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from ...models.domain import (
    Case, DeadlineAlert, DeadlineStatus, Severity, utcnow,
)

logger = logging.getLogger(__name__)


# =============================================================================
# DEADLINE CONFIGURATION (Circular 782)
# =============================================================================

BUSINESS_DAYS_EXPULSION = 10
BUSINESS_DAYS_RELEVANT = 45
HOURS_LOW = 24
RECONSIDERATION_BUSINESS_DAYS = 15
CRITICAL_WINDOW_HOURS = 48

URGENT_THRESHOLD_DAYS = 3
UPCOMING_THRESHOLD_DAYS = 7

SECONDS_PER_DAY = 86400

SATURDAY = 5
SUNDAY = 6


# =============================================================================
# PURE HELPERS
# =============================================================================

def add_business_days(start: datetime, days: int) -> datetime:
    """
    Return the datetime `days` weekdays after `start`, keeping the time of day.

    `days == 0` returns `start` unchanged, even if it falls on a weekend.
    """
    if days < 0:
        raise ValueError(f"Business days must be non-negative, got {days}")

    current = start
    counted = 0
    while counted < days:
        current = current + timedelta(days=1)
        if current.weekday() not in (SATURDAY, SUNDAY):
            counted += 1
    return current


def compute_legal_deadline(start: datetime, severity: Severity) -> datetime:
    """Legal due date for resolving a case opened at `start`."""
    if severity == Severity.LOW:
        return start + timedelta(hours=HOURS_LOW)
    if severity == Severity.SEVERE_EXPULSION:
        return add_business_days(start, BUSINESS_DAYS_EXPULSION)
    return add_business_days(start, BUSINESS_DAYS_RELEVANT)


def _now_like(reference: datetime) -> datetime:
    if reference.tzinfo is None:
        return utcnow()
    return datetime.now(reference.tzinfo)


def days_remaining(deadline: datetime, now: Optional[datetime] = None) -> int:
    """Signed calendar days until `deadline`, rounded up. Negative when overdue."""
    now = now or _now_like(deadline)
    delta = (deadline - now).total_seconds()
    return math.ceil(delta / SECONDS_PER_DAY)


def classify_deadline(days: int) -> DeadlineStatus:
    if days < 0:
        return DeadlineStatus.OVERDUE
    if days <= URGENT_THRESHOLD_DAYS:
        return DeadlineStatus.URGENT
    if days <= UPCOMING_THRESHOLD_DAYS:
        return DeadlineStatus.UPCOMING
    return DeadlineStatus.NORMAL


def deadline_status(deadline: datetime, now: Optional[datetime] = None) -> DeadlineStatus:
    return classify_deadline(days_remaining(deadline, now))


def is_within_critical_window(deadline: datetime, now: Optional[datetime] = None) -> bool:
    """True when the deadline has not passed and falls within the next 48 hours."""
    now = now or _now_like(deadline)
    remaining = deadline - now
    return timedelta(0) < remaining < timedelta(hours=CRITICAL_WINDOW_HOURS)


def reconsideration_window_closes(resolution_date: datetime) -> datetime:
    """Last moment a guardian may file an appeal against a resolution."""
    return add_business_days(resolution_date, RECONSIDERATION_BUSINESS_DAYS)


# =============================================================================
# DEADLINE ENGINE
# =============================================================================

class DeadlineEngine:
    """
    Deadline views over a set of cases.

    Core Responsibilities:
    - Compute the fatal deadline at intake and on severity amendment
    - List open cases whose deadline is close or already breached
    """

    def calculate_deadline(self, opened_at: datetime, severity: Severity) -> datetime:
        deadline = compute_legal_deadline(opened_at, severity)
        logger.debug(f"Deadline for {severity.value} opened {opened_at.isoformat()}: {deadline.isoformat()}")
        return deadline

    def upcoming_alerts(
        self,
        cases: Iterable[Case],
        days_ahead: int = UPCOMING_THRESHOLD_DAYS,
        now: Optional[datetime] = None,
    ) -> List[DeadlineAlert]:
        """Open cases due within `days_ahead` days, overdue ones included, soonest first."""
        alerts = []
        for case in cases:
            if case.is_closed:
                continue
            remaining = days_remaining(case.fatal_deadline, now)
            if remaining > days_ahead:
                continue
            alerts.append(DeadlineAlert(
                folio=case.folio,
                days_remaining=remaining,
                deadline=case.fatal_deadline,
                severity=case.severity,
                status=classify_deadline(remaining),
            ))

        alerts.sort(key=lambda alert: alert.deadline)
        return alerts

    def breached_cases(self, cases: Iterable[Case], now: Optional[datetime] = None) -> List[Case]:
        """Open cases whose fatal deadline has already passed."""
        return [
            case for case in cases
            if not case.is_closed and days_remaining(case.fatal_deadline, now) < 0
        ]
