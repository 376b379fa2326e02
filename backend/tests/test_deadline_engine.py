"""
Tests for the Deadline Engine.

Test Coverage:
1. Business-day arithmetic (weekends skipped, time of day kept)
2. Legal deadline per severity
3. Days remaining and deadline classification
4. 48-hour critical window
5. Upcoming and breached case views
"""
import pytest
from datetime import datetime, timedelta

from convivencia.models.domain import (
    Case, CaseStage, DeadlineStatus, Severity,
)
from convivencia.services.deadlines import (
    DeadlineEngine,
    add_business_days,
    classify_deadline,
    compute_legal_deadline,
    days_remaining,
    is_within_critical_window,
    reconsideration_window_closes,
)


WEDNESDAY = datetime(2025, 1, 1, 10, 0)
FRIDAY = datetime(2025, 1, 3, 9, 30)


def make_case(folio, deadline, stage=CaseStage.INVESTIGATION, severity=Severity.RELEVANT):
    return Case(
        folio=folio,
        student_name="Test Student",
        severity=severity,
        opened_at=deadline - timedelta(days=30),
        fatal_deadline=deadline,
        stage=stage,
    )


# =============================================================================
# TEST: BUSINESS DAYS
# =============================================================================

class TestAddBusinessDays:
    """Tests for add_business_days."""

    def test_ten_business_days_from_wednesday(self):
        """2025-01-01 (Wed) + 10 business days → 2025-01-15 (Wed)"""
        assert add_business_days(WEDNESDAY, 10) == datetime(2025, 1, 15, 10, 0)

    def test_friday_plus_one_lands_on_monday(self):
        result = add_business_days(FRIDAY, 1)
        assert result == datetime(2025, 1, 6, 9, 30)
        assert result.weekday() == 0

    def test_zero_returns_start_even_on_weekend(self):
        saturday = datetime(2025, 1, 4, 12, 0)
        assert add_business_days(saturday, 0) == saturday

    def test_negative_raises(self):
        with pytest.raises(ValueError):
            add_business_days(WEDNESDAY, -1)

    @pytest.mark.parametrize("days", [1, 2, 5, 9, 10, 23, 45])
    def test_never_lands_on_weekend(self, days):
        for offset in range(7):
            start = WEDNESDAY + timedelta(days=offset)
            assert add_business_days(start, days).weekday() < 5

    def test_monotonic(self):
        previous = add_business_days(FRIDAY, 0)
        for n in range(1, 30):
            current = add_business_days(FRIDAY, n)
            assert current > previous
            previous = current

    def test_keeps_time_of_day(self):
        start = datetime(2025, 3, 12, 17, 45, 12)
        result = add_business_days(start, 7)
        assert (result.hour, result.minute, result.second) == (17, 45, 12)


# =============================================================================
# TEST: LEGAL DEADLINES
# =============================================================================

class TestComputeLegalDeadline:

    def test_low_is_24_calendar_hours(self):
        """LOW → exactly +86,400,000 ms"""
        deadline = compute_legal_deadline(WEDNESDAY, Severity.LOW)
        assert deadline == datetime(2025, 1, 2, 10, 0)
        assert (deadline - WEDNESDAY).total_seconds() * 1000 == 86_400_000

    def test_low_ignores_weekends(self):
        assert compute_legal_deadline(FRIDAY, Severity.LOW) == datetime(2025, 1, 4, 9, 30)

    def test_expulsion_is_ten_business_days(self):
        assert compute_legal_deadline(WEDNESDAY, Severity.SEVERE_EXPULSION) == datetime(2025, 1, 15, 10, 0)

    def test_relevant_is_45_business_days(self):
        assert compute_legal_deadline(WEDNESDAY, Severity.RELEVANT) == add_business_days(WEDNESDAY, 45)

    def test_deadline_always_after_start(self):
        for severity in Severity:
            assert compute_legal_deadline(WEDNESDAY, severity) > WEDNESDAY

    def test_reconsideration_window(self):
        assert reconsideration_window_closes(WEDNESDAY) == add_business_days(WEDNESDAY, 15)


# =============================================================================
# TEST: DAYS REMAINING / CLASSIFICATION
# =============================================================================

class TestDaysRemaining:

    def test_rounds_up_partial_days(self):
        now = datetime(2025, 1, 1, 10, 0)
        assert days_remaining(now + timedelta(hours=1), now) == 1
        assert days_remaining(now + timedelta(days=2, hours=3), now) == 3

    def test_negative_when_overdue(self):
        now = datetime(2025, 1, 10, 10, 0)
        assert days_remaining(now - timedelta(days=2), now) == -2

    @pytest.mark.parametrize("days,expected", [
        (-1, DeadlineStatus.OVERDUE),
        (0, DeadlineStatus.URGENT),
        (3, DeadlineStatus.URGENT),
        (4, DeadlineStatus.UPCOMING),
        (7, DeadlineStatus.UPCOMING),
        (8, DeadlineStatus.NORMAL),
    ])
    def test_classify(self, days, expected):
        assert classify_deadline(days) == expected


class TestCriticalWindow:

    def test_inside_window(self):
        now = datetime(2025, 1, 1, 10, 0)
        assert is_within_critical_window(now + timedelta(hours=47), now) is True

    def test_exactly_48_hours_is_outside(self):
        now = datetime(2025, 1, 1, 10, 0)
        assert is_within_critical_window(now + timedelta(hours=48), now) is False

    def test_passed_deadline_is_outside(self):
        now = datetime(2025, 1, 1, 10, 0)
        assert is_within_critical_window(now - timedelta(minutes=1), now) is False
        assert is_within_critical_window(now, now) is False


# =============================================================================
# TEST: DEADLINE ENGINE
# =============================================================================

class TestDeadlineEngine:

    def test_calculate_deadline(self):
        engine = DeadlineEngine()
        assert engine.calculate_deadline(WEDNESDAY, Severity.SEVERE_EXPULSION) == datetime(2025, 1, 15, 10, 0)

    def test_upcoming_alerts_sorted_and_filtered(self):
        now = datetime(2025, 2, 1, 12, 0)
        cases = [
            make_case("FAR", now + timedelta(days=20)),
            make_case("SOON", now + timedelta(days=5)),
            make_case("OVERDUE", now - timedelta(days=1)),
            make_case("TOMORROW", now + timedelta(hours=20)),
            make_case("CLOSED", now + timedelta(days=1), stage=CaseStage.CLOSED_SANCTION),
        ]

        alerts = DeadlineEngine().upcoming_alerts(cases, days_ahead=7, now=now)

        assert [a.folio for a in alerts] == ["OVERDUE", "TOMORROW", "SOON"]
        assert alerts[0].status == DeadlineStatus.OVERDUE
        assert alerts[1].status == DeadlineStatus.URGENT
        assert alerts[2].status == DeadlineStatus.UPCOMING

    def test_breached_cases(self):
        now = datetime(2025, 2, 1, 12, 0)
        cases = [
            make_case("LATE", now - timedelta(days=3)),
            make_case("LATE-CLOSED", now - timedelta(days=3), stage=CaseStage.CLOSED_MEDIATION),
            make_case("OK", now + timedelta(days=3)),
        ]

        breached = DeadlineEngine().breached_cases(cases, now=now)

        assert [c.folio for c in breached] == ["LATE"]
