"""Legal deadline computation (Circular 782 / Aula Segura)."""

from .deadline_engine import (
    DeadlineEngine,
    add_business_days,
    compute_legal_deadline,
    days_remaining,
    classify_deadline,
    deadline_status,
    is_within_critical_window,
    reconsideration_window_closes,
)

__all__ = [
    'DeadlineEngine',
    'add_business_days',
    'compute_legal_deadline',
    'days_remaining',
    'classify_deadline',
    'deadline_status',
    'is_within_critical_window',
    'reconsideration_window_closes',
]
