"""
Case workflow services.

Stage lifecycle, transition checklists and milestone templates.
"""

from .transitions import TRANSITIONS, TransitionTableError, validate_transition_table
from .state_machine import CaseStateMachine, missing_requirements
from .milestones import build_milestones, ensure_council_milestone

__all__ = [
    'TRANSITIONS',
    'TransitionTableError',
    'validate_transition_table',
    'CaseStateMachine',
    'missing_requirements',
    'build_milestones',
    'ensure_council_milestone',
]
