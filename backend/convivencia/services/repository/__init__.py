"""
Case Repository Adapter

Storage boundary for case files and their audit log:
- CaseRepository: the contract the workflow and audit services depend on
- SqlCaseRepository: SQLAlchemy implementation
- LocalCaseCache: JSON-file fallback with write-through
- mapping: pure row/dict conversions
"""

from .base import CaseRepository, CaseFilter, DEFAULT_PAGE_SIZE
from .mapping import row_to_case, map_severity, map_stage
from .local_cache import LocalCaseCache, InMemoryCaseRepository, STORAGE_KEY, seed_cases
from .sql_repository import SqlCaseRepository

__all__ = [
    'CaseRepository',
    'CaseFilter',
    'DEFAULT_PAGE_SIZE',
    'row_to_case',
    'map_severity',
    'map_stage',
    'LocalCaseCache',
    'InMemoryCaseRepository',
    'STORAGE_KEY',
    'seed_cases',
    'SqlCaseRepository',
]
