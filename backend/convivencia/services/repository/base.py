"""
Case Repository contract.

The workflow and compliance services only talk to storage through this
interface. Implementations must raise PersistenceError (or StaleCaseError)
for storage failures and must never return partially applied transitions
from `apply_transition` when they can avoid it.
"""
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ...models.domain import AuditLogEntry, Case, CaseStage, Severity


DEFAULT_PAGE_SIZE = int(os.getenv("CONVIVENCIA_PAGE_SIZE", "200"))


@dataclass
class CaseFilter:
    """Optional narrowing for `list_cases`. All fields combine with AND."""
    stage: Optional[CaseStage] = None
    severity: Optional[Severity] = None
    owner_id: Optional[str] = None
    search: Optional[str] = None
    limit: int = DEFAULT_PAGE_SIZE


def matches_search(case: Case, term: Optional[str]) -> bool:
    """Case-insensitive match on student name, folio, severity or stage."""
    if not term or not term.strip():
        return True
    term = term.strip().lower()
    return (
        term in case.student_name.lower()
        or term in case.folio.lower()
        or term in case.severity.value.lower()
        or term in case.stage.value.lower()
    )


def matches_filter(case: Case, case_filter: Optional[CaseFilter]) -> bool:
    if case_filter is None:
        return True
    if case_filter.stage is not None and case.stage != case_filter.stage:
        return False
    if case_filter.severity is not None and case.severity != case_filter.severity:
        return False
    if case_filter.owner_id is not None and case.owner_id != case_filter.owner_id:
        return False
    return matches_search(case, case_filter.search)


class CaseRepository(ABC):
    """Storage boundary for cases and their audit log."""

    @abstractmethod
    def list_cases(self, case_filter: Optional[CaseFilter] = None) -> List[Case]:
        """Up to `case_filter.limit` cases, most recent activity first."""

    @abstractmethod
    def get_case(self, folio: str) -> Optional[Case]:
        """Case by folio, or None."""

    @abstractmethod
    def save_case(self, case: Case) -> Case:
        """Insert a newly opened case together with its milestones."""

    @abstractmethod
    def update_case(self, case: Case, expected_version: Optional[int] = None) -> Case:
        """Persist severity, deadline, flags and milestone changes."""

    @abstractmethod
    def update_case_stage(
        self,
        case_id: str,
        new_stage: CaseStage,
        expected_version: Optional[int] = None,
    ) -> int:
        """Persist a stage change. Returns the new version."""

    @abstractmethod
    def append_audit_log_entry(self, entry: AuditLogEntry) -> None:
        """Persist one audit-log record."""

    @abstractmethod
    def list_audit_log(self, case_id: str) -> List[AuditLogEntry]:
        """All entries for a case, in any order."""

    def apply_transition(
        self,
        case_id: str,
        new_stage: CaseStage,
        entry: AuditLogEntry,
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Stage update plus log append as one logical unit.

        The default issues two independent writes; stores with transactions
        override this to make it atomic.
        """
        version = self.update_case_stage(case_id, new_stage, expected_version)
        self.append_audit_log_entry(entry)
        return version
