"""
Case engine errors.

Raised synchronously by the service that detects them. Routers map them to
HTTP status codes; nothing in the core retries.
"""
from typing import List, Optional


class CaseEngineError(Exception):
    """Base class for all case engine errors."""
    pass


class CaseNotFound(CaseEngineError):
    """Unknown case identifier."""

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__(f"Case not found: {case_id}")


class DuplicateCase(CaseEngineError):
    """A case with this folio already exists."""

    def __init__(self, folio: str):
        self.folio = folio
        super().__init__(f"Case already exists: {folio}")


class MilestoneNotFound(CaseEngineError):
    def __init__(self, folio: str, milestone_id: str):
        self.folio = folio
        self.milestone_id = milestone_id
        super().__init__(f"Milestone {milestone_id} not found in case {folio}")


class RequirementsNotMet(CaseEngineError):
    """
    A transition was attempted without acknowledging every checklist item.
    Recoverable by re-prompting the user. Never retried automatically.
    """

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            f"All requirements must be verified before continuing ({len(self.missing)} pending)"
        )


class InvalidTransition(CaseEngineError):
    """The transition does not apply to the case's current stage."""
    pass


class PersistenceError(CaseEngineError):
    """Wraps any failure coming from the repository. Callers may retry."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class StaleCaseError(PersistenceError):
    """The stored case changed since it was loaded (version mismatch)."""

    def __init__(self, case_id: str, expected_version: int, actual_version: int):
        self.case_id = case_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Case {case_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
