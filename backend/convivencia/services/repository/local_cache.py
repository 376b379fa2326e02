"""
Local Case Cache

Degraded-mode case store used when the database is unreachable, and the
in-memory fake used by tests.

Lifecycle:
- load() on start: read the JSON file stored under the fixed storage key,
  or seed two illustrative cases when the file is missing, unreadable or
  holds a malformed record
- write-through: every mutation rewrites the file

With `path=None` nothing touches the filesystem.
"""
import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timedelta
from threading import RLock
from typing import Dict, List, Optional, Tuple

from ...models.domain import AuditLogEntry, Case, CaseStage, Severity, utcnow
from ..deadlines.deadline_engine import add_business_days
from ..errors import CaseNotFound, DuplicateCase, PersistenceError, StaleCaseError
from ..workflow.milestones import build_milestones
from .base import CaseFilter, CaseRepository, DEFAULT_PAGE_SIZE, matches_filter
from .mapping import case_from_dict, case_to_dict, entry_from_dict, entry_to_dict

logger = logging.getLogger(__name__)


STORAGE_KEY = "sge_expedientes_v1"
DEFAULT_CACHE_PATH = os.getenv("CONVIVENCIA_CACHE_PATH", f"./{STORAGE_KEY}.json")


def seed_cases(now: Optional[datetime] = None) -> List[Case]:
    """The two example cases shown when no data is available."""
    now = now or utcnow()
    return [
        Case(
            folio="EXP-2025-001",
            student_name="A. Rojas B.",
            student_course="7° Básico A",
            stage=CaseStage.INVESTIGATION,
            severity=Severity.RELEVANT,
            opened_at=now - timedelta(days=5),
            fatal_deadline=add_business_days(now, 40),
            owner_id="u1",
            prior_actions_on_file=False,
            milestones=build_milestones(False, now - timedelta(days=5)),
        ),
        Case(
            folio="EXP-2025-002",
            student_name="M. Soto L.",
            student_course="8° Básico B",
            stage=CaseStage.NOTIFIED,
            severity=Severity.SEVERE_EXPULSION,
            opened_at=now,
            fatal_deadline=add_business_days(now, 10),
            owner_id="u1",
            prior_actions_on_file=True,
            milestones=build_milestones(True, now),
        ),
    ]


class LocalCaseCache(CaseRepository):
    """Case repository kept in memory and mirrored to a JSON file."""

    def __init__(self, path: Optional[str] = None, seed: bool = True):
        self.path = path
        self.seed = seed
        self._cases: Dict[str, Case] = {}
        self._log: List[AuditLogEntry] = []
        self._lock = RLock()
        self.loaded = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def load(self) -> "LocalCaseCache":
        with self._lock:
            parsed = self._parse(self._read_file())
            if parsed is None:
                cases = seed_cases() if self.seed else []
                entries: List[AuditLogEntry] = []
                logger.info(f"Local cache '{STORAGE_KEY}' seeded with {len(cases)} example cases")
            else:
                cases, entries = parsed

            self._cases = {case.folio: case for case in cases}
            self._log = entries
            self.loaded = True
            self._flush()
        return self

    def _read_file(self) -> Optional[dict]:
        if not self.path or not os.path.exists(self.path):
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read local cache {self.path}: {e}")
            return None
        if not isinstance(data, dict) or not isinstance(data.get("cases"), list):
            logger.warning(f"Local cache {self.path} has an unexpected shape, ignoring it")
            return None
        return data

    def _parse(self, data: Optional[dict]) -> Optional[Tuple[List[Case], List[AuditLogEntry]]]:
        """Cases and log entries from the file contents, or None if any record is malformed."""
        if data is None:
            return None
        try:
            cases = [case_from_dict(item) for item in data["cases"]]
            entries = [entry_from_dict(item) for item in data.get("audit_log") or []]
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Local cache {self.path} holds a malformed record, ignoring it: {e!r}")
            return None
        return cases, entries

    def _flush(self) -> None:
        if not self.path:
            return
        payload = {
            "storage_key": STORAGE_KEY,
            "cases": [case_to_dict(case) for case in self._cases.values()],
            "audit_log": [entry_to_dict(entry) for entry in self._log],
        }
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(payload, f, ensure_ascii=False, indent=2)
        except OSError as e:
            logger.error(f"Could not write local cache {self.path}: {e}")
            raise PersistenceError(f"Could not write local cache {self.path}", cause=e) from e

    def _ensure_loaded(self) -> None:
        if not self.loaded:
            self.load()

    # =========================================================================
    # CONTRACT
    # =========================================================================

    def list_cases(self, case_filter: Optional[CaseFilter] = None) -> List[Case]:
        self._ensure_loaded()
        limit = case_filter.limit if case_filter else DEFAULT_PAGE_SIZE
        with self._lock:
            cases = [case for case in self._cases.values() if matches_filter(case, case_filter)]
        cases.sort(key=lambda c: c.updated_at or c.opened_at, reverse=True)
        return [self._copy(case) for case in cases[:limit]]

    def get_case(self, folio: str) -> Optional[Case]:
        self._ensure_loaded()
        with self._lock:
            case = self._find(folio)
            return self._copy(case) if case else None

    def save_case(self, case: Case) -> Case:
        self._ensure_loaded()
        with self._write_through():
            if case.folio in self._cases:
                raise DuplicateCase(case.folio)
            stored = self._copy(case)
            stored.updated_at = utcnow()
            self._cases[case.folio] = stored
        case.updated_at = stored.updated_at
        return case

    def update_case(self, case: Case, expected_version: Optional[int] = None) -> Case:
        self._ensure_loaded()
        with self._write_through():
            stored = self._require(case.storage_id)
            self._check_version(stored, expected_version)
            updated = self._copy(case)
            updated.stage = stored.stage
            updated.version = stored.version + 1
            updated.updated_at = utcnow()
            self._cases[stored.folio] = updated
        case.version = updated.version
        case.updated_at = updated.updated_at
        return case

    def update_case_stage(
        self,
        case_id: str,
        new_stage: CaseStage,
        expected_version: Optional[int] = None,
    ) -> int:
        self._ensure_loaded()
        with self._write_through():
            version = self._swap_stage(case_id, new_stage, expected_version)
        return version

    def append_audit_log_entry(self, entry: AuditLogEntry) -> None:
        self._ensure_loaded()
        with self._write_through():
            self._log.append(entry)

    def apply_transition(
        self,
        case_id: str,
        new_stage: CaseStage,
        entry: AuditLogEntry,
        expected_version: Optional[int] = None,
    ) -> int:
        self._ensure_loaded()
        with self._write_through():
            version = self._swap_stage(case_id, new_stage, expected_version)
            self._log.append(entry)
        return version

    def list_audit_log(self, case_id: str) -> List[AuditLogEntry]:
        self._ensure_loaded()
        with self._lock:
            case = self._find(case_id)
            keys = {case_id}
            if case is not None:
                keys.update({case.folio, case.storage_id})
            return [entry for entry in self._log if entry.case_id in keys]

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _find(self, case_id: str) -> Optional[Case]:
        if case_id in self._cases:
            return self._cases[case_id]
        for case in self._cases.values():
            if case.db_id == case_id:
                return case
        return None

    def _require(self, case_id: str) -> Case:
        case = self._find(case_id)
        if case is None:
            raise CaseNotFound(case_id)
        return case

    @staticmethod
    def _check_version(stored: Case, expected_version: Optional[int]) -> None:
        if expected_version is not None and stored.version != expected_version:
            raise StaleCaseError(stored.storage_id, expected_version, stored.version)

    @contextmanager
    def _write_through(self):
        """
        Apply a mutation and mirror it to the file. If anything fails,
        including the file write, the in-memory state is put back.
        Stored cases are replaced, never mutated in place, so shallow
        snapshots are enough.
        """
        with self._lock:
            cases, log = dict(self._cases), list(self._log)
            try:
                yield
                self._flush()
            except Exception:
                self._cases, self._log = cases, log
                raise

    def _swap_stage(self, case_id: str, new_stage: CaseStage, expected_version: Optional[int]) -> int:
        stored = self._require(case_id)
        self._check_version(stored, expected_version)
        updated = self._copy(stored)
        updated.stage = new_stage
        updated.version = stored.version + 1
        updated.updated_at = utcnow()
        self._cases[stored.folio] = updated
        return updated.version

    @staticmethod
    def _copy(case: Case) -> Case:
        return case_from_dict(case_to_dict(case))


class InMemoryCaseRepository(LocalCaseCache):
    """Local cache without a backing file, empty unless seeded."""

    def __init__(self, cases: Optional[List[Case]] = None, seed: bool = False):
        super().__init__(path=None, seed=seed)
        self.load()
        for case in cases or []:
            self._cases[case.folio] = self._copy(case)
