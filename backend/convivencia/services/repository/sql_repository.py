"""
SQL Case Repository

SQLAlchemy implementation of the case repository contract.

- Stage writes are compare-and-swap on the `version` column
- `apply_transition` writes the stage and the audit entry in one transaction
- Any SQLAlchemyError is rolled back and re-raised as PersistenceError
"""
import logging
from contextlib import contextmanager
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import CaseAuditLogDB, CaseDB, MilestoneDB, StudentDB
from ...models.domain import AuditLogEntry, Case, CaseStage, Milestone, utcnow
from ..errors import CaseEngineError, CaseNotFound, PersistenceError, StaleCaseError
from .base import CaseFilter, CaseRepository, DEFAULT_PAGE_SIZE, matches_search

logger = logging.getLogger(__name__)


class SqlCaseRepository(CaseRepository):
    """Case storage backed by a SQLAlchemy session."""

    def __init__(self, db_session: Session):
        """Initialize with database session."""
        self.db = db_session

    # =========================================================================
    # READS
    # =========================================================================

    def list_cases(self, case_filter: Optional[CaseFilter] = None) -> List[Case]:
        case_filter = case_filter or CaseFilter()
        limit = case_filter.limit or DEFAULT_PAGE_SIZE

        try:
            query = self.db.query(CaseDB)
            if case_filter.stage is not None:
                query = query.filter(CaseDB.stage == case_filter.stage)
            if case_filter.severity is not None:
                query = query.filter(CaseDB.severity == case_filter.severity)
            if case_filter.owner_id is not None:
                query = query.filter(CaseDB.owner_id == case_filter.owner_id)
            query = query.order_by(CaseDB.updated_at.desc(), CaseDB.opened_at.desc())

            if case_filter.search:
                rows = query.all()
            else:
                rows = query.limit(limit).all()
        except SQLAlchemyError as e:
            logger.error(f"Could not load cases: {e}")
            raise PersistenceError("Could not load cases", cause=e) from e

        cases = [self._to_case(row) for row in rows]
        if case_filter.search:
            cases = [case for case in cases if matches_search(case, case_filter.search)][:limit]
        return cases

    def get_case(self, folio: str) -> Optional[Case]:
        try:
            row = self.db.query(CaseDB).filter(
                or_(CaseDB.folio == folio, CaseDB.id == folio)
            ).first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load case {folio}", cause=e) from e
        return self._to_case(row) if row else None

    def list_audit_log(self, case_id: str) -> List[AuditLogEntry]:
        try:
            rows = self.db.query(CaseAuditLogDB).filter(CaseAuditLogDB.case_id == case_id).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Could not load audit log for {case_id}", cause=e) from e

        return [
            AuditLogEntry(
                id=row.id,
                case_id=row.case_id,
                action=row.action,
                description=row.description,
                actor_id=row.actor_id,
                actor_name=row.actor_name,
                actor_role=row.actor_role,
                critical=bool(row.critical),
                payload=row.event_metadata or {},
                timestamp=row.created_at,
            )
            for row in rows
        ]

    # =========================================================================
    # WRITES
    # =========================================================================

    def save_case(self, case: Case) -> Case:
        case.db_id = case.db_id or str(uuid4())
        now = utcnow()

        with self._transaction(f"save case {case.folio}"):
            student = self._student_row(case.student_name, case.student_course)
            row = CaseDB(
                id=case.db_id,
                folio=case.folio,
                student_id=student.id,
                student_name=case.student_name,
                student_course=case.student_course,
                stage=case.stage,
                severity=case.severity,
                opened_at=case.opened_at,
                fatal_deadline=case.fatal_deadline,
                prior_actions_on_file=case.prior_actions_on_file,
                owner_id=case.owner_id,
                version=case.version,
                created_at=now,
                updated_at=now,
            )
            for position, milestone in enumerate(case.milestones):
                row.milestones.append(self._milestone_row(milestone, position))
            self.db.add(row)

        case.updated_at = now
        logger.info(f"Saved case {case.folio} ({case.db_id})")
        return case

    def update_case(self, case: Case, expected_version: Optional[int] = None) -> Case:
        with self._transaction(f"update case {case.folio}"):
            row = self._load_row(case.storage_id)
            self._check_version(row, expected_version)

            row.student_id = self._student_row(case.student_name, case.student_course).id
            row.student_name = case.student_name
            row.student_course = case.student_course
            row.severity = case.severity
            row.fatal_deadline = case.fatal_deadline
            row.prior_actions_on_file = case.prior_actions_on_file
            row.owner_id = case.owner_id

            existing = {m.milestone_id: m for m in row.milestones}
            for position, milestone in enumerate(case.milestones):
                stored = existing.get(milestone.id)
                if stored is None:
                    row.milestones.append(self._milestone_row(milestone, position))
                    continue
                stored.position = position
                stored.completed = milestone.completed
                stored.completed_at = milestone.completed_at
                stored.evidence_url = milestone.evidence_url

            row.version = row.version + 1
            row.updated_at = utcnow()
            new_version = row.version
            updated_at = row.updated_at

        case.version = new_version
        case.updated_at = updated_at
        return case

    def update_case_stage(
        self,
        case_id: str,
        new_stage: CaseStage,
        expected_version: Optional[int] = None,
    ) -> int:
        with self._transaction(f"update stage of {case_id}"):
            version = self._swap_stage(case_id, new_stage, expected_version)
        return version

    def append_audit_log_entry(self, entry: AuditLogEntry) -> None:
        with self._transaction(f"append audit entry to {entry.case_id}"):
            self.db.add(self._entry_row(entry))

    def apply_transition(
        self,
        case_id: str,
        new_stage: CaseStage,
        entry: AuditLogEntry,
        expected_version: Optional[int] = None,
    ) -> int:
        """Stage update and audit entry committed together or not at all."""
        with self._transaction(f"transition {case_id} to {new_stage.value}"):
            version = self._swap_stage(case_id, new_stage, expected_version)
            self.db.add(self._entry_row(entry))
        return version

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @contextmanager
    def _transaction(self, action: str):
        try:
            yield
            self.db.commit()
        except CaseEngineError:
            self.db.rollback()
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Persistence failure during {action}: {e}")
            raise PersistenceError(f"Could not {action}", cause=e) from e
        except Exception:
            self.db.rollback()
            raise

    def _student_row(self, full_name: str, course: Optional[str]) -> StudentDB:
        """Existing student with this name and course, or a new one added to the session."""
        student = self.db.query(StudentDB).filter(
            StudentDB.full_name == full_name,
            StudentDB.course == course,
        ).first()
        if student is None:
            student = StudentDB(id=str(uuid4()), full_name=full_name, course=course, created_at=utcnow())
            self.db.add(student)
        return student

    def _load_row(self, case_id: str) -> CaseDB:
        row = self.db.query(CaseDB).filter(
            or_(CaseDB.id == case_id, CaseDB.folio == case_id)
        ).first()
        if row is None:
            raise CaseNotFound(case_id)
        return row

    @staticmethod
    def _check_version(row: CaseDB, expected_version: Optional[int]) -> None:
        if expected_version is not None and row.version != expected_version:
            raise StaleCaseError(row.id, expected_version, row.version)

    def _swap_stage(self, case_id: str, new_stage: CaseStage, expected_version: Optional[int]) -> int:
        row = self._load_row(case_id)
        current_version = row.version

        query = self.db.query(CaseDB).filter(CaseDB.id == row.id)
        if expected_version is not None:
            query = query.filter(CaseDB.version == expected_version)

        updated = query.update(
            {
                CaseDB.stage: new_stage,
                CaseDB.version: CaseDB.version + 1,
                CaseDB.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        if updated == 0:
            raise StaleCaseError(row.id, expected_version, current_version)

        self.db.expire(row)
        return row.version

    @staticmethod
    def _milestone_row(milestone: Milestone, position: int) -> MilestoneDB:
        return MilestoneDB(
            milestone_id=milestone.id,
            position=position,
            title=milestone.title,
            description=milestone.description,
            completed=milestone.completed,
            completed_at=milestone.completed_at,
            requires_evidence=milestone.requires_evidence,
            mandatory_for_expulsion=milestone.mandatory_for_expulsion,
            evidence_url=milestone.evidence_url,
        )

    @staticmethod
    def _entry_row(entry: AuditLogEntry) -> CaseAuditLogDB:
        return CaseAuditLogDB(
            id=entry.id,
            case_id=entry.case_id,
            action=entry.action,
            description=entry.description,
            actor_id=entry.actor_id,
            actor_name=entry.actor_name,
            actor_role=entry.actor_role,
            critical=entry.critical,
            event_metadata=entry.payload,
            created_at=entry.timestamp,
        )

    @staticmethod
    def _to_case(row: CaseDB) -> Case:
        return Case(
            folio=row.folio,
            db_id=row.id,
            student_name=row.student.full_name if row.student else row.student_name,
            student_course=row.student.course if row.student else row.student_course,
            stage=row.stage,
            severity=row.severity,
            opened_at=row.opened_at,
            fatal_deadline=row.fatal_deadline,
            prior_actions_on_file=bool(row.prior_actions_on_file),
            owner_id=row.owner_id,
            version=row.version,
            updated_at=row.updated_at,
            milestones=[
                Milestone(
                    id=m.milestone_id,
                    title=m.title,
                    description=m.description or "",
                    completed=bool(m.completed),
                    completed_at=m.completed_at,
                    requires_evidence=bool(m.requires_evidence),
                    mandatory_for_expulsion=bool(m.mandatory_for_expulsion),
                    evidence_url=m.evidence_url,
                )
                for m in row.milestones
            ],
        )
