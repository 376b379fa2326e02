#!/usr/bin/env python3
"""
Example Case Seed Script
Loads the two illustrative cases into the configured database.

Usage:
    python -m scripts.seed_example_cases [owner_id]

Example:
    DATABASE_URL=sqlite:///./convivencia.db python -m scripts.seed_example_cases u1
"""
import sys

from convivencia.database import SessionLocal, init_db
from convivencia.models.domain import SYSTEM_ACTOR, AuditAction, AuditLogEntry
from convivencia.services.errors import CaseEngineError
from convivencia.services.repository import SqlCaseRepository, seed_cases


def seed_example_cases(owner_id: str = "u1") -> int:
    """Insert the example cases that are not stored yet. Returns how many were created."""
    # Ensure tables exist
    init_db()

    db = SessionLocal()
    created = 0
    try:
        repository = SqlCaseRepository(db)
        for case in seed_cases():
            if repository.get_case(case.folio) is not None:
                print(f"Skipping {case.folio}: already exists.")
                continue

            case.owner_id = owner_id
            repository.save_case(case)
            repository.append_audit_log_entry(AuditLogEntry(
                case_id=case.storage_id,
                action=AuditAction.CASE_OPENED,
                description=f"Example case {case.folio} loaded",
                actor_id=SYSTEM_ACTOR.actor_id,
                actor_name=SYSTEM_ACTOR.name,
                actor_role=SYSTEM_ACTOR.role,
                critical=True,
            ))
            created += 1
            print(f"Created {case.folio} ({case.severity.value}, {case.stage.value})")
            print(f"  Deadline: {case.fatal_deadline.isoformat()}")
    except CaseEngineError as e:
        print(f"Error seeding cases: {e}")
        raise
    finally:
        db.close()

    return created


def main():
    if len(sys.argv) > 2:
        print(__doc__)
        sys.exit(1)

    owner_id = sys.argv[1] if len(sys.argv) == 2 else "u1"
    try:
        created = seed_example_cases(owner_id)
    except CaseEngineError:
        sys.exit(1)
    print(f"{created} example case(s) created.")


if __name__ == "__main__":
    main()
