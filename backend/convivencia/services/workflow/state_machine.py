"""
Case State Machine

Deterministic lifecycle for a disciplinary case file.
Closed stages are terminal. Every executed transition appends one critical
entry to the case audit log.

The in-memory case is updated first so callers see the new stage
immediately; if the repository write fails the change is reverted
and the error is surfaced as PersistenceError. Case engine errors raised
by the repository (CaseNotFound, StaleCaseError) pass through unchanged.
"""
import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from ...models.domain import (
    Actor, AuditAction, AuditLogEntry, Case, CaseStage, TransitionDefinition,
)
from ..errors import (
    CaseEngineError, CaseNotFound, InvalidTransition, PersistenceError, RequirementsNotMet,
)
from ..repository.base import CaseRepository
from .transitions import TRANSITIONS, validate_transition_table

logger = logging.getLogger(__name__)


Acknowledgements = Union[Mapping[int, bool], Sequence[bool]]


def _acknowledged(acknowledged: Optional[Acknowledgements], index: int) -> bool:
    if acknowledged is None:
        return False
    if isinstance(acknowledged, Mapping):
        return bool(acknowledged.get(index, False))
    return index < len(acknowledged) and bool(acknowledged[index])


def missing_requirements(
    transition: TransitionDefinition,
    acknowledged: Optional[Acknowledgements],
) -> List[str]:
    """Checklist items not acknowledged, in checklist order."""
    return [
        requirement
        for index, requirement in enumerate(transition.requirements)
        if not _acknowledged(acknowledged, index)
    ]


class CaseStateMachine:
    """
    Lifecycle rules for a case.

    Core Principles:
    - Only transitions whose source set contains the current stage are offered
    - Closed cases offer nothing and accept nothing
    - Every checklist item must be acknowledged before anything changes
    - Stage update and audit entry are written as one unit
    """

    def __init__(
        self,
        repository: CaseRepository,
        transitions: Iterable[TransitionDefinition] = TRANSITIONS,
    ):
        self.repository = repository
        self.transitions = tuple(transitions)
        if self.transitions is not TRANSITIONS:
            validate_transition_table(self.transitions)

    def list_available_transitions(self, case: Case) -> List[TransitionDefinition]:
        if case.is_closed:
            return []
        return [t for t in self.transitions if case.stage in t.sources]

    def find_transition(self, case: Case, target: CaseStage) -> TransitionDefinition:
        for transition in self.list_available_transitions(case):
            if transition.target == target:
                return transition
        raise InvalidTransition(
            f"Cannot transition case {case.folio} from {case.stage.value} to {target.value}"
        )

    def execute_transition(
        self,
        case: Case,
        transition: TransitionDefinition,
        acknowledged: Optional[Acknowledgements],
        actor: Actor,
    ) -> AuditLogEntry:
        """
        Move `case` to `transition.target`.

        Returns the audit entry that was written.
        Raises RequirementsNotMet, InvalidTransition, CaseNotFound or PersistenceError.
        """
        if case.is_closed:
            raise InvalidTransition(f"Case {case.folio} is closed ({case.stage.value})")
        if case.stage not in transition.sources:
            raise InvalidTransition(
                f"Transition '{transition.label}' does not apply to stage {case.stage.value}"
            )

        missing = missing_requirements(transition, acknowledged)
        if missing:
            logger.warning(
                f"Transition '{transition.label}' rejected for {case.folio}: "
                f"{len(missing)} requirement(s) not verified"
            )
            raise RequirementsNotMet(missing)

        previous_stage = case.stage
        previous_version = case.version
        next_stage = transition.target

        entry = AuditLogEntry(
            case_id=case.storage_id,
            action=AuditAction.CASE_CLOSED if next_stage.is_terminal else AuditAction.STAGE_TRANSITION,
            description=f"Stage change: {previous_stage.value} → {next_stage.value}",
            actor_id=actor.actor_id,
            actor_name=actor.name,
            actor_role=actor.role,
            critical=True,
            payload={
                "previous_stage": previous_stage.value,
                "next_stage": next_stage.value,
                "transition": transition.label,
                "requirements_checked": list(transition.requirements),
            },
        )

        case.stage = next_stage
        try:
            case.version = self.repository.apply_transition(
                case.storage_id, next_stage, entry, expected_version=previous_version,
            )
        except Exception as e:
            case.stage = previous_stage
            case.version = previous_version
            logger.error(f"Transition of {case.folio} to {next_stage.value} failed, reverted: {e}")
            if isinstance(e, CaseEngineError):
                raise
            raise PersistenceError(f"Could not persist transition for {case.folio}", cause=e) from e

        logger.info(f"Case {case.folio}: {previous_stage.value} → {next_stage.value} by {actor.actor_id}")
        return entry

    def execute_transition_by_folio(
        self,
        folio: str,
        target: CaseStage,
        acknowledged: Optional[Acknowledgements],
        actor: Actor,
    ) -> Case:
        """Load a case, resolve the transition to `target` and execute it."""
        case = self.repository.get_case(folio)
        if case is None:
            raise CaseNotFound(folio)

        transition = self.find_transition(case, target)
        self.execute_transition(case, transition, acknowledged, actor)
        return case
