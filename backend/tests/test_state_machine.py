"""
Tests for the Case State Machine.

Test Coverage:
1. Transition table validation
2. Available transitions per stage (closed cases offer none)
3. Checklist enforcement (nothing changes when an item is pending)
4. Audit entry written together with the stage change
5. Persistence failures revert the in-memory case
6. Stale version detection
"""
import pytest
from datetime import datetime, timedelta
from unittest.mock import MagicMock

from convivencia.models.domain import (
    Actor, ActorRole, AuditAction, Case, CaseStage, Severity, TransitionDefinition,
)
from convivencia.services.errors import (
    CaseNotFound, InvalidTransition, PersistenceError, RequirementsNotMet, StaleCaseError,
)
from convivencia.services.repository import InMemoryCaseRepository
from convivencia.services.workflow import (
    TRANSITIONS,
    CaseStateMachine,
    TransitionTableError,
    missing_requirements,
    validate_transition_table,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def actor():
    return Actor(actor_id="u1", name="Encargada Convivencia", role=ActorRole.CONVIVENCIA_LEAD)


def make_case(stage=CaseStage.OPENED, folio="EXP-TEST-001", severity=Severity.RELEVANT):
    opened = datetime(2025, 3, 3, 9, 0)
    return Case(
        folio=folio,
        student_name="J. Pérez",
        severity=severity,
        opened_at=opened,
        fatal_deadline=opened + timedelta(days=60),
        stage=stage,
    )


@pytest.fixture
def repository():
    return InMemoryCaseRepository()


def transition_to(machine, case, target):
    return next(t for t in machine.list_available_transitions(case) if t.target == target)


ALL_ACKNOWLEDGED = [True, True, True]


# =============================================================================
# TEST: TRANSITION TABLE
# =============================================================================

class TestTransitionTable:

    def test_default_table_is_valid(self):
        validate_transition_table(TRANSITIONS)

    def test_every_checklist_has_items(self):
        assert all(len(t.requirements) > 0 for t in TRANSITIONS)

    def test_terminal_stage_with_outgoing_transition_rejected(self):
        bad = TRANSITIONS + (
            TransitionDefinition(
                sources=frozenset({CaseStage.CLOSED_SANCTION}),
                target=CaseStage.RECONSIDERATION,
                label="Reopen",
                description="",
                requirements=("Anything",),
            ),
        )
        with pytest.raises(TransitionTableError):
            validate_transition_table(bad)

    def test_stranded_stage_rejected(self):
        without_reconsideration_exit = tuple(
            t for t in TRANSITIONS
            if CaseStage.RECONSIDERATION not in t.sources
        )
        with pytest.raises(TransitionTableError):
            validate_transition_table(without_reconsideration_exit)

    def test_empty_checklist_rejected(self):
        bad = (
            TransitionDefinition(
                sources=frozenset({CaseStage.OPENED}),
                target=CaseStage.NOTIFIED,
                label="No checks",
                description="",
                requirements=(),
            ),
        ) + TRANSITIONS[1:]
        with pytest.raises(TransitionTableError):
            validate_transition_table(bad)

    def test_custom_table_validated_by_machine(self, repository):
        with pytest.raises(TransitionTableError):
            CaseStateMachine(repository, transitions=TRANSITIONS[:2])


# =============================================================================
# TEST: AVAILABLE TRANSITIONS
# =============================================================================

class TestAvailableTransitions:

    def test_opened_can_only_notify(self, repository):
        machine = CaseStateMachine(repository)
        targets = [t.target for t in machine.list_available_transitions(make_case(CaseStage.OPENED))]
        assert targets == [CaseStage.NOTIFIED]

    def test_investigation_offers_resolution_and_mediation(self, repository):
        machine = CaseStateMachine(repository)
        targets = {t.target for t in machine.list_available_transitions(make_case(CaseStage.INVESTIGATION))}
        assert targets == {CaseStage.RESOLUTION_PENDING, CaseStage.CLOSED_MEDIATION}

    @pytest.mark.parametrize("stage", [CaseStage.CLOSED_SANCTION, CaseStage.CLOSED_MEDIATION])
    def test_closed_case_offers_nothing(self, repository, stage):
        machine = CaseStateMachine(repository)
        assert machine.list_available_transitions(make_case(stage)) == []

    def test_find_transition_rejects_unreachable_target(self, repository):
        machine = CaseStateMachine(repository)
        with pytest.raises(InvalidTransition):
            machine.find_transition(make_case(CaseStage.OPENED), CaseStage.CLOSED_SANCTION)


# =============================================================================
# TEST: EXECUTE TRANSITION
# =============================================================================

class TestExecuteTransition:

    def test_missing_requirements_in_order(self):
        transition = TRANSITIONS[0]
        missing = missing_requirements(transition, [True, False, False])
        assert missing == list(transition.requirements[1:])

    def test_mapping_acknowledgements(self):
        transition = TRANSITIONS[0]
        assert missing_requirements(transition, {0: True, 1: True, 2: True}) == []
        assert missing_requirements(transition, None) == list(transition.requirements)

    def test_requirements_not_met_leaves_case_untouched(self, repository, actor):
        case = make_case(CaseStage.OPENED)
        repository.save_case(case)
        machine = CaseStateMachine(repository)
        transition = transition_to(machine, case, CaseStage.NOTIFIED)

        with pytest.raises(RequirementsNotMet) as exc_info:
            machine.execute_transition(case, transition, [True, False, True], actor)

        assert exc_info.value.missing == [transition.requirements[1]]
        assert case.stage == CaseStage.OPENED
        assert repository.get_case(case.folio).stage == CaseStage.OPENED
        assert repository.list_audit_log(case.storage_id) == []

    def test_resolution_to_closed_sanction_appends_one_critical_entry(self, repository, actor):
        case = make_case(CaseStage.RESOLUTION_PENDING)
        repository.save_case(case)
        machine = CaseStateMachine(repository)
        transition = transition_to(machine, case, CaseStage.CLOSED_SANCTION)

        entry = machine.execute_transition(case, transition, ALL_ACKNOWLEDGED, actor)

        assert case.stage == CaseStage.CLOSED_SANCTION
        assert case.version == 2
        log = repository.list_audit_log(case.storage_id)
        assert len(log) == 1
        assert log[0].id == entry.id
        assert log[0].critical is True
        assert log[0].action == AuditAction.CASE_CLOSED
        assert "RESOLUTION_PENDING → CLOSED_SANCTION" in log[0].description
        assert log[0].actor_id == "u1"
        assert log[0].payload["requirements_checked"] == list(transition.requirements)

    def test_intermediate_transition_logs_stage_transition(self, repository, actor):
        case = make_case(CaseStage.OPENED)
        repository.save_case(case)
        machine = CaseStateMachine(repository)

        entry = machine.execute_transition(
            case, transition_to(machine, case, CaseStage.NOTIFIED), ALL_ACKNOWLEDGED, actor,
        )

        assert entry.action == AuditAction.STAGE_TRANSITION
        assert repository.get_case(case.folio).stage == CaseStage.NOTIFIED

    def test_closed_case_rejects_transition(self, repository, actor):
        case = make_case(CaseStage.CLOSED_MEDIATION)
        machine = CaseStateMachine(repository)

        with pytest.raises(InvalidTransition):
            machine.execute_transition(case, TRANSITIONS[0], ALL_ACKNOWLEDGED, actor)

    def test_transition_from_wrong_stage_rejected(self, repository, actor):
        case = make_case(CaseStage.INVESTIGATION)
        machine = CaseStateMachine(repository)

        with pytest.raises(InvalidTransition):
            machine.execute_transition(case, TRANSITIONS[0], ALL_ACKNOWLEDGED, actor)
        assert case.stage == CaseStage.INVESTIGATION

    def test_persistence_failure_reverts_case(self, actor):
        mock_repo = MagicMock()
        mock_repo.apply_transition.side_effect = RuntimeError("connection reset")
        case = make_case(CaseStage.NOTIFIED)
        machine = CaseStateMachine(mock_repo)

        with pytest.raises(PersistenceError) as exc_info:
            machine.execute_transition(
                case, transition_to(machine, case, CaseStage.REBUTTAL), ALL_ACKNOWLEDGED, actor,
            )

        assert isinstance(exc_info.value.cause, RuntimeError)
        assert case.stage == CaseStage.NOTIFIED
        assert case.version == 1
        mock_repo.apply_transition.assert_called_once()

    def test_persistence_error_passes_through(self, actor):
        mock_repo = MagicMock()
        mock_repo.apply_transition.side_effect = StaleCaseError("EXP-TEST-001", 1, 3)
        case = make_case(CaseStage.NOTIFIED)
        machine = CaseStateMachine(mock_repo)

        with pytest.raises(StaleCaseError):
            machine.execute_transition(
                case, transition_to(machine, case, CaseStage.REBUTTAL), ALL_ACKNOWLEDGED, actor,
            )
        assert case.stage == CaseStage.NOTIFIED

    def test_case_missing_from_repository_is_not_found(self, repository, actor):
        """A case the store does not hold surfaces CaseNotFound, not PersistenceError"""
        case = make_case(CaseStage.OPENED, folio="EXP-GONE-1")
        machine = CaseStateMachine(repository)

        with pytest.raises(CaseNotFound):
            machine.execute_transition(
                case, transition_to(machine, case, CaseStage.NOTIFIED), ALL_ACKNOWLEDGED, actor,
            )

        assert case.stage == CaseStage.OPENED
        assert case.version == 1
        assert repository.list_audit_log("EXP-GONE-1") == []

    def test_stale_copy_rejected(self, repository, actor):
        case = make_case(CaseStage.NOTIFIED)
        repository.save_case(case)
        machine = CaseStateMachine(repository)

        first = repository.get_case(case.folio)
        second = repository.get_case(case.folio)
        machine.execute_transition(first, transition_to(machine, first, CaseStage.REBUTTAL), ALL_ACKNOWLEDGED, actor)

        with pytest.raises(StaleCaseError):
            machine.execute_transition(
                second, transition_to(machine, second, CaseStage.CLOSED_MEDIATION), ALL_ACKNOWLEDGED, actor,
            )

        assert second.stage == CaseStage.NOTIFIED
        assert repository.get_case(case.folio).stage == CaseStage.REBUTTAL
        assert len(repository.list_audit_log(case.storage_id)) == 1


class TestExecuteTransitionByFolio:

    def test_full_sanction_path(self, repository, actor):
        repository.save_case(make_case(CaseStage.OPENED))
        machine = CaseStateMachine(repository)

        path = [
            CaseStage.NOTIFIED, CaseStage.REBUTTAL, CaseStage.INVESTIGATION,
            CaseStage.RESOLUTION_PENDING, CaseStage.RECONSIDERATION, CaseStage.CLOSED_SANCTION,
        ]
        for target in path:
            case = machine.execute_transition_by_folio("EXP-TEST-001", target, ALL_ACKNOWLEDGED, actor)
            assert case.stage == target

        stored = repository.get_case("EXP-TEST-001")
        assert stored.is_closed
        assert stored.version == len(path) + 1
        assert len(repository.list_audit_log(stored.storage_id)) == len(path)

    def test_unknown_folio(self, repository, actor):
        machine = CaseStateMachine(repository)
        with pytest.raises(CaseNotFound):
            machine.execute_transition_by_folio("NOPE", CaseStage.NOTIFIED, ALL_ACKNOWLEDGED, actor)
