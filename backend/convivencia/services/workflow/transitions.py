"""
Transition table for the case lifecycle.

    OPENED → NOTIFIED → REBUTTAL → INVESTIGATION → RESOLUTION_PENDING
    RESOLUTION_PENDING → CLOSED_SANCTION | RECONSIDERATION
    RECONSIDERATION → CLOSED_SANCTION
    NOTIFIED | REBUTTAL | INVESTIGATION → CLOSED_MEDIATION (GCC diversion)

Each transition carries an ordered checklist that the acting user must
acknowledge item by item. The table is validated when this module is imported.
"""
from typing import Dict, Iterable, List, Tuple

from ...models.domain import CaseStage, TransitionDefinition, TERMINAL_STAGES


# =============================================================================
# TRANSITION TABLE
# =============================================================================

TRANSITIONS: Tuple[TransitionDefinition, ...] = (
    TransitionDefinition(
        sources=frozenset({CaseStage.OPENED}),
        target=CaseStage.NOTIFIED,
        label="Notify guardians",
        description="Formally communicate the start of the disciplinary process",
        requirements=(
            "Student data complete",
            "Offense type and severity classified",
            "Notification letter drafted",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.NOTIFIED}),
        target=CaseStage.REBUTTAL,
        label="Receive rebuttal",
        description="Hear the student's and family's account",
        requirements=(
            "Notification served (24h)",
            "Notification copy filed",
            "Hearing date scheduled",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.REBUTTAL}),
        target=CaseStage.INVESTIGATION,
        label="Open investigation",
        description="Collect additional evidence and testimony",
        requirements=(
            "Signed rebuttal record",
            "Witness statements collected",
            "Digital evidence filed",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.INVESTIGATION}),
        target=CaseStage.RESOLUTION_PENDING,
        label="Issue resolution",
        description="Decide the formative or disciplinary measure",
        requirements=(
            "Investigation report complete",
            "Evidence cross-checked",
            "Student's right to be heard verified",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.RESOLUTION_PENDING}),
        target=CaseStage.CLOSED_SANCTION,
        label="Close with sanction",
        description="End the process with the disciplinary measure applied",
        requirements=(
            "Resolution signed by the principal",
            "Resolution notification letter",
            "Entry in the sanctions register",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.NOTIFIED, CaseStage.REBUTTAL, CaseStage.INVESTIGATION}),
        target=CaseStage.CLOSED_MEDIATION,
        label="Refer to mediation (GCC)",
        description="Close through the formative path by mediation",
        requirements=(
            "Signed mediation agreement",
            "Reparative commitments recorded",
            "Mediation minutes filed",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.RESOLUTION_PENDING}),
        target=CaseStage.RECONSIDERATION,
        label="Open reconsideration",
        description="Receive the guardian's appeal",
        requirements=(
            "Written appeal from the guardian",
            "15 business day appeal window still open",
            "Case file complete",
        ),
    ),
    TransitionDefinition(
        sources=frozenset({CaseStage.RECONSIDERATION}),
        target=CaseStage.CLOSED_SANCTION,
        label="Confirm sanction",
        description="Final resolution after reconsideration",
        requirements=(
            "Reconsideration report",
            "School board response",
            "Final resolution executed",
        ),
    ),
)


class TransitionTableError(Exception):
    """Raised when a transition table leaves a stage stranded."""
    pass


def validate_transition_table(transitions: Iterable[TransitionDefinition]) -> None:
    """
    Every non-terminal stage needs an outgoing transition, terminal stages
    need none, and every transition needs a non-empty checklist.
    """
    transitions = list(transitions)
    outgoing: Dict[CaseStage, List[TransitionDefinition]] = {stage: [] for stage in CaseStage}

    for transition in transitions:
        if not transition.sources:
            raise TransitionTableError(f"Transition '{transition.label}' has no source stage")
        if not transition.requirements:
            raise TransitionTableError(f"Transition '{transition.label}' has an empty checklist")
        for source in transition.sources:
            outgoing[source].append(transition)

    for stage, definitions in outgoing.items():
        if stage in TERMINAL_STAGES and definitions:
            raise TransitionTableError(f"Terminal stage {stage.value} has outgoing transitions")
        if stage not in TERMINAL_STAGES and not definitions:
            raise TransitionTableError(f"Stage {stage.value} has no outgoing transition")


validate_transition_table(TRANSITIONS)
