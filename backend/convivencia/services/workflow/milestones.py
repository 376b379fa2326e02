"""
Milestone templates.

Every case gets the same ordered set of procedural steps at intake.
Expulsion cases get the teachers' council consultation injected before the
principal's resolution (Aula Segura).
"""
from datetime import datetime
from typing import List, Optional

from ...models.domain import Milestone, utcnow


COUNCIL_MILESTONE_ID = "h-council"
RESOLUTION_MILESTONE_ID = "h5"


def council_milestone() -> Milestone:
    return Milestone(
        id=COUNCIL_MILESTONE_ID,
        title="Teachers' council consultation",
        description="Mandatory step for expulsion measures under the Aula Segura law.",
        requires_evidence=True,
        mandatory_for_expulsion=True,
    )


def build_milestones(is_expulsion: bool, opened_at: Optional[datetime] = None) -> List[Milestone]:
    """Fresh milestone list for a newly opened case. The opening step is already done."""
    milestones = [
        Milestone(
            id="h1",
            title="Case opening",
            description="Complaint registered and folio assigned.",
            completed=True,
            completed_at=opened_at or utcnow(),
            requires_evidence=True,
        ),
        Milestone(
            id="h2",
            title="Guardian notification",
            description="Official communication that the process has started (24h window).",
        ),
        Milestone(
            id="h3",
            title="Rebuttal period",
            description="Student and family give their account.",
        ),
        Milestone(
            id="h4",
            title="Investigation and interviews",
            description="Evidence and testimony collected.",
        ),
    ]

    if is_expulsion:
        milestones.append(council_milestone())

    milestones.extend([
        Milestone(
            id=RESOLUTION_MILESTONE_ID,
            title="Principal's resolution",
            description="Formative or disciplinary measure decided.",
        ),
        Milestone(
            id="h6",
            title="Reconsideration window",
            description="Appeal period before the school board (15 business days).",
            requires_evidence=False,
        ),
    ])

    return milestones


def ensure_council_milestone(milestones: List[Milestone]) -> bool:
    """
    Insert the council milestone before the resolution step if it is missing.

    Returns True when the list was changed. Existing milestones keep their order.
    """
    if any(m.id == COUNCIL_MILESTONE_ID for m in milestones):
        return False

    position = len(milestones)
    for index, milestone in enumerate(milestones):
        if milestone.id == RESOLUTION_MILESTONE_ID:
            position = index
            break

    milestones.insert(position, council_milestone())
    return True
