"""
Return state definitions (``rental_kernel.domain.return_state``).

Responsibility
--------------
Enumerates the return lifecycle states and the five operational steps,
maps each step to the state it requires and the state it produces, and
ranks states for comparison.

Architecture position
---------------------
**Kernel domain layer** -- pure constants and functions.  ZERO I/O.

Invariants enforced
-------------------
* States are strictly ordered; ``STATE_ORDER`` is the single source of
  rank.
* A normal transition moves exactly one rank forward
  (``can_transition_to``).  Resets are admin overrides, not transitions.
* Steps form an explicit linear graph (``STEP_SUCCESSORS``); each step's
  prerequisite is the state its predecessor produces.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReturnState(str, Enum):
    """Return lifecycle states, in order."""

    NOT_STARTED = "not_started"
    INTAKE_DONE = "intake_done"
    EVIDENCE_DONE = "evidence_done"
    ISSUES_REVIEWED = "issues_reviewed"
    CLOSED_OUT = "closed_out"
    DEPOSIT_SETTLED = "deposit_settled"


class ReturnStepId(str, Enum):
    """Operational steps of a vehicle return."""

    INTAKE = "intake"
    EVIDENCE = "evidence"
    ISSUES = "issues"
    CLOSEOUT = "closeout"
    DEPOSIT = "deposit"


STATE_ORDER: tuple[ReturnState, ...] = (
    ReturnState.NOT_STARTED,
    ReturnState.INTAKE_DONE,
    ReturnState.EVIDENCE_DONE,
    ReturnState.ISSUES_REVIEWED,
    ReturnState.CLOSED_OUT,
    ReturnState.DEPOSIT_SETTLED,
)

_STATE_RANK: dict[ReturnState, int] = {s: i for i, s in enumerate(STATE_ORDER)}

TERMINAL_STATE = ReturnState.DEPOSIT_SETTLED

# Names written by older clients before the state set was consolidated.
_LEGACY_STATE_NAMES: dict[str, ReturnState] = {
    "initiated": ReturnState.NOT_STARTED,
    "closeout_done": ReturnState.CLOSED_OUT,
    "deposit_processed": ReturnState.DEPOSIT_SETTLED,
}


@dataclass(frozen=True)
class ReturnStep:
    """Display and gating metadata for one step."""

    id: ReturnStepId
    number: int
    title: str
    description: str
    prerequisite_state: ReturnState
    produces_state: ReturnState


RETURN_STEPS: tuple[ReturnStep, ...] = (
    ReturnStep(
        id=ReturnStepId.INTAKE,
        number=1,
        title="Return Intake",
        description="Record return time, odometer, and fuel level",
        prerequisite_state=ReturnState.NOT_STARTED,
        produces_state=ReturnState.INTAKE_DONE,
    ),
    ReturnStep(
        id=ReturnStepId.EVIDENCE,
        number=2,
        title="Evidence Capture",
        description="Capture return condition photos",
        prerequisite_state=ReturnState.INTAKE_DONE,
        produces_state=ReturnState.EVIDENCE_DONE,
    ),
    ReturnStep(
        id=ReturnStepId.ISSUES,
        number=3,
        title="Issues & Damages",
        description="Review flags, issues, and report any damages",
        prerequisite_state=ReturnState.EVIDENCE_DONE,
        produces_state=ReturnState.ISSUES_REVIEWED,
    ),
    ReturnStep(
        id=ReturnStepId.CLOSEOUT,
        number=4,
        title="Closeout",
        description="Approve fees and complete the return",
        prerequisite_state=ReturnState.ISSUES_REVIEWED,
        produces_state=ReturnState.CLOSED_OUT,
    ),
    ReturnStep(
        id=ReturnStepId.DEPOSIT,
        number=5,
        title="Deposit Release",
        description="Release or withhold security deposit",
        prerequisite_state=ReturnState.CLOSED_OUT,
        produces_state=ReturnState.DEPOSIT_SETTLED,
    ),
)

STEPS_BY_ID: dict[ReturnStepId, ReturnStep] = {s.id: s for s in RETURN_STEPS}

# Explicit step graph.  Linear today; a branching flow adds edges here.
STEP_SUCCESSORS: dict[ReturnStepId, ReturnStepId | None] = {
    ReturnStepId.INTAKE: ReturnStepId.EVIDENCE,
    ReturnStepId.EVIDENCE: ReturnStepId.ISSUES,
    ReturnStepId.ISSUES: ReturnStepId.CLOSEOUT,
    ReturnStepId.CLOSEOUT: ReturnStepId.DEPOSIT,
    ReturnStepId.DEPOSIT: None,
}


def parse_return_state(value: str | ReturnState | None) -> ReturnState:
    """Parse a stored return_state value.

    ``None`` and the empty string mean the return has not started.

    Raises:
        ValueError: if the value names no known state.
    """
    if value is None or value == "":
        return ReturnState.NOT_STARTED
    if isinstance(value, ReturnState):
        return value
    if value in _LEGACY_STATE_NAMES:
        return _LEGACY_STATE_NAMES[value]
    return ReturnState(value)


def state_rank(state: ReturnState) -> int:
    """Ordinal rank of a state (0 for not_started)."""
    return _STATE_RANK[state]


def is_state_at_least(current: ReturnState, target: ReturnState) -> bool:
    """True if ``current`` has reached or passed ``target``."""
    return state_rank(current) >= state_rank(target)


def can_transition_to(current: ReturnState, target: ReturnState) -> bool:
    """True if ``target`` is exactly one rank after ``current``."""
    return state_rank(target) == state_rank(current) + 1


def next_state(step_id: ReturnStepId) -> ReturnState:
    """State produced by completing ``step_id``."""
    return STEPS_BY_ID[step_id].produces_state


def prerequisite_state(step_id: ReturnStepId) -> ReturnState:
    """State that must be reached before ``step_id`` can be worked on."""
    return STEPS_BY_ID[step_id].prerequisite_state
