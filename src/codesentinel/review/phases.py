"""Review phase state machine for CodeSentinel.

The machine is a lookup table from the current phase to its single
successor; it holds no other state. Phases run strictly in order:

    IDLE -> INIT -> UNDERSTANDING -> ANALYSIS -> VALIDATION
         -> BENCHMARK -> TESTING -> REPORTING -> COMPLETE

COMPLETE is terminal. Selecting a new target or restarting a finished
review forces the machine back to INIT, and a hard reset forces it to
IDLE; those forced resets bypass the transition table.
"""

from __future__ import annotations

from codesentinel.review.models import ReviewPhase


class InvalidPhaseTransitionError(Exception):
    """Raised when a transition outside the successor table is attempted.

    Attributes:
        current: The phase the review is in.
        target: The phase that was requested.
    """

    def __init__(self, current: ReviewPhase, target: ReviewPhase):
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid phase transition from {current.value} to {target.value}"
        )


PHASE_SEQUENCE: tuple[ReviewPhase, ...] = (
    ReviewPhase.IDLE,
    ReviewPhase.INIT,
    ReviewPhase.UNDERSTANDING,
    ReviewPhase.ANALYSIS,
    ReviewPhase.VALIDATION,
    ReviewPhase.BENCHMARK,
    ReviewPhase.TESTING,
    ReviewPhase.REPORTING,
    ReviewPhase.COMPLETE,
)

# Authoritative successor table
NEXT_PHASE: dict[ReviewPhase, ReviewPhase | None] = {
    current: PHASE_SEQUENCE[index + 1] if index + 1 < len(PHASE_SEQUENCE) else None
    for index, current in enumerate(PHASE_SEQUENCE)
}

# Phases in which the analyzer is invoked
WORKING_PHASES: tuple[ReviewPhase, ...] = PHASE_SEQUENCE[1:-1]


def next_phase(current: ReviewPhase) -> ReviewPhase | None:
    """Return the successor of ``current``, or None for the terminal phase."""
    return NEXT_PHASE[current]


def is_terminal(phase: ReviewPhase) -> bool:
    """Whether ``phase`` has no successor."""
    return NEXT_PHASE[phase] is None


def is_runnable(phase: ReviewPhase) -> bool:
    """Whether the orchestration loop may execute a step in ``phase``."""
    return phase in WORKING_PHASES


def validate_transition(current: ReviewPhase, target: ReviewPhase) -> bool:
    """Check a transition against the successor table.

    Args:
        current: Phase the review is in.
        target: Requested next phase.

    Returns:
        True only when ``target`` is the successor of ``current``.
    """
    return NEXT_PHASE.get(current) is target


def advance(current: ReviewPhase, target: ReviewPhase) -> ReviewPhase:
    """Validate and return ``target`` as the new phase.

    Raises:
        InvalidPhaseTransitionError: If ``target`` does not follow ``current``.
    """
    if not validate_transition(current, target):
        raise InvalidPhaseTransitionError(current, target)
    return target


def progress_for(phase: ReviewPhase) -> int:
    """Percentage of the review completed once ``phase`` is reached.

    IDLE and INIT report 0, COMPLETE reports 100, and each working phase in
    between adds an equal share.
    """
    if phase is ReviewPhase.IDLE:
        return 0
    position = PHASE_SEQUENCE.index(phase) - 1
    return round(100 * position / len(WORKING_PHASES))
