"""Review domain for CodeSentinel.

This package holds the review session data model, the phase state machine
and the operator activity log. The finding merger, thought-signature
tracker, scoring and intake helpers live in their own submodules and are
imported from there.
"""

from __future__ import annotations

from codesentinel.review.activity_log import LOG_CAPACITY, append_log, make_log_entry
from codesentinel.review.models import (
    NO_TARGET,
    ArchitectureNode,
    AutonomousDecision,
    GeneratedTest,
    LogEntry,
    LogLevel,
    Operator,
    PerformanceIssue,
    ReviewPhase,
    ReviewState,
    SelfCorrection,
    Session,
    TargetDescriptor,
    TargetKind,
    ThoughtSignature,
    Vulnerability,
)
from codesentinel.review.phases import (
    InvalidPhaseTransitionError,
    advance,
    next_phase,
    progress_for,
    validate_transition,
)

__all__ = [
    "LOG_CAPACITY",
    "NO_TARGET",
    "ArchitectureNode",
    "AutonomousDecision",
    "GeneratedTest",
    "InvalidPhaseTransitionError",
    "LogEntry",
    "LogLevel",
    "Operator",
    "PerformanceIssue",
    "ReviewPhase",
    "ReviewState",
    "SelfCorrection",
    "Session",
    "TargetDescriptor",
    "TargetKind",
    "ThoughtSignature",
    "Vulnerability",
    "advance",
    "append_log",
    "make_log_entry",
    "next_phase",
    "progress_for",
    "validate_transition",
]
