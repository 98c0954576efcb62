"""Thought-signature tracking for CodeSentinel.

The thought signature is the agent's audit trail: a bounded rolling list of
decisions, the simulated time spent so far, the phases already completed,
and any findings it reclassified after validating them.
"""

from __future__ import annotations

import time
from collections.abc import Sequence

from codesentinel.analyzer.schema import SignatureDelta
from codesentinel.review.activity_log import clock_time
from codesentinel.review.models import (
    AutonomousDecision,
    ReviewPhase,
    SelfCorrection,
    ThoughtSignature,
    Vulnerability,
    VulnerabilityStatus,
)

DECISION_CAPACITY = 20
DEFAULT_PHASE_MINUTES = 45
JUSTIFICATION_PREVIEW = 100


def new_thought_signature(repo_metadata: dict | None = None) -> ThoughtSignature:
    """Create a fresh signature with a newly generated session id."""
    return ThoughtSignature(repo_metadata=dict(repo_metadata or {}))


def default_decision(phase: ReviewPhase, thought_process: str | None) -> AutonomousDecision:
    """Decision recorded when the analyzer reports none of its own."""
    if thought_process:
        justification = thought_process[:JUSTIFICATION_PREVIEW] + "..."
    else:
        justification = "No reasoning reported."
    return AutonomousDecision(
        id=f"DEC-{int(time.time() * 1000)}",
        timestamp=clock_time(),
        action=f"Completed {phase.label}",
        justification=justification,
        outcome="Success",
    )


def advance_signature(
    signature: ThoughtSignature,
    delta: SignatureDelta | None,
    phase: ReviewPhase,
    thought_process: str | None = None,
    *,
    default_minutes: int = DEFAULT_PHASE_MINUTES,
    decision_capacity: int = DECISION_CAPACITY,
) -> ThoughtSignature:
    """Apply one successful phase to the signature.

    Simulated duration grows by the reported minutes (``default_minutes`` when
    the analyzer reports none). Reported decisions are appended; when the
    analyzer reports no decision list at all a default "Completed <phase>"
    decision is appended instead. Only the most recent ``decision_capacity``
    decisions are kept.

    Args:
        signature: Current signature (not modified).
        delta: Signature changes reported by the analyzer, if any.
        phase: The phase that just completed.
        thought_process: Analyzer reasoning, used for the default decision.
        default_minutes: Minutes credited when the delta has no duration.
        decision_capacity: Maximum decisions retained.

    Returns:
        The updated signature.
    """
    delta = delta or SignatureDelta()

    minutes = delta.simulated_duration
    if minutes is None:
        minutes = default_minutes

    if delta.decisions is None:
        new_decisions = [default_decision(phase, thought_process)]
    else:
        new_decisions = list(delta.decisions)

    phases_completed = list(signature.phases_completed)
    if phase not in phases_completed:
        phases_completed.append(phase)

    return signature.model_copy(
        update={
            "simulated_duration": signature.simulated_duration + minutes,
            "next_planned_action": delta.next_planned_action or signature.next_planned_action,
            "decisions": [*signature.decisions, *new_decisions][-decision_capacity:],
            "phases_completed": phases_completed,
        }
    )


def detect_self_corrections(
    before: Sequence[Vulnerability],
    after: Sequence[Vulnerability],
) -> list[SelfCorrection]:
    """Find vulnerabilities reclassified between two snapshots.

    A vulnerability counts as reclassified when its severity changed or its
    status newly became FALSE_POSITIVE.
    """
    previous = {vuln.id: vuln for vuln in before}
    corrections: list[SelfCorrection] = []
    stamp = int(time.time() * 1000)

    for vuln in after:
        old = previous.get(vuln.id)
        if old is None:
            continue

        dismissed = (
            vuln.status is VulnerabilityStatus.FALSE_POSITIVE
            and old.status is not VulnerabilityStatus.FALSE_POSITIVE
        )
        if not dismissed and vuln.severity is old.severity:
            continue

        new_value = (
            VulnerabilityStatus.FALSE_POSITIVE.value if dismissed else vuln.severity.value
        )
        corrections.append(
            SelfCorrection(
                id=f"SC-{stamp}-{len(corrections) + 1}",
                timestamp=clock_time(),
                original_finding_id=vuln.id,
                previous_severity=old.severity.value,
                new_severity=new_value,
                reason=vuln.validation_evidence or "Reclassified during validation.",
            )
        )
    return corrections


def record_self_corrections(
    signature: ThoughtSignature,
    corrections: Sequence[SelfCorrection],
) -> ThoughtSignature:
    """Append ``corrections`` to the signature, skipping findings already recorded
    with the same outcome."""
    if not corrections:
        return signature

    recorded = {
        (item.original_finding_id, item.new_severity) for item in signature.self_corrections
    }
    fresh = [
        item
        for item in corrections
        if (item.original_finding_id, item.new_severity) not in recorded
    ]
    if not fresh:
        return signature
    return signature.model_copy(
        update={"self_corrections": [*signature.self_corrections, *fresh]}
    )
