"""Dashboard health scores derived from an accumulated review state."""

from __future__ import annotations

from typing import Any

from codesentinel.review.models import (
    GeneratedTestStatus,
    ReviewState,
    Severity,
    VulnerabilityStatus,
)


def health_scores(state: ReviewState) -> dict[str, int]:
    """Compute the five radar-chart scores (0-100) for ``state``.

    Security drops 15 points per critical or high vulnerability (floor 10),
    stability drops 8 points per performance issue (floor 15), tests is the
    pass rate of generated tests (20 when there are none), optimized reports
    whether any hotspot was benchmarked and structure whether the
    architecture was mapped.
    """
    serious = sum(
        1 for vuln in state.vulnerabilities if vuln.severity in (Severity.CRITICAL, Severity.HIGH)
    )
    if state.tests:
        passed = sum(1 for test in state.tests if test.status is GeneratedTestStatus.PASS)
        tests_score = round(passed / len(state.tests) * 100)
    else:
        tests_score = 20

    return {
        "security": max(10, 100 - serious * 15),
        "stability": max(15, 100 - len(state.performance) * 8),
        "tests": tests_score,
        "optimized": 85 if state.performance else 10,
        "structure": 90 if state.architecture else 30,
    }


def dashboard_summary(state: ReviewState) -> dict[str, Any]:
    """Headline figures for the overview dashboard."""
    signature = state.thought_signature
    return {
        "repoName": state.repo_name,
        "phase": state.phase.value,
        "phaseLabel": state.phase.label,
        "progress": state.progress,
        "summary": state.summary,
        "counts": {
            "vulnerabilities": len(state.vulnerabilities),
            "validated": sum(
                1 for vuln in state.vulnerabilities if vuln.status is VulnerabilityStatus.VALIDATED
            ),
            "falsePositives": sum(
                1
                for vuln in state.vulnerabilities
                if vuln.status is VulnerabilityStatus.FALSE_POSITIVE
            ),
            "performance": len(state.performance),
            "tests": len(state.tests),
            "architecture": len(state.architecture),
            "decisions": len(signature.decisions),
            "selfCorrections": len(signature.self_corrections),
        },
        "simulatedDuration": signature.simulated_duration,
        "nextPlannedAction": signature.next_planned_action,
        "scores": health_scores(state),
    }
