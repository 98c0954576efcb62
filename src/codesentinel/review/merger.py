"""Finding merger for CodeSentinel review sessions.

Folds one analyzer response into the accumulated review state. The rules
differ per category:

    architecture     append names not yet present (first write wins)
    vulnerabilities  VALIDATION phase: update existing entries by id, never add
                     any other phase: append ids not yet present
    performance      append ids not yet present
    tests            append ids not yet present
    summary          replaced by the latest non-empty value

Every function here is pure and idempotent: applying the same response
twice leaves the state as it was after the first application, which keeps
phase retries safe. Duplicate keys inside a single batch are collapsed to
their first occurrence.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from codesentinel.analyzer.schema import AnalyzerResult, Findings
from codesentinel.review.models import (
    ArchitectureNode,
    GeneratedTest,
    PerformanceIssue,
    ReviewPhase,
    ReviewState,
    Vulnerability,
)

T = TypeVar("T")


@dataclass
class MergeReport:
    """What a merge changed, for logging.

    Attributes:
        added: Number of new items per category.
        updated: Ids of vulnerabilities updated in place.
        summary_replaced: Whether the summary was overwritten.
    """

    added: dict[str, int] = field(default_factory=dict)
    updated: list[str] = field(default_factory=list)
    summary_replaced: bool = False

    @property
    def changed(self) -> bool:
        return bool(any(self.added.values()) or self.updated or self.summary_replaced)


def _append_unique(
    existing: Sequence[T],
    incoming: Sequence[T] | None,
    key: Callable[[T], str],
) -> list[T]:
    """Append items from ``incoming`` whose key is not already present."""
    merged = list(existing)
    if not incoming:
        return merged

    seen = {key(item) for item in existing}
    for item in incoming:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        merged.append(item)
    return merged


def merge_architecture(
    existing: Sequence[ArchitectureNode],
    incoming: Sequence[ArchitectureNode] | None,
) -> list[ArchitectureNode]:
    """Append architecture nodes whose name is new; existing nodes never change."""
    return _append_unique(existing, incoming, key=lambda node: node.name)


def merge_vulnerabilities(
    existing: Sequence[Vulnerability],
    incoming: Sequence[Vulnerability] | None,
    phase: ReviewPhase,
) -> list[Vulnerability]:
    """Merge vulnerabilities according to the producing phase.

    In the VALIDATION phase the batch is a set of updates: each existing
    vulnerability with a matching id gets the fields the update explicitly
    carries laid over it, and ids with no existing entry are dropped. In every
    other phase the batch is new discoveries appended by unseen id.

    Args:
        existing: Accumulated vulnerabilities.
        incoming: Vulnerabilities reported in this response.
        phase: Phase that produced the response.

    Returns:
        New list of vulnerabilities.
    """
    if phase is not ReviewPhase.VALIDATION:
        return _append_unique(existing, incoming, key=lambda vuln: vuln.id)

    if not incoming:
        return list(existing)

    updates: dict[str, Vulnerability] = {}
    for update in incoming:
        updates.setdefault(update.id, update)

    merged: list[Vulnerability] = []
    for vuln in existing:
        update = updates.get(vuln.id)
        if update is None:
            merged.append(vuln)
            continue
        changes = update.model_dump(exclude_unset=True, exclude={"id"})
        merged.append(vuln.model_copy(update=changes))
    return merged


def merge_performance(
    existing: Sequence[PerformanceIssue],
    incoming: Sequence[PerformanceIssue] | None,
) -> list[PerformanceIssue]:
    """Append performance issues with unseen ids; repeats are discarded."""
    return _append_unique(existing, incoming, key=lambda issue: issue.id)


def merge_tests(
    existing: Sequence[GeneratedTest],
    incoming: Sequence[GeneratedTest] | None,
) -> list[GeneratedTest]:
    """Append generated tests with unseen ids; repeats are discarded."""
    return _append_unique(existing, incoming, key=lambda test: test.id)


def merge_summary(existing: str, incoming: str | None) -> str:
    """Return the incoming summary when non-empty, else keep the existing one."""
    if incoming and incoming.strip():
        return incoming
    return existing


def merge_findings(
    state: ReviewState,
    findings: Findings | None,
    phase: ReviewPhase,
) -> tuple[ReviewState, MergeReport]:
    """Fold a findings batch into ``state``.

    Args:
        state: Current review state (not modified).
        findings: Findings from the analyzer; None means nothing new.
        phase: Phase that produced the findings.

    Returns:
        Tuple of the new state and a report of what changed.
    """
    report = MergeReport()
    if findings is None:
        return state, report

    architecture = merge_architecture(state.architecture, findings.architecture)
    vulnerabilities = merge_vulnerabilities(
        state.vulnerabilities, findings.vulnerabilities, phase
    )
    performance = merge_performance(state.performance, findings.performance)
    tests = merge_tests(state.tests, findings.tests)

    report.added = {
        "architecture": len(architecture) - len(state.architecture),
        "vulnerabilities": len(vulnerabilities) - len(state.vulnerabilities),
        "performance": len(performance) - len(state.performance),
        "tests": len(tests) - len(state.tests),
    }
    report.updated = [
        after.id
        for before, after in zip(state.vulnerabilities, vulnerabilities)
        if phase is ReviewPhase.VALIDATION and before != after
    ]

    new_state = state.model_copy(
        update={
            "architecture": architecture,
            "vulnerabilities": vulnerabilities,
            "performance": performance,
            "tests": tests,
        }
    )
    return new_state, report


def apply_result(
    state: ReviewState,
    result: AnalyzerResult,
    phase: ReviewPhase,
) -> tuple[ReviewState, MergeReport]:
    """Fold a complete analyzer result (findings and summary) into ``state``."""
    new_state, report = merge_findings(state, result.findings, phase)
    summary = merge_summary(new_state.summary, result.summary)
    if summary != new_state.summary:
        report.summary_replaced = True
        new_state = new_state.model_copy(update={"summary": summary})
    return new_state, report
