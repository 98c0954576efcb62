"""Offline, deterministic analyzer for CodeSentinel.

Returns canned phase-appropriate results for the built-in demo snippet, so
a full review can run without network access or a real credential. Tests
can inject per-phase scripts of results or exceptions; scripted entries are
consumed in order before falling back to the canned result.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

import structlog

from codesentinel.analyzer.schema import AnalyzerResult
from codesentinel.review.models import ReviewPhase

logger = structlog.get_logger(__name__)

ScriptEntry = Union[AnalyzerResult, dict[str, Any], BaseException]


DEMO_RESULTS: dict[ReviewPhase, dict[str, Any]] = {
    ReviewPhase.INIT: {
        "thoughtProcess": (
            "Session initialised. Target is a single Express service exposing "
            "/login and /profile backed by raw SQL queries and JWT auth."
        ),
        "summary": "Session initialised; ingestion plan prepared.",
        "thoughtSignatureUpdate": {
            "simulatedDuration": 15,
            "nextPlannedAction": "Map service architecture",
        },
    },
    ReviewPhase.UNDERSTANDING: {
        "thoughtProcess": (
            "Mapped request flow: HTTP handlers call the query helper directly "
            "with interpolated strings; tokens are signed with a static secret."
        ),
        "summary": "Architecture mapped: 3 components, 2 high-risk boundaries.",
        "findings": {
            "architecture": [
                {
                    "name": "Express API",
                    "type": "HTTP Service",
                    "riskLevel": "HIGH",
                    "details": "Handles /login and /profile without input validation.",
                },
                {
                    "name": "SQL Query Layer",
                    "type": "Data Access",
                    "riskLevel": "HIGH",
                    "details": "Builds queries by string interpolation.",
                },
                {
                    "name": "JWT Auth",
                    "type": "Authentication",
                    "riskLevel": "MEDIUM",
                    "details": "Signing secret is hard-coded in source.",
                },
            ]
        },
        "thoughtSignatureUpdate": {
            "simulatedDuration": 40,
            "nextPlannedAction": "Hunt for injection and secret-handling flaws",
        },
    },
    ReviewPhase.ANALYSIS: {
        "thoughtProcess": (
            "The login query interpolates username and password directly; the "
            "JWT secret is a literal; /profile interpolates the decoded id."
        ),
        "summary": "3 vulnerabilities identified, 1 critical.",
        "findings": {
            "vulnerabilities": [
                {
                    "id": "VULN-001",
                    "severity": "CRITICAL",
                    "confidence": "HIGH",
                    "type": "SQL Injection",
                    "location": "POST /login",
                    "description": "Credentials are interpolated into the SQL statement.",
                    "exploitability": "TRIVIAL",
                    "status": "OPEN",
                },
                {
                    "id": "VULN-002",
                    "severity": "HIGH",
                    "confidence": "CONFIRMED",
                    "type": "Hard-coded Secret",
                    "location": "const SECRET",
                    "description": "JWT signing key is committed to source.",
                    "exploitability": "EASY",
                    "status": "OPEN",
                },
                {
                    "id": "VULN-003",
                    "severity": "MEDIUM",
                    "confidence": "LOW",
                    "type": "SQL Injection",
                    "location": "GET /profile",
                    "description": "Decoded token id is interpolated into a query.",
                    "exploitability": "THEORETICAL",
                    "status": "OPEN",
                },
            ]
        },
        "thoughtSignatureUpdate": {
            "simulatedDuration": 60,
            "nextPlannedAction": "Validate findings with proof-of-concept payloads",
        },
    },
    ReviewPhase.VALIDATION: {
        "thoughtProcess": (
            "Login bypass confirmed with ' OR '1'='1. The /profile id comes from a "
            "verified token, so VULN-003 is not attacker-controlled."
        ),
        "summary": "2 findings validated, 1 dismissed as a false positive.",
        "findings": {
            "vulnerabilities": [
                {
                    "id": "VULN-001",
                    "status": "VALIDATED",
                    "validationEvidence": "POST /login username=' OR '1'='1 -> 200 {token}",
                },
                {
                    "id": "VULN-002",
                    "status": "VALIDATED",
                    "validationEvidence": "Forged token signed with temp_secret_key_123 accepted.",
                },
                {
                    "id": "VULN-003",
                    "severity": "LOW",
                    "status": "FALSE_POSITIVE",
                    "validationEvidence": "id claim is only reachable through a signed token.",
                },
            ]
        },
        "thoughtSignatureUpdate": {
            "simulatedDuration": 55,
            "nextPlannedAction": "Benchmark request latency",
        },
    },
    ReviewPhase.BENCHMARK: {
        "thoughtProcess": (
            "The /profile handler issues two sequential queries and then runs a "
            "million-iteration loop on the event loop."
        ),
        "summary": "2 performance hotspots measured.",
        "findings": {
            "performance": [
                {
                    "id": "PERF-001",
                    "impact": "HIGH",
                    "component": "GET /profile",
                    "metric": "p95 latency",
                    "currentValue": "850ms",
                    "optimizedValue": "120ms",
                    "suggestion": "Remove the blocking loop from the request path.",
                },
                {
                    "id": "PERF-002",
                    "impact": "MEDIUM",
                    "component": "Query Layer",
                    "metric": "queries per request",
                    "currentValue": "2",
                    "optimizedValue": "1",
                    "suggestion": "Join users and posts in a single query.",
                },
            ]
        },
        "thoughtSignatureUpdate": {
            "simulatedDuration": 35,
            "nextPlannedAction": "Generate regression tests",
        },
    },
    ReviewPhase.TESTING: {
        "thoughtProcess": "Generated regression tests for the validated findings.",
        "summary": "3 tests generated, 2 passing.",
        "findings": {
            "tests": [
                {
                    "id": "TEST-001",
                    "name": "rejects SQL injection on login",
                    "type": "INTEGRATION",
                    "status": "FAIL",
                    "coverageDelta": "+4%",
                },
                {
                    "id": "TEST-002",
                    "name": "profile requires a valid token",
                    "type": "INTEGRATION",
                    "status": "PASS",
                    "coverageDelta": "+3%",
                },
                {
                    "id": "TEST-003",
                    "name": "login returns 401 for unknown user",
                    "type": "UNIT",
                    "status": "PASS",
                    "coverageDelta": "+2%",
                },
            ]
        },
        "thoughtSignatureUpdate": {
            "simulatedDuration": 50,
            "nextPlannedAction": "Compile final report",
        },
    },
    ReviewPhase.REPORTING: {
        "thoughtProcess": "Compiled findings, validation evidence and benchmarks.",
        "summary": (
            "Critical SQL injection and leaked signing secret require immediate "
            "fixes; /profile latency can drop from 850ms to 120ms."
        ),
        "thoughtSignatureUpdate": {
            "simulatedDuration": 20,
            "nextPlannedAction": "Await operator review",
        },
    },
}


@dataclass(frozen=True)
class AnalyzerCall:
    """One recorded ``analyze`` invocation."""

    phase: ReviewPhase
    content: str
    api_key: str


class ScriptedAnalyzer:
    """Analyzer returning scripted or canned results without network access.

    Attributes:
        calls: Every invocation, in order.
    """

    def __init__(
        self,
        scripts: Mapping[ReviewPhase, Iterable[ScriptEntry]] | None = None,
        *,
        latency_seconds: float = 0.0,
    ):
        """Initialize the analyzer.

        Args:
            scripts: Per-phase queues of results (models or wire dicts) or
                exceptions to raise, consumed before the canned result
            latency_seconds: Simulated call duration
        """
        self._scripts: dict[ReviewPhase, deque[ScriptEntry]] = {
            phase: deque(entries) for phase, entries in (scripts or {}).items()
        }
        self.latency_seconds = latency_seconds
        self.calls: list[AnalyzerCall] = []
        self._logger = logger.bind(component="ScriptedAnalyzer")

    def enqueue(self, phase: ReviewPhase, *entries: ScriptEntry) -> None:
        """Append scripted entries for ``phase``."""
        self._scripts.setdefault(phase, deque()).extend(entries)

    def calls_for(self, phase: ReviewPhase) -> list[AnalyzerCall]:
        return [call for call in self.calls if call.phase is phase]

    async def analyze(
        self,
        content: str,
        phase: ReviewPhase,
        api_key: str,
    ) -> AnalyzerResult:
        self.calls.append(AnalyzerCall(phase=phase, content=content, api_key=api_key))
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        queue = self._scripts.get(phase)
        entry: ScriptEntry | None = queue.popleft() if queue else None

        if isinstance(entry, BaseException):
            self._logger.debug("scripted_failure", phase=phase.value, error=str(entry))
            raise entry
        if isinstance(entry, AnalyzerResult):
            return entry
        if entry is not None:
            return AnalyzerResult.model_validate(entry)

        return AnalyzerResult.model_validate(DEMO_RESULTS.get(phase, {}))
