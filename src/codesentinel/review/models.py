"""Review session data model for CodeSentinel.

Defines the Pydantic models for the review session aggregate: the operator
identity, the selected target, and the accumulating review state with its
four finding collections, activity log, and thought signature.

All models serialise with camelCase aliases so that persisted sessions and
analyzer payloads share one wire format. Python code constructs them with
snake_case field names.
"""

from __future__ import annotations

import random
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NO_TARGET = "NO TARGET"


class CamelModel(BaseModel):
    """Base model serialising field names as camelCase."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ReviewPhase(str, Enum):
    """Review phases in their fixed execution order.

    IDLE is the only initial phase (no target selected) and COMPLETE is
    terminal. The successor table lives in codesentinel.review.phases.
    """

    IDLE = "IDLE"
    INIT = "INIT"
    UNDERSTANDING = "UNDERSTANDING"
    ANALYSIS = "ANALYSIS"
    VALIDATION = "VALIDATION"
    BENCHMARK = "BENCHMARK"
    TESTING = "TESTING"
    REPORTING = "REPORTING"
    COMPLETE = "COMPLETE"

    @property
    def label(self) -> str:
        """Human-readable phase title shown to operators and the analyzer."""
        return PHASE_LABELS[self]


PHASE_LABELS: dict[ReviewPhase, str] = {
    ReviewPhase.IDLE: "Idle",
    ReviewPhase.INIT: "Phase 1: Session Initialization",
    ReviewPhase.UNDERSTANDING: "Phase 2: Deep Repository Understanding",
    ReviewPhase.ANALYSIS: "Phase 3: Security & Logic Analysis",
    ReviewPhase.VALIDATION: "Phase 4: Browser Validation Loop",
    ReviewPhase.BENCHMARK: "Phase 5: Performance Benchmarking",
    ReviewPhase.TESTING: "Phase 6: Test Generation & Execution",
    ReviewPhase.REPORTING: "Phase 7: Comprehensive Reporting",
    ReviewPhase.COMPLETE: "Mission Complete",
}


class LogLevel(str, Enum):
    """Severity of an activity log entry."""

    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    SUCCESS = "SUCCESS"
    THOUGHT = "THOUGHT"
    VALIDATION = "VALIDATION"


class Severity(str, Enum):
    """Vulnerability severity."""

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class Confidence(str, Enum):
    """Analyzer confidence in a vulnerability."""

    CONFIRMED = "CONFIRMED"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class VulnerabilityStatus(str, Enum):
    """Lifecycle status of a vulnerability."""

    OPEN = "OPEN"
    VALIDATED = "VALIDATED"
    FALSE_POSITIVE = "FALSE_POSITIVE"
    FIXED = "FIXED"


class Impact(str, Enum):
    """Impact level shared by performance issues and architecture risk."""

    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class GeneratedTestType(str, Enum):
    """Scope of a generated test."""

    UNIT = "UNIT"
    INTEGRATION = "INTEGRATION"
    E2E = "E2E"


class GeneratedTestStatus(str, Enum):
    """Outcome of a generated test."""

    PASS = "PASS"
    FAIL = "FAIL"
    PENDING = "PENDING"


class TargetKind(str, Enum):
    """How the review target was supplied."""

    GITHUB = "GITHUB"
    ZIP = "ZIP"


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------


class Vulnerability(CamelModel):
    """A security finding keyed by ``id``.

    Only ``id`` is required so that validation-phase updates may carry just
    the fields that changed (typically status and validation evidence).
    """

    id: str
    severity: Severity = Severity.MEDIUM
    confidence: Confidence = Confidence.MEDIUM
    type: str = ""
    location: str = ""
    description: str = ""
    exploitability: str = "THEORETICAL"
    validation_evidence: str | None = None
    status: VulnerabilityStatus = VulnerabilityStatus.OPEN


class PerformanceIssue(CamelModel):
    """A performance hotspot keyed by ``id``."""

    id: str
    impact: Impact = Impact.MEDIUM
    component: str = ""
    metric: str = ""
    current_value: str = ""
    optimized_value: str = ""
    suggestion: str = ""


class GeneratedTest(CamelModel):
    """A test case proposed by the analyzer, keyed by ``id``."""

    id: str
    name: str = ""
    type: GeneratedTestType = GeneratedTestType.UNIT
    status: GeneratedTestStatus = GeneratedTestStatus.PENDING
    code_snippet: str | None = None
    coverage_delta: str = ""


class ArchitectureNode(CamelModel):
    """An architectural component keyed by ``name``."""

    name: str
    type: str = ""
    risk_level: Impact = Impact.LOW
    details: str | None = None


# ---------------------------------------------------------------------------
# Thought signature
# ---------------------------------------------------------------------------


class SelfCorrection(CamelModel):
    """A finding the agent reclassified after validating it."""

    id: str
    timestamp: str
    original_finding_id: str
    previous_severity: str
    new_severity: str
    reason: str


class AutonomousDecision(CamelModel):
    """One entry of the agent's decision trail."""

    id: str = ""
    timestamp: str = ""
    action: str = ""
    justification: str = ""
    outcome: str = ""


def _new_session_id() -> str:
    return f"SES-{random.randint(10000, 99999)}"


class ThoughtSignature(CamelModel):
    """Reasoning and audit trail for one review session.

    Attributes:
        session_id: Identifier generated once per target selection.
        start_time: When the signature was created.
        simulated_duration: Cumulative simulated minutes across phases.
        repo_metadata: Free-form metadata about the target.
        phases_completed: Phases that finished successfully, in order.
        self_corrections: Findings reclassified during validation.
        decisions: Most recent decisions, oldest first (bounded).
        next_planned_action: What the agent intends to do next.
    """

    session_id: str = Field(default_factory=_new_session_id)
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    simulated_duration: int = 0
    repo_metadata: dict[str, Any] = Field(default_factory=dict)
    phases_completed: list[ReviewPhase] = Field(default_factory=list)
    self_corrections: list[SelfCorrection] = Field(default_factory=list)
    decisions: list[AutonomousDecision] = Field(default_factory=list)
    next_planned_action: str = "Initialize Deep Ingestion"


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class LogEntry(CamelModel):
    """One line of the operator-facing activity stream."""

    id: str
    timestamp: str
    level: LogLevel = LogLevel.INFO
    message: str
    phase: ReviewPhase | None = None


# ---------------------------------------------------------------------------
# Session aggregate
# ---------------------------------------------------------------------------


class ReviewState(CamelModel):
    """The accumulating analysis result for one target.

    Each finding collection holds unique keys: ``id`` for vulnerabilities,
    performance issues and tests, ``name`` for architecture nodes.
    """

    repo_name: str = NO_TARGET
    phase: ReviewPhase = ReviewPhase.IDLE
    progress: int = Field(default=0, ge=0, le=100)
    logs: list[LogEntry] = Field(default_factory=list)
    thought_signature: ThoughtSignature = Field(default_factory=ThoughtSignature)
    architecture: list[ArchitectureNode] = Field(default_factory=list)
    vulnerabilities: list[Vulnerability] = Field(default_factory=list)
    performance: list[PerformanceIssue] = Field(default_factory=list)
    tests: list[GeneratedTest] = Field(default_factory=list)
    summary: str = ""


class Operator(CamelModel):
    """The (mock-)authenticated person driving the review."""

    name: str
    role: str
    is_authenticated: bool = True


class TargetDescriptor(CamelModel):
    """Reference to the codebase under review.

    Attributes:
        type: How the target was supplied.
        name: Display name of the target.
        url: Repository URL for GITHUB targets.
        files: Nominal file count for ZIP targets.
        content: Analyzable source text; the demo snippet is used when absent.
    """

    type: TargetKind
    name: str
    url: str | None = None
    files: int | None = None
    content: str | None = None


class Session(CamelModel):
    """Root aggregate persisted under the fixed session key."""

    operator: Operator | None = Field(default=None, alias="user")
    target: TargetDescriptor | None = Field(default=None, alias="repoConfig")
    state: ReviewState = Field(default_factory=ReviewState)
