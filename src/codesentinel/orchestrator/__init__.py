"""Orchestrator subsystem for CodeSentinel.

This module implements the marathon loop that drives a review session
through its phases, together with its control errors.
"""

from __future__ import annotations

from codesentinel.orchestrator.marathon import (
    CredentialRequiredError,
    MarathonError,
    MarathonOrchestrator,
    MarathonStatus,
    TargetRequiredError,
)

__all__ = [
    "CredentialRequiredError",
    "MarathonError",
    "MarathonOrchestrator",
    "MarathonStatus",
    "TargetRequiredError",
]
