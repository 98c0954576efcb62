"""Analyzer collaborator contract for CodeSentinel.

The orchestration loop depends only on the ``Analyzer`` protocol defined
here: one asynchronous, fallible call that takes a content blob, a review
phase and a credential and returns a structured result. Implementations
must normalise every upstream problem into an ``AnalyzerError`` rather than
returning a fabricated success payload.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from codesentinel.analyzer.schema import AnalyzerResult
    from codesentinel.review.models import ReviewPhase


class AnalyzerError(Exception):
    """Base exception for analyzer failures."""

    pass


class AnalyzerAPIError(AnalyzerError):
    """Raised when the provider rejects or fails the request."""

    pass


class AnalyzerConnectionError(AnalyzerError):
    """Raised when the provider cannot be reached or the call times out."""

    pass


class AnalyzerResponseError(AnalyzerError):
    """Raised when the provider answers with an empty or malformed payload."""

    pass


@runtime_checkable
class Analyzer(Protocol):
    """Protocol for the external analysis provider."""

    async def analyze(
        self,
        content: str,
        phase: ReviewPhase,
        api_key: str,
    ) -> AnalyzerResult:
        """Analyze ``content`` for the given review phase.

        Args:
            content: Source text under review
            phase: Review phase the analysis is performed for
            api_key: Credential for the provider

        Returns:
            Structured result for the phase

        Raises:
            AnalyzerError: On any provider, transport or payload failure
        """
        ...
