"""Analyzer collaborators for CodeSentinel.

The orchestration loop talks to an ``Analyzer``: the Gemini-backed
implementation for real reviews, or the scripted implementation for
offline runs and tests.
"""

from __future__ import annotations

from codesentinel.analyzer.base import (
    Analyzer,
    AnalyzerAPIError,
    AnalyzerConnectionError,
    AnalyzerError,
    AnalyzerResponseError,
)
from codesentinel.analyzer.schema import (
    AnalyzerResult,
    Findings,
    SignatureDelta,
    parse_analyzer_result,
)
from codesentinel.config import AnalyzerConfig


def create_analyzer(config: AnalyzerConfig) -> Analyzer:
    """Build the analyzer selected by ``config.provider``."""
    if config.provider == "scripted":
        from codesentinel.analyzer.scripted import ScriptedAnalyzer

        return ScriptedAnalyzer()

    from codesentinel.analyzer.gemini import GeminiAnalyzer

    return GeminiAnalyzer(config)


__all__ = [
    "Analyzer",
    "AnalyzerAPIError",
    "AnalyzerConfig",
    "AnalyzerConnectionError",
    "AnalyzerError",
    "AnalyzerResponseError",
    "AnalyzerResult",
    "Findings",
    "SignatureDelta",
    "create_analyzer",
    "parse_analyzer_result",
]
