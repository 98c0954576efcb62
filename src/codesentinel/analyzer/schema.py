"""Analyzer result schema validation and parsing for CodeSentinel.

Defines the Pydantic models for the structured result an analyzer returns
for one phase, plus parsing logic that extracts JSON from model output that
may be wrapped in markdown fences or surrounded by prose.

Every part of the result is optional. A category missing from ``findings``
means "no new information", never "clear existing findings".
"""

from __future__ import annotations

import json
import re

from pydantic import Field, ValidationError

from codesentinel.analyzer.base import AnalyzerResponseError
from codesentinel.review.models import (
    ArchitectureNode,
    AutonomousDecision,
    CamelModel,
    GeneratedTest,
    PerformanceIssue,
    Vulnerability,
)


class Findings(CamelModel):
    """Findings reported in one phase, grouped by category.

    Attributes:
        architecture: Architecture nodes, keyed by name.
        vulnerabilities: New vulnerabilities, or updates during validation.
        performance: Performance issues, keyed by id.
        tests: Generated tests, keyed by id.
    """

    architecture: list[ArchitectureNode] | None = None
    vulnerabilities: list[Vulnerability] | None = None
    performance: list[PerformanceIssue] | None = None
    tests: list[GeneratedTest] | None = None


class SignatureDelta(CamelModel):
    """Thought-signature changes reported by the analyzer for one phase.

    Attributes:
        simulated_duration: Minutes spent in the phase.
        next_planned_action: What the agent plans to do next.
        decisions: Decisions taken during the phase.
    """

    simulated_duration: int | None = Field(default=None, ge=0)
    next_planned_action: str | None = None
    decisions: list[AutonomousDecision] | None = None


class AnalyzerResult(CamelModel):
    """Structured result of one analyzer invocation.

    Attributes:
        thought_process: The agent's reasoning for this phase.
        summary: High-level status line for the dashboard.
        findings: Findings grouped by category.
        thought_signature_update: Thought-signature delta for this phase.
    """

    thought_process: str | None = None
    summary: str | None = None
    findings: Findings | None = None
    thought_signature_update: SignatureDelta | None = None


def parse_analyzer_result(raw_output: str) -> AnalyzerResult:
    """Parse analyzer output and validate it against the result schema.

    Args:
        raw_output: Raw text returned by the model

    Returns:
        Validated AnalyzerResult instance

    Raises:
        AnalyzerResponseError: If no JSON object can be extracted, the JSON
            is malformed, or it does not match the schema

    Example:
        >>> result = parse_analyzer_result('```json\\n{"summary": "ok"}\\n```')
        >>> result.summary
        'ok'
    """
    json_str = _extract_json(raw_output)

    if json_str is None:
        raise AnalyzerResponseError("No JSON object found in analyzer output")

    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise AnalyzerResponseError(f"Invalid JSON in analyzer output: {e}") from e

    if not isinstance(data, dict):
        raise AnalyzerResponseError("Analyzer output is not a JSON object")

    try:
        return AnalyzerResult.model_validate(data)
    except ValidationError as e:
        raise AnalyzerResponseError(f"Analyzer output failed validation: {e}") from e


def _extract_json(text: str) -> str | None:
    """Extract a JSON object from text that may contain markdown or prose.

    Strategies, in order:
    1. A ```json fenced block
    2. Any fenced block whose body looks like an object
    3. The first balanced {...} span, honouring string literals

    Args:
        text: Text that may contain JSON

    Returns:
        Extracted JSON string or None if not found
    """
    markdown_match = re.search(r"```json\s*\n(.*?)\n\s*```", text, re.DOTALL | re.IGNORECASE)
    if markdown_match:
        return markdown_match.group(1).strip()

    code_block_match = re.search(r"```\s*\n(.*?)\n\s*```", text, re.DOTALL)
    if code_block_match:
        potential_json = code_block_match.group(1).strip()
        if potential_json.startswith("{") and potential_json.endswith("}"):
            return potential_json

    first_brace = text.find("{")
    if first_brace == -1:
        return None

    brace_count = 0
    in_string = False
    escape_next = False

    for i in range(first_brace, len(text)):
        char = text[i]

        if escape_next:
            escape_next = False
            continue

        if char == "\\":
            escape_next = True
            continue

        if char == '"':
            in_string = not in_string
            continue

        if not in_string:
            if char == "{":
                brace_count += 1
            elif char == "}":
                brace_count -= 1
                if brace_count == 0:
                    return text[first_brace : i + 1]

    return None
