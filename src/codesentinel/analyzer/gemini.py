"""Gemini-backed analyzer for CodeSentinel.

Sends the content under review to a Gemini model with a phase-specific
system instruction and a JSON response schema, then validates the reply
into an ``AnalyzerResult``. Every upstream failure surfaces as an
``AnalyzerError`` subclass; no fallback payload is ever fabricated.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

import httpx
import structlog
from google import genai
from google.genai import errors, types

from codesentinel.analyzer.base import (
    AnalyzerAPIError,
    AnalyzerConnectionError,
    AnalyzerResponseError,
)
from codesentinel.analyzer.schema import AnalyzerResult, parse_analyzer_result
from codesentinel.config import AnalyzerConfig
from codesentinel.review.models import ReviewPhase

logger = structlog.get_logger(__name__)

ClientFactory = Callable[[str], Any]

PHASE_FOCUS: dict[ReviewPhase, str] = {
    ReviewPhase.INIT: "Establish the session and outline the review plan.",
    ReviewPhase.UNDERSTANDING: "Map architecture components and their risk levels.",
    ReviewPhase.ANALYSIS: "Find 3-5 security vulnerabilities.",
    ReviewPhase.VALIDATION: (
        "Provide proof-of-concept evidence for found vulnerabilities. Report them "
        "again by id with an updated status; do not report new ones."
    ),
    ReviewPhase.BENCHMARK: "Identify performance hotspots with specific latency metrics.",
    ReviewPhase.TESTING: "Generate integration test cases.",
    ReviewPhase.REPORTING: "Summarise the mission outcome for the dashboard.",
}

_STRING = {"type": "STRING"}


def _enum(*values: str) -> dict[str, Any]:
    return {"type": "STRING", "enum": list(values)}


RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "thoughtProcess": {
            "type": "STRING",
            "description": "A detailed explanation of the agent's reasoning.",
        },
        "summary": {
            "type": "STRING",
            "description": "A high-level status update for the mission control dashboard.",
        },
        "findings": {
            "type": "OBJECT",
            "properties": {
                "vulnerabilities": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "id": _STRING,
                            "severity": _enum("CRITICAL", "HIGH", "MEDIUM", "LOW"),
                            "confidence": _enum("CONFIRMED", "HIGH", "MEDIUM", "LOW"),
                            "type": _STRING,
                            "location": _STRING,
                            "description": _STRING,
                            "exploitability": _STRING,
                            "validationEvidence": _STRING,
                            "status": _enum("OPEN", "VALIDATED", "FALSE_POSITIVE", "FIXED"),
                        },
                        "required": ["id", "severity", "type", "description", "status"],
                    },
                },
                "performance": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "id": _STRING,
                            "impact": _enum("HIGH", "MEDIUM", "LOW"),
                            "component": _STRING,
                            "metric": _STRING,
                            "currentValue": _STRING,
                            "optimizedValue": _STRING,
                            "suggestion": _STRING,
                        },
                        "required": ["id", "impact", "component", "currentValue", "optimizedValue"],
                    },
                },
                "architecture": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "name": _STRING,
                            "type": _STRING,
                            "riskLevel": _enum("HIGH", "MEDIUM", "LOW"),
                            "details": _STRING,
                        },
                        "required": ["name", "type", "riskLevel"],
                    },
                },
                "tests": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "id": _STRING,
                            "name": _STRING,
                            "type": _enum("UNIT", "INTEGRATION", "E2E"),
                            "status": _enum("PASS", "FAIL", "PENDING"),
                            "codeSnippet": _STRING,
                            "coverageDelta": _STRING,
                        },
                        "required": ["id", "name", "type", "status"],
                    },
                },
            },
        },
        "thoughtSignatureUpdate": {
            "type": "OBJECT",
            "properties": {
                "simulatedDuration": {
                    "type": "INTEGER",
                    "description": "Minutes elapsed in this phase.",
                },
                "nextPlannedAction": _STRING,
                "decisions": {
                    "type": "ARRAY",
                    "items": {
                        "type": "OBJECT",
                        "properties": {
                            "id": _STRING,
                            "timestamp": _STRING,
                            "action": _STRING,
                            "justification": _STRING,
                            "outcome": _STRING,
                        },
                    },
                },
            },
        },
    },
    "required": ["thoughtProcess", "summary"],
}


def build_system_instruction(phase: ReviewPhase) -> str:
    """System instruction for ``phase``."""
    focus = "\n".join(f"- {p.value}: {text}" for p, text in PHASE_FOCUS.items())
    return f"""You are CodeSentinel AI, a world-class Senior Security Architect and Autonomous Marathon Agent.
Current Phase: {phase.value} ({phase.label})

CORE DIRECTIVES:
1. Autonomous Operation: You plan, execute, and validate without human help.
2. Deep Understanding: Map data flow and security boundaries.
3. Validation Loop: Simulate browser validation. For findings, provide 'validationEvidence' (simulated console output).
4. Performance Benchmarking: Identify bottlenecks. Provide numeric strings for 'currentValue' and 'optimizedValue' (e.g. "850ms", "120ms").
5. Self-Correction: Be honest. If a finding is likely a false positive during validation, mark it as such.
6. Output: You MUST return a valid JSON object matching the provided schema.

PHASE-SPECIFIC FOCUS:
{focus}
"""


def build_prompt(content: str, phase: ReviewPhase) -> str:
    """User prompt carrying the content under review."""
    return f"""SESSION ID: ORCH-MARATHON-{int(time.time() * 1000)}
OPERATIONAL PHASE: {phase.value}

CODE TO ANALYZE:
```typescript
{content}
```

Perform your deep inspection now. Ensure you update the 'findings' object relevant to the current phase.
Return results in STRICT JSON.
"""


class GeminiAnalyzer:
    """Analyzer calling the Gemini API through the google-genai SDK.

    A new client is created per call so that the credential passed to
    ``analyze`` is always the one used.
    """

    def __init__(
        self,
        config: AnalyzerConfig,
        client_factory: ClientFactory | None = None,
    ):
        """Initialize the analyzer.

        Args:
            config: Analyzer configuration (model, token budgets, timeout)
            client_factory: Callable building a client from an API key;
                defaults to ``google.genai.Client``
        """
        self.config = config
        self._client_factory = client_factory or self._default_client
        self._logger = logger.bind(component="GeminiAnalyzer", model=config.model)

    def _default_client(self, api_key: str) -> genai.Client:
        http_options = None
        if self.config.timeout_seconds is not None:
            http_options = types.HttpOptions(timeout=self.config.timeout_seconds * 1000)
        return genai.Client(api_key=api_key, http_options=http_options)

    def _generation_config(self, phase: ReviewPhase) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(
            system_instruction=build_system_instruction(phase),
            response_mime_type="application/json",
            response_schema=RESPONSE_SCHEMA,
            max_output_tokens=self.config.max_output_tokens,
            thinking_config=types.ThinkingConfig(thinking_budget=self.config.thinking_budget),
        )

    async def analyze(
        self,
        content: str,
        phase: ReviewPhase,
        api_key: str,
    ) -> AnalyzerResult:
        """Run one phase of analysis against Gemini.

        Raises:
            AnalyzerAPIError: The provider returned an error status
            AnalyzerConnectionError: The provider could not be reached in time
            AnalyzerResponseError: The reply was empty or not valid JSON for the schema
        """
        client = self._client_factory(api_key)
        self._logger.debug("analyzer_request_started", phase=phase.value, content_chars=len(content))

        try:
            response = await client.aio.models.generate_content(
                model=self.config.model,
                contents=build_prompt(content, phase),
                config=self._generation_config(phase),
            )
        except errors.APIError as e:
            self._logger.warning(
                "analyzer_api_error", phase=phase.value, status=e.code, error=e.message
            )
            raise AnalyzerAPIError(f"Gemini API error {e.code}: {e.message}") from e
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            self._logger.warning("analyzer_connection_error", phase=phase.value, error=str(e))
            raise AnalyzerConnectionError(f"Could not reach Gemini: {e}") from e

        text = response.text
        if not text:
            raise AnalyzerResponseError("Empty response from analyzer")

        result = parse_analyzer_result(text)
        self._logger.debug("analyzer_request_completed", phase=phase.value, response_chars=len(text))
        return result
