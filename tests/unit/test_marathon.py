"""Unit tests for the marathon orchestrator.

Tests cover:
- A full offline run from INIT to COMPLETE
- Credential and target preconditions
- Retry after analyzer failures and the consecutive-failure limit
- Reentrancy guard while a step is in flight
- Stop, reset, retarget and logout racing with in-flight work
- Persistence after mutations, and storage errors that must not stall a run
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from codesentinel.analyzer.base import AnalyzerConnectionError
from codesentinel.analyzer.schema import AnalyzerResult
from codesentinel.analyzer.scripted import ScriptedAnalyzer
from codesentinel.config import MarathonConfig
from codesentinel.orchestrator.marathon import (
    COMPLETE_MESSAGE,
    CREDENTIAL_MISSING_MESSAGE,
    RETRY_MESSAGE,
    CredentialRequiredError,
    MarathonOrchestrator,
    TargetRequiredError,
)
from codesentinel.review.intake import target_from_repository_url
from codesentinel.review.models import (
    NO_TARGET,
    LogLevel,
    Operator,
    ReviewPhase,
    ReviewState,
    Session,
    VulnerabilityStatus,
)
from codesentinel.review.phases import WORKING_PHASES
from codesentinel.store import SessionStore

OPERATOR = Operator(name="ada", role="Lead Architect")
TARGET = target_from_repository_url("https://github.com/acme/payments-api")


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll ``predicate`` on the running loop until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


class GatedAnalyzer:
    """Analyzer that blocks every call until ``gate`` is set."""

    def __init__(self, result: AnalyzerResult | None = None):
        self.gate = asyncio.Event()
        self.calls: list[ReviewPhase] = []
        self.result = result or AnalyzerResult(
            thought_process="gated reasoning",
            summary="gated",
            findings={"vulnerabilities": [{"id": "LATE-1", "severity": "HIGH"}]},
        )

    async def analyze(self, content: str, phase: ReviewPhase, api_key: str) -> AnalyzerResult:
        self.calls.append(phase)
        await self.gate.wait()
        return self.result


@pytest.fixture
def store() -> MagicMock:
    """Session store mock with async load, save and clear."""
    mock_store = MagicMock(spec=SessionStore)
    mock_store.load = AsyncMock(return_value=Session())
    mock_store.save = AsyncMock(return_value=None)
    mock_store.clear = AsyncMock(return_value=None)
    return mock_store


@pytest.fixture
def fast_config() -> MarathonConfig:
    return MarathonConfig(breather_seconds=0, retry_delay_seconds=0)


async def _ready(
    analyzer,
    store: MagicMock,
    config: MarathonConfig,
    api_key: str | None = "test-key",
) -> MarathonOrchestrator:
    orchestrator = MarathonOrchestrator(analyzer, store, config, api_key=api_key)
    await orchestrator.login(OPERATOR)
    await orchestrator.select_target(TARGET)
    return orchestrator


class TestFullRun:
    """A complete offline review."""

    @pytest.mark.asyncio
    async def test_runs_every_phase_to_complete(self, store, fast_config):
        analyzer = ScriptedAnalyzer()
        orchestrator = await _ready(analyzer, store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        state = orchestrator.state
        assert state.phase is ReviewPhase.COMPLETE
        assert state.progress == 100
        assert not orchestrator.is_running
        assert not orchestrator.in_flight
        assert [call.phase for call in analyzer.calls] == list(WORKING_PHASES)

        assert state.logs[-1].level is LogLevel.SUCCESS
        assert state.logs[-1].message == COMPLETE_MESSAGE
        assert state.thought_signature.phases_completed == list(WORKING_PHASES)
        assert state.thought_signature.simulated_duration == 275
        assert state.summary.startswith("Critical SQL injection")

    @pytest.mark.asyncio
    async def test_first_phase_findings_then_transition_after_breather(self, store):
        config = MarathonConfig(breather_seconds=0.2, retry_delay_seconds=0)
        analyzer = ScriptedAnalyzer(
            {
                ReviewPhase.INIT: [
                    {
                        "thoughtProcess": "two issues",
                        "findings": {
                            "vulnerabilities": [
                                {"id": "VULN-1", "severity": "HIGH"},
                                {"id": "VULN-2", "severity": "LOW"},
                            ]
                        },
                    }
                ]
            }
        )
        orchestrator = await _ready(analyzer, store, config)

        await orchestrator.start_marathon()
        await wait_until(lambda: len(orchestrator.state.vulnerabilities) == 2)
        assert orchestrator.state.phase is ReviewPhase.INIT

        await wait_until(lambda: orchestrator.state.phase is ReviewPhase.UNDERSTANDING)
        assert [vuln.id for vuln in orchestrator.state.vulnerabilities] == ["VULN-1", "VULN-2"]
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_findings_accumulate_and_validation_updates(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        state = orchestrator.state
        assert len(state.architecture) == 3
        assert len(state.performance) == 2
        assert len(state.tests) == 3
        statuses = {vuln.id: vuln.status for vuln in state.vulnerabilities}
        assert statuses == {
            "VULN-001": VulnerabilityStatus.VALIDATED,
            "VULN-002": VulnerabilityStatus.VALIDATED,
            "VULN-003": VulnerabilityStatus.FALSE_POSITIVE,
        }

        corrections = state.thought_signature.self_corrections
        assert len(corrections) == 1
        assert corrections[0].original_finding_id == "VULN-003"
        assert corrections[0].new_severity == "FALSE_POSITIVE"
        assert any(
            entry.level is LogLevel.VALIDATION and "VULN-003" in entry.message
            for entry in state.logs
        )

    @pytest.mark.asyncio
    async def test_logs_phase_reasoning(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        thoughts = [entry for entry in orchestrator.state.logs if entry.level is LogLevel.THOUGHT]
        assert len(thoughts) == len(WORKING_PHASES)
        commencing = [entry for entry in orchestrator.state.logs if entry.message.startswith("Commencing")]
        assert commencing[0].message == "Commencing Phase 1: Session Initialization..."

    @pytest.mark.asyncio
    async def test_log_capacity_respected(self, store):
        config = MarathonConfig(breather_seconds=0, retry_delay_seconds=0, log_capacity=5)
        orchestrator = await _ready(ScriptedAnalyzer(), store, config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert len(orchestrator.state.logs) == 5
        assert orchestrator.state.logs[-1].message == COMPLETE_MESSAGE

    @pytest.mark.asyncio
    async def test_completion_is_persisted(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        saved: Session = store.save.await_args.args[0]
        assert saved.state.phase is ReviewPhase.COMPLETE
        assert store.save.await_count > len(WORKING_PHASES)

    @pytest.mark.asyncio
    async def test_restart_after_complete_returns_to_init(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)
        await orchestrator.start_marathon()
        await orchestrator.join()

        await orchestrator.start_marathon()

        assert orchestrator.state.phase is ReviewPhase.INIT
        assert orchestrator.state.progress == 0
        await orchestrator.shutdown()


class TestPreconditions:
    """Credential and target checks when starting."""

    @pytest.mark.asyncio
    async def test_missing_credential_pauses(self, store, fast_config):
        analyzer = ScriptedAnalyzer()
        orchestrator = await _ready(analyzer, store, fast_config, api_key=None)
        assert orchestrator.credential_requested

        with pytest.raises(CredentialRequiredError):
            await orchestrator.start_marathon()

        assert not orchestrator.is_running
        assert orchestrator.credential_requested
        assert orchestrator.state.logs[-1].level is LogLevel.ERROR
        assert orchestrator.state.logs[-1].message == CREDENTIAL_MISSING_MESSAGE
        assert analyzer.calls == []

    @pytest.mark.asyncio
    async def test_setting_credential_allows_start(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config, api_key=None)

        orchestrator.set_api_key("  new-key  ")
        assert orchestrator.has_credential
        assert not orchestrator.credential_requested

        await orchestrator.start_marathon()
        await orchestrator.join()
        assert orchestrator.state.phase is ReviewPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_blank_credential_is_cleared(self, store, fast_config):
        orchestrator = MarathonOrchestrator(ScriptedAnalyzer(), store, fast_config, api_key="k")
        orchestrator.set_api_key("   ")
        assert not orchestrator.has_credential

    @pytest.mark.asyncio
    async def test_missing_target_rejected(self, store, fast_config):
        orchestrator = MarathonOrchestrator(ScriptedAnalyzer(), store, fast_config, api_key="k")
        await orchestrator.login(OPERATOR)

        with pytest.raises(TargetRequiredError):
            await orchestrator.start_marathon()
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_credential_is_never_persisted(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config, api_key="top-secret")
        saved: Session = store.save.await_args.args[0]
        assert "top-secret" not in saved.model_dump_json(by_alias=True)


class TestFailures:
    """Analyzer failures keep the phase and retry it."""

    @pytest.mark.asyncio
    async def test_failed_phase_is_retried(self, store, fast_config):
        analyzer = ScriptedAnalyzer({ReviewPhase.ANALYSIS: [AnalyzerConnectionError("boom")]})
        orchestrator = await _ready(analyzer, store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        state = orchestrator.state
        assert state.phase is ReviewPhase.COMPLETE
        assert len(analyzer.calls_for(ReviewPhase.ANALYSIS)) == 2
        assert len(state.vulnerabilities) == 3
        warnings = [entry for entry in state.logs if entry.level is LogLevel.WARN]
        assert [entry.message for entry in warnings] == [RETRY_MESSAGE]
        assert warnings[0].phase is ReviewPhase.ANALYSIS

    @pytest.mark.asyncio
    async def test_retry_limit_halts_marathon(self, store):
        config = MarathonConfig(breather_seconds=0, retry_delay_seconds=0, max_phase_retries=1)
        analyzer = ScriptedAnalyzer(
            {ReviewPhase.INIT: [AnalyzerConnectionError("down"), AnalyzerConnectionError("down")]}
        )
        orchestrator = await _ready(analyzer, store, config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert not orchestrator.is_running
        assert orchestrator.state.phase is ReviewPhase.INIT
        assert len(analyzer.calls) == 2
        last = orchestrator.state.logs[-1]
        assert last.level is LogLevel.ERROR
        assert "failed 2 consecutive times" in last.message
        assert orchestrator.status().consecutive_failures == 2

    @pytest.mark.asyncio
    async def test_unexpected_exception_is_retried(self, store, fast_config):
        analyzer = ScriptedAnalyzer({ReviewPhase.INIT: [RuntimeError("unexpected")]})
        orchestrator = await _ready(analyzer, store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert orchestrator.state.phase is ReviewPhase.COMPLETE
        assert len(analyzer.calls_for(ReviewPhase.INIT)) == 2


class TestStoreFailures:
    """Storage errors never leave the marathon stuck."""

    @staticmethod
    def _fail_on(call_number: int, error: Exception):
        calls = 0

        async def save(session):
            nonlocal calls
            calls += 1
            if calls == call_number:
                raise error

        return save

    @pytest.mark.asyncio
    async def test_locked_database_does_not_stall_run(self, store, fast_config):
        # login, select_target and start_marathon account for the first three saves
        locked = OperationalError("INSERT", {}, Exception("database is locked"))
        store.save = AsyncMock(side_effect=self._fail_on(4, locked))
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert orchestrator.state.phase is ReviewPhase.COMPLETE
        assert not orchestrator.in_flight
        assert not orchestrator.is_running
        assert store.save.call_count > 4
        store.save.assert_awaited_with(orchestrator.session)

    @pytest.mark.asyncio
    async def test_every_save_failing_still_completes(self, store, fast_config):
        store.save = AsyncMock(side_effect=OSError("disk full"))
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert orchestrator.state.phase is ReviewPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_unexpected_store_error_leaves_marathon_restartable(self, store, fast_config):
        store.save = AsyncMock(side_effect=self._fail_on(4, RuntimeError("serializer bug")))
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert orchestrator.state.phase is ReviewPhase.INIT
        assert not orchestrator.in_flight
        assert not orchestrator.is_running

        await orchestrator.start_marathon()
        await orchestrator.join()

        assert orchestrator.state.phase is ReviewPhase.COMPLETE


class TestConcurrency:
    """Guards against overlapping steps and stale results."""

    @pytest.mark.asyncio
    async def test_only_one_call_in_flight(self, store, fast_config):
        analyzer = GatedAnalyzer()
        orchestrator = await _ready(analyzer, store, fast_config)

        await orchestrator.start_marathon()
        await wait_until(lambda: len(analyzer.calls) == 1)
        assert orchestrator.in_flight

        await orchestrator.step()
        await orchestrator.start_marathon()
        await asyncio.sleep(0.05)
        assert len(analyzer.calls) == 1

        await orchestrator.stop()
        analyzer.gate.set()
        await orchestrator.join()

        assert len(analyzer.calls) == 1
        assert not orchestrator.in_flight
        assert orchestrator.state.phase is ReviewPhase.UNDERSTANDING

    @pytest.mark.asyncio
    async def test_stop_during_breather_applies_transition_without_next_step(self, store):
        config = MarathonConfig(breather_seconds=0.2, retry_delay_seconds=0)
        analyzer = ScriptedAnalyzer()
        orchestrator = await _ready(analyzer, store, config)

        await orchestrator.start_marathon()
        await wait_until(lambda: ReviewPhase.INIT in orchestrator.state.thought_signature.phases_completed)
        assert orchestrator.in_flight

        await orchestrator.stop()
        await orchestrator.join()

        assert orchestrator.state.phase is ReviewPhase.UNDERSTANDING
        assert len(analyzer.calls) == 1
        assert orchestrator.state.logs[-1].message == "Marathon paused by operator."

    @pytest.mark.asyncio
    async def test_start_during_breather_does_not_rerun_phase(self, store):
        config = MarathonConfig(breather_seconds=0.1, retry_delay_seconds=0)
        analyzer = ScriptedAnalyzer()
        orchestrator = await _ready(analyzer, store, config)

        await orchestrator.start_marathon()
        await wait_until(lambda: ReviewPhase.INIT in orchestrator.state.thought_signature.phases_completed)
        await orchestrator.start_marathon()
        await orchestrator.join()

        assert len(analyzer.calls_for(ReviewPhase.INIT)) == 1
        assert orchestrator.state.phase is ReviewPhase.COMPLETE

    @pytest.mark.asyncio
    async def test_stopped_marathon_resumes_where_it_left_off(self, store, fast_config):
        analyzer = GatedAnalyzer()
        orchestrator = await _ready(analyzer, store, fast_config)
        await orchestrator.start_marathon()
        await wait_until(lambda: len(analyzer.calls) == 1)
        await orchestrator.stop()
        analyzer.gate.set()
        await orchestrator.join()

        await orchestrator.start_marathon()
        await wait_until(lambda: len(analyzer.calls) == 2)
        assert analyzer.calls[1] is ReviewPhase.UNDERSTANDING
        await orchestrator.shutdown()

    @pytest.mark.asyncio
    async def test_reset_discards_late_result(self, store, fast_config):
        analyzer = GatedAnalyzer()
        orchestrator = await _ready(analyzer, store, fast_config)
        await orchestrator.start_marathon()
        await wait_until(lambda: len(analyzer.calls) == 1)

        assert await orchestrator.reset_session(lambda: True)
        analyzer.gate.set()
        await orchestrator.join()

        state = orchestrator.state
        assert state.phase is ReviewPhase.IDLE
        assert state.repo_name == "payments-api"
        assert state.vulnerabilities == []
        assert state.logs == []
        assert not orchestrator.is_running
        assert not orchestrator.in_flight

    @pytest.mark.asyncio
    async def test_retarget_discards_late_result(self, store, fast_config):
        analyzer = GatedAnalyzer()
        orchestrator = await _ready(analyzer, store, fast_config)
        await orchestrator.start_marathon()
        await wait_until(lambda: len(analyzer.calls) == 1)

        other = target_from_repository_url("https://github.com/acme/ledger")
        await orchestrator.select_target(other)
        analyzer.gate.set()
        await orchestrator.join()

        state = orchestrator.state
        assert state.repo_name == "ledger"
        assert state.phase is ReviewPhase.INIT
        assert state.vulnerabilities == []
        assert len(state.logs) == 1
        assert not orchestrator.is_running


class TestSessionLifecycle:
    """Login, target selection, reset, logout and restore."""

    @pytest.mark.asyncio
    async def test_select_target_builds_fresh_state(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        state = orchestrator.state
        assert state.repo_name == "payments-api"
        assert state.phase is ReviewPhase.INIT
        assert state.progress == 0
        assert state.logs[0].level is LogLevel.SUCCESS
        assert state.logs[0].message == "Neural link established: payments-api ingested."
        metadata = state.thought_signature.repo_metadata
        assert metadata["name"] == "payments-api"
        assert metadata["type"] == "GITHUB"
        assert "content" not in metadata

    @pytest.mark.asyncio
    async def test_new_target_gets_new_session_id(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)
        first = orchestrator.state.thought_signature

        await orchestrator.select_target(TARGET)

        assert orchestrator.state.thought_signature is not first

    @pytest.mark.asyncio
    async def test_reset_declined_changes_nothing(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)
        before = orchestrator.state
        saves = store.save.await_count

        assert not await orchestrator.reset_session(lambda: False)

        assert orchestrator.state is before
        assert store.save.await_count == saves

    @pytest.mark.asyncio
    async def test_reset_keeps_operator_and_target(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)
        await orchestrator.start_marathon()
        await orchestrator.join()

        assert await orchestrator.reset_session(lambda: True)

        assert orchestrator.session.operator == OPERATOR
        assert orchestrator.session.target == TARGET
        assert orchestrator.state == ReviewState(
            repo_name="payments-api",
            thought_signature=orchestrator.state.thought_signature,
        )

    @pytest.mark.asyncio
    async def test_reset_without_target(self, store, fast_config):
        orchestrator = MarathonOrchestrator(ScriptedAnalyzer(), store, fast_config)
        assert await orchestrator.reset_session(lambda: True)
        assert orchestrator.state.repo_name == NO_TARGET

    @pytest.mark.asyncio
    async def test_logout_clears_everything(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        await orchestrator.logout()

        store.clear.assert_awaited_once()
        assert orchestrator.session.operator is None
        assert orchestrator.session.target is None
        assert orchestrator.state.phase is ReviewPhase.IDLE
        assert not orchestrator.credential_requested

    @pytest.mark.asyncio
    async def test_logout_drops_saves_queued_before_it(self, store, fast_config):
        gate = asyncio.Event()

        async def slow_save(session):
            await gate.wait()

        store.save = AsyncMock(side_effect=slow_save)
        orchestrator = MarathonOrchestrator(ScriptedAnalyzer(), store, fast_config, api_key="k")

        first = asyncio.create_task(orchestrator.login(OPERATOR))
        await wait_until(lambda: store.save.call_count == 1)
        queued = asyncio.create_task(orchestrator.login(OPERATOR))
        logging_out = asyncio.create_task(orchestrator.logout())
        await asyncio.sleep(0)

        gate.set()
        await asyncio.gather(first, queued, logging_out)

        assert store.save.call_count == 1
        store.clear.assert_awaited_once()
        assert orchestrator.session.operator is None

    @pytest.mark.asyncio
    async def test_restore_loads_session_inactive(self, store, fast_config):
        persisted = Session(
            operator=OPERATOR,
            target=TARGET,
            state=ReviewState(repo_name="payments-api", phase=ReviewPhase.BENCHMARK, progress=57),
        )
        store.load.return_value = persisted
        orchestrator = MarathonOrchestrator(ScriptedAnalyzer(), store, fast_config, api_key="k")

        session = await orchestrator.restore()

        assert session is persisted
        assert orchestrator.state.phase is ReviewPhase.BENCHMARK
        assert not orchestrator.is_running

    @pytest.mark.asyncio
    async def test_stop_when_not_running_is_noop(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)
        logs = list(orchestrator.state.logs)

        await orchestrator.stop()

        assert orchestrator.state.logs == logs

    @pytest.mark.asyncio
    async def test_status_snapshot(self, store, fast_config):
        orchestrator = await _ready(ScriptedAnalyzer(), store, fast_config)

        status = orchestrator.status()

        assert status.running is False
        assert status.phase is ReviewPhase.INIT
        assert status.phase_label == "Phase 1: Session Initialization"
        assert status.repo_name == "payments-api"
        assert status.authenticated
        assert status.has_credential
        assert status.model_dump(by_alias=True)["inFlight"] is False
