"""Marathon orchestration loop for CodeSentinel.

The ``MarathonOrchestrator`` owns the single current review session and
drives it through the review phases while marathon mode is active:

1. Guard: skip when a step is already in flight or marathon mode is off.
2. Mark the step in flight and log that the phase is commencing.
3. Await the analyzer for the current phase.
4. On success, merge the findings, update the thought signature and log the
   analyzer's reasoning.
5. Advance to the next phase after the breather delay, or finish the review
   when the next phase is COMPLETE.
6. On failure, log a warning, keep the phase and retry it after a delay.

All work runs on one event loop. The in-flight flag is the only mutual
exclusion; the epoch counter invalidates scheduled transitions, retries and
late analyzer results whenever the session is reset, retargeted or logged
out. Every committed mutation is persisted through the ``SessionStore``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from codesentinel.analyzer.base import Analyzer
from codesentinel.analyzer.schema import AnalyzerResult
from codesentinel.config import MarathonConfig
from codesentinel.logging import bind_review_context, clear_review_context
from codesentinel.review.activity_log import append_log, make_log_entry
from codesentinel.review.intake import analyzable_content
from codesentinel.review.merger import apply_result
from codesentinel.review.models import (
    NO_TARGET,
    CamelModel,
    LogLevel,
    Operator,
    ReviewPhase,
    ReviewState,
    Session,
    TargetDescriptor,
)
from codesentinel.review.phases import advance, is_runnable, next_phase, progress_for
from codesentinel.review.signature import (
    advance_signature,
    detect_self_corrections,
    new_thought_signature,
    record_self_corrections,
)
from codesentinel.store import SessionStore

logger = structlog.get_logger(__name__)

CREDENTIAL_MISSING_MESSAGE = "API key missing. Orchestration paused."
RETRY_MESSAGE = "Agent encountered a runtime exception. Retrying current phase..."
COMPLETE_MESSAGE = "Mission objective achieved. Full codebase orchestration complete."


class MarathonError(Exception):
    """Base exception for marathon control failures."""

    pass


class CredentialRequiredError(MarathonError):
    """Raised when marathon mode is started without an analyzer credential."""

    pass


class TargetRequiredError(MarathonError):
    """Raised when marathon mode is started before a target is selected."""

    pass


class MarathonStatus(CamelModel):
    """Snapshot of the orchestrator's control state."""

    running: bool
    in_flight: bool
    phase: ReviewPhase
    phase_label: str
    progress: int
    repo_name: str
    authenticated: bool
    has_credential: bool
    credential_requested: bool
    consecutive_failures: int


class MarathonOrchestrator:
    """Drives one review session through its phases.

    Attributes:
        analyzer: External analysis collaborator.
        store: Durable session store.
        config: Marathon timing and capacity settings.
        session: The current session aggregate.
        credential_requested: Set when the operator must supply a credential.
    """

    def __init__(
        self,
        analyzer: Analyzer,
        store: SessionStore,
        config: MarathonConfig | None = None,
        api_key: str | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            analyzer: Analyzer invoked once per phase.
            store: Store the session is persisted to after every mutation.
            config: Marathon settings; defaults apply when omitted.
            api_key: Initial analyzer credential, if already known.
        """
        self.analyzer = analyzer
        self.store = store
        self.config = config or MarathonConfig()
        self.session = Session()
        self.credential_requested = False

        self._api_key: str | None = api_key or None
        self._running = False
        self._in_flight = False
        self._epoch = 0
        self._consecutive_failures = 0
        self._tasks: set[asyncio.Task[Any]] = set()
        self._save_lock = asyncio.Lock()
        self._logger = logger.bind(component="MarathonOrchestrator")

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        """Whether marathon mode is active."""
        return self._running

    @property
    def in_flight(self) -> bool:
        """Whether a step (analyzer call or pending transition) is outstanding."""
        return self._in_flight

    @property
    def has_credential(self) -> bool:
        return bool(self._api_key)

    @property
    def state(self) -> ReviewState:
        return self.session.state

    def status(self) -> MarathonStatus:
        """Return a snapshot of the control state."""
        state = self.session.state
        return MarathonStatus(
            running=self._running,
            in_flight=self._in_flight,
            phase=state.phase,
            phase_label=state.phase.label,
            progress=state.progress,
            repo_name=state.repo_name,
            authenticated=self.session.operator is not None,
            has_credential=self.has_credential,
            credential_requested=self.credential_requested,
            consecutive_failures=self._consecutive_failures,
        )

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def restore(self) -> Session:
        """Load the persisted session. Marathon mode always starts inactive."""
        self.session = await self.store.load()
        self._logger.info(
            "session_loaded",
            repo_name=self.session.state.repo_name,
            phase=self.session.state.phase.value,
        )
        return self.session

    async def login(self, operator: Operator) -> Session:
        """Attach ``operator`` to the session; request a credential if none is set."""
        self.session.operator = operator
        if not self.has_credential:
            self.credential_requested = True
        self._logger.info("operator_logged_in", operator=operator.name)
        await self._persist()
        return self.session

    def set_api_key(self, api_key: str | None) -> None:
        """Set (or clear, with an empty value) the analyzer credential.

        The credential is held in memory only and is never persisted.
        """
        self._api_key = api_key.strip() if api_key and api_key.strip() else None
        if self._api_key:
            self.credential_requested = False
        self._logger.info("credential_updated", present=self.has_credential)

    async def select_target(self, target: TargetDescriptor) -> Session:
        """Select a new review target.

        Stops marathon mode, discards all pending work and replaces the review
        state with a fresh one positioned at INIT.
        """
        self._invalidate()
        signature = new_thought_signature(
            target.model_dump(mode="json", by_alias=True, exclude={"content"}, exclude_none=True)
        )
        entry = make_log_entry(
            f"Neural link established: {target.name} ingested.",
            LogLevel.SUCCESS,
            ReviewPhase.INIT,
        )
        self.session.target = target
        self.session.state = ReviewState(
            repo_name=target.name,
            phase=ReviewPhase.INIT,
            progress=progress_for(ReviewPhase.INIT),
            thought_signature=signature,
            logs=[entry],
        )
        self._logger.info(
            "target_selected",
            repo_name=target.name,
            kind=target.type.value,
            session_id=signature.session_id,
        )
        await self._persist()
        return self.session

    async def logout(self) -> None:
        """Stop everything, drop the session and clear durable storage."""
        self._invalidate()
        self.session = Session()
        self.credential_requested = False
        async with self._save_lock:
            await self.store.clear()
        self._logger.info("operator_logged_out")

    # ------------------------------------------------------------------
    # Marathon control
    # ------------------------------------------------------------------

    async def start_marathon(self) -> None:
        """Begin or resume automatic phase execution.

        A review that is IDLE or COMPLETE restarts at INIT.

        Raises:
            CredentialRequiredError: No analyzer credential is set.
            TargetRequiredError: No target has been selected.
        """
        if not self.has_credential:
            await self._pause_for_credential()
            raise CredentialRequiredError("An analyzer API key is required to start the marathon")

        if self.session.target is None:
            raise TargetRequiredError("Select a review target before starting the marathon")

        self._running = True
        self._consecutive_failures = 0

        phase = self.session.state.phase
        if phase in (ReviewPhase.IDLE, ReviewPhase.COMPLETE):
            self._update_state(phase=ReviewPhase.INIT, progress=progress_for(ReviewPhase.INIT))

        self._logger.info("marathon_started", phase=self.session.state.phase.value)
        await self._persist()
        self._kick()

    async def stop(self) -> None:
        """Halt automatic advancement without discarding accumulated state.

        An analyzer call already in flight is not cancelled, and a pending
        phase transition still applies; neither schedules a further step.
        """
        if not self._running:
            self._logger.debug("marathon_stop_noop", reason="not running")
            return

        self._running = False
        self._log("Marathon paused by operator.", LogLevel.INFO)
        self._logger.info("marathon_stopped", phase=self.session.state.phase.value)
        await self._persist()

    async def reset_session(self, confirm: Callable[[], bool]) -> bool:
        """Hard-reset the review after explicit confirmation.

        Clears all findings, logs and the thought signature while keeping the
        operator and target; the phase returns to IDLE and marathon mode stops.

        Args:
            confirm: Asked once; the reset only proceeds when it returns True.

        Returns:
            True if the reset was performed, False if it was declined.
        """
        if not confirm():
            self._logger.info("session_reset_declined")
            return False

        self._invalidate()
        target = self.session.target
        self.session.state = ReviewState(repo_name=target.name if target else NO_TARGET)
        self._logger.info("session_reset", repo_name=self.session.state.repo_name)
        await self._persist()
        return True

    async def join(self) -> None:
        """Wait until no scheduled work remains."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop marathon mode and cancel all scheduled work."""
        self._running = False
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._logger.info("orchestrator_shutdown", cancelled=len(tasks))

    # ------------------------------------------------------------------
    # Step execution
    # ------------------------------------------------------------------

    async def step(self) -> None:
        """Execute one phase iteration (no-op when guarded)."""
        if self._in_flight or not self._running:
            return

        phase = self.session.state.phase
        if not is_runnable(phase):
            return

        if not self.has_credential:
            await self._pause_for_credential()
            return

        epoch = self._epoch
        self._in_flight = True
        bind_review_context(self.session.state.thought_signature.session_id, phase.value)
        try:
            await self._run_phase(epoch, phase)
        except Exception:
            # Leave the marathon stopped but restartable
            if epoch == self._epoch:
                self._in_flight = False
                self._running = False
            raise
        finally:
            clear_review_context()

    async def _run_phase(self, epoch: int, phase: ReviewPhase) -> None:
        self._log(f"Commencing {phase.label}...", LogLevel.INFO, phase)
        self._logger.info("phase_step_started", phase=phase.value, epoch=epoch)
        await self._persist()
        if epoch != self._epoch:
            return

        content = analyzable_content(self.session.target)
        try:
            result = await self.analyzer.analyze(content, phase, self._api_key or "")
        except Exception as e:
            await self._handle_failure(epoch, phase, e)
            return

        if epoch != self._epoch:
            self._logger.info("stale_result_discarded", phase=phase.value, epoch=epoch)
            return

        await self._handle_success(epoch, phase, result)

    async def _handle_success(
        self,
        epoch: int,
        phase: ReviewPhase,
        result: AnalyzerResult,
    ) -> None:
        state = self.session.state
        previous_vulnerabilities = state.vulnerabilities
        state, report = apply_result(state, result, phase)

        signature = advance_signature(
            state.thought_signature,
            result.thought_signature_update,
            phase,
            result.thought_process,
            default_minutes=self.config.default_phase_minutes,
            decision_capacity=self.config.decision_capacity,
        )

        capacity = self.config.log_capacity
        logs = state.logs
        if result.thought_process:
            logs = append_log(
                logs, make_log_entry(result.thought_process, LogLevel.THOUGHT, phase), capacity
            )

        if phase is ReviewPhase.VALIDATION:
            corrections = detect_self_corrections(previous_vulnerabilities, state.vulnerabilities)
            signature = record_self_corrections(signature, corrections)
            for correction in corrections:
                message = (
                    f"Self-correction: {correction.original_finding_id} reclassified "
                    f"{correction.previous_severity} -> {correction.new_severity}. "
                    f"{correction.reason}"
                )
                logs = append_log(
                    logs, make_log_entry(message, LogLevel.VALIDATION, phase), capacity
                )

        self.session.state = state.model_copy(update={"thought_signature": signature, "logs": logs})
        self._consecutive_failures = 0
        self._logger.info(
            "phase_step_completed",
            phase=phase.value,
            added=report.added,
            updated=report.updated,
            summary_replaced=report.summary_replaced,
        )

        upcoming = next_phase(phase)
        if upcoming is None:
            self._in_flight = False
            await self._persist()
            return

        if upcoming is ReviewPhase.COMPLETE:
            self._set_phase(upcoming)
            self._in_flight = False
            self._running = False
            self._log(COMPLETE_MESSAGE, LogLevel.SUCCESS, ReviewPhase.COMPLETE)
            self._logger.info("marathon_completed", repo_name=self.session.state.repo_name)
            await self._persist()
            return

        if self._running:
            # The in-flight flag stays set until the transition applies
            await self._persist()
            self._spawn(
                self._transition_after_breather(epoch, upcoming),
                name=f"transition-{upcoming.value}",
            )
            return

        self._set_phase(upcoming)
        self._in_flight = False
        await self._persist()

    async def _handle_failure(self, epoch: int, phase: ReviewPhase, error: Exception) -> None:
        self._logger.warning(
            "analyzer_call_failed",
            phase=phase.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        if epoch != self._epoch:
            return

        self._in_flight = False
        self._consecutive_failures += 1

        limit = self.config.max_phase_retries
        if limit is not None and self._consecutive_failures > limit:
            self._running = False
            self._log(
                f"{phase.label} failed {self._consecutive_failures} consecutive times. "
                "Marathon halted.",
                LogLevel.ERROR,
                phase,
            )
            self._logger.error(
                "marathon_halted", phase=phase.value, failures=self._consecutive_failures
            )
            await self._persist()
            return

        self._log(RETRY_MESSAGE, LogLevel.WARN, phase)
        await self._persist()
        if self._running:
            self._spawn(self._retry_after_delay(epoch), name=f"retry-{phase.value}")

    async def _transition_after_breather(self, epoch: int, upcoming: ReviewPhase) -> None:
        await asyncio.sleep(self.config.breather_seconds)
        if epoch != self._epoch:
            return
        self._set_phase(upcoming)
        self._in_flight = False
        await self._persist()
        self._kick()

    async def _retry_after_delay(self, epoch: int) -> None:
        await asyncio.sleep(self.config.retry_delay_seconds)
        if epoch != self._epoch:
            return
        self._kick()

    async def _pause_for_credential(self) -> None:
        self._running = False
        self.credential_requested = True
        self._log(CREDENTIAL_MISSING_MESSAGE, LogLevel.ERROR)
        self._logger.warning("credential_missing")
        await self._persist()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _kick(self) -> None:
        """Schedule a step if one is allowed to run now."""
        if not self._running or self._in_flight:
            return
        if not is_runnable(self.session.state.phase):
            return
        self._spawn(self.step(), name=f"step-{self.session.state.phase.value}")

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._logger.error(
                "marathon_task_failed",
                task=task.get_name(),
                error=str(error),
                exc_info=error,
            )

    def _invalidate(self) -> None:
        """Stop marathon mode and orphan all pending work."""
        self._epoch += 1
        self._running = False
        self._in_flight = False
        self._consecutive_failures = 0

    def _set_phase(self, target: ReviewPhase) -> None:
        phase = advance(self.session.state.phase, target)
        self._update_state(phase=phase, progress=progress_for(phase))

    def _update_state(self, **changes: Any) -> None:
        self.session.state = self.session.state.model_copy(update=changes)

    def _log(
        self,
        message: str,
        level: LogLevel = LogLevel.INFO,
        phase: ReviewPhase | None = None,
    ) -> None:
        entry = make_log_entry(message, level, phase)
        state = self.session.state
        self._update_state(logs=append_log(state.logs, entry, self.config.log_capacity))

    async def _persist(self) -> None:
        """Save the session; write failures are logged and never stop the loop.

        A save queued before a reset, retarget or logout is dropped.
        """
        epoch = self._epoch
        async with self._save_lock:
            if epoch != self._epoch:
                self._logger.debug("stale_save_skipped", epoch=epoch)
                return
            try:
                await self.store.save(self.session)
            except (SQLAlchemyError, OSError) as e:
                self._logger.warning(
                    "session_save_failed",
                    phase=self.session.state.phase.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
