"""The cycle orchestrator: one role turn at a time against the substrate.

A cycle lets the Ego answer any injected user messages, dispatches the next
actionable plan task to the Subconscious, records the outcome, routes
proposals through the Superego, reconsiders the work and, when due, runs a
governance audit. ``run_loop`` repeats cycles until the loop is stopped,
hibernating through usage limits and handing idle plans to the
:class:`IdleHandler`.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ..models.rate_limit import parse_rate_limit_reset
from ..models.stream_json import LogEntryCallback, ProcessLogEntry
from ..planning.plan_parser import TriggerEvaluator
from ..roles.ego import Ego
from ..roles.finding_tracker import FindingTracker
from ..roles.schema import OutcomeEvaluation, TaskAssignment, TaskResult
from ..roles.subconscious import Subconscious, compute_drive_rating
from ..roles.superego import Superego
from ..substrate.store import SubstrateError, utc_now
from .events import EventSink, LoggingEventSink
from .idle_handler import IdleHandler
from .rate_limit_state import RateLimitStateManager
from .state_store import LoopStateStore, PersistedLoopState
from .timer import LoopTimer
from .types import (
    FATAL_EXIT_CODE,
    RESTART_EXIT_CODE,
    CycleResult,
    LoopConfig,
    LoopEvent,
    LoopMetrics,
    LoopState,
    LoopStateError,
)

__all__ = ["LoopOrchestrator"]

LOGGER = logging.getLogger(__name__)

_LOW_QUALITY_SCORE = 50


def _log_entry(entry: ProcessLogEntry) -> None:
    LOGGER.debug("[%s] %s", entry.type, entry.content[:500])


class LoopOrchestrator:
    def __init__(
        self,
        *,
        ego: Ego,
        subconscious: Subconscious,
        superego: Superego,
        idle_handler: IdleHandler,
        tracker: FindingTracker,
        config: Optional[LoopConfig] = None,
        timer: Optional[LoopTimer] = None,
        event_sink: Optional[EventSink] = None,
        state_store: Optional[LoopStateStore] = None,
        tracker_path: Optional[Path] = None,
        rate_limit_manager: Optional[RateLimitStateManager] = None,
        trigger_evaluator: Optional[TriggerEvaluator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        on_log_entry: Optional[LogEntryCallback] = None,
    ) -> None:
        self._ego = ego
        self._subconscious = subconscious
        self._superego = superego
        self._idle_handler = idle_handler
        self._tracker = tracker
        self._config = config or LoopConfig()
        self._timer = timer or LoopTimer()
        self._events = event_sink or LoggingEventSink()
        self._state_store = state_store
        self._tracker_path = Path(tracker_path) if tracker_path else None
        self._rate_limit_manager = rate_limit_manager
        self._trigger_evaluator = trigger_evaluator
        self._clock = clock or utc_now
        self._on_log_entry = on_log_entry or _log_entry

        self._lock = threading.RLock()
        self._cycle_lock = threading.Lock()
        self._state = LoopState.STOPPED
        self._metrics = LoopMetrics()
        self._pending_messages: List[str] = []
        self._audit_requested = False
        self._restart_requested = False
        self._clear_restart_context = False
        self._thread: Optional[threading.Thread] = None
        self._exit_code = 0
        self._fatal_error: Optional[BaseException] = None

        persisted = state_store.load() if state_store else PersistedLoopState()
        self._cycle_number = persisted.cycle_number
        self._rate_limit_until = persisted.rate_limit_until
        if self._cycle_number:
            LOGGER.info("Restored loop state at cycle %d", self._cycle_number)

    # ----------------------------------------------------------- introspection
    @property
    def state(self) -> LoopState:
        with self._lock:
            return self._state

    @property
    def metrics(self) -> LoopMetrics:
        return self._metrics

    @property
    def cycle_number(self) -> int:
        return self._cycle_number

    @property
    def rate_limit_until(self) -> Optional[datetime]:
        with self._lock:
            return self._rate_limit_until

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "state": self._state.value,
                "cycle_number": self._cycle_number,
                "metrics": self._metrics.to_dict(),
                "rate_limit_until": self._rate_limit_until.isoformat() if self._rate_limit_until else None,
                "pending_messages": len(self._pending_messages),
                "audit_requested": self._audit_requested,
            }

    # --------------------------------------------------------------- lifecycle
    def start(self, background: bool = True) -> None:
        """Enter RUNNING. With ``background`` the run loop gets its own thread.

        Starting a running loop that is hibernating on a usage limit clears the
        limit and wakes it instead.
        """
        with self._lock:
            if self._state is LoopState.RUNNING and self._rate_limit_until is not None:
                LOGGER.info("Start requested during rate-limit hibernation; resuming now")
                self._set_rate_limit(None)
                self._timer.wake()
                return
            if self._state is not LoopState.STOPPED:
                raise LoopStateError(f"Cannot start: loop is in {self._state.value} state")
            self._restart_requested = False
            self._exit_code = 0
            self._fatal_error = None
            self._transition(LoopState.RUNNING)

        if background:
            self._thread = threading.Thread(target=self._run_in_background, name="psyche-loop", daemon=True)
            self._thread.start()

    def pause(self) -> None:
        with self._lock:
            if self._state is not LoopState.RUNNING:
                raise LoopStateError(f"Cannot pause: loop is in {self._state.value} state")
            self._transition(LoopState.PAUSED)

    def resume(self) -> None:
        with self._lock:
            if self._state is not LoopState.PAUSED:
                raise LoopStateError(f"Cannot resume: loop is in {self._state.value} state")
            self._transition(LoopState.RUNNING)
        self._timer.wake()

    def stop(self) -> None:
        with self._lock:
            if self._state is LoopState.STOPPED:
                return
            self._transition(LoopState.STOPPED)
        self._timer.wake()

    def wake(self) -> None:
        """Cut the current delay short; a pending rate-limit window ends now."""
        with self._lock:
            if self._rate_limit_until is not None:
                LOGGER.info("Wake requested during rate-limit hibernation; resuming now")
                self._set_rate_limit(None)
                self._clear_restart_context = True
        self._timer.wake()

    def request_audit(self) -> None:
        with self._lock:
            self._audit_requested = True
        self._timer.wake()

    def request_restart(self) -> None:
        with self._lock:
            self._emit("restart_requested", {"cycle_number": self._cycle_number})
            self._restart_requested = True
            if self._state is not LoopState.STOPPED:
                self._transition(LoopState.STOPPED)
        self._timer.wake()

    def inject_message(self, message: str) -> None:
        with self._lock:
            self._pending_messages.append(message)
            self._emit("message_injected", {"pending": len(self._pending_messages)})
        self._timer.wake()

    def wait(self, timeout: Optional[float] = None) -> int:
        """Join the background loop (if any) and return its exit code.

        A fatal error that stopped the background loop is raised here.
        """
        thread = self._thread
        if thread is not None:
            thread.join(timeout)
        with self._lock:
            error, self._fatal_error = self._fatal_error, None
        if error is not None:
            raise error
        return self._exit_code

    # ---------------------------------------------------------------- run loop
    def run_loop(self) -> int:
        """Run cycles until stopped; return 0, or 75 when a restart was requested.

        A fatal error leaves the loop STOPPED with exit code 1 and propagates.
        """
        LOGGER.info("Loop starting at cycle %d", self._cycle_number)
        try:
            self._run_cycles()
        except BaseException:
            with self._lock:
                self._exit_code = FATAL_EXIT_CODE
                if self._state is not LoopState.STOPPED:
                    self._transition(LoopState.STOPPED)
            raise

        with self._lock:
            self._exit_code = RESTART_EXIT_CODE if self._restart_requested else 0
        LOGGER.info("Loop exited with code %d after cycle %d", self._exit_code, self._cycle_number)
        return self._exit_code

    def _run_in_background(self) -> None:
        try:
            self.run_loop()
        except BaseException as error:
            LOGGER.exception("Loop stopped on a fatal error at cycle %d", self._cycle_number)
            with self._lock:
                self._fatal_error = error

    def _run_cycles(self) -> None:
        while True:
            state = self.state
            if state is LoopState.STOPPED:
                break
            if state is LoopState.PAUSED:
                self._timer.delay(self._config.cycle_delay_ms / 1000.0)
                continue
            if self._hibernating():
                continue

            if self._metrics.consecutive_idle_cycles >= self._config.max_consecutive_idle_cycles:
                if self._handle_idle():
                    continue
                break

            result = self.run_one_cycle()
            if self._detect_rate_limit(result):
                continue
            if self._has_pending_messages():
                continue
            self._timer.delay(self._config.cycle_delay_ms / 1000.0)

    def _hibernating(self) -> bool:
        with self._lock:
            until = self._rate_limit_until
        if until is None:
            return False
        now = self._clock()
        if now < until:
            self._timer.delay((until - now).total_seconds())
            return True
        LOGGER.info("Rate-limit window ended at %s; resuming", until.isoformat())
        with self._lock:
            self._set_rate_limit(None)
            self._clear_restart_context = True
        return False

    def _handle_idle(self) -> bool:
        """Run the idle handler; return False when the loop should stop."""
        outcome = self._idle_handler.handle_idle(self._on_log_entry)
        self._emit("idle_handler", {"action": outcome.action, "goal_count": outcome.goal_count})
        if outcome.action == "plan_created":
            self._metrics.consecutive_idle_cycles = 0
            return True
        LOGGER.info("Idle with no new plan (%s); stopping", outcome.action)
        self.stop()
        return False

    def _detect_rate_limit(self, result: CycleResult) -> bool:
        reset_at = parse_rate_limit_reset(result.summary, self._clock())
        if reset_at is None:
            return False
        LOGGER.warning("Usage limit reached; hibernating until %s", reset_at.isoformat())
        if self._rate_limit_manager is not None:
            try:
                self._rate_limit_manager.save_state_before_sleep(reset_at, result.task_id)
            except SubstrateError as error:
                LOGGER.warning("Could not save restart context: %s", error)
        with self._lock:
            self._set_rate_limit(reset_at)
        return True

    def _has_pending_messages(self) -> bool:
        with self._lock:
            return bool(self._pending_messages)

    # --------------------------------------------------------------- one cycle
    def run_one_cycle(self) -> CycleResult:
        if not self._cycle_lock.acquire(blocking=False):
            raise LoopStateError("A cycle is already in progress")
        try:
            self._cycle_number += 1
            cycle = self._cycle_number
            self._metrics.total_cycles += 1
            LOGGER.debug("Cycle %d starting", cycle)

            try:
                result = self._execute_cycle(cycle)
            except SubstrateError as error:
                LOGGER.warning("Cycle %d failed on substrate I/O: %s", cycle, error)
                self._metrics.failed_cycles += 1
                result = CycleResult(cycle_number=cycle, action="error", success=False, summary=str(error))

            self._run_audit_if_due(cycle)

            if self._clear_restart_context and self._rate_limit_manager is not None:
                self._clear_restart_context = False
                try:
                    self._rate_limit_manager.clear_restart_context()
                except SubstrateError as error:
                    LOGGER.warning("Could not clear restart context: %s", error)

            self._persist()
            self._emit(
                "cycle_complete",
                {"cycle_number": cycle, "action": result.action, "success": result.success, "task_id": result.task_id},
            )
            return result
        finally:
            self._cycle_lock.release()

    def _execute_cycle(self, cycle: int) -> CycleResult:
        messages = self._drain_messages()
        if messages:
            decision = self._ego.decide(messages, self._on_log_entry)
            self._ego.apply_decision(decision)
            self._emit("messages_handled", {"count": len(messages), "action": decision.action})

        dispatch = self._ego.dispatch_next(self._trigger_evaluator)
        if dispatch is None:
            self._metrics.idle_cycles += 1
            self._metrics.consecutive_idle_cycles += 1
            LOGGER.debug("Cycle %d idle: no actionable task", cycle)
            return CycleResult(cycle_number=cycle, action="idle", success=True, summary="No actionable task")

        self._metrics.consecutive_idle_cycles = 0
        task = TaskAssignment(task_id=dispatch.task_id, description=dispatch.description)
        self._emit("task_dispatched", {"task_id": task.task_id, "description": task.description})
        result = self._subconscious.execute(task, self._on_log_entry)

        if result.result == "success":
            self._metrics.successful_cycles += 1
            self._subconscious.mark_task_complete(task.task_id)
            if result.progress_entry:
                self._subconscious.log_progress(result.progress_entry)
            if result.skill_updates:
                self._subconscious.update_skills(result.skill_updates)
            if result.memory_updates:
                self._subconscious.update_memory(result.memory_updates)
        else:
            self._metrics.failed_cycles += 1
        self._subconscious.log_conversation(f"{task.task_id} ({result.result}): {result.summary}")

        if result.proposals:
            evaluations = self._superego.evaluate_proposals(result.proposals, self._on_log_entry)
            self._superego.apply_proposals(result.proposals, evaluations)

        if result.result in ("success", "partial"):
            self._reconsider(task, result)

        return CycleResult(
            cycle_number=cycle,
            action="dispatch",
            success=result.result == "success",
            summary=result.summary,
            task_id=task.task_id,
        )

    def _reconsider(self, task: TaskAssignment, result: TaskResult) -> None:
        evaluation: Optional[OutcomeEvaluation] = None
        if not self._config.evaluate_outcome_enabled:
            quality = compute_drive_rating(result) * 10
            if quality >= self._config.reconsideration_quality_threshold:
                evaluation = OutcomeEvaluation(outcome_matches_intent=True, quality_score=quality)
        if evaluation is None:
            evaluation = self._subconscious.evaluate_outcome(task, result, self._on_log_entry)

        self._emit(
            "reconsideration",
            {
                "task_id": task.task_id,
                "quality_score": evaluation.quality_score,
                "needs_reassessment": evaluation.needs_reassessment,
            },
        )
        if evaluation.quality_score < _LOW_QUALITY_SCORE or evaluation.needs_reassessment:
            LOGGER.info("Task %s needs reassessment; audit scheduled", task.task_id)
            with self._lock:
                self._audit_requested = True

    def _run_audit_if_due(self, cycle: int) -> None:
        with self._lock:
            due = cycle % self._config.audit_interval == 0 or self._audit_requested
            if not due:
                return
            self._audit_requested = False

        self._metrics.superego_audits += 1
        try:
            report = self._superego.audit(self._on_log_entry, cycle, self._tracker)
            self._emit("audit_complete", {"cycle_number": cycle, "findings": len(report.findings)})
        except SubstrateError as error:
            LOGGER.warning("Audit at cycle %d failed on substrate I/O: %s", cycle, error)
        finally:
            self._save_tracker()

    def _drain_messages(self) -> List[str]:
        with self._lock:
            messages, self._pending_messages = self._pending_messages, []
        return messages

    # ------------------------------------------------------------- bookkeeping
    def _transition(self, new_state: LoopState) -> None:
        old_state = self._state
        self._state = new_state
        self._emit("state_changed", {"from": old_state.value, "to": new_state.value})

    def _set_rate_limit(self, until: Optional[datetime]) -> None:
        self._rate_limit_until = until
        self._persist()

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        self._events.emit(LoopEvent(type=event_type, timestamp=self._clock(), data=data))

    def _persist(self) -> None:
        if self._state_store is None:
            return
        state = PersistedLoopState(
            cycle_number=self._cycle_number,
            last_cycle_at=self._clock(),
            rate_limit_until=self._rate_limit_until,
        )
        try:
            self._state_store.save(state)
        except OSError as error:
            LOGGER.warning("Could not persist loop state: %s", error)

    def _save_tracker(self) -> None:
        if self._tracker_path is None:
            return
        try:
            self._tracker.save(self._tracker_path)
        except OSError as error:
            LOGGER.warning("Could not persist finding tracker: %s", error)
