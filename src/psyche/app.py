"""Composition root shared by the CLI and the tests."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .agents.permissions import PermissionChecker
from .config import AppConfig
from .loop.events import EventSink
from .loop.idle_handler import IdleHandler
from .loop.orchestrator import LoopOrchestrator
from .loop.rate_limit_state import RateLimitStateManager
from .loop.state_store import LoopStateStore
from .loop.timer import LoopTimer
from .models.claude_cli import DEFAULT_MODEL as CLAUDE_DEFAULT_MODEL
from .models.claude_cli import ClaudeSessionLauncher
from .models.ollama import DEFAULT_MODEL as OLLAMA_DEFAULT_MODEL
from .models.ollama import OllamaSessionLauncher
from .models.process_runner import ProcessRunner, SubprocessRunner
from .models.session import LaunchOptions, SessionLauncher
from .planning.plan_parser import TriggerEvaluator
from .planning.triggers import ShellTriggerEvaluator
from .roles.base import RoleRuntime
from .roles.ego import Ego
from .roles.finding_tracker import FindingTracker
from .roles.id import Id
from .roles.prompts import PromptBuilder
from .roles.subconscious import Subconscious
from .roles.superego import Superego
from .substrate.store import SubstrateStore
from .substrate.types import SubstrateConfig
from .supervisor.process_tracker import ProcessKiller, ProcessTracker

__all__ = ["Application", "build_application"]

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class Application:
    config: AppConfig
    store: SubstrateStore
    checker: PermissionChecker
    tracker: FindingTracker
    process_tracker: ProcessTracker
    launcher: SessionLauncher
    ego: Ego
    subconscious: Subconscious
    superego: Superego
    id: Id
    idle_handler: IdleHandler
    rate_limit_manager: RateLimitStateManager
    orchestrator: LoopOrchestrator

    def close(self) -> None:
        self.orchestrator.stop()
        self.process_tracker.stop()


def build_application(
    config: AppConfig,
    *,
    launcher: Optional[SessionLauncher] = None,
    runner: Optional[ProcessRunner] = None,
    killer: Optional[ProcessKiller] = None,
    timer: Optional[LoopTimer] = None,
    event_sink: Optional[EventSink] = None,
    clock: Optional[Callable[[], datetime]] = None,
    trigger_evaluator: Optional[TriggerEvaluator] = None,
) -> Application:
    """Wire store, roles and orchestrator from ``config``.

    The keyword arguments replace the real backend, process handling, timer
    and clock; anything left out is built from configuration.
    """
    substrate_path = config.substrate.path
    store = SubstrateStore(SubstrateConfig(substrate_path), clock=clock)
    checker = PermissionChecker()

    process_tracker = ProcessTracker(
        killer,
        grace_period=config.supervisor.grace_period_seconds,
        reaper_interval=config.supervisor.reaper_interval_seconds,
    )
    if launcher is None:
        launcher = _build_launcher(config, runner or _build_runner(config, process_tracker))
    inline_context = not isinstance(launcher, ClaudeSessionLauncher)

    prompts = PromptBuilder(
        store,
        checker,
        substrate_path=substrate_path,
        source_path=config.substrate.source_path,
        inline_context=inline_context,
    )
    runtime = RoleRuntime(
        store=store,
        checker=checker,
        prompts=prompts,
        launcher=launcher,
        launch_defaults=LaunchOptions(
            max_retries=config.session.max_retries,
            retry_delay_ms=config.session.retry_delay_ms,
        ),
        working_directory=config.substrate.source_path or substrate_path,
    )

    ego = Ego(runtime)
    subconscious = Subconscious(
        runtime,
        reassessment_threshold=config.loop.reconsideration_quality_threshold,
    )
    superego = Superego(runtime)
    id_role = Id(runtime)
    idle_handler = IdleHandler(ego, id_role, superego, store)
    rate_limit_manager = RateLimitStateManager(store, clock=clock)

    tracker_path = config.paths.finding_tracker_file
    tracker = FindingTracker.load(
        tracker_path,
        consecutive_threshold=config.escalation.consecutive_threshold,
        max_cycle_gap=config.escalation.max_cycle_gap,
    )

    if trigger_evaluator is None and config.triggers.shell_enabled:
        trigger_evaluator = ShellTriggerEvaluator(
            cwd=config.substrate.source_path or substrate_path,
            timeout=config.triggers.timeout_seconds,
        )

    orchestrator = LoopOrchestrator(
        ego=ego,
        subconscious=subconscious,
        superego=superego,
        idle_handler=idle_handler,
        tracker=tracker,
        config=config.loop,
        timer=timer,
        event_sink=event_sink,
        state_store=LoopStateStore(config.paths.loop_state_file),
        tracker_path=tracker_path,
        rate_limit_manager=rate_limit_manager,
        trigger_evaluator=trigger_evaluator,
        clock=clock,
    )
    LOGGER.debug("Application built with %s backend", config.backend.kind)

    return Application(
        config=config,
        store=store,
        checker=checker,
        tracker=tracker,
        process_tracker=process_tracker,
        launcher=launcher,
        ego=ego,
        subconscious=subconscious,
        superego=superego,
        id=id_role,
        idle_handler=idle_handler,
        rate_limit_manager=rate_limit_manager,
        orchestrator=orchestrator,
    )


def _build_runner(config: AppConfig, process_tracker: ProcessTracker) -> ProcessRunner:
    return SubprocessRunner(
        process_tracker,
        timeout=config.backend.timeout_seconds,
        idle_timeout=config.backend.idle_timeout_seconds,
    )


def _build_launcher(config: AppConfig, runner: ProcessRunner) -> SessionLauncher:
    backend = config.backend
    if backend.kind == "ollama":
        return OllamaSessionLauncher(
            model=backend.model or OLLAMA_DEFAULT_MODEL,
            base_url=backend.base_url,
            timeout=backend.timeout_seconds,
        )
    return ClaudeSessionLauncher(
        runner,
        model=backend.model or CLAUDE_DEFAULT_MODEL,
        command=backend.command,
        timeout=backend.timeout_seconds,
        idle_timeout=backend.idle_timeout_seconds,
    )
