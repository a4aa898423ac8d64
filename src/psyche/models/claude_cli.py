"""Session launcher that drives the ``claude`` CLI in stream-json mode."""

from __future__ import annotations

from typing import Callable, List, Optional

from .process_runner import ProcessRunner, ProcessRunnerError
from .session import LaunchOptions, SessionLauncher, SessionRequest, SessionResult
from .stream_json import StreamJsonParser

__all__ = ["ClaudeSessionLauncher"]

DEFAULT_COMMAND = "claude"
DEFAULT_MODEL = "sonnet"


class ClaudeSessionLauncher(SessionLauncher):
    """Spawn one CLI process per attempt and parse its streamed events."""

    def __init__(
        self,
        runner: ProcessRunner,
        *,
        model: str = DEFAULT_MODEL,
        command: str = DEFAULT_COMMAND,
        timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None,
        sleep: Optional[Callable[[float], None]] = None,
        monotonic: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(sleep=sleep, monotonic=monotonic)
        self._runner = runner
        self._model = model
        self._command = command
        self._timeout = timeout
        self._idle_timeout = idle_timeout

    @property
    def model(self) -> str:
        return self._model

    def build_args(self, request: SessionRequest, model: Optional[str] = None) -> List[str]:
        return [
            "--print",
            "--verbose",
            "--dangerously-skip-permissions",
            "--model",
            model or self._model,
            "--output-format",
            "stream-json",
            "--system-prompt",
            request.system_prompt,
            request.message,
        ]

    def _attempt(self, request: SessionRequest, options: LaunchOptions) -> SessionResult:
        started = self._monotonic()
        parser = StreamJsonParser(options.on_log_entry)
        try:
            process_result = self._runner.run(
                self._command,
                self.build_args(request, options.model),
                cwd=options.cwd,
                on_stdout_chunk=parser.push,
                timeout=self._timeout,
                idle_timeout=self._idle_timeout,
            )
        except ProcessRunnerError as error:
            parser.flush()
            return SessionResult(
                raw_output=parser.text_content,
                exit_code=1,
                duration_ms=self._elapsed_ms(started),
                error=str(error),
            )
        parser.flush()

        exit_code = process_result.exit_code
        return SessionResult(
            raw_output=parser.text_content,
            exit_code=exit_code,
            duration_ms=self._elapsed_ms(started),
            error=(process_result.stderr or f"exit code {exit_code}") if exit_code != 0 else None,
        )
