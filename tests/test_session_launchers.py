from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from psyche.models.claude_cli import ClaudeSessionLauncher
from psyche.models.ollama import HttpResponse, OllamaSessionLauncher
from psyche.models.process_runner import ProcessResult, ProcessRunner, ProcessTimeoutError, StdoutCallback
from psyche.models.session import LaunchOptions, SessionLauncher, SessionRequest, SessionResult
from psyche.models.stream_json import ProcessLogEntry

REQUEST = SessionRequest(system_prompt="You are the Ego.", message="What next?")


class FlakyLauncher(SessionLauncher):
    def __init__(self, results: List[SessionResult]) -> None:
        self.sleeps: List[float] = []
        super().__init__(sleep=self.sleeps.append)
        self._results = list(results)
        self.attempts = 0

    def _attempt(self, request: SessionRequest, options: LaunchOptions) -> SessionResult:
        self.attempts += 1
        return self._results.pop(0)


def _fail(error: str = "boom") -> SessionResult:
    return SessionResult(raw_output="", exit_code=1, duration_ms=5, error=error)


def _ok(output: str = "{}") -> SessionResult:
    return SessionResult(raw_output=output, exit_code=0, duration_ms=5)


def test_success_is_exactly_exit_code_zero() -> None:
    assert _ok().success
    assert not _fail().success
    assert not SessionResult(raw_output="x", exit_code=2, duration_ms=0).success


def test_launch_retries_until_success_with_delay_between_attempts() -> None:
    launcher = FlakyLauncher([_fail(), _fail(), _ok("done")])

    result = launcher.launch(REQUEST, LaunchOptions(max_retries=3, retry_delay_ms=250))

    assert result.raw_output == "done"
    assert launcher.attempts == 3
    assert launcher.sleeps == [0.25, 0.25]


def test_launch_returns_last_failure_after_exhausting_attempts() -> None:
    launcher = FlakyLauncher([_fail("first"), _fail("second")])

    result = launcher.launch(REQUEST, LaunchOptions(max_retries=2, retry_delay_ms=0))

    assert not result.success
    assert result.error == "second"
    assert launcher.sleeps == []


def test_default_options_make_a_single_attempt() -> None:
    launcher = FlakyLauncher([_fail(), _ok()])

    result = launcher.launch(REQUEST)

    assert not result.success
    assert launcher.attempts == 1


class FakeRunner(ProcessRunner):
    def __init__(
        self,
        chunks: Sequence[str] = (),
        exit_code: int = 0,
        stderr: str = "",
        error: Optional[Exception] = None,
    ) -> None:
        self.chunks = list(chunks)
        self.exit_code = exit_code
        self.stderr = stderr
        self.error = error
        self.calls: List[Dict[str, Any]] = []

    def run(
        self,
        command: str,
        args: Sequence[str],
        *,
        cwd: Optional[Path] = None,
        on_stdout_chunk: Optional[StdoutCallback] = None,
        timeout: Optional[float] = None,
        idle_timeout: Optional[float] = None,
    ) -> ProcessResult:
        self.calls.append({"command": command, "args": list(args), "cwd": cwd, "timeout": timeout})
        for chunk in self.chunks:
            if on_stdout_chunk is not None:
                on_stdout_chunk(chunk)
        if self.error is not None:
            raise self.error
        return ProcessResult(stdout="".join(self.chunks), stderr=self.stderr, exit_code=self.exit_code)


def _stream(*events: Dict[str, Any]) -> List[str]:
    return [json.dumps(event) + "\n" for event in events]


def test_claude_launcher_builds_cli_invocation(tmp_path: Path) -> None:
    runner = FakeRunner(_stream({"type": "result", "subtype": "success", "result": '{"action": "idle"}'}))
    launcher = ClaudeSessionLauncher(runner, model="opus", command="claude-bin", timeout=60)

    result = launcher.launch(REQUEST, LaunchOptions(cwd=tmp_path))

    assert result.success
    assert result.raw_output == '{"action": "idle"}'
    call = runner.calls[0]
    assert call["command"] == "claude-bin"
    assert call["cwd"] == tmp_path
    assert call["timeout"] == 60
    assert call["args"] == [
        "--print",
        "--verbose",
        "--dangerously-skip-permissions",
        "--model",
        "opus",
        "--output-format",
        "stream-json",
        "--system-prompt",
        "You are the Ego.",
        "What next?",
    ]


def test_claude_launcher_streams_entries_and_honours_model_override() -> None:
    entries: List[ProcessLogEntry] = []
    runner = FakeRunner(_stream({"type": "assistant", "message": {"content": [{"type": "text", "text": "hi"}]}}))
    launcher = ClaudeSessionLauncher(runner)

    result = launcher.launch(REQUEST, LaunchOptions(on_log_entry=entries.append, model="haiku"))

    assert result.raw_output == "hi"
    assert entries == [ProcessLogEntry("text", "hi")]
    assert runner.calls[0]["args"][4] == "haiku"


def test_claude_launcher_reports_nonzero_exit() -> None:
    launcher = ClaudeSessionLauncher(FakeRunner(exit_code=2, stderr="auth required"))

    result = launcher.launch(REQUEST)

    assert not result.success
    assert result.exit_code == 2
    assert result.error == "auth required"

    silent = ClaudeSessionLauncher(FakeRunner(exit_code=3)).launch(REQUEST)
    assert silent.error == "exit code 3"


def test_claude_launcher_turns_runner_errors_into_failed_results() -> None:
    runner = FakeRunner(
        _stream({"type": "assistant", "message": {"content": [{"type": "text", "text": "partial"}]}}),
        error=ProcessTimeoutError("Process idle for 300s with no output"),
    )
    launcher = ClaudeSessionLauncher(runner, sleep=lambda _: None)

    result = launcher.launch(REQUEST, LaunchOptions(max_retries=2, retry_delay_ms=0))

    assert not result.success
    assert result.exit_code == 1
    assert result.raw_output == "partial"
    assert "idle" in (result.error or "")
    assert len(runner.calls) == 2


class FakeTransport:
    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, url: str, payload: Dict[str, Any], timeout: float) -> HttpResponse:
        self.calls.append({"url": url, "payload": payload, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _chat(content: str) -> HttpResponse:
    return HttpResponse(status=200, body=json.dumps({"message": {"role": "assistant", "content": content}}))


def test_ollama_posts_chat_request_and_returns_content() -> None:
    transport = FakeTransport(_chat('{"action": "idle"}'))
    entries: List[ProcessLogEntry] = []
    launcher = OllamaSessionLauncher(model="qwen3:14b", base_url="http://ollama:11434/", transport=transport)

    result = launcher.launch(REQUEST, LaunchOptions(on_log_entry=entries.append))

    assert result.success
    assert result.raw_output == '{"action": "idle"}'
    call = transport.calls[0]
    assert call["url"] == "http://ollama:11434/api/chat"
    assert call["payload"]["stream"] is False
    assert call["payload"]["format"] == "json"
    assert call["payload"]["messages"] == [
        {"role": "system", "content": "You are the Ego."},
        {"role": "user", "content": "What next?"},
    ]
    assert entries == [ProcessLogEntry("text", '{"action": "idle"}')]
    assert launcher.history_length == 0


def test_ollama_continues_a_session_when_asked() -> None:
    transport = FakeTransport(_chat("first"), _chat("second"))
    launcher = OllamaSessionLauncher(transport=transport)
    options = LaunchOptions(continue_session=True)

    launcher.launch(REQUEST, options)
    launcher.launch(SessionRequest(system_prompt="ignored", message="And then?"), options)

    messages = transport.calls[1]["payload"]["messages"]
    assert [message["role"] for message in messages] == ["system", "user", "assistant", "user"]
    assert messages[-1]["content"] == "And then?"
    assert launcher.history_length == 5

    launcher.reset_history()
    assert launcher.history_length == 0


def test_ollama_failures_are_failure_results() -> None:
    transport = FakeTransport(
        ConnectionRefusedError(111, "Connection refused"),
        HttpResponse(status=500, body="model not loaded"),
        HttpResponse(status=200, body="not json"),
        HttpResponse(status=200, body=json.dumps({"error": "out of memory"})),
    )
    launcher = OllamaSessionLauncher(base_url="http://localhost:11434", transport=transport)

    refused = launcher.launch(REQUEST)
    http_error = launcher.launch(REQUEST)
    bad_json = launcher.launch(REQUEST)
    model_error = launcher.launch(REQUEST)

    assert "is the server running?" in (refused.error or "")
    assert http_error.error == "Ollama returned HTTP 500: model not loaded"
    assert "invalid JSON" in (bad_json.error or "")
    assert model_error.error == "Ollama error: out of memory"
    assert all(not result.success for result in (refused, http_error, bad_json, model_error))
