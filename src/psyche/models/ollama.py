"""Session launcher backed by a local Ollama server's chat API."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from .session import LaunchOptions, SessionLauncher, SessionRequest, SessionResult
from .stream_json import ProcessLogEntry

__all__ = ["HttpResponse", "OllamaSessionLauncher", "Transport"]

DEFAULT_MODEL = "qwen3:14b"
DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_TIMEOUT = 5 * 60.0


@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    body: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 400


Transport = Callable[[str, Dict[str, Any], float], HttpResponse]


class OllamaSessionLauncher(SessionLauncher):
    """POST each attempt to ``/api/chat`` with ``stream: false`` and JSON output.

    The model sees the substrate only through the prompt, so it should be
    paired with a prompt builder that inlines file contents.
    """

    def __init__(
        self,
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[Transport] = None,
        sleep: Optional[Callable[[float], None]] = None,
        monotonic: Optional[Callable[[], float]] = None,
    ) -> None:
        super().__init__(sleep=sleep, monotonic=monotonic)
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport or self._http_transport
        self._history: List[Dict[str, str]] = []

    @property
    def model(self) -> str:
        return self._model

    @property
    def history_length(self) -> int:
        return len(self._history)

    def reset_history(self) -> None:
        self._history = []

    def _attempt(self, request: SessionRequest, options: LaunchOptions) -> SessionResult:
        started = self._monotonic()
        if options.continue_session and self._history:
            messages = [*self._history, {"role": "user", "content": request.message}]
        else:
            messages = []
            if request.system_prompt:
                messages.append({"role": "system", "content": request.system_prompt})
            messages.append({"role": "user", "content": request.message})

        payload: Dict[str, Any] = {
            "model": options.model or self._model,
            "messages": messages,
            "stream": False,
            "format": "json",
        }

        try:
            response = self._transport(f"{self._base_url}/api/chat", payload, self._timeout)
        except OSError as error:
            return self._failure(started, self._describe_transport_error(error))

        if not response.ok:
            return self._failure(started, f"Ollama returned HTTP {response.status}: {response.body}")

        try:
            data = json.loads(response.body)
        except json.JSONDecodeError:
            return self._failure(started, f"Ollama returned invalid JSON: {response.body[:200]}")
        if not isinstance(data, dict):
            return self._failure(started, "Ollama returned an unexpected payload")
        if data.get("error"):
            return self._failure(started, f"Ollama error: {data['error']}")

        message = data.get("message")
        content = ""
        if isinstance(message, dict) and isinstance(message.get("content"), str):
            content = message["content"]

        if options.continue_session:
            self._history = [*messages, {"role": "assistant", "content": content}]
        else:
            self._history = []

        if options.on_log_entry is not None and content:
            options.on_log_entry(ProcessLogEntry("text", content))

        return SessionResult(raw_output=content, exit_code=0, duration_ms=self._elapsed_ms(started))

    def _failure(self, started: float, error: str) -> SessionResult:
        return SessionResult(raw_output="", exit_code=1, duration_ms=self._elapsed_ms(started), error=error)

    def _describe_transport_error(self, error: OSError) -> str:
        reason = getattr(error, "reason", None)
        if isinstance(error, ConnectionRefusedError) or isinstance(reason, ConnectionRefusedError):
            return f"Cannot reach Ollama at {self._base_url}: is the server running? ({error})"
        return str(error)

    def _http_transport(self, url: str, payload: Dict[str, Any], timeout: float) -> HttpResponse:
        """Default HTTP transport over ``urllib``."""
        import urllib.error
        import urllib.request

        request = urllib.request.Request(
            url,
            data=json.dumps(payload).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(request, timeout=timeout) as response:  # noqa: S310 - configured endpoint
                raw = response.read()
                status = getattr(response, "status", 200)
        except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
            body = error.read().decode("utf-8", errors="ignore")
            return HttpResponse(status=error.code, body=body)
        return HttpResponse(status=status, body=raw.decode("utf-8", errors="replace"))
