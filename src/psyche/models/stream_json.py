"""Incremental parser for the Claude CLI ``stream-json`` output format."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, Dict, Literal, Optional

__all__ = ["LogEntryCallback", "ProcessLogEntry", "StreamJsonParser"]

ProcessLogEntryType = Literal["thinking", "text", "tool_use", "tool_result", "status"]


@dataclass(frozen=True, slots=True)
class ProcessLogEntry:
    """One observable unit of backend activity."""

    type: ProcessLogEntryType
    content: str


LogEntryCallback = Callable[[ProcessLogEntry], None]


class StreamJsonParser:
    """Turn newline-delimited JSON events into log entries and a final text payload.

    Partial lines are held until their newline arrives. Lines that are not JSON,
    or events of unknown shape, are reported as ``status`` entries instead of
    interrupting the stream.
    """

    def __init__(self, on_entry: Optional[LogEntryCallback] = None) -> None:
        self._on_entry = on_entry
        self._buffer = ""
        self._accumulated_text = ""
        self._result_text: Optional[str] = None

    @property
    def text_content(self) -> str:
        """Authoritative result text when one arrived, otherwise the accumulated text blocks."""
        if self._result_text is not None:
            return self._result_text
        return self._accumulated_text

    def push(self, chunk: str) -> None:
        self._buffer += chunk
        while True:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1 :]
            if not line.strip():
                continue
            self._parse_line(line)

    def flush(self) -> None:
        if self._buffer.strip():
            self._parse_line(self._buffer)
        self._buffer = ""

    def _emit(self, entry_type: ProcessLogEntryType, content: str) -> None:
        if self._on_entry is not None:
            self._on_entry(ProcessLogEntry(entry_type, content))

    def _parse_line(self, line: str) -> None:
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            self._emit("status", line)
            return
        if not isinstance(event, dict):
            self._emit("status", line)
            return

        event_type = event.get("type")
        if event_type == "system":
            model = event.get("model") or "unknown"
            version = event.get("claude_code_version") or ""
            self._emit("status", f"init: model={model} v{version}")
        elif event_type == "assistant":
            self._parse_assistant(event)
        elif event_type == "result":
            self._parse_result(event)
        else:
            self._emit("status", str(event_type) if event_type is not None else "unknown")

    def _parse_assistant(self, event: Dict[str, Any]) -> None:
        message = event.get("message")
        if not isinstance(message, dict):
            return
        content = message.get("content")
        if not isinstance(content, list):
            return
        for block in content:
            if not isinstance(block, dict):
                self._emit("status", "unknown_block")
                continue
            entry_type, text = self._classify_block(block)
            if entry_type == "text":
                self._accumulated_text += text
            self._emit(entry_type, text)

    def _parse_result(self, event: Dict[str, Any]) -> None:
        result = event.get("result")
        if isinstance(result, str):
            self._result_text = result
        parts: list[str] = []
        subtype = event.get("subtype")
        if subtype:
            parts.append(str(subtype))
        cost = event.get("total_cost_usd")
        if isinstance(cost, (int, float)):
            parts.append(f"${cost:.4f}")
        duration = event.get("duration_ms")
        if duration is not None:
            parts.append(f"{duration}ms")
        self._emit("status", f"result: {', '.join(parts)}")

    @staticmethod
    def _classify_block(block: Dict[str, Any]) -> tuple[ProcessLogEntryType, str]:
        block_type = block.get("type")
        if block_type == "thinking":
            return "thinking", str(block.get("thinking") or "")
        if block_type == "text":
            return "text", str(block.get("text") or "")
        if block_type == "tool_use":
            name = block.get("name") or "unknown"
            tool_input = block.get("input")
            rendered = json.dumps(tool_input) if tool_input else "{}"
            return "tool_use", f"{name}: {rendered}"
        if block_type == "tool_result":
            content = block.get("content")
            if isinstance(content, str):
                return "tool_result", content
            return "tool_result", json.dumps(content if content is not None else "")
        return "status", str(block_type) if block_type else "unknown_block"
