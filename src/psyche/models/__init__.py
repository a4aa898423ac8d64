"""Convenience exports for the session launch layer."""

from .claude_cli import ClaudeSessionLauncher
from .json_extract import JsonExtractionError, extract_json
from .ollama import HttpResponse, OllamaSessionLauncher
from .process_runner import (
    ProcessResult,
    ProcessRunner,
    ProcessRunnerError,
    ProcessSpawnError,
    ProcessTimeoutError,
    SubprocessRunner,
)
from .rate_limit import parse_rate_limit_reset
from .session import LaunchOptions, SessionLauncher, SessionRequest, SessionResult
from .stream_json import LogEntryCallback, ProcessLogEntry, StreamJsonParser

__all__ = [
    "ClaudeSessionLauncher",
    "HttpResponse",
    "JsonExtractionError",
    "LaunchOptions",
    "LogEntryCallback",
    "OllamaSessionLauncher",
    "ProcessLogEntry",
    "ProcessResult",
    "ProcessRunner",
    "ProcessRunnerError",
    "ProcessSpawnError",
    "ProcessTimeoutError",
    "SessionLauncher",
    "SessionRequest",
    "SessionResult",
    "StreamJsonParser",
    "SubprocessRunner",
    "extract_json",
    "parse_rate_limit_reset",
]
