"""Collaborators shared by every role policy."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from ..agents.permissions import PermissionChecker
from ..agents.types import AgentRole
from ..models.session import LaunchOptions, SessionLauncher, SessionRequest, SessionResult
from ..models.stream_json import LogEntryCallback
from ..substrate.store import SubstrateStore
from .prompts import PromptBuilder


@dataclass(slots=True)
class RoleRuntime:
    """Store, permission checker, prompt builder and launcher for one role."""

    store: SubstrateStore
    checker: PermissionChecker
    prompts: PromptBuilder
    launcher: SessionLauncher
    launch_defaults: LaunchOptions = field(default_factory=LaunchOptions)
    working_directory: Optional[Path] = None

    def launch(
        self,
        role: AgentRole,
        message: str,
        on_log_entry: Optional[LogEntryCallback] = None,
    ) -> SessionResult:
        request = SessionRequest(system_prompt=self.prompts.build_system_prompt(role), message=message)
        options = replace(
            self.launch_defaults,
            cwd=self.working_directory or self.launch_defaults.cwd,
            on_log_entry=on_log_entry,
        )
        return self.launcher.launch(request, options)
