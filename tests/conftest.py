from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Union

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from psyche.agents.permissions import PermissionChecker  # noqa: E402
from psyche.models.session import LaunchOptions, SessionLauncher, SessionRequest, SessionResult  # noqa: E402
from psyche.roles.base import RoleRuntime  # noqa: E402
from psyche.roles.prompts import PromptBuilder  # noqa: E402
from psyche.substrate.store import SubstrateStore, initialize_substrate  # noqa: E402
from psyche.substrate.types import SubstrateConfig, SubstrateFileType  # noqa: E402

FIXED_NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

SAMPLE_PLAN = """# Plan

## Current Goal
Ship the first release

## Tasks
- [x] Write the changelog
- [ ] Prepare the release
  - [ ] Tag the commit
  - [ ] Publish the package
- [~] Announce it WHEN `test -f released.flag`
"""


class ScriptedLauncher(SessionLauncher):
    """Session launcher that replays queued replies instead of calling a backend."""

    def __init__(self) -> None:
        super().__init__(sleep=lambda _: None, monotonic=lambda: 0.0)
        self.replies: List[Union[str, SessionResult]] = []
        self.requests: List[SessionRequest] = []
        self.options: List[LaunchOptions] = []

    def queue(self, *replies: Union[str, SessionResult]) -> None:
        self.replies.extend(replies)

    def queue_json(self, payload: Dict[str, Any]) -> None:
        self.replies.append(json.dumps(payload))

    def queue_failure(self, error: str = "backend unavailable") -> None:
        self.replies.append(SessionResult(raw_output="", exit_code=1, duration_ms=0, error=error))

    def _attempt(self, request: SessionRequest, options: LaunchOptions) -> SessionResult:
        self.requests.append(request)
        self.options.append(options)
        if not self.replies:
            return SessionResult(raw_output="", exit_code=1, duration_ms=0, error="no scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, SessionResult):
            return reply
        return SessionResult(raw_output=reply, exit_code=0, duration_ms=1)


@pytest.fixture()
def store(tmp_path: Path) -> SubstrateStore:
    """Substrate initialised from templates, with a fixed append clock."""

    config = SubstrateConfig(tmp_path / "substrate")
    initialize_substrate(config)
    return SubstrateStore(config, clock=lambda: FIXED_NOW)


@pytest.fixture()
def launcher() -> ScriptedLauncher:
    return ScriptedLauncher()


@pytest.fixture()
def runtime(store: SubstrateStore, launcher: ScriptedLauncher) -> RoleRuntime:
    checker = PermissionChecker()
    return RoleRuntime(
        store=store,
        checker=checker,
        prompts=PromptBuilder(store, checker),
        launcher=launcher,
    )


def write_plan(store: SubstrateStore, markdown: str) -> None:
    store.write(SubstrateFileType.PLAN, markdown)


def read(store: SubstrateStore, file_type: SubstrateFileType) -> str:
    return store.read(file_type).raw_markdown
