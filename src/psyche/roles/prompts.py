"""Per-role system prompts and permission-checked context assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from ..agents.permissions import PermissionChecker
from ..agents.types import AgentRole
from ..substrate.store import SubstrateFileNotFoundError, SubstrateStore
from ..substrate.types import SUBSTRATE_FILE_SPECS, SubstrateFileType

__all__ = ["FileContext", "PromptBuilder", "ROLE_PROMPTS"]

LOGGER = logging.getLogger(__name__)

ROLE_PROMPTS: Dict[AgentRole, str] = {
    AgentRole.EGO: (
        "You are the Ego: the executive planner of an autonomous agent.\n"
        "Read the plan and recent conversation, then choose exactly one action.\n"
        "Respond with ONLY a JSON object:\n"
        '{"action": "dispatch" | "update_plan" | "converse" | "idle", "reason": string,\n'
        ' "taskId": string | null, "plan": string | null, "entry": string | null}\n'
        "Use update_plan with the full new PLAN.md text in \"plan\"; use converse with the reply in \"entry\"."
    ),
    AgentRole.SUBCONSCIOUS: (
        "You are the Subconscious: the worker that executes one dispatched task.\n"
        "Do the work, then respond with ONLY a JSON object:\n"
        '{"result": "success" | "failure" | "partial", "summary": string, "progressEntry": string,\n'
        ' "skillUpdates": string | null, "memoryUpdates": string | null,\n'
        ' "proposals": [{"target": string, "content": string}]}\n'
        "skillUpdates and memoryUpdates replace SKILLS.md and MEMORY.md entirely when present.\n"
        "Use proposals for changes to files you cannot write, such as HABITS or SECURITY."
    ),
    AgentRole.SUPEREGO: (
        "You are the Superego: the auditor that reviews the substrate for drift, risk and inconsistency.\n"
        "Respond with ONLY a JSON object:\n"
        '{"findings": [{"severity": "info" | "warning" | "critical", "message": string}],\n'
        ' "proposalEvaluations": [{"approved": boolean, "reason": string}], "summary": string}\n'
        "When evaluating proposals, return one evaluation per proposal, in order."
    ),
    AgentRole.ID: (
        "You are the Id: the source of drives when the agent has nothing left to do.\n"
        "Propose goals consistent with the agent's values and drives.\n"
        "Respond with ONLY a JSON object:\n"
        '{"goalCandidates": [{"title": string, "description": string,\n'
        '  "priority": "high" | "medium" | "low", "confidence": number}]}'
    ),
}


@dataclass(slots=True)
class FileContext:
    file_type: SubstrateFileType
    file_name: str
    content: Optional[str]


class PromptBuilder:
    """Compose role prompts from templates and the files each role may read."""

    def __init__(
        self,
        store: SubstrateStore,
        checker: PermissionChecker,
        *,
        substrate_path: Optional[Path] = None,
        source_path: Optional[Path] = None,
        inline_context: bool = True,
    ) -> None:
        self._store = store
        self._checker = checker
        self._substrate_path = Path(substrate_path) if substrate_path else store.config.base_path
        self._source_path = source_path
        self._inline_context = inline_context

    def build_system_prompt(self, role: AgentRole) -> str:
        lines = [
            f"Substrate directory: {self._substrate_path}",
            f"Substrate files are located at: {self._substrate_path}/<FILENAME>.md",
        ]
        if self._source_path:
            lines.append(f"Source code: {self._source_path}")
        return f"{ROLE_PROMPTS[role]}\n\n=== ENVIRONMENT ===\n\n" + "\n".join(lines)

    def gather_context(self, role: AgentRole) -> List[FileContext]:
        """Read every file ``role`` may read. Missing optional files are skipped."""
        contexts: List[FileContext] = []
        for file_type in self._checker.get_readable_files(role):
            self._checker.assert_can_read(role, file_type)
            spec = SUBSTRATE_FILE_SPECS[file_type]
            try:
                content: Optional[str] = self._store.read(file_type).raw_markdown
            except SubstrateFileNotFoundError:
                if not spec.required:
                    continue
                LOGGER.warning("Required substrate file %s is missing", spec.file_name)
                content = None
            contexts.append(FileContext(file_type=file_type, file_name=spec.file_name, content=content))
        return contexts

    def get_context_references(self, role: AgentRole) -> str:
        return "\n".join(
            f"@{self._substrate_path}/{SUBSTRATE_FILE_SPECS[file_type].file_name}"
            for file_type in self._checker.get_readable_files(role)
        )

    def build_context_block(self, role: AgentRole) -> str:
        if not self._inline_context:
            return f"=== CONTEXT FILES ===\n{self.get_context_references(role)}"
        sections = []
        for context in self.gather_context(role):
            body = context.content if context.content is not None else "(missing)"
            sections.append(f"--- {context.file_name} ---\n{body.rstrip()}")
        return "=== CONTEXT ===\n\n" + "\n\n".join(sections)

    def build_message(self, role: AgentRole, instruction: str) -> str:
        return f"{self.build_context_block(role)}\n\n{instruction}"
