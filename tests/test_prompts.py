from __future__ import annotations

from pathlib import Path

from psyche.agents.permissions import PermissionChecker
from psyche.agents.types import AgentRole
from psyche.roles.prompts import ROLE_PROMPTS, PromptBuilder
from psyche.substrate.store import SubstrateStore
from psyche.substrate.types import SubstrateFileType


def test_system_prompt_carries_role_charter_and_environment(store: SubstrateStore, tmp_path: Path) -> None:
    builder = PromptBuilder(store, PermissionChecker(), source_path=tmp_path / "src")

    prompt = builder.build_system_prompt(AgentRole.SUPEREGO)

    assert prompt.startswith(ROLE_PROMPTS[AgentRole.SUPEREGO])
    assert "=== ENVIRONMENT ===" in prompt
    assert f"Substrate directory: {store.config.base_path}" in prompt
    assert f"Source code: {tmp_path / 'src'}" in prompt


def test_context_contains_only_readable_files(store: SubstrateStore) -> None:
    store.write(SubstrateFileType.SECURITY, "# Security\n\nsecret policy\n")
    store.write(SubstrateFileType.VALUES, "# Values\n\nbe kind\n")
    builder = PromptBuilder(store, PermissionChecker())

    id_message = builder.build_message(AgentRole.ID, "Propose goals.")
    superego_message = builder.build_message(AgentRole.SUPEREGO, "Audit.")

    assert "--- VALUES.md ---" in id_message
    assert "be kind" in id_message
    assert "SECURITY.md" not in id_message
    assert "secret policy" not in id_message
    assert "secret policy" in superego_message
    assert id_message.endswith("Propose goals.")


def test_missing_optional_files_are_skipped_and_required_marked(store: SubstrateStore) -> None:
    store.path_for(SubstrateFileType.ESCALATE).unlink()
    store.path_for(SubstrateFileType.MEMORY).unlink()
    builder = PromptBuilder(store, PermissionChecker())

    contexts = {context.file_type: context for context in builder.gather_context(AgentRole.SUPEREGO)}

    assert SubstrateFileType.ESCALATE not in contexts
    assert contexts[SubstrateFileType.MEMORY].content is None
    assert "--- MEMORY.md ---\n(missing)" in builder.build_context_block(AgentRole.SUPEREGO)


def test_reference_mode_lists_paths_instead_of_bodies(store: SubstrateStore) -> None:
    store.write(SubstrateFileType.MEMORY, "# Memory\n\ndo not inline me\n")
    builder = PromptBuilder(store, PermissionChecker(), inline_context=False)

    block = builder.build_context_block(AgentRole.SUBCONSCIOUS)

    assert f"@{store.config.base_path}/MEMORY.md" in block
    assert f"@{store.config.base_path}/PLAN.md" in block
    assert "do not inline me" not in block
    assert "CHARTER.md" not in block
