"""Starting content for freshly initialised substrate files."""

from __future__ import annotations

from typing import Dict

from .types import SubstrateFileType

_TEMPLATES: Dict[SubstrateFileType, str] = {
    SubstrateFileType.PLAN: "# Plan\n\n## Current Goal\n\n## Tasks\n",
    SubstrateFileType.MEMORY: "# Memory\n",
    SubstrateFileType.HABITS: "# Habits\n",
    SubstrateFileType.SKILLS: "# Skills\n",
    SubstrateFileType.VALUES: "# Values\n",
    SubstrateFileType.ID: "# Id\n\n## Drives\n",
    SubstrateFileType.SECURITY: "# Security\n",
    SubstrateFileType.CHARTER: "# Charter\n",
    SubstrateFileType.SUPEREGO: "# Superego\n\n## Audit Criteria\n",
    SubstrateFileType.PROGRESS: "# Progress\n\n",
    SubstrateFileType.CONVERSATION: "# Conversation\n\n",
    SubstrateFileType.ESCALATE: "# Escalations\n\n",
    SubstrateFileType.RESTART_CONTEXT: "# Restart Context\n\nNo hibernation in progress.\n",
}


def get_template(file_type: SubstrateFileType) -> str:
    return _TEMPLATES[file_type]
