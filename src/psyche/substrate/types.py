"""Substrate file catalogue: names, write modes and required flags."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict


class SubstrateFileType(str, Enum):
    """Logical substrate files addressed by the roles."""

    PLAN = "PLAN"
    MEMORY = "MEMORY"
    HABITS = "HABITS"
    SKILLS = "SKILLS"
    VALUES = "VALUES"
    ID = "ID"
    SECURITY = "SECURITY"
    CHARTER = "CHARTER"
    SUPEREGO = "SUPEREGO"
    PROGRESS = "PROGRESS"
    CONVERSATION = "CONVERSATION"
    ESCALATE = "ESCALATE"
    RESTART_CONTEXT = "RESTART_CONTEXT"


class WriteMode(str, Enum):
    """Whether a file is replaced wholesale or only grows by appends."""

    OVERWRITE = "OVERWRITE"
    APPEND = "APPEND"


@dataclass(frozen=True, slots=True)
class SubstrateFileSpec:
    file_name: str
    write_mode: WriteMode
    required: bool


SUBSTRATE_FILE_SPECS: Dict[SubstrateFileType, SubstrateFileSpec] = {
    SubstrateFileType.PLAN: SubstrateFileSpec("PLAN.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.MEMORY: SubstrateFileSpec("MEMORY.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.HABITS: SubstrateFileSpec("HABITS.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.SKILLS: SubstrateFileSpec("SKILLS.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.VALUES: SubstrateFileSpec("VALUES.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.ID: SubstrateFileSpec("ID.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.SECURITY: SubstrateFileSpec("SECURITY.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.CHARTER: SubstrateFileSpec("CHARTER.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.SUPEREGO: SubstrateFileSpec("SUPEREGO.md", WriteMode.OVERWRITE, True),
    SubstrateFileType.PROGRESS: SubstrateFileSpec("PROGRESS.md", WriteMode.APPEND, True),
    SubstrateFileType.CONVERSATION: SubstrateFileSpec("CONVERSATION.md", WriteMode.APPEND, True),
    SubstrateFileType.ESCALATE: SubstrateFileSpec("ESCALATIONS.md", WriteMode.APPEND, False),
    SubstrateFileType.RESTART_CONTEXT: SubstrateFileSpec(
        "restart-context.md", WriteMode.OVERWRITE, False
    ),
}


@dataclass(slots=True)
class SubstrateConfig:
    """Location of the substrate directory on disk."""

    base_path: Path

    def __post_init__(self) -> None:
        self.base_path = Path(self.base_path)

    def get_file_path(self, file_type: SubstrateFileType) -> Path:
        return self.base_path / SUBSTRATE_FILE_SPECS[file_type].file_name


@dataclass(slots=True)
class SubstrateFileContent:
    file_type: SubstrateFileType
    path: Path
    raw_markdown: str
