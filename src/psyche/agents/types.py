"""Role and access-level enumerations shared by every layer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ..substrate.types import SubstrateFileType


class AgentRole(str, Enum):
    """Cognitive roles that take turns against the substrate."""

    EGO = "EGO"
    SUBCONSCIOUS = "SUBCONSCIOUS"
    SUPEREGO = "SUPEREGO"
    ID = "ID"


class FileAccessLevel(str, Enum):
    """Kinds of access a role may hold on a substrate file."""

    READ = "READ"
    WRITE = "WRITE"
    APPEND = "APPEND"


@dataclass(frozen=True, slots=True)
class FilePermission:
    file_type: SubstrateFileType
    access_level: FileAccessLevel
