"""Static capability matrix and the assertion API used before every substrate touch."""

from __future__ import annotations

from typing import Dict, List

from ..substrate.types import SubstrateFileType
from .types import AgentRole, FileAccessLevel, FilePermission

__all__ = ["PermissionChecker", "PermissionDeniedError", "ROLE_PERMISSIONS"]


def _grant(level: FileAccessLevel, *file_types: SubstrateFileType) -> List[FilePermission]:
    return [FilePermission(file_type, level) for file_type in file_types]


_F = SubstrateFileType
_READ = FileAccessLevel.READ
_WRITE = FileAccessLevel.WRITE
_APPEND = FileAccessLevel.APPEND

ROLE_PERMISSIONS: Dict[AgentRole, List[FilePermission]] = {
    AgentRole.EGO: [
        *_grant(
            _READ,
            _F.PLAN,
            _F.MEMORY,
            _F.HABITS,
            _F.SKILLS,
            _F.VALUES,
            _F.ID,
            _F.CHARTER,
            _F.PROGRESS,
            _F.CONVERSATION,
        ),
        *_grant(_WRITE, _F.PLAN),
        *_grant(_APPEND, _F.CONVERSATION),
    ],
    AgentRole.SUBCONSCIOUS: [
        *_grant(_READ, _F.PLAN, _F.MEMORY, _F.HABITS, _F.SKILLS, _F.VALUES, _F.PROGRESS),
        *_grant(_WRITE, _F.PLAN, _F.SKILLS, _F.MEMORY),
        *_grant(_APPEND, _F.PROGRESS, _F.CONVERSATION),
    ],
    AgentRole.SUPEREGO: [
        *_grant(_READ, *SubstrateFileType),
        # Governance files the auditor may amend when it approves a proposal.
        *_grant(_WRITE, _F.HABITS, _F.SECURITY),
        *_grant(_APPEND, _F.PROGRESS, _F.ESCALATE),
    ],
    AgentRole.ID: _grant(_READ, _F.ID, _F.VALUES, _F.PLAN, _F.PROGRESS, _F.SKILLS, _F.MEMORY),
}


class PermissionDeniedError(PermissionError):
    """Raised when a role touches a file outside its capability matrix."""

    def __init__(self, role: AgentRole, level: FileAccessLevel, file_type: SubstrateFileType) -> None:
        self.role = role
        self.level = level
        self.file_type = file_type
        super().__init__(f"{role.value} does not have {level.value} access to {file_type.value}")


class PermissionChecker:
    """Answer and enforce (role, file, level) questions against ``ROLE_PERMISSIONS``."""

    def __init__(self, permissions: Dict[AgentRole, List[FilePermission]] | None = None) -> None:
        self._permissions = permissions if permissions is not None else ROLE_PERMISSIONS

    def has(self, role: AgentRole, file_type: SubstrateFileType, level: FileAccessLevel) -> bool:
        return FilePermission(file_type, level) in self._permissions.get(role, [])

    def can_read(self, role: AgentRole, file_type: SubstrateFileType) -> bool:
        return self.has(role, file_type, FileAccessLevel.READ)

    def can_write(self, role: AgentRole, file_type: SubstrateFileType) -> bool:
        return self.has(role, file_type, FileAccessLevel.WRITE)

    def can_append(self, role: AgentRole, file_type: SubstrateFileType) -> bool:
        return self.has(role, file_type, FileAccessLevel.APPEND)

    def assert_can_read(self, role: AgentRole, file_type: SubstrateFileType) -> None:
        if not self.can_read(role, file_type):
            raise PermissionDeniedError(role, FileAccessLevel.READ, file_type)

    def assert_can_write(self, role: AgentRole, file_type: SubstrateFileType) -> None:
        if not self.can_write(role, file_type):
            raise PermissionDeniedError(role, FileAccessLevel.WRITE, file_type)

    def assert_can_append(self, role: AgentRole, file_type: SubstrateFileType) -> None:
        if not self.can_append(role, file_type):
            raise PermissionDeniedError(role, FileAccessLevel.APPEND, file_type)

    def get_readable_files(self, role: AgentRole) -> List[SubstrateFileType]:
        return self._files_with(role, FileAccessLevel.READ)

    def get_writable_files(self, role: AgentRole) -> List[SubstrateFileType]:
        return self._files_with(role, FileAccessLevel.WRITE)

    def _files_with(self, role: AgentRole, level: FileAccessLevel) -> List[SubstrateFileType]:
        return [
            permission.file_type
            for permission in self._permissions.get(role, [])
            if permission.access_level is level
        ]
