"""Role identities and the permission matrix that scopes them."""

from .permissions import ROLE_PERMISSIONS, PermissionChecker, PermissionDeniedError
from .types import AgentRole, FileAccessLevel, FilePermission

__all__ = [
    "AgentRole",
    "FileAccessLevel",
    "FilePermission",
    "PermissionChecker",
    "PermissionDeniedError",
    "ROLE_PERMISSIONS",
]
