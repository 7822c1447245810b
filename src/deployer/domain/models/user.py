"""User and RBAC domain models."""

from __future__ import annotations

from enum import Enum

from deployer.domain.models.base import DomainEntity


class Role(str, Enum):
    """User roles for RBAC."""

    ADMIN = "admin"
    RELEASE_MANAGER = "release_manager"
    DEPLOYER = "deployer"
    VIEWER = "viewer"


class Permission(str, Enum):
    """System permissions."""

    PIPELINE_TRIGGER = "pipeline:trigger"
    PIPELINE_READ = "pipeline:read"
    PIPELINE_APPROVE = "pipeline:approve"
    USER_MANAGE = "user:manage"


ROLE_PERMISSIONS: dict[Role, set[Permission]] = {
    Role.ADMIN: set(Permission),
    Role.RELEASE_MANAGER: {
        Permission.PIPELINE_TRIGGER, Permission.PIPELINE_READ,
        Permission.PIPELINE_APPROVE,
    },
    Role.DEPLOYER: {Permission.PIPELINE_TRIGGER, Permission.PIPELINE_READ},
    Role.VIEWER: {Permission.PIPELINE_READ},
}


class User(DomainEntity):
    """System user entity."""

    username: str
    email: str = ""
    hashed_password: str = ""
    role: Role = Role.VIEWER
    is_active: bool = True

    def has_permission(self, permission: Permission) -> bool:
        if not self.is_active:
            return False
        return permission in ROLE_PERMISSIONS.get(self.role, set())

    def has_any_permission(self, *permissions: Permission) -> bool:
        return any(self.has_permission(p) for p in permissions)
