"""Closed resource/action enums and the fixed-shape permission matrix stored per user."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict


class Role(str, Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"


class Resource(str, Enum):
    FORKLIFTS = "forklifts"
    USERS = "users"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


class ActionFlags(BaseModel):
    """Allowed actions on one resource."""

    model_config = ConfigDict(extra="ignore")

    create: bool = False
    read: bool = False
    update: bool = False
    delete: bool = False

    def allows(self, action: Action) -> bool:
        return getattr(self, action.value) is True


class PermissionMatrix(BaseModel):
    """
    Resource x action grant table.

    Unknown resources or actions in stored JSON are dropped; missing ones default to denied.
    """

    model_config = ConfigDict(extra="ignore")

    forklifts: ActionFlags = ActionFlags()
    users: ActionFlags = ActionFlags()

    def allows(self, resource: Resource, action: Action) -> bool:
        return getattr(self, resource.value).allows(action)

    @classmethod
    def from_stored(cls, data: dict[str, Any] | None) -> "PermissionMatrix":
        return cls.model_validate(data or {})


def _flags(create: bool, read: bool, update: bool, delete: bool) -> ActionFlags:
    return ActionFlags(create=create, read=read, update=update, delete=delete)


DEFAULT_PERMISSIONS: dict[Role, PermissionMatrix] = {
    Role.ADMIN: PermissionMatrix(
        forklifts=_flags(True, True, True, True),
        users=_flags(False, True, False, False),
    ),
    Role.SUPER_ADMIN: PermissionMatrix(
        forklifts=_flags(True, True, True, True),
        users=_flags(True, True, True, True),
    ),
}


def default_permissions(role: Role | str) -> dict[str, Any]:
    """Return the JSON-ready default matrix for a role."""
    return DEFAULT_PERMISSIONS[Role(role)].model_dump()
