"""
Pydantic schemas for the role catalog.
"""

from pydantic import BaseModel

from planguard.features.rbac.permissions import Role


class PermissionCategory(BaseModel):
    key: str
    label: str
    permissions: list[str]


class RoleRead(BaseModel):
    name: Role
    level: int
    description: str
    user_count: int
    permissions: dict[str, bool]
    is_system: bool = True


class RoleCatalog(BaseModel):
    roles: list[RoleRead]
    permission_categories: list[PermissionCategory]


class MyPermissions(BaseModel):
    role: Role
    permissions: dict[str, bool]
