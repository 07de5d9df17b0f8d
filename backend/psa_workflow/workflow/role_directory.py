"""
Role Directory — the roles and users the workflow engine consults.

The directory is owned by the surrounding application (accounts,
departments, RBAC). The engine only reads it: to check that role
references in a graph exist, and, at activation time, that each
referenced role is staffed.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class Role(BaseModel):
    id: str
    name: str
    department_id: Optional[str] = None
    hierarchy_level: int = 0


class DirectoryUser(BaseModel):
    id: str
    name: str = ""
    role_ids: List[str] = Field(default_factory=list)


@runtime_checkable
class RoleDirectory(Protocol):
    def list_roles(self) -> List[Role]:
        ...

    def users_with_role(self, role_id: str) -> List[DirectoryUser]:
        ...


class InMemoryRoleDirectory:
    """A ``RoleDirectory`` over plain lists, for tests and tooling."""

    def __init__(
        self,
        roles: Iterable[Role] = (),
        users: Iterable[DirectoryUser] = (),
    ) -> None:
        self._roles: Dict[str, Role] = {r.id: r for r in roles}
        self._users: List[DirectoryUser] = list(users)

    def list_roles(self) -> List[Role]:
        return list(self._roles.values())

    def get_role(self, role_id: str) -> Optional[Role]:
        return self._roles.get(role_id)

    def users_with_role(self, role_id: str) -> List[DirectoryUser]:
        return [u for u in self._users if role_id in u.role_ids]

    def user_count(self, role_id: str) -> int:
        return len(self.users_with_role(role_id))

    def add_role(self, role: Role) -> None:
        self._roles[role.id] = role

    def add_user(self, user: DirectoryUser) -> None:
        self._users.append(user)


def find_role(directory: RoleDirectory, role_id: str) -> Optional[Role]:
    """Look up a role by id through the protocol surface."""
    for role in directory.list_roles():
        if role.id == role_id:
            return role
    return None
