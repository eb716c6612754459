"""User directory lookups used to resolve approval assignees."""

from __future__ import annotations

from typing import Iterable, Optional, Protocol

from pydantic import BaseModel


class User(BaseModel):
    id: str
    role: str
    is_active: bool = True


class Directory(Protocol):
    async def find_active_user_by_role(self, role: str) -> Optional[str]:
        """Id of the first active user holding ``role``, if any."""


class InMemoryDirectory(Directory):
    """Directory backed by a fixed list of users, kept in declaration order."""

    def __init__(self, users: Iterable[User] = ()) -> None:
        self._users = list(users)

    def add_user(self, user: User) -> None:
        self._users.append(user)

    async def find_active_user_by_role(self, role: str) -> Optional[str]:
        for user in self._users:
            if user.is_active and user.role == role:
                return user.id
        return None
