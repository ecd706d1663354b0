"""
Identity collaborator - resolves acting users to (id, role)

The workflow never authenticates; it only authorizes the Actor it is
handed. InMemoryUserDirectory serves tests and the CLI.
"""

import json
from pathlib import Path
from typing import Iterable, Protocol

from requisition_flow.access.models import Actor, UserRole
from requisition_flow.kernel.errors import UserNotFound


class UserDirectory(Protocol):
    """Protocol for the identity collaborator"""

    def get(self, user_id: str) -> Actor:
        """Resolve a user id, raising UserNotFound if unknown"""
        ...

    def active_user_ids(self, role: UserRole) -> list[str]:
        """Ids of every active user holding the role"""
        ...


class InMemoryUserDirectory:
    """Dictionary-backed user directory"""

    def __init__(self, actors: Iterable[Actor] = ()) -> None:
        self._actors: dict[str, Actor] = {}
        for actor in actors:
            self.add(actor)

    def add(self, actor: Actor) -> None:
        self._actors[actor.user_id] = actor

    def get(self, user_id: str) -> Actor:
        try:
            return self._actors[user_id]
        except KeyError:
            raise UserNotFound(user_id) from None

    def active_user_ids(self, role: UserRole) -> list[str]:
        return sorted(
            actor.user_id
            for actor in self._actors.values()
            if actor.role == role and actor.active
        )

    def __len__(self) -> int:
        return len(self._actors)

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryUserDirectory":
        """
        Load users from a JSON list of {"user_id", "role", "name"?, "active"?}
        """
        raw = json.loads(Path(path).read_text())
        return cls(Actor.model_validate(entry) for entry in raw)

    @classmethod
    def one_per_role(cls) -> "InMemoryUserDirectory":
        """A user per role, id = lower-case role name (e.g. 'logistica')"""
        return cls(Actor(user_id=role.value.lower(), role=role) for role in UserRole)
