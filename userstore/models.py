"""Domain models for the user record store."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict


@dataclass(frozen=True)
class User:
    """A single user record addressed by its identifier."""

    id: int
    display_name: str
    email: str
    created_at: datetime


@dataclass
class UserStore:
    """Full persisted state: the identifier counter plus every user record."""

    increment: int = 0
    users: Dict[int, User] = field(default_factory=dict)

    def allocate_id(self) -> int:
        """Advance the counter and return the fresh identifier.

        Identifiers are never handed out twice, even after the record that
        held one is deleted.
        """

        self.increment += 1
        return self.increment


__all__ = ["User", "UserStore"]
