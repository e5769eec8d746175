"""CRUD operations over the persisted user store."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .models import User, UserStore
from .storage import UserStoreBackend

logger = logging.getLogger("userstore.repository")


class UserNotFoundError(LookupError):
    """Raised when an operation targets an identifier that is not stored."""

    def __init__(self, user_id: int) -> None:
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserRepository:
    """Load, mutate and persist user records one transaction at a time.

    Every operation loads the whole store from the backend and mutating
    operations write the whole store back. All of them run under a single
    lock, so concurrent callers sharing this repository never overwrite each
    other's changes.
    """

    def __init__(
        self,
        store: UserStoreBackend,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()

    @property
    def store(self) -> UserStoreBackend:
        return self._store

    def list_users(self) -> List[User]:
        with self._lock:
            state = self._store.load()
        return [state.users[user_id] for user_id in sorted(state.users)]

    def get_user(self, user_id: int) -> User:
        with self._lock:
            state = self._store.load()
        return self._require(state, user_id)

    def create_user(self, display_name: str, email: str) -> User:
        """Store a new user under a freshly allocated identifier and return it."""

        with self._lock:
            state = self._store.load()
            user = User(
                id=state.allocate_id(),
                display_name=display_name,
                email=email,
                created_at=self._clock(),
            )
            state.users[user.id] = user
            self._store.save(state)

        logger.info("Created user %s <%s>", user.id, user.email)
        return user

    def update_user(
        self,
        user_id: int,
        *,
        display_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> User:
        """Apply the supplied fields to an existing user; ``None`` leaves a field as is."""

        with self._lock:
            state = self._store.load()
            current = self._require(state, user_id)

            changes = {}
            if display_name is not None:
                changes["display_name"] = display_name
            if email is not None:
                changes["email"] = email

            updated = replace(current, **changes)
            state.users[user_id] = updated
            self._store.save(state)

        logger.info("Updated user %s (fields: %s)", user_id, ", ".join(sorted(changes)) or "none")
        return updated

    def delete_user(self, user_id: int) -> None:
        with self._lock:
            state = self._store.load()
            self._require(state, user_id)
            del state.users[user_id]
            self._store.save(state)

        logger.info("Deleted user %s", user_id)

    @staticmethod
    def _require(state: UserStore, user_id: int) -> User:
        user = state.users.get(user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        return user


__all__ = ["UserNotFoundError", "UserRepository"]
