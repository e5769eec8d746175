"""Persistent user record store with a small HTTP API."""

from __future__ import annotations

from typing import Any

from .models import User, UserStore
from .repository import UserNotFoundError, UserRepository
from .storage import (
    CorruptStoreError,
    InMemoryStore,
    JSONFileStore,
    StoreError,
    StoreIOError,
    resolve_store_path,
)


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "CorruptStoreError",
    "InMemoryStore",
    "JSONFileStore",
    "StoreError",
    "StoreIOError",
    "User",
    "UserNotFoundError",
    "UserRepository",
    "UserStore",
    "create_app",
    "resolve_store_path",
]
