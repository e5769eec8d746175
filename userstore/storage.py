"""JSON-file persistence for the user record store."""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .models import User, UserStore

logger = logging.getLogger("userstore.storage")

_INTEGER_KEY = re.compile(r"^[0-9]+$")
_FRACTION = re.compile(r"\.(\d+)")


class StoreError(RuntimeError):
    """Base class for failures of the backing store."""


class StoreIOError(StoreError):
    """Raised when the backing file cannot be read or written."""


class CorruptStoreError(StoreError):
    """Raised when the backing file exists but does not hold a valid store."""


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_store_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the user store file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "users.json").resolve(strict=False)


def _serialize_datetime(value: datetime) -> str:
    return value.isoformat()


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, also accepting RFC 3339 "Z" and nanoseconds."""

    text = value.strip()
    if text[-1:] in {"Z", "z"}:
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(lambda match: "." + (match.group(1) + "000000")[:6], text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_text(record: Mapping[str, Any], field_name: str, user_id: int) -> str:
    if field_name not in record:
        raise CorruptStoreError(f"User {user_id} is missing the '{field_name}' field")
    value = record[field_name]
    if not isinstance(value, str):
        raise CorruptStoreError(f"User {user_id} has a non-text '{field_name}' field")
    return value


def _decode_key(key: Any) -> int:
    if isinstance(key, int) and not isinstance(key, bool) and key >= 0:
        return key
    if isinstance(key, str) and _INTEGER_KEY.match(key):
        return int(key)
    raise CorruptStoreError(f"Invalid user identifier {key!r}")


def _decode_user(user_id: int, record: Any) -> User:
    if not isinstance(record, dict):
        raise CorruptStoreError(f"User {user_id} is not a JSON object")

    raw_created = _require_text(record, "created_at", user_id)
    try:
        created_at = parse_timestamp(raw_created)
    except ValueError as exc:
        raise CorruptStoreError(f"User {user_id} has an invalid 'created_at' timestamp") from exc

    return User(
        id=user_id,
        display_name=_require_text(record, "display_name", user_id),
        email=_require_text(record, "email", user_id),
        created_at=created_at,
    )


def decode_store(raw: Any) -> UserStore:
    """Build a :class:`UserStore` from parsed JSON data, validating its shape."""

    if not isinstance(raw, dict):
        raise CorruptStoreError("User store must be a JSON object")

    increment = raw.get("increment", 0)
    if isinstance(increment, bool) or not isinstance(increment, int) or increment < 0:
        raise CorruptStoreError("User store 'increment' must be a non-negative integer")

    entries = raw.get("list")
    if entries is None:
        entries = {}
    if not isinstance(entries, dict):
        raise CorruptStoreError("User store 'list' must be a JSON object")

    users: Dict[int, User] = {}
    for key, record in entries.items():
        user_id = _decode_key(key)
        if user_id in users:
            raise CorruptStoreError(f"Duplicate user identifier {user_id}")
        if user_id > increment:
            raise CorruptStoreError(
                f"User identifier {user_id} exceeds the store counter {increment}"
            )
        users[user_id] = _decode_user(user_id, record)

    return UserStore(increment=increment, users=users)


def encode_store(store: UserStore) -> Dict[str, Any]:
    """Return the JSON-ready representation of ``store``."""

    return {
        "increment": store.increment,
        "list": {
            str(user_id): {
                "created_at": _serialize_datetime(user.created_at),
                "display_name": user.display_name,
                "email": user.email,
            }
            for user_id, user in sorted(store.users.items())
        },
    }


def _loads(document: str | bytes) -> UserStore:
    try:
        if isinstance(document, bytes):
            document = document.decode("utf-8")
        raw = json.loads(document)
    except (ValueError, RecursionError) as exc:
        raise CorruptStoreError(f"User store is not valid JSON: {exc}") from exc
    return decode_store(raw)


def _dumps(store: UserStore) -> str:
    return json.dumps(encode_store(store), ensure_ascii=False, indent=2)


class UserStoreBackend(ABC):
    """Whole-store load/save boundary used by the record operations."""

    @abstractmethod
    def load(self) -> UserStore:
        """Read and decode the entire store."""

    @abstractmethod
    def save(self, store: UserStore) -> None:
        """Encode ``store`` and replace the persisted contents with it."""


class JSONFileStore(UserStoreBackend):
    """Persist the user store as a single JSON document on disk."""

    def __init__(self, path: Path, *, create_missing: bool = True) -> None:
        self._path = Path(path)
        self._create_missing = create_missing

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> UserStore:
        try:
            data = self._path.read_bytes()
        except FileNotFoundError as exc:
            if self._create_missing:
                logger.debug("User store %s does not exist yet; starting empty", self._path)
                return UserStore()
            raise StoreIOError(f"User store {self._path} does not exist") from exc
        except OSError as exc:
            raise StoreIOError(f"Unable to read user store {self._path}: {exc}") from exc

        try:
            return _loads(data)
        except CorruptStoreError as exc:
            logger.error("User store %s is corrupt: %s", self._path, exc)
            raise

    def save(self, store: UserStore) -> None:
        payload = _dumps(store)
        try:
            _ensure_directory(self._path)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
            )
        except OSError as exc:
            raise StoreIOError(f"Unable to write user store {self._path}: {exc}") from exc

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except OSError as exc:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise StoreIOError(f"Unable to write user store {self._path}: {exc}") from exc

        logger.debug("Wrote %d user(s) to %s", len(store.users), self._path)


class InMemoryStore(UserStoreBackend):
    """Keep the encoded store in memory; every load decodes a fresh copy."""

    def __init__(self, initial: Optional[UserStore] = None) -> None:
        self._document: Optional[str] = _dumps(initial) if initial is not None else None

    def load(self) -> UserStore:
        if self._document is None:
            return UserStore()
        return _loads(self._document)

    def save(self, store: UserStore) -> None:
        self._document = _dumps(store)


__all__ = [
    "CorruptStoreError",
    "InMemoryStore",
    "JSONFileStore",
    "StoreError",
    "StoreIOError",
    "UserStoreBackend",
    "decode_store",
    "encode_store",
    "parse_timestamp",
    "resolve_store_path",
]
