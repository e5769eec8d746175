"""Command-line interface for the user store service."""

from __future__ import annotations
import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Sequence

try:
    import httpx
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from userstore.config import Settings, load_settings
from userstore.models import User
from userstore.repository import UserNotFoundError, UserRepository
from userstore.storage import JSONFileStore, StoreError, parse_timestamp, resolve_store_path

logger = logging.getLogger("userstore.main")

_KNOWN_COMMANDS = {"serve", "init-store", "list", "show", "add", "update", "delete"}


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (default: USERSTORE_CONFIG or config/userstore.yaml)",
    )
    common.add_argument(
        "--store",
        default=None,
        help="Path to the JSON user store (overrides configuration)",
    )

    parser = argparse.ArgumentParser(description="User store utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", parents=[common], help="Start the HTTP API")
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument("--port", type=int, default=None, help="Port for the API (default: 3333)")

    subparsers.add_parser("init-store", parents=[common], help="Create an empty user store file")

    list_parser = subparsers.add_parser("list", parents=[common], help="List stored users")
    list_parser.add_argument(
        "--service-url",
        default=None,
        help="Query a running service instead of reading the store file",
    )

    show_parser = subparsers.add_parser("show", parents=[common], help="Show a single user")
    show_parser.add_argument("user_id", type=int)

    add_parser = subparsers.add_parser("add", parents=[common], help="Create a user")
    add_parser.add_argument("display_name")
    add_parser.add_argument("email")

    update_parser = subparsers.add_parser("update", parents=[common], help="Change fields of a user")
    update_parser.add_argument("user_id", type=int)
    update_parser.add_argument("--name", dest="display_name", default=None)
    update_parser.add_argument("--email", default=None)

    delete_parser = subparsers.add_parser("delete", parents=[common], help="Delete a user")
    delete_parser.add_argument("user_id", type=int)

    args_list = list(argv) if argv is not None else sys.argv[1:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in _KNOWN_COMMANDS:
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config).expanduser() if getattr(args, "config", None) else None
    settings = load_settings(config_path)
    if getattr(args, "store", None):
        settings = replace(settings, store_path=resolve_store_path(args.store))
    return settings


def _repository(settings: Settings) -> UserRepository:
    return UserRepository(JSONFileStore(settings.store_path, create_missing=settings.create_missing))


def _print_users(users: Iterable[User]) -> None:
    users = list(users)
    if not users:
        print("No users are currently stored.")
        return

    print(f"{len(users)} user(s) found:")
    print(f"{'ID':>4}  {'Name':<24}  {'Email':<32}  Created")
    print("-" * 80)
    for user in users:
        created = user.created_at.strftime("%Y-%m-%d %H:%M:%S %Z")
        print(f"{user.id:>4}  {user.display_name:<24}  {user.email:<32}  {created}")


def _fetch_remote_users(service_url: str) -> list[User] | None:
    endpoint = service_url.rstrip("/") + "/api/v1/users"

    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact user service: {exc}")
        return None

    if response.status_code != 200:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return None

    try:
        payload = response.json()
        return [
            User(
                id=int(item["id"]),
                display_name=str(item["display_name"]),
                email=str(item["email"]),
                created_at=parse_timestamp(str(item["created_at"])),
            )
            for item in payload
        ]
    except (ValueError, KeyError, TypeError):
        print("Service returned an unexpected response format.")
        return None


def _init_store(settings: Settings) -> int:
    store = JSONFileStore(settings.store_path, create_missing=True)
    if store.exists():
        # Loading validates the existing file without rewriting it.
        store.load()
        print(f"User store already present at {store.path}.")
        return 0
    store.save(store.load())
    logger.info("User store initialised at %s", store.path)
    print(f"Created empty user store at {store.path}.")
    return 0


def _serve(settings: Settings, *, host: str | None, port: int | None) -> int:
    from userstore.service import create_app
    import uvicorn

    bind_host = host if host is not None else settings.host
    bind_port = port if port is not None else settings.port
    logger.info("Starting user API on http://%s:%s (store: %s)", bind_host, bind_port, settings.store_path)

    app = create_app(repository=_repository(settings), settings=settings)
    uvicorn.run(app, host=bind_host, port=bind_port, log_level=settings.log_level.lower())
    return 0


def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "serve":
        return _serve(settings, host=args.host, port=args.port)
    if args.command == "init-store":
        return _init_store(settings)

    if args.command == "list" and args.service_url:
        users = _fetch_remote_users(args.service_url)
        if users is None:
            return 1
        _print_users(users)
        return 0

    repository = _repository(settings)
    try:
        if args.command == "list":
            _print_users(repository.list_users())
        elif args.command == "show":
            _print_users([repository.get_user(args.user_id)])
        elif args.command == "add":
            user = repository.create_user(args.display_name.strip(), args.email.strip())
            print(f"Created user #{user.id}: {user.display_name} <{user.email}>")
        elif args.command == "update":
            if args.display_name is None and args.email is None:
                print("Nothing to update; pass --name and/or --email.")
                return 1
            user = repository.update_user(
                args.user_id, display_name=args.display_name, email=args.email
            )
            print(f"Updated user #{user.id}: {user.display_name} <{user.email}>")
        elif args.command == "delete":
            repository.delete_user(args.user_id)
            print(f"Deleted user #{args.user_id}.")
    except UserNotFoundError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    try:
        settings = _load_settings(args)
    except ValueError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        return _run_command(args, settings)
    except StoreError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
