"""Command-line interface for the account service."""

from __future__ import annotations
import argparse
import logging
import sys
from getpass import getpass
from pathlib import Path
from typing import Optional, Sequence

from accounts_api.application import Services, build_services
from accounts_api.config import Settings, load_settings
from accounts_api.database import Database
from accounts_api.errors import AccountServiceError
from accounts_api.models import Role

logger = logging.getLogger("accounts.main")

PASSWORD_MIN_LENGTH = 8


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Account service utilities")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a YAML configuration file (default: ACCOUNTS_CONFIG)",
    )
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    subparsers.add_parser("init-db", help="Initialise the account database")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the HTTP API (default: 8000)",
    )

    create_parser = subparsers.add_parser("create-account", help="Create an account with a password")
    create_parser.add_argument("name", help="Display name for the account")
    create_parser.add_argument("email", help="Unique email address used to log in")
    create_parser.add_argument("age", type=int, help="Age of the account holder")
    create_parser.add_argument(
        "--admin",
        action="store_true",
        help="Grant the ADMIN role after creating the account",
    )

    role_parser = subparsers.add_parser("set-role", help="Change the role of an account")
    role_parser.add_argument("account_id", type=int)
    role_parser.add_argument("role", choices=[role.value for role in Role])

    password_parser = subparsers.add_parser("set-password", help="Reset the password of an account")
    password_parser.add_argument("account_id", type=int)

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "init-db", "create-account", "set-role", "set-password"}

    # Bare options such as "--port 8080" imply the serve command.
    global_options = []
    if args_list[:1] == ["--config"] and len(args_list) >= 2:
        global_options, args_list = args_list[:2], args_list[2:]

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args([*global_options, *args_list])
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args([*global_options, *args_list])
            args_list = ["serve", *args_list]

    return parser.parse_args([*global_options, *args_list])


def _load_settings(config: Optional[str]) -> Settings:
    try:
        return load_settings(Path(config) if config else None)
    except (RuntimeError, ValueError, OSError) as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc


def _initialise_database(settings: Settings) -> Database:
    database = Database(settings.database_path)
    database.initialize()
    logger.info("Database initialised at %s", settings.database_path)
    return database


def _serve(*, services: Services, host: str, port: int) -> None:
    from accounts_api.api import create_app
    import uvicorn

    logger.info("Starting account API on http://%s:%s", host, port)
    app = create_app(services=services)
    uvicorn.run(app, host=host, port=port, log_level="info")


def _prompt_for_password() -> str | None:
    for _ in range(3):
        password = getpass(f"Password (min {PASSWORD_MIN_LENGTH} characters): ")
        if len(password) < PASSWORD_MIN_LENGTH:
            print("Password is too short. Please try again.")
            continue
        confirmation = getpass("Confirm password: ")
        if password != confirmation:
            print("Passwords do not match. Please try again.")
            continue
        return password
    return None


def _create_account(services: Services, args: argparse.Namespace) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1

    role = Role.ADMIN if args.admin else Role.USER
    try:
        result = services.auth.register(
            args.name.strip(),
            args.email.strip(),
            args.age,
            password,
            role=role,
        )
    except AccountServiceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(f"Created account #{result.account_id}: {result.name} <{result.email}> ({result.role.value})")
    return 0


def _set_role(services: Services, args: argparse.Namespace) -> int:
    try:
        account = services.auth.set_role(args.account_id, Role(args.role))
    except AccountServiceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Account #{account.id} now has role {account.role.value}")
    return 0


def _set_password(services: Services, args: argparse.Namespace) -> int:
    password = _prompt_for_password()
    if password is None:
        print("Failed to set password after three attempts.", file=sys.stderr)
        return 1
    try:
        services.auth.set_password(args.account_id, password)
    except AccountServiceError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    print(f"Password updated for account #{args.account_id}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = _load_settings(args.config)
    database = _initialise_database(settings)
    services = build_services(settings, database)

    if args.command == "serve":
        _serve(services=services, host=args.host, port=args.port)
    elif args.command == "init-db":
        print("Database initialisation complete.")
    elif args.command == "create-account":
        return _create_account(services, args)
    elif args.command == "set-role":
        return _set_role(services, args)
    elif args.command == "set-password":
        return _set_password(services, args)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
