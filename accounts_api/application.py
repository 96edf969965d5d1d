"""Object graph wiring and the ASGI application entry point."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import FastAPI

from .accounts import AccountService
from .auth import AuthService
from .config import Settings, load_settings
from .database import Database
from .passwords import PasswordHasher
from .repository import AccountRepository
from .tokens import TokenManager


@dataclass(frozen=True)
class Services:
    """Every collaborator of the HTTP layer, built once at startup."""

    settings: Settings
    database: Database
    repository: AccountRepository
    hasher: PasswordHasher
    tokens: TokenManager
    accounts: AccountService
    auth: AuthService


def build_services(settings: Settings, database: Optional[Database] = None) -> Services:
    if database is None:
        database = Database(settings.database_path)

    repository = AccountRepository(database)
    hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    tokens = TokenManager(settings.jwt_secret, ttl=settings.token_ttl)
    accounts = AccountService(database, repository)
    auth = AuthService(database, repository, accounts, hasher, tokens)
    return Services(
        settings=settings,
        database=database,
        repository=repository,
        hasher=hasher,
        tokens=tokens,
        accounts=accounts,
        auth=auth,
    )


def create_application(*, config_path: Optional[str] = None) -> FastAPI:
    """Create the ASGI application from file and environment configuration."""

    from .api import create_app

    settings = load_settings(Path(config_path) if config_path else None)
    return create_app(settings=settings, initialize_database=True)


__all__ = ["Services", "build_services", "create_application"]
