"""Configuration management for the account service."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional

import yaml

from .database import resolve_database_path
from .passwords import DEFAULT_ROUNDS
from .tokens import DEFAULT_TTL

DEFAULT_PUBLIC_PATHS: FrozenSet[str] = frozenset(
    {
        "/auth/register",
        "/auth/login",
        "/docs",
        "/docs/oauth2-redirect",
        "/openapi.json",
        "/health",
    }
)


@dataclass(frozen=True)
class Settings:
    """Process-wide settings, loaded once at startup."""

    database_path: Path
    jwt_secret: str = field(repr=False)
    token_ttl: timedelta = DEFAULT_TTL
    bcrypt_rounds: int = DEFAULT_ROUNDS
    public_paths: FrozenSet[str] = DEFAULT_PUBLIC_PATHS

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        secret = data.get("jwt_secret")
        if not secret:
            raise RuntimeError(
                "A JWT signing secret must be configured (jwt_secret or ACCOUNTS_JWT_SECRET)"
            )

        raw_db_path = data.get("database_path")
        if raw_db_path:
            candidate = Path(str(raw_db_path)).expanduser()
            if not candidate.is_absolute() and base_path is not None:
                candidate = base_path / candidate
            database_path = candidate.resolve(strict=False)
        else:
            database_path = resolve_database_path(None)

        ttl_seconds = _as_int(data.get("token_ttl_seconds"), "token_ttl_seconds")
        rounds = _as_int(data.get("bcrypt_rounds"), "bcrypt_rounds")

        public_paths = DEFAULT_PUBLIC_PATHS
        extra_paths = data.get("public_paths")
        if extra_paths:
            if not isinstance(extra_paths, list):
                raise ValueError("public_paths must be a list of paths")
            public_paths = DEFAULT_PUBLIC_PATHS | frozenset(str(item) for item in extra_paths)

        return Settings(
            database_path=database_path,
            jwt_secret=str(secret),
            token_ttl=timedelta(seconds=ttl_seconds) if ttl_seconds is not None else DEFAULT_TTL,
            bcrypt_rounds=rounds if rounds is not None else DEFAULT_ROUNDS,
            public_paths=public_paths,
        )


def _as_int(value: object, name: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(str(value))
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


_ENV_OVERRIDES: Dict[str, str] = {
    "ACCOUNTS_DB_PATH": "database_path",
    "ACCOUNTS_JWT_SECRET": "jwt_secret",
    "ACCOUNTS_TOKEN_TTL_SECONDS": "token_ttl_seconds",
    "ACCOUNTS_BCRYPT_ROUNDS": "bcrypt_rounds",
}


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides."""

    env = os.environ if environ is None else environ
    if config_path is None and env.get("ACCOUNTS_CONFIG"):
        config_path = Path(env["ACCOUNTS_CONFIG"])

    raw: Dict[str, object] = {}
    base_path: Path | None = None
    if config_path is not None:
        config_path = config_path.expanduser().resolve(strict=False)
        with config_path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError("Configuration file must contain a mapping at the top level")
        raw.update(loaded)
        base_path = config_path.parent

    for variable, key in _ENV_OVERRIDES.items():
        value = env.get(variable)
        if value:
            raw[key] = value

    return Settings.from_dict(raw, base_path=base_path)


__all__ = ["DEFAULT_PUBLIC_PATHS", "Settings", "load_settings"]
