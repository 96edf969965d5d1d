from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from fastapi.testclient import TestClient

from accounts_api.api import create_app
from accounts_api.application import Services, build_services
from accounts_api.config import Settings
from accounts_api.database import Database

JWT_SECRET = "tests-secret-key-that-is-long-enough"


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    # Minimum bcrypt work factor keeps the suite fast.
    return Settings(
        database_path=tmp_path / "accounts.sqlite3",
        jwt_secret=JWT_SECRET,
        bcrypt_rounds=4,
    )


@pytest.fixture()
def database(settings: Settings) -> Database:
    db = Database(settings.database_path)
    db.initialize()
    return db


@pytest.fixture()
def services(settings: Settings, database: Database) -> Services:
    return build_services(settings, database)


@pytest.fixture()
def client(services: Services) -> Iterator[TestClient]:
    app = create_app(services=services)
    with TestClient(app) as test_client:
        yield test_client
