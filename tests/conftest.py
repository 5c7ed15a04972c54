"""
Pytest configuration and fixtures.

Every test gets its own SQLite file under tmp_path and a Config pointing at it.
"""

import dataclasses
from typing import Any, Dict, Iterator, Tuple

import pytest
from fastapi.testclient import TestClient

from lumi_library.api.server import create_app
from lumi_library.auth.crud import set_user_role
from lumi_library.config import Config, load_config
from lumi_library.db import connect, init_db


TEST_SECRET = "test-secret-not-for-production"


@pytest.fixture
def cfg(tmp_path) -> Config:
    return dataclasses.replace(
        load_config(),
        DB_DSN=str(tmp_path / "lumi_test.sqlite"),
        AUTH_JWT_SECRET=TEST_SECRET,
        AUTH_TOKEN_EXPIRE_MINUTES=1440,
        AUTH_EMAIL_CASE_INSENSITIVE=False,
        AUTH_BOOTSTRAP_ADMIN_EMAIL=None,
        AUTH_BOOTSTRAP_ADMIN_PASSWORD=None,
        SUBSCRIPTION_DAYS=30,
        CORS_ALLOW_ORIGINS="",
    )


@pytest.fixture
def db(cfg) -> Config:
    """Config whose database already has the schema."""
    init_db(cfg.DB_DSN)
    return cfg


@pytest.fixture
def conn(db) -> Iterator[Any]:
    with connect(db.DB_DSN) as c:
        yield c


@pytest.fixture
def client(cfg) -> Iterator[TestClient]:
    # Context manager runs the startup hook (schema + admin bootstrap).
    with TestClient(create_app(cfg)) as c:
        yield c


def register(client: TestClient, email: str, password: str = "secret123", name: str = "Reader") -> Tuple[str, Dict[str, Any]]:
    r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert r.status_code == 201, r.text
    data = r.json()
    return data["token"], data["user"]


def auth(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def promote(cfg: Config, user_id: int, role: str = "admin") -> None:
    with connect(cfg.DB_DSN) as c:
        set_user_role(c, user_id, role)


@pytest.fixture
def admin_token(client, cfg) -> str:
    token, user = register(client, "admin@lumi.test", name="Admin")
    promote(cfg, user["id"])
    return token
