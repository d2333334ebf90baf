"""Shared test fixtures."""

from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from commentgate.auth.security import create_access_token
from commentgate.main import app


@pytest.fixture
def client() -> TestClient:
    """Test client without lifespan: no Cassandra or Redis connection is made."""
    return TestClient(app)


def _make_token(role: str = "user", **claims) -> str:
    data = {
        "sub": str(claims.pop("sub", uuid4())),
        "email": claims.pop("email", "reader@example.com"),
        "role": role,
        "name": claims.pop("name", "Reader"),
    }
    data.update(claims)
    return create_access_token(data)


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token()}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {_make_token(role='admin')}"}


@pytest.fixture
def token_factory():
    """Build a bearer token for arbitrary claims."""
    return _make_token
