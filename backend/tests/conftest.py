"""Shared test fixtures and configuration for backend tests."""
import asyncio
import time

import pytest
from fastapi.testclient import TestClient
from jose import jwt

from lingochat.config import AppSettings, DatabaseSettings, JWTSecrets, Secrets, set_config
from lingochat.main import app
from lingochat.store import ConnectionStatus, DuckDBChatStore

TEST_SECRET = "test-secret"


def make_token(user_id, secret: str = TEST_SECRET, expires_in: int = 3600) -> str:
    """Issue a token the way the account service would."""
    return jwt.encode(
        {"sub": str(user_id), "exp": int(time.time()) + expires_in},
        secret,
        algorithm="HS256",
    )


class Seeder:
    """Synchronous helpers for putting rows into a store from plain tests."""

    def __init__(self, store) -> None:
        self.store = store

    def user(self, user_id: int, name: str = ""):
        return asyncio.run(self.store.create_user(name or f"user-{user_id}", user_id=user_id))

    def connection(self, user_a: int, user_b: int, status=ConnectionStatus.ACCEPTED):
        return asyncio.run(self.store.create_connection(user_a, user_b, status))

    def set_status(self, connection_id: int, status: ConnectionStatus):
        return asyncio.run(self.store.set_connection_status(connection_id, status))

    def message(self, connection_id: int, sender_id: int, content: str):
        return asyncio.run(self.store.create_message(connection_id, sender_id, content))

    def get_message(self, message_id: int):
        return asyncio.run(self.store.get_message(message_id))

    def messages(self, connection_id: int):
        return asyncio.run(self.store.list_messages(connection_id))

    def get_user(self, user_id: int):
        return asyncio.run(self.store.get_user(user_id))


@pytest.fixture
def test_config():
    """In-memory database and a known signing secret for each test."""
    config = AppSettings(
        database=DatabaseSettings(path=":memory:"),
        secrets=Secrets(jwt=JWTSecrets(secret_key=TEST_SECRET)),
    )
    set_config(config)
    yield config
    set_config(None)


@pytest.fixture
def api_client(test_config):
    """Provide a TestClient with the lifespan (and so the gateway) running."""
    with TestClient(app) as client:
        yield client


@pytest.fixture
def gateway(api_client):
    return app.state.gateway


@pytest.fixture
def seed(gateway):
    return Seeder(gateway.store)


@pytest.fixture
def token_for():
    return make_token


@pytest.fixture
def memory_store():
    """A standalone in-memory store for unit tests."""
    store = DuckDBChatStore(db_path=":memory:")
    yield store
    store.close()
